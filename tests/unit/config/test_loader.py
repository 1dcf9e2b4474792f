"""
blt-sandbox — unit tests for config loader

Purpose
- Validate config loading from defaults, TOML, legacy env flags, prefixed env
  overrides and CLI overrides.

What this test file should cover
- Precedence: CLI > env > legacy env > file > defaults.
- Legacy toggle semantics (loose truthiness, ``default`` core version).
- Env var path mapping and type coercion.
- Path normalization relative to the config file and the tool root.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from blt_sandbox.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    is_truthy_flag,
    legacy_env_overrides,
    load_config,
)
from blt_sandbox.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[install]
timeout_seconds = 120.0
""".strip(),
    )

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(
        config_path, environ={"BLT_SANDBOX_INSTALL_TIMEOUT_SECONDS": "60"}
    )
    cli_loaded = load_config(
        config_path,
        environ={"BLT_SANDBOX_INSTALL_TIMEOUT_SECONDS": "60"},
        cli_overrides={"install.timeout_seconds": 30.0},
    )

    assert default_loaded["install"]["timeout_seconds"] == 3600.0
    assert file_loaded["install"]["timeout_seconds"] == 120.0
    assert env_loaded["install"]["timeout_seconds"] == 60.0
    assert cli_loaded["install"]["timeout_seconds"] == 30.0


def test_legacy_flags_map_onto_explicit_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "BLT_RECREATE_SANDBOX_MASTER": "1",
            "BLT_PRINT_COMMAND_OUTPUT": "yes",
            "DRUPAL_CORE_VERSION": "9.3.0",
        },
    )

    assert loaded["sandbox"]["force_recreate_master"] is True
    assert loaded["observability"]["verbose_output"] is True
    assert loaded["install"]["pinned_core_version"] == "9.3.0"


def test_prefixed_env_overrides_legacy_flags(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "BLT_RECREATE_SANDBOX_MASTER": "1",
            "BLT_SANDBOX_SANDBOX_FORCE_RECREATE_MASTER": "false",
        },
    )

    assert loaded["sandbox"]["force_recreate_master"] is False


def test_legacy_flags_override_file_values(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "[sandbox]\nforce_recreate_master = true\n")

    loaded = load_config(config_path, environ={"BLT_RECREATE_SANDBOX_MASTER": "0"})

    assert loaded["sandbox"]["force_recreate_master"] is False


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1", True),
        ("true", True),
        ("anything", True),
        ("", False),
        ("0", False),
        ("false", False),
        (" Off ", False),
        ("no", False),
    ],
)
def test_is_truthy_flag(raw: str, expected: bool) -> None:
    assert is_truthy_flag(raw) is expected


@pytest.mark.parametrize("raw", ["false", "no", "off", "0", ""])
def test_legacy_recreate_flag_false_words_keep_master(raw: str) -> None:
    assert legacy_env_overrides({"BLT_RECREATE_SANDBOX_MASTER": raw}) == {
        "sandbox": {"force_recreate_master": False}
    }


def test_default_core_version_means_unpinned() -> None:
    assert legacy_env_overrides({"DRUPAL_CORE_VERSION": "default"}) == {
        "install": {"pinned_core_version": ""}
    }
    assert legacy_env_overrides({}) == {}


def test_env_int_values_accept_octal_literals(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "")

    loaded = load_config(config_path, environ={"BLT_SANDBOX_SANDBOX_WRITABLE_MODE": "0o775"})

    assert loaded["sandbox"]["writable_mode"] == 0o775


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("BLT_SANDBOX_SANDBOX_WRITABLE_MODE", "rwx", "must be an integer"),
        ("BLT_SANDBOX_INSTALL_TIMEOUT_SECONDS", "soon", "must be a number"),
        ("BLT_SANDBOX_MANIFEST_SYMLINK", "maybe", "must be a boolean"),
    ],
)
def test_env_coercion_errors(tmp_path: Path, name: str, value: str, message: str) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=message):
        load_config(config_path, environ={name: value})


def test_missing_explicit_config_file_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_config_path_from_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "custom" / "sandbox.toml"
    _write_config(config_path, '[install]\nexecutable = "composer2"\n')

    loaded = load_config(environ={"BLT_SANDBOX_CONFIG": str(config_path)})

    assert loaded["install"]["executable"] == "composer2"


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "[install\nexecutable = ")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_unknown_keys_in_file_fail_validation(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "[sandbox]\nrecreate = true\n")

    with pytest.raises(ConfigValidationError, match="sandbox.recreate: unknown key"):
        load_config(config_path, environ={})


def test_paths_normalize_against_config_dir_and_tool_root(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "blt-sandbox.toml"
    _write_config(
        config_path,
        """
[paths]
tool_root = "../blt"
tmp_root = "scratch"
fixture_dir = "fixtures/sandbox"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    root = tmp_path.resolve()
    paths = loaded["paths"]
    assert paths["tool_root"] == (root / "blt").as_posix()
    assert paths["tmp_root"] == (root / "conf" / "scratch").as_posix()
    assert paths["fixture_dir"] == (root / "blt" / "fixtures" / "sandbox").as_posix()
    assert paths["manifest_template"] == (
        root / "blt" / "subtree-splits" / "blt-project" / "composer.json"
    ).as_posix()
    assert paths["sandbox_master"] == ""


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    _write_config(config_path, "")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    assert json.loads(first)["meta"]["schema_version"] == 1
