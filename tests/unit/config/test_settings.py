"""Unit tests for typed settings derived from validated config."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from blt_sandbox.config.loader import load_config
from blt_sandbox.config.schema import default_config, merge_config
from blt_sandbox.config.settings import SandboxPaths, SandboxSettings, settings_from_config
from blt_sandbox.sandbox.filesystem import FilesystemStrategy


def test_sandbox_paths_default_to_host_temp_dir() -> None:
    paths = SandboxPaths.under()
    temp_root = Path(tempfile.gettempdir())

    assert paths.master == temp_root / "blt-sandbox-master"
    assert paths.instance == temp_root / "blt-sandbox-instance"
    assert paths.require_dev_package_dir == temp_root / "blt-require-dev"


def test_for_tool_root_uses_default_source_layout(tmp_path: Path) -> None:
    settings = SandboxSettings.for_tool_root(tmp_path, tmp_root=tmp_path / "tmp")

    assert settings.fixture_dir == tmp_path / "tests" / "phpunit" / "fixtures" / "sandbox"
    assert settings.manifest_template == (
        tmp_path / "subtree-splits" / "blt-project" / "composer.json"
    )
    assert settings.require_dev_source == tmp_path / "subtree-splits" / "blt-require-dev"
    assert settings.paths.master == tmp_path / "tmp" / "blt-sandbox-master"
    assert settings.force_recreate_master is False
    assert settings.writable_mode == 0o755


def test_settings_normalize_core_version_and_strategies(tmp_path: Path) -> None:
    settings = SandboxSettings.for_tool_root(
        tmp_path,
        pinned_core_version="default",
        deletion_strategy="native",
        copy_strategy="subprocess",
    )

    assert settings.pinned_core_version is None
    assert settings.deletion_strategy is FilesystemStrategy.NATIVE
    assert settings.copy_strategy is FilesystemStrategy.SUBPROCESS


def test_settings_reject_unknown_strategy(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="unsupported strategy"):
        SandboxSettings.for_tool_root(tmp_path, copy_strategy="rsync")


def test_settings_from_loaded_config(tmp_path: Path) -> None:
    config_path = tmp_path / "blt-sandbox.toml"
    config_path.write_text(
        """
[paths]
tool_root = "blt"
tmp_root = "scratch"
sandbox_instance = "instances/current"

[install]
executable = "/usr/local/bin/composer"
install_args = ["install", "--no-progress"]
pinned_core_version = "10.1.0"
""".strip(),
        encoding="utf-8",
    )

    settings = settings_from_config(load_config(config_path, environ={}))
    root = tmp_path.resolve()

    assert settings.tool_root == root / "blt"
    assert settings.paths.master == root / "scratch" / "blt-sandbox-master"
    assert settings.paths.instance == root / "instances" / "current"
    assert settings.paths.require_dev_package_dir == root / "scratch" / "blt-require-dev"
    assert settings.install.executable == "/usr/local/bin/composer"
    assert settings.install.install_args == ("install", "--no-progress")
    assert settings.pinned_core_version == "10.1.0"
    assert settings.deletion_strategy is FilesystemStrategy.SUBPROCESS
    assert settings.manifest.tool_package == "acquia/blt"


def test_settings_from_config_rejects_colliding_paths(tmp_path: Path) -> None:
    shared = (tmp_path / "shared").as_posix()
    config = merge_config(
        default_config(),
        {"paths": {"sandbox_master": shared, "sandbox_instance": shared}},
    )

    with pytest.raises(ValueError, match="distinct"):
        settings_from_config(config)
