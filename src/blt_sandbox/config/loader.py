"""
blt-sandbox — runtime config loader.

Purpose
- Load effective config from defaults, TOML file, environment and CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (BLT_SANDBOX_) > legacy env flags > file > defaults.
- TOML loading via ``tomllib``.
- Legacy toggles ``BLT_RECREATE_SANDBOX_MASTER``, ``BLT_PRINT_COMMAND_OUTPUT``
  and ``DRUPAL_CORE_VERSION`` mapped onto explicit config fields.
- Path normalization relative to the config file and the tool root.

Functional requirements
- The orchestrator never reads the environment; only this module does.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from blt_sandbox.config.schema import (
    PATH_FIELDS,
    SOURCE_PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)
from blt_sandbox.constants import (
    ENV_DRUPAL_CORE_VERSION,
    ENV_PRINT_COMMAND_OUTPUT,
    ENV_RECREATE_SANDBOX_MASTER,
    UNPINNED_CORE_VERSION,
)

DEFAULT_CONFIG_FILE: Final[str] = "blt-sandbox.toml"
ENV_PREFIX: Final[str] = "BLT_SANDBOX_"
ENV_CONFIG_PATH: Final[str] = "BLT_SANDBOX_CONFIG"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
_LOOSE_FALSE: Final[frozenset[str]] = frozenset({"", *_BOOLEAN_FALSE})


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: Literal["str", "int", "float", "bool"]


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence CLI > env > legacy env > file > defaults."""

    env_map = dict(os.environ if environ is None else environ)
    explicit_path = config_path is not None or bool(env_map.get(ENV_CONFIG_PATH, "").strip())
    resolved_path = _resolve_config_path(config_path, env_map)

    file_payload = _load_toml_file(resolved_path, required=explicit_path)
    merged = assert_valid_config(merge_config(default_config(), file_payload))

    merged = merge_config(merged, legacy_env_overrides(env_map))
    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(dict(cli_overrides or {})))
    merged = assert_valid_config(merged)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Normalize path fields against ``base_dir``; source paths against ``paths.tool_root``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        _normalize_path_field(materialized, field_path, base_dir)

    tool_root = _get_nested(materialized, ("paths", "tool_root"))
    source_base = Path(tool_root) if isinstance(tool_root, str) and tool_root else base_dir
    for field_path in SOURCE_PATH_FIELDS:
        _normalize_path_field(materialized, field_path, source_base)
    return materialized


def legacy_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Map the legacy ``BLT_*``/``DRUPAL_*`` toggles onto config fields."""

    overrides: dict[str, Any] = {}
    recreate = environ.get(ENV_RECREATE_SANDBOX_MASTER)
    if recreate is not None:
        _set_nested(overrides, ("sandbox", "force_recreate_master"), is_truthy_flag(recreate))
    verbose = environ.get(ENV_PRINT_COMMAND_OUTPUT)
    if verbose is not None:
        _set_nested(overrides, ("observability", "verbose_output"), is_truthy_flag(verbose))
    core_version = environ.get(ENV_DRUPAL_CORE_VERSION)
    if core_version is not None:
        pinned = core_version.strip()
        if pinned == UNPINNED_CORE_VERSION:
            pinned = ""
        _set_nested(overrides, ("install", "pinned_core_version"), pinned)
    return overrides


def is_truthy_flag(raw: str) -> bool:
    """Loose truthiness for legacy flags: empty, 0, false, no, off are false.

    Wider than a plain ``getenv()`` check, which only treats empty and ``0`` as
    false; see "Legacy truthiness" in DESIGN.md.
    """

    return raw.strip().lower() not in _LOOSE_FALSE


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return a deterministic, human-readable JSON dump of ``config``."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def _resolve_config_path(config_path: str | Path | None, environ: Mapping[str, str]) -> Path:
    if config_path is not None:
        return Path(config_path).expanduser().resolve()
    from_env = environ.get(ENV_CONFIG_PATH, "").strip()
    if from_env:
        return Path(from_env).expanduser().resolve()
    return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        _set_nested(overrides, binding.path, value)
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        kind = _kind_for_value(value)
        if kind is None:
            continue
        bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> Literal["str", "int", "float", "bool"] | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    return None


def _coerce_env(
    raw: str,
    value_type: Literal["str", "int", "float", "bool"],
    env_name: str,
    path: tuple[str, ...],
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "int":
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_path_field(config: dict[str, Any], path: tuple[str, ...], base_dir: Path) -> None:
    value = _get_nested(config, path)
    if not isinstance(value, str) or not value.strip():
        return
    _set_nested(config, path, _normalize_one_path(value, base_dir))


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    normalized = Path(os.path.normpath(str(candidate)))
    return normalized.as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_CONFIG_PATH",
    "ENV_PREFIX",
    "dump_effective_config",
    "is_truthy_flag",
    "legacy_env_overrides",
    "load_config",
    "normalize_paths",
]
