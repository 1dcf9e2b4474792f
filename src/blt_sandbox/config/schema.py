"""
blt-sandbox — configuration schema and validation.

Purpose
- Define authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown keys so typos in ``blt-sandbox.toml`` fail loudly.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from blt_sandbox.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CORE_PACKAGE,
    DEFAULT_INSTALL_ARGS,
    DEFAULT_INSTALL_TIMEOUT_SECONDS,
    DEFAULT_PACKAGE_MANAGER,
    DEFAULT_WRITABLE_MODE,
    DEV_VERSION_CONSTRAINT,
    FIXTURE_DIR,
    MANIFEST_TEMPLATE,
    REQUIRE_DEV_PACKAGE_NAME,
    REQUIRE_DEV_REPOSITORY_NAME,
    REQUIRE_DEV_SOURCE,
    TOOL_PACKAGE_NAME,
    TOOL_REPOSITORY_NAME,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
FILESYSTEM_STRATEGIES: Final[tuple[str, ...]] = ("native", "subprocess")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Normalized relative to the config file location; empty values stay empty.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "tool_root"),
    ("paths", "tmp_root"),
    ("paths", "sandbox_master"),
    ("paths", "sandbox_instance"),
    ("paths", "require_dev_package_dir"),
    ("observability", "log_dir"),
)

# Normalized relative to ``paths.tool_root``.
SOURCE_PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "fixture_dir"),
    ("paths", "manifest_template"),
    ("paths", "require_dev_source"),
)


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    tool_root: str
    fixture_dir: str
    manifest_template: str
    require_dev_source: str
    tmp_root: str
    sandbox_master: str
    sandbox_instance: str
    require_dev_package_dir: str


class SandboxSection(TypedDict):
    force_recreate_master: bool
    writable_mode: int
    deletion_strategy: Literal["native", "subprocess"]
    copy_strategy: Literal["native", "subprocess"]


class InstallConfig(TypedDict):
    executable: str
    install_args: list[str]
    timeout_seconds: float
    pinned_core_version: str
    core_package: str


class ManifestConfig(TypedDict):
    tool_repository: str
    tool_package: str
    require_dev_repository: str
    require_dev_package: str
    version_constraint: str
    symlink: bool


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_file: bool
    verbose_output: bool


class SandboxManagerConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    sandbox: SandboxSection
    install: InstallConfig
    manifest: ManifestConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[SandboxManagerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "paths": {
        "tool_root": ".",
        "fixture_dir": FIXTURE_DIR.as_posix(),
        "manifest_template": MANIFEST_TEMPLATE.as_posix(),
        "require_dev_source": REQUIRE_DEV_SOURCE.as_posix(),
        "tmp_root": "",
        "sandbox_master": "",
        "sandbox_instance": "",
        "require_dev_package_dir": "",
    },
    "sandbox": {
        "force_recreate_master": False,
        "writable_mode": DEFAULT_WRITABLE_MODE,
        "deletion_strategy": "subprocess",
        "copy_strategy": "native",
    },
    "install": {
        "executable": DEFAULT_PACKAGE_MANAGER,
        "install_args": list(DEFAULT_INSTALL_ARGS),
        "timeout_seconds": DEFAULT_INSTALL_TIMEOUT_SECONDS,
        "pinned_core_version": "",
        "core_package": DEFAULT_CORE_PACKAGE,
    },
    "manifest": {
        "tool_repository": TOOL_REPOSITORY_NAME,
        "tool_package": TOOL_PACKAGE_NAME,
        "require_dev_repository": REQUIRE_DEV_REPOSITORY_NAME,
        "require_dev_package": REQUIRE_DEV_PACKAGE_NAME,
        "version_constraint": DEV_VERSION_CONSTRAINT,
        "symlink": True,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs",
        "log_to_file": False,
        "verbose_output": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> SandboxManagerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object]) -> ConfigValidationResult:
    """Validate ``config`` and return every issue found."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("$", "config root must be an object")
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(config, DEFAULT_CONFIG, "", issues)
    _validate_meta(config.get("meta"), issues)
    _validate_paths(config.get("paths"), issues)
    _validate_sandbox(config.get("sandbox"), issues)
    _validate_install(config.get("install"), issues)
    _validate_manifest(config.get("manifest"), issues)
    _validate_observability(config.get("observability"), issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=copy.deepcopy(dict(config)), issues=())


def assert_valid_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a validated copy of ``config`` or raise :class:`ConfigValidationError`."""

    result = validate_config(config)
    if not result.is_valid or result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_meta(value: object, issues: _IssueCollector) -> None:
    section = _section(value, "meta", issues)
    if section is None:
        return
    version = _as_int(section.get("schema_version"), "meta.schema_version", issues)
    if version is not None and version != ConfigSchemaVersion:
        issues.add(
            "meta.schema_version",
            f"unsupported schema version {version}; expected {ConfigSchemaVersion}",
        )


def _validate_paths(value: object, issues: _IssueCollector) -> None:
    section = _section(value, "paths", issues)
    if section is None:
        return
    for key in ("tool_root", "fixture_dir", "manifest_template", "require_dev_source"):
        text = _as_str(section.get(key), f"paths.{key}", issues)
        if text is not None and not text.strip():
            issues.add(f"paths.{key}", "must not be empty")
    for key in ("tmp_root", "sandbox_master", "sandbox_instance", "require_dev_package_dir"):
        _as_str(section.get(key), f"paths.{key}", issues)


def _validate_sandbox(value: object, issues: _IssueCollector) -> None:
    section = _section(value, "sandbox", issues)
    if section is None:
        return
    _as_bool(section.get("force_recreate_master"), "sandbox.force_recreate_master", issues)
    mode = _as_int(section.get("writable_mode"), "sandbox.writable_mode", issues)
    if mode is not None and not 0 <= mode <= 0o7777:
        issues.add("sandbox.writable_mode", "must be a permission mode between 0 and 0o7777")
    if mode is not None and not mode & 0o200:
        issues.add("sandbox.writable_mode", "must grant owner write permission")
    for key in ("deletion_strategy", "copy_strategy"):
        _as_enum(section.get(key), f"sandbox.{key}", FILESYSTEM_STRATEGIES, issues)


def _validate_install(value: object, issues: _IssueCollector) -> None:
    section = _section(value, "install", issues)
    if section is None:
        return
    for key in ("executable", "core_package"):
        text = _as_str(section.get(key), f"install.{key}", issues)
        if text is not None and not text.strip():
            issues.add(f"install.{key}", "must not be empty")
    _as_str(section.get("pinned_core_version"), "install.pinned_core_version", issues)

    args = section.get("install_args")
    if not isinstance(args, list) or not all(isinstance(item, str) for item in args):
        issues.add("install.install_args", "must be a list of strings")
    elif not args:
        issues.add("install.install_args", "must not be empty")

    timeout = _as_float(section.get("timeout_seconds"), "install.timeout_seconds", issues)
    if timeout is not None and timeout <= 0:
        issues.add("install.timeout_seconds", "must be > 0")


def _validate_manifest(value: object, issues: _IssueCollector) -> None:
    section = _section(value, "manifest", issues)
    if section is None:
        return
    for key in (
        "tool_repository",
        "tool_package",
        "require_dev_repository",
        "require_dev_package",
        "version_constraint",
    ):
        text = _as_str(section.get(key), f"manifest.{key}", issues)
        if text is not None and not text.strip():
            issues.add(f"manifest.{key}", "must not be empty")
    _as_bool(section.get("symlink"), "manifest.symlink", issues)

    tool_repo = section.get("tool_repository")
    dev_repo = section.get("require_dev_repository")
    if isinstance(tool_repo, str) and tool_repo == dev_repo:
        issues.add("manifest.require_dev_repository", "must differ from manifest.tool_repository")


def _validate_observability(value: object, issues: _IssueCollector) -> None:
    section = _section(value, "observability", issues)
    if section is None:
        return
    _as_enum(section.get("log_level"), "observability.log_level", LOG_LEVELS, issues)
    _as_str(section.get("log_dir"), "observability.log_dir", issues)
    _as_bool(section.get("log_to_file"), "observability.log_to_file", issues)
    _as_bool(section.get("verbose_output"), "observability.verbose_output", issues)


def _section(value: object, path: str, issues: _IssueCollector) -> Mapping[str, object] | None:
    if value is None:
        issues.add(path, "section is required")
        return None
    if not isinstance(value, Mapping):
        issues.add(path, "must be an object")
        return None
    return value


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, "must be a string")
        return None
    return value


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if not isinstance(value, bool):
        issues.add(path, "must be a boolean")
        return None
    return value


def _as_int(value: object, path: str, issues: _IssueCollector) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, "must be an integer")
        return None
    return value


def _as_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, "must be a number")
        return None
    result = float(value)
    if not math.isfinite(result):
        issues.add(path, "must be finite")
        return None
    return result


def _as_enum(
    value: object,
    path: str,
    allowed: tuple[str, ...],
    issues: _IssueCollector,
) -> str | None:
    if not isinstance(value, str) or value not in allowed:
        issues.add(path, f"must be one of: {', '.join(allowed)}")
        return None
    return value


def _reject_unknown_keys(
    payload: Mapping[str, object],
    reference: Mapping[str, object],
    prefix: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        path = f"{prefix}.{key}" if prefix else key
        if key not in reference:
            issues.add(path, "unknown key")
            continue
        value = payload[key]
        expected = reference[key]
        if isinstance(value, Mapping) and isinstance(expected, Mapping):
            _reject_unknown_keys(value, expected, path, issues)


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "FILESYSTEM_STRATEGIES",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "SOURCE_PATH_FIELDS",
    "SandboxManagerConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
