"""
blt-sandbox config package public API.

Purpose
- Export config loading/validation entrypoints, typed settings and error types.

Functional requirements
- Support loading from ``blt-sandbox.toml`` + ``BLT_SANDBOX_`` env overrides and
  the legacy ``BLT_RECREATE_SANDBOX_MASTER``/``BLT_PRINT_COMMAND_OUTPUT``/
  ``DRUPAL_CORE_VERSION`` toggles.
- Fail fast with clear structured validation/load errors.
"""

from blt_sandbox.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_CONFIG_PATH,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    is_truthy_flag,
    legacy_env_overrides,
    load_config,
    normalize_paths,
)
from blt_sandbox.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    SandboxManagerConfig,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)
from blt_sandbox.config.settings import (
    InstallSettings,
    ManifestSettings,
    SandboxPaths,
    SandboxSettings,
    settings_from_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_CONFIG_PATH",
    "ENV_PREFIX",
    "InstallSettings",
    "ManifestSettings",
    "SandboxManagerConfig",
    "SandboxPaths",
    "SandboxSettings",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "is_truthy_flag",
    "legacy_env_overrides",
    "load_config",
    "merge_config",
    "normalize_paths",
    "settings_from_config",
    "validate_config",
]
