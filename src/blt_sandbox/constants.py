"""Stable constants shared across the sandbox orchestrator."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Directory names created under the host temp root.
SANDBOX_MASTER_DIRNAME: Final[str] = "blt-sandbox-master"
SANDBOX_INSTANCE_DIRNAME: Final[str] = "blt-sandbox-instance"
REQUIRE_DEV_PACKAGE_DIRNAME: Final[str] = "blt-require-dev"

# Source locations, relative to the tool root.
FIXTURE_DIR: Final[PurePosixPath] = PurePosixPath("tests/phpunit/fixtures/sandbox")
MANIFEST_TEMPLATE: Final[PurePosixPath] = PurePosixPath(
    "subtree-splits/blt-project/composer.json"
)
REQUIRE_DEV_SOURCE: Final[PurePosixPath] = PurePosixPath("subtree-splits/blt-require-dev")

MANIFEST_FILENAME: Final[str] = "composer.json"
WRITABLE_SUBDIR: Final[PurePosixPath] = PurePosixPath("docroot/sites")
DEFAULT_WRITABLE_MODE: Final[int] = 0o755

# Package manager invocation.
DEFAULT_PACKAGE_MANAGER: Final[str] = "composer"
DEFAULT_INSTALL_ARGS: Final[tuple[str, ...]] = (
    "install",
    "--prefer-dist",
    "--no-progress",
    "--no-suggest",
)
DEFAULT_INSTALL_TIMEOUT_SECONDS: Final[float] = 60.0 * 60.0
DEFAULT_CORE_PACKAGE: Final[str] = "drupal/core"
UNPINNED_CORE_VERSION: Final[str] = "default"

# Manifest wiring.
TOOL_REPOSITORY_NAME: Final[str] = "blt"
TOOL_PACKAGE_NAME: Final[str] = "acquia/blt"
REQUIRE_DEV_REPOSITORY_NAME: Final[str] = "blt-require-dev"
REQUIRE_DEV_PACKAGE_NAME: Final[str] = "acquia/blt-require-dev"
DEV_VERSION_CONSTRAINT: Final[str] = "*@dev"

# Legacy environment toggles honoured by the config loader.
ENV_RECREATE_SANDBOX_MASTER: Final[str] = "BLT_RECREATE_SANDBOX_MASTER"
ENV_PRINT_COMMAND_OUTPUT: Final[str] = "BLT_PRINT_COMMAND_OUTPUT"
ENV_DRUPAL_CORE_VERSION: Final[str] = "DRUPAL_CORE_VERSION"

CONFIG_SCHEMA_VERSION: Final[int] = 1

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CORE_PACKAGE",
    "DEFAULT_INSTALL_ARGS",
    "DEFAULT_INSTALL_TIMEOUT_SECONDS",
    "DEFAULT_PACKAGE_MANAGER",
    "DEFAULT_WRITABLE_MODE",
    "DEV_VERSION_CONSTRAINT",
    "ENV_DRUPAL_CORE_VERSION",
    "ENV_PRINT_COMMAND_OUTPUT",
    "ENV_RECREATE_SANDBOX_MASTER",
    "FIXTURE_DIR",
    "MANIFEST_FILENAME",
    "MANIFEST_TEMPLATE",
    "REQUIRE_DEV_PACKAGE_DIRNAME",
    "REQUIRE_DEV_PACKAGE_NAME",
    "REQUIRE_DEV_REPOSITORY_NAME",
    "REQUIRE_DEV_SOURCE",
    "SANDBOX_INSTANCE_DIRNAME",
    "SANDBOX_MASTER_DIRNAME",
    "TOOL_PACKAGE_NAME",
    "TOOL_REPOSITORY_NAME",
    "UNPINNED_CORE_VERSION",
    "WRITABLE_SUBDIR",
]
