"""Typed settings consumed by :class:`~blt_sandbox.sandbox.manager.SandboxManager`."""

from __future__ import annotations

import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from blt_sandbox.constants import (
    DEFAULT_CORE_PACKAGE,
    DEFAULT_INSTALL_ARGS,
    DEFAULT_INSTALL_TIMEOUT_SECONDS,
    DEFAULT_PACKAGE_MANAGER,
    DEFAULT_WRITABLE_MODE,
    DEV_VERSION_CONSTRAINT,
    FIXTURE_DIR,
    MANIFEST_TEMPLATE,
    REQUIRE_DEV_PACKAGE_DIRNAME,
    REQUIRE_DEV_PACKAGE_NAME,
    REQUIRE_DEV_REPOSITORY_NAME,
    REQUIRE_DEV_SOURCE,
    SANDBOX_INSTANCE_DIRNAME,
    SANDBOX_MASTER_DIRNAME,
    TOOL_PACKAGE_NAME,
    TOOL_REPOSITORY_NAME,
)
from blt_sandbox.sandbox.filesystem import FilesystemStrategy, coerce_strategy
from blt_sandbox.sandbox.installer import normalize_core_version


@dataclass(frozen=True, slots=True)
class SandboxPaths:
    """The three directories owned by the orchestrator."""

    master: Path
    instance: Path
    require_dev_package_dir: Path

    @classmethod
    def under(cls, tmp_root: Path | str | None = None) -> SandboxPaths:
        """Default layout below ``tmp_root`` (the host temp dir when omitted)."""

        root = Path(tmp_root) if tmp_root else Path(tempfile.gettempdir())
        return cls(
            master=root / SANDBOX_MASTER_DIRNAME,
            instance=root / SANDBOX_INSTANCE_DIRNAME,
            require_dev_package_dir=root / REQUIRE_DEV_PACKAGE_DIRNAME,
        )

    def __post_init__(self) -> None:
        seen = {self.master, self.instance, self.require_dev_package_dir}
        if len(seen) != 3:
            raise ValueError("sandbox master, instance and staging paths must be distinct")


@dataclass(frozen=True, slots=True)
class InstallSettings:
    executable: str = DEFAULT_PACKAGE_MANAGER
    install_args: tuple[str, ...] = DEFAULT_INSTALL_ARGS
    timeout_seconds: float = DEFAULT_INSTALL_TIMEOUT_SECONDS
    core_package: str = DEFAULT_CORE_PACKAGE


@dataclass(frozen=True, slots=True)
class ManifestSettings:
    tool_repository: str = TOOL_REPOSITORY_NAME
    tool_package: str = TOOL_PACKAGE_NAME
    require_dev_repository: str = REQUIRE_DEV_REPOSITORY_NAME
    require_dev_package: str = REQUIRE_DEV_PACKAGE_NAME
    version_constraint: str = DEV_VERSION_CONSTRAINT
    symlink: bool = True


@dataclass(frozen=True, slots=True)
class SandboxSettings:
    """Everything the orchestrator needs; no field is read from the environment."""

    tool_root: Path
    paths: SandboxPaths
    fixture_dir: Path
    manifest_template: Path
    require_dev_source: Path
    force_recreate_master: bool = False
    verbose_output: bool = False
    pinned_core_version: str | None = None
    writable_mode: int = DEFAULT_WRITABLE_MODE
    deletion_strategy: FilesystemStrategy = FilesystemStrategy.SUBPROCESS
    copy_strategy: FilesystemStrategy = FilesystemStrategy.NATIVE
    install: InstallSettings = field(default_factory=InstallSettings)
    manifest: ManifestSettings = field(default_factory=ManifestSettings)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "pinned_core_version", normalize_core_version(self.pinned_core_version)
        )
        object.__setattr__(self, "deletion_strategy", coerce_strategy(self.deletion_strategy))
        object.__setattr__(self, "copy_strategy", coerce_strategy(self.copy_strategy))

    @classmethod
    def for_tool_root(
        cls,
        tool_root: Path | str,
        *,
        tmp_root: Path | str | None = None,
        **overrides: Any,
    ) -> SandboxSettings:
        """Build settings with the default source layout below ``tool_root``."""

        root = Path(tool_root)
        values: dict[str, Any] = {
            "tool_root": root,
            "paths": SandboxPaths.under(tmp_root),
            "fixture_dir": root / FIXTURE_DIR,
            "manifest_template": root / MANIFEST_TEMPLATE,
            "require_dev_source": root / REQUIRE_DEV_SOURCE,
        }
        values.update(overrides)
        return cls(**values)


def settings_from_config(config: Mapping[str, Any]) -> SandboxSettings:
    """Convert a validated, path-normalized config mapping into :class:`SandboxSettings`."""

    paths_cfg = config["paths"]
    sandbox_cfg = config["sandbox"]
    install_cfg = config["install"]
    manifest_cfg = config["manifest"]
    observability_cfg = config["observability"]

    defaults = SandboxPaths.under(paths_cfg["tmp_root"] or None)
    paths = SandboxPaths(
        master=_path_or(paths_cfg["sandbox_master"], defaults.master),
        instance=_path_or(paths_cfg["sandbox_instance"], defaults.instance),
        require_dev_package_dir=_path_or(
            paths_cfg["require_dev_package_dir"], defaults.require_dev_package_dir
        ),
    )

    return SandboxSettings(
        tool_root=Path(paths_cfg["tool_root"]),
        paths=paths,
        fixture_dir=Path(paths_cfg["fixture_dir"]),
        manifest_template=Path(paths_cfg["manifest_template"]),
        require_dev_source=Path(paths_cfg["require_dev_source"]),
        force_recreate_master=bool(sandbox_cfg["force_recreate_master"]),
        verbose_output=bool(observability_cfg["verbose_output"]),
        pinned_core_version=install_cfg["pinned_core_version"] or None,
        writable_mode=int(sandbox_cfg["writable_mode"]),
        deletion_strategy=sandbox_cfg["deletion_strategy"],
        copy_strategy=sandbox_cfg["copy_strategy"],
        install=InstallSettings(
            executable=install_cfg["executable"],
            install_args=tuple(install_cfg["install_args"]),
            timeout_seconds=float(install_cfg["timeout_seconds"]),
            core_package=install_cfg["core_package"],
        ),
        manifest=ManifestSettings(
            tool_repository=manifest_cfg["tool_repository"],
            tool_package=manifest_cfg["tool_package"],
            require_dev_repository=manifest_cfg["require_dev_repository"],
            require_dev_package=manifest_cfg["require_dev_package"],
            version_constraint=manifest_cfg["version_constraint"],
            symlink=bool(manifest_cfg["symlink"]),
        ),
    )


def _path_or(raw: str, fallback: Path) -> Path:
    return Path(raw) if raw else fallback


__all__ = [
    "InstallSettings",
    "ManifestSettings",
    "SandboxPaths",
    "SandboxSettings",
    "settings_from_config",
]
