"""Lifecycle orchestration for the master and instance test sandboxes."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from rich.markup import escape

from blt_sandbox.constants import (
    ENV_RECREATE_SANDBOX_MASTER,
    MANIFEST_FILENAME,
    WRITABLE_SUBDIR,
)
from blt_sandbox.observability.logging import operation_scope
from blt_sandbox.sandbox.errors import SandboxError
from blt_sandbox.sandbox.filesystem import FilesystemOps, SandboxFilesystem
from blt_sandbox.sandbox.installer import DependencyInstaller, InstallReport
from blt_sandbox.sandbox.manifest import (
    REQUIRE_DEV_SECTION,
    REQUIRE_SECTION,
    PathRepository,
    patch_manifest_file,
)
from blt_sandbox.ui.render import ConsoleRenderer

if TYPE_CHECKING:
    from typing import Any

    from blt_sandbox.config.settings import SandboxSettings

_LOGGER = logging.getLogger(__name__)


class ConsoleOutput(Protocol):
    def writeln(self, message: str) -> None:
        ...

    def write(self, buffer: str) -> None:
        ...


@dataclass(frozen=True, slots=True)
class RefreshOutcome:
    """Result of :meth:`SandboxManager.refresh_sandbox_instance`.

    ``refreshed`` is true when the in-place copy worked. When it failed the
    instance was rebuilt from scratch, ``replaced`` is true and ``error`` holds
    the failure that triggered the fallback.
    """

    instance: Path
    refreshed: bool
    replaced: bool = False
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.refreshed or self.replaced


class SandboxManager:
    """Build the master sandbox once and hand out disposable instances of it.

    All paths and toggles come from :class:`SandboxSettings`; nothing here reads
    the environment. Operations run strictly sequentially and are not safe to
    call concurrently against the same paths.
    """

    def __init__(
        self,
        settings: SandboxSettings,
        *,
        output: ConsoleOutput | None = None,
        filesystem: FilesystemOps | None = None,
        installer: DependencyInstaller | None = None,
    ) -> None:
        self._settings = settings
        self._output: ConsoleOutput = output if output is not None else ConsoleRenderer()
        self._fs: FilesystemOps = (
            filesystem
            if filesystem is not None
            else SandboxFilesystem(
                deletion_strategy=settings.deletion_strategy,
                copy_strategy=settings.copy_strategy,
            )
        )
        self._installer = (
            installer
            if installer is not None
            else DependencyInstaller(
                executable=settings.install.executable,
                install_args=settings.install.install_args,
                core_package=settings.install.core_package,
                timeout_seconds=settings.install.timeout_seconds,
            )
        )
        self._last_install: InstallReport | None = None

    @property
    def settings(self) -> SandboxSettings:
        return self._settings

    @property
    def sandbox_master(self) -> Path:
        return self._settings.paths.master

    @property
    def sandbox_instance(self) -> Path:
        return self._settings.paths.instance

    @property
    def require_dev_package_dir(self) -> Path:
        return self._settings.paths.require_dev_package_dir

    @property
    def last_install(self) -> InstallReport | None:
        return self._last_install

    def get_sandbox_instance(self) -> Path:
        return self.sandbox_instance

    def bootstrap(self) -> bool:
        """Ensure the master exists; return ``True`` when it was (re)created."""

        with operation_scope("bootstrap"):
            self._output.writeln("Bootstrapping BLT testing framework...")
            if not self.sandbox_master.exists() or self._settings.force_recreate_master:
                self._output.writeln(
                    "[comment]To prevent recreation of sandbox master on each bootstrap, "
                    f"set {ENV_RECREATE_SANDBOX_MASTER}=0[/comment]"
                )
                self.create_sandbox_master()
                return True

            _LOGGER.info("reusing sandbox master", extra={"path": self.sandbox_master})
            self._output.writeln(
                "[comment]Skipping master sandbox creation, "
                f"{ENV_RECREATE_SANDBOX_MASTER} is disabled.[/comment]"
            )
            return False

    def create_sandbox_master(self) -> None:
        """Rebuild the master from the fixture, wire it to the tool and install it."""

        with operation_scope("create_master"):
            master = self.sandbox_master
            self._output.writeln(
                f"Creating master sandbox in [comment]{escape(str(master))}[/comment]..."
            )
            _LOGGER.info("creating sandbox master", extra={"path": master})

            self._fs.remove_tree(master)
            self._fs.mirror_tree(self._settings.fixture_dir, master)
            self._fs.copy_file(self._settings.manifest_template, master / MANIFEST_FILENAME)

            self.create_require_dev_package()
            self.update_sandbox_master_manifest()
            self.install_sandbox_master_dependencies()
            self.remove_sandbox_instance()
            _LOGGER.info("sandbox master ready", extra={"path": master})

    def create_require_dev_package(self) -> None:
        """Stage the require-dev package outside the tool tree.

        The package manager cannot reference a package nested inside another
        package it installs, so the copy lives next to the sandboxes.
        """

        self.debug("Staging require-dev package...")
        self._fs.mirror_tree(
            self._settings.require_dev_source,
            self.require_dev_package_dir,
            delete=True,
        )

    def update_sandbox_master_manifest(self) -> dict[str, Any]:
        """Point the master's manifest at the tool and the staged package via path repositories."""

        manifest_path = self.sandbox_master / MANIFEST_FILENAME
        patched = patch_manifest_file(manifest_path, self.manifest_repositories())
        _LOGGER.info("patched sandbox manifest", extra={"path": manifest_path})
        return patched

    def manifest_repositories(self) -> tuple[PathRepository, ...]:
        manifest = self._settings.manifest
        return (
            PathRepository(
                name=manifest.tool_repository,
                url=str(self._settings.tool_root.resolve()),
                package=manifest.tool_package,
                constraint=manifest.version_constraint,
                section=REQUIRE_SECTION,
                symlink=manifest.symlink,
            ),
            PathRepository(
                name=manifest.require_dev_repository,
                url=str(self.require_dev_package_dir.resolve()),
                package=manifest.require_dev_package,
                constraint=manifest.version_constraint,
                section=REQUIRE_DEV_SECTION,
                symlink=manifest.symlink,
            ),
        )

    def install_sandbox_master_dependencies(self) -> InstallReport:
        """Run the package manager in the master, streaming its output to the console."""

        report = self._installer.install(
            self.sandbox_master,
            pinned_core_version=self._settings.pinned_core_version,
            on_output=self._output.write,
        )
        self._last_install = report
        return report

    def remove_sandbox_instance(self) -> None:
        """Delete the instance if present; calling it again is a no-op."""

        instance = self.sandbox_instance
        if not os.path.lexists(instance):
            return
        with operation_scope("remove_instance"):
            self.debug("Removing sandbox instance...")
            self.make_sandbox_instance_writable()
            self._fs.remove_tree(instance)

    def make_sandbox_instance_writable(self) -> None:
        """Open up ``docroot/sites`` so deletion cannot trip over read-only files."""

        sites_dir = self.sandbox_instance / WRITABLE_SUBDIR
        if sites_dir.exists():
            self._fs.chmod_tree(sites_dir, self._settings.writable_mode)

    def copy_sandbox_master_to_instance(self) -> None:
        """Copy the master into the instance.

        This is a plain copy, not a sync: files that only exist in the instance
        are left in place.
        """

        self.debug("Copying sandbox master to sandbox instance...")
        self._fs.copy_tree(self.sandbox_master, self.sandbox_instance)

    def replace_sandbox_instance(self) -> Path:
        """Tear down the instance and copy a fresh one from the master."""

        with operation_scope("replace_instance"):
            self.remove_sandbox_instance()
            self.copy_sandbox_master_to_instance()
            return self.sandbox_instance

    def refresh_sandbox_instance(self, *, change_directory: bool = True) -> RefreshOutcome:
        """Copy the master over the existing instance, replacing it if that fails.

        Files present only in the instance survive a refresh. Callers needing an
        exact copy of the master must use :meth:`replace_sandbox_instance`.
        """

        with operation_scope("refresh_instance"):
            outcome = self._attempt_refresh(change_directory=change_directory)
            if outcome.refreshed:
                return outcome

            _LOGGER.warning(
                "sandbox refresh failed; replacing instance",
                extra={"error": repr(outcome.error)},
            )
            self.debug("Refresh failed, replacing sandbox instance...")
            self.replace_sandbox_instance()
            return RefreshOutcome(
                instance=self.sandbox_instance,
                refreshed=False,
                replaced=True,
                error=outcome.error,
            )

    def debug(self, message: str) -> None:
        """Print ``message`` only when verbose output is enabled."""

        _LOGGER.debug(message)
        if self._settings.verbose_output:
            self._output.writeln(message)

    def _attempt_refresh(self, *, change_directory: bool) -> RefreshOutcome:
        instance = self.sandbox_instance
        try:
            self.make_sandbox_instance_writable()
            self.copy_sandbox_master_to_instance()
            if change_directory:
                os.chdir(instance)
        except (OSError, SandboxError) as exc:
            return RefreshOutcome(instance=instance, refreshed=False, error=exc)
        return RefreshOutcome(instance=instance, refreshed=True)


__all__ = ["ConsoleOutput", "RefreshOutcome", "SandboxManager"]
