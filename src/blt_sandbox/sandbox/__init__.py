"""Sandbox lifecycle: master creation, instance recycling and their building blocks."""

from blt_sandbox.sandbox.errors import (
    DependencyInstallError,
    DependencyInstallTimeoutError,
    FilesystemCommandError,
    ManifestError,
    SandboxError,
)
from blt_sandbox.sandbox.filesystem import (
    FilesystemOps,
    FilesystemStrategy,
    NativeFilesystemOps,
    SandboxFilesystem,
    SubprocessFilesystemOps,
)
from blt_sandbox.sandbox.installer import (
    CommandResult,
    CommandRunner,
    DependencyInstaller,
    InstallReport,
    StreamingCommandRunner,
)
from blt_sandbox.sandbox.manager import RefreshOutcome, SandboxManager
from blt_sandbox.sandbox.manifest import PathRepository, apply_path_dependencies

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DependencyInstallError",
    "DependencyInstallTimeoutError",
    "DependencyInstaller",
    "FilesystemCommandError",
    "FilesystemOps",
    "FilesystemStrategy",
    "InstallReport",
    "ManifestError",
    "NativeFilesystemOps",
    "PathRepository",
    "RefreshOutcome",
    "SandboxError",
    "SandboxFilesystem",
    "SandboxManager",
    "StreamingCommandRunner",
    "SubprocessFilesystemOps",
    "apply_path_dependencies",
]
