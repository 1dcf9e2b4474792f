"""Error hierarchy raised by the sandbox orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

_OUTPUT_TAIL_LINES = 20


class SandboxError(RuntimeError):
    """Base error for sandbox orchestration failures."""


class ManifestError(SandboxError):
    """Raised when the sandbox manifest cannot be parsed or has the wrong shape."""


class FilesystemCommandError(SandboxError):
    """Raised when a delete/copy subprocess exits non-zero."""

    def __init__(self, *, command: Sequence[str], returncode: int, stderr: str) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        message = f"command failed ({returncode}): {' '.join(self.command)}"
        detail = stderr.strip()
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DependencyInstallError(SandboxError):
    """Raised when the package manager exits non-zero."""

    def __init__(
        self,
        message: str = "Composer installation failed.",
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.output = output
        super().__init__(message)

    @property
    def output_tail(self) -> str:
        lines = self.output.splitlines()
        return "\n".join(lines[-_OUTPUT_TAIL_LINES:])


class DependencyInstallTimeoutError(DependencyInstallError):
    """Raised when the package manager does not finish before the deadline."""


__all__ = [
    "DependencyInstallError",
    "DependencyInstallTimeoutError",
    "FilesystemCommandError",
    "ManifestError",
    "SandboxError",
]
