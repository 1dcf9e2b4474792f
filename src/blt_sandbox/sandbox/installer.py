"""Package-manager invocation for the sandbox master."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from blt_sandbox.constants import (
    DEFAULT_CORE_PACKAGE,
    DEFAULT_INSTALL_ARGS,
    DEFAULT_INSTALL_TIMEOUT_SECONDS,
    DEFAULT_PACKAGE_MANAGER,
    UNPINNED_CORE_VERSION,
)
from blt_sandbox.sandbox.errors import DependencyInstallError, DependencyInstallTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

_LOGGER = logging.getLogger(__name__)
_PUMP_JOIN_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one streamed package-manager command."""

    command: tuple[str, ...]
    returncode: int | None
    output: str
    timed_out: bool
    duration_ms: float

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.returncode == 0


@dataclass(frozen=True, slots=True)
class InstallReport:
    """All commands issued for one installation and their results."""

    commands: tuple[tuple[str, ...], ...]
    results: tuple[CommandResult, ...]

    @property
    def duration_ms(self) -> float:
        return sum(result.duration_ms for result in self.results)


class CommandRunner(Protocol):
    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
        on_output: Callable[[str], None],
    ) -> CommandResult:
        ...


class StreamingCommandRunner:
    """Run a command with stderr merged into stdout, forwarding lines as they arrive."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(env) if env is not None else None

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
        on_output: Callable[[str], None],
    ) -> CommandResult:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        started = time.perf_counter()
        process = subprocess.Popen(
            list(command),
            cwd=cwd,
            env=self._build_environment(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        chunks: list[str] = []
        sink_errors: list[Exception] = []

        def _pump() -> None:
            stream = process.stdout
            if stream is None:
                return
            # The pump owns the pipe: it closes it once every writer, grandchildren
            # included, has let go of it.
            with stream:
                for line in stream:
                    chunks.append(line)
                    if sink_errors:
                        continue
                    try:
                        on_output(line)
                    except Exception as exc:
                        sink_errors.append(exc)
                        process.kill()

        pump = threading.Thread(target=_pump, name="blt-sandbox-output", daemon=True)
        pump.start()

        timed_out = False
        try:
            returncode: int | None = process.wait(timeout=timeout_seconds)
        except subprocess.TimeoutExpired:
            timed_out = True
            process.kill()
            process.wait()
            returncode = None
        except BaseException:
            process.kill()
            process.wait()
            raise
        finally:
            pump.join(timeout=_PUMP_JOIN_SECONDS)
            if pump.is_alive():
                _LOGGER.warning(
                    "package manager output still open after exit",
                    extra={"command": list(command)},
                )

        if sink_errors:
            raise sink_errors[0]

        return CommandResult(
            command=tuple(command),
            returncode=returncode,
            output="".join(chunks),
            timed_out=timed_out,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    def _build_environment(self) -> dict[str, str]:
        merged = dict(os.environ)
        if self._env:
            merged.update(self._env)
        return merged


class DependencyInstaller:
    """Install sandbox dependencies, optionally pinning the core package first."""

    def __init__(
        self,
        *,
        executable: str = DEFAULT_PACKAGE_MANAGER,
        install_args: Sequence[str] = DEFAULT_INSTALL_ARGS,
        core_package: str = DEFAULT_CORE_PACKAGE,
        timeout_seconds: float = DEFAULT_INSTALL_TIMEOUT_SECONDS,
        runner: CommandRunner | None = None,
    ) -> None:
        if not executable.strip():
            raise ValueError("executable must not be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._executable = executable
        self._install_args = tuple(install_args)
        self._core_package = core_package
        self._timeout_seconds = float(timeout_seconds)
        self._runner: CommandRunner = runner or StreamingCommandRunner()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def build_commands(self, pinned_core_version: str | None = None) -> tuple[tuple[str, ...], ...]:
        commands: list[tuple[str, ...]] = []
        version = normalize_core_version(pinned_core_version)
        if version is not None:
            commands.append(
                (
                    self._executable,
                    "require",
                    f"{self._core_package}:{version}",
                    "--no-update",
                    "--no-interaction",
                )
            )
        commands.append((self._executable, *self._install_args))
        return tuple(commands)

    def install(
        self,
        cwd: Path,
        *,
        pinned_core_version: str | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> InstallReport:
        """Run every command in order; the first failure raises."""

        commands = self.build_commands(pinned_core_version)
        sink = on_output or _discard
        deadline = time.monotonic() + self._timeout_seconds
        results: list[CommandResult] = []

        for command in commands:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DependencyInstallTimeoutError(
                    "Composer installation timed out.",
                    command=command,
                )
            _LOGGER.info("running package manager", extra={"command": list(command)})
            try:
                result = self._runner.run(
                    command,
                    cwd=cwd,
                    timeout_seconds=remaining,
                    on_output=sink,
                )
            except FileNotFoundError as exc:
                raise DependencyInstallError(
                    f"Composer installation failed: {command[0]!r} not found.",
                    command=command,
                ) from exc
            results.append(result)

            if result.timed_out:
                raise DependencyInstallTimeoutError(
                    f"Composer installation timed out after {self._timeout_seconds:g}s.",
                    command=command,
                    output=result.output,
                )
            if result.returncode != 0:
                _LOGGER.error(
                    "package manager failed",
                    extra={"command": list(command), "returncode": result.returncode},
                )
                raise DependencyInstallError(
                    command=command,
                    returncode=result.returncode,
                    output=result.output,
                )

        return InstallReport(commands=commands, results=tuple(results))


def normalize_core_version(value: str | None) -> str | None:
    """Map unset, empty and ``default`` to ``None``; otherwise return the stripped version."""

    if value is None:
        return None
    stripped = value.strip()
    if not stripped or stripped == UNPINNED_CORE_VERSION:
        return None
    return stripped


def _discard(_line: str) -> None:
    return None


__all__ = [
    "CommandResult",
    "CommandRunner",
    "DependencyInstaller",
    "InstallReport",
    "StreamingCommandRunner",
    "normalize_core_version",
]
