"""Filesystem capability used by the sandbox orchestrator.

Two backends implement :class:`FilesystemOps`:

- :class:`NativeFilesystemOps` uses ``shutil``/``os`` calls.
- :class:`SubprocessFilesystemOps` shells out to ``rm -r`` and ``cp -RP`` for
  deletion and copying. Package managers leave read-only trees and symlinks
  behind that library deletion can trip over; the subprocess backend keeps
  the behaviour of the command-line tools for those cases.

:class:`SandboxFilesystem` picks a backend per operation from the configured
deletion and copy strategies.
"""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from blt_sandbox.sandbox.errors import FilesystemCommandError
from blt_sandbox.utils.fs import relative_tree

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


class FilesystemStrategy(str, Enum):
    """Backend names accepted for deletion and copy operations."""

    NATIVE = "native"
    SUBPROCESS = "subprocess"


class FilesystemOps(Protocol):
    def remove_tree(self, path: Path) -> None:
        ...

    def copy_tree(self, source: Path, destination: Path) -> None:
        ...

    def mirror_tree(self, source: Path, destination: Path, *, delete: bool = False) -> None:
        ...

    def copy_file(self, source: Path, destination: Path) -> None:
        ...

    def chmod_tree(self, path: Path, mode: int) -> None:
        ...


class NativeFilesystemOps:
    """Library-level implementation of :class:`FilesystemOps`."""

    def remove_tree(self, path: Path) -> None:
        """Remove ``path`` recursively; absent paths are a no-op."""

        if not os.path.lexists(path):
            return
        if path.is_symlink() or not path.is_dir():
            path.unlink()
            return
        _rmtree(path)

    def copy_tree(self, source: Path, destination: Path) -> None:
        """
        Copy ``source`` into ``destination``, creating it when missing.

        Existing destination entries are kept unless a same-named source entry
        overwrites them. Symlinks are recreated, never followed.
        """

        if not source.is_dir():
            raise NotADirectoryError(f"{source!s} is not a directory")
        destination.mkdir(parents=True, exist_ok=True)

        for dirpath, dirnames, filenames in os.walk(source, followlinks=False):
            current = Path(dirpath)
            target_dir = destination / current.relative_to(source)
            for name in sorted(dirnames):
                src_entry = current / name
                dst_entry = target_dir / name
                if src_entry.is_symlink():
                    _replace_with_symlink(src_entry, dst_entry)
                    continue
                if os.path.lexists(dst_entry) and (
                    dst_entry.is_symlink() or not dst_entry.is_dir()
                ):
                    dst_entry.unlink()
                dst_entry.mkdir(exist_ok=True)
            for name in sorted(filenames):
                src_entry = current / name
                dst_entry = target_dir / name
                if src_entry.is_symlink():
                    _replace_with_symlink(src_entry, dst_entry)
                    continue
                if dst_entry.is_symlink():
                    dst_entry.unlink()
                elif dst_entry.is_dir():
                    shutil.rmtree(dst_entry)
                shutil.copy2(src_entry, dst_entry)

        for dirpath, _dirnames, _filenames in os.walk(source, followlinks=False):
            current = Path(dirpath)
            shutil.copystat(current, destination / current.relative_to(source))

    def mirror_tree(self, source: Path, destination: Path, *, delete: bool = False) -> None:
        """Copy ``source`` into ``destination``; with ``delete`` drop extra entries."""

        if delete and destination.is_dir():
            expected = set(relative_tree(source))
            for entry in reversed(relative_tree(destination)):
                if entry in expected:
                    continue
                candidate = destination / entry
                if os.path.lexists(candidate):
                    self.remove_tree(candidate)
        self.copy_tree(source, destination)

    def copy_file(self, source: Path, destination: Path) -> None:
        """Copy one file, always overwriting ``destination``."""

        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.is_symlink():
            destination.unlink()
        shutil.copyfile(source, destination)

    def chmod_tree(self, path: Path, mode: int) -> None:
        """Apply ``mode`` to ``path`` and every directory/file below it."""

        if path.is_symlink():
            return
        os.chmod(path, mode)
        if not path.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(path, followlinks=False):
            current = Path(dirpath)
            for name in (*dirnames, *filenames):
                entry = current / name
                if entry.is_symlink():
                    continue
                os.chmod(entry, mode)


class SubprocessFilesystemOps:
    """Delete and copy through ``rm``/``cp``; other operations stay native."""

    def __init__(self, *, native: NativeFilesystemOps | None = None) -> None:
        self._native = native or NativeFilesystemOps()

    def remove_tree(self, path: Path) -> None:
        if not os.path.lexists(path):
            return
        _run_command(["rm", "-r", str(path)])

    def copy_tree(self, source: Path, destination: Path) -> None:
        if not source.is_dir():
            raise NotADirectoryError(f"{source!s} is not a directory")
        destination.mkdir(parents=True, exist_ok=True)
        _run_command(["cp", "-RP", f"{source}/.", str(destination)])

    def mirror_tree(self, source: Path, destination: Path, *, delete: bool = False) -> None:
        self._native.mirror_tree(source, destination, delete=delete)

    def copy_file(self, source: Path, destination: Path) -> None:
        self._native.copy_file(source, destination)

    def chmod_tree(self, path: Path, mode: int) -> None:
        self._native.chmod_tree(path, mode)


class SandboxFilesystem:
    """Route deletion and copy through the configured strategy."""

    def __init__(
        self,
        *,
        deletion_strategy: FilesystemStrategy | str = FilesystemStrategy.SUBPROCESS,
        copy_strategy: FilesystemStrategy | str = FilesystemStrategy.NATIVE,
    ) -> None:
        self._native = NativeFilesystemOps()
        self._subprocess = SubprocessFilesystemOps(native=self._native)
        self.deletion_strategy = coerce_strategy(deletion_strategy)
        self.copy_strategy = coerce_strategy(copy_strategy)

    def remove_tree(self, path: Path) -> None:
        self._backend(self.deletion_strategy).remove_tree(path)

    def copy_tree(self, source: Path, destination: Path) -> None:
        self._backend(self.copy_strategy).copy_tree(source, destination)

    def mirror_tree(self, source: Path, destination: Path, *, delete: bool = False) -> None:
        self._native.mirror_tree(source, destination, delete=delete)

    def copy_file(self, source: Path, destination: Path) -> None:
        self._native.copy_file(source, destination)

    def chmod_tree(self, path: Path, mode: int) -> None:
        self._native.chmod_tree(path, mode)

    def _backend(self, strategy: FilesystemStrategy) -> FilesystemOps:
        if strategy is FilesystemStrategy.SUBPROCESS:
            return self._subprocess
        return self._native


def coerce_strategy(value: FilesystemStrategy | str) -> FilesystemStrategy:
    if isinstance(value, FilesystemStrategy):
        return value
    if not isinstance(value, str):
        raise ValueError("strategy must be a string or FilesystemStrategy")
    normalized = value.strip().lower()
    try:
        return FilesystemStrategy(normalized)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in FilesystemStrategy)
        raise ValueError(f"unsupported strategy {value!r}; expected one of: {allowed}") from exc


def _run_command(command: Sequence[str]) -> None:
    completed = subprocess.run(
        list(command),
        check=False,
        capture_output=True,
        text=True,
        stdin=subprocess.DEVNULL,
    )
    if completed.returncode != 0:
        raise FilesystemCommandError(
            command=command,
            returncode=completed.returncode,
            stderr=completed.stderr,
        )


def _replace_with_symlink(source: Path, destination: Path) -> None:
    if destination.is_symlink() or destination.is_file():
        destination.unlink()
    elif destination.is_dir():
        shutil.rmtree(destination)
    os.symlink(os.readlink(source), destination)


def _rmtree(path: Path) -> None:
    def _retry_writable(func: Callable[..., Any], failed_path: str, _exc: object) -> None:
        parent = os.path.dirname(failed_path)
        if parent:
            os.chmod(parent, os.stat(parent).st_mode | stat.S_IRWXU)
        if not os.path.islink(failed_path) and os.path.exists(failed_path):
            os.chmod(failed_path, os.stat(failed_path).st_mode | stat.S_IRWXU)
        func(failed_path)

    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_retry_writable)
    else:
        shutil.rmtree(path, onerror=_retry_writable)


__all__ = [
    "FilesystemOps",
    "FilesystemStrategy",
    "NativeFilesystemOps",
    "SandboxFilesystem",
    "SubprocessFilesystemOps",
    "coerce_strategy",
]
