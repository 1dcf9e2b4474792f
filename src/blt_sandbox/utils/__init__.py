"""Utility exports for filesystem helpers."""

from blt_sandbox.utils.fs import atomic_write, relative_tree

__all__ = ["atomic_write", "relative_tree"]
