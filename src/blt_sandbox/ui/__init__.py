"""Console output and the command-line router."""

from blt_sandbox.ui.render import ConsoleRenderer, create_renderer

__all__ = ["ConsoleRenderer", "create_renderer"]
