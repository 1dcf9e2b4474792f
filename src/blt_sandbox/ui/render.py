"""Console rendering for sandbox lifecycle messages.

Status lines may carry light inline markup (``[comment]...[/comment]``,
``[info]...[/info]``, ``[error]...[/error]``). Streamed package-manager output
is written raw so brackets in it are never interpreted as markup.
"""

from __future__ import annotations

import os
import sys
from typing import IO

from rich.console import Console
from rich.theme import Theme

SANDBOX_THEME = Theme(
    {
        "comment": "yellow",
        "info": "green",
        "error": "bold red",
    }
)


def _color_allowed(no_color_flag: bool) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class ConsoleRenderer:
    """Thin console writer used by the orchestrator and the CLI."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        file: IO[str] | None = None,
    ) -> None:
        self._console = Console(
            file=file if file is not None else sys.stdout,
            theme=SANDBOX_THEME,
            no_color=not _color_allowed(no_color),
            highlight=False,
            soft_wrap=True,
        )

    def writeln(self, message: str) -> None:
        """Print one line, interpreting inline markup."""

        self._console.print(message)

    def write(self, buffer: str) -> None:
        """Write raw text (subprocess output) without markup or a trailing newline."""

        self._console.out(buffer, end="", highlight=False)
        self._console.file.flush()

    def kv(self, key: str, value: object) -> None:
        self._console.print(f"{key}: [info]{value}[/info]")

    def warning(self, text: str) -> None:
        self._console.print(f"[comment]Warning:[/comment] {text}")


def create_renderer(*, no_color: bool = False, file: IO[str] | None = None) -> ConsoleRenderer:
    """Create a console renderer with the given settings."""

    return ConsoleRenderer(no_color=no_color, file=file)


__all__ = ["SANDBOX_THEME", "ConsoleRenderer", "create_renderer"]
