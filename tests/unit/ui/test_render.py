"""Unit tests for console rendering."""

from __future__ import annotations

import io

import pytest

from blt_sandbox.ui.render import ConsoleRenderer, create_renderer


def _renderer() -> tuple[ConsoleRenderer, io.StringIO]:
    buffer = io.StringIO()
    return create_renderer(no_color=True, file=buffer), buffer


def test_writeln_strips_known_markup() -> None:
    renderer, buffer = _renderer()

    renderer.writeln("Creating master sandbox in [comment]/tmp/blt-sandbox-master[/comment]...")

    assert buffer.getvalue() == "Creating master sandbox in /tmp/blt-sandbox-master...\n"


def test_write_passes_raw_output_through() -> None:
    renderer, buffer = _renderer()

    renderer.write("Package [acquia/blt] is ")
    renderer.write("symlinked\n")

    assert buffer.getvalue() == "Package [acquia/blt] is symlinked\n"


def test_kv_and_warning_lines() -> None:
    renderer, buffer = _renderer()

    renderer.kv("Sandbox master", "/tmp/m")
    renderer.warning("refresh failed")

    assert buffer.getvalue().splitlines() == [
        "Sandbox master: /tmp/m",
        "Warning: refresh failed",
    ]


def test_no_color_environment_disables_styling(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")
    buffer = io.StringIO()

    renderer = ConsoleRenderer(file=buffer)
    renderer.writeln("[error]boom[/error]")

    assert "\x1b[" not in buffer.getvalue()
    assert buffer.getvalue() == "boom\n"
