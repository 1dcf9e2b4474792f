"""Unit tests for package-manager command construction and streaming execution."""

from __future__ import annotations

import subprocess
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from blt_sandbox.sandbox.errors import DependencyInstallError, DependencyInstallTimeoutError
from blt_sandbox.sandbox.installer import (
    CommandResult,
    DependencyInstaller,
    StreamingCommandRunner,
    normalize_core_version,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


class _ScriptedRunner:
    def __init__(self, results: Sequence[CommandResult | BaseException]) -> None:
        self._results = list(results)
        self.timeouts: list[float] = []
        self.commands: list[tuple[str, ...]] = []

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout_seconds: float,
        on_output: Callable[[str], None],
    ) -> CommandResult:
        self.commands.append(tuple(command))
        self.timeouts.append(timeout_seconds)
        outcome = self._results.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        on_output(outcome.output)
        return outcome


def _result(
    command: Sequence[str] = ("composer",),
    *,
    returncode: int | None = 0,
    output: str = "",
    timed_out: bool = False,
) -> CommandResult:
    return CommandResult(
        command=tuple(command),
        returncode=returncode,
        output=output,
        timed_out=timed_out,
        duration_ms=2.5,
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, None),
        ("", None),
        ("   ", None),
        ("default", None),
        ("9.3.0", "9.3.0"),
        (" ^10 ", "^10"),
    ],
)
def test_normalize_core_version(raw: str | None, expected: str | None) -> None:
    assert normalize_core_version(raw) == expected


def test_build_commands_without_pin_is_install_only() -> None:
    installer = DependencyInstaller()

    assert installer.build_commands(None) == (
        ("composer", "install", "--prefer-dist", "--no-progress", "--no-suggest"),
    )


def test_build_commands_with_pin_requires_core_first() -> None:
    installer = DependencyInstaller(executable="/opt/bin/composer", install_args=("install",))

    assert installer.build_commands("9.3.0") == (
        ("/opt/bin/composer", "require", "drupal/core:9.3.0", "--no-update", "--no-interaction"),
        ("/opt/bin/composer", "install"),
    )


def test_install_streams_output_and_reports_results(tmp_path: Path) -> None:
    runner = _ScriptedRunner(
        [
            _result(output="Updating composer.json\n"),
            _result(output="Installing dependencies\n"),
        ]
    )
    installer = DependencyInstaller(runner=runner, timeout_seconds=30.0)
    seen: list[str] = []

    report = installer.install(tmp_path, pinned_core_version="9.3.0", on_output=seen.append)

    assert seen == ["Updating composer.json\n", "Installing dependencies\n"]
    assert report.commands == tuple(runner.commands)
    assert len(report.results) == 2
    assert report.duration_ms == pytest.approx(5.0)
    assert all(timeout <= 30.0 for timeout in runner.timeouts)


def test_install_stops_at_first_failing_command(tmp_path: Path) -> None:
    runner = _ScriptedRunner(
        [_result(returncode=1, output="Your requirements could not be resolved\n")]
    )
    installer = DependencyInstaller(runner=runner)

    with pytest.raises(DependencyInstallError) as excinfo:
        installer.install(tmp_path, pinned_core_version="9.3.0")

    error = excinfo.value
    assert str(error) == "Composer installation failed."
    assert error.returncode == 1
    assert error.command[1] == "require"
    assert "could not be resolved" in error.output_tail
    assert len(runner.commands) == 1


def test_install_raises_timeout_error(tmp_path: Path) -> None:
    runner = _ScriptedRunner([_result(returncode=None, output="partial\n", timed_out=True)])
    installer = DependencyInstaller(runner=runner, timeout_seconds=5.0)

    with pytest.raises(DependencyInstallTimeoutError) as excinfo:
        installer.install(tmp_path)

    assert isinstance(excinfo.value, DependencyInstallError)
    assert excinfo.value.output == "partial\n"


def test_install_reports_missing_executable(tmp_path: Path) -> None:
    runner = _ScriptedRunner([FileNotFoundError("composer")])
    installer = DependencyInstaller(runner=runner)

    with pytest.raises(DependencyInstallError, match="not found") as excinfo:
        installer.install(tmp_path)

    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"executable": "  "},
        {"timeout_seconds": 0},
        {"timeout_seconds": -1.0},
    ],
)
def test_installer_rejects_invalid_arguments(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        DependencyInstaller(**kwargs)  # type: ignore[arg-type]


def test_output_tail_keeps_last_lines() -> None:
    output = "".join(f"line {index}\n" for index in range(50))
    error = DependencyInstallError(output=output)

    tail = error.output_tail.splitlines()

    assert len(tail) == 20
    assert tail[-1] == "line 49"


def test_streaming_runner_merges_stderr_and_forwards_lines(tmp_path: Path) -> None:
    runner = StreamingCommandRunner()
    seen: list[str] = []
    script = "import sys; print('out', flush=True); print('err', file=sys.stderr, flush=True)"

    result = runner.run(
        [sys.executable, "-c", script],
        cwd=tmp_path,
        timeout_seconds=30.0,
        on_output=seen.append,
    )

    assert result.succeeded
    assert result.returncode == 0
    assert "out\n" in result.output
    assert "err\n" in result.output
    assert "".join(seen) == result.output


def test_streaming_runner_reports_nonzero_exit(tmp_path: Path) -> None:
    runner = StreamingCommandRunner()

    result = runner.run(
        [sys.executable, "-c", "raise SystemExit(3)"],
        cwd=tmp_path,
        timeout_seconds=30.0,
        on_output=lambda _line: None,
    )

    assert result.returncode == 3
    assert not result.succeeded
    assert not result.timed_out


def test_streaming_runner_kills_on_timeout(tmp_path: Path) -> None:
    runner = StreamingCommandRunner()

    result = runner.run(
        [sys.executable, "-c", "import time; time.sleep(30)"],
        cwd=tmp_path,
        timeout_seconds=0.5,
        on_output=lambda _line: None,
    )

    assert result.timed_out
    assert result.returncode is None
    assert not result.succeeded


def test_streaming_runner_stops_and_reraises_when_output_sink_fails(tmp_path: Path) -> None:
    runner = StreamingCommandRunner()
    calls: list[str] = []

    def _closed_console(line: str) -> None:
        calls.append(line)
        raise BrokenPipeError("console closed")

    started = time.monotonic()
    with pytest.raises(BrokenPipeError, match="console closed"):
        runner.run(
            [sys.executable, "-c", "for i in range(20000): print('line', i, flush=True)"],
            cwd=tmp_path,
            timeout_seconds=30.0,
            on_output=_closed_console,
        )

    assert len(calls) == 1
    assert time.monotonic() - started < 10.0


def test_streaming_runner_kills_child_when_interrupted(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    spawned: list[subprocess.Popen[str]] = []
    real_popen = subprocess.Popen

    class _InterruptedPopen(real_popen):  # type: ignore[misc, valid-type]
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            super().__init__(*args, **kwargs)
            spawned.append(self)

        def wait(self, timeout: float | None = None) -> int:
            if timeout is not None:
                raise KeyboardInterrupt
            return super().wait()

    monkeypatch.setattr(subprocess, "Popen", _InterruptedPopen)
    runner = StreamingCommandRunner()

    with pytest.raises(KeyboardInterrupt):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(30)"],
            cwd=tmp_path,
            timeout_seconds=30.0,
            on_output=lambda _line: None,
        )

    (process,) = spawned
    assert process.returncode is not None
    assert process.returncode != 0


def test_streaming_runner_passes_extra_environment(tmp_path: Path) -> None:
    runner = StreamingCommandRunner(env={"BLT_SANDBOX_TEST_MARKER": "present"})

    result = runner.run(
        [sys.executable, "-c", "import os; print(os.environ['BLT_SANDBOX_TEST_MARKER'])"],
        cwd=tmp_path,
        timeout_seconds=30.0,
        on_output=lambda _line: None,
    )

    assert result.output.strip() == "present"
