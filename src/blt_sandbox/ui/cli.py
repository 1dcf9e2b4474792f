"""Command-line interface router for blt-sandbox."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from blt_sandbox.config import (
    ConfigLoadError,
    ConfigValidationError,
    SandboxSettings,
    dump_effective_config,
    load_config,
    settings_from_config,
)
from blt_sandbox.constants import UNPINNED_CORE_VERSION
from blt_sandbox.observability import setup_logging, shutdown_logging
from blt_sandbox.sandbox import SandboxManager
from blt_sandbox.ui.render import ConsoleRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for the sandbox lifecycle commands."""

    parser = argparse.ArgumentParser(
        prog="blt-sandbox",
        description=(
            "blt-sandbox: build and recycle the sandbox projects used by BLT's tests.\n\n"
            "Common workflows:\n"
            "  blt-sandbox bootstrap             Create the master if it is missing\n"
            "  blt-sandbox bootstrap --recreate  Always rebuild the master\n"
            "  blt-sandbox replace-instance      Fresh instance copied from the master\n"
            "  blt-sandbox config                Show the effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to a TOML config (default: ./blt-sandbox.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Print debug messages and step-by-step progress.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument(
        "--log-dir",
        default=None,
        help="Write JSON-lines session logs below this directory.",
    )
    common.add_argument(
        "--core-version",
        default=None,
        help="Pin the core package to this version ('default' keeps the template's).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    bootstrap_parser = subparsers.add_parser(
        "bootstrap",
        parents=[common],
        help="Create the sandbox master when missing (or always with --recreate).",
    )
    bootstrap_parser.add_argument(
        "--recreate",
        action="store_true",
        default=None,
        help="Rebuild the master even if it already exists.",
    )
    bootstrap_parser.set_defaults(handler=_cmd_bootstrap)

    create_parser = subparsers.add_parser(
        "create-master",
        parents=[common],
        help="Rebuild the sandbox master from scratch and install its dependencies.",
    )
    create_parser.set_defaults(handler=_cmd_create_master)

    replace_parser = subparsers.add_parser(
        "replace-instance",
        parents=[common],
        help="Delete the instance and copy a fresh one from the master.",
    )
    replace_parser.set_defaults(handler=_cmd_replace_instance)

    refresh_parser = subparsers.add_parser(
        "refresh-instance",
        parents=[common],
        help="Copy the master over the instance, replacing it if that fails.",
    )
    refresh_parser.set_defaults(handler=_cmd_refresh_instance)

    remove_parser = subparsers.add_parser(
        "remove-instance",
        parents=[common],
        help="Delete the sandbox instance if it exists.",
    )
    remove_parser.set_defaults(handler=_cmd_remove_instance)

    path_parser = subparsers.add_parser(
        "instance-path",
        parents=[common],
        help="Print the sandbox instance path.",
    )
    path_parser.set_defaults(handler=_cmd_instance_path)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration as JSON.",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_bootstrap(args: argparse.Namespace) -> int:
    manager = _build_manager(args)
    created = manager.bootstrap()
    if _flag(args, "verbose"):
        state = "created" if created else "reused"
        _get_renderer(args).kv("Sandbox master", f"{manager.sandbox_master} ({state})")
    return 0


def _cmd_create_master(args: argparse.Namespace) -> int:
    manager = _build_manager(args)
    manager.create_sandbox_master()
    return 0


def _cmd_replace_instance(args: argparse.Namespace) -> int:
    manager = _build_manager(args)
    instance = manager.replace_sandbox_instance()
    print(instance)
    return 0


def _cmd_refresh_instance(args: argparse.Namespace) -> int:
    manager = _build_manager(args)
    # The CLI process exits right away, so changing its working directory is pointless.
    outcome = manager.refresh_sandbox_instance(change_directory=False)
    if outcome.replaced:
        _get_renderer(args).warning(f"refresh failed, instance replaced: {outcome.error}")
    print(outcome.instance)
    return 0


def _cmd_remove_instance(args: argparse.Namespace) -> int:
    manager = _build_manager(args)
    manager.remove_sandbox_instance()
    return 0


def _cmd_instance_path(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    print(settings.paths.instance)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    print(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers: config, logging, wiring
# ---------------------------------------------------------------------------


def _get_renderer(args: argparse.Namespace) -> ConsoleRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _build_manager(args: argparse.Namespace) -> SandboxManager:
    config = _load_effective_config(args)
    settings = _settings_or_error(config)
    _configure_logging(config, args)
    return SandboxManager(settings, output=_get_renderer(args))


def _load_settings(args: argparse.Namespace) -> SandboxSettings:
    return _settings_or_error(_load_effective_config(args))


def _settings_or_error(config: Mapping[str, object]) -> SandboxSettings:
    try:
        return settings_from_config(config)
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    try:
        return load_config(
            getattr(args, "config_path", None),
            cli_overrides=_cli_overrides(args),
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if _flag(args, "verbose"):
        overrides["observability.verbose_output"] = True
    log_dir = getattr(args, "log_dir", None)
    if isinstance(log_dir, str) and log_dir.strip():
        overrides["observability.log_dir"] = os.path.abspath(log_dir)
        overrides["observability.log_to_file"] = True
    core_version = getattr(args, "core_version", None)
    if isinstance(core_version, str):
        pinned = core_version.strip()
        overrides["install.pinned_core_version"] = (
            "" if pinned == UNPINNED_CORE_VERSION else pinned
        )
    if getattr(args, "recreate", None) is True:
        overrides["sandbox.force_recreate_master"] = True
    return overrides


def _configure_logging(config: Mapping[str, object], args: argparse.Namespace) -> None:
    observability = config.get("observability")
    if not isinstance(observability, Mapping):
        return
    session_id = f"{datetime.now(UTC):%Y%m%dT%H%M%SZ}-{os.getpid()}-{args.command}"
    setup_logging(observability, session_id=session_id)


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
