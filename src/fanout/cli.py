"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from contextlib import nullcontext
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from . import __version__
from .app import AppResult, Supervisor
from .config import DEFAULT_CONFIG_PATH, SupervisorConfig, load_defaults
from .errors import ExitCode, FanoutError, user_facing_error
from .logging import configure_logging
from .terminal.render import NullRenderer, Renderer, RichRenderer
from .terminal.session import is_interactive, terminal_session

AppRunner = Callable[[SupervisorConfig], AppResult]


def _grace_period_type(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--grace-period must be a number of seconds") from exc
    if seconds <= 0:
        raise argparse.ArgumentTypeError("--grace-period must be greater than 0")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fanout",
        description="Run several commands side by side and stop them together.",
    )
    parser.add_argument("commands", metavar="COMMANDS", nargs="+", help="Commands to run, one per pane")
    parser.add_argument(
        "--eoc",
        "--exit-on-complete",
        dest="exit_on_complete",
        action="store_true",
        default=None,
        help="Exit once every command has completed",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Write debug logs to ./logs/fanout.log",
    )
    parser.add_argument(
        "--grace-period",
        type=_grace_period_type,
        default=None,
        metavar="SECONDS",
        help="Kill commands still running this long after the stop signal",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="TOML defaults file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def build_config(namespace: argparse.Namespace) -> SupervisorConfig:
    defaults = load_defaults(namespace.config)
    values: dict[str, object] = dict(defaults)
    values["commands"] = list(namespace.commands)
    values["debug"] = bool(namespace.debug)
    if namespace.exit_on_complete is not None:
        values["exit_on_complete"] = namespace.exit_on_complete
    if namespace.grace_period is not None:
        values["grace_period_seconds"] = namespace.grace_period
    try:
        return SupervisorConfig.model_validate(values)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise FanoutError(
            "Invalid configuration.",
            code=ExitCode.CONFIG_ERROR,
            hint=f"{location}: {first.get('msg', 'invalid value')}" if location else str(exc),
        ) from exc


def _should_use_tui() -> bool:
    return sys.stdout is not None and is_interactive(sys.stdout)


def run_app(config: SupervisorConfig) -> AppResult:
    use_tui = _should_use_tui()
    renderer: Renderer = RichRenderer() if use_tui else NullRenderer()
    supervisor = Supervisor(config, renderer=renderer, listen_input=use_tui)
    with terminal_session() if use_tui else nullcontext(False):
        return asyncio.run(supervisor.run())


def report(result: AppResult, *, stdout: TextIO, stderr: TextIO) -> None:
    for outcome in result.tasks_status:
        if isinstance(outcome, FanoutError):
            print(user_facing_error(outcome.message.rstrip("."), hint=outcome.hint), file=stderr)
        else:
            print(outcome, file=stdout)


def main(
    argv: Sequence[str] | None = None,
    *,
    app_runner: AppRunner | None = None,
) -> int:
    logger = configure_logging()
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code in (None, 0):
            return int(ExitCode.SUCCESS)
        logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(ExitCode.INVALID_ARGS)

    try:
        config = build_config(namespace)
        if config.debug:
            logger = configure_logging(level="DEBUG", log_dir=config.log_dir)
        logger.debug("Starting fanout commands=%s", config.commands)
        runner = app_runner or run_app
        result = runner(config)
    except FanoutError as exc:
        logger.error(
            "Handled FanoutError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message.rstrip("."), hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        hint = "Re-run with --debug and inspect logs/fanout.log"
        print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)

    report(result, stdout=sys.stdout, stderr=sys.stderr)
    logger.debug("Exiting reason=%s", result.shutdown_reason.value)
    return int(ExitCode.SUCCESS)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
