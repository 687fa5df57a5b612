"""Supervisor settings: TOML defaults merged with command-line flags."""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from fanout.logging import default_log_dir
from fanout.pane import DEFAULT_MAX_OUTPUT_LINES
from fanout.terminal.input import DEFAULT_MAX_BATCH

logger = py_logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/fanout/config.toml").expanduser()
DEFAULT_INPUT_DEBOUNCE_MS = 2
MIN_OUTPUT_LINES = 100


class ConfigDefaults(TypedDict, total=False):
    exit_on_complete: bool
    grace_period_seconds: float
    input_debounce_ms: int
    input_batch_size: int
    max_output_lines: int
    log_dir: str


class SupervisorConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    commands: list[str] = Field(min_length=1)
    exit_on_complete: bool = False
    debug: bool = False
    grace_period_seconds: float | None = Field(default=None, gt=0)
    input_debounce_ms: int = Field(default=DEFAULT_INPUT_DEBOUNCE_MS, ge=0, le=1000)
    input_batch_size: int = Field(default=DEFAULT_MAX_BATCH, ge=1)
    max_output_lines: int = Field(default=DEFAULT_MAX_OUTPUT_LINES, ge=MIN_OUTPUT_LINES)
    log_dir: Path = Field(default_factory=default_log_dir)

    @field_validator("commands")
    @classmethod
    def _validate_commands(cls, value: list[str]) -> list[str]:
        commands = [command.strip() for command in value]
        if any(not command for command in commands):
            raise ValueError("Commands cannot be blank")
        return commands

    @property
    def input_debounce_seconds(self) -> float:
        return self.input_debounce_ms / 1000


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _sanitize(raw: dict[str, object]) -> ConfigDefaults:
    defaults = ConfigDefaults()

    exit_on_complete = raw.get("exit_on_complete")
    if isinstance(exit_on_complete, bool):
        defaults["exit_on_complete"] = exit_on_complete

    grace_period = raw.get("grace_period_seconds")
    if isinstance(grace_period, (int, float)) and not isinstance(grace_period, bool) and grace_period > 0:
        defaults["grace_period_seconds"] = float(grace_period)

    debounce = raw.get("input_debounce_ms")
    if isinstance(debounce, int) and 0 <= debounce <= 1000:
        defaults["input_debounce_ms"] = debounce

    batch_size = raw.get("input_batch_size")
    if isinstance(batch_size, int) and batch_size >= 1:
        defaults["input_batch_size"] = batch_size

    max_lines = raw.get("max_output_lines")
    if isinstance(max_lines, int) and max_lines >= MIN_OUTPUT_LINES:
        defaults["max_output_lines"] = max_lines

    log_dir = raw.get("log_dir")
    if isinstance(log_dir, str) and log_dir.strip():
        defaults["log_dir"] = log_dir.strip()

    ignored = sorted(set(raw) - set(ConfigDefaults.__annotations__))
    if ignored:
        logger.debug("Ignoring unknown config keys: %s", ", ".join(ignored))
    return defaults


def load_defaults(path: str | Path | None = None) -> ConfigDefaults:
    resolved = get_config_path(path)
    if not resolved.exists():
        return ConfigDefaults()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", resolved, exc)
        return ConfigDefaults()
    if not isinstance(raw, dict):
        return ConfigDefaults()
    return _sanitize(raw)
