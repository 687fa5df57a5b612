"""Application logging helpers."""

from __future__ import annotations

import logging as py_logging
import logging.handlers as py_logging_handlers
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
LOG_FILE_NAME = "fanout.log"
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def default_log_dir() -> Path:
    return (Path.cwd() / "logs").resolve()


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_dir: str | Path | None = None,
) -> py_logging.Logger:
    normalized = level.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    resolved = LOG_LEVELS.get(normalized, py_logging.INFO)

    logger = py_logging.getLogger("fanout")
    logger.setLevel(resolved)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    formatter = py_logging.Formatter(_FORMAT)

    if stream is not None:
        handler = py_logging.StreamHandler(stream)
        handler.setLevel(resolved)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if log_dir:
        try:
            directory = Path(log_dir).expanduser()
        except RuntimeError:
            directory = Path(log_dir)
        if not directory.is_absolute():
            directory = directory.resolve()
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_handler = py_logging_handlers.TimedRotatingFileHandler(
                directory / LOG_FILE_NAME,
                when="midnight",
                encoding="utf-8",
            )
        except OSError:
            pass
        else:
            file_handler.setLevel(py_logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # The terminal belongs to the renderer while panes are on screen.
    if not logger.handlers:
        logger.addHandler(py_logging.NullHandler())

    logger.propagate = False
    return logger
