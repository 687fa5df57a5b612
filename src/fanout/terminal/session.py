"""Raw-mode terminal session with mouse and focus reporting."""

from __future__ import annotations

import logging as py_logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from typing import TextIO

logger = py_logging.getLogger(__name__)

# SGR mouse reporting with button tracking, plus focus in/out reports.
ENABLE_SEQUENCE = "\x1b[?1000h\x1b[?1002h\x1b[?1006h\x1b[?1004h"
DISABLE_SEQUENCE = "\x1b[?1004l\x1b[?1006l\x1b[?1002l\x1b[?1000l"


def is_interactive(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return False


@contextmanager
def terminal_session(stdin: TextIO | None = None, stdout: TextIO | None = None) -> Iterator[bool]:
    """Yield True when the terminal was switched to raw mode, False otherwise."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    if os.name != "posix" or not is_interactive(stdin):
        logger.debug("Terminal session disabled: stdin is not a POSIX terminal")
        yield False
        return

    import termios
    import tty

    fd = stdin.fileno()
    saved = termios.tcgetattr(fd)
    try:
        tty.setraw(fd, termios.TCSADRAIN)
        # Raw mode drops output post-processing; the renderer relies on it.
        attrs = termios.tcgetattr(fd)
        attrs[1] |= termios.OPOST | termios.ONLCR
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
        stdout.write(ENABLE_SEQUENCE)
        stdout.flush()
        logger.debug("Terminal switched to raw mode fd=%s", fd)
        yield True
    finally:
        with suppress(OSError, ValueError):
            stdout.write(DISABLE_SEQUENCE)
            stdout.flush()
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)
        logger.debug("Terminal attributes restored fd=%s", fd)
