"""Platform signal delivery for child processes."""

from __future__ import annotations

import logging as py_logging
import os
import signal as py_signal
import sys
from enum import Enum

from fanout.errors import InvalidPidError, KillError, NoPermissionError, NoWaitError

logger = py_logging.getLogger(__name__)


class ChildSignal(str, Enum):
    INTERRUPT = "interrupt"
    QUIT = "quit"
    TERMINATE = "terminate"


def send_signal(pid: int | None, child_signal: ChildSignal) -> None:
    """Deliver ``child_signal`` to ``pid`` or raise a :class:`KillError`."""
    if not pid:
        raise InvalidPidError()
    logger.debug("Sending %s to pid=%s", child_signal.value, pid)
    _deliver(pid, child_signal)


if sys.platform == "win32":

    def _deliver(pid: int, child_signal: ChildSignal) -> None:
        if child_signal == ChildSignal.INTERRUPT:
            number = py_signal.CTRL_C_EVENT
        else:
            # Any value other than the console events maps to TerminateProcess.
            number = py_signal.SIGTERM
        try:
            os.kill(pid, number)
        except PermissionError as exc:
            raise NoPermissionError(hint=str(exc)) from exc
        except OSError as exc:
            raise KillError(
                f"Windows refused to signal pid {pid}.",
                hint=f"winerror={getattr(exc, 'winerror', None)}",
            ) from exc

else:
    _POSIX_SIGNALS = {
        ChildSignal.INTERRUPT: py_signal.SIGINT,
        ChildSignal.QUIT: py_signal.SIGQUIT,
        ChildSignal.TERMINATE: py_signal.SIGTERM,
    }

    def _deliver(pid: int, child_signal: ChildSignal) -> None:
        try:
            os.kill(pid, _POSIX_SIGNALS[child_signal])
        except PermissionError as exc:
            raise NoPermissionError() from exc
        except ProcessLookupError as exc:
            raise NoWaitError() from exc
        except OSError as exc:
            raise KillError(f"Failed to signal pid {pid}.", hint=str(exc)) from exc
