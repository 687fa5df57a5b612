"""Shutdown triggers: OS termination signals and quit key chords."""

from __future__ import annotations

import asyncio
import logging as py_logging
import os
import signal as py_signal
from collections.abc import Callable
from enum import Enum

from fanout.bus import MessageSender
from fanout.errors import FanoutError
from fanout.events import Dispatch, InputEvent, KeyEvent, KeyKind, Modifiers
from fanout.task.signals import ChildSignal

logger = py_logging.getLogger(__name__)


class ShutdownReason(str, Enum):
    INTERRUPT_SIGNAL = "interrupt-signal"
    TERMINATE_SIGNAL = "terminate-signal"
    QUIT_SIGNAL = "quit-signal"
    USER_QUIT = "user-requested-quit"
    USER_INTERRUPT = "user-requested-interrupt"
    END = "normal-completion"

    @property
    def child_signal(self) -> ChildSignal:
        return _CHILD_SIGNALS[self]


_CHILD_SIGNALS = {
    ShutdownReason.INTERRUPT_SIGNAL: ChildSignal.INTERRUPT,
    ShutdownReason.TERMINATE_SIGNAL: ChildSignal.TERMINATE,
    ShutdownReason.QUIT_SIGNAL: ChildSignal.QUIT,
    ShutdownReason.USER_QUIT: ChildSignal.QUIT,
    ShutdownReason.USER_INTERRUPT: ChildSignal.INTERRUPT,
    ShutdownReason.END: ChildSignal.TERMINATE,
}


def listened_signals() -> dict[int, ShutdownReason]:
    if os.name != "posix":
        return {py_signal.SIGINT: ShutdownReason.INTERRUPT_SIGNAL}
    return {
        py_signal.SIGINT: ShutdownReason.INTERRUPT_SIGNAL,
        py_signal.SIGTERM: ShutdownReason.TERMINATE_SIGNAL,
        py_signal.SIGQUIT: ShutdownReason.QUIT_SIGNAL,
    }


def key_shutdown_reason(event: KeyEvent) -> ShutdownReason | None:
    if event.kind != KeyKind.PRESS:
        return None
    if event.code == "q":
        return ShutdownReason.USER_QUIT
    if event.modifiers == Modifiers.CONTROL:
        if event.code == "c":
            return ShutdownReason.USER_INTERRUPT
        if event.code == "\\":
            return ShutdownReason.QUIT_SIGNAL
    return None


class ShutdownHandler:
    def __init__(self, sender: MessageSender) -> None:
        self._sender = sender

    def listen_for_signals(self) -> asyncio.Task[None]:
        return asyncio.create_task(self._listen(), name="shutdown-signal-listener")

    def handle_event(self, event: InputEvent) -> Dispatch:
        if not isinstance(event, KeyEvent):
            return Dispatch.CONTINUE
        reason = key_shutdown_reason(event)
        if reason is None:
            return Dispatch.CONTINUE
        logger.info("Shutdown requested from keyboard reason=%s", reason.value)
        self._sender.send_shutdown(reason)
        return Dispatch.CONSUMED

    async def _listen(self) -> None:
        """Publish one shutdown for the first signal.

        Handlers stay installed until the task is cancelled, so repeated
        signals during shutdown are swallowed instead of killing fanout.
        """
        loop = asyncio.get_running_loop()
        fired: asyncio.Future[int] = loop.create_future()

        def on_signal(signum: int) -> None:
            if fired.done():
                logger.info("Ignoring signal=%s, shutdown already in progress", signum)
                return
            fired.set_result(signum)

        reasons = listened_signals()
        try:
            restore = _install_handlers(loop, list(reasons), on_signal)
        except (OSError, RuntimeError, ValueError) as exc:
            self._sender.send_error(
                FanoutError("Failed to install signal handlers.", hint=str(exc) or "Run fanout from the main thread.")
            )
            return
        try:
            signum = await fired
            reason = reasons[signum]
            logger.info("Shutdown requested by signal=%s reason=%s", signum, reason.value)
            self._sender.send_shutdown(reason)
            await loop.create_future()
        finally:
            restore()


def _install_handlers(
    loop: asyncio.AbstractEventLoop,
    signums: list[int],
    on_signal: Callable[[int], None],
) -> Callable[[], None]:
    try:
        for signum in signums:
            loop.add_signal_handler(signum, on_signal, signum)
    except NotImplementedError:
        # Event loops without signal support (Windows) fall back to the
        # process-level handler, hopping back onto the loop thread.
        previous = {
            signum: py_signal.signal(
                signum,
                lambda number, _frame: loop.call_soon_threadsafe(on_signal, number),
            )
            for signum in signums
        }

        def restore_process_handlers() -> None:
            for signum, handler in previous.items():
                py_signal.signal(signum, handler)

        return restore_process_handlers

    def remove_loop_handlers() -> None:
        for signum in signums:
            loop.remove_signal_handler(signum)

    return remove_loop_handlers
