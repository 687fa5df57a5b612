"""Single-consumer message bus feeding the supervisor loop."""

from __future__ import annotations

import asyncio
import logging as py_logging
import os
import sys
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from fanout.errors import BusClosedError, ExitCode, user_facing_error
from fanout.events import InputEvent

if TYPE_CHECKING:
    from fanout.shutdown import ShutdownReason

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorMessage:
    cause: BaseException


@dataclass(frozen=True)
class ShutdownMessage:
    reason: ShutdownReason


@dataclass(frozen=True)
class InputEventBatch:
    events: tuple[InputEvent, ...]


@dataclass(frozen=True)
class NeedRedraw:
    pass


Message = Union[ErrorMessage, ShutdownMessage, InputEventBatch, NeedRedraw]
FatalHandler = Callable[[BaseException], None]


def abort_process(error: BaseException) -> None:
    logger.critical("Message bus failure, aborting: %s", error)
    try:
        sys.stderr.write(user_facing_error(f"Message bus failure: {error}", hint="Restart fanout") + "\n")
        sys.stderr.flush()
    finally:
        os._exit(int(ExitCode.BUS_FAILURE))


class _Channel:
    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.queue: asyncio.Queue[Message] = asyncio.Queue()
        self.closed = False
        self._loop_thread = threading.get_ident()

    def put(self, message: Message) -> None:
        if self.closed:
            raise BusClosedError(
                f"Message bus is closed; dropped {type(message).__name__}.",
                hint="The supervisor loop has already finished.",
            )
        if threading.get_ident() == self._loop_thread:
            self.queue.put_nowait(message)
            return
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, message)
        except RuntimeError as exc:
            raise BusClosedError(
                f"Event loop is closed; dropped {type(message).__name__}.",
                hint=str(exc),
            ) from exc


class MessageSender:
    """Publish handle shared by every producer; sends never block."""

    def __init__(self, channel: _Channel, *, on_fatal: FatalHandler) -> None:
        self._channel = channel
        self._on_fatal = on_fatal

    def send(self, message: Message) -> None:
        self._channel.put(message)

    def send_error(self, cause: BaseException) -> None:
        try:
            self.send(ErrorMessage(cause))
        except BusClosedError as exc:
            self._on_fatal(exc)

    def send_shutdown(self, reason: ShutdownReason) -> None:
        try:
            self.send(ShutdownMessage(reason))
        except BusClosedError as exc:
            self.send_error(exc)

    def send_events(self, events: Sequence[InputEvent]) -> None:
        try:
            self.send(InputEventBatch(tuple(events)))
        except BusClosedError as exc:
            self.send_error(exc)

    def need_redraw(self) -> None:
        try:
            self.send(NeedRedraw())
        except BusClosedError as exc:
            self.send_error(exc)


class MessageStream:
    """Consumer end of the bus, owned by the supervisor."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    @property
    def closed(self) -> bool:
        return self._channel.closed

    def pending(self) -> int:
        return self._channel.queue.qsize()

    async def receive(self) -> Message:
        return await self._channel.queue.get()

    def close(self) -> None:
        self._channel.closed = True

    def __aiter__(self) -> MessageStream:
        return self

    async def __anext__(self) -> Message:
        return await self.receive()


def message_queue(*, on_fatal: FatalHandler = abort_process) -> tuple[MessageSender, MessageStream]:
    """Create a bus bound to the running event loop."""
    channel = _Channel(asyncio.get_running_loop())
    return MessageSender(channel, on_fatal=on_fatal), MessageStream(channel)
