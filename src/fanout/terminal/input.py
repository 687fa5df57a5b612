"""Raw terminal input decoding and debounced batching onto the bus."""

from __future__ import annotations

import asyncio
import logging as py_logging
import os
import shutil
import signal as py_signal
from collections.abc import Callable

from fanout.bus import MessageSender
from fanout.events import FocusEvent, InputEvent, KeyEvent, Modifiers, MouseEvent, MouseKind, ResizeEvent

logger = py_logging.getLogger(__name__)

ESC = 0x1B
DEFAULT_DEBOUNCE_SECONDS = 0.002
DEFAULT_MAX_BATCH = 100
ESCAPE_TIMEOUT_SECONDS = 0.05
_MAX_SEQUENCE = 32

_CSI_KEYS = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
}
_SS3_KEYS = {**_CSI_KEYS, "P": "f1", "Q": "f2", "R": "f3", "S": "f4"}
_TILDE_KEYS = {
    "1": "home",
    "2": "insert",
    "3": "delete",
    "4": "end",
    "5": "pageup",
    "6": "pagedown",
    "7": "home",
    "8": "end",
}
_SINGLE_BYTE_KEYS = {
    0x09: "tab",
    0x0A: "enter",
    0x0D: "enter",
    0x08: "backspace",
    0x7F: "backspace",
}

Decoded = tuple[int, "InputEvent | None"]


def _csi_modifiers(params: list[str]) -> Modifiers:
    # xterm encodes modifiers as 1 + bitmask in the second parameter.
    if len(params) < 2 or not params[1].isdigit():
        return Modifiers.NONE
    mask = max(0, int(params[1]) - 1)
    modifiers = Modifiers.NONE
    if mask & 1:
        modifiers |= Modifiers.SHIFT
    if mask & 2:
        modifiers |= Modifiers.ALT
    if mask & 4:
        modifiers |= Modifiers.CONTROL
    return modifiers


def _mouse_modifiers(button: int) -> Modifiers:
    modifiers = Modifiers.NONE
    if button & 4:
        modifiers |= Modifiers.SHIFT
    if button & 8:
        modifiers |= Modifiers.ALT
    if button & 16:
        modifiers |= Modifiers.CONTROL
    return modifiers


def decode_sgr_mouse(body: str, final: str) -> MouseEvent | None:
    parts = body.split(";")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None
    button, column, row = (int(part) for part in parts)
    if button & 64:
        wheel = button & 3
        if wheel == 0:
            kind = MouseKind.SCROLL_UP
        elif wheel == 1:
            kind = MouseKind.SCROLL_DOWN
        else:
            return None
    elif button & 32:
        kind = MouseKind.MOVED if button & 3 == 3 else MouseKind.DRAG
    else:
        kind = MouseKind.DOWN if final == "M" else MouseKind.UP
    return MouseEvent(kind, max(0, column - 1), max(0, row - 1), _mouse_modifiers(button))


class InputDecoder:
    """Incremental decoder; incomplete sequences wait for the next feed."""

    def __init__(self) -> None:
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, data: bytes) -> list[InputEvent]:
        buffer = self._pending + data
        events: list[InputEvent] = []
        index = 0
        while index < len(buffer):
            consumed, event = self._decode_one(buffer, index)
            if consumed == 0:
                break
            if event is not None:
                events.append(event)
            index += consumed
        self._pending = buffer[index:]
        return events

    def flush(self) -> list[InputEvent]:
        """Resolve a dangling escape byte into an Escape key press."""
        if self._pending == bytes([ESC]):
            self._pending = b""
            return [KeyEvent("esc")]
        return []

    def _decode_one(self, buffer: bytes, index: int) -> Decoded:
        byte = buffer[index]
        if byte == ESC:
            return self._decode_escape(buffer, index)
        if byte in _SINGLE_BYTE_KEYS:
            return 1, KeyEvent(_SINGLE_BYTE_KEYS[byte])
        if byte == 0x00:
            return 1, KeyEvent(" ", Modifiers.CONTROL)
        if byte < 0x1B:
            return 1, KeyEvent(chr(byte + 0x60), Modifiers.CONTROL)
        if byte < 0x20:
            # 0x1c..0x1f are control-\ ] ^ _
            return 1, KeyEvent(chr(byte + 0x40), Modifiers.CONTROL)
        return self._decode_text(buffer, index)

    def _decode_text(self, buffer: bytes, index: int) -> Decoded:
        byte = buffer[index]
        if byte < 0x80:
            length = 1
        elif byte >> 5 == 0b110:
            length = 2
        elif byte >> 4 == 0b1110:
            length = 3
        elif byte >> 3 == 0b11110:
            length = 4
        else:
            return 1, None
        if index + length > len(buffer):
            return 0, None
        char = buffer[index : index + length].decode("utf-8", errors="replace")
        return length, KeyEvent(char)

    def _decode_escape(self, buffer: bytes, index: int) -> Decoded:
        if index + 1 >= len(buffer):
            return 0, None
        marker = buffer[index + 1]
        if marker == ord("["):
            return self._decode_csi(buffer, index)
        if marker == ord("O"):
            if index + 2 >= len(buffer):
                return 0, None
            name = _SS3_KEYS.get(chr(buffer[index + 2]))
            return 3, KeyEvent(name) if name else None
        if marker == ESC:
            return 1, KeyEvent("esc")
        consumed, event = self._decode_one(buffer, index + 1)
        if consumed == 0:
            return 0, None
        if isinstance(event, KeyEvent):
            event = KeyEvent(event.code, event.modifiers | Modifiers.ALT, event.kind)
        return consumed + 1, event

    def _decode_csi(self, buffer: bytes, index: int) -> Decoded:
        start = index + 2
        end = start
        while end < len(buffer) and 0x20 <= buffer[end] <= 0x3F:
            end += 1
        if end >= len(buffer):
            if end - index > _MAX_SEQUENCE:
                return end - index, None
            return 0, None
        final = chr(buffer[end])
        body = buffer[start:end].decode("ascii", errors="replace")
        consumed = end - index + 1
        if body.startswith("<") and final in ("M", "m"):
            return consumed, decode_sgr_mouse(body[1:], final)
        if not body and final in ("I", "O"):
            return consumed, FocusEvent(gained=final == "I")
        params = body.split(";") if body else []
        if final in _CSI_KEYS:
            return consumed, KeyEvent(_CSI_KEYS[final], _csi_modifiers(params))
        if final == "~" and params and params[0] in _TILDE_KEYS:
            return consumed, KeyEvent(_TILDE_KEYS[params[0]], _csi_modifiers(params))
        if final == "Z":
            return consumed, KeyEvent("backtab", Modifiers.SHIFT)
        logger.debug("Ignoring unknown escape sequence: %r", buffer[index : index + consumed])
        return consumed, None


def current_size() -> ResizeEvent:
    size = shutil.get_terminal_size()
    return ResizeEvent(columns=size.columns, rows=size.lines)


class InputPoller:
    def __init__(
        self,
        sender: MessageSender,
        *,
        fd: int | None = None,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        max_batch: int = DEFAULT_MAX_BATCH,
        decoder: InputDecoder | None = None,
        size_probe: Callable[[], ResizeEvent] = current_size,
    ) -> None:
        self._sender = sender
        self._fd = fd
        self._debounce = debounce
        self._max_batch = max_batch
        self._decoder = decoder or InputDecoder()
        self._size_probe = size_probe
        self._events: asyncio.Queue[InputEvent] = asyncio.Queue()
        self._escape_timer: asyncio.TimerHandle | None = None

    def feed(self, data: bytes) -> None:
        for event in self._decoder.feed(data):
            self.push(event)

    def push(self, event: InputEvent) -> None:
        self._events.put_nowait(event)

    async def next_batch(self) -> list[InputEvent]:
        loop = asyncio.get_running_loop()
        batch = [await self._events.get()]
        deadline = loop.time() + self._debounce
        while len(batch) < self._max_batch:
            try:
                batch.append(self._events.get_nowait())
                continue
            except asyncio.QueueEmpty:
                pass
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                batch.append(await asyncio.wait_for(self._events.get(), timeout=remaining))
            except asyncio.TimeoutError:
                break
        return batch

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        detach = self._attach(loop)
        try:
            while True:
                batch = await self.next_batch()
                logger.debug("Publishing input batch size=%s", len(batch))
                self._sender.send_events(batch)
        finally:
            detach()

    def _attach(self, loop: asyncio.AbstractEventLoop) -> Callable[[], None]:
        attached: list[Callable[[], None]] = []
        if self._fd is not None:
            try:
                loop.add_reader(self._fd, self._on_readable, loop)
            except NotImplementedError:
                logger.warning("Keyboard and mouse input is unavailable on this event loop")
            else:
                attached.append(lambda: loop.remove_reader(self._fd))
        if hasattr(py_signal, "SIGWINCH"):
            try:
                loop.add_signal_handler(py_signal.SIGWINCH, self._on_resize)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Resize notifications unavailable")
            else:
                attached.append(lambda: loop.remove_signal_handler(py_signal.SIGWINCH))

        def detach() -> None:
            if self._escape_timer is not None:
                self._escape_timer.cancel()
            for undo in attached:
                undo()

        return detach

    def _on_readable(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._fd is None:
            return
        try:
            data = os.read(self._fd, 1024)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            logger.warning("Stopped reading terminal input: %s", exc)
            loop.remove_reader(self._fd)
            return
        if not data:
            logger.debug("Terminal input reached end of file")
            loop.remove_reader(self._fd)
            return
        self.feed(data)
        if self._decoder.pending == bytes([ESC]):
            if self._escape_timer is not None:
                self._escape_timer.cancel()
            self._escape_timer = loop.call_later(ESCAPE_TIMEOUT_SECONDS, self._flush_escape)

    def _flush_escape(self) -> None:
        self._escape_timer = None
        for event in self._decoder.flush():
            self.push(event)

    def _on_resize(self) -> None:
        self.push(self._size_probe())
