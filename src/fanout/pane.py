"""Per-command pane: one executor plus its scrollable output."""

from __future__ import annotations

import logging as py_logging
from collections import deque

from rich import get_console
from rich.console import Console as RichConsole
from rich.text import Text

from fanout.bus import MessageSender
from fanout.errors import FanoutError, SpawnError
from fanout.events import Dispatch, InputEvent, MouseEvent, MouseKind
from fanout.shutdown import ShutdownReason
from fanout.task.executor import Executable
from fanout.task.models import TaskStatus
from fanout.terminal.layout import Rect

logger = py_logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_LINES = 10_000

TaskOutcome = TaskStatus | FanoutError


def wrap_text(text: Text, width: int, console: RichConsole | None = None) -> list[Text]:
    if width <= 0:
        return [text]
    lines = list(text.wrap(console or get_console(), width, overflow="fold"))
    return lines or [Text("")]


class OutputBuffer:
    """Bounded list of output lines, wrapped lazily to the current width."""

    def __init__(self, max_lines: int = DEFAULT_MAX_OUTPUT_LINES, *, console: RichConsole | None = None) -> None:
        self.max_lines = max_lines
        self._console = console
        self._lines: deque[Text] = deque()
        self._wrapped: deque[list[Text]] = deque()
        self._wrapped_total = 0
        self._width = 0

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def plain_lines(self) -> list[str]:
        return [line.plain for line in self._lines]

    def append(self, raw: str) -> None:
        text = Text.from_ansi(raw)
        self._lines.append(text)
        wrapped = wrap_text(text, self._width, self._console)
        self._wrapped.append(wrapped)
        self._wrapped_total += len(wrapped)
        while len(self._lines) > self.max_lines:
            self._lines.popleft()
            self._wrapped_total -= len(self._wrapped.popleft())

    def rewrap(self, width: int) -> None:
        if width == self._width:
            return
        self._width = width
        self._wrapped = deque(wrap_text(line, width, self._console) for line in self._lines)
        self._wrapped_total = sum(len(item) for item in self._wrapped)

    def line_count(self) -> int:
        return self._wrapped_total

    def window(self, offset: int, height: int) -> list[Text]:
        if height <= 0:
            return []
        visible: list[Text] = []
        position = 0
        for wrapped in self._wrapped:
            end = position + len(wrapped)
            if end > offset:
                for line in wrapped[max(0, offset - position) :]:
                    visible.append(line)
                    if len(visible) >= height:
                        return visible
            position = end
        return visible


class Pane:
    def __init__(
        self,
        executor: Executable,
        sender: MessageSender,
        *,
        max_output_lines: int = DEFAULT_MAX_OUTPUT_LINES,
        console: RichConsole | None = None,
    ) -> None:
        self._executor = executor
        self._sender = sender
        self.buffer = OutputBuffer(max_output_lines, console=console)
        self.viewport = Rect.empty()
        self.scroll_offset = 0
        self.follow = True
        self.spawn_error: SpawnError | None = None

    def __repr__(self) -> str:
        return f"Pane({self.command!r}, pid={self.pid})"

    @property
    def command(self) -> str:
        return self._executor.raw_command

    @property
    def pid(self) -> int | None:
        return self._executor.pid

    @property
    def title(self) -> str:
        return f"[{self.command}] - ({self.pid or 0})"

    async def execute(self) -> None:
        try:
            await self._executor.spawn()
        except SpawnError as exc:
            logger.error("Spawn failed command=%s: %s", self.command, exc)
            self.spawn_error = exc
            self._sender.send_error(exc)

    def try_poll_status(self) -> TaskOutcome:
        if self.spawn_error is not None:
            return self.spawn_error
        return self._executor.try_poll_status()

    async def signal_or_wait(self, reason: ShutdownReason, *, grace_period: float | None = None) -> TaskOutcome:
        if self.spawn_error is not None:
            return self.spawn_error
        return await self._executor.interrupt_and_wait(reason.child_signal, grace_period=grace_period)

    async def close(self) -> None:
        await self._executor.close()

    def receive_output(self) -> int:
        lines = self._executor.drain_output()
        for line in lines:
            self.buffer.append(line)
        if lines:
            self._sync_scroll()
        return len(lines)

    def set_viewport(self, viewport: Rect) -> None:
        self.viewport = viewport
        self.buffer.rewrap(viewport.width)
        self._sync_scroll()

    @property
    def scroll_max(self) -> int:
        return max(0, self.buffer.line_count() - self.viewport.height)

    def scroll_by(self, delta: int) -> None:
        self.scroll_offset = min(max(0, self.scroll_offset + delta), self.scroll_max)
        self.follow = self.scroll_offset >= self.scroll_max

    def visible_lines(self) -> list[Text]:
        return self.buffer.window(self.scroll_offset, self.viewport.height)

    def handle_event(self, event: InputEvent) -> Dispatch:
        if not isinstance(event, MouseEvent):
            return Dispatch.CONTINUE
        if not self.viewport.contains(event.column, event.row):
            return Dispatch.CONTINUE
        if event.kind == MouseKind.SCROLL_UP:
            self.scroll_by(-1)
        elif event.kind == MouseKind.SCROLL_DOWN:
            self.scroll_by(1)
        return Dispatch.CONSUMED

    def _sync_scroll(self) -> None:
        if self.follow:
            self.scroll_offset = self.scroll_max
        else:
            self.scroll_offset = min(self.scroll_offset, self.scroll_max)
