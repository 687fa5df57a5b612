"""Rich-backed drawing of the pane grid."""

from __future__ import annotations

import logging as py_logging
import os
from collections.abc import Sequence
from typing import Protocol

from rich import box
from rich.console import Console as RichConsole
from rich.console import Group, RenderableType
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from fanout.pane import Pane, wrap_text
from fanout.terminal.layout import Rect, pane_rects, split_pane

logger = py_logging.getLogger(__name__)

APP_TITLE = "fanout"


class Renderer(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def draw(self, panes: Sequence[Pane]) -> list[Rect]: ...


class NullRenderer:
    """Used when stdout is not a terminal: nothing is drawn."""

    def start(self) -> None:
        logger.debug("Rendering disabled")

    def stop(self) -> None:
        pass

    def draw(self, panes: Sequence[Pane]) -> list[Rect]:
        return [Rect.empty() for _ in panes]


def _header() -> Table:
    header = Table.grid(expand=True)
    header.add_column(justify="center", ratio=1)
    header.add_column(justify="right")
    header.add_row(
        Text(f" {APP_TITLE} - ({os.getpid()})", style="bold"),
        Text.assemble(" Quit ", ("<Q> ", "bold blue")),
    )
    return header


def _scroll_label(pane: Pane) -> Text | None:
    total = pane.buffer.line_count()
    if total <= pane.viewport.height:
        return None
    up = "↑" if pane.scroll_offset > 0 else " "
    down = "↓" if pane.scroll_offset < pane.scroll_max else " "
    return Text(f" {up} {pane.scroll_offset + 1}/{total} {down} ", style="dim")


def _pane_layout(pane: Pane, column: Rect, console: RichConsole) -> tuple[Layout, Rect]:
    title_text = Text(pane.title, style="blue")
    title_lines = wrap_text(title_text, column.inner().width, console)
    title_rect, output_rect = split_pane(column, len(title_lines))
    viewport = output_rect.inner()
    pane.set_viewport(viewport)

    title_panel = Panel(
        Group(*title_lines),
        title=Text(" Command - PID ", style="bold magenta"),
        box=box.ROUNDED,
        padding=0,
    )
    visible = pane.visible_lines()
    output_panel = Panel(
        Group(*visible) if visible else Text(""),
        title=Text(" [output] ", style="bold green"),
        title_align="left",
        subtitle=_scroll_label(pane),
        subtitle_align="right",
        box=box.ROUNDED,
        padding=0,
    )
    layout = Layout(name=f"pane-{id(pane)}", size=column.width)
    layout.split_column(
        Layout(title_panel, size=title_rect.height),
        Layout(output_panel),
    )
    return layout, viewport


def build_frame(
    panes: Sequence[Pane],
    width: int,
    height: int,
    console: RichConsole,
) -> tuple[RenderableType, list[Rect]]:
    """Lay the panes out and return the renderable plus each output viewport."""
    root = Layout(name="root")
    body = Layout(name="body")
    root.split_column(Layout(_header(), name="header", size=1), body)
    viewports: list[Rect] = []
    columns: list[Layout] = []
    for pane, column in zip(panes, pane_rects(width, height, len(panes))):
        layout, viewport = _pane_layout(pane, column, console)
        columns.append(layout)
        viewports.append(viewport)
    if columns:
        body.split_row(*columns)
    return root, viewports


class RichRenderer:
    def __init__(self, console: RichConsole | None = None) -> None:
        self.console = console or RichConsole()
        self._live = Live(
            console=self.console,
            screen=True,
            auto_refresh=False,
            transient=True,
            redirect_stdout=False,
            redirect_stderr=False,
        )

    def start(self) -> None:
        self._live.start()

    def stop(self) -> None:
        self._live.stop()

    def draw(self, panes: Sequence[Pane]) -> list[Rect]:
        width, height = self.console.size
        frame, viewports = build_frame(panes, width, height, self.console)
        self._live.update(frame, refresh=True)
        return viewports
