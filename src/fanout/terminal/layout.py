"""Screen geometry for side-by-side panes."""

from __future__ import annotations

from dataclasses import dataclass

HEADER_HEIGHT = 1
BORDER = 1


@dataclass(frozen=True)
class Rect:
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def empty(cls) -> Rect:
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def contains(self, column: int, row: int) -> bool:
        return self.x <= column < self.x + self.width and self.y <= row < self.y + self.height

    def inner(self, margin: int = BORDER) -> Rect:
        width = max(0, self.width - 2 * margin)
        height = max(0, self.height - 2 * margin)
        return Rect(self.x + margin, self.y + margin, width, height)


def split_widths(total: int, count: int) -> list[int]:
    if count <= 0:
        return []
    base, remainder = divmod(max(0, total), count)
    return [base + (1 if index < remainder else 0) for index in range(count)]


def pane_rects(width: int, height: int, count: int) -> list[Rect]:
    body_height = max(0, height - HEADER_HEIGHT)
    rects: list[Rect] = []
    x = 0
    for column_width in split_widths(width, count):
        rects.append(Rect(x, HEADER_HEIGHT, column_width, body_height))
        x += column_width
    return rects


def split_pane(pane: Rect, title_lines: int) -> tuple[Rect, Rect]:
    """Split a pane column into its title box and its output box."""
    title_height = min(pane.height, max(0, title_lines) + 2 * BORDER)
    title = Rect(pane.x, pane.y, pane.width, title_height)
    output = Rect(pane.x, pane.y + title_height, pane.width, pane.height - title_height)
    return title, output
