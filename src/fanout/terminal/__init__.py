"""Terminal adapters: geometry, raw input and session handling.

`fanout.terminal.render` is imported directly; it depends on `fanout.pane`.
"""

from .input import InputDecoder, InputPoller
from .layout import Rect, pane_rects, split_pane
from .session import terminal_session

__all__ = [
    "InputDecoder",
    "InputPoller",
    "pane_rects",
    "Rect",
    "split_pane",
    "terminal_session",
]
