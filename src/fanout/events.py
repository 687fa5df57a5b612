"""Terminal input events and the ordered dispatch chain."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Union

logger = py_logging.getLogger(__name__)


class Modifiers(IntFlag):
    NONE = 0
    SHIFT = 1
    ALT = 2
    CONTROL = 4


class KeyKind(str, Enum):
    PRESS = "press"
    REPEAT = "repeat"
    RELEASE = "release"


class MouseKind(str, Enum):
    DOWN = "down"
    UP = "up"
    DRAG = "drag"
    MOVED = "moved"
    SCROLL_UP = "scroll-up"
    SCROLL_DOWN = "scroll-down"


@dataclass(frozen=True)
class KeyEvent:
    code: str
    modifiers: Modifiers = Modifiers.NONE
    kind: KeyKind = KeyKind.PRESS


@dataclass(frozen=True)
class MouseEvent:
    kind: MouseKind
    column: int
    row: int
    modifiers: Modifiers = Modifiers.NONE


@dataclass(frozen=True)
class ResizeEvent:
    columns: int
    rows: int


@dataclass(frozen=True)
class FocusEvent:
    gained: bool


InputEvent = Union[KeyEvent, MouseEvent, ResizeEvent, FocusEvent]


class Dispatch(str, Enum):
    CONTINUE = "continue"
    CONSUMED = "consumed"


EventHandler = Callable[[InputEvent], Dispatch]


class RoutedEvent:
    """An input event paired with its propagation flag for one dispatch pass."""

    __slots__ = ("event", "_propagate")

    def __init__(self, event: InputEvent) -> None:
        self.event = event
        self._propagate = True

    @property
    def propagate(self) -> bool:
        return self._propagate

    def stop_propagation(self) -> None:
        self._propagate = False

    def __repr__(self) -> str:
        return f"RoutedEvent({self.event!r}, propagate={self._propagate})"


def is_broadcast(event: InputEvent) -> bool:
    return isinstance(event, (ResizeEvent, FocusEvent))


class EventRouter:
    def __init__(self, handlers: Iterable[EventHandler] = ()) -> None:
        self._handlers: list[EventHandler] = list(handlers)

    @property
    def handlers(self) -> list[EventHandler]:
        return list(self._handlers)

    def add_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def dispatch(self, event: InputEvent) -> RoutedEvent:
        routed = RoutedEvent(event)
        broadcast = is_broadcast(event)
        for handler in self._handlers:
            if not routed.propagate:
                break
            decision = handler(event)
            if decision == Dispatch.CONSUMED and not broadcast:
                routed.stop_propagation()
        if not routed.propagate:
            logger.debug("Event consumed: %r", event)
        return routed

    def dispatch_batch(self, events: Sequence[InputEvent]) -> list[RoutedEvent]:
        return [self.dispatch(event) for event in events]
