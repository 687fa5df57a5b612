from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from fanout.events import Dispatch, EventRouter, InputEvent, KeyEvent, ResizeEvent

_DECISIONS = st.lists(st.sampled_from([Dispatch.CONTINUE, Dispatch.CONSUMED]), min_size=0, max_size=12)


def _router(decisions: list[Dispatch], calls: list[int]) -> EventRouter:
    def handler_for(index: int, decision: Dispatch):
        def handle(event: InputEvent) -> Dispatch:
            calls.append(index)
            return decision

        return handle

    return EventRouter(handler_for(index, decision) for index, decision in enumerate(decisions))


@given(_DECISIONS)
def test_key_events_stop_after_first_consumer(decisions: list[Dispatch]) -> None:
    calls: list[int] = []

    routed = _router(decisions, calls).dispatch(KeyEvent("k"))

    if Dispatch.CONSUMED in decisions:
        first = decisions.index(Dispatch.CONSUMED)
        assert calls == list(range(first + 1))
        assert not routed.propagate
    else:
        assert calls == list(range(len(decisions)))
        assert routed.propagate


@given(_DECISIONS, st.integers(min_value=1, max_value=500), st.integers(min_value=1, max_value=200))
def test_resize_events_reach_every_handler(decisions: list[Dispatch], columns: int, rows: int) -> None:
    calls: list[int] = []

    routed = _router(decisions, calls).dispatch(ResizeEvent(columns, rows))

    assert calls == list(range(len(decisions)))
    assert routed.propagate
