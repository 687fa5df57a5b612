from __future__ import annotations

import signal as py_signal
import sys

import pytest

import fanout.task.signals as signals
from fanout.errors import InvalidPidError, KillError, NoPermissionError, NoWaitError
from fanout.task.signals import ChildSignal, send_signal

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal numbers")


@pytest.mark.parametrize("pid", [0, None])
def test_zero_or_missing_pid_is_never_dispatched(monkeypatch, pid: int | None) -> None:
    calls: list[tuple[int, int]] = []
    monkeypatch.setattr(signals.os, "kill", lambda target, number: calls.append((target, number)))

    with pytest.raises(InvalidPidError):
        send_signal(pid, ChildSignal.INTERRUPT)

    assert calls == []


@posix_only
@pytest.mark.parametrize(
    ("child_signal", "expected"),
    [
        (ChildSignal.INTERRUPT, py_signal.SIGINT),
        (ChildSignal.TERMINATE, py_signal.SIGTERM),
        (ChildSignal.QUIT, getattr(py_signal, "SIGQUIT", None)),
    ],
)
def test_child_signal_maps_to_posix_signal(monkeypatch, child_signal: ChildSignal, expected: int) -> None:
    calls: list[tuple[int, int]] = []
    monkeypatch.setattr(signals.os, "kill", lambda target, number: calls.append((target, number)))

    send_signal(4321, child_signal)

    assert calls == [(4321, expected)]


@posix_only
@pytest.mark.parametrize(
    ("raised", "expected"),
    [
        (PermissionError("not yours"), NoPermissionError),
        (ProcessLookupError("gone"), NoWaitError),
        (OSError("weird"), KillError),
    ],
)
def test_os_failures_map_to_kill_errors(monkeypatch, raised: OSError, expected: type[KillError]) -> None:
    def fake_kill(target: int, number: int) -> None:
        raise raised

    monkeypatch.setattr(signals.os, "kill", fake_kill)

    with pytest.raises(expected) as info:
        send_signal(4321, ChildSignal.INTERRUPT)

    assert isinstance(info.value, KillError)
    assert info.value.__cause__ is raised
