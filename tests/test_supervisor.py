from __future__ import annotations

import asyncio
import os
import signal as py_signal
from collections.abc import Callable

import fanout.task.executor as executor_module
from fanout.app import AppResult, Supervisor
from fanout.bus import MessageSender
from fanout.config import SupervisorConfig
from fanout.errors import NoWaitError, SpawnError
from fanout.events import KeyEvent
from fanout.shutdown import ShutdownReason
from fanout.task.models import ExitStatus, TaskState, TaskStatus
from fanout.task.signals import ChildSignal

PythonCommand = Callable[[str], str]


class CountingExecutor:
    """Stays executing until asked to stop; counts stop requests."""

    instances: list[CountingExecutor] = []

    def __init__(self, command: str, sender: MessageSender) -> None:
        self.raw_command = command
        self.pid: int | None = None
        self.stop_requests: list[ChildSignal] = []
        CountingExecutor.instances.append(self)

    async def spawn(self) -> None:
        self.pid = 1000 + len(CountingExecutor.instances)

    def try_poll_status(self) -> TaskStatus:
        if self.stop_requests:
            return TaskStatus.exited(self.raw_command, self.pid, ExitStatus(code=0))
        return TaskStatus.executing(self.raw_command, self.pid)

    async def interrupt_and_wait(
        self,
        child_signal: ChildSignal = ChildSignal.INTERRUPT,
        *,
        grace_period: float | None = None,
    ) -> TaskStatus:
        self.stop_requests.append(child_signal)
        await asyncio.sleep(0.01)
        return self.try_poll_status()

    def drain_output(self) -> list[str]:
        return []

    async def close(self) -> None:
        pass


def _config(*commands: str, **overrides: object) -> SupervisorConfig:
    return SupervisorConfig.model_validate({"commands": list(commands), **overrides})


def _supervisor(config: SupervisorConfig, **kwargs: object) -> Supervisor:
    kwargs.setdefault("listen_input", False)
    kwargs.setdefault("listen_signals", False)
    return Supervisor(config, **kwargs)  # type: ignore[arg-type]


async def _until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def test_exit_on_complete_waits_for_every_task() -> None:
    supervisor = _supervisor(_config("sleep 1", "echo hi", exit_on_complete=True))

    result = asyncio.run(asyncio.wait_for(supervisor.run(), timeout=15))

    assert result.shutdown_reason == ShutdownReason.END
    assert [str(item).split(":")[0] for item in result.tasks_status] == ["Exited", "Exited"]
    assert all(isinstance(item, TaskStatus) and item.is_terminal for item in result.tasks_status)
    assert all(item.exit_status.success for item in result.tasks_status)  # type: ignore[union-attr]


def test_second_shutdown_is_inert() -> None:
    CountingExecutor.instances = []

    async def scenario() -> AppResult:
        supervisor = _supervisor(_config("a", "b"), executor_factory=CountingExecutor)
        task = asyncio.create_task(supervisor.run())
        await asyncio.sleep(0.01)
        supervisor.sender.send_shutdown(ShutdownReason.USER_QUIT)
        supervisor.sender.send_shutdown(ShutdownReason.TERMINATE_SIGNAL)
        return await asyncio.wait_for(task, timeout=5)

    result = asyncio.run(scenario())

    assert result.shutdown_reason == ShutdownReason.USER_QUIT
    assert len(result.tasks_status) == 2
    assert [executor.stop_requests for executor in CountingExecutor.instances] == [
        [ChildSignal.QUIT],
        [ChildSignal.QUIT],
    ]


def test_quit_key_batch_triggers_shutdown() -> None:
    CountingExecutor.instances = []

    async def scenario() -> AppResult:
        supervisor = _supervisor(_config("a"), executor_factory=CountingExecutor)
        task = asyncio.create_task(supervisor.run())
        await asyncio.sleep(0.01)
        supervisor.sender.send_events([KeyEvent("x"), KeyEvent("q")])
        return await asyncio.wait_for(task, timeout=5)

    result = asyncio.run(scenario())

    assert result.shutdown_reason == ShutdownReason.USER_QUIT
    assert CountingExecutor.instances[0].stop_requests == [ChildSignal.QUIT]


def test_interrupt_signal_stops_all_tasks_and_kills_unresponsive_one(python_command: PythonCommand) -> None:
    stubborn = python_command(
        "import signal, time\n"
        "signal.signal(signal.SIGINT, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )

    async def scenario() -> AppResult:
        supervisor = _supervisor(
            _config("sleep 30", stubborn, grace_period_seconds=0.5),
            listen_signals=True,
        )
        task = asyncio.create_task(supervisor.run())
        await _until(lambda: len(supervisor.panes) == 2 and "ready" in supervisor.panes[1].buffer.plain_lines)
        await _until(lambda: py_signal.getsignal(py_signal.SIGTERM) != py_signal.SIG_DFL)
        os.kill(os.getpid(), py_signal.SIGINT)
        return await asyncio.wait_for(task, timeout=15)

    result = asyncio.run(scenario())

    assert result.shutdown_reason == ShutdownReason.INTERRUPT_SIGNAL
    graceful, stubborn_status = result.tasks_status
    assert isinstance(graceful, TaskStatus) and isinstance(stubborn_status, TaskStatus)
    assert graceful.state == TaskState.EXITED
    assert graceful.exit_status is not None and graceful.exit_status.signal == int(py_signal.SIGINT)
    assert stubborn_status.state == TaskState.KILLED


def test_undeliverable_interrupt_falls_back_to_kill(monkeypatch) -> None:
    def vanished(pid: int | None, child_signal: ChildSignal) -> None:
        raise NoWaitError()

    monkeypatch.setattr(executor_module, "send_signal", vanished)

    async def scenario() -> AppResult:
        supervisor = _supervisor(_config("sleep 30", "sleep 30"))
        task = asyncio.create_task(supervisor.run())
        await _until(lambda: len(supervisor.panes) == 2 and all(pane.pid for pane in supervisor.panes))
        supervisor.sender.send_shutdown(ShutdownReason.USER_INTERRUPT)
        return await asyncio.wait_for(task, timeout=15)

    result = asyncio.run(scenario())

    assert [item.state for item in result.tasks_status] == [TaskState.KILLED, TaskState.KILLED]  # type: ignore[union-attr]


def test_spawn_failure_is_contained_to_its_pane() -> None:
    supervisor = _supervisor(_config("definitely-not-a-real-program-fanout", "echo hi", exit_on_complete=True))

    result = asyncio.run(asyncio.wait_for(supervisor.run(), timeout=15))

    failed, ok = result.tasks_status
    assert isinstance(failed, SpawnError)
    assert result.errors == [failed]
    assert isinstance(ok, TaskStatus) and ok.state == TaskState.EXITED


def test_repeated_signal_during_escalation_is_ignored(python_command: PythonCommand) -> None:
    slow_to_stop = python_command(
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(1.5)\n"
    )

    async def scenario() -> AppResult:
        supervisor = _supervisor(_config(slow_to_stop), listen_signals=True)
        task = asyncio.create_task(supervisor.run())
        await _until(lambda: len(supervisor.panes) == 1 and "ready" in supervisor.panes[0].buffer.plain_lines)
        await _until(lambda: py_signal.getsignal(py_signal.SIGTERM) != py_signal.SIG_DFL)
        os.kill(os.getpid(), py_signal.SIGTERM)
        await asyncio.sleep(0.3)
        assert not task.done()
        os.kill(os.getpid(), py_signal.SIGTERM)
        os.kill(os.getpid(), py_signal.SIGINT)
        return await asyncio.wait_for(task, timeout=15)

    result = asyncio.run(scenario())

    assert result.shutdown_reason == ShutdownReason.TERMINATE_SIGNAL
    (status,) = result.tasks_status
    assert isinstance(status, TaskStatus) and status.state == TaskState.EXITED
    assert status.exit_status is not None and status.exit_status.code == 0
    assert py_signal.getsignal(py_signal.SIGTERM) == py_signal.SIG_DFL


def test_exit_on_complete_survives_undecodable_output(python_command: PythonCommand) -> None:
    noisy = python_command(
        "import sys\n"
        "sys.stdout.buffer.write(b'\\xff\\n' + (b'y' * 99 + b'\\n') * 40_000)\n"
        "sys.stdout.flush()\n"
    )
    supervisor = _supervisor(_config(noisy, exit_on_complete=True))

    result = asyncio.run(asyncio.wait_for(supervisor.run(), timeout=15))

    assert result.shutdown_reason == ShutdownReason.END
    (status,) = result.tasks_status
    assert isinstance(status, TaskStatus) and status.state == TaskState.EXITED
