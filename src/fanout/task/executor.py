"""Child process lifecycle with streamed combined output."""

from __future__ import annotations

import asyncio
import logging as py_logging
import shlex
from asyncio.subprocess import DEVNULL, PIPE
from typing import Protocol

from fanout.bus import MessageSender
from fanout.errors import FanoutError, KillError, SpawnError
from fanout.task.models import ExitStatus, TaskStatus
from fanout.task.signals import ChildSignal, send_signal

logger = py_logging.getLogger(__name__)

_STREAM_LIMIT = 1024 * 1024


class Executable(Protocol):
    @property
    def raw_command(self) -> str: ...

    @property
    def pid(self) -> int | None: ...

    async def spawn(self) -> None: ...

    def try_poll_status(self) -> TaskStatus: ...

    async def wait(self) -> TaskStatus: ...

    def interrupt(self, child_signal: ChildSignal = ChildSignal.INTERRUPT) -> None: ...

    def kill(self) -> None: ...

    async def interrupt_and_wait(
        self,
        child_signal: ChildSignal = ChildSignal.INTERRUPT,
        *,
        grace_period: float | None = None,
    ) -> TaskStatus: ...

    async def kill_and_wait(self) -> TaskStatus: ...

    def drain_output(self) -> list[str]: ...

    async def close(self) -> None: ...


def split_command(command: str) -> list[str]:
    try:
        argv = shlex.split(command)
    except ValueError as exc:
        raise SpawnError(
            f"Cannot parse command: {command}",
            hint=str(exc) or "Check quoting in the command line.",
        ) from exc
    if not argv:
        raise SpawnError("Command cannot be empty.", hint="Pass a program to run.")
    return argv


class TaskExecutor:
    def __init__(self, command: str, sender: MessageSender) -> None:
        self._command = command
        self._sender = sender
        self._process: asyncio.subprocess.Process | None = None
        self._pid: int | None = None
        self._killed = False
        self._output: asyncio.Queue[str] = asyncio.Queue()
        self._stop_forwarding = asyncio.Event()
        self._forwarder: asyncio.Task[None] | None = None
        self._exit_watcher: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"TaskExecutor({self._command!r}, pid={self._pid})"

    @property
    def raw_command(self) -> str:
        return self._command

    @property
    def pid(self) -> int | None:
        return self._pid

    async def spawn(self) -> None:
        if self._process is not None:
            raise SpawnError(
                f"Task already spawned: {self._command}",
                hint="Create a new executor to run the command again.",
            )
        argv = split_command(self._command)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=DEVNULL,
                stdout=PIPE,
                stderr=PIPE,
                limit=_STREAM_LIMIT,
            )
        except (OSError, ValueError) as exc:
            raise SpawnError(
                f"Failed to spawn: {self._command}",
                hint=str(exc) or "Check that the program exists and is executable.",
            ) from exc

        self._process = process
        self._pid = process.pid
        self._forwarder = asyncio.create_task(
            self._forward_output(process.stdout, process.stderr),
            name=f"forward-output-{process.pid}",
        )
        self._exit_watcher = asyncio.create_task(self._watch_exit(process), name=f"watch-exit-{process.pid}")
        logger.info("Spawned task pid=%s command=%s", process.pid, self._command)

    def try_poll_status(self) -> TaskStatus:
        if self._process is None:
            return TaskStatus.ready(self._command)
        returncode = self._process.returncode
        if returncode is None:
            return TaskStatus.executing(self._command, self._pid)
        return self._final_status(returncode)

    async def wait(self) -> TaskStatus:
        if self._process is None:
            return TaskStatus.ready(self._command)
        returncode = await self._process.wait()
        status = self._final_status(returncode)
        logger.debug("Task finished: %s", status)
        return status

    def interrupt(self, child_signal: ChildSignal = ChildSignal.INTERRUPT) -> None:
        if self._process is None:
            return
        try:
            if self._process.returncode is None:
                send_signal(self._pid, child_signal)
        except KillError as exc:
            logger.warning(
                "Could not deliver %s to pid=%s, killing instead: %s",
                child_signal.value,
                self._pid,
                exc.message,
            )
            self.kill()
        finally:
            self._stop_forwarding.set()

    def kill(self) -> None:
        if self._process is None:
            return
        self._stop_forwarding.set()
        if self._process.returncode is not None:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            logger.info("Task pid=%s exited before it could be killed", self._pid)
            return
        self._killed = True
        logger.info("Killed task pid=%s command=%s", self._pid, self._command)

    async def interrupt_and_wait(
        self,
        child_signal: ChildSignal = ChildSignal.INTERRUPT,
        *,
        grace_period: float | None = None,
    ) -> TaskStatus:
        status = self.try_poll_status()
        if not status.is_executing:
            return status
        self.interrupt(child_signal)
        if grace_period is None:
            return await self.wait()
        try:
            return await asyncio.wait_for(self.wait(), timeout=grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                "Task pid=%s still running %.2fs after %s, killing",
                self._pid,
                grace_period,
                child_signal.value,
            )
            return await self.kill_and_wait()

    async def kill_and_wait(self) -> TaskStatus:
        self.kill()
        return await self.wait()

    def drain_output(self) -> list[str]:
        lines: list[str] = []
        while True:
            try:
                lines.append(self._output.get_nowait())
            except asyncio.QueueEmpty:
                return lines

    async def close(self) -> None:
        self._stop_forwarding.set()
        # Output still held open by a grandchild must not block shutdown.
        tasks = [task for task in (self._forwarder, self._exit_watcher) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        logger.debug("Task pid=%s exited returncode=%s", process.pid, returncode)
        # Wakes the supervisor loop so exit-on-complete is re-evaluated.
        self._sender.need_redraw()

    def _final_status(self, returncode: int) -> TaskStatus:
        if self._killed:
            return TaskStatus.killed(self._command, self._pid)
        return TaskStatus.exited(self._command, self._pid, ExitStatus.from_returncode(returncode))

    async def _forward_output(
        self,
        stdout: asyncio.StreamReader | None,
        stderr: asyncio.StreamReader | None,
    ) -> None:
        streams = [stream for stream in (stdout, stderr) if stream is not None]
        readers: dict[asyncio.Future[bytes], asyncio.StreamReader] = {
            asyncio.ensure_future(stream.readline()): stream for stream in streams
        }
        stop = asyncio.ensure_future(self._stop_forwarding.wait())
        try:
            while readers:
                done, _ = await asyncio.wait({stop, *readers}, return_when=asyncio.FIRST_COMPLETED)
                for pending_read in [item for item in readers if item in done]:
                    stream = readers.pop(pending_read)
                    raw = pending_read.result()
                    if not raw:
                        streams.remove(stream)
                        continue
                    self._output.put_nowait(raw.decode("utf-8").rstrip("\r\n"))
                    self._sender.need_redraw()
                    readers[asyncio.ensure_future(stream.readline())] = stream
                if stop in done:
                    break
        except (OSError, ValueError) as exc:
            # UnicodeDecodeError and over-long lines both surface as ValueError.
            logger.warning("Output forwarding stopped for pid=%s: %s", self._pid, exc)
            self._sender.send_error(
                FanoutError(f"Output forwarding stopped for: {self._command}", hint=str(exc))
            )
        finally:
            stop.cancel()
            for pending_read in readers:
                pending_read.cancel()
            if readers:
                await asyncio.gather(*readers, return_exceptions=True)
        if streams:
            # A child blocks once its pipe fills, so unread output is discarded until EOF.
            logger.debug("Discarding remaining output for pid=%s", self._pid)
            await asyncio.gather(*(_discard(stream) for stream in streams))
        logger.debug("Output forwarder finished for pid=%s", self._pid)


async def _discard(stream: asyncio.StreamReader) -> None:
    try:
        while await stream.read(_STREAM_LIMIT):
            pass
    except OSError as exc:
        logger.debug("Stopped discarding output: %s", exc)
