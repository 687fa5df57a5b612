"""Task lifecycle domain models."""

from __future__ import annotations

import signal as py_signal
from dataclasses import dataclass
from enum import Enum


class TaskState(str, Enum):
    READY = "Ready"
    EXECUTING = "Executing"
    EXITED = "Exited"
    KILLED = "Killed"


@dataclass(frozen=True)
class ExitStatus:
    code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitStatus:
        # asyncio reports death-by-signal as a negative return code.
        if returncode < 0:
            return cls(signal=-returncode)
        return cls(code=returncode)

    @property
    def success(self) -> bool:
        return self.code == 0

    def __str__(self) -> str:
        if self.signal is not None:
            try:
                name = py_signal.Signals(self.signal).name
            except ValueError:
                return f"signal: {self.signal}"
            return f"signal: {self.signal} ({name})"
        return f"exit status: {self.code}"


@dataclass(frozen=True)
class TaskStatus:
    state: TaskState
    command: str
    pid: int | None = None
    exit_status: ExitStatus | None = None

    @classmethod
    def ready(cls, command: str) -> TaskStatus:
        return cls(TaskState.READY, command)

    @classmethod
    def executing(cls, command: str, pid: int | None) -> TaskStatus:
        return cls(TaskState.EXECUTING, command, pid)

    @classmethod
    def exited(cls, command: str, pid: int | None, exit_status: ExitStatus) -> TaskStatus:
        return cls(TaskState.EXITED, command, pid, exit_status)

    @classmethod
    def killed(cls, command: str, pid: int | None) -> TaskStatus:
        return cls(TaskState.KILLED, command, pid)

    @property
    def is_executing(self) -> bool:
        return self.state == TaskState.EXECUTING

    @property
    def is_terminal(self) -> bool:
        return self.state in (TaskState.EXITED, TaskState.KILLED)

    def __str__(self) -> str:
        if self.state == TaskState.READY:
            return f"{self.state.value}: {self.command}"
        text = f"{self.state.value}: {self.command} (PID: {self.pid or 0})"
        if self.state == TaskState.EXITED and self.exit_status is not None:
            text += f" with status: {self.exit_status}"
        return text
