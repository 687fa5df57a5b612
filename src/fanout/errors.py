"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    SPAWN_ERROR = 5
    SIGNAL_ERROR = 6
    BUS_FAILURE = 9


@dataclass
class FanoutError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class SpawnError(FanoutError):
    code: ExitCode = ExitCode.SPAWN_ERROR


@dataclass
class KillError(FanoutError):
    """A signal could not be delivered to a child process."""

    code: ExitCode = ExitCode.SIGNAL_ERROR


@dataclass
class InvalidPidError(KillError):
    message: str = "Invalid pid: cannot send signal to pid `0`"


@dataclass
class NoPermissionError(KillError):
    message: str = "The calling process does not have permission to send the signal to the target process."


@dataclass
class NoWaitError(KillError):
    message: str = (
        "The target process does not exist. It may be a zombie that has terminated "
        "but has not yet been waited for."
    )


@dataclass
class BusClosedError(FanoutError):
    code: ExitCode = ExitCode.BUS_FAILURE


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
