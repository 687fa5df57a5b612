"""Child process lifecycle package."""

from .executor import Executable, TaskExecutor, split_command
from .models import ExitStatus, TaskState, TaskStatus
from .signals import ChildSignal, send_signal

__all__ = [
    "ChildSignal",
    "Executable",
    "ExitStatus",
    "send_signal",
    "split_command",
    "TaskExecutor",
    "TaskState",
    "TaskStatus",
]
