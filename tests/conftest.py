from __future__ import annotations

import shlex
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

_POSIX_TEST_FILES = {
    "test_task_executor.py",
    "test_supervisor.py",
    "test_shutdown_handler.py",
    "test_terminal_session.py",
}


@pytest.fixture
def python_command() -> Callable[[str], str]:
    """Build a command line that runs ``code`` with the current interpreter."""

    def build(code: str) -> str:
        return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"

    return build


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    skip_posix = pytest.mark.skip(reason="requires POSIX signals and pipes")
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _POSIX_TEST_FILES:
            item.add_marker(pytest.mark.posix)
            if sys.platform == "win32":
                item.add_marker(skip_posix)
