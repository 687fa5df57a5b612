"""Supervisor loop: render, poll, dispatch, and escalate shutdown."""

from __future__ import annotations

import asyncio
import logging as py_logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field

from fanout.bus import (
    ErrorMessage,
    FatalHandler,
    InputEventBatch,
    MessageSender,
    MessageStream,
    NeedRedraw,
    ShutdownMessage,
    abort_process,
    message_queue,
)
from fanout.config import SupervisorConfig
from fanout.errors import FanoutError
from fanout.events import EventRouter
from fanout.pane import Pane, TaskOutcome
from fanout.shutdown import ShutdownHandler, ShutdownReason
from fanout.task.executor import Executable, TaskExecutor
from fanout.terminal.input import InputPoller
from fanout.terminal.render import NullRenderer, Renderer

logger = py_logging.getLogger(__name__)

ExecutorFactory = Callable[[str, MessageSender], Executable]


@dataclass
class AppResult:
    tasks_status: list[TaskOutcome] = field(default_factory=list)
    shutdown_reason: ShutdownReason = ShutdownReason.END

    @property
    def errors(self) -> list[FanoutError]:
        return [item for item in self.tasks_status if isinstance(item, FanoutError)]


def _stdin_fd() -> int | None:
    try:
        if sys.stdin is not None and sys.stdin.isatty():
            return sys.stdin.fileno()
    except (AttributeError, ValueError, OSError):
        pass
    return None


class Supervisor:
    def __init__(
        self,
        config: SupervisorConfig,
        *,
        renderer: Renderer | None = None,
        executor_factory: ExecutorFactory = TaskExecutor,
        listen_input: bool = True,
        listen_signals: bool = True,
        on_fatal: FatalHandler = abort_process,
    ) -> None:
        self.config = config
        self.renderer: Renderer = renderer or NullRenderer()
        self._executor_factory = executor_factory
        self._listen_input = listen_input
        self._listen_signals = listen_signals
        self._on_fatal = on_fatal
        self._sender: MessageSender | None = None
        self.panes: list[Pane] = []
        self.errors: list[BaseException] = []

    @property
    def sender(self) -> MessageSender:
        if self._sender is None:
            raise FanoutError("Supervisor is not running.", hint="Call run() first.")
        return self._sender

    async def run(self) -> AppResult:
        sender, stream = message_queue(on_fatal=self._on_fatal)
        self._sender = sender
        self.panes = [
            Pane(
                self._executor_factory(command, sender),
                sender,
                max_output_lines=self.config.max_output_lines,
            )
            for command in self.config.commands
        ]
        shutdown = ShutdownHandler(sender)
        router = EventRouter([shutdown.handle_event, *(pane.handle_event for pane in self.panes)])
        listeners: list[asyncio.Task[None]] = []
        if self._listen_signals:
            listeners.append(shutdown.listen_for_signals())
        if self._listen_input:
            poller = InputPoller(
                sender,
                fd=_stdin_fd(),
                debounce=self.config.input_debounce_seconds,
                max_batch=self.config.input_batch_size,
            )
            listeners.append(asyncio.create_task(poller.run(), name="input-poller"))

        self.renderer.start()
        try:
            for pane in self.panes:
                await pane.execute()
            logger.info("Supervising %s task(s) exit_on_complete=%s", len(self.panes), self.config.exit_on_complete)
            return await self._loop(stream, router)
        finally:
            await self._teardown(listeners, stream)

    async def _loop(self, stream: MessageStream, router: EventRouter) -> AppResult:
        while True:
            self._render()
            statuses = [pane.try_poll_status() for pane in self.panes]
            if self.config.exit_on_complete and not any(_is_executing(item) for item in statuses):
                logger.info("All tasks completed")
                return AppResult(statuses, ShutdownReason.END)

            message = await stream.receive()
            if isinstance(message, ErrorMessage):
                logger.error("Task error: %s", message.cause)
                self.errors.append(message.cause)
            elif isinstance(message, ShutdownMessage):
                logger.info("Shutting down reason=%s", message.reason.value)
                return AppResult(await self._escalate(message.reason), message.reason)
            elif isinstance(message, InputEventBatch):
                router.dispatch_batch(message.events)
            elif isinstance(message, NeedRedraw):
                continue

    async def _escalate(self, reason: ShutdownReason) -> list[TaskOutcome]:
        grace_period = self.config.grace_period_seconds
        results = await asyncio.gather(
            *(pane.signal_or_wait(reason, grace_period=grace_period) for pane in self.panes),
            return_exceptions=True,
        )
        outcomes: list[TaskOutcome] = []
        for pane, result in zip(self.panes, results):
            if isinstance(result, BaseException):
                logger.error("Escalation failed for %r: %s", pane, result)
                outcomes.append(
                    result
                    if isinstance(result, FanoutError)
                    else FanoutError(f"Failed to stop: {pane.command}", hint=str(result))
                )
            else:
                outcomes.append(result)
        return outcomes

    def _render(self) -> None:
        for pane in self.panes:
            pane.receive_output()
        viewports = self.renderer.draw(self.panes)
        for pane, viewport in zip(self.panes, viewports):
            if viewport != pane.viewport:
                pane.set_viewport(viewport)

    async def _teardown(self, listeners: list[asyncio.Task[None]], stream: MessageStream) -> None:
        for task in listeners:
            task.cancel()
        if listeners:
            await asyncio.gather(*listeners, return_exceptions=True)
        await asyncio.gather(*(pane.close() for pane in self.panes), return_exceptions=True)
        self.renderer.stop()
        stream.close()
        logger.debug("Supervisor stopped")


def _is_executing(outcome: TaskOutcome) -> bool:
    return not isinstance(outcome, FanoutError) and outcome.is_executing
