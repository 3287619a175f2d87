"""Timers for the debounce and idle clocks.

Both clocks only need "call this after N seconds" and "what time is it",
so they take a :class:`Scheduler` instead of touching the event loop
directly. Tests pass a manually advanced scheduler.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

_LOG = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of time and delayed callbacks."""

    def time(self) -> float:
        """Current time in seconds on a monotonic clock."""
        ...

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Run *callback* after *delay* seconds; coroutine results are awaited."""
        ...


class LoopScheduler:
    """:class:`Scheduler` backed by an asyncio event loop.

    A callback returning a coroutine is run as a task; tasks are tracked
    until they finish so they are not garbage collected mid-flight.

    Args:
        loop: Event loop to use; defaults to the running loop at first use.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay, 0.0), self._run, callback)

    def _run(self, callback: Callable[[], Any]) -> None:
        result = callback()
        if inspect.isawaitable(result):
            task = self.loop.create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _LOG.error("Timer callback failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for callback tasks that are still running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
