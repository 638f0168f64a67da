"""Bounded-concurrency task scheduler."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Runs submitted coroutines with at most ``concurrency`` in flight.

    ``submit`` waits for a permit, then starts the task and returns. The permit
    is released from the task's done callback, so it is returned exactly once
    whether the task finished, raised or was cancelled before it ran.
    """

    def __init__(self, concurrency: int, logger: logging.Logger | None = None):
        self.concurrency = max(concurrency, 1)
        self._permits = asyncio.Semaphore(self.concurrency)
        self._tasks: list[asyncio.Task] = []
        self._in_flight = 0
        self.max_in_flight = 0
        self.log = logger or logging.getLogger(__name__)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def submit(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        await self._permits.acquire()
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            task = asyncio.create_task(fn(*args))
        except BaseException:
            self._release()
            raise
        task.add_done_callback(self._on_done)
        self._tasks.append(task)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._release()
        if not task.cancelled() and task.exception() is not None:
            self.log.error("Task crashed: %s", task.exception())

    def _release(self) -> None:
        self._in_flight -= 1
        self._permits.release()

    async def wait(self) -> None:
        """Block until every submitted task has finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def cancel(self) -> None:
        """Cancel every task still running and wait for each to unwind."""
        tasks, self._tasks = self._tasks, []
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            self.log.debug("Cancelled %d in-flight tasks", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
