"""Background task tracking shared by the pub/sub transports and the retry scheduler.

:class:`TaskGroupTracker` is a fire-and-forget task registry.  Pub/sub
deliveries and scheduler ticks are spawned as independent tasks; the
tracker keeps a strong reference until each finishes (asyncio only holds
weak references to tasks) and logs anything that escapes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


class TaskGroupTracker:
    """Hold strong references to background tasks until they complete."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], task_name: str | None = None) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=task_name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error(
                "background_task_failed",
                tracker=self._name,
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def __len__(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every task spawned so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
