"""Fire-and-forget background tasks with failures contained at the task boundary."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Spawns detached coroutines and keeps them alive until they finish.

    The event loop only holds weak references to tasks, so a spawned
    coroutine must be referenced somewhere until it completes. Any exception
    a task raises is consumed here and never propagates to the spawner.

    Tasks spawned with ``quiet=True`` are ones whose result is also awaited
    elsewhere (through :func:`asyncio.shield`); their failures are expected
    and only logged at debug level.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str = "",
        quiet: bool = False,
    ) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name or None)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, quiet))
        return task

    def _on_done(self, task: asyncio.Task[Any], quiet: bool) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is None:
            return
        if quiet:
            logger.debug("Task %s failed: %s", task.get_name(), exc)
        else:
            logger.error(
                "Unhandled error in background task %s: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
