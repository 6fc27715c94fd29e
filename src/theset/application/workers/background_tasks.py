# Hey future me - this is where ALL fire-and-forget work goes:
#   - track-catalog fetch after an artist gains a Spotify id
#   - venue sync triggered by POST /api/save-show
#   - setlist import when an artist's cached data is sparse
#
# The triggering request never awaits these and never sees their errors. Each
# task has its OWN error handling (logged here, swallowed), is bounded by a
# semaphore so a burst of page views can't spawn 500 vendor calls, and is deduped
# by name while in flight ("tracks:<artist>" twice = one fetch).
#
# Tasks are NOT tied to the request lifecycle: a client disconnecting does not
# cancel them. On shutdown the lifespan drains them with a timeout, then cancels
# whatever is left.
"""Background task runner for fire-and-forget secondary work."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class BackgroundTaskRunner:
    """Run named coroutines in the background with bounded concurrency."""

    def __init__(self, max_concurrent: int = 4) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> list[str]:
        return list(self._tasks)

    def is_running(self, name: str) -> bool:
        return name in self._tasks

    def submit(self, name: str, factory: TaskFactory) -> asyncio.Task[None] | None:
        """Schedule ``factory()`` unless a task with this name is in flight.

        Returns the task, or None when deduplicated or shutting down.
        """
        if self._closed:
            logger.warning("Background runner closed, dropping task %s", name)
            return None
        if name in self._tasks:
            logger.debug("Background task %s already running, skipping", name)
            return None

        task = asyncio.create_task(self._run(name, factory), name=name)
        self._tasks[name] = task
        task.add_done_callback(lambda _t: self._tasks.pop(name, None))
        return task

    async def _run(self, name: str, factory: TaskFactory) -> None:
        async with self._semaphore:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Background task %s cancelled", name)
                raise
            except Exception as e:
                self.failed += 1
                logger.exception(
                    "Background task %s failed: %s",
                    name,
                    e,
                    extra={"task_name": name, "error_type": type(e).__name__},
                )
            else:
                self.completed += 1
                logger.debug("Background task %s finished", name)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tasks (used by tests and shutdown)."""
        while self._tasks:
            tasks = list(self._tasks.values())
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in done:
                if self._tasks.get(task.get_name()) is task:
                    del self._tasks[task.get_name()]
            if pending:
                logger.warning(
                    "%d background task(s) still running after %.1fs",
                    len(pending),
                    timeout or 0.0,
                )
                return

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Stop accepting work, drain, then cancel leftovers."""
        self._closed = True
        await self.drain(timeout=timeout)
        leftovers = list(self._tasks.values())
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
            logger.info("Cancelled %d background task(s) on shutdown", len(leftovers))

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.pending,
            "completed": self.completed,
            "failed": self.failed,
            "closed": self._closed,
        }
