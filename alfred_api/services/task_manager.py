"""
Background runs for asynchronous webhooks.

One task per request id. A finished task removes itself and logs its
failure, if any; the outcome already reached the caller through the
progress stream.
"""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class TaskManager:
    """Request-id tagged background tasks."""

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    async def start(self, coro: Coroutine[Any, Any, Any], *, tag: str) -> asyncio.Task:
        """
        Schedule ``coro`` under ``tag``.

        Raises:
            RuntimeError: A run with the same tag is still in flight; ``coro`` is closed unawaited
        """
        if self.is_running(tag):
            coro.close()
            raise RuntimeError(f"Request '{tag}' is already running")

        task = asyncio.create_task(coro, name=tag)
        self._tasks[tag] = task
        task.add_done_callback(lambda t: self._finished(tag, t))
        logger.debug(f"Started background run '{tag}' ({len(self._tasks)} active)")
        return task

    def is_running(self, tag: str) -> bool:
        task = self._tasks.get(tag)
        return task is not None and not task.done()

    async def cancel(self, *, tag: str, reason: str = "(not given)") -> bool:
        """Cancel the run under ``tag`` and wait for it. False when nothing was running."""
        task = self._tasks.get(tag)
        if task is None or task.done():
            return False
        task.cancel(reason)
        logger.info(f"Cancelling run '{tag}': {reason}")
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        logger.info(f"Cancelling {len(tasks)} background runs")
        for task in tasks:
            task.cancel("Shutting down")
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def get_active_tasks(self) -> list[str]:
        return [tag for tag, task in self._tasks.items() if not task.done()]

    def _finished(self, tag: str, task: asyncio.Task) -> None:
        if self._tasks.get(tag) is task:
            del self._tasks[tag]
        if not task.cancelled() and (exc := task.exception()) is not None:
            logger.warning(f"Background run '{tag}' failed: {type(exc).__name__}: {exc}")
