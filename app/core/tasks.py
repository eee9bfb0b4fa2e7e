"""In-process background task execution for pipeline runs and jobs."""

import asyncio
from collections.abc import Coroutine
from typing import Any

from app.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    """
    Owns fire-and-forget asyncio tasks.

    Keeps strong references until each task finishes, logs any exception a
    task ends with, and cancels whatever is still running on shutdown.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.bind(task=name).debug("background_task_submitted")
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.bind(task=task.get_name()).warning("background_task_cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.bind(task=task.get_name(), error=str(exc)).opt(exception=exc).error(
                "background_task_failed"
            )

    async def join(self) -> None:
        """Wait for every task submitted so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Give running tasks ``timeout`` seconds, then cancel the rest."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.bind(pending=len(tasks)).info("background_tasks_draining")
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.bind(cancelled=len(still_running)).warning("background_tasks_cancelled")
