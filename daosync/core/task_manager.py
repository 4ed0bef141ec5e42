"""
Background task bookkeeping for poll loops and in-flight submissions.

Every long-lived coroutine the client starts (a poll loop per cache key, a
shielded mutation submission, a scoped read) is created through a
``TaskManager`` so it can be cancelled as a group and never outlives its
owner silently.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger


class TaskManager:
    """Tracks tasks created on behalf of one owner."""

    def __init__(self, name: str = "TaskManager") -> None:
        self.name = name
        self.tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def create_task(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a task."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"[{self.name}] cannot create tasks after shutdown")

        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._task_done)
        logger.debug("[{}] Started task {}", self.name, task.get_name())
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)
        if task.cancelled():
            logger.debug("[{}] Task {} cancelled", self.name, task.get_name())
        elif (exc := task.exception()) is not None:
            logger.error("[{}] Task {} failed: {}", self.name, task.get_name(), exc)

    def cancel_all(self) -> int:
        """Request cancellation of every tracked task without waiting."""
        pending = [task for task in self.tasks if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)

    async def drain(self) -> None:
        """Wait for tracked tasks to finish on their own."""
        pending = [task for task in self.tasks if not task.done()]
        if pending:
            logger.debug("[{}] Draining {} tasks", self.name, len(pending))
            await asyncio.wait(pending)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel all tracked tasks and wait for them to finish."""
        if self._closed:
            return
        self._closed = True

        pending = [task for task in self.tasks if not task.done()]
        if not pending:
            return

        logger.debug("[{}] Shutting down {} tasks", self.name, len(pending))
        for task in pending:
            task.cancel()

        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        for task in still_pending:
            logger.warning(
                "[{}] Task {} did not stop within {}s",
                self.name,
                task.get_name(),
                timeout,
            )
        self.tasks.clear()

    def __len__(self) -> int:
        return len(self.tasks)

    def __bool__(self) -> bool:
        return bool(self.tasks)
