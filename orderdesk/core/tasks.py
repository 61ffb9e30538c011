"""Async task tracking helpers."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger


TaskErrorHandler = Callable[[str, BaseException], None]


class TaskManager:
    """Owns background asyncio tasks so errors are logged and shutdown can join them."""

    def __init__(
        self,
        *,
        logger: LoggerLike = None,
        on_task_error: Optional[TaskErrorHandler] = None,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._tasks: Dict[str, asyncio.Task[Any]] = {}
        self._on_task_error = on_task_error
        self._counter = itertools.count(1)

    # ------------------------------------------------------------------
    # Task lifecycle

    def create(self, name: str, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        """Spawn a tracked task; names are suffixed so repeats never collide."""

        key = f"{name}#{next(self._counter)}"
        task = asyncio.create_task(self._run_task(key, coro), name=key)
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._tasks.pop(key, None))
        self._logger.debug("Task created: %s", key)
        return task

    async def _run_task(self, name: str, coro: Awaitable[Any]) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            self._logger.debug("Task cancelled: %s", name)
            raise
        except Exception as exc:
            self._logger.exception("Task error: %s", name)
            if self._on_task_error:
                self._on_task_error(name, exc)
            return None

    async def join(self, *, timeout: float = 5.0) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) finishes."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        current = asyncio.current_task()
        while True:
            pending = [task for task in self._tasks.values() if task is not current and not task.done()]
            remaining = deadline - loop.time()
            if not pending or remaining <= 0:
                return
            await self._wait_for_tasks(pending, timeout=remaining)

    async def cancel_all(self, *, reason: str = "shutdown", timeout: float = 5.0) -> None:
        """Cancel every tracked task except the caller and wait for them to finish."""

        current = asyncio.current_task()
        tasks = [task for task in self._tasks.values() if task is not current and not task.done()]
        if not tasks:
            return

        self._logger.info("Cancelling %d tasks (%s)", len(tasks), reason)
        for task in tasks:
            task.cancel()
        await self._wait_for_tasks(tasks, timeout=timeout)

    async def _wait_for_tasks(self, tasks: Iterable[asyncio.Task[Any]], *, timeout: float) -> None:
        pending = {task for task in tasks if not task.done()}
        if not pending:
            return
        await asyncio.wait(pending, timeout=timeout)

    # ------------------------------------------------------------------
    # Introspection

    def active_count(self) -> int:
        return len(self._tasks)


__all__ = ["TaskManager", "TaskErrorHandler"]
