"""Detached background work.

Request handlers hand coroutines to :class:`TaskSupervisor` and return
immediately. The supervisor keeps a strong reference to every task, logs
anything that escapes a task body, and drains in-flight work on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger


class TaskSupervisor:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False
        self._log = logger.bind(component="tasks")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn[T](self, coro: Coroutine[Any, Any, T], *, name: str) -> asyncio.Task[T]:
        if self._closed:
            coro.close()
            raise RuntimeError(f"Supervisor is shut down, refusing to start {name}")
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        self._log.debug("Spawned {name}", name=name)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._log.warning("Task {name} cancelled", name=task.get_name())
            return
        if (exc := task.exception()) is not None:
            self._log.opt(exception=exc).error(
                "Task {name} failed with an unhandled error", name=task.get_name(),
            )

    async def join(self) -> None:
        """Wait until every task running now, and every task they spawn, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def drain(self, timeout: float | None = None) -> None:
        """Stop accepting work, wait up to ``timeout`` for in-flight tasks, cancel the rest."""
        self._closed = True
        if not self._tasks:
            return
        self._log.info("Draining {n} background task(s)", n=len(self._tasks))
        try:
            await asyncio.wait_for(self.join(), timeout)
        except TimeoutError:
            leftover = list(self._tasks)
            self._log.warning("Cancelling {n} task(s) still running after {t}s", n=len(leftover), t=timeout)
            for task in leftover:
                task.cancel()
            await asyncio.gather(*leftover, return_exceptions=True)
