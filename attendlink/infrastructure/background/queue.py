# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Detached background work for the linking services.

Push dispatch, cache writes and event publication from realtime callbacks
must never block the action that triggered them. They are submitted here
as asyncio tasks after the triggering write has committed. The queue keeps
a strong reference to every task until it finishes and logs failures,
so nothing is silently dropped by the garbage collector.

Example:
    queue = BackgroundTaskQueue()
    queue.submit(dispatcher.dispatch(entry, "1234-12345", Role.PARENT), name="push")
    ...
    await queue.drain()  # at shutdown
"""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTaskQueue:
    """Tracks fire-and-forget tasks on the running event loop.

    Attributes:
        pending_count: Number of tasks that have not finished yet.
        failure_count: Number of tasks that finished with an exception.
    """

    def __init__(self) -> None:
        """Initialize an empty queue."""
        self._tasks: set[asyncio.Task[Any]] = set()
        self._failure_count = 0
        self._closed = False

    @property
    def pending_count(self) -> int:
        """Number of unfinished tasks."""
        return len(self._tasks)

    @property
    def failure_count(self) -> int:
        """Number of tasks that raised."""
        return self._failure_count

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        name: str | None = None,
    ) -> asyncio.Task[Any] | None:
        """Schedule a coroutine without awaiting it.

        Args:
            coro: The coroutine to run.
            name: Task name used in logs.

        Returns:
            The created task, or None if the queue is shut down.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        if self._closed:
            coro.close()
            logger.warning("Background queue closed, dropping task %s", name)
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.debug("Background task cancelled: %s", task.get_name())
            return

        error = task.exception()
        if error is not None:
            self._failure_count += 1
            logger.error(
                "Background task %s failed: %s",
                task.get_name(),
                str(error),
                exc_info=error,
            )

    async def drain(self) -> None:
        """Wait until every submitted task, including ones they submit, finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding tasks and refuse new ones."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Background queue shut down (%d tasks cancelled)", len(tasks))
