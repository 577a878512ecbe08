"""Fire-and-forget task tracking.

The event loop only keeps weak references to tasks, so anything started in
the background is held here until it finishes and can be cancelled in one
call at shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundTaskGroup:
    """Holds background tasks until they finish.

    A task that ends with an exception (other than cancellation) is logged
    and counted in ``failed``.
    """

    def __init__(self, label: str = "background task") -> None:
        """Initialize an empty group.

        Args:
            label: Prefix for log messages about tasks of this group

        """
        self.label = label
        self.failed = 0
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        """Number of tasks not yet finished."""
        return len(self._tasks)

    def create(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Start ``coro`` as a tracked task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error("%s %s failed: %s", self.label, task.get_name(), exc, exc_info=exc)

    async def wait(self) -> None:
        """Wait until every tracked task, including ones started meanwhile, is done."""
        while True:
            running = [t for t in self._tasks if not t.done()]
            if not running:
                return
            await asyncio.wait(running)

    async def cancel_all(self, timeout: float | None = None) -> int:
        """Cancel every tracked task and wait for them to unwind.

        Args:
            timeout: Give up waiting after this many seconds

        Returns:
            Number of tasks that were cancelled

        """
        running = [t for t in self._tasks if not t.done()]
        for task in running:
            task.cancel()
        if running:
            _, still_running = await asyncio.wait(running, timeout=timeout)
            if still_running:
                logger.warning(
                    "%d %s(s) did not stop within %.1fs", len(still_running), self.label, timeout
                )
        self._tasks.clear()
        return len(running)
