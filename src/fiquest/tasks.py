"""Fire-and-forget task group for post-commit side effects.

Audit rows, notifications and follow-up evaluations run after the primary
transaction has committed. They must never fail the request that caused
them, but their failures must stay observable: every failure is logged and
counted in ``failure_count``, and the most recent ones are kept in
``failures``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)

MAX_RECENT_FAILURES = 100


class DetachedTasks:
    """Tracks detached tasks so they can be awaited on shutdown or in tests."""

    def __init__(self, max_failures: int = MAX_RECENT_FAILURES) -> None:
        self._pending: set[asyncio.Task[Any]] = set()
        self.failures: deque[tuple[str, BaseException]] = deque(maxlen=max_failures)
        self.failure_count = 0

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop without awaiting it."""
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failures.append((task.get_name(), exc))
            self.failure_count += 1
            logger.warning("Detached task %s failed: %s", task.get_name(), exc, exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until no task is pending, including tasks spawned while waiting."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear_failures(self) -> list[tuple[str, BaseException]]:
        """Return the retained failures and reset both the list and the counter."""
        failures = list(self.failures)
        self.failures.clear()
        self.failure_count = 0
        return failures


detached = DetachedTasks()
