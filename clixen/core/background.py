"""Detached execution for best-effort side effects.

Audit writes, quota increments and typing indicators run here so they never
sit on the path that produces the transport acknowledgment. Failures are
logged and counted, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from clixen.core.metrics import BACKGROUND_FAILURES_TOTAL

logger = logging.getLogger(__name__)


class BackgroundTasks:
    def __init__(self) -> None:
        # Strong references; the event loop only keeps weak ones.
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, awaitable: Awaitable[Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(awaitable)
        task.set_name(name)
        self._tasks.add(task)

        def _on_done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                logger.warning("Background task %s was cancelled", name)
            elif exc := t.exception():
                BACKGROUND_FAILURES_TOTAL.labels(task=name).inc()
                logger.error("Background task %s failed: %s", name, exc, exc_info=exc)

        task.add_done_callback(_on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for outstanding tasks; used at shutdown and in tests."""
        while pending := [task for task in self._tasks if not task.done()]:
            await asyncio.wait(pending, timeout=timeout)
            if timeout is not None:
                break
        # Let done-callbacks run before returning.
        await asyncio.sleep(0)


__all__ = ["BackgroundTasks"]
