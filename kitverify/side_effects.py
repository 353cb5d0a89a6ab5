"""
Side Effects — Fire-and-Forget Work

Lookup counters and verification logs must never delay or fail a
verification. They are scheduled here as detached asyncio tasks.

The runner keeps a strong reference to every pending task (the event
loop only holds weak ones), logs failures, and keeps the most recent
errors so /health and tests can see them. drain() waits for everything
in flight, for shutdown and for tests.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Optional

from kitverify.logging import get_logger

logger = get_logger("side_effects")


class SideEffects:
    """Owns detached tasks and records their failures."""

    def __init__(self, max_errors: int = 100):
        self._tasks: set[asyncio.Task] = set()
        self.errors: deque[dict] = deque(maxlen=max_errors)
        self.error_count = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self, name: str, func: Callable[..., Awaitable], *args: Any,
    ) -> Optional[asyncio.Task]:
        """Schedule ``func(*args)`` without awaiting it. Never raises."""
        try:
            task = asyncio.ensure_future(func(*args))
        except Exception as e:
            self._record(name, e)
            return None
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._record(task.get_name(), exc)

    def _record(self, name: str, exc: BaseException) -> None:
        self.error_count += 1
        self.errors.append({"task": name, "error": str(exc), "error_type": type(exc).__name__})
        logger.warning(
            f"Side effect {name} failed: {exc}",
            extra={"task": name, "error": str(exc), "error_type": type(exc).__name__},
        )

    async def drain(self) -> None:
        """Wait for every pending task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
