"""Fire-and-forget background work for engines.

Engines hand persistence writes to a ``BackgroundTasks`` set instead of
awaiting them. A write runs as its own asyncio task; if it fails the error
is logged and dropped, so the engine call that triggered it is unaffected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

_logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Holds references to in-flight background tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, work: Callable[[], Awaitable[Any]], label: str) -> asyncio.Task | None:
        """Schedule ``work()`` on the running loop without waiting for it.

        ``work`` is a zero-argument callable so nothing is created when
        there is no loop to run it on.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.warning("No running event loop; %s dropped", label)
            return None

        task = loop.create_task(self._guard(work, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(work: Callable[[], Awaitable[Any]], label: str) -> None:
        try:
            await work()
        except Exception as e:
            _logger.warning("%s failed: %s", label, e)

    async def drain(self) -> None:
        """Wait for every pending task (used at shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    @property
    def pending(self) -> int:
        return len(self._tasks)
