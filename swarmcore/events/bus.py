"""Event Bus — in-process pub/sub for engine notifications.

Engines that change social structure publish what happened here, separate
from their call-and-response API. Topics are dotted ("alliance.formed") and
subscriptions accept shell-style wildcards: "alliance.*" matches every
alliance event, "*" matches everything.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections import defaultdict, deque
from datetime import datetime
from typing import Any, Callable, Awaitable

from pydantic import BaseModel, Field

from swarmcore.types import new_id, utcnow

_logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Awaitable[None]]


class Event(BaseModel):
    """A published engine event."""

    id: str = Field(default_factory=new_id)
    topic: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class EventBus:
    """Async pub/sub bus with wildcard topic matching.

    Handlers for one event run concurrently; a failing handler is logged
    and never affects the publisher or the other handlers.
    """

    def __init__(self, history_limit: int = 500) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._history: deque[Event] = deque(maxlen=history_limit)
        self._lock = asyncio.Lock()

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Subscribe to events matching a topic pattern."""
        self._subscribers[pattern].append(handler)

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        """Remove a subscription."""
        handlers = self._subscribers.get(pattern, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, topic: str, data: dict | None = None, source: str = "") -> Event:
        """Publish an event to all matching subscribers."""
        event = Event(topic=topic, data=data or {}, source=source)

        async with self._lock:
            self._history.append(event)

        tasks = []
        for pattern, handlers in list(self._subscribers.items()):
            if fnmatch.fnmatch(topic, pattern):
                for handler in handlers:
                    tasks.append(self._call(handler, event))

        if tasks:
            await asyncio.gather(*tasks)

        return event

    async def _call(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception:
            _logger.exception("Event handler failed for %s", event.topic)

    def history(self, topic_filter: str = "*", limit: int = 50) -> list[Event]:
        """Recent events, newest first, optionally filtered by topic pattern."""
        if topic_filter == "*":
            events = list(self._history)
        else:
            events = [
                e for e in self._history
                if fnmatch.fnmatch(e.topic, topic_filter)
            ]
        return list(reversed(events[-limit:]))

    @property
    def subscriber_count(self) -> int:
        return sum(len(h) for h in self._subscribers.values())

    def topics(self) -> list[str]:
        """All topics that have been published."""
        return list({e.topic for e in self._history})
