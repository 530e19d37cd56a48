"""Stimulus Router — fans events out to per-agent subscribers.

The router is the single ingestion point for everything an agent can
perceive: world news, user tips, cron ticks, replies from other agents,
self-prompted thoughts and messages arriving over chat channels. Each
ingestion call builds an immutable ``StimulusEvent``, records it in a
bounded history and delivers it to every matching subscription.

Usage:
    router = StimulusRouter()
    router.subscribe("seed-1", on_event, type_filter={StimulusType.TIP})
    await router.ingest_tip(tip)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from swarmcore.config import settings
from swarmcore.exceptions import StimulusError
from swarmcore.types import SeedId
from swarmcore.stimulus.models import (
    AgentReplyPayload,
    ChannelMessagePayload,
    CronTickPayload,
    InternalThoughtPayload,
    Priority,
    RouterStats,
    StimulusEvent,
    StimulusPayload,
    StimulusSource,
    StimulusType,
    Tip,
    TipPayload,
    WorldFeedPayload,
    WorldFeedSource,
)

_logger = logging.getLogger(__name__)

StimulusHandler = Callable[[StimulusEvent], Awaitable[None] | None]

# Priority assigned when the caller does not supply one
DEFAULT_PRIORITY: dict[StimulusType, Priority] = {
    StimulusType.WORLD_FEED: Priority.NORMAL,
    StimulusType.TIP: Priority.NORMAL,
    StimulusType.CRON_TICK: Priority.LOW,
    StimulusType.AGENT_REPLY: Priority.LOW,
    StimulusType.INTERNAL_THOUGHT: Priority.NORMAL,
    StimulusType.CHANNEL_MESSAGE: Priority.NORMAL,
}


@dataclass
class Subscription:
    """One agent's interest in the stimulus stream."""

    seed_id: SeedId
    handler: StimulusHandler
    type_filter: frozenset[StimulusType] | None = None
    category_filter: frozenset[str] | None = None
    active: bool = True

    def matches(self, event: StimulusEvent) -> bool:
        if not self.active:
            return False
        if event.target_seed_ids is not None and self.seed_id not in event.target_seed_ids:
            return False
        if self.type_filter is not None and event.type not in self.type_filter:
            return False
        if self.category_filter is not None and isinstance(event.payload, WorldFeedPayload):
            return event.payload.category in self.category_filter
        return True


class StimulusRouter:
    """Typed pub/sub bus with filtering, targeting and bounded history.

    One subscription per seed. Delivery is isolated per subscriber: a
    handler that raises (synchronously or from its coroutine) is logged
    and the remaining handlers still run. Ordering among subscribers is
    not guaranteed.
    """

    def __init__(self, max_history_size: int | None = None) -> None:
        self._subscriptions: dict[SeedId, Subscription] = {}
        self._history: deque[StimulusEvent] = deque(
            maxlen=max_history_size or settings.router_history_limit,
        )
        self._sources: dict[str, WorldFeedSource] = {}
        self._events_processed = 0
        self._lock = asyncio.Lock()

    # ── Subscriptions ────────────────────────────────────────────────────

    def subscribe(
        self,
        seed_id: SeedId,
        handler: StimulusHandler,
        type_filter: Iterable[StimulusType | str] | None = None,
        category_filter: Iterable[str] | None = None,
    ) -> Subscription:
        """Register (or replace) the subscription for ``seed_id``."""
        types = None
        if type_filter is not None:
            try:
                types = frozenset(StimulusType(t) for t in type_filter)
            except ValueError as e:
                raise StimulusError(f"Invalid type filter for {seed_id}: {e}") from e

        subscription = Subscription(
            seed_id=seed_id,
            handler=handler,
            type_filter=types,
            category_filter=(
                frozenset(category_filter) if category_filter is not None else None
            ),
        )
        self._subscriptions[seed_id] = subscription
        return subscription

    def unsubscribe(self, seed_id: SeedId) -> None:
        self._subscriptions.pop(seed_id, None)

    def pause_subscription(self, seed_id: SeedId) -> None:
        sub = self._subscriptions.get(seed_id)
        if sub:
            sub.active = False

    def resume_subscription(self, seed_id: SeedId) -> None:
        sub = self._subscriptions.get(seed_id)
        if sub:
            sub.active = True

    def get_subscription(self, seed_id: SeedId) -> Subscription | None:
        return self._subscriptions.get(seed_id)

    # ── World feed sources ───────────────────────────────────────────────

    def register_world_feed_source(self, source: WorldFeedSource) -> None:
        self._sources[source.source_id] = source

    def list_world_feed_sources(self) -> list[WorldFeedSource]:
        return list(self._sources.values())

    # ── Ingestion ────────────────────────────────────────────────────────

    async def ingest_world_feed(
        self,
        headline: str,
        category: str,
        source_name: str,
        body: str | None = None,
        source_url: str | None = None,
        source_id: str | None = None,
        priority: Priority | str | None = None,
    ) -> StimulusEvent:
        """Ingest a news item from a world feed source."""
        payload = WorldFeedPayload(
            headline=headline,
            body=body,
            category=category,
            source_name=source_name,
            source_url=source_url,
        )
        event = self._create_event(
            payload,
            StimulusSource(provider_id=source_id or source_name, verified=True),
            priority=priority,
        )
        return await self._dispatch(event)

    async def ingest_tip(self, tip: Tip, priority: Priority | str | None = None) -> StimulusEvent:
        """Ingest a user-submitted tip."""
        attribution = tip.attribution
        payload = TipPayload(
            tip_id=tip.tip_id,
            content=tip.data_source.payload,
            data_source_type=tip.data_source.type,
            attribution=attribution,
        )
        provider = f"tip:{attribution.type}:{attribution.identifier or 'anonymous'}"
        event = self._create_event(
            payload,
            StimulusSource(provider_id=provider, verified=False),
            priority=priority,
            target_seed_ids=tip.target_seed_ids,
        )
        return await self._dispatch(event)

    async def emit_cron_tick(
        self,
        schedule_name: str,
        tick_count: int,
        target_seed_ids: Iterable[SeedId] | None = None,
    ) -> StimulusEvent:
        """Emit a scheduler tick, broadcast or to specific agents."""
        event = self._create_event(
            CronTickPayload(schedule_name=schedule_name, tick_count=tick_count),
            StimulusSource(provider_id="cron", verified=True),
            target_seed_ids=target_seed_ids,
        )
        return await self._dispatch(event)

    async def emit_agent_reply(
        self,
        reply_to_post_id: str,
        reply_from_seed_id: SeedId,
        content: str,
        target_seed_id: SeedId,
        priority: Priority | str | None = None,
        reply_context: str | None = None,
    ) -> StimulusEvent:
        """Deliver one agent's reply to the author of the post it answers."""
        payload = AgentReplyPayload(
            reply_to_post_id=reply_to_post_id,
            reply_from_seed_id=reply_from_seed_id,
            content=content,
            reply_context=reply_context,
        )
        event = self._create_event(
            payload,
            StimulusSource(provider_id=f"agent:{reply_from_seed_id}", verified=True),
            priority=priority,
            target_seed_ids=[target_seed_id],
        )
        return await self._dispatch(event)

    async def emit_post_published(
        self,
        post_id: str,
        author_seed_id: SeedId,
        content: str,
        target_seed_ids: Iterable[SeedId],
        priority: Priority | str | None = None,
    ) -> StimulusEvent:
        """Tell a set of agents that a new post exists so they may respond."""
        payload = AgentReplyPayload(
            reply_to_post_id=post_id,
            reply_from_seed_id=author_seed_id,
            content=content,
        )
        event = self._create_event(
            payload,
            StimulusSource(provider_id=f"agent:{author_seed_id}", verified=True),
            priority=priority or Priority.NORMAL,
            target_seed_ids=target_seed_ids,
        )
        return await self._dispatch(event)

    async def emit_internal_thought(
        self,
        topic: str,
        target_seed_id: SeedId,
        priority: Priority | str | None = None,
    ) -> StimulusEvent:
        """Prompt a single agent to think about ``topic`` on its own."""
        event = self._create_event(
            InternalThoughtPayload(topic=topic),
            StimulusSource(provider_id="system", verified=True),
            priority=priority,
            target_seed_ids=[target_seed_id],
        )
        return await self._dispatch(event)

    async def ingest_channel_message(
        self,
        message: ChannelMessagePayload,
        target_seed_id: SeedId,
        priority: Priority | str | None = None,
    ) -> StimulusEvent:
        """Route an inbound chat message to the agent bound to that channel.

        Messages from the agent's owner are high priority and verified
        unless the caller passes an explicit priority.
        """
        if priority is None and message.is_owner:
            priority = Priority.HIGH
        event = self._create_event(
            message,
            StimulusSource(
                provider_id=f"channel:{message.platform}:{message.sender_platform_id}",
                verified=message.is_owner,
            ),
            priority=priority,
            target_seed_ids=[target_seed_id],
        )
        return await self._dispatch(event)

    async def dispatch_external_event(self, event: StimulusEvent) -> StimulusEvent:
        """Record and deliver an event built elsewhere, as-is."""
        return await self._dispatch(event)

    # ── History and stats ────────────────────────────────────────────────

    def get_recent_events(self, limit: int | None = 50) -> list[StimulusEvent]:
        """The newest ``limit`` events in arrival order (``None`` for all)."""
        events = list(self._history)
        if limit is None:
            return events
        if limit <= 0:
            return []
        return events[-limit:]

    def get_stats(self) -> RouterStats:
        return RouterStats(
            active_subscriptions=sum(1 for s in self._subscriptions.values() if s.active),
            total_subscriptions=len(self._subscriptions),
            total_events_processed=self._events_processed,
            world_feed_sources=len(self._sources),
        )

    @property
    def history_capacity(self) -> int:
        return self._history.maxlen or 0

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _create_event(
        payload: StimulusPayload,
        source: StimulusSource,
        priority: Priority | str | None = None,
        target_seed_ids: Iterable[SeedId] | None = None,
    ) -> StimulusEvent:
        event_type = StimulusType(payload.type)
        return StimulusEvent(
            type=event_type,
            priority=Priority(priority) if priority is not None else DEFAULT_PRIORITY[event_type],
            source=source,
            payload=payload,
            target_seed_ids=tuple(target_seed_ids) if target_seed_ids is not None else None,
        )

    async def _dispatch(self, event: StimulusEvent) -> StimulusEvent:
        async with self._lock:
            self._history.append(event)
            self._events_processed += 1
            targets = [s for s in self._subscriptions.values() if s.matches(event)]

        if targets:
            await asyncio.gather(*(self._deliver(sub, event) for sub in targets))
        return event

    async def _deliver(self, sub: Subscription, event: StimulusEvent) -> None:
        try:
            result: Any = sub.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception(
                "Error delivering event %s (%s) to %s",
                event.event_id, event.type.value, sub.seed_id,
            )
