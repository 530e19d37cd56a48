"""Stimulus records — the immutable events agents perceive.

Every ``StimulusEvent`` carries a payload whose ``type`` tag selects one of
six variants. Pydantic resolves the variant from the tag, so consumers can
``match`` on the payload class instead of probing its shape.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from swarmcore.types import SeedId, new_id, utcnow


class StimulusType(str, Enum):
    WORLD_FEED = "world_feed"
    TIP = "tip"
    CRON_TICK = "cron_tick"
    AGENT_REPLY = "agent_reply"
    INTERNAL_THOUGHT = "internal_thought"
    CHANNEL_MESSAGE = "channel_message"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    BREAKING = "breaking"


# ── Payload variants ─────────────────────────────────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True)


class WorldFeedPayload(_Payload):
    type: Literal["world_feed"] = "world_feed"
    headline: str
    body: str | None = None
    category: str
    source_name: str
    source_url: str | None = None


class TipAttribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "anonymous"  # "github", "wallet", "anonymous", ...
    identifier: str | None = None


class TipPayload(_Payload):
    type: Literal["tip"] = "tip"
    tip_id: str
    content: str
    data_source_type: str = "text"
    attribution: TipAttribution = Field(default_factory=TipAttribution)


class CronTickPayload(_Payload):
    type: Literal["cron_tick"] = "cron_tick"
    schedule_name: str
    tick_count: int


class AgentReplyPayload(_Payload):
    type: Literal["agent_reply"] = "agent_reply"
    reply_to_post_id: str
    reply_from_seed_id: SeedId
    content: str
    reply_context: str | None = None  # e.g. "dissent", "agreement"


class InternalThoughtPayload(_Payload):
    type: Literal["internal_thought"] = "internal_thought"
    topic: str


class ChannelMessagePayload(_Payload):
    type: Literal["channel_message"] = "channel_message"
    platform: str
    conversation_id: str
    conversation_type: str = "direct"  # "direct", "group", "channel"
    content: str
    sender_name: str = ""
    sender_platform_id: str
    message_id: str = ""
    is_owner: bool = False


StimulusPayload = Annotated[
    Union[
        WorldFeedPayload,
        TipPayload,
        CronTickPayload,
        AgentReplyPayload,
        InternalThoughtPayload,
        ChannelMessagePayload,
    ],
    Field(discriminator="type"),
]


# ── Event ────────────────────────────────────────────────────────────────────


class StimulusSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: str
    verified: bool = False


class StimulusEvent(BaseModel):
    """A single stimulus. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=new_id)
    type: StimulusType
    timestamp: datetime = Field(default_factory=utcnow)
    priority: Priority = Priority.NORMAL
    source: StimulusSource
    payload: StimulusPayload
    target_seed_ids: tuple[SeedId, ...] | None = None

    @model_validator(mode="after")
    def _payload_matches_type(self) -> StimulusEvent:
        if self.payload.type != self.type.value:
            raise ValueError(
                f"payload type '{self.payload.type}' does not match event type '{self.type.value}'"
            )
        return self

    @property
    def is_targeted(self) -> bool:
        return self.target_seed_ids is not None


# ── Router inputs and bookkeeping ────────────────────────────────────────────


class TipDataSource(BaseModel):
    type: str = "text"  # "text", "url", ...
    payload: str


class Tip(BaseModel):
    """A user-submitted tip, as it arrives from the tipping surface."""

    tip_id: str = Field(default_factory=new_id)
    amount: float = 0.0
    data_source: TipDataSource
    attribution: TipAttribution = Field(default_factory=TipAttribution)
    visibility: str = "public"
    created_at: datetime = Field(default_factory=utcnow)
    status: str = "queued"
    target_seed_ids: list[SeedId] | None = None


class WorldFeedSource(BaseModel):
    source_id: str
    name: str
    type: str = "rss"  # "rss", "api", "webhook"
    url: str | None = None
    categories: list[str] = Field(default_factory=list)
    is_active: bool = True


class RouterStats(BaseModel):
    active_subscriptions: int = 0
    total_subscriptions: int = 0
    total_events_processed: int = 0
    world_feed_sources: int = 0
