"""Mood records."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from swarmcore.types import PADState, SeedId, utcnow


class MoodDelta(BaseModel):
    """An additive change to a PAD state, with what caused it."""

    valence: float = 0.0
    arousal: float = 0.0
    dominance: float = 0.0
    trigger: str = ""
    source: str = ""  # event id, agent id, or subsystem name


class MoodUpdate(BaseModel):
    """Audit record of one applied delta."""

    seed_id: SeedId
    delta: MoodDelta
    state_after: PADState
    timestamp: datetime = Field(default_factory=utcnow)


class MoodRecord(BaseModel):
    """Persisted mood state of one agent."""

    state: PADState
    baseline: PADState
    updated_at: datetime = Field(default_factory=utcnow)
