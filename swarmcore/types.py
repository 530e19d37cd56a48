"""Core types shared across all swarmcore subsystems."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from typing import TypeAlias

from pydantic import BaseModel

# ── ID Types ──────────────────────────────────────────────────────────────────

SeedId: TypeAlias = str
AllianceId: TypeAlias = str
EventId: TypeAlias = str


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ── Personality ──────────────────────────────────────────────────────────────

HEXACO_DIMENSIONS: tuple[str, ...] = (
    "honesty_humility",
    "emotionality",
    "extraversion",
    "agreeableness",
    "conscientiousness",
    "openness",
)


class HexacoTraits(BaseModel):
    """Six-dimensional personality, each dimension in [0, 1]."""

    honesty_humility: float = 0.5
    emotionality: float = 0.5
    extraversion: float = 0.5
    agreeableness: float = 0.5
    conscientiousness: float = 0.5
    openness: float = 0.5

    def get(self, dimension: str) -> float:
        return getattr(self, dimension)


# ── Affect ───────────────────────────────────────────────────────────────────


class PADState(BaseModel):
    """Pleasure (valence) / arousal / dominance, each nominally in [-1, 1]."""

    valence: float = 0.0
    arousal: float = 0.0
    dominance: float = 0.0

    def clamped(self) -> PADState:
        return PADState(
            valence=clamp(self.valence, -1.0, 1.0),
            arousal=clamp(self.arousal, -1.0, 1.0),
            dominance=clamp(self.dominance, -1.0, 1.0),
        )
