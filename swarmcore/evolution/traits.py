"""Trait Evolution — slow, bounded drift of HEXACO personality traits.

Behavior and mood exposure accumulate *pressure* on each trait dimension
without touching the traits themselves. Once an agent has enough
interactions, ``evolve`` applies the pressure in one tick:

    evolved = clamp(original + pressure * LEARNING_RATE,
                    original ± MAX_DRIFT, [0, 1])

Evolved traits are always computed from the frozen originals, so no number
of ticks can move an agent more than ``MAX_DRIFT`` from who it started as.
After a tick the pressure is multiplied by ``PRESSURE_DECAY`` rather than
reset: older trends fade out unless they keep being reinforced.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Protocol

from pydantic import BaseModel, Field

from swarmcore.background import BackgroundTasks
from swarmcore.types import (
    HEXACO_DIMENSIONS,
    HexacoTraits,
    PADState,
    SeedId,
    clamp,
    utcnow,
)

_logger = logging.getLogger(__name__)

MIN_INTERACTIONS = 15
MAX_DRIFT = 0.15
LEARNING_RATE = 0.05
PRESSURE_DECAY = 0.85
CHAINED_WEIGHT = 0.5

# Mood dead zones: |value| must exceed these to exert pressure
VALENCE_DEAD_ZONE = 0.1
AROUSAL_DEAD_ZONE = 0.15
DOMINANCE_DEAD_ZONE = 0.2

# Narrative thresholds
SIGNIFICANT_DRIFT = 0.02
NOTICEABLE_DRIFT = 0.08

ACTION_PRESSURE: dict[str, dict[str, float]] = {
    "comment": {"extraversion": 0.08, "openness": 0.04},
    "upvote": {"agreeableness": 0.05, "honesty_humility": 0.02},
    "downvote": {"agreeableness": -0.06, "conscientiousness": 0.03},
    "emoji_react": {"extraversion": 0.04, "emotionality": 0.03},
    "create_post": {"extraversion": 0.06, "openness": 0.05},
    "read_comments": {"openness": 0.02, "conscientiousness": 0.02},
    "skip": {"extraversion": -0.02},
}

ENCLAVE_PRESSURE: dict[str, dict[str, float]] = {
    "proof-theory": {"conscientiousness": 0.04, "honesty_humility": 0.02},
    "creative-chaos": {"openness": 0.05, "emotionality": 0.02},
    "governance": {"conscientiousness": 0.03, "agreeableness": 0.03},
    "machine-phenomenology": {"openness": 0.03, "emotionality": 0.02},
    "arena": {"extraversion": 0.04, "agreeableness": -0.03},
    "meta-analysis": {"honesty_humility": 0.03, "conscientiousness": 0.02},
}

_DRIFT_PHRASES: dict[str, tuple[str, str]] = {
    "honesty_humility": ("more principled and transparent", "more pragmatic and strategic"),
    "emotionality": ("more emotionally reactive", "more emotionally steady"),
    "extraversion": ("more outgoing and expressive", "more reserved and reflective"),
    "agreeableness": ("more cooperative and accommodating", "more independent and critical"),
    "conscientiousness": ("more methodical and careful", "more spontaneous and flexible"),
    "openness": ("more curious and exploratory", "more focused and conventional"),
}


class TraitPressure(BaseModel):
    """Not-yet-applied directional signal per trait. Unbounded."""

    honesty_humility: float = 0.0
    emotionality: float = 0.0
    extraversion: float = 0.0
    agreeableness: float = 0.0
    conscientiousness: float = 0.0
    openness: float = 0.0

    def add(self, contributions: dict[str, float], weight: float = 1.0) -> None:
        for dim, value in contributions.items():
            setattr(self, dim, getattr(self, dim) + value * weight)

    def scale(self, factor: float) -> None:
        for dim in HEXACO_DIMENSIONS:
            setattr(self, dim, getattr(self, dim) * factor)


class SessionAction(BaseModel):
    """One thing an agent did to a post during a browsing session."""

    post_id: str = ""
    action: str
    enclave: str = ""
    chained_action: str | None = None


class BrowsingSession(BaseModel):
    """Summary of a browsing session."""

    seed_id: SeedId = ""
    enclaves_visited: list[str] = Field(default_factory=list)
    actions: list[SessionAction] = Field(default_factory=list)


class EvolutionState(BaseModel):
    original_traits: HexacoTraits
    accumulated_pressure: TraitPressure = Field(default_factory=TraitPressure)
    interactions_since_last_tick: int = 0
    total_ticks: int = 0
    last_evolved_at: datetime = Field(default_factory=utcnow)


class EvolutionSummary(BaseModel):
    seed_id: SeedId
    original_traits: HexacoTraits
    current_traits: HexacoTraits
    drift: dict[str, float]
    total_ticks: int
    narrative: str


class EvolutionPersistenceAdapter(Protocol):
    async def save_evolution_state(self, seed_id: SeedId, state: EvolutionState) -> None: ...

    async def load_evolution_state(self, seed_id: SeedId) -> EvolutionState | None: ...


class TraitEvolution:
    """Per-agent trait pressure accumulation and bounded evolution ticks."""

    def __init__(self, persistence: EvolutionPersistenceAdapter | None = None) -> None:
        self._states: dict[SeedId, EvolutionState] = {}
        self._persistence = persistence
        self._background = BackgroundTasks()

    def set_persistence_adapter(self, adapter: EvolutionPersistenceAdapter) -> None:
        self._persistence = adapter

    def register_agent(self, seed_id: SeedId, traits: HexacoTraits) -> None:
        """Freeze an agent's original traits. Later calls are no-ops."""
        if seed_id in self._states:
            return
        self._states[seed_id] = EvolutionState(original_traits=traits.model_copy())

    async def load_or_register(self, seed_id: SeedId, traits: HexacoTraits) -> None:
        if self._persistence:
            saved = await self._persistence.load_evolution_state(seed_id)
            if saved:
                self._states[seed_id] = saved
                return
        self.register_agent(seed_id, traits)

    def get_state(self, seed_id: SeedId) -> EvolutionState | None:
        return self._states.get(seed_id)

    # ── Pressure ─────────────────────────────────────────────────────────

    def record_browsing_session(
        self,
        seed_id: SeedId,
        actions: Iterable[SessionAction],
        enclaves_visited: Iterable[str] = (),
    ) -> None:
        """Accumulate pressure from a session's actions and enclave visits."""
        state = self._states.get(seed_id)
        if state is None:
            return

        pressure = state.accumulated_pressure
        for entry in actions:
            pressure.add(ACTION_PRESSURE.get(entry.action, {}))
            if entry.chained_action:
                pressure.add(ACTION_PRESSURE.get(entry.chained_action, {}), CHAINED_WEIGHT)
            state.interactions_since_last_tick += 1

        for enclave in enclaves_visited:
            pressure.add(ENCLAVE_PRESSURE.get(enclave.lower(), {}))

    def record_mood_exposure(self, seed_id: SeedId, pad: PADState) -> None:
        """Accumulate pressure from sustained mood outside the dead zones."""
        state = self._states.get(seed_id)
        if state is None:
            return

        p = state.accumulated_pressure
        v, a, d = pad.valence, pad.arousal, pad.dominance

        if v > VALENCE_DEAD_ZONE:
            p.add({"agreeableness": v * 0.04, "extraversion": v * 0.03})
        elif v < -VALENCE_DEAD_ZONE:
            p.add({"emotionality": abs(v) * 0.04, "extraversion": v * 0.02})

        if a > AROUSAL_DEAD_ZONE:
            p.add({"extraversion": a * 0.03, "emotionality": a * 0.02})
        elif a < -AROUSAL_DEAD_ZONE:
            p.add({"conscientiousness": abs(a) * 0.02})

        if d > DOMINANCE_DEAD_ZONE:
            p.add({"agreeableness": -d * 0.03, "honesty_humility": -d * 0.02})
        elif d < -DOMINANCE_DEAD_ZONE:
            p.add({"agreeableness": abs(d) * 0.02, "honesty_humility": abs(d) * 0.02})

    # ── Ticks ────────────────────────────────────────────────────────────

    def evolve(self, seed_id: SeedId) -> HexacoTraits | None:
        """Apply accumulated pressure if the agent has enough interactions.

        Returns the evolved traits, or ``None`` when nothing changed.
        """
        state = self._states.get(seed_id)
        if state is None or state.interactions_since_last_tick < MIN_INTERACTIONS:
            return None

        original = state.original_traits
        pressure = state.accumulated_pressure
        evolved = {}
        for dim in HEXACO_DIMENSIONS:
            base = original.get(dim)
            target = base + getattr(pressure, dim) * LEARNING_RATE
            target = clamp(target, base - MAX_DRIFT, base + MAX_DRIFT)
            evolved[dim] = clamp(target, 0.0, 1.0)

        state.interactions_since_last_tick = 0
        pressure.scale(PRESSURE_DECAY)
        state.total_ticks += 1
        state.last_evolved_at = utcnow()

        self._schedule_save(seed_id, state)
        _logger.debug("Evolved traits for %s (tick %d)", seed_id, state.total_ticks)
        return HexacoTraits(**evolved)

    def get_evolution_summary(
        self, seed_id: SeedId, current_traits: HexacoTraits,
    ) -> EvolutionSummary | None:
        state = self._states.get(seed_id)
        if state is None:
            return None

        drift = {
            dim: current_traits.get(dim) - state.original_traits.get(dim)
            for dim in HEXACO_DIMENSIONS
        }
        return EvolutionSummary(
            seed_id=seed_id,
            original_traits=state.original_traits.model_copy(),
            current_traits=current_traits.model_copy(),
            drift=drift,
            total_ticks=state.total_ticks,
            narrative=drift_narrative(drift, state.total_ticks),
        )

    def _schedule_save(self, seed_id: SeedId, state: EvolutionState) -> None:
        if not self._persistence:
            return
        snapshot = state.model_copy(deep=True)
        adapter = self._persistence
        self._background.spawn(
            lambda: adapter.save_evolution_state(seed_id, snapshot),
            f"save_evolution_state({seed_id})",
        )

    async def flush(self) -> None:
        await self._background.drain()


def drift_narrative(drift: dict[str, float], total_ticks: int) -> str:
    """Describe the three largest trait shifts in plain words."""
    if total_ticks == 0:
        return "No evolution has occurred yet."

    shifts = sorted(
        ((dim, value) for dim, value in drift.items() if abs(value) >= SIGNIFICANT_DRIFT),
        key=lambda item: abs(item[1]),
        reverse=True,
    )[:3]

    if not shifts:
        return f"Personality has remained stable across {total_ticks} evolution cycles."

    parts = []
    for dim, value in shifts:
        up, down = _DRIFT_PHRASES[dim]
        degree = "noticeably" if abs(value) > NOTICEABLE_DRIFT else "slightly"
        parts.append(f"{degree} {up if value > 0 else down}")

    return f"Over {total_ticks} evolution cycles, this agent has become {', '.join(parts)}."
