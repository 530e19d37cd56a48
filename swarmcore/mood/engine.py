"""Mood Engine — per-agent PAD affect state.

Each agent has a current PAD state and a baseline derived from its
personality. Stimuli push the state around through additive deltas;
``decay_toward_baseline`` pulls it back. Every applied delta is kept in a
bounded audit history so mood changes can be traced to what caused them.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable, Protocol

from swarmcore.background import BackgroundTasks
from swarmcore.config import settings
from swarmcore.mood.models import MoodDelta, MoodRecord, MoodUpdate
from swarmcore.mood.sentiment import HeuristicSentimentAnalyzer, SentimentAnalyzer
from swarmcore.stimulus.models import (
    AgentReplyPayload,
    ChannelMessagePayload,
    CronTickPayload,
    InternalThoughtPayload,
    StimulusEvent,
    TipPayload,
    WorldFeedPayload,
)
from swarmcore.types import HexacoTraits, PADState, SeedId, clamp

_logger = logging.getLogger(__name__)


class MoodPersistenceAdapter(Protocol):
    async def save_mood_state(self, seed_id: SeedId, record: MoodRecord) -> None: ...

    async def load_mood_state(self, seed_id: SeedId) -> MoodRecord | None: ...


def baseline_from_traits(traits: HexacoTraits) -> PADState:
    """Resting mood implied by a personality.

    Extraverted, agreeable agents rest slightly pleasant; emotional ones
    rest more aroused; extraverted, less agreeable ones more dominant.
    """
    x = traits.extraversion - 0.5
    a = traits.agreeableness - 0.5
    e = traits.emotionality - 0.5
    o = traits.openness - 0.5
    h = traits.honesty_humility - 0.5
    return PADState(
        valence=0.4 * x + 0.4 * a - 0.2 * e,
        arousal=0.5 * e + 0.3 * x + 0.2 * o,
        dominance=0.5 * x - 0.3 * a - 0.2 * h,
    ).clamped()


def average_pad(states: Iterable[PADState | None]) -> PADState | None:
    """Per-dimension mean over the states that exist; ``None`` if none do."""
    present = [s for s in states if s is not None]
    if not present:
        return None
    n = len(present)
    return PADState(
        valence=sum(s.valence for s in present) / n,
        arousal=sum(s.arousal for s in present) / n,
        dominance=sum(s.dominance for s in present) / n,
    )


def describe_mood(state: PADState) -> str:
    """Coarse label for a PAD state."""
    if abs(state.valence) < 0.1 and abs(state.arousal) < 0.1:
        return "neutral"
    if state.valence >= 0:
        if state.arousal >= 0:
            return "excited" if state.dominance >= 0 else "delighted"
        return "content" if state.dominance >= 0 else "calm"
    if state.arousal >= 0:
        return "frustrated" if state.dominance >= 0 else "anxious"
    return "bored" if state.dominance >= 0 else "sad"


def stimulus_text(event: StimulusEvent) -> str:
    """The text of an event that sentiment analysis should read."""
    match event.payload:
        case WorldFeedPayload(headline=headline, body=body):
            return f"{headline}. {body}" if body else headline
        case TipPayload(content=content):
            return content
        case AgentReplyPayload(content=content):
            return content
        case ChannelMessagePayload(content=content):
            return content
        case InternalThoughtPayload(topic=topic):
            return topic
        case CronTickPayload():
            return ""
    return ""


class MoodEngine:
    """Owns the PAD state of every registered agent."""

    def __init__(
        self,
        persistence: MoodPersistenceAdapter | None = None,
        history_limit: int | None = None,
    ) -> None:
        self._states: dict[SeedId, PADState] = {}
        self._baselines: dict[SeedId, PADState] = {}
        self._history: dict[SeedId, deque[MoodUpdate]] = {}
        self._history_limit = history_limit or settings.mood_history_limit
        self._persistence = persistence
        self._background = BackgroundTasks()
        self._heuristic = HeuristicSentimentAnalyzer()

    def set_persistence_adapter(self, adapter: MoodPersistenceAdapter) -> None:
        self._persistence = adapter

    # ── Registration ─────────────────────────────────────────────────────

    def initialize_agent(
        self,
        seed_id: SeedId,
        traits: HexacoTraits,
        baseline: PADState | None = None,
    ) -> None:
        """Start an agent at its baseline mood. Later calls are no-ops."""
        if seed_id in self._states:
            return
        base = (baseline or baseline_from_traits(traits)).clamped()
        self._baselines[seed_id] = base
        self._states[seed_id] = base.model_copy()
        self._history[seed_id] = deque(maxlen=self._history_limit)

    async def load_or_initialize(self, seed_id: SeedId, traits: HexacoTraits) -> None:
        """Restore saved mood if the adapter has it, otherwise initialize."""
        if self._persistence:
            record = await self._persistence.load_mood_state(seed_id)
            if record:
                self._states[seed_id] = record.state.clamped()
                self._baselines[seed_id] = record.baseline.clamped()
                self._history[seed_id] = deque(maxlen=self._history_limit)
                return
        self.initialize_agent(seed_id, traits)

    # ── Reads ────────────────────────────────────────────────────────────

    def get_state(self, seed_id: SeedId) -> PADState | None:
        state = self._states.get(seed_id)
        return state.model_copy() if state else None

    def get_baseline(self, seed_id: SeedId) -> PADState | None:
        base = self._baselines.get(seed_id)
        return base.model_copy() if base else None

    def get_history(self, seed_id: SeedId, limit: int = 20) -> list[MoodUpdate]:
        """Most recent applied deltas, oldest first."""
        history = self._history.get(seed_id)
        if not history:
            return []
        return list(history)[-limit:]

    def get_collective_mood(self, seed_ids: Iterable[SeedId]) -> PADState | None:
        return average_pad(self._states.get(s) for s in seed_ids)

    @property
    def agent_count(self) -> int:
        return len(self._states)

    # ── Updates ──────────────────────────────────────────────────────────

    def update_mood(self, seed_id: SeedId, delta: MoodDelta) -> PADState | None:
        """Apply an additive delta, clamped per dimension to [-1, 1]."""
        current = self._states.get(seed_id)
        if current is None:
            return None

        updated = PADState(
            valence=clamp(current.valence + delta.valence, -1.0, 1.0),
            arousal=clamp(current.arousal + delta.arousal, -1.0, 1.0),
            dominance=clamp(current.dominance + delta.dominance, -1.0, 1.0),
        )
        self._states[seed_id] = updated
        self._history[seed_id].append(
            MoodUpdate(seed_id=seed_id, delta=delta, state_after=updated)
        )
        self._schedule_save(seed_id)
        return updated.model_copy()

    def decay_toward_baseline(self, seed_id: SeedId, rate: float | None = None) -> PADState | None:
        """Close a fraction of the gap between current mood and baseline."""
        current = self._states.get(seed_id)
        if current is None:
            return None
        base = self._baselines[seed_id]
        r = clamp(settings.mood_decay_rate if rate is None else rate, 0.0, 1.0)
        decayed = PADState(
            valence=current.valence + (base.valence - current.valence) * r,
            arousal=current.arousal + (base.arousal - current.arousal) * r,
            dominance=current.dominance + (base.dominance - current.dominance) * r,
        )
        self._states[seed_id] = decayed
        self._schedule_save(seed_id)
        return decayed.model_copy()

    def decay_all(self, rate: float | None = None) -> None:
        for seed_id in list(self._states):
            self.decay_toward_baseline(seed_id, rate)

    async def apply_stimulus(
        self,
        seed_id: SeedId,
        event: StimulusEvent,
        analyzer: SentimentAnalyzer | None = None,
    ) -> PADState | None:
        """Run sentiment analysis on an event and apply the resulting delta.

        Returns the new state, or ``None`` when the agent is unknown or the
        event carries no readable sentiment.
        """
        if seed_id not in self._states:
            return None
        text = stimulus_text(event)
        if not text:
            return None

        delta = await (analyzer or self._heuristic).analyze(text)
        if delta is None and analyzer is not None and analyzer is not self._heuristic:
            delta = await self._heuristic.analyze(text)
        if delta is None:
            return None

        delta = delta.model_copy(update={"source": event.event_id})
        return self.update_mood(seed_id, delta)

    # ── Persistence ──────────────────────────────────────────────────────

    def _schedule_save(self, seed_id: SeedId) -> None:
        if not self._persistence:
            return
        record = MoodRecord(
            state=self._states[seed_id].model_copy(),
            baseline=self._baselines[seed_id].model_copy(),
        )
        adapter = self._persistence
        self._background.spawn(
            lambda: adapter.save_mood_state(seed_id, record),
            f"save_mood_state({seed_id})",
        )

    async def flush(self) -> None:
        """Wait for pending background saves."""
        await self._background.drain()
