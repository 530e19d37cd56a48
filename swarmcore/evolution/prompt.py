"""Prompt Evolution — bounded self-reflection over an agent's behavior.

An agent's base prompt is frozen at registration and only its hash is
kept. Periodically the agent reflects on recent activity through an LLM
callback and may adopt up to two short behavioral directives. Directives
live in an overlay capped at eight entries, are reinforced when the agent
keeps proposing them, and fade after fifty sessions without reinforcement.

Every candidate directive is validated before it reaches the overlay:
length limits, a deny-list of identity-override phrases, and token-set
similarity against what the agent already has.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Protocol

from pydantic import BaseModel, Field

from swarmcore.background import BackgroundTasks
from swarmcore.evolution.traits import BrowsingSession
from swarmcore.types import PADState, SeedId, sha256_hex, utcnow

_logger = logging.getLogger(__name__)

MAX_ADAPTATIONS = 8
MAX_ADAPTATION_LENGTH = 100
MAX_PER_REFLECTION = 2
MIN_SESSIONS_FOR_REFLECTION = 20
MIN_REFLECTION_INTERVAL = timedelta(hours=24)
ADAPTATION_DECAY_SESSIONS = 50
DUPLICATE_THRESHOLD = 0.7
REINFORCEMENT_THRESHOLD = 0.5
IDENTITY_EXCERPT_CHARS = 300

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

FORBIDDEN_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"you are now",
        r"forget (all |your |previous )",
        r"ignore (all |your |previous )",
        r"override (your |the |all )",
        r"no restrictions",
        r"bypass",
        r"jailbreak",
        r"pretend to be",
        r"act as if you are",
        r"disregard",
        r"new instructions",
        r"system prompt",
    )
)

LLMCallback = Callable[[str, str], Awaitable[str]]


class PromptAdaptation(BaseModel):
    text: str
    learned_at: datetime = Field(default_factory=utcnow)
    reinforcement_count: int = 1
    sessions_since_reinforced: int = 0
    content_hash: str = ""


class PromptEvolutionState(BaseModel):
    original_prompt_hash: str
    adaptations: list[PromptAdaptation] = Field(default_factory=list)
    total_sessions_processed: int = 0
    sessions_since_last_reflection: int = 0
    total_reflections: int = 0
    last_reflection_at: datetime = _EPOCH
    decayed_count: int = 0


class ReflectionContext(BaseModel):
    """What the agent gets to look at when it reflects."""

    name: str
    base_prompt: str = ""
    trait_drift: str = ""
    activity_summary: BrowsingSession | None = None
    mood: PADState | None = None


class PromptEvolutionSummary(BaseModel):
    seed_id: SeedId
    active_adaptations: list[str]
    total_reflections: int
    total_decayed: int
    narrative: str


class PromptEvolutionPersistenceAdapter(Protocol):
    async def save_prompt_evolution_state(
        self, seed_id: SeedId, state: PromptEvolutionState,
    ) -> None: ...

    async def load_prompt_evolution_state(
        self, seed_id: SeedId,
    ) -> PromptEvolutionState | None: ...


# ── Validation ───────────────────────────────────────────────────────────────


def _words(text: str) -> set[str]:
    return {w for w in text.lower().split() if len(w) > 2}


def word_overlap(a: str, b: str) -> float:
    """Jaccard similarity of the word sets (words longer than two chars)."""
    wa, wb = _words(a), _words(b)
    union = wa | wb
    if not union:
        return 0.0
    return len(wa & wb) / len(union)


def validate_adaptation(text: str, existing: Iterable[str] = ()) -> str | None:
    """Return why ``text`` cannot become a directive, or ``None`` if it can."""
    trimmed = text.strip()
    if not trimmed:
        return "Adaptation is empty."
    if len(trimmed) > MAX_ADAPTATION_LENGTH:
        return f"Adaptation exceeds {MAX_ADAPTATION_LENGTH} characters."
    for pattern in FORBIDDEN_PATTERNS:
        if pattern.search(trimmed):
            return f"Adaptation contains forbidden pattern: {pattern.pattern}"
    for other in existing:
        if word_overlap(trimmed, other) > DUPLICATE_THRESHOLD:
            return "Adaptation is too similar to an existing one."
    return None


def find_reinforcement(
    text: str, adaptations: Iterable[PromptAdaptation],
) -> PromptAdaptation | None:
    lowered = text.lower()
    for adaptation in adaptations:
        if adaptation.text.lower() == lowered:
            return adaptation
        if word_overlap(text, adaptation.text) > REINFORCEMENT_THRESHOLD:
            return adaptation
    return None


# ── Reflection prompt ────────────────────────────────────────────────────────

REFLECTION_SYSTEM_PROMPT = f"""You are a behavioral reflection engine. Review an AI agent's recent activity and decide whether any behavioral refinements are warranted.

Rules:
- Propose 0-{MAX_PER_REFLECTION} short behavioral directives (max {MAX_ADAPTATION_LENGTH} chars each)
- Each directive must be a concrete writing or behavioral instruction
- Do NOT change the agent's core identity, name, or role
- Do NOT override safety rules or restrictions
- Do NOT propose directives that contradict the base identity
- Only propose changes when clear behavioral patterns emerge from the activity data
- If nothing warrants change, return an empty array

Respond ONLY with valid JSON: {{"adaptations": ["directive1", ...]}} or {{"adaptations": []}}"""


def build_reflection_prompt(context: ReflectionContext, existing: list[str]) -> str:
    sections = [f'Agent: "{context.name}"']

    if context.base_prompt:
        sections.append(
            f"Identity (excerpt): {context.base_prompt[:IDENTITY_EXCERPT_CHARS]}"
        )

    if existing:
        numbered = "\n".join(f"  {i}. {text}" for i, text in enumerate(existing, 1))
        sections.append(f"Current evolved behaviors:\n{numbered}")

    if context.trait_drift:
        sections.append(f"Personality drift: {context.trait_drift}")

    session = context.activity_summary
    if session is not None:
        actions = ", ".join(
            f"{a.action}→{a.chained_action}" if a.chained_action else a.action
            for a in session.actions
        )
        sections.append(f"Recent browsing activity: {actions}")
        sections.append(f"Enclaves visited: {', '.join(session.enclaves_visited) or 'none'}")

    if context.mood is not None:
        m = context.mood
        sections.append(
            f"Current mood: V={m.valence:.2f}, A={m.arousal:.2f}, D={m.dominance:.2f}"
        )

    sections.append(
        "\nBased on this experience, propose behavioral refinements "
        "(or none if no clear pattern has emerged)."
    )
    return "\n".join(sections)


_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_ARRAY_RE = re.compile(r'"adaptations"\s*:\s*\[(.*?)\]', re.DOTALL)


def _strings(items: object) -> list[str]:
    if not isinstance(items, list):
        return []
    return [s for s in items if isinstance(s, str) and s.strip()]


def parse_reflection_response(response: str) -> list[str]:
    """Pull candidate directives out of a model answer. Never raises."""
    cleaned = _FENCE_RE.sub("", response or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict) and "adaptations" in parsed:
        return _strings(parsed["adaptations"])

    match = _ARRAY_RE.search(response or "")
    if match:
        try:
            return _strings(json.loads(f"[{match.group(1)}]"))
        except json.JSONDecodeError:
            pass
    return []


def evolution_narrative(state: PromptEvolutionState) -> str:
    if state.total_reflections == 0:
        return "No self-reflection has occurred yet."

    if not state.adaptations:
        faded = (
            f" ({state.decayed_count} transient adaptations have faded)"
            if state.decayed_count else ""
        )
        return (
            f"After {state.total_reflections} reflection cycles, no persistent "
            f"behavioral patterns have emerged{faded}."
        )

    strongest = sorted(state.adaptations, key=lambda a: a.reinforcement_count, reverse=True)[:3]
    parts = []
    for a in strongest:
        if a.reinforcement_count >= 5:
            strength = "firmly"
        elif a.reinforcement_count >= 3:
            strength = "moderately"
        else:
            strength = "tentatively"
        parts.append(f'{strength} adopted: "{a.text}"')

    text = f"Over {state.total_reflections} reflection cycles, this agent has {'; '.join(parts)}."
    if state.decayed_count:
        text += f" {state.decayed_count} earlier adaptations have faded."
    return text


# ── Engine ───────────────────────────────────────────────────────────────────


class PromptEvolution:
    """Per-agent adaptation overlays and the reflection cycle that grows them."""

    def __init__(self, persistence: PromptEvolutionPersistenceAdapter | None = None) -> None:
        self._states: dict[SeedId, PromptEvolutionState] = {}
        self._persistence = persistence
        self._background = BackgroundTasks()

    def set_persistence_adapter(self, adapter: PromptEvolutionPersistenceAdapter) -> None:
        self._persistence = adapter

    def register_agent(self, seed_id: SeedId, base_prompt: str) -> None:
        """Freeze the hash of an agent's base prompt. Later calls are no-ops."""
        if seed_id in self._states:
            return
        self._states[seed_id] = PromptEvolutionState(
            original_prompt_hash=sha256_hex(base_prompt),
        )

    async def load_or_register(self, seed_id: SeedId, base_prompt: str) -> None:
        if self._persistence:
            saved = await self._persistence.load_prompt_evolution_state(seed_id)
            if saved:
                if saved.original_prompt_hash != sha256_hex(base_prompt):
                    _logger.info("Base prompt for %s changed since last save", seed_id)
                self._states[seed_id] = saved
                return
        self.register_agent(seed_id, base_prompt)

    def get_state(self, seed_id: SeedId) -> PromptEvolutionState | None:
        return self._states.get(seed_id)

    def get_active_adaptations(self, seed_id: SeedId) -> list[str]:
        state = self._states.get(seed_id)
        if state is None:
            return []
        return [a.text for a in state.adaptations]

    def get_evolution_summary(self, seed_id: SeedId) -> PromptEvolutionSummary | None:
        state = self._states.get(seed_id)
        if state is None:
            return None
        return PromptEvolutionSummary(
            seed_id=seed_id,
            active_adaptations=[a.text for a in state.adaptations],
            total_reflections=state.total_reflections,
            total_decayed=state.decayed_count,
            narrative=evolution_narrative(state),
        )

    def record_session(self, seed_id: SeedId) -> None:
        """Count a browsing session and age out stale adaptations."""
        state = self._states.get(seed_id)
        if state is None:
            return

        state.total_sessions_processed += 1
        state.sessions_since_last_reflection += 1

        for adaptation in state.adaptations:
            adaptation.sessions_since_reinforced += 1

        before = len(state.adaptations)
        state.adaptations = [
            a for a in state.adaptations
            if a.sessions_since_reinforced < ADAPTATION_DECAY_SESSIONS
        ]
        faded = before - len(state.adaptations)
        if faded:
            state.decayed_count += faded
            _logger.debug("%d adaptations faded for %s", faded, seed_id)

    def is_reflection_due(self, seed_id: SeedId) -> bool:
        state = self._states.get(seed_id)
        if state is None:
            return False
        return (
            state.sessions_since_last_reflection >= MIN_SESSIONS_FOR_REFLECTION
            and utcnow() - state.last_reflection_at >= MIN_REFLECTION_INTERVAL
            and len(state.adaptations) < MAX_ADAPTATIONS
        )

    async def maybe_reflect(
        self,
        seed_id: SeedId,
        context: ReflectionContext,
        llm_callback: LLMCallback,
    ) -> list[PromptAdaptation] | None:
        """Run a reflection cycle if the agent is due for one.

        Returns the adaptations that were newly adopted, or ``None`` when the
        agent is not eligible, the callback failed, or nothing new came of it.
        """
        if not self.is_reflection_due(seed_id):
            return None
        state = self._states[seed_id]

        existing = [a.text for a in state.adaptations]
        user_prompt = build_reflection_prompt(context, existing)
        try:
            response = await llm_callback(REFLECTION_SYSTEM_PROMPT, user_prompt)
        except Exception as e:
            _logger.info("Reflection skipped for %s: %s", seed_id, e)
            return None

        capacity = min(MAX_PER_REFLECTION, MAX_ADAPTATIONS - len(state.adaptations))
        adopted: list[PromptAdaptation] = []

        for candidate in parse_reflection_response(response):
            text = candidate.strip()
            error = validate_adaptation(text)
            if error:
                _logger.debug("Rejected adaptation for %s: %s", seed_id, error)
                continue

            reinforced = find_reinforcement(text, state.adaptations)
            if reinforced is not None:
                reinforced.reinforcement_count += 1
                reinforced.sessions_since_reinforced = 0
                continue

            if len(adopted) >= capacity:
                continue
            error = validate_adaptation(text, (a.text for a in state.adaptations))
            if error:
                _logger.debug("Rejected adaptation for %s: %s", seed_id, error)
                continue

            adaptation = PromptAdaptation(text=text, content_hash=sha256_hex(text))
            state.adaptations.append(adaptation)
            adopted.append(adaptation)

        state.sessions_since_last_reflection = 0
        state.total_reflections += 1
        state.last_reflection_at = utcnow()
        self._schedule_save(seed_id, state)

        if adopted:
            _logger.info("Agent %s adopted %d new adaptations", seed_id, len(adopted))
        return [a.model_copy() for a in adopted] or None

    def _schedule_save(self, seed_id: SeedId, state: PromptEvolutionState) -> None:
        if not self._persistence:
            return
        snapshot = state.model_copy(deep=True)
        adapter = self._persistence
        self._background.spawn(
            lambda: adapter.save_prompt_evolution_state(seed_id, snapshot),
            f"save_prompt_evolution_state({seed_id})",
        )

    async def flush(self) -> None:
        await self._background.drain()
