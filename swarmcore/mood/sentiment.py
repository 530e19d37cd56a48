"""Sentiment analysis — turns stimulus text into a PAD mood delta.

Two analyzers ship with the library. ``HeuristicSentimentAnalyzer`` scores
text against small keyword lexicons and needs nothing external.
``LLMSentimentAnalyzer`` asks a language model for the delta and falls back
to ``None`` whenever the answer is unusable, so the caller can try the
heuristic instead.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Awaitable, Callable, Protocol

from swarmcore.mood.models import MoodDelta
from swarmcore.types import clamp

_logger = logging.getLogger(__name__)

# Largest per-dimension change a single stimulus may cause
MAX_STIMULUS_DELTA = 0.3

TextInvoker = Callable[[str, str], Awaitable[str]]


class SentimentAnalyzer(Protocol):
    async def analyze(self, text: str) -> MoodDelta | None: ...


# ── Heuristic ────────────────────────────────────────────────────────────────

_POSITIVE = {
    "success", "successfully", "win", "wins", "great", "good", "thanks", "love",
    "breakthrough", "improved", "fixed", "shipped", "agree", "excellent",
    "celebrate", "progress", "helpful", "brilliant", "safe",
}
_NEGATIVE = {
    "fail", "failed", "failure", "outage", "crash", "broken", "bad", "wrong",
    "hate", "loss", "lost", "disaster", "attack", "disagree", "worse",
    "terrible", "harm", "bug", "caused",
}
_AROUSING = {
    "breaking", "urgent", "critical", "now", "alert", "emergency", "rapid",
    "shocking", "massive", "explosive",
}
_ASSERTIVE = {"must", "demand", "always", "never", "certainly", "control", "lead"}
_SUBMISSIVE = {"maybe", "perhaps", "unsure", "sorry", "help", "confused", "afraid"}

_WORD_RE = re.compile(r"[a-z']+")


class HeuristicSentimentAnalyzer:
    """Lexicon-based analyzer; every hit nudges one dimension by ``step``."""

    def __init__(self, step: float = 0.05) -> None:
        self.step = step

    async def analyze(self, text: str) -> MoodDelta | None:
        words = _WORD_RE.findall(text.lower())
        if not words:
            return None

        pos = sum(1 for w in words if w in _POSITIVE)
        neg = sum(1 for w in words if w in _NEGATIVE)
        hot = sum(1 for w in words if w in _AROUSING)
        up = sum(1 for w in words if w in _ASSERTIVE)
        down = sum(1 for w in words if w in _SUBMISSIVE)

        if not (pos or neg or hot or up or down):
            return None

        # Strongly valenced text is arousing on its own
        arousal = hot + 0.5 * (pos + neg)
        return MoodDelta(
            valence=_bounded((pos - neg) * self.step),
            arousal=_bounded(arousal * self.step),
            dominance=_bounded((up - down) * self.step),
            trigger="keyword sentiment",
        )


# ── LLM ──────────────────────────────────────────────────────────────────────

SENTIMENT_SYSTEM_PROMPT = """You estimate how a piece of text shifts the mood of the agent reading it.

Use the PAD model: valence (pleasant vs unpleasant), arousal (activating vs calming),
dominance (in control vs overpowered). Each delta is a number between -0.3 and 0.3.

Respond ONLY with JSON: {"valence": 0.0, "arousal": 0.0, "dominance": 0.0, "trigger": "short reason"}"""

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class LLMSentimentAnalyzer:
    """Analyzer backed by any ``(system, user) -> text`` invoker."""

    def __init__(self, invoker: TextInvoker, max_chars: int = 2000) -> None:
        self._invoker = invoker
        self._max_chars = max_chars

    async def analyze(self, text: str) -> MoodDelta | None:
        if not text.strip():
            return None
        try:
            raw = await self._invoker(SENTIMENT_SYSTEM_PROMPT, text[: self._max_chars])
        except Exception as e:
            _logger.info("LLM sentiment analysis failed: %s", e)
            return None
        return parse_sentiment_response(raw)


def parse_sentiment_response(raw: str) -> MoodDelta | None:
    """Extract a delta from a model answer; ``None`` when nothing usable."""
    match = _JSON_OBJECT_RE.search(raw or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    values = {}
    for dim in ("valence", "arousal", "dominance"):
        value = data.get(dim, 0.0)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return None
        values[dim] = _bounded(float(value))

    trigger = data.get("trigger")
    return MoodDelta(
        **values,
        trigger=str(trigger)[:120] if trigger else "llm sentiment",
    )


def _bounded(value: float) -> float:
    return clamp(value, -MAX_STIMULUS_DELTA, MAX_STIMULUS_DELTA)
