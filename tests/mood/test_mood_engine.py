"""Tests for the mood engine."""

import pytest

from swarmcore.mood.engine import (
    MoodEngine,
    average_pad,
    baseline_from_traits,
    describe_mood,
    stimulus_text,
)
from swarmcore.mood.models import MoodDelta
from swarmcore.persistence import InMemoryStateStore
from swarmcore.stimulus.models import (
    CronTickPayload,
    StimulusEvent,
    StimulusSource,
    StimulusType,
    WorldFeedPayload,
)
from swarmcore.types import HexacoTraits, PADState


def _news(headline: str, body: str | None = None) -> StimulusEvent:
    return StimulusEvent(
        type=StimulusType.WORLD_FEED,
        source=StimulusSource(provider_id="test"),
        payload=WorldFeedPayload(headline=headline, body=body, category="c", source_name="s"),
    )


class _FixedAnalyzer:
    def __init__(self, delta):
        self.delta = delta
        self.texts = []

    async def analyze(self, text):
        self.texts.append(text)
        return self.delta


def test_neutral_traits_give_neutral_baseline():
    base = baseline_from_traits(HexacoTraits())
    assert base == PADState()


def test_extravert_baseline_is_pleasant_and_dominant():
    base = baseline_from_traits(HexacoTraits(extraversion=0.9, agreeableness=0.5))
    assert base.valence > 0
    assert base.dominance > 0


def test_initialize_agent_is_idempotent():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits(), baseline=PADState(valence=0.2))
    engine.update_mood("a", MoodDelta(valence=0.3))
    engine.initialize_agent("a", HexacoTraits(), baseline=PADState(valence=-0.9))

    assert engine.get_state("a").valence == pytest.approx(0.5)
    assert engine.get_baseline("a").valence == pytest.approx(0.2)
    assert engine.agent_count == 1


def test_update_mood_clamps_each_dimension():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits())

    state = engine.update_mood("a", MoodDelta(valence=5.0, arousal=-5.0, dominance=0.4))

    assert state == PADState(valence=1.0, arousal=-1.0, dominance=0.4)


def test_update_mood_unknown_agent():
    engine = MoodEngine()
    assert engine.update_mood("ghost", MoodDelta(valence=0.1)) is None
    assert engine.get_state("ghost") is None


def test_get_state_returns_a_copy():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits())
    engine.get_state("a").valence = 0.9
    assert engine.get_state("a").valence == 0.0


def test_history_is_bounded_and_ordered():
    engine = MoodEngine(history_limit=3)
    engine.initialize_agent("a", HexacoTraits())
    for i in range(5):
        engine.update_mood("a", MoodDelta(valence=0.01, trigger=f"t{i}"))

    history = engine.get_history("a", limit=10)

    assert [h.delta.trigger for h in history] == ["t2", "t3", "t4"]
    assert history[-1].state_after.valence == pytest.approx(0.05)


def test_decay_moves_toward_baseline():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits(), baseline=PADState())
    engine.update_mood("a", MoodDelta(valence=0.8, arousal=-0.4))

    state = engine.decay_toward_baseline("a", rate=0.5)

    assert state.valence == pytest.approx(0.4)
    assert state.arousal == pytest.approx(-0.2)


def test_decay_all_full_rate_resets():
    engine = MoodEngine()
    for seed in ("a", "b"):
        engine.initialize_agent(seed, HexacoTraits(), baseline=PADState(valence=0.1))
        engine.update_mood(seed, MoodDelta(valence=0.5))

    engine.decay_all(rate=1.0)

    assert engine.get_state("a").valence == pytest.approx(0.1)
    assert engine.get_state("b").valence == pytest.approx(0.1)


def test_collective_mood_skips_unknown_agents():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits(), baseline=PADState(valence=0.4))
    engine.initialize_agent("b", HexacoTraits(), baseline=PADState(valence=0.0, arousal=0.6))

    mood = engine.get_collective_mood(["a", "b", "ghost"])

    assert mood.valence == pytest.approx(0.2)
    assert mood.arousal == pytest.approx(0.3)
    assert engine.get_collective_mood(["ghost"]) is None


def test_average_pad_empty():
    assert average_pad([]) is None
    assert average_pad([None, None]) is None


def test_describe_mood():
    assert describe_mood(PADState()) == "neutral"
    assert describe_mood(PADState(valence=0.5, arousal=0.5, dominance=0.2)) == "excited"
    assert describe_mood(PADState(valence=-0.5, arousal=0.5, dominance=-0.2)) == "anxious"
    assert describe_mood(PADState(valence=-0.5, arousal=-0.5, dominance=-0.2)) == "sad"


def test_stimulus_text():
    assert stimulus_text(_news("Headline", "Body")) == "Headline. Body"
    assert stimulus_text(_news("Headline")) == "Headline"
    tick = StimulusEvent(
        type=StimulusType.CRON_TICK,
        source=StimulusSource(provider_id="cron"),
        payload=CronTickPayload(schedule_name="h", tick_count=1),
    )
    assert stimulus_text(tick) == ""


@pytest.mark.asyncio
async def test_apply_stimulus_with_heuristic():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits())

    state = await engine.apply_stimulus("a", _news("Critical outage: the deploy failed"))

    assert state.valence < 0
    assert state.arousal > 0
    last = engine.get_history("a")[-1]
    assert last.delta.trigger == "keyword sentiment"


@pytest.mark.asyncio
async def test_apply_stimulus_records_event_id_as_source():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits())
    analyzer = _FixedAnalyzer(MoodDelta(valence=0.2, trigger="praise"))
    event = _news("Nice work")

    await engine.apply_stimulus("a", event, analyzer=analyzer)

    assert analyzer.texts == ["Nice work"]
    assert engine.get_history("a")[-1].delta.source == event.event_id


@pytest.mark.asyncio
async def test_apply_stimulus_falls_back_to_heuristic():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits())

    state = await engine.apply_stimulus(
        "a", _news("Great breakthrough shipped"), analyzer=_FixedAnalyzer(None),
    )

    assert state is not None
    assert state.valence > 0


@pytest.mark.asyncio
async def test_apply_stimulus_without_sentiment_is_noop():
    engine = MoodEngine()
    engine.initialize_agent("a", HexacoTraits())

    assert await engine.apply_stimulus("a", _news("Quarterly table")) is None
    assert await engine.apply_stimulus("ghost", _news("Great news")) is None
    assert engine.get_history("a") == []


@pytest.mark.asyncio
async def test_state_round_trips_through_store():
    store = InMemoryStateStore()
    engine = MoodEngine(persistence=store)
    engine.initialize_agent("a", HexacoTraits(), baseline=PADState(arousal=0.1))
    engine.update_mood("a", MoodDelta(valence=0.3))
    await engine.flush()

    restored = MoodEngine(persistence=store)
    await restored.load_or_initialize("a", HexacoTraits(extraversion=1.0))

    assert restored.get_state("a").valence == pytest.approx(0.3)
    assert restored.get_baseline("a").arousal == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_decay_is_persisted():
    store = InMemoryStateStore()
    engine = MoodEngine(persistence=store)
    engine.initialize_agent("a", HexacoTraits(), baseline=PADState())
    engine.update_mood("a", MoodDelta(valence=0.8))
    engine.decay_toward_baseline("a", rate=1.0)
    await engine.flush()

    restored = MoodEngine(persistence=store)
    await restored.load_or_initialize("a", HexacoTraits())

    assert engine.get_state("a").valence == pytest.approx(0.0)
    assert restored.get_state("a") == engine.get_state("a")


@pytest.mark.asyncio
async def test_save_failure_does_not_surface(failing_store):
    engine = MoodEngine(persistence=failing_store)
    engine.initialize_agent("a", HexacoTraits())

    state = engine.update_mood("a", MoodDelta(valence=0.1))
    await engine.flush()

    assert state.valence == pytest.approx(0.1)
    assert failing_store.attempts == 1
