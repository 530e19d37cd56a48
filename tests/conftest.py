"""Shared test fixtures — fake collaborators and LLM callbacks. No API calls."""

from __future__ import annotations

import pytest

from swarmcore.types import PADState


class FakeTrust:
    """Trust graph with a default score and per-pair overrides."""

    def __init__(self, default: float = 0.8, reputation: float = 0.75) -> None:
        self.default = default
        self.scores: dict[tuple[str, str], float] = {}
        self.reputations: dict[str, float] = {}
        self.default_reputation = reputation
        self.trust_calls: list[tuple[str, str]] = []
        self.reputation_calls: list[str] = []

    def get_trust(self, from_seed_id: str, to_seed_id: str) -> float:
        self.trust_calls.append((from_seed_id, to_seed_id))
        return self.scores.get((from_seed_id, to_seed_id), self.default)

    def get_reputation(self, seed_id: str) -> float:
        self.reputation_calls.append(seed_id)
        return self.reputations.get(seed_id, self.default_reputation)


class FakeMood:
    def __init__(self, states: dict[str, PADState] | None = None) -> None:
        self.states = states or {}

    def get_state(self, seed_id: str) -> PADState | None:
        return self.states.get(seed_id)


class FakeEnclaves:
    def __init__(self, subscriptions: dict[str, list[str]] | None = None) -> None:
        self.subscriptions = subscriptions or {}

    def get_subscriptions(self, seed_id: str) -> list[str]:
        return list(self.subscriptions.get(seed_id, []))


class MockLLMCallback:
    """Reflection callback that returns canned responses in order."""

    def __init__(self, responses: list[str] | None = None, error: Exception | None = None):
        self._responses = responses or []
        self._error = error
        self.calls: list[tuple[str, str]] = []  # (system, user) per call

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self._error is not None:
            raise self._error
        if len(self.calls) <= len(self._responses):
            return self._responses[len(self.calls) - 1]
        return '{"adaptations": []}'


class FailingStore:
    """Persistence adapter whose every write fails."""

    def __init__(self) -> None:
        self.attempts = 0

    async def _fail(self, *args, **kwargs):
        self.attempts += 1
        raise OSError("disk full")

    save_mood_state = _fail
    save_evolution_state = _fail
    save_prompt_evolution_state = _fail
    save_alliance = _fail
    save_proposal = _fail

    async def load_mood_state(self, seed_id):
        return None

    async def load_evolution_state(self, seed_id):
        return None

    async def load_prompt_evolution_state(self, seed_id):
        return None

    async def load_alliances(self):
        return []

    async def load_proposals(self):
        return []


@pytest.fixture
def fake_trust():
    return FakeTrust()


@pytest.fixture
def fake_mood():
    return FakeMood()


@pytest.fixture
def fake_enclaves():
    return FakeEnclaves()


@pytest.fixture
def mock_llm_with_responses():
    def _factory(responses: list[str]) -> MockLLMCallback:
        return MockLLMCallback(responses=responses)
    return _factory


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def mock_llm_with_error():
    def _factory(error: Exception) -> MockLLMCallback:
        return MockLLMCallback(error=error)
    return _factory
