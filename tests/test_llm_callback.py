"""Tests for the Anthropic callback, with a stubbed client."""

from types import SimpleNamespace

import anthropic
import pytest

from swarmcore.evolution.prompt import PromptEvolution, ReflectionContext
from swarmcore.exceptions import ReflectionError
from swarmcore.llm import AnthropicCallback


class _StubMessages:
    def __init__(self, blocks):
        self.blocks = blocks
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(content=self.blocks, usage=SimpleNamespace(output_tokens=12))


def _client(*texts: str):
    blocks = [SimpleNamespace(type="text", text=t) for t in texts]
    return SimpleNamespace(messages=_StubMessages(blocks))


@pytest.mark.asyncio
async def test_sends_system_and_user_prompt():
    client = _client('{"adaptations": []}')
    callback = AnthropicCallback(client=client, model="test-model", max_tokens=50)

    text = await callback("be a reflection engine", "here is the activity")

    assert text == '{"adaptations": []}'
    kwargs = client.messages.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["max_tokens"] == 50
    assert kwargs["system"] == "be a reflection engine"
    assert kwargs["messages"] == [{"role": "user", "content": "here is the activity"}]


@pytest.mark.asyncio
async def test_joins_text_blocks_and_skips_others():
    client = _client("part one, ", "part two")
    client.messages.blocks.insert(0, SimpleNamespace(type="tool_use", name="noop"))

    assert await AnthropicCallback(client=client)("s", "u") == "part one, part two"


@pytest.mark.asyncio
async def test_empty_answer_raises():
    with pytest.raises(ReflectionError):
        await AnthropicCallback(client=_client("   "))("s", "u")


@pytest.mark.asyncio
async def test_empty_answer_skips_reflection():
    engine = PromptEvolution()
    engine.register_agent("a", "base")
    for _ in range(20):
        engine.record_session("a")

    result = await engine.maybe_reflect(
        "a", ReflectionContext(name="Nova"), AnthropicCallback(client=_client("")),
    )

    assert result is None
    assert engine.get_state("a").total_reflections == 0


def test_default_client_is_async_anthropic():
    callback = AnthropicCallback(api_key="sk-test")
    assert isinstance(callback._client, anthropic.AsyncAnthropic)
