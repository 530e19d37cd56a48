"""Anthropic-backed text callback for reflection and sentiment.

Engines only need an async ``(system_prompt, user_prompt) -> text``
callable. ``AnthropicCallback`` is that callable over the Anthropic SDK;
token budgets stay small since reflections are a few hundred tokens.
"""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from swarmcore.config import settings
from swarmcore.exceptions import ReflectionError

logger = logging.getLogger(__name__)


class AnthropicCallback:
    """Single-turn completion with a system prompt and one user message."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.3,
        client: Any = None,
    ) -> None:
        if client is None:
            client = anthropic.AsyncAnthropic(api_key=api_key or settings.anthropic_api_key)
        self._client = client
        self._model = model or settings.default_model
        self._max_tokens = max_tokens or settings.reflection_max_tokens
        self._temperature = temperature

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise ReflectionError(f"{self._model} returned no text")
        usage = getattr(response, "usage", None)
        logger.debug("LLM call used %s output tokens", getattr(usage, "output_tokens", "?"))
        return text
