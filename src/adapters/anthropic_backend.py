"""Anthropic classification backend adapter.

One request per channel batch, no conversation state. Errors and timeouts are
raised as ClassificationBackendError so the core can fall back to keywords.
"""

from __future__ import annotations

import logging
from typing import Optional

import anthropic

from core.config import BACKEND_ANTHROPIC, ClassifierConfig
from core.errors import ClassificationBackendError

LOGGER = logging.getLogger(__name__)


class AnthropicBackend:
    """Classification backend using the Anthropic Messages API."""

    def __init__(self, api_key: str, config: ClassifierConfig) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._model = config.model
        self._max_tokens = config.max_tokens
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=config.timeout_seconds,
            max_retries=max(0, config.max_retries),
        )

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=0,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ClassificationBackendError(f"Anthropic API error: {exc}") from exc

        LOGGER.debug(
            "Classification reply: input_tokens=%s output_tokens=%s",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise ClassificationBackendError("Anthropic returned an empty reply")
        return text


def build_backend(api_key: Optional[str], config: ClassifierConfig) -> Optional[AnthropicBackend]:
    """Return a backend when one is configured, else None (keyword-only mode)."""

    if config.backend != BACKEND_ANTHROPIC:
        LOGGER.info("Classifier backend set to %s, using keyword classification", config.backend)
        return None
    if not api_key:
        LOGGER.warning("ANTHROPIC_API_KEY is not set, using keyword classification")
        return None
    return AnthropicBackend(api_key, config)
