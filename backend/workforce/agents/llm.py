"""Completion service used by the agents.

Wraps the OpenAI SDK pointed at OpenRouter. Retries transient failures
(429 rate limit, 5xx server errors, timeouts, connection errors) with
exponential backoff. Agents only depend on the `CompletionService` protocol,
so tests can hand them a fake with canned replies.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from openai import AsyncOpenAI, APIStatusError, APIConnectionError, APITimeoutError
import httpx

from workforce.config import settings
from workforce.agents.constants import (
    LLM_MAX_RETRIES,
    LLM_RETRY_BASE_DELAY_SECONDS,
    LLM_RETRY_MAX_DELAY_SECONDS,
    LLM_RETRYABLE_STATUS_CODES,
    LLM_TEMPERATURE,
)

logger = logging.getLogger(__name__)


class CompletionService(Protocol):
    async def complete(self, messages: list[dict]) -> Any:
        """Return an object shaped like {choices: [{message: {content: str}}]}."""
        ...


def _is_retryable(exc: Exception) -> bool:
    """Determine if an exception is transient and worth retrying."""
    if isinstance(exc, APITimeoutError):
        return True
    if isinstance(exc, APIConnectionError):
        return True
    if isinstance(exc, APIStatusError) and exc.status_code in LLM_RETRYABLE_STATUS_CODES:
        return True
    return False


def completion_text(response: Any) -> str | None:
    """First choice's message content, or None when absent or not text."""
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else None


class OpenRouterCompletion:
    """CompletionService backed by OpenRouter's OpenAI-compatible API."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None) -> None:
        self._client = client
        self.model = model or settings.OPENROUTER_MODEL

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.OPENROUTER_API_KEY,
                base_url=settings.OPENROUTER_BASE_URL,
                timeout=httpx.Timeout(60.0, connect=10.0),
            )
        return self._client

    async def complete(self, messages: list[dict]):
        kwargs: dict = {
            "model": self.model,
            "messages": messages,
            "temperature": LLM_TEMPERATURE,
        }
        for attempt in range(1, LLM_MAX_RETRIES + 1):
            try:
                return await self.client.chat.completions.create(**kwargs)
            except Exception as exc:
                if attempt < LLM_MAX_RETRIES and _is_retryable(exc):
                    delay = min(
                        LLM_RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1)),
                        LLM_RETRY_MAX_DELAY_SECONDS,
                    )
                    logger.warning(
                        "completion attempt %d/%d failed (%s), retrying in %.1fs",
                        attempt,
                        LLM_MAX_RETRIES,
                        exc,
                        delay,
                    )
                    await asyncio.sleep(delay)
                else:
                    raise

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
