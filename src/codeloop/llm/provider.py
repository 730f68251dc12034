"""LLM provider layer on top of litellm.

The agent loop only needs two capabilities from a provider:

    chat(history)   -> full response text
    stream(history) -> async iterator of text chunks

Anything satisfying that contract is usable (tests use scripted fakes).
litellm handles vendor details (Anthropic, OpenAI, Gemini, Ollama, ...)
from the model string prefix and reads API keys from env vars. Retry with
exponential backoff wraps the litellm call itself, outside the loop.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from codeloop.llm.message import Message

if TYPE_CHECKING:
    from litellm import CustomStreamWrapper, ModelResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for an LLM provider."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    request_timeout: float | None = None  # seconds, passed through to litellm


@runtime_checkable
class ChatProvider(Protocol):
    """Protocol for LLM providers consumed by the agent loop."""

    async def chat(self, history: Sequence[Message]) -> str:
        """Return the complete response for ``history``."""
        ...

    def stream(self, history: Sequence[Message]) -> AsyncIterator[str]:
        """Yield the response for ``history`` incrementally."""
        ...


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    """Unified LLM provider using litellm.

    litellm handles provider detection from the model string prefix
    (e.g. "anthropic/claude-...", "gemini/gemini-...", "openai/gpt-...")
    and reads API keys from environment variables automatically.
    """

    _config: ProviderConfig

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def configured(
        self, model: str | None = None, temperature: float | None = None
    ) -> LiteLLMProvider:
        """Derive a provider with per-agent overrides applied."""
        changes: dict[str, Any] = {}
        if model:
            changes["model"] = model
        if temperature is not None:
            changes["temperature"] = temperature
        if not changes:
            return self
        return LiteLLMProvider(_config=dataclasses.replace(self._config, **changes))

    async def chat(self, history: Sequence[Message]) -> str:
        response = await _acompletion_with_retry(**self._build_kwargs(history))
        choices = getattr(response, "choices", None)
        if not choices:
            return ""
        return choices[0].message.content or ""

    async def stream(self, history: Sequence[Message]) -> AsyncIterator[str]:
        """Stream from litellm, yielding text deltas."""
        kwargs = self._build_kwargs(history)
        kwargs["stream"] = True

        response = await _acompletion_with_retry(**kwargs)

        async for chunk in response:  # type: ignore[union-attr]
            text = _chunk_text(chunk)
            if text:
                yield text

    def _build_kwargs(self, history: Sequence[Message]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": [m.to_openai_dict() for m in history],
        }

        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature

        if self._config.max_tokens is not None:
            kwargs["max_tokens"] = self._config.max_tokens

        if self._config.request_timeout is not None:
            kwargs["timeout"] = self._config.request_timeout

        return kwargs


@retry(
    retry=retry_if_exception_type((ConnectionError, TimeoutError, OSError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _acompletion_with_retry(**kwargs: Any) -> CustomStreamWrapper | ModelResponse:
    """Call litellm.acompletion with retry on transient errors."""
    import litellm

    return await litellm.acompletion(**kwargs)


def _chunk_text(chunk: Any) -> str:
    """Extract the text delta from a litellm streaming chunk.

    litellm chunks have the same shape as OpenAI ChatCompletionChunk objects:
    ``chunk.choices[0].delta.content``.
    """
    choices = getattr(chunk, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(
    model: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    request_timeout: float | None = None,
) -> LiteLLMProvider:
    """Create a LiteLLM provider.

    Args:
        model: Model name with provider prefix (e.g. "anthropic/claude-sonnet-4-5-20250929",
               "openai/gpt-4o", "ollama/qwen2.5-coder").
        temperature: Sampling temperature.
        max_tokens: Max output tokens.
        request_timeout: Per-request timeout in seconds.
    """
    config = ProviderConfig(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        request_timeout=request_timeout,
    )
    return LiteLLMProvider(_config=config)
