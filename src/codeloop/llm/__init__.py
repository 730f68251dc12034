"""LLM abstraction layer: unified via litellm."""

from codeloop.llm.message import Message, estimate_tokens
from codeloop.llm.provider import (
    ChatProvider,
    LiteLLMProvider,
    ProviderConfig,
    create_provider,
)

__all__ = [
    "Message",
    "estimate_tokens",
    "ChatProvider",
    "LiteLLMProvider",
    "ProviderConfig",
    "create_provider",
]
