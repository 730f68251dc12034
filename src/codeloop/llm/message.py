"""Message types for the LLM abstraction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Message:
    """One conversation turn.

    Histories are plain lists of these, append-only within a loop run and
    owned by the loop (or sub-agent) that created them.
    """

    role: Role
    content: str = ""

    # --- Convenience constructors ---

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", content=text)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str) -> Message:
        return cls(role="assistant", content=text)

    def to_openai_dict(self) -> dict[str, Any]:
        """Convert to OpenAI chat format (what litellm expects)."""
        return {"role": self.role, "content": self.content}


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Rough token estimate based on character count.

    ~4 characters per token is a reasonable approximation; exact accounting
    belongs to the provider.
    """
    if not text:
        return 0
    return -(-len(text) // chars_per_token)
