"""
LLM Message Types

Role/content messages exchanged with the completion service and the
normalized response returned by a single completion request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    """Role of a message in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class LLMMessage:
    """A message in the conversation."""

    role: MessageRole
    content: str = ""

    @classmethod
    def system(cls, content: str) -> LLMMessage:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> LLMMessage:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LLMMessage:
        """Build from an OpenAI-style {"role", "content"} mapping."""
        return cls(role=MessageRole(data["role"]), content=data.get("content") or "")

    def to_openai_format(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class LLMResponse:
    """
    Response from a single completion request.

    Attributes:
        content: Text content of the response
        finish_reason: Why the model stopped ("stop", "length")
        usage: Token usage statistics
        credential: Name of the credential that served the request
    """

    content: str = ""
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    credential: str = ""
