"""Chat message types."""

from dataclasses import dataclass
from typing import Literal


@dataclass
class SystemMessage:
    content: str
    role: Literal["system"] = "system"


@dataclass
class UserMessage:
    content: str
    role: Literal["user"] = "user"


@dataclass
class AssistantMessage:
    content: str
    role: Literal["assistant"] = "assistant"


Message = SystemMessage | UserMessage | AssistantMessage


def to_openai_messages(messages: list[Message]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]
