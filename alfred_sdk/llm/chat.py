"""
OpenAI-compatible chat model.

Thin async wrapper exposing ``ainvoke(messages, ...)`` and returning a
``ChatInvokeCompletion`` whose ``content`` is the model's text.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from openai import AsyncOpenAI

from alfred_sdk.llm.messages import Message, to_openai_messages

logger = logging.getLogger(__name__)


@dataclass
class ChatInvokeCompletion:
    """Result of one chat call."""
    content: str
    model: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)


class BaseChatModel(Protocol):
    """Anything that can answer a list of chat messages."""

    model: str

    async def ainvoke(
        self,
        messages: list[Message],
        max_tokens: int | None = None,
        response_format: dict[str, Any] | None = None,
    ) -> ChatInvokeCompletion: ...


class ChatOpenAI:
    """
    Chat model backed by the OpenAI API (or any compatible endpoint).

    Example:
        ```python
        llm = ChatOpenAI(model="gpt-4o-mini")
        response = await llm.ainvoke([UserMessage(content="hello")])
        print(response.content)
        ```
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.0,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self._api_key = api_key
        self._base_url = base_url
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Created on first call."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def ainvoke(
        self,
        messages: list[Message],
        max_tokens: int | None = None,
        response_format: dict[str, Any] | None = None,
    ) -> ChatInvokeCompletion:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(messages),
            "temperature": self.temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if response_format is not None:
            kwargs["response_format"] = response_format

        completion = await self.client.chat.completions.create(**kwargs)

        choice = completion.choices[0] if completion.choices else None
        content = (choice.message.content if choice else None) or ""
        usage = completion.usage.model_dump() if completion.usage else {}
        logger.debug(f"LLM call model={self.model} tokens={usage.get('total_tokens')}")
        return ChatInvokeCompletion(content=content, model=completion.model, usage=usage)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
