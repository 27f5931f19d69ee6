"""Offline provider that streams a canned answer word by word."""

import asyncio
from collections.abc import AsyncIterator

from mirror.models import ChatOptions, ConversationMessage, StreamChunk
from mirror.providers.base import AIProvider, raise_if_cancelled


class MockProvider(AIProvider):
    """Streams ``response_text`` one word per chunk, then an empty final chunk.

    Used for ``MOCK_BRAINS=1`` runs and in tests. ``chunk_delay`` spaces the
    chunks out so interleaving with other streams can be observed.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        response_text: str = "Mock response.",
        chunk_delay: float = 0.0,
    ) -> None:
        self._name = provider_name
        self._response_text = response_text
        self._chunk_delay = chunk_delay
        self.calls: list[tuple[list[ConversationMessage], str]] = []

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def chat(
        self,
        messages: list[ConversationMessage],
        system_prompt: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append((list(messages), system_prompt))
        for word in self._response_text.split(" "):
            raise_if_cancelled(options, self._name)
            await asyncio.sleep(self._chunk_delay)
            yield StreamChunk(delta=f"{word} ")
        yield StreamChunk(delta="", is_final=True)
