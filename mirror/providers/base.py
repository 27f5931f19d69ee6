"""Abstract base for all LLM backends."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from mirror.models import ChatOptions, ConversationMessage, StreamChunk


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class MirrorAborted(Exception):
    """Raised when a run is cancelled on purpose. Not a failure."""

    def __init__(self, message: str = "Run aborted") -> None:
        super().__init__(message)


def raise_if_cancelled(options: ChatOptions | None, where: str) -> None:
    """Raise MirrorAborted if the run's cancel token is set."""
    if options is not None and options.cancelled:
        raise MirrorAborted(f"Run aborted ({where})")


def dialogue(messages: list[ConversationMessage]) -> list[dict[str, str]]:
    """Role/content dicts without system turns (the system prompt travels separately)."""
    return [
        {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
        for m in messages
        if m.role != "system"
    ]


class AIProvider(ABC):
    """Abstract base for all LLM backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the backend id (e.g. 'claude', 'gpt-4o')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    def chat(
        self,
        messages: list[ConversationMessage],
        system_prompt: str,
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response for the given conversation.

        Implementations are async generators. Concatenating every chunk's
        ``delta`` gives the full response text; the last chunk has
        ``is_final=True`` and carries the usage counters when known.

        Args:
            messages: Conversation history ending with the user turn.
            system_prompt: System prompt for this call.
            options: Temperature, max tokens and the run's cancel token.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
            MirrorAborted: When ``options.cancel_event`` is set mid-call.
        """
        ...
