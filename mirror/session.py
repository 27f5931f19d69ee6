"""Rolling conversation history for interactive chat."""

from mirror.models import ConversationMessage


class Session:
    def __init__(self, max_history: int = 20) -> None:
        self._max_history = max_history
        self._messages: list[ConversationMessage] = []

    def add_user(self, content: str) -> None:
        self._push(ConversationMessage(role="user", content=content))

    def add_assistant(self, content: str) -> None:
        self._push(ConversationMessage(role="assistant", content=content))

    def history(self) -> list[ConversationMessage]:
        """Copy of the current window; callers may not mutate the session."""
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def _push(self, message: ConversationMessage) -> None:
        self._messages.append(message)
        # Evict a whole user/assistant pair so history never opens with an
        # assistant turn, which the APIs reject.
        while len(self._messages) > self._max_history:
            del self._messages[:2]
