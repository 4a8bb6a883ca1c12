"""
Ordered conversation history.

Insertion order is chronological order and is the literal order sent to
the service on every request.  Index 0 always holds the directing system
message.  The list only grows, except for ``rollback``.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from parley.llm.types import ChatMessage, Role


class ConversationState:
    def __init__(self, direction_message: str) -> None:
        self._messages: list[ChatMessage] = [
            ChatMessage(role=Role.SYSTEM, content=direction_message)
        ]

    @classmethod
    def from_messages(cls, messages: Iterable[ChatMessage]) -> ConversationState:
        """
        Restore a conversation from an ordered message sequence.

        Raises
        ------
        ValueError
            If the sequence is empty or does not start with a system message.
        """
        items = list(messages)
        if not items:
            raise ValueError("Conversation history must contain the directing message")
        if items[0].role is not Role.SYSTEM:
            raise ValueError(
                f"Conversation history must start with a system message, got {items[0].role.value}"
            )
        state = cls.__new__(cls)
        state._messages = items
        return state

    @classmethod
    def from_list(cls, data: list[dict[str, Any]]) -> ConversationState:
        return cls.from_messages(ChatMessage.from_dict(d) for d in data)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def rollback(self) -> ChatMessage | None:
        """
        Remove the most recent request/response pair.

        Returns the removed reply, or ``None`` (removing nothing) when fewer
        than two messages follow the directing message.
        """
        if len(self._messages) - 1 < 2:
            return None
        reply = self._messages.pop()
        self._messages.pop()
        return reply

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def direction_message(self) -> ChatMessage:
        return self._messages[0]

    @property
    def last(self) -> ChatMessage:
        return self._messages[-1]

    def to_list(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"ConversationState(messages={len(self._messages)})"
