"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"


@dataclass
class FunctionCall:
    """A function call as reported by the model, not yet validated."""

    name: str
    arguments: str  # JSON text

    def to_dict(self) -> dict:
        return {"name": self.name, "arguments": self.arguments}


@dataclass
class ChatMessage:
    """
    A single message in a conversation.

    *content* is ``None`` only for pure function-call messages.  Messages
    with ``role=FUNCTION`` carry the function's JSON result as text and the
    function's *name*.
    """

    role: Role
    content: str | None = ""
    function_call: FunctionCall | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            self.role = Role(self.role)
        if self.role is Role.FUNCTION and not self.content:
            raise ValueError("Function messages must carry non-empty content")
        if self.function_call is not None and self.role is not Role.ASSISTANT:
            raise ValueError(
                f"Only assistant messages may carry a function call, got {self.role.value}"
            )
        if self.content is None and self.function_call is None:
            raise ValueError("Message content may only be absent on function-call messages")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire / persisted JSON shape."""
        d: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.name:
            d["name"] = self.name
        if self.function_call is not None:
            d["function_call"] = self.function_call.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChatMessage:
        fc = d.get("function_call")
        return cls(
            role=Role(d["role"]),
            content=d.get("content"),
            function_call=FunctionCall(name=fc["name"], arguments=fc.get("arguments", "")) if fc else None,
            name=d.get("name"),
        )


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, d: dict) -> TokenUsage:
        return cls(
            prompt_tokens=int(d.get("prompt_tokens", 0)),
            completion_tokens=int(d.get("completion_tokens", 0)),
            total_tokens=int(d.get("total_tokens", 0)),
        )


@dataclass
class CompletionResult:
    """
    A successful completion.

    *choices* holds one message per reply index, in discovery order.  The
    first choice is the one that drives the conversation.
    """

    choices: list[ChatMessage]
    message_id: str | None = None
    model: str | None = None
    created: int | None = None
    usage: TokenUsage | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def message(self) -> ChatMessage:
        return self.choices[0]

    @property
    def function_call(self) -> FunctionCall | None:
        return self.message.function_call
