from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class ValidationStrategy(Enum):
    """How the dispatcher recovers from a function call it cannot carry out."""

    # Surface a corrective system message and let the model retry.
    STRICT = "strict"
    # Drop the call and end the turn with no reply.
    LOOSE = "loose"


class CallingMode(Enum):
    AUTO = "auto"
    NONE = "none"


def normalize_schema(schema: dict | None) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


@dataclass(frozen=True)
class FunctionDescriptor:
    name: str
    description: str
    parameters: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Function name must not be empty")
        if not self.description or not self.description.strip():
            raise ValueError(f"Function {self.name!r} requires a description")
        object.__setattr__(self, "parameters", normalize_schema(self.parameters))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


Invoker = Callable[..., Any]


def gpt_function(
    name: str | None = None,
    description: str | None = None,
    parameters: dict | None = None,
) -> Callable[[Invoker], tuple[FunctionDescriptor, Invoker]]:
    """
    Build a ``(descriptor, invoker)`` pair from a plain function.

    The name defaults to the function's ``__name__`` and the description to
    its docstring.  The JSON Schema of the arguments is always explicit::

        @gpt_function(parameters={
            "type": "object",
            "properties": {"user": {"type": "string"}},
            "required": ["user"],
        })
        async def send_message(user: str) -> dict:
            \"\"\"Sends a message to a user.\"\"\"
            ...

        conversation.add_function(*send_message)
    """

    def wrap(func: Invoker) -> tuple[FunctionDescriptor, Invoker]:
        descriptor = FunctionDescriptor(
            name=name or func.__name__,
            description=description or inspect.getdoc(func) or "",
            parameters=parameters or {},
        )
        return descriptor, func

    return wrap
