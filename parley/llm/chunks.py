"""
Streaming chunk variants.

The frame decoder yields these as frames arrive; the assembler folds them
into finished ``ChatMessage`` objects.  Every per-response event carries a
*response_index* identifying which parallel candidate completion it belongs
to.  ``Done`` and ``PartialData`` apply to the whole stream.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from parley.llm.types import Role


@dataclass(frozen=True)
class BeginResponse:
    role: Role
    response_index: int = 0


@dataclass(frozen=True)
class Content:
    delta: str
    response_index: int = 0


@dataclass(frozen=True)
class FunctionCallDelta:
    """A fragment of a streamed function call."""

    name_delta: str = ""
    arguments_delta: str = ""
    response_index: int = 0


@dataclass(frozen=True)
class CloseResponse:
    response_index: int = 0


@dataclass(frozen=True)
class PartialData:
    """Accumulated legacy frames do not yet form a complete JSON object."""


@dataclass(frozen=True)
class Done:
    """
    Terminal sentinel.

    In the legacy dialect *payload* holds the last fully parsed object.
    """

    payload: Any = None


ResponseChunk = Union[BeginResponse, Content, FunctionCallDelta, CloseResponse, PartialData, Done]
