"""Abstract base class for chat-completion transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from parley.config import ModelConfiguration
from parley.llm.dialects import Dialect
from parley.llm.types import ChatMessage


class Transport(ABC):
    """
    A transport sends one request to a chat-completion endpoint.

    Implementations must support:
      - A single-shot request returning the decoded JSON body (``complete``).
      - A streamed request returning raw event-stream lines (``stream``).

    Request bodies are built by the *dialect*; transports never interpret
    response payloads beyond HTTP status.
    """

    def __init__(self, dialect: Dialect, config: ModelConfiguration) -> None:
        self.dialect = dialect
        self.config = config

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        functions: list[dict] | None = None,
    ) -> Any:
        """Send the request with ``stream=False`` and return the JSON body."""
        ...

    @abstractmethod
    async def stream(
        self,
        messages: list[ChatMessage],
        functions: list[dict] | None = None,
    ) -> AsyncIterator[str]:
        """
        Send the request with ``stream=True``.

        Yields raw text lines of the event stream, in arrival order.
        """
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield ""  # type: ignore[misc]

    async def aclose(self) -> None:
        """Release any pooled connections."""
        return None

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable transport name (e.g. ``"http"``)."""
        ...
