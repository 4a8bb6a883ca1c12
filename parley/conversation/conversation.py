"""A conversation: owned history plus the dispatcher that advances it."""

from __future__ import annotations

from contextlib import aclosing, asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, AsyncGenerator, AsyncIterator

from parley.conversation.dispatcher import Dispatcher
from parley.conversation.persistence import save_history_json
from parley.conversation.state import ConversationState
from parley.conversation.store import HistoryStore
from parley.functions.base import FunctionDescriptor, Invoker
from parley.functions.registry import FunctionRegistry
from parley.llm.chunks import ResponseChunk
from parley.llm.types import ChatMessage, CompletionResult

if TYPE_CHECKING:
    from parley.client import Client


class Conversation:
    """
    Records message history across sends.

    One send (including every function round it triggers) must finish
    before the next one starts; a send that overlaps one still in flight
    raises ``RuntimeError``.  A stream whose consumer stopped reading
    counts as abandoned: the next send closes it and proceeds, and the
    interrupted round leaves no trace in history.
    """

    def __init__(
        self,
        client: Client,
        state: ConversationState,
        registry: FunctionRegistry | None = None,
    ) -> None:
        self.client = client
        self.state = state
        self.registry = registry or FunctionRegistry()
        self.conversation_id: str | None = None
        self._dispatcher = Dispatcher(
            client.transport,
            self.registry,
            validation=client.config.function_validation,
            max_function_rounds=client.config.max_function_rounds,
        )
        self._busy = False
        self._stream: AsyncGenerator[ResponseChunk, None] | None = None

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return self.state.snapshot()

    @property
    def last_result(self) -> CompletionResult | None:
        """Result of the most recent send (``None`` if it produced no reply)."""
        return self._dispatcher.last_result

    def add_function(self, descriptor: FunctionDescriptor, invoker: Invoker) -> None:
        self.registry.register(descriptor, invoker)

    def rollback(self) -> ChatMessage | None:
        """Drop the last request/response pair.  Returns the removed reply."""
        return self.state.rollback()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, message: str) -> CompletionResult | None:
        async with self._exclusive():
            return await self._dispatcher.send(self.state, message)

    async def send_message_functions(self, message: str) -> CompletionResult | None:
        """
        Send with the registered function descriptors attached.

        Returns ``None`` if a failed function call ended the turn under the
        loose validation strategy.
        """
        async with self._exclusive():
            return await self._dispatcher.send(self.state, message, send_functions=True)

    def send_message_streaming(self, message: str) -> AsyncIterator[ResponseChunk]:
        return self._open_stream(message, send_functions=False)

    def send_message_functions_streaming(self, message: str) -> AsyncIterator[ResponseChunk]:
        return self._open_stream(message, send_functions=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_history_json(self, path: str | Path) -> Path:
        return save_history_json(path, self.history)

    async def save(self, store: HistoryStore, metadata: dict | None = None) -> str:
        """Persist history to *store*; the first save assigns ``conversation_id``."""
        self.conversation_id = await store.save(
            self.history, conversation_id=self.conversation_id, metadata=metadata
        )
        return self.conversation_id

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_stream(self, message: str, send_functions: bool) -> AsyncGenerator[ResponseChunk, None]:
        async def rounds() -> AsyncGenerator[ResponseChunk, None]:
            await self._claim()
            self._stream = stream
            try:
                async with aclosing(
                    self._dispatcher.send_streaming(self.state, message, send_functions=send_functions)
                ) as chunks:
                    async for chunk in chunks:
                        yield chunk
            finally:
                if self._stream is stream:
                    self._stream = None

        stream = rounds()
        return stream

    async def _claim(self) -> None:
        """Reject overlapping sends and close a stream left unfinished."""
        if self._busy:
            raise RuntimeError("A send is already in progress on this conversation")
        stale = self._stream
        if stale is None:
            return
        if stale.ag_running:
            raise RuntimeError("A send is already in progress on this conversation")
        self._stream = None
        await stale.aclose()

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        await self._claim()
        self._busy = True
        try:
            yield
        finally:
            self._busy = False
