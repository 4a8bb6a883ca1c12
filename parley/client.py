"""
Client facade.

Holds one transport (and therefore one dialect and model configuration)
and hands out conversations that share it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import AsyncIterator, Iterable

import httpx

from parley.config import DEFAULT_API_URL, DEFAULT_DIRECTION_MESSAGE, ModelConfiguration, ParleyConfig
from parley.conversation.conversation import Conversation
from parley.conversation.persistence import load_history_json
from parley.conversation.state import ConversationState
from parley.conversation.store import HistoryStore
from parley.functions.registry import FunctionRegistry
from parley.llm.chunks import ResponseChunk
from parley.llm.dialects import get_dialect
from parley.llm.frame_decoder import FrameDecoder
from parley.llm.providers.base import Transport
from parley.llm.providers.http import HttpTransport
from parley.llm.types import ChatMessage, CompletionResult, Role

logger = logging.getLogger(__name__)


class Client:
    """
    Entry point for talking to a chat-completion service.

    Usage::

        async with Client.new(os.environ["OPENAI_API_KEY"]) as client:
            conversation = client.new_conversation()
            result = await conversation.send_message("Hello!")
            print(result.message.content)
    """

    def __init__(
        self,
        transport: Transport,
        direction_message: str = DEFAULT_DIRECTION_MESSAGE,
    ) -> None:
        self.transport = transport
        self.direction_message = direction_message

    @property
    def config(self) -> ModelConfiguration:
        return self.transport.config

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        api_key: str,
        config: ModelConfiguration | None = None,
        url: str = DEFAULT_API_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> Client:
        config = config or ModelConfiguration()
        transport = HttpTransport(
            get_dialect(config.dialect), config, api_key=api_key, url=url, client=http_client
        )
        return cls(transport)

    @classmethod
    def from_config(
        cls,
        cfg: ParleyConfig,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> Client:
        """Build a client from loaded configuration.  The API key defaults
        to the environment variable named by ``llm.api_key_env``."""
        model_config = cfg.model_configuration()
        if api_key is None:
            api_key = os.environ.get(cfg.llm.api_key_env, "")
            if not api_key:
                logger.warning("No API key found in $%s", cfg.llm.api_key_env)
        transport = HttpTransport(
            get_dialect(model_config.dialect),
            model_config,
            api_key=api_key,
            url=cfg.llm.api_url,
            timeout=float(cfg.llm.timeout_seconds),
            max_retries=cfg.llm.max_retries,
            client=http_client,
        )
        return cls(transport, direction_message=cfg.history.direction_message)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def new_conversation(self) -> Conversation:
        return self.new_conversation_directed(self.direction_message)

    def new_conversation_directed(self, direction_message: str) -> Conversation:
        return Conversation(self, ConversationState(direction_message))

    def conversation_from_history(self, messages: Iterable[ChatMessage]) -> Conversation:
        return Conversation(self, ConversationState.from_messages(messages))

    def restore_conversation_json(self, path: str | Path) -> Conversation:
        return self.conversation_from_history(load_history_json(path))

    async def restore_conversation(self, store: HistoryStore, conversation_id: str) -> Conversation:
        conversation = self.conversation_from_history(await store.load(conversation_id))
        conversation.conversation_id = conversation_id
        return conversation

    # ------------------------------------------------------------------
    # Stateless sends
    # ------------------------------------------------------------------

    async def send_message(self, message: str) -> CompletionResult:
        """Send a single user message without keeping history."""
        return await self.send_history([ChatMessage(role=Role.USER, content=message)])

    async def send_history(self, history: Iterable[ChatMessage]) -> CompletionResult:
        """Explicitly send a whole message history."""
        data = await self.transport.complete(list(history))
        return self.transport.dialect.parse_completion(data)

    async def send_message_functions(self, message: str, registry: FunctionRegistry) -> CompletionResult:
        """
        Send a single user message with *registry*'s descriptors attached.

        A function call in the reply is returned as-is; nothing is invoked.
        """
        return await self.send_history_functions([ChatMessage(role=Role.USER, content=message)], registry)

    async def send_history_functions(
        self, history: Iterable[ChatMessage], registry: FunctionRegistry
    ) -> CompletionResult:
        data = await self.transport.complete(list(history), registry.describe_all() or None)
        return self.transport.dialect.parse_completion(data)

    async def send_message_streaming(self, message: str) -> AsyncIterator[ResponseChunk]:
        async for chunk in self.send_history_streaming([ChatMessage(role=Role.USER, content=message)]):
            yield chunk

    async def send_history_streaming(self, history: Iterable[ChatMessage]) -> AsyncIterator[ResponseChunk]:
        decoder = FrameDecoder(self.transport.dialect)
        async for chunk in decoder.decode(self.transport.stream(list(history))):
            yield chunk
