"""
Wire dialects.

Two conventions are spoken by chat-completion backends:

``current``
    The ``/v1/chat/completions`` protocol.  Every streamed SSE event is a
    complete JSON object whose ``choices[0].delta`` carries a role
    announcement, a content delta, a function-call fragment, or nothing
    (close).
``legacy``
    The older conversation backend.  Streamed events carry the *cumulative*
    message text under ``message.content.parts`` and the JSON of a single
    event may be split across several transport frames.

A dialect is selected once per client and passed explicitly to the
transport and frame decoder.  It owns request body construction,
single-shot response parsing, and the per-stream frame parser.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from parley.config import ModelConfiguration
from parley.errors import BackendError, MalformedStreamError
from parley.llm.chunks import (
    BeginResponse,
    CloseResponse,
    Content,
    Done,
    FunctionCallDelta,
    PartialData,
    ResponseChunk,
)
from parley.llm.types import ChatMessage, CompletionResult, FunctionCall, Role, TokenUsage

logger = logging.getLogger(__name__)


def _role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError as e:
        raise MalformedStreamError(f"Unknown role in stream: {value!r}") from e


def _completion_role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError as e:
        raise BackendError(f"Unknown role in completion: {value!r}") from e


def _raise_backend_error(error: Any) -> None:
    if isinstance(error, dict):
        raise BackendError(str(error.get("message", "")), error.get("type"))
    raise BackendError(str(error))


# ---------------------------------------------------------------------------
# Frame parsers
# ---------------------------------------------------------------------------


class FrameParser(ABC):
    """Per-stream state machine turning frame payloads into chunks."""

    @abstractmethod
    def feed(self, payload: str) -> list[ResponseChunk]:
        """Translate one frame payload (framing prefix already removed)."""
        ...

    @abstractmethod
    def finish(self) -> Done:
        """Called on the ``[DONE]`` terminator."""
        ...


class CurrentFrameParser(FrameParser):
    def feed(self, payload: str) -> list[ResponseChunk]:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedStreamError(
                f"Invalid inbound streaming payload: {payload[:200]!r}"
            ) from e
        if not isinstance(data, dict):
            raise MalformedStreamError(f"Streaming payload is not an object: {payload[:200]!r}")

        if data.get("error"):
            _raise_backend_error(data["error"])

        choices = data.get("choices")
        if not choices:
            # Usage-only or keep-alive frames carry no choices.
            return []

        # Only the first choice of a frame is honored.
        choice = choices[0]
        index = int(choice.get("index", 0))
        delta = choice.get("delta") or {}

        chunks: list[ResponseChunk] = []
        if delta.get("role"):
            chunks.append(BeginResponse(role=_role(delta["role"]), response_index=index))
        if delta.get("content"):
            chunks.append(Content(delta=delta["content"], response_index=index))
        fc = delta.get("function_call")
        if fc:
            chunks.append(
                FunctionCallDelta(
                    name_delta=fc.get("name") or "",
                    arguments_delta=fc.get("arguments") or "",
                    response_index=index,
                )
            )
        # An empty delta closes the response; an empty content string does not.
        if not delta or choice.get("finish_reason"):
            chunks.append(CloseResponse(response_index=index))
        return chunks

    def finish(self) -> Done:
        return Done()


class LegacyFrameParser(FrameParser):
    """
    Buffers fragmented JSON across frames.

    While the accumulated text does not parse, every frame yields a
    ``PartialData`` marker.  Parsed objects carry the full message text so
    far; only the unseen suffix is emitted as ``Content``.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._emitted = ""
        self._begun = False
        self._closed = False
        self._last: dict | None = None

    def feed(self, payload: str) -> list[ResponseChunk]:
        self._buffer += payload
        try:
            data = json.loads(self._buffer)
        except json.JSONDecodeError:
            return [PartialData()]
        if not isinstance(data, dict):
            return [PartialData()]
        self._buffer = ""
        return self._translate(data)

    def _translate(self, data: dict) -> list[ResponseChunk]:
        if data.get("error"):
            _raise_backend_error(data["error"])

        message = data.get("message")
        if not isinstance(message, dict):
            return []
        self._last = data

        chunks: list[ResponseChunk] = []
        if not self._begun:
            role = (message.get("author") or {}).get("role", Role.ASSISTANT.value)
            chunks.append(BeginResponse(role=_role(role), response_index=0))
            self._begun = True

        parts = (message.get("content") or {}).get("parts") or []
        text = "".join(p for p in parts if isinstance(p, str))
        if text.startswith(self._emitted):
            suffix = text[len(self._emitted):]
            if suffix:
                chunks.append(Content(delta=suffix, response_index=0))
                self._emitted = text
        else:
            logger.warning("Legacy stream rewrote earlier message text; ignoring frame")

        finished = message.get("end_turn") is True or message.get("status") == "finished_successfully"
        if finished and not self._closed:
            chunks.append(CloseResponse(response_index=0))
            self._closed = True
        return chunks

    def finish(self) -> Done:
        if self._buffer:
            logger.debug("Discarding %d unparsed bytes at end of stream", len(self._buffer))
        self._buffer = ""
        return Done(payload=self._last)


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------


class Dialect(ABC):
    name: str = ""

    @abstractmethod
    def build_body(
        self,
        messages: list[ChatMessage],
        config: ModelConfiguration,
        *,
        stream: bool,
        functions: list[dict] | None = None,
    ) -> dict:
        ...

    @abstractmethod
    def parse_completion(self, data: Any) -> CompletionResult:
        """Parse a single-shot JSON response body.  Raises ``BackendError``."""
        ...

    @abstractmethod
    def new_frame_parser(self) -> FrameParser:
        ...


class CurrentDialect(Dialect):
    name = "current"

    def build_body(
        self,
        messages: list[ChatMessage],
        config: ModelConfiguration,
        *,
        stream: bool,
        functions: list[dict] | None = None,
    ) -> dict:
        body: dict = {
            "model": config.model,
            "messages": [m.to_dict() for m in messages],
            "stream": stream,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "presence_penalty": config.presence_penalty,
            "frequency_penalty": config.frequency_penalty,
            "n": config.reply_count,
        }
        if config.max_tokens is not None:
            body["max_tokens"] = config.max_tokens
        if functions:
            body["functions"] = functions
            body["function_call"] = config.function_calling_mode.value
        return body

    def parse_completion(self, data: Any) -> CompletionResult:
        if not isinstance(data, dict):
            raise BackendError("Completion response is not a JSON object")
        if data.get("error"):
            _raise_backend_error(data["error"])

        choices = data.get("choices") or []
        if not choices:
            raise BackendError("Completion response contained no choices")

        messages = [self._message(c.get("message") or {}) for c in choices]
        usage = data.get("usage")
        return CompletionResult(
            choices=messages,
            message_id=data.get("id"),
            model=data.get("model"),
            created=data.get("created"),
            usage=TokenUsage.from_dict(usage) if usage else None,
            metadata={"finish_reasons": [c.get("finish_reason") for c in choices]},
        )

    @staticmethod
    def _message(raw: dict) -> ChatMessage:
        fc = raw.get("function_call")
        function_call = (
            FunctionCall(name=fc.get("name", ""), arguments=fc.get("arguments") or "")
            if fc
            else None
        )
        content = raw.get("content")
        if content is None and function_call is None:
            content = ""
        return ChatMessage(
            role=_completion_role(raw.get("role", Role.ASSISTANT.value)),
            content=content,
            function_call=function_call,
        )

    def new_frame_parser(self) -> FrameParser:
        return CurrentFrameParser()


class LegacyDialect(Dialect):
    """
    Conversation-backend wire shape.  Function calling is not part of this
    protocol; descriptors passed in are dropped.
    """

    name = "legacy"

    def build_body(
        self,
        messages: list[ChatMessage],
        config: ModelConfiguration,
        *,
        stream: bool,
        functions: list[dict] | None = None,
    ) -> dict:
        if functions:
            logger.warning("Legacy dialect does not support functions; %d dropped", len(functions))
        return {
            "action": "next",
            "model": config.model,
            "messages": [
                {
                    "id": str(uuid.uuid4()),
                    "author": {"role": m.role.value},
                    "content": {"content_type": "text", "parts": [m.content or ""]},
                }
                for m in messages
            ],
        }

    def parse_completion(self, data: Any) -> CompletionResult:
        if not isinstance(data, dict):
            raise BackendError("Completion response is not a JSON object")
        if data.get("error"):
            _raise_backend_error(data["error"])
        message = data.get("message")
        if not isinstance(message, dict):
            raise BackendError("Completion response contained no message")

        role = (message.get("author") or {}).get("role", Role.ASSISTANT.value)
        parts = (message.get("content") or {}).get("parts") or []
        return CompletionResult(
            choices=[ChatMessage(role=_completion_role(role), content="".join(p for p in parts if isinstance(p, str)))],
            message_id=message.get("id"),
            metadata={"conversation_id": data.get("conversation_id")},
        )

    def new_frame_parser(self) -> FrameParser:
        return LegacyFrameParser()


DIALECTS: dict[str, type[Dialect]] = {
    CurrentDialect.name: CurrentDialect,
    LegacyDialect.name: LegacyDialect,
}


def get_dialect(name: str) -> Dialect:
    try:
        return DIALECTS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown dialect {name!r}. Known: {sorted(DIALECTS)}"
        ) from None
