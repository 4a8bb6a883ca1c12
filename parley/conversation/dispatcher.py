"""
Dispatcher -- drives one logical "send a message" operation.

The dispatcher:
1. Appends the caller's message to the conversation
2. Issues the request, optionally carrying the function descriptors
3. Inspects the reply for a function call
4. Invokes the function through the registry and appends its result
5. Re-issues the request until the model answers with a normal assistant
   message, or a failed call ends the turn under the loose strategy
6. Supports streaming (forwards chunks to the caller)

State machine::

    IDLE -> AWAITING_REPLY -> DONE
                           -> AWAITING_FUNCTION_RESULT -> AWAITING_REPLY
                                                       -> VALIDATION_FAILED -> AWAITING_REPLY (strict)
                                                                            -> DONE (loose)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import AsyncIterator

from parley.errors import FunctionLoopLimitExceeded, FunctionValidationError, MalformedStreamError
from parley.functions.base import ValidationStrategy
from parley.functions.registry import FunctionRegistry
from parley.llm.assembler import ChunkAssembler
from parley.llm.chunks import ResponseChunk
from parley.llm.frame_decoder import FrameDecoder
from parley.llm.providers.base import Transport
from parley.llm.types import ChatMessage, CompletionResult, FunctionCall, Role
from parley.conversation.state import ConversationState
from parley.types import ErrorCode, FunctionOutcome

logger = logging.getLogger(__name__)


class DispatchState(Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    AWAITING_FUNCTION_RESULT = "awaiting_function_result"
    VALIDATION_FAILED = "validation_failed"
    DONE = "done"


def corrective_message(outcome: FunctionOutcome) -> str:
    """System message text telling the model what went wrong with its call."""
    if outcome.error_code == ErrorCode.INVALID_FUNCTION:
        return (
            f"Function `{outcome.name}` does not exist. "
            "Only call functions from the provided list."
        )
    if outcome.error_code == ErrorCode.INVALID_ARGUMENTS:
        return (
            f"Function `{outcome.name}` was called with invalid arguments: {outcome.error}. "
            "Call it again with arguments matching its parameter schema."
        )
    return f"Function `{outcome.name}` failed: {outcome.error}"


class Dispatcher:
    """
    Orchestrates requests and the function loop for one conversation.

    Parameters
    ----------
    transport : Transport
        Sends requests; its dialect parses responses and stream frames.
    registry : FunctionRegistry
        Functions the model may call.  ``None`` behaves like an empty registry.
    validation : ValidationStrategy
        Recovery policy for calls that cannot be carried out.
    max_function_rounds : int | None
        Optional cap on function calls handled per send.  ``None`` leaves
        the loop unbounded.
    """

    def __init__(
        self,
        transport: Transport,
        registry: FunctionRegistry | None = None,
        validation: ValidationStrategy = ValidationStrategy.LOOSE,
        max_function_rounds: int | None = None,
    ) -> None:
        self.transport = transport
        self.registry = registry or FunctionRegistry()
        self.validation = validation
        self.max_function_rounds = max_function_rounds
        self.state = DispatchState.IDLE
        self.last_result: CompletionResult | None = None

    # ------------------------------------------------------------------
    # Single-shot
    # ------------------------------------------------------------------

    async def send(
        self,
        conversation: ConversationState,
        message: ChatMessage | str,
        send_functions: bool = False,
    ) -> CompletionResult | None:
        """
        Send *message* and run the function loop to completion.

        Returns the final ``CompletionResult``, or ``None`` when a failed
        function call ended the turn under the loose strategy.
        """
        self.last_result = None
        conversation.append(self._coerce(message))
        self._transition(DispatchState.AWAITING_REPLY)
        functions = self._functions(send_functions)

        rounds = 0
        try:
            while True:
                data = await self.transport.complete(list(conversation.snapshot()), functions)
                result = self.transport.dialect.parse_completion(data)
                conversation.append(result.message)

                if result.function_call is None:
                    self._transition(DispatchState.DONE)
                    self.last_result = result
                    return result

                self._check_rounds(rounds)
                rounds += 1
                if not await self._handle_function_call(conversation, result.function_call):
                    return None
        except BaseException:
            self.state = DispatchState.IDLE
            raise

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def send_streaming(
        self,
        conversation: ConversationState,
        message: ChatMessage | str,
        send_functions: bool = False,
    ) -> AsyncIterator[ResponseChunk]:
        """
        Send *message* as a streamed request, yielding every chunk of every
        round.

        History is only appended once a round's stream has been fully
        assembled, so abandoning the iterator mid-stream leaves the
        conversation as it was before that round.  The final result is
        stored on ``last_result``.
        """
        self.last_result = None
        pending: list[ChatMessage] = [self._coerce(message)]
        self._transition(DispatchState.AWAITING_REPLY)
        functions = self._functions(send_functions)

        rounds = 0
        try:
            while True:
                decoder = FrameDecoder(self.transport.dialect)
                assembler = ChunkAssembler()
                request = list(conversation.snapshot()) + pending
                async for chunk in decoder.decode(self.transport.stream(request, functions)):
                    assembler.feed(chunk)
                    yield chunk

                choices = assembler.finalize()
                if not choices:
                    raise MalformedStreamError("Stream finished without announcing a response")

                for m in pending:
                    conversation.append(m)
                pending = []
                result = CompletionResult(choices=choices)
                conversation.append(result.message)

                if result.function_call is None:
                    self._transition(DispatchState.DONE)
                    self.last_result = result
                    return

                self._check_rounds(rounds)
                rounds += 1
                if not await self._handle_function_call(conversation, result.function_call):
                    return
        except BaseException:
            self.state = DispatchState.IDLE
            raise

    # ------------------------------------------------------------------
    # Function loop
    # ------------------------------------------------------------------

    async def _handle_function_call(
        self, conversation: ConversationState, call: FunctionCall
    ) -> bool:
        """
        Run *call* and record the outcome in history.

        Returns ``True`` when the loop should re-issue the request.
        """
        self._transition(DispatchState.AWAITING_FUNCTION_RESULT)
        outcome = await self.invoke(call)

        if outcome.success:
            conversation.append(
                ChatMessage(role=Role.FUNCTION, name=call.name, content=outcome.content)
            )
            self._transition(DispatchState.AWAITING_REPLY)
            return True

        self._transition(DispatchState.VALIDATION_FAILED)
        if self.validation is ValidationStrategy.STRICT:
            conversation.append(ChatMessage(role=Role.SYSTEM, content=corrective_message(outcome)))
            self._transition(DispatchState.AWAITING_REPLY)
            return True

        logger.warning(
            "Dropping function call %s (%s): %s", call.name, outcome.error_code, outcome.error
        )
        self._transition(DispatchState.DONE)
        return False

    async def invoke(self, call: FunctionCall) -> FunctionOutcome:
        """Invoke *call* through the registry, capturing validation failures."""
        try:
            content = await self.registry.invoke_to_content(call.name, call.arguments)
        except FunctionValidationError as e:
            logger.info("Function call %s failed validation: %s", call.name, e.detail)
            return FunctionOutcome(
                name=call.name,
                success=False,
                content="",
                error=e.detail,
                error_code=e.error_code,
            )
        return FunctionOutcome(name=call.name, success=True, content=content)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _functions(self, send_functions: bool) -> list[dict] | None:
        if send_functions and len(self.registry):
            return self.registry.describe_all()
        return None

    def _check_rounds(self, rounds: int) -> None:
        if self.max_function_rounds is not None and rounds >= self.max_function_rounds:
            raise FunctionLoopLimitExceeded(self.max_function_rounds)

    def _transition(self, new_state: DispatchState) -> None:
        logger.debug("dispatch %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    @staticmethod
    def _coerce(message: ChatMessage | str) -> ChatMessage:
        if isinstance(message, ChatMessage):
            return message
        return ChatMessage(role=Role.USER, content=message)
