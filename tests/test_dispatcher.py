"""Tests for the dispatcher and function loop."""

from __future__ import annotations

import pytest

from parley.conversation.dispatcher import DispatchState, Dispatcher, corrective_message
from parley.conversation.state import ConversationState
from parley.errors import BackendError, FunctionLoopLimitExceeded, MalformedStreamError, TransportError
from parley.functions.base import ValidationStrategy
from parley.functions.registry import FunctionRegistry
from parley.llm.chunks import Content, Done
from parley.llm.types import ChatMessage, Role
from parley.types import ErrorCode, FunctionOutcome
from tests.mock_functions import add, get_weather
from tests.mock_transports import (
    MockTransport,
    completion_body,
    error_body,
    function_call_body,
    function_call_stream_lines,
    stream_lines,
)


@pytest.fixture
def registry():
    reg = FunctionRegistry()
    reg.register(*get_weather)
    reg.register(*add)
    return reg


def _roles(state: ConversationState) -> list[Role]:
    return [m.role for m in state]


# ---------------------------------------------------------------------------
# Single-shot
# ---------------------------------------------------------------------------


class TestSingleShot:
    async def test_plain_reply(self):
        transport = MockTransport(responses=[completion_body("b")])
        state = ConversationState("You are X")
        dispatcher = Dispatcher(transport)

        result = await dispatcher.send(state, "a")

        assert result.message.content == "b"
        assert [(m.role, m.content) for m in state] == [
            (Role.SYSTEM, "You are X"),
            (Role.USER, "a"),
            (Role.ASSISTANT, "b"),
        ]
        assert dispatcher.state is DispatchState.DONE
        assert dispatcher.last_result is result

    async def test_request_carries_full_history(self):
        transport = MockTransport(responses=[completion_body("b"), completion_body("d")])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport)

        await dispatcher.send(state, "a")
        await dispatcher.send(state, "c")

        assert [m.content for m in transport.requests[1]] == ["sys", "a", "b", "c"]

    async def test_functions_not_sent_unless_requested(self, registry):
        transport = MockTransport(responses=[completion_body("b")])
        dispatcher = Dispatcher(transport, registry)
        await dispatcher.send(ConversationState("sys"), "a")
        assert transport.last_functions is None

    async def test_backend_error_propagates(self):
        transport = MockTransport(responses=[error_body("overloaded")])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport)

        with pytest.raises(BackendError):
            await dispatcher.send(state, "a")
        # The user message was appended before the request.
        assert _roles(state) == [Role.SYSTEM, Role.USER]
        assert dispatcher.state is DispatchState.IDLE

    async def test_transport_error_propagates(self):
        transport = MockTransport(responses=[TransportError("connection refused")])
        with pytest.raises(TransportError):
            await Dispatcher(transport).send(ConversationState("sys"), "a")

    async def test_usage_and_metadata(self):
        transport = MockTransport(responses=[completion_body("b")])
        result = await Dispatcher(transport).send(ConversationState("sys"), "a")
        assert result.usage.total_tokens == 12
        assert result.model == "gpt-3.5-turbo"
        assert result.metadata["finish_reasons"] == ["stop"]


# ---------------------------------------------------------------------------
# Function loop
# ---------------------------------------------------------------------------


class TestFunctionLoop:
    async def test_successful_call_then_reply(self, registry):
        transport = MockTransport(responses=[
            function_call_body("get_weather", '{"city": "Oslo"}'),
            completion_body("It is 21 degrees in Oslo."),
        ])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport, registry)

        result = await dispatcher.send(state, "Weather in Oslo?", send_functions=True)

        assert result.message.content == "It is 21 degrees in Oslo."
        assert _roles(state) == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.FUNCTION, Role.ASSISTANT]
        function_message = state.snapshot()[3]
        assert function_message.name == "get_weather"
        assert function_message.content == '{"city": "Oslo", "temperature": 21, "unit": "celsius"}'
        assert [d["name"] for d in transport.last_functions] == ["get_weather", "add"]
        assert transport.call_count == 2

    async def test_strict_appends_corrective_message(self, registry):
        transport = MockTransport(responses=[
            function_call_body("add", '{"a": 1,'),
            completion_body("Sorry."),
        ])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport, registry, validation=ValidationStrategy.STRICT)

        result = await dispatcher.send(state, "add things", send_functions=True)

        assert result.message.content == "Sorry."
        assert _roles(state) == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.SYSTEM, Role.ASSISTANT]
        assert "invalid arguments" in state.snapshot()[3].content
        assert state.snapshot()[2].function_call.name == "add"

    async def test_loose_ends_turn_without_reply(self, registry):
        transport = MockTransport(responses=[function_call_body("add", '{"a": 1,')])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport, registry, validation=ValidationStrategy.LOOSE)

        result = await dispatcher.send(state, "add things", send_functions=True)

        assert result is None
        assert dispatcher.last_result is None
        assert _roles(state) == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
        assert transport.call_count == 1
        assert dispatcher.state is DispatchState.DONE

    async def test_unknown_function_strict(self, registry):
        transport = MockTransport(responses=[
            function_call_body("launch_rockets", "{}"),
            completion_body("I cannot do that."),
        ])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport, registry, validation=ValidationStrategy.STRICT)

        await dispatcher.send(state, "go", send_functions=True)

        assert "does not exist" in state.snapshot()[3].content

    async def test_loop_limit(self, registry):
        transport = MockTransport(responses=[
            function_call_body("add", '{"a": 1, "b": 1}'),
            function_call_body("add", '{"a": 2, "b": 2}'),
        ])
        dispatcher = Dispatcher(transport, registry, max_function_rounds=1)

        with pytest.raises(FunctionLoopLimitExceeded):
            await dispatcher.send(ConversationState("sys"), "loop", send_functions=True)
        assert dispatcher.state is DispatchState.IDLE

    async def test_invoke_captures_failure(self, registry):
        from parley.llm.types import FunctionCall

        outcome = await Dispatcher(MockTransport(), registry).invoke(FunctionCall("nope", "{}"))
        assert not outcome.success
        assert outcome.error_code == ErrorCode.INVALID_FUNCTION


class TestCorrectiveMessage:
    def test_inner_error_text(self):
        outcome = FunctionOutcome(
            name="f", success=False, content="", error="boom", error_code=ErrorCode.INNER_ERROR
        )
        assert corrective_message(outcome) == "Function `f` failed: boom"


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStreaming:
    async def test_stream_hello(self):
        transport = MockTransport(streams=[stream_lines(["Hel", "lo"])])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport)

        chunks = [c async for c in dispatcher.send_streaming(state, "hi")]

        assert "".join(c.delta for c in chunks if isinstance(c, Content)) == "Hello"
        assert isinstance(chunks[-1], Done)
        assert [(m.role, m.content) for m in state] == [
            (Role.SYSTEM, "sys"),
            (Role.USER, "hi"),
            (Role.ASSISTANT, "Hello"),
        ]
        assert dispatcher.last_result.message.content == "Hello"

    async def test_stream_matches_single_shot(self):
        streamed = ConversationState("sys")
        single = ConversationState("sys")
        await Dispatcher(MockTransport(responses=[completion_body("Hello")])).send(single, "hi")
        async for _ in Dispatcher(MockTransport(streams=[stream_lines(["He", "llo"])])).send_streaming(
            streamed, "hi"
        ):
            pass
        assert streamed.snapshot() == single.snapshot()

    async def test_malformed_stream_leaves_history_untouched(self):
        lines = stream_lines(["Hel"])
        lines.insert(2, "data: {not json")
        transport = MockTransport(streams=[lines])
        state = ConversationState("sys")

        with pytest.raises(MalformedStreamError):
            async for _ in Dispatcher(transport).send_streaming(state, "hi"):
                pass
        assert len(state) == 1

    async def test_abandoned_stream_leaves_history_untouched(self):
        transport = MockTransport(streams=[stream_lines(["a", "b", "c"])])
        state = ConversationState("sys")
        stream = Dispatcher(transport).send_streaming(state, "hi")
        async for _ in stream:
            break
        await stream.aclose()
        assert len(state) == 1

    async def test_stream_without_begin_is_malformed(self):
        transport = MockTransport(streams=[["data: [DONE]"]])
        with pytest.raises(MalformedStreamError):
            async for _ in Dispatcher(transport).send_streaming(ConversationState("sys"), "hi"):
                pass

    async def test_streamed_function_loop(self, registry):
        transport = MockTransport(streams=[
            function_call_stream_lines("add", '{"a": 2, "b": 3}'),
            stream_lines(["The answer is 5."]),
        ])
        state = ConversationState("sys")

        async for _ in Dispatcher(transport, registry).send_streaming(state, "2+3?", send_functions=True):
            pass

        assert _roles(state) == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.FUNCTION, Role.ASSISTANT]
        assert state.snapshot()[3].content == "5"
        assert state.last.content == "The answer is 5."
        # Second request includes the function result.
        assert transport.requests[1][-1].role is Role.FUNCTION

    async def test_streamed_loose_failure(self, registry):
        transport = MockTransport(streams=[function_call_stream_lines("add", '{"a": "x", "b": 3}')])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport, registry)

        async for _ in dispatcher.send_streaming(state, "add", send_functions=True):
            pass

        assert dispatcher.last_result is None
        assert _roles(state) == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    async def test_streamed_strict_failure(self, registry):
        transport = MockTransport(streams=[
            function_call_stream_lines("add", '{"a": 1,'),
            stream_lines(["Sorry."]),
        ])
        state = ConversationState("sys")
        dispatcher = Dispatcher(transport, registry, validation=ValidationStrategy.STRICT)

        chunks = [c async for c in dispatcher.send_streaming(state, "add", send_functions=True)]

        assert _roles(state) == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.SYSTEM, Role.ASSISTANT]
        assert state.snapshot()[2].function_call.name == "add"
        assert "invalid arguments" in state.snapshot()[3].content
        assert state.snapshot()[4].content == "Sorry."
        assert dispatcher.last_result.message.content == "Sorry."
        assert transport.requests[1][-1].role is Role.SYSTEM
        assert sum(isinstance(c, Done) for c in chunks) == 2


class TestHistoryMessage:
    async def test_explicit_message_object(self):
        transport = MockTransport(responses=[completion_body("ok")])
        state = ConversationState("sys")
        await Dispatcher(transport).send(state, ChatMessage(role=Role.USER, content="hi", name="alice"))
        assert state.snapshot()[1].name == "alice"
