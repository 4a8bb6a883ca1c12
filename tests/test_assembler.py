"""Tests for parley.llm.assembler.ChunkAssembler."""

from __future__ import annotations

import pytest

from parley.errors import InvalidChunkSequence
from parley.llm.assembler import ChunkAssembler
from parley.llm.chunks import (
    BeginResponse,
    CloseResponse,
    Content,
    Done,
    FunctionCallDelta,
    PartialData,
)
from parley.llm.dialects import CurrentDialect
from parley.llm.types import Role
from tests.mock_transports import completion_body


class TestSingleResponse:
    def test_basic_assembly(self):
        messages = ChunkAssembler.assemble([
            BeginResponse(role=Role.ASSISTANT),
            Content(delta="Hel"),
            Content(delta="lo"),
            CloseResponse(),
            Done(),
        ])
        assert len(messages) == 1
        assert messages[0].role is Role.ASSISTANT
        assert messages[0].content == "Hello"
        assert messages[0].function_call is None

    def test_begin_without_content_is_empty_message(self):
        messages = ChunkAssembler.assemble([BeginResponse(role=Role.ASSISTANT), CloseResponse()])
        assert messages[0].content == ""

    def test_liveness_chunks_are_ignored(self):
        messages = ChunkAssembler.assemble([
            PartialData(),
            BeginResponse(role=Role.ASSISTANT),
            PartialData(),
            Content(delta="x"),
            Done(payload={"ignored": True}),
        ])
        assert messages[0].content == "x"

    def test_repeated_begin_keeps_existing_message(self):
        messages = ChunkAssembler.assemble([
            BeginResponse(role=Role.ASSISTANT),
            Content(delta="a"),
            BeginResponse(role=Role.ASSISTANT),
            Content(delta="b"),
        ])
        assert len(messages) == 1
        assert messages[0].content == "ab"

    def test_matches_single_shot_content(self):
        body = completion_body("Hello world")
        single = CurrentDialect().parse_completion(body).message
        streamed = ChunkAssembler.assemble([
            BeginResponse(role=Role.ASSISTANT),
            Content(delta="Hello"),
            Content(delta=" world"),
            CloseResponse(),
        ])[0]
        assert streamed.role is single.role
        assert streamed.content == single.content


class TestMultipleResponses:
    def test_interleaved_indices_keep_discovery_order(self):
        messages = ChunkAssembler.assemble([
            BeginResponse(role=Role.ASSISTANT, response_index=1),
            BeginResponse(role=Role.ASSISTANT, response_index=0),
            Content(delta="one", response_index=1),
            Content(delta="zero", response_index=0),
            Content(delta="!", response_index=1),
        ])
        assert [m.content for m in messages] == ["one!", "zero"]

    def test_reset_clears_state(self):
        asm = ChunkAssembler()
        asm.feed(BeginResponse(role=Role.ASSISTANT))
        asm.feed(Content(delta="x"))
        asm.reset()
        assert asm.finalize() == []


class TestFunctionCalls:
    def test_function_call_fragments_concatenate(self):
        messages = ChunkAssembler.assemble([
            BeginResponse(role=Role.ASSISTANT),
            FunctionCallDelta(name_delta="get_", arguments_delta=""),
            FunctionCallDelta(name_delta="weather", arguments_delta='{"city":'),
            FunctionCallDelta(arguments_delta=' "Oslo"}'),
            CloseResponse(),
        ])
        message = messages[0]
        assert message.content is None
        assert message.function_call.name == "get_weather"
        assert message.function_call.arguments == '{"city": "Oslo"}'

    def test_function_call_with_text_keeps_text(self):
        messages = ChunkAssembler.assemble([
            BeginResponse(role=Role.ASSISTANT),
            Content(delta="Let me check."),
            FunctionCallDelta(name_delta="lookup", arguments_delta="{}"),
        ])
        assert messages[0].content == "Let me check."
        assert messages[0].function_call.name == "lookup"

    def test_function_call_on_non_assistant_is_rejected(self):
        asm = ChunkAssembler()
        asm.feed(BeginResponse(role=Role.USER))
        with pytest.raises(InvalidChunkSequence):
            asm.feed(FunctionCallDelta(name_delta="x"))


class TestInvalidSequences:
    def test_content_without_begin(self):
        asm = ChunkAssembler()
        with pytest.raises(InvalidChunkSequence):
            asm.feed(Content(delta="orphan"))

    def test_close_without_begin(self):
        asm = ChunkAssembler()
        with pytest.raises(InvalidChunkSequence):
            asm.feed(CloseResponse(response_index=3))

    def test_content_for_unannounced_index(self):
        asm = ChunkAssembler()
        asm.feed(BeginResponse(role=Role.ASSISTANT, response_index=0))
        with pytest.raises(InvalidChunkSequence):
            asm.feed(Content(delta="x", response_index=1))

    def test_non_chunk_raises_type_error(self):
        asm = ChunkAssembler()
        with pytest.raises(TypeError):
            asm.feed("not a chunk")
