"""Tests for parley.conversation.state and parley.llm.types.ChatMessage."""

from __future__ import annotations

import pytest

from parley.conversation.state import ConversationState
from parley.llm.types import ChatMessage, FunctionCall, Role


class TestChatMessage:
    def test_role_coerced_from_string(self):
        assert ChatMessage(role="user", content="hi").role is Role.USER

    def test_function_message_requires_content(self):
        with pytest.raises(ValueError):
            ChatMessage(role=Role.FUNCTION, name="f", content="")

    def test_function_call_only_on_assistant(self):
        with pytest.raises(ValueError):
            ChatMessage(role=Role.USER, content="x", function_call=FunctionCall("f", "{}"))

    def test_content_none_requires_function_call(self):
        with pytest.raises(ValueError):
            ChatMessage(role=Role.ASSISTANT, content=None)

    def test_to_dict_shapes(self):
        assert ChatMessage(role=Role.USER, content="hi").to_dict() == {"role": "user", "content": "hi"}
        call = ChatMessage(role=Role.ASSISTANT, content=None, function_call=FunctionCall("f", '{"a": 1}'))
        assert call.to_dict() == {
            "role": "assistant",
            "content": None,
            "function_call": {"name": "f", "arguments": '{"a": 1}'},
        }
        result = ChatMessage(role=Role.FUNCTION, name="f", content="1")
        assert result.to_dict() == {"role": "function", "content": "1", "name": "f"}

    def test_from_dict_restores_function_call(self):
        original = ChatMessage(role=Role.ASSISTANT, content=None, function_call=FunctionCall("f", "{}"))
        assert ChatMessage.from_dict(original.to_dict()) == original


class TestConversationState:
    def test_seeded_with_directing_message(self):
        state = ConversationState("You are X")
        assert len(state) == 1
        assert state.direction_message == ChatMessage(role=Role.SYSTEM, content="You are X")

    def test_append_preserves_order(self):
        state = ConversationState("sys")
        state.append(ChatMessage(role=Role.USER, content="a"))
        state.append(ChatMessage(role=Role.ASSISTANT, content="b"))
        assert [m.content for m in state] == ["sys", "a", "b"]
        assert state.last.content == "b"

    def test_snapshot_is_immutable_copy(self):
        state = ConversationState("sys")
        snap = state.snapshot()
        state.append(ChatMessage(role=Role.USER, content="a"))
        assert len(snap) == 1
        assert isinstance(snap, tuple)

    def test_from_messages_requires_system_first(self):
        with pytest.raises(ValueError):
            ConversationState.from_messages([ChatMessage(role=Role.USER, content="a")])
        with pytest.raises(ValueError):
            ConversationState.from_messages([])

    def test_from_list(self):
        state = ConversationState.from_list([
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "a"},
        ])
        assert len(state) == 2
        assert state.to_list()[1] == {"role": "user", "content": "a"}


class TestRollback:
    def test_rollback_removes_last_pair(self):
        state = ConversationState("sys")
        state.append(ChatMessage(role=Role.USER, content="a"))
        state.append(ChatMessage(role=Role.ASSISTANT, content="b"))
        state.append(ChatMessage(role=Role.USER, content="c"))
        state.append(ChatMessage(role=Role.ASSISTANT, content="d"))

        removed = state.rollback()
        assert removed.content == "d"
        assert [m.content for m in state] == ["sys", "a", "b"]

    def test_rollback_on_seed_only_is_noop(self):
        state = ConversationState("sys")
        assert state.rollback() is None
        assert len(state) == 1

    def test_rollback_with_single_message_is_noop(self):
        state = ConversationState("sys")
        state.append(ChatMessage(role=Role.USER, content="a"))
        assert state.rollback() is None
        assert len(state) == 2
