"""Tests for JSON history files and the sqlite history store."""

from __future__ import annotations

import json

import pytest

from parley.conversation.persistence import (
    dump_history,
    load_history_json,
    parse_history,
    save_history_json,
)
from parley.conversation.store import SCHEMA_VERSION, HistoryStore
from parley.llm.types import ChatMessage, FunctionCall, Role


def _history() -> list[ChatMessage]:
    return [
        ChatMessage(role=Role.SYSTEM, content="sys"),
        ChatMessage(role=Role.USER, content="weather?"),
        ChatMessage(role=Role.ASSISTANT, content=None, function_call=FunctionCall("get_weather", '{"city": "Oslo"}')),
        ChatMessage(role=Role.FUNCTION, name="get_weather", content='{"temperature": 21}'),
        ChatMessage(role=Role.ASSISTANT, content="21 degrees."),
    ]


@pytest.fixture
async def store(tmp_path):
    s = HistoryStore(str(tmp_path / "history.db"))
    await s.init()
    yield s
    await s.close()


class TestJsonFiles:
    def test_round_trip(self, tmp_path):
        path = save_history_json(tmp_path / "nested" / "conv.json", _history())
        assert path.is_file()
        assert load_history_json(path) == _history()

    def test_file_is_array_of_message_dicts(self, tmp_path):
        path = save_history_json(tmp_path / "conv.json", _history()[:2])
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "weather?"},
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_history_json(tmp_path / "missing.json")

    def test_non_array_rejected(self):
        with pytest.raises(ValueError):
            parse_history('{"role": "system"}')

    def test_dump_parse(self):
        assert parse_history(dump_history(_history())) == _history()


class TestHistoryStore:
    async def test_schema_version(self, store):
        assert await store.get_schema_version() == SCHEMA_VERSION

    async def test_save_and_load(self, store):
        cid = await store.save(_history(), metadata={"title": "weather"})
        assert await store.load(cid) == _history()
        conv = await store.get_conversation(cid)
        assert conv["metadata"] == {"title": "weather"}

    async def test_save_replaces_history(self, store):
        cid = await store.save(_history())
        await store.save(_history()[:3], conversation_id=cid)
        assert await store.load(cid) == _history()[:3]

    async def test_metadata_merges(self, store):
        cid = await store.save(_history(), metadata={"a": 1})
        await store.save(_history(), conversation_id=cid, metadata={"b": 2})
        conv = await store.get_conversation(cid)
        assert conv["metadata"] == {"a": 1, "b": 2}

    async def test_list_conversations(self, store):
        first = await store.save(_history()[:1])
        second = await store.save(_history())
        listed = await store.list_conversations()
        counts = {c["conversation_id"]: c["message_count"] for c in listed}
        assert counts == {first: 1, second: 5}

    async def test_load_missing(self, store):
        with pytest.raises(KeyError):
            await store.load("nope")

    async def test_delete(self, store):
        cid = await store.save(_history())
        await store.delete(cid)
        assert await store.get_conversation(cid) is None
        assert await store.list_conversations() == []

    async def test_reopen_keeps_data(self, tmp_path):
        path = str(tmp_path / "h.db")
        async with HistoryStore(path) as s:
            cid = await s.save(_history())
        async with HistoryStore(path) as s:
            assert await s.load(cid) == _history()
            assert await s.get_schema_version() == SCHEMA_VERSION
