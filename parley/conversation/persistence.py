"""JSON file adapter for conversation history."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from parley.llm.types import ChatMessage


def dump_history(messages: Iterable[ChatMessage]) -> str:
    return json.dumps([m.to_dict() for m in messages], indent=2)


def parse_history(text: str) -> list[ChatMessage]:
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Conversation history JSON must be an array of messages")
    return [ChatMessage.from_dict(d) for d in data]


def save_history_json(path: str | Path, messages: Iterable[ChatMessage]) -> Path:
    p = Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(dump_history(messages), encoding="utf-8")
    return p


def load_history_json(path: str | Path) -> list[ChatMessage]:
    p = Path(path).expanduser()
    if not p.is_file():
        raise FileNotFoundError(f"Conversation history JSON file does not exist: {p}")
    return parse_history(p.read_text(encoding="utf-8"))
