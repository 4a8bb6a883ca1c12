"""
SQLite-backed conversation history store.

Uses ``aiosqlite`` for async database access with a write lock to serialise
mutations (SQLite only supports one writer at a time in WAL mode).

Schema is version-tracked via a ``schema_version`` table.  Migrations are
applied automatically on ``init()``.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import aiosqlite

from parley.llm.types import ChatMessage

# ---------------------------------------------------------------------------
# Schema management
# ---------------------------------------------------------------------------

SCHEMA_VERSION = 1

MIGRATIONS: dict[int, list[str]] = {
    1: [
        """CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS conversations (
            conversation_id TEXT PRIMARY KEY,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}'
        )""",
        """CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            conversation_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            payload TEXT NOT NULL,
            FOREIGN KEY (conversation_id) REFERENCES conversations(conversation_id) ON DELETE CASCADE,
            UNIQUE (conversation_id, position)
        )""",
        """CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id)""",
    ],
}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class HistoryStore:
    """
    Async SQLite store for named conversation histories.

    A save replaces the stored history with the given ordered message list,
    so rollbacks are persisted too.

    Usage::

        store = HistoryStore("~/.parley/history.db")
        await store.init()
        cid = await store.save(conversation.history)
        messages = await store.load(cid)
        await store.close()
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = asyncio.Lock()
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and ensure the schema is up to date."""
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> HistoryStore:
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Migration runner
    # ------------------------------------------------------------------

    async def _get_schema_version(self) -> int:
        """Return the current schema version, or 0 if not initialised."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        row = await cursor.fetchone()
        if row is None:
            return 0
        cursor = await self._db.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        if row is None:
            return 0
        return int(row[0])

    async def _set_schema_version(self, version: int) -> None:
        assert self._db is not None
        cursor = await self._db.execute("SELECT COUNT(*) FROM schema_version")
        row = await cursor.fetchone()
        assert row is not None
        if row[0] == 0:
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
        else:
            await self._db.execute(
                "UPDATE schema_version SET version = ?", (version,)
            )

    async def _run_migrations(self) -> None:
        """Apply any pending migrations sequentially."""
        assert self._db is not None
        current = await self._get_schema_version()
        if current >= SCHEMA_VERSION:
            return

        for version in range(current + 1, SCHEMA_VERSION + 1):
            stmts = MIGRATIONS.get(version)
            if stmts is None:
                raise RuntimeError(
                    f"Missing migration for schema version {version}"
                )
            for stmt in stmts:
                await self._db.execute(stmt)
            await self._set_schema_version(version)

        await self._db.commit()

    async def get_schema_version(self) -> int:
        return await self._get_schema_version()

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def save(
        self,
        messages: Iterable[ChatMessage],
        conversation_id: str | None = None,
        metadata: dict | None = None,
    ) -> str:
        """
        Store *messages* under *conversation_id* (a new id when ``None``),
        replacing any previously stored history.  Returns the id.
        """
        assert self._db is not None
        conversation_id = conversation_id or str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        rows = [
            (conversation_id, position, json.dumps(m.to_dict()))
            for position, m in enumerate(messages)
        ]

        async with self._write_lock:
            cursor = await self._db.execute(
                "SELECT metadata FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            )
            existing = await cursor.fetchone()
            if existing is None:
                await self._db.execute(
                    """INSERT INTO conversations
                       (conversation_id, created_at, updated_at, metadata)
                       VALUES (?, ?, ?, ?)""",
                    (conversation_id, now, now, json.dumps(metadata or {})),
                )
            else:
                meta = json.loads(existing[0])
                meta.update(metadata or {})
                await self._db.execute(
                    "UPDATE conversations SET updated_at = ?, metadata = ? WHERE conversation_id = ?",
                    (now, json.dumps(meta), conversation_id),
                )
            await self._db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            await self._db.executemany(
                "INSERT INTO messages (conversation_id, position, payload) VALUES (?, ?, ?)",
                rows,
            )
            await self._db.commit()

        return conversation_id

    async def load(self, conversation_id: str) -> list[ChatMessage]:
        """
        Return the stored history in order.

        Raises
        ------
        KeyError
            If the conversation does not exist.
        """
        assert self._db is not None
        if await self.get_conversation(conversation_id) is None:
            raise KeyError(conversation_id)
        cursor = await self._db.execute(
            """SELECT payload FROM messages
               WHERE conversation_id = ?
               ORDER BY position ASC""",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [ChatMessage.from_dict(json.loads(row[0])) for row in rows]

    async def get_conversation(self, conversation_id: str) -> dict | None:
        """Return conversation metadata dict, or ``None`` if not found."""
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT conversation_id, created_at, updated_at, metadata
               FROM conversations WHERE conversation_id = ?""",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_dict(row)

    async def list_conversations(self) -> list[dict]:
        """Return all conversations, most recently updated first."""
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT c.conversation_id, c.created_at, c.updated_at, c.metadata,
                      (SELECT COUNT(*) FROM messages m WHERE m.conversation_id = c.conversation_id)
               FROM conversations c ORDER BY c.updated_at DESC"""
        )
        rows = await cursor.fetchall()
        result = []
        for row in rows:
            d = self._row_to_dict(row)
            d["message_count"] = row[4]
            result.append(d)
        return result

    async def delete(self, conversation_id: str) -> None:
        """Delete a conversation and all its messages."""
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            await self._db.execute(
                "DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,)
            )
            await self._db.commit()

    @staticmethod
    def _row_to_dict(row) -> dict:
        return {
            "conversation_id": row[0],
            "created_at": row[1],
            "updated_at": row[2],
            "metadata": json.loads(row[3]),
        }
