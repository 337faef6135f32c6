"""
SQLite-backed conversation history store.

Persists user prompts and accumulated assistant messages (in their persisted
``{id, role, parts, metadata}`` shape) per conversation, together with the
backend session id needed to resume the conversation with the same agent.

Uses ``aiosqlite`` for async database access with a write lock to serialise
mutations.  Schema is version-tracked via a ``schema_version`` table and
migrations are applied automatically on ``init()``.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from conduit.stream.accumulator import AccumulatedMessage

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
            agent_id TEXT NOT NULL,
            agent_session_id TEXT,
            title TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}'
        )""",
        """CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            conversation_id TEXT NOT NULL,
            message_id TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL,
            created_at TEXT NOT NULL,
            body TEXT NOT NULL,
            FOREIGN KEY (conversation_id) REFERENCES conversations(conversation_id)
                ON DELETE CASCADE
        )""",
        """CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON messages(conversation_id)""",
    ],
}

_TITLE_LENGTH = 80


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _conversation_row(row) -> dict:
    return {
        "conversation_id": row[0],
        "agent_id": row[1],
        "agent_session_id": row[2],
        "title": row[3],
        "created_at": row[4],
        "updated_at": row[5],
        "metadata": json.loads(row[6]),
    }


_CONVERSATION_COLUMNS = (
    "conversation_id, agent_id, agent_session_id, title, created_at, updated_at, metadata"
)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ConversationStore:
    """
    Async SQLite store for conversations and their messages.

    Usage::

        store = ConversationStore("~/.conduit/history.db")
        await store.init()
        cid = await store.create_conversation("claude")
        await store.append_message(cid, user_message("hi"))
        await store.append_message(cid, accumulator.message)
        messages = await store.get_messages(cid)
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
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> ConversationStore:
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Migration runner
    # ------------------------------------------------------------------

    async def get_schema_version(self) -> int:
        """0 for a fresh database file."""
        assert self._db is not None
        async with self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
        ) as cursor:
            if await cursor.fetchone() is None:
                return 0
        async with self._db.execute("SELECT MAX(version) FROM schema_version") as cursor:
            found = await cursor.fetchone()
        return int(found[0]) if found and found[0] is not None else 0

    async def _run_migrations(self) -> None:
        assert self._db is not None
        applied = await self.get_schema_version()
        pending = [v for v in sorted(MIGRATIONS) if applied < v <= SCHEMA_VERSION]
        if not pending:
            return

        for version in pending:
            for stmt in MIGRATIONS[version]:
                await self._db.execute(stmt)
            await self._db.execute("DELETE FROM schema_version")
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

        await self._db.commit()

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        agent_id: str,
        metadata: dict | None = None,
        conversation_id: str | None = None,
    ) -> str:
        """Create a new conversation and return its id."""
        assert self._db is not None
        conversation_id = conversation_id or str(uuid.uuid4())
        now = _now()
        async with self._write_lock:
            await self._db.execute(
                f"INSERT INTO conversations ({_CONVERSATION_COLUMNS}) "
                "VALUES (?, ?, NULL, '', ?, ?, ?)",
                (conversation_id, agent_id, now, now, json.dumps(metadata or {})),
            )
            await self._db.commit()
        return conversation_id

    async def get_conversation(self, conversation_id: str) -> dict | None:
        """Return the conversation record, or ``None`` if not found."""
        assert self._db is not None
        cursor = await self._db.execute(
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        return _conversation_row(row) if row is not None else None

    async def list_conversations(self, limit: int | None = None) -> list[dict]:
        """Conversations, most recently updated first."""
        assert self._db is not None
        sql = f"SELECT {_CONVERSATION_COLUMNS} FROM conversations ORDER BY updated_at DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        cursor = await self._db.execute(sql, params)
        return [_conversation_row(row) for row in await cursor.fetchall()]

    async def set_agent_session(self, conversation_id: str, agent_session_id: str) -> None:
        """Remember the backend session id used to resume this conversation."""
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "UPDATE conversations SET agent_session_id = ?, updated_at = ? "
                "WHERE conversation_id = ?",
                (agent_session_id, _now(), conversation_id),
            )
            await self._db.commit()

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages.  Returns whether it existed."""
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            cursor = await self._db.execute(
                "DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,)
            )
            await self._db.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def append_message(self, conversation_id: str, message: AccumulatedMessage) -> None:
        """
        Persist *message*.

        Saving a message id that already exists replaces its body, so an
        assistant message can be saved repeatedly while it grows.  The first
        user prompt becomes the conversation title.
        """
        assert self._db is not None
        body = json.dumps(message.to_dict())
        now = _now()
        async with self._write_lock:
            cursor = await self._db.execute(
                "SELECT 1 FROM conversations WHERE conversation_id = ?", (conversation_id,)
            )
            if await cursor.fetchone() is None:
                raise KeyError(f"Unknown conversation: {conversation_id}")
            await self._db.execute(
                """INSERT INTO messages (conversation_id, message_id, role, created_at, body)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(message_id) DO UPDATE SET body = excluded.body""",
                (conversation_id, message.id, message.role, now, body),
            )
            if message.role == "user":
                await self._db.execute(
                    "UPDATE conversations SET title = ? "
                    "WHERE conversation_id = ? AND title = ''",
                    (message.text()[:_TITLE_LENGTH], conversation_id),
                )
            await self._db.execute(
                "UPDATE conversations SET updated_at = ? WHERE conversation_id = ?",
                (now, conversation_id),
            )
            await self._db.commit()

    async def get_messages(self, conversation_id: str) -> list[AccumulatedMessage]:
        """Messages of a conversation in insertion order."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT body FROM messages WHERE conversation_id = ? ORDER BY id ASC",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [AccumulatedMessage.from_dict(json.loads(row[0])) for row in rows]
