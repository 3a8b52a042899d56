"""
SQLite-backed chat and turn store.

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
from typing import Any

import aiosqlite

from nexus.llm.types import ConversationTurn, ImageDelta, Role, ToolCall
from nexus.session.transcript import InMemoryTranscript

# ---------------------------------------------------------------------------
# Schema management
# ---------------------------------------------------------------------------

SCHEMA_VERSION = 1

MIGRATIONS: dict[int, list[str]] = {
    1: [
        """CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS chats (
            chat_id TEXT PRIMARY KEY,
            created_at TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}'
        )""",
        """CREATE TABLE IF NOT EXISTS turns (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            chat_id TEXT NOT NULL,
            turn_id TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL,
            created_at TEXT NOT NULL,
            payload TEXT NOT NULL,
            FOREIGN KEY (chat_id) REFERENCES chats(chat_id) ON DELETE CASCADE
        )""",
        """CREATE INDEX IF NOT EXISTS idx_turns_chat ON turns(chat_id)""",
    ],
}


# ---------------------------------------------------------------------------
# Turn (de)serialization
# ---------------------------------------------------------------------------

_PAYLOAD_FIELDS = (
    "content",
    "reasoning",
    "image_url",
    "file_data",
    "pdf_data",
    "file_name",
    "tool_call_id",
    "tool_name",
    "tool_args_label",
    "finish_reason",
    "token_count",
    "model_name",
)


def turn_to_payload(turn: ConversationTurn) -> dict[str, Any]:
    payload: dict[str, Any] = {name: getattr(turn, name) for name in _PAYLOAD_FIELDS}
    payload["images"] = [img.url for img in turn.images]
    payload["tool_calls"] = (
        [tc.to_dict() for tc in turn.tool_calls] if turn.tool_calls is not None else None
    )
    return payload


def turn_from_row(
    turn_id: str, chat_id: str, role: str, created_at: str, payload: dict[str, Any]
) -> ConversationTurn:
    raw_calls = payload.get("tool_calls")
    return ConversationTurn(
        role=Role(role),
        id=turn_id,
        chat_id=chat_id,
        created_at=datetime.fromisoformat(created_at),
        images=[ImageDelta(url=u) for u in payload.get("images") or []],
        tool_calls=[ToolCall.from_dict(tc) for tc in raw_calls] if raw_calls is not None else None,
        **{name: payload.get(name) for name in _PAYLOAD_FIELDS},
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SQLiteTranscriptStore:
    """
    Async SQLite store for chats and their turns.

    Usage::

        store = SQLiteTranscriptStore("~/.nexus/history.db")
        await store.init()
        chat_id = await store.create_chat()
        transcript = await store.open_transcript(chat_id)
        await transcript.append_turn(turn)
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
    # Chat CRUD
    # ------------------------------------------------------------------

    async def create_chat(self, metadata: dict | None = None) -> str:
        """Create a new chat and return its id."""
        assert self._db is not None
        chat_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        async with self._write_lock:
            await self._db.execute(
                "INSERT INTO chats (chat_id, created_at, metadata) VALUES (?, ?, ?)",
                (chat_id, now, json.dumps(metadata or {})),
            )
            await self._db.commit()

        return chat_id

    async def get_chat(self, chat_id: str) -> dict | None:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT chat_id, created_at, metadata FROM chats WHERE chat_id = ?",
            (chat_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return {"chat_id": row[0], "created_at": row[1], "metadata": json.loads(row[2])}

    async def list_chats(self) -> list[dict]:
        """Return all chats, newest first."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT chat_id, created_at, metadata FROM chats ORDER BY created_at DESC"
        )
        rows = await cursor.fetchall()
        return [
            {"chat_id": row[0], "created_at": row[1], "metadata": json.loads(row[2])}
            for row in rows
        ]

    async def delete_chat(self, chat_id: str) -> None:
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute("DELETE FROM turns WHERE chat_id = ?", (chat_id,))
            await self._db.execute("DELETE FROM chats WHERE chat_id = ?", (chat_id,))
            await self._db.commit()

    # ------------------------------------------------------------------
    # Turn operations
    # ------------------------------------------------------------------

    async def insert_turn(self, turn: ConversationTurn) -> None:
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                """INSERT INTO turns (chat_id, turn_id, role, created_at, payload)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    turn.chat_id,
                    turn.id,
                    turn.role.value,
                    turn.created_at.isoformat(),
                    json.dumps(turn_to_payload(turn)),
                ),
            )
            await self._db.commit()

    async def save_turn(self, turn: ConversationTurn) -> None:
        """Overwrite the stored payload of an existing turn."""
        assert self._db is not None
        async with self._write_lock:
            cursor = await self._db.execute(
                "UPDATE turns SET payload = ? WHERE turn_id = ?",
                (json.dumps(turn_to_payload(turn)), turn.id),
            )
            await self._db.commit()
        if cursor.rowcount == 0:
            raise KeyError(turn.id)

    async def get_turns(self, chat_id: str) -> list[ConversationTurn]:
        """Return a chat's turns in insertion order."""
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT turn_id, chat_id, role, created_at, payload
               FROM turns WHERE chat_id = ? ORDER BY id ASC""",
            (chat_id,),
        )
        rows = await cursor.fetchall()
        return [
            turn_from_row(row[0], row[1], row[2], row[3], json.loads(row[4]))
            for row in rows
        ]

    async def open_transcript(self, chat_id: str) -> PersistentTranscript:
        """
        Load a chat into a write-through transcript.

        Raises
        ------
        ValueError
            If the chat does not exist.
        """
        if await self.get_chat(chat_id) is None:
            raise ValueError(f"Chat not found: {chat_id}")
        return PersistentTranscript(self, chat_id, await self.get_turns(chat_id))


class PersistentTranscript(InMemoryTranscript):
    """In-memory mirror that writes every committed change to the store."""

    def __init__(
        self,
        store: SQLiteTranscriptStore,
        chat_id: str,
        turns: list[ConversationTurn] | None = None,
    ) -> None:
        super().__init__(chat_id, turns)
        self.store = store

    async def append_turn(self, turn: ConversationTurn) -> None:
        await super().append_turn(turn)
        await self.store.insert_turn(turn)

    async def update_turn_content(self, turn_id: str, content: str | None) -> None:
        await super().update_turn_content(turn_id, content)
        await self.store.save_turn(self.require(turn_id))

    async def update_turn_tool_calls(self, turn_id: str, tool_calls: list[ToolCall]) -> None:
        await super().update_turn_tool_calls(turn_id, tool_calls)
        await self.store.save_turn(self.require(turn_id))
