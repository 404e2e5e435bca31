"""SQLite conversation store backend.

Provides persistent thread storage using a SQLite database; this is the
server-side checkpoint store. Uses aiosqlite for async access.
"""

from datetime import datetime
from pathlib import Path
from uuid import uuid4

import aiosqlite

from .base import ConversationNotFoundError, ConversationStore
from .models import ConversationSummary, StoredMessage, preview_text, utc_now

# SQLite TRIM only strips spaces by default
_WHITESPACE = "' ' || char(9) || char(10) || char(13)"


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed conversation store.

    Stores threads and messages in a SQLite database file.
    Supports persistent storage across sessions.
    """

    def __init__(self, path: str | Path = "./storage/conversations.db"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("SQLite store is not connected; call connect() first")
        return self._connection

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._connection is not None:
            return
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                thread_id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                seq INTEGER NOT NULL DEFAULT 0
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                thread_id TEXT NOT NULL,
                message_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                thinking TEXT NOT NULL DEFAULT '',
                timestamp TEXT NOT NULL,
                response_time REAL,
                FOREIGN KEY (thread_id) REFERENCES conversations(thread_id) ON DELETE CASCADE
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_thread
            ON messages(thread_id, row_id)
        """)

        await self._db.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _ensure_conversation(self, thread_id: str) -> None:
        now = utc_now().isoformat()
        await self._db.execute("""
            INSERT OR IGNORE INTO conversations (thread_id, created_at, updated_at, seq)
            VALUES (?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM conversations))
        """, (thread_id, now, now))

    async def _touch(self, thread_id: str) -> None:
        await self._db.execute("""
            UPDATE conversations
            SET updated_at = MAX(updated_at, ?),
                seq = (SELECT COALESCE(MAX(seq), 0) + 1 FROM conversations)
            WHERE thread_id = ?
        """, (utc_now().isoformat(), thread_id))

    async def _insert_message(self, thread_id: str, message: StoredMessage) -> None:
        await self._db.execute("""
            INSERT INTO messages
            (thread_id, message_id, role, content, thinking, timestamp, response_time)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            thread_id,
            message.id,
            message.role,
            message.content,
            message.thinking,
            message.timestamp.isoformat(),
            message.response_time
        ))

    async def _fetch_messages(self, thread_id: str) -> list[StoredMessage]:
        async with self._db.execute(
            """
            SELECT message_id, role, content, thinking, timestamp, response_time
            FROM messages
            WHERE thread_id = ?
            ORDER BY row_id ASC
            """,
            (thread_id,)
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            StoredMessage(
                id=message_id,
                role=role,
                content=content,
                thinking=thinking,
                timestamp=datetime.fromisoformat(ts),
                response_time=response_time
            )
            for message_id, role, content, thinking, ts, response_time in rows
        ]

    async def create_conversation(self, thread_id: str | None = None) -> ConversationSummary:
        tid = thread_id or str(uuid4())
        await self._ensure_conversation(tid)
        await self._db.commit()
        summaries = await self._summaries("WHERE c.thread_id = ?", (tid,))
        return summaries[0]

    async def exists(self, thread_id: str) -> bool:
        async with self._db.execute(
            "SELECT 1 FROM conversations WHERE thread_id = ?",
            (thread_id,)
        ) as cursor:
            return await cursor.fetchone() is not None

    async def _summaries(
        self,
        where: str = "",
        params: tuple = (),
        limit: int | None = None
    ) -> list[ConversationSummary]:
        """Listing rows with message count and preview computed in one query."""
        async with self._db.execute(
            f"""
            SELECT
                c.thread_id,
                c.created_at,
                c.updated_at,
                (SELECT COUNT(*) FROM messages m WHERE m.thread_id = c.thread_id),
                (
                    SELECT m.content FROM messages m
                    WHERE m.thread_id = c.thread_id
                      AND m.role = 'user'
                      AND TRIM(m.content, {_WHITESPACE}) != ''
                    ORDER BY m.row_id ASC
                    LIMIT 1
                )
            FROM conversations c
            {where}
            ORDER BY c.updated_at DESC, c.seq DESC
            LIMIT ?
            """,
            (*params, -1 if limit is None else limit)
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            ConversationSummary(
                thread_id=thread_id,
                created_at=datetime.fromisoformat(created_at),
                updated_at=datetime.fromisoformat(updated_at),
                preview=preview_text(first_user),
                message_count=count,
            )
            for thread_id, created_at, updated_at, count, first_user in rows
        ]

    async def list_conversations(self, limit: int | None = None) -> list[ConversationSummary]:
        return await self._summaries(limit=limit)

    async def get_messages(self, thread_id: str) -> list[StoredMessage]:
        if not await self.exists(thread_id):
            raise ConversationNotFoundError(thread_id)
        return await self._fetch_messages(thread_id)

    async def append_message(self, thread_id: str, message: StoredMessage) -> StoredMessage:
        await self._ensure_conversation(thread_id)
        await self._insert_message(thread_id, message)
        await self._touch(thread_id)
        await self._db.commit()
        return message

    async def replace_messages(self, thread_id: str, messages: list[StoredMessage]) -> None:
        try:
            await self._ensure_conversation(thread_id)
            await self._db.execute(
                "DELETE FROM messages WHERE thread_id = ?",
                (thread_id,)
            )
            for message in messages:
                await self._insert_message(thread_id, message)
            await self._touch(thread_id)
        except Exception:
            # Keep the previous messages; a later commit must not see the delete
            await self._db.rollback()
            raise
        await self._db.commit()

    async def delete_conversation(self, thread_id: str) -> None:
        cursor = await self._db.execute(
            "DELETE FROM conversations WHERE thread_id = ?",
            (thread_id,)
        )
        if cursor.rowcount == 0:
            raise ConversationNotFoundError(thread_id)
        await self._db.commit()

    async def clear_all(self) -> int:
        cursor = await self._db.execute("DELETE FROM conversations")
        count = cursor.rowcount
        await self._db.commit()
        return count

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
