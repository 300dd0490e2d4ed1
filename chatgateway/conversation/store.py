"""Conversation store contract and the SQLite reference implementation."""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, AsyncGenerator, Optional, Protocol

import aiosqlite

from chatgateway.errors import PersistenceError

from .migrations import get_current_version, run_migrations
from .models import Conversation, StoredMessage

logger = logging.getLogger(__name__)

TITLE_LENGTH = 60
DEFAULT_TITLE = "New Conversation"


def make_title(content: str) -> str:
    """Derive a conversation title from the first user message."""
    text = content.strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "…"
    return text


class ConversationStore(Protocol):
    """Persistence operations a streaming turn depends on."""

    async def get_conversation(
        self, conversation_id: str, owner_id: str
    ) -> Optional[Conversation]:
        """Return the conversation only if it belongs to ``owner_id``."""

    async def load_history(self, conversation_id: str, limit: int) -> list[StoredMessage]:
        """Return the last ``limit`` messages, oldest first."""

    async def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        parent_message_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """Persist a message and return its id."""

    async def touch_conversation(self, conversation_id: str) -> None:
        """Mark the conversation as active now."""


class SQLiteConversationStore:
    """Async SQLite conversation store.

    Example:
        >>> store = SQLiteConversationStore("~/.chatgateway/conversations.db")
        >>> await store.initialize()
        >>> conv = await store.create_conversation(owner_id="u1")
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()

    async def initialize(self) -> None:
        """Create the database file if needed and run migrations."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.connect() as conn:
            applied = await run_migrations(conn)
        if applied:
            logger.info(f"Applied migrations {applied} to {self.db_path}")

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Get a database connection as an async context manager."""
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            await conn.close()

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[dict]:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
            return dict(row) if row is not None else None

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict]:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def get_version(self) -> int:
        async with self.connect() as conn:
            return await get_current_version(conn)

    # Conversation operations

    async def create_conversation(
        self,
        owner_id: str,
        title: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        """Create a conversation for an owner."""
        conversation_id = conversation_id or str(uuid.uuid4())
        now = datetime.now(UTC).isoformat()

        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO conversations (id, owner_id, title, created_at, last_activity_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (conversation_id, owner_id, title, now, now),
            )
            await conn.commit()

        conversation = await self.get_conversation(conversation_id, owner_id)
        if conversation is None:
            raise PersistenceError(
                "Conversation was not created", operation="create_conversation"
            )
        return conversation

    async def get_conversation(
        self, conversation_id: str, owner_id: str
    ) -> Optional[Conversation]:
        row = await self.fetch_one(
            "SELECT * FROM conversations WHERE id = ? AND owner_id = ?",
            (conversation_id, owner_id),
        )
        return Conversation.from_db_row(row) if row else None

    async def touch_conversation(self, conversation_id: str) -> None:
        async with self.connect() as conn:
            await conn.execute(
                "UPDATE conversations SET last_activity_at = ? WHERE id = ?",
                (datetime.now(UTC).isoformat(), conversation_id),
            )
            await conn.commit()

    # Message operations

    async def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        parent_message_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """Persist a message.

        The first user message of an untitled conversation also sets its title.
        """
        message_id = str(uuid.uuid4())
        now = datetime.now(UTC).isoformat()

        async with self.connect() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO messages
                    (id, conversation_id, role, content, parent_message_id, metadata, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        message_id,
                        conversation_id,
                        role,
                        content,
                        parent_message_id,
                        json.dumps(metadata or {}, default=str),
                        now,
                    ),
                )
            except aiosqlite.IntegrityError as e:
                raise PersistenceError(
                    f"Cannot add message: {e}",
                    operation="create_message",
                    details={"conversation_id": conversation_id},
                ) from e

            if role == "user":
                await conn.execute(
                    "UPDATE conversations SET title = ? WHERE id = ? AND title IS NULL",
                    (make_title(content), conversation_id),
                )
            await conn.commit()

        return message_id

    async def get_message(self, message_id: str) -> Optional[StoredMessage]:
        row = await self.fetch_one("SELECT * FROM messages WHERE id = ?", (message_id,))
        return StoredMessage.from_db_row(row) if row else None

    async def load_history(self, conversation_id: str, limit: int = 50) -> list[StoredMessage]:
        rows = await self.fetch_all(
            """
            SELECT * FROM messages
            WHERE conversation_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (conversation_id, limit),
        )
        return [StoredMessage.from_db_row(row) for row in reversed(rows)]
