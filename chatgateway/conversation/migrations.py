"""Database schema migrations for the conversation store."""

from typing import Any, Callable, Coroutine

import aiosqlite

MigrationFunc = Callable[[aiosqlite.Connection], Coroutine[Any, Any, None]]

# Migration registry: version -> migration function
MIGRATIONS: dict[int, MigrationFunc] = {}


def migration(version: int) -> Callable[[MigrationFunc], MigrationFunc]:
    """Decorator to register a migration function."""

    def decorator(func: MigrationFunc) -> MigrationFunc:
        if version in MIGRATIONS:
            raise ValueError(f"Duplicate migration version: {version}")
        MIGRATIONS[version] = func
        return func

    return decorator


async def get_current_version(conn: aiosqlite.Connection) -> int:
    """Get the current schema version, 0 for a fresh database."""
    cursor = await conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    if await cursor.fetchone() is None:
        return 0

    cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
    row = await cursor.fetchone()
    return row[0] if row and row[0] is not None else 0


async def run_migrations(conn: aiosqlite.Connection) -> list[int]:
    """Apply pending migrations in order, committing after each.

    Returns:
        The versions that were applied.
    """
    current = await get_current_version(conn)
    applied = []

    for version in sorted(v for v in MIGRATIONS if v > current):
        await MIGRATIONS[version](conn)
        await conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, CURRENT_TIMESTAMP)",
            (version,),
        )
        await conn.commit()
        applied.append(version)

    return applied


# ============================================================================
# Migration Definitions
# ============================================================================


@migration(1)
async def migration_001_initial_schema(conn: aiosqlite.Connection) -> None:
    """Create conversations and messages."""
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS conversations (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT,
            created_at TIMESTAMP NOT NULL,
            last_activity_at TIMESTAMP NOT NULL
        )
        """
    )

    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS messages (
            id TEXT PRIMARY KEY,
            conversation_id TEXT NOT NULL,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            parent_message_id TEXT,
            metadata JSON,
            created_at TIMESTAMP NOT NULL,
            FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
        )
        """
    )


@migration(2)
async def migration_002_indexes(conn: aiosqlite.Connection) -> None:
    """Index ownership lookups and per-conversation history reads."""
    await conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_conversations_owner ON conversations(owner_id)"
    )
    await conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_messages_conversation_created
        ON messages(conversation_id, created_at)
        """
    )
