"""Data models for stored conversations and messages."""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class Conversation(BaseModel):
    """A conversation owned by one user."""

    id: str
    owner_id: str
    title: Optional[str] = None
    created_at: datetime
    last_activity_at: datetime

    @classmethod
    def from_db_row(cls, row: dict) -> "Conversation":
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_activity_at=datetime.fromisoformat(row["last_activity_at"]),
        )


class StoredMessage(BaseModel):
    """A persisted user or assistant message."""

    id: str
    conversation_id: str
    role: str
    content: str
    parent_message_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_db_row(cls, row: dict) -> "StoredMessage":
        return cls(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            parent_message_id=row["parent_message_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )
