"""Conversation persistence."""

from .models import Conversation, StoredMessage
from .store import ConversationStore, SQLiteConversationStore, make_title

__all__ = [
    "Conversation",
    "ConversationStore",
    "SQLiteConversationStore",
    "StoredMessage",
    "make_title",
]
