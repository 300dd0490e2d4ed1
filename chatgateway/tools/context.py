"""Per-turn context handed to tool handlers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolContext:
    """Who a tool is running for and which documents are in scope.

    Attributes:
        owner_id: The caller whose documents may be read.
        conversation_id: The conversation the turn belongs to.
        attachment_ids: Explicit attachment scope for retrieval; empty means
            all of the owner's ready attachments.
    """

    owner_id: str
    conversation_id: str = ""
    attachment_ids: tuple[str, ...] = ()
