"""Wire event types emitted during a streaming turn.

Events form a closed union. ``to_wire`` maps each variant to its camelCase
JSON payload and rejects anything outside the union, so adding a variant
without teaching the serializer about it fails loudly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from chatgateway.models.types import Citation, Usage

KEEPALIVE_FRAME = ": ping\n\n"


@dataclass(frozen=True)
class TokenEvent:
    """A text delta from the model."""

    content: str


@dataclass(frozen=True)
class ToolCallStartEvent:
    """The model requested a tool call; execution is about to begin."""

    tool_call_id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class ToolCallResultEvent:
    """Outcome of the tool call announced by the matching start event."""

    tool_call_id: str
    name: str
    output: Any = field(default=None, hash=False)
    error: Optional[str] = None


@dataclass(frozen=True)
class CitationEvent:
    """A retrieved chunk that augments the prompt."""

    citation: Citation


@dataclass(frozen=True)
class UsageEvent:
    """Token usage summed across both passes."""

    usage: Usage


@dataclass(frozen=True)
class ErrorEvent:
    """A failure reported to the caller."""

    message: str
    code: str


@dataclass(frozen=True)
class DoneEvent:
    """The turn completed and the assistant message was persisted."""

    message_id: str
    conversation_id: str


StreamEvent = Union[
    TokenEvent,
    ToolCallStartEvent,
    ToolCallResultEvent,
    CitationEvent,
    UsageEvent,
    ErrorEvent,
    DoneEvent,
]


def to_wire(event: StreamEvent) -> dict[str, Any]:
    """Serialize an event to its wire payload.

    Raises:
        TypeError: If ``event`` is not a member of the event union.
    """
    if isinstance(event, TokenEvent):
        return {"type": "token", "content": event.content}

    if isinstance(event, ToolCallStartEvent):
        return {
            "type": "tool_call_start",
            "toolCallId": event.tool_call_id,
            "name": event.name,
            "input": event.input,
        }

    if isinstance(event, ToolCallResultEvent):
        payload = {
            "type": "tool_call_result",
            "toolCallId": event.tool_call_id,
            "name": event.name,
            "output": event.output,
        }
        if event.error is not None:
            payload["error"] = event.error
        return payload

    if isinstance(event, CitationEvent):
        c = event.citation
        return {
            "type": "citation",
            "attachmentId": c.attachment_id,
            "filename": c.filename,
            "chunkIndex": c.chunk_index,
            "excerpt": c.excerpt,
            "similarity": c.similarity,
        }

    if isinstance(event, UsageEvent):
        u = event.usage
        return {
            "type": "usage",
            "promptTokens": u.prompt_tokens,
            "completionTokens": u.completion_tokens,
            "totalTokens": u.total_tokens,
            "costEstimate": u.cost_estimate,
            "latencyMs": u.latency_ms,
        }

    if isinstance(event, ErrorEvent):
        return {"type": "error", "message": event.message, "code": event.code}

    if isinstance(event, DoneEvent):
        return {
            "type": "done",
            "messageId": event.message_id,
            "conversationId": event.conversation_id,
        }

    raise TypeError(f"Not a stream event: {type(event).__name__}")


def encode_sse(event: StreamEvent) -> str:
    """Frame an event as a single SSE ``data:`` line."""
    return f"data: {json.dumps(to_wire(event), default=str)}\n\n"
