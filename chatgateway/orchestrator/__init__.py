"""Streaming turn orchestration.

Main components:
- StreamingOrchestrator: drives one turn through retrieval, streaming and a tool call
- TurnRequest: validated inbound request
- Stream events: the closed union of wire events and their serializer
"""

from .engine import (
    PassResult,
    StreamingOrchestrator,
    TurnOutcome,
    TurnRequest,
    TurnState,
    create_orchestrator,
)
from .events import (
    KEEPALIVE_FRAME,
    CitationEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    TokenEvent,
    ToolCallResultEvent,
    ToolCallStartEvent,
    UsageEvent,
    encode_sse,
    to_wire,
)
from .prompts import SYSTEM_PROMPT_TEMPLATE, format_system_prompt

__all__ = [
    # Engine
    "PassResult",
    "StreamingOrchestrator",
    "TurnOutcome",
    "TurnRequest",
    "TurnState",
    "create_orchestrator",
    # Events
    "KEEPALIVE_FRAME",
    "CitationEvent",
    "DoneEvent",
    "ErrorEvent",
    "StreamEvent",
    "TokenEvent",
    "ToolCallResultEvent",
    "ToolCallStartEvent",
    "UsageEvent",
    "encode_sse",
    "to_wire",
    # Prompts
    "SYSTEM_PROMPT_TEMPLATE",
    "format_system_prompt",
]
