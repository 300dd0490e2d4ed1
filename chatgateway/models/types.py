"""Unified message, tool-call and stream types shared by every provider."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from chatgateway.errors import ProviderTransportError


class MessageRole(str, Enum):
    """Role of a message sender."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Reason why the model stopped generating."""

    STOP = "stop"
    TOOL_USE = "tool_use"
    LENGTH = "length"
    ERROR = "error"
    CONTENT_FILTER = "content_filter"


@dataclass(frozen=True)
class TextBlock:
    """A plain-text content block."""

    text: str


@dataclass(frozen=True)
class ImageBlock:
    """An image referenced by URL.

    Inline base64 ``data:`` URLs are rejected by the adapters.
    """

    url: str
    detail: str = "auto"


ContentBlock = Union[TextBlock, ImageBlock]


@dataclass(frozen=True)
class ChatMessage:
    """A message in a conversation transcript.

    Content is either a plain string or an ordered tuple of content blocks.
    Tool messages link back to the originating call through ``tool_call_id``
    and ``name``; the assistant message that requested the call carries it in
    ``tool_calls``.
    """

    role: MessageRole
    content: Union[str, tuple[ContentBlock, ...]]
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    tool_calls: tuple["ToolCallRequest", ...] = ()

    @classmethod
    def user(cls, content: Union[str, tuple[ContentBlock, ...]]) -> "ChatMessage":
        """Create a user message."""
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: tuple["ToolCallRequest", ...] = ()
    ) -> "ChatMessage":
        """Create an assistant message."""
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: str) -> "ChatMessage":
        """Create a tool result message for a single tool call."""
        return cls(
            role=MessageRole.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
        )

    @property
    def text(self) -> str:
        """Text content with image blocks dropped."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


@dataclass(frozen=True)
class ToolCallRequest:
    """A completed tool call requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of running a tool call through the execution gate.

    Exactly one of ``output`` and ``error`` is meaningful: ``error`` is set
    on failure and ``output`` is then ``None``.
    """

    id: str
    name: str
    output: Any = field(default=None, hash=False)
    error: Optional[str] = None
    latency_ms: int = 0

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ToolCallFragment:
    """A partial tool call as streamed by the provider, keyed by index."""

    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass(frozen=True)
class Citation:
    """A retrieved chunk surfaced to the caller."""

    attachment_id: str
    filename: str
    chunk_index: int
    excerpt: str
    similarity: float


@dataclass
class Usage:
    """Token usage, cost and latency for one or more streaming passes."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_estimate: float = 0.0
    latency_ms: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        """Add two usage objects together."""
        prompt = self.prompt_tokens + other.prompt_tokens
        completion = self.completion_tokens + other.completion_tokens
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
            cost_estimate=self.cost_estimate + other.cost_estimate,
            latency_ms=self.latency_ms + other.latency_ms,
        )

    def with_follow_up(self, follow_up: "Usage") -> "Usage":
        """Fold a follow-up pass into this one.

        The follow-up pass re-sends the same prompt, so its prompt tokens are
        not counted again.
        """
        completion = self.completion_tokens + follow_up.completion_tokens
        return Usage(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=completion,
            total_tokens=self.prompt_tokens + completion,
            cost_estimate=self.cost_estimate + follow_up.cost_estimate,
            latency_ms=self.latency_ms + follow_up.latency_ms,
        )


@dataclass
class StreamChunk:
    """A normalized delta from a provider stream.

    At most one payload field is set per chunk. ``is_complete`` marks the
    final chunk of a pass.
    """

    content: str = ""
    tool_call_fragment: Optional[ToolCallFragment] = None
    tool_call: Optional[ToolCallRequest] = None
    finish_reason: Optional[FinishReason] = None
    usage: Optional[Usage] = None
    error: Optional[ProviderTransportError] = None
    is_complete: bool = False
