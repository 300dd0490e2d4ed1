"""Abstract provider adapter and shared streaming helpers."""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from chatgateway.errors import ProviderTransportError

from .registry import ModelDescriptor, ProviderKind, estimate_cost
from .tools import ToolDefinition
from .types import (
    ChatMessage,
    ImageBlock,
    StreamChunk,
    ToolCallFragment,
    ToolCallRequest,
    Usage,
)

logger = logging.getLogger(__name__)


@dataclass
class StreamOptions:
    """Per-pass generation options.

    Attributes:
        max_tokens: Completion cap; defaults to the descriptor's limit.
        temperature: Sampling temperature.
        cancel: Shared cancellation signal. Adapters stop reading once set.
    """

    max_tokens: Optional[int] = None
    temperature: float = 0.7
    cancel: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


class ToolCallAccumulator:
    """Coalesces streamed tool-call fragments by index.

    Argument text is concatenated per call and only parsed once the provider
    signals completion. Unparseable arguments become an empty dict.
    """

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, str]] = {}

    def add(self, fragment: ToolCallFragment) -> None:
        call = self._calls.setdefault(
            fragment.index, {"id": "", "name": "", "arguments": ""}
        )
        if fragment.id:
            call["id"] = fragment.id
        if fragment.name:
            call["name"] = fragment.name
        if fragment.arguments:
            call["arguments"] += fragment.arguments

    def __bool__(self) -> bool:
        return bool(self._calls)

    def complete(self) -> list[ToolCallRequest]:
        """Materialize the accumulated calls in index order and reset."""
        requests = []
        for index in sorted(self._calls):
            data = self._calls[index]
            try:
                arguments = json.loads(data["arguments"]) if data["arguments"] else {}
            except json.JSONDecodeError:
                logger.debug(f"Unparseable tool arguments for {data['name']!r}")
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            requests.append(
                ToolCallRequest(
                    id=data["id"] or f"call_{index}",
                    name=data["name"],
                    input=arguments,
                )
            )
        self._calls.clear()
        return requests


def check_image_url(block: ImageBlock) -> str:
    """Return the block's URL, rejecting inline-encoded images."""
    if block.url.startswith("data:"):
        raise ValueError("Inline image data is not supported; use an image URL")
    return block.url


class ProviderAdapter(ABC):
    """Translates the internal transcript to one backend's streaming API.

    Subclasses implement ``_stream`` to yield normalized chunks. The public
    ``stream_chat`` wraps it with latency measurement and failure handling:
    any transport failure is yielded once as an error chunk and then raised
    as ``ProviderTransportError``.
    """

    kind: ProviderKind

    def __init__(self, client: Any):
        self.client = client

    async def stream_chat(
        self,
        messages: list[ChatMessage],
        descriptor: ModelDescriptor,
        tools: Optional[list[ToolDefinition]] = None,
        options: Optional[StreamOptions] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one completion pass.

        Args:
            messages: Transcript including system messages
            descriptor: Model to call
            tools: Tools the model may call, or None to disable tool use
            options: Generation options and cancellation signal

        Yields:
            Normalized StreamChunk objects, ending with one ``is_complete``
            chunk carrying finish reason and usage.

        Raises:
            ProviderTransportError: On any provider or network failure.
            ValueError: If the transcript cannot be translated.
        """
        options = options or StreamOptions()
        request = self._build_request(messages, descriptor, tools, options)
        started = time.monotonic()

        try:
            async with aclosing(
                self._stream(request, descriptor, options, started)
            ) as chunks:
                async for chunk in chunks:
                    yield chunk
        except ProviderTransportError as e:
            yield StreamChunk(error=e)
            raise
        except Exception as e:
            error = self._translate_error(e, descriptor)
            logger.error(f"Provider stream failed for {descriptor.id}: {error.message}")
            yield StreamChunk(error=error)
            raise error from e

    @abstractmethod
    def _build_request(
        self,
        messages: list[ChatMessage],
        descriptor: ModelDescriptor,
        tools: Optional[list[ToolDefinition]],
        options: StreamOptions,
    ) -> dict[str, Any]:
        """Build provider request kwargs from the internal representation."""
        ...

    @abstractmethod
    def _stream(
        self,
        request: dict[str, Any],
        descriptor: ModelDescriptor,
        options: StreamOptions,
        started: float,
    ) -> AsyncIterator[StreamChunk]:
        """Yield normalized chunks from the provider's raw stream."""
        ...

    @abstractmethod
    def _translate_error(
        self, error: Exception, descriptor: ModelDescriptor
    ) -> ProviderTransportError:
        """Convert an SDK exception to a transport error."""
        ...

    async def check_health(self) -> bool:
        """Probe the backend with a lightweight models-list request."""
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.debug(f"Health probe for {self.kind.value} failed: {e}")
            return False

    def _make_usage(
        self,
        descriptor: ModelDescriptor,
        prompt_tokens: int,
        completion_tokens: int,
        started: float,
    ) -> Usage:
        return Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            cost_estimate=estimate_cost(descriptor, prompt_tokens, completion_tokens),
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    def count_tokens(self, text: str) -> int:
        """Rough token estimate (4 chars per token average).

        Used only when a provider omits usage totals. Subclasses may override
        with a real tokenizer.
        """
        return len(text) // 4
