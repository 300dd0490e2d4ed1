"""OpenAI chat-completions streaming adapter."""

import json
import logging
from typing import Any, AsyncIterator, Optional

import openai
import tiktoken

from chatgateway.errors import ProviderTransportError

from .base import ProviderAdapter, StreamOptions, ToolCallAccumulator, check_image_url
from .registry import ModelDescriptor, ProviderKind
from .tools import ToolDefinition, tools_to_openai
from .types import (
    ChatMessage,
    FinishReason,
    MessageRole,
    StreamChunk,
    TextBlock,
    ToolCallFragment,
    Usage,
)

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_USE,
    "function_call": FinishReason.TOOL_USE,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class OpenAIChatAdapter(ProviderAdapter):
    """Adapter for OpenAI's chat-completions streaming API."""

    kind = ProviderKind.OPENAI

    def __init__(self, client: "openai.AsyncOpenAI"):
        super().__init__(client)
        self._encoding: Any = None

    def _convert_content(self, message: ChatMessage) -> Any:
        if isinstance(message.content, str):
            return message.content

        parts: list[dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            else:
                parts.append({
                    "type": "image_url",
                    "image_url": {"url": check_image_url(block), "detail": block.detail},
                })
        return parts

    def _convert_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Convert unified messages to OpenAI format."""
        openai_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == MessageRole.TOOL:
                if msg.tool_call_id:
                    openai_messages.append({
                        "role": "tool",
                        "tool_call_id": msg.tool_call_id,
                        "content": msg.text,
                    })
                else:
                    # Unlinked tool output from stored history
                    openai_messages.append({"role": "user", "content": msg.text})

            elif msg.role == MessageRole.ASSISTANT:
                message: dict[str, Any] = {
                    "role": "assistant",
                    "content": msg.text or None,
                }
                if msg.tool_calls:
                    message["tool_calls"] = [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.input),
                            },
                        }
                        for tc in msg.tool_calls
                    ]
                openai_messages.append(message)

            else:
                openai_messages.append({
                    "role": msg.role.value,
                    "content": self._convert_content(msg),
                })

        return openai_messages

    def _build_request(
        self,
        messages: list[ChatMessage],
        descriptor: ModelDescriptor,
        tools: Optional[list[ToolDefinition]],
        options: StreamOptions,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": descriptor.wire_name,
            "messages": self._convert_messages(messages),
            "max_tokens": options.max_tokens or descriptor.max_output_tokens,
            "temperature": options.temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        if tools:
            kwargs["tools"] = tools_to_openai(tools)
            kwargs["tool_choice"] = "auto"

        return kwargs

    async def _stream(
        self,
        request: dict[str, Any],
        descriptor: ModelDescriptor,
        options: StreamOptions,
        started: float,
    ) -> AsyncIterator[StreamChunk]:
        accumulator = ToolCallAccumulator()
        finish_reason: Optional[FinishReason] = None
        usage: Optional[Usage] = None
        completion_text: list[str] = []

        stream = await self.client.chat.completions.create(**request)
        try:
            async for chunk in stream:
                if options.cancelled:
                    logger.debug(f"Stream for {descriptor.id} cancelled")
                    return

                if chunk.usage:
                    usage = self._make_usage(
                        descriptor,
                        chunk.usage.prompt_tokens,
                        chunk.usage.completion_tokens,
                        started,
                    )

                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta

                if delta is not None and delta.content:
                    completion_text.append(delta.content)
                    yield StreamChunk(content=delta.content)

                if delta is not None and delta.tool_calls:
                    for tc_delta in delta.tool_calls:
                        function = tc_delta.function
                        fragment = ToolCallFragment(
                            index=tc_delta.index,
                            id=tc_delta.id,
                            name=function.name if function else None,
                            arguments=(function.arguments or "") if function else "",
                        )
                        accumulator.add(fragment)
                        yield StreamChunk(tool_call_fragment=fragment)

                if choice.finish_reason:
                    finish_reason = _FINISH_REASONS.get(choice.finish_reason, FinishReason.STOP)
                    for request_call in accumulator.complete():
                        yield StreamChunk(tool_call=request_call)
        finally:
            await stream.close()

        if options.cancelled:
            return

        # Streams cut short without a finish_reason still flush their calls
        for request_call in accumulator.complete():
            finish_reason = FinishReason.TOOL_USE
            yield StreamChunk(tool_call=request_call)

        if usage is None:
            usage = self._make_usage(
                descriptor,
                self.count_tokens(json.dumps(request["messages"], default=str)),
                self.count_tokens("".join(completion_text)),
                started,
            )

        yield StreamChunk(
            is_complete=True,
            finish_reason=finish_reason or FinishReason.STOP,
            usage=usage,
        )

    def _translate_error(
        self, error: Exception, descriptor: ModelDescriptor
    ) -> ProviderTransportError:
        """Convert OpenAI exceptions to our error types."""
        if isinstance(error, openai.APIStatusError):
            return ProviderTransportError(str(error), descriptor.id, error.status_code)
        if isinstance(error, openai.APITimeoutError):
            return ProviderTransportError(f"Request timed out: {error}", descriptor.id)
        return ProviderTransportError(str(error) or type(error).__name__, descriptor.id)

    def _get_encoding(self) -> Any:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding("cl100k_base")
        return self._encoding

    def count_tokens(self, text: str) -> int:
        """Count tokens using tiktoken, falling back to a rough estimate."""
        try:
            return len(self._get_encoding().encode(text))
        except Exception as e:
            # Encoding files are fetched on first use and may be unavailable offline
            logger.debug(f"Token counting unavailable, using estimate: {e}")
            return super().count_tokens(text)
