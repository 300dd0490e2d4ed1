"""Anthropic messages streaming adapter."""

import logging
from typing import Any, AsyncIterator, Optional

import anthropic

from chatgateway.errors import ProviderTransportError

from .base import ProviderAdapter, StreamOptions, ToolCallAccumulator, check_image_url
from .registry import ModelDescriptor, ProviderKind
from .tools import ToolDefinition, tools_to_anthropic
from .types import (
    ChatMessage,
    FinishReason,
    MessageRole,
    StreamChunk,
    TextBlock,
    ToolCallFragment,
)

logger = logging.getLogger(__name__)

_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_USE,
    "max_tokens": FinishReason.LENGTH,
    "refusal": FinishReason.CONTENT_FILTER,
}


class AnthropicMessagesAdapter(ProviderAdapter):
    """Adapter for Anthropic's messages API.

    The system prompt travels separately from the conversation: every
    system-role message is pulled out and joined with blank lines.
    """

    kind = ProviderKind.ANTHROPIC

    def __init__(self, client: "anthropic.AsyncAnthropic"):
        super().__init__(client)

    def _convert_content(self, message: ChatMessage) -> Any:
        if isinstance(message.content, str):
            return message.content

        blocks: list[dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, TextBlock):
                blocks.append({"type": "text", "text": block.text})
            else:
                blocks.append({
                    "type": "image",
                    "source": {"type": "url", "url": check_image_url(block)},
                })
        return blocks

    def _convert_messages(
        self, messages: list[ChatMessage]
    ) -> tuple[Optional[str], list[dict[str, Any]]]:
        """Convert unified messages to Anthropic format.

        Returns:
            Tuple of (system_text, messages_list)
        """
        system_parts: list[str] = []
        anthropic_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append(msg.text)

            elif msg.role == MessageRole.TOOL:
                if msg.tool_call_id:
                    anthropic_messages.append({
                        "role": "user",
                        "content": [{
                            "type": "tool_result",
                            "tool_use_id": msg.tool_call_id,
                            "content": msg.text,
                        }],
                    })
                else:
                    anthropic_messages.append({"role": "user", "content": msg.text})

            elif msg.role == MessageRole.ASSISTANT:
                if msg.tool_calls:
                    content: list[dict[str, Any]] = []
                    if msg.text:
                        content.append({"type": "text", "text": msg.text})
                    for tc in msg.tool_calls:
                        content.append({
                            "type": "tool_use",
                            "id": tc.id,
                            "name": tc.name,
                            "input": tc.input,
                        })
                    anthropic_messages.append({"role": "assistant", "content": content})
                else:
                    anthropic_messages.append({
                        "role": "assistant",
                        "content": self._convert_content(msg),
                    })

            else:
                anthropic_messages.append({
                    "role": "user",
                    "content": self._convert_content(msg),
                })

        system_text = "\n\n".join(p for p in system_parts if p)
        return system_text or None, anthropic_messages

    def _build_request(
        self,
        messages: list[ChatMessage],
        descriptor: ModelDescriptor,
        tools: Optional[list[ToolDefinition]],
        options: StreamOptions,
    ) -> dict[str, Any]:
        system_text, anthropic_messages = self._convert_messages(messages)

        kwargs: dict[str, Any] = {
            "model": descriptor.wire_name,
            "max_tokens": options.max_tokens or descriptor.max_output_tokens,
            "temperature": options.temperature,
            "messages": anthropic_messages,
        }

        if system_text:
            kwargs["system"] = system_text

        if tools:
            kwargs["tools"] = tools_to_anthropic(tools)

        return kwargs

    async def _stream(
        self,
        request: dict[str, Any],
        descriptor: ModelDescriptor,
        options: StreamOptions,
        started: float,
    ) -> AsyncIterator[StreamChunk]:
        accumulator = ToolCallAccumulator()

        async with self.client.messages.stream(**request) as stream:
            async for event in stream:
                if options.cancelled:
                    logger.debug(f"Stream for {descriptor.id} cancelled")
                    return

                if event.type == "content_block_start":
                    block = event.content_block
                    if getattr(block, "type", None) == "tool_use":
                        fragment = ToolCallFragment(
                            index=event.index, id=block.id, name=block.name
                        )
                        accumulator.add(fragment)
                        yield StreamChunk(tool_call_fragment=fragment)

                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta" and delta.text:
                        yield StreamChunk(content=delta.text)
                    elif delta.type == "input_json_delta":
                        fragment = ToolCallFragment(
                            index=event.index, arguments=delta.partial_json
                        )
                        accumulator.add(fragment)
                        yield StreamChunk(tool_call_fragment=fragment)

                elif event.type == "message_stop":
                    for request_call in accumulator.complete():
                        yield StreamChunk(tool_call=request_call)

                    final_message = await stream.get_final_message()
                    usage = self._make_usage(
                        descriptor,
                        final_message.usage.input_tokens,
                        final_message.usage.output_tokens,
                        started,
                    )
                    yield StreamChunk(
                        is_complete=True,
                        finish_reason=_STOP_REASONS.get(
                            final_message.stop_reason, FinishReason.STOP
                        ),
                        usage=usage,
                    )

    def _translate_error(
        self, error: Exception, descriptor: ModelDescriptor
    ) -> ProviderTransportError:
        """Convert Anthropic exceptions to our error types."""
        if isinstance(error, anthropic.APIStatusError):
            return ProviderTransportError(str(error), descriptor.id, error.status_code)
        if isinstance(error, anthropic.APITimeoutError):
            return ProviderTransportError(f"Request timed out: {error}", descriptor.id)
        return ProviderTransportError(str(error) or type(error).__name__, descriptor.id)
