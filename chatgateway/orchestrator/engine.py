"""Streaming turn orchestration.

One call to ``StreamingOrchestrator.run_turn`` handles exactly one user turn:

1. Verify ownership, persist the user message and load history
2. Optionally retrieve document context and emit citations
3. Stream a first pass with tools enabled
4. If the model requested a tool, run it through the gate and stream a
   second pass over the extended transcript with tools disabled
5. Emit usage, persist the assistant message and emit ``done``

A single cancellation event is shared by both passes and the tool call.
Once it is set no further events are emitted and partial content is
discarded.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Optional, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatgateway.config import Settings, get_settings
from chatgateway.conversation.store import ConversationStore
from chatgateway.errors import ConversationNotFoundError, GatewayError, ProviderTransportError
from chatgateway.models import ProviderFactory
from chatgateway.models.base import ProviderAdapter, StreamOptions
from chatgateway.models.registry import ModelDescriptor, resolve_model
from chatgateway.models.router import ModelRouter
from chatgateway.models.tools import ToolDefinition
from chatgateway.models.types import (
    ChatMessage,
    Citation,
    FinishReason,
    MessageRole,
    ToolCallRequest,
    ToolCallResult,
    Usage,
)
from chatgateway.rag.assembler import RagContextAssembler, RagResult
from chatgateway.tools.context import ToolContext
from chatgateway.tools.executor import ToolExecutionGate

from .events import (
    CitationEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    TokenEvent,
    ToolCallResultEvent,
    ToolCallStartEvent,
    UsageEvent,
)
from .prompts import format_system_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T")

HISTORY_ROLES = {MessageRole.USER.value, MessageRole.ASSISTANT.value}


class TurnState(str, Enum):
    """Lifecycle of a single turn."""

    IDLE = "idle"
    RAG_LOOKUP = "rag_lookup"
    FIRST_PASS = "first_pass"
    TOOL_REQUESTED = "tool_requested"
    TOOL_EXECUTING = "tool_executing"
    SECOND_PASS = "second_pass"
    DONE = "done"
    ABORTED = "aborted"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.DONE, TurnState.ABORTED, TurnState.ERRORED)


class TurnRequest(BaseModel):
    """Inbound request for one streaming turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    conversation_id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=100_000)
    model_id: Optional[str] = None
    rag_enabled: bool = False
    parent_message_id: Optional[str] = None
    attachment_ids: list[str] = Field(default_factory=list)


class EventSink(Protocol):
    """Anything the orchestrator can emit events into."""

    async def emit(self, event: StreamEvent) -> None:
        ...


@dataclass
class PassResult:
    """What one streaming pass produced."""

    content: str = ""
    tool_call: Optional[ToolCallRequest] = None
    usage: Usage = field(default_factory=Usage)
    finish_reason: Optional[FinishReason] = None


@dataclass
class TurnOutcome:
    """Final state of a turn, returned to the transport layer."""

    conversation_id: str
    state: TurnState = TurnState.IDLE
    model_id: Optional[str] = None
    message_id: Optional[str] = None
    content: str = ""
    usage: Optional[Usage] = None
    tool_call: Optional[ToolCallRequest] = None
    tool_result: Optional[ToolCallResult] = None
    citations: list[Citation] = field(default_factory=list)


class StreamingOrchestrator:
    """Drives one user turn through retrieval, streaming and a single tool call.

    Example:
        >>> orchestrator = create_orchestrator(providers, store, gate, settings=settings)
        >>> async with EventEmitter(transport) as emitter:
        ...     outcome = await orchestrator.run_turn(request, "user-1", emitter)
    """

    def __init__(
        self,
        providers: ProviderFactory,
        store: ConversationStore,
        gate: ToolExecutionGate,
        router: Optional[ModelRouter] = None,
        assembler: Optional[RagContextAssembler] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the orchestrator.

        Args:
            providers: Adapters keyed by provider kind
            store: Conversation persistence
            gate: Tool execution gate, whose registry supplies tool definitions
            router: Failover router; defaults to one probing the local adapter
            assembler: Retrieval assembler; RAG is skipped when absent
            settings: Application settings
        """
        self.settings = settings or get_settings()
        self.providers = providers
        self.store = store
        self.gate = gate
        self.router = router or providers.build_router(
            ttl=self.settings.router.health_ttl_seconds,
            fallback=resolve_model(self.settings.router.default_model_id),
        )
        self.assembler = assembler

    def _tool_definitions(self) -> Optional[list[ToolDefinition]]:
        return self.gate.registry.get_definitions() or None

    @staticmethod
    def _transition(outcome: TurnOutcome, state: TurnState) -> None:
        logger.debug(f"Turn {outcome.conversation_id}: {outcome.state.value} -> {state.value}")
        outcome.state = state

    async def run_turn(
        self,
        request: TurnRequest,
        owner_id: str,
        emitter: EventSink,
        cancel: Optional[asyncio.Event] = None,
    ) -> TurnOutcome:
        """Run a streaming turn.

        Args:
            request: Validated turn request
            owner_id: Authenticated caller
            emitter: Event sink; the caller owns closing it
            cancel: Cancellation signal shared by every phase of the turn

        Returns:
            TurnOutcome describing how the turn ended

        Raises:
            ProviderTransportError: After the matching error event was emitted
            Exception: Any other unexpected failure, after a STREAM_ERROR event
        """
        cancel = cancel or asyncio.Event()
        outcome = TurnOutcome(conversation_id=request.conversation_id)
        logger.info(f"Turn started: conversation={request.conversation_id} owner={owner_id}")

        try:
            await self._run(request, owner_id, emitter, cancel, outcome)
        except ProviderTransportError as e:
            self._transition(outcome, TurnState.ERRORED)
            logger.error(f"Turn failed with transport error: {e.message}")
            raise
        except GatewayError as e:
            self._transition(outcome, TurnState.ERRORED)
            logger.error(f"Turn failed: {e}")
            if not cancel.is_set():
                await emitter.emit(ErrorEvent(message=e.message, code=e.code))
            raise
        except asyncio.CancelledError:
            self._transition(outcome, TurnState.ABORTED)
            raise
        except Exception as e:
            self._transition(outcome, TurnState.ERRORED)
            logger.exception("Unexpected error during turn")
            if not cancel.is_set():
                await emitter.emit(
                    ErrorEvent(message=str(e) or "Internal error", code="STREAM_ERROR")
                )
            raise

        logger.info(
            f"Turn finished: conversation={request.conversation_id} state={outcome.state.value}"
        )
        return outcome

    async def _run(
        self,
        request: TurnRequest,
        owner_id: str,
        emitter: EventSink,
        cancel: asyncio.Event,
        outcome: TurnOutcome,
    ) -> None:
        conversation_id = request.conversation_id

        conversation = await self.store.get_conversation(conversation_id, owner_id)
        if conversation is None:
            self._transition(outcome, TurnState.ERRORED)
            missing = ConversationNotFoundError(conversation_id)
            await emitter.emit(ErrorEvent(message=missing.message, code=missing.code))
            return

        user_message_id = await self.store.create_message(
            conversation_id,
            MessageRole.USER.value,
            request.content,
            parent_message_id=request.parent_message_id,
        )
        history = await self.store.load_history(
            conversation_id, self.settings.stream.history_limit
        )

        rag = RagResult()
        if request.rag_enabled and self.assembler is not None:
            self._transition(outcome, TurnState.RAG_LOOKUP)
            rag = await self._retrieve(request, owner_id)
            for citation in rag.citations:
                if cancel.is_set():
                    return self._abort(outcome)
                await emitter.emit(CitationEvent(citation))
            outcome.citations = list(rag.citations)

        requested = resolve_model(request.model_id, default=self.router.fallback)
        descriptor = await self.router.failover(requested)
        adapter = self.providers.for_model(descriptor)
        outcome.model_id = descriptor.id

        transcript = [ChatMessage.system(format_system_prompt(rag.context_block))]
        transcript.extend(
            ChatMessage(role=MessageRole(m.role), content=m.content)
            for m in history
            if m.role in HISTORY_ROLES
        )
        options = StreamOptions(
            max_tokens=descriptor.max_output_tokens,
            temperature=self.settings.stream.temperature,
            cancel=cancel,
        )

        self._transition(outcome, TurnState.FIRST_PASS)
        first = await self._stream_pass(
            adapter, descriptor, transcript, self._tool_definitions(), options, emitter
        )
        if first is None:
            return self._abort(outcome)

        content = first.content
        usage = first.usage
        finish_reason = first.finish_reason

        if first.tool_call is not None:
            call = first.tool_call
            self._transition(outcome, TurnState.TOOL_REQUESTED)
            await emitter.emit(
                ToolCallStartEvent(tool_call_id=call.id, name=call.name, input=call.input)
            )

            self._transition(outcome, TurnState.TOOL_EXECUTING)
            context = ToolContext(
                owner_id=owner_id,
                conversation_id=conversation_id,
                attachment_ids=tuple(request.attachment_ids),
            )
            result = await self._execute_tool(call, context, cancel)
            if result is None:
                return self._abort(outcome)

            await emitter.emit(
                ToolCallResultEvent(
                    tool_call_id=call.id,
                    name=call.name,
                    output=result.output,
                    error=result.error,
                )
            )
            outcome.tool_call = call
            outcome.tool_result = result

            tool_payload = result.output if result.success else {"error": result.error}
            transcript.append(
                ChatMessage.assistant(
                    first.content or f"[called tool: {call.name}]", tool_calls=(call,)
                )
            )
            transcript.append(
                ChatMessage.tool(call.id, call.name, json.dumps(tool_payload, default=str))
            )

            self._transition(outcome, TurnState.SECOND_PASS)
            second = await self._stream_pass(adapter, descriptor, transcript, None, options, emitter)
            if second is None:
                return self._abort(outcome)

            content += second.content
            usage = usage.with_follow_up(second.usage)
            finish_reason = second.finish_reason

        if cancel.is_set():
            return self._abort(outcome)

        await emitter.emit(UsageEvent(usage))
        outcome.usage = usage
        outcome.content = content

        message_id = await self.store.create_message(
            conversation_id,
            MessageRole.ASSISTANT.value,
            content,
            parent_message_id=user_message_id,
            metadata=self._message_metadata(outcome, finish_reason),
        )
        await self.store.touch_conversation(conversation_id)
        outcome.message_id = message_id

        self._transition(outcome, TurnState.DONE)
        await emitter.emit(DoneEvent(message_id=message_id, conversation_id=conversation_id))

    async def _retrieve(self, request: TurnRequest, owner_id: str) -> RagResult:
        try:
            return await self.assembler.retrieve(
                request.content,
                owner_id,
                attachment_ids=request.attachment_ids or None,
                top_k=self.settings.rag.top_k,
                similarity_threshold=self.settings.rag.similarity_threshold,
            )
        except Exception as e:
            logger.warning(f"RAG lookup failed, continuing without context: {e}")
            return RagResult()

    async def _stream_pass(
        self,
        adapter: ProviderAdapter,
        descriptor: ModelDescriptor,
        transcript: list[ChatMessage],
        tools: Optional[list[ToolDefinition]],
        options: StreamOptions,
        emitter: EventSink,
    ) -> Optional[PassResult]:
        """Stream one pass, forwarding tokens.

        The pass runs as its own task so a cancel interrupts a provider read
        that is waiting on the network; the provider stream is closed inside
        that task.

        Returns:
            The pass result, or None if the turn was cancelled mid-pass.
        """
        consume = self._consume_pass(adapter, descriptor, transcript, tools, options, emitter)
        if options.cancel is None:
            return await consume
        return await self._until_cancelled(consume, options.cancel)

    async def _consume_pass(
        self,
        adapter: ProviderAdapter,
        descriptor: ModelDescriptor,
        transcript: list[ChatMessage],
        tools: Optional[list[ToolDefinition]],
        options: StreamOptions,
        emitter: EventSink,
    ) -> Optional[PassResult]:
        result = PassResult()
        parts: list[str] = []

        async with aclosing(
            adapter.stream_chat(list(transcript), descriptor, tools=tools, options=options)
        ) as stream:
            async for chunk in stream:
                if options.cancelled:
                    return None

                if chunk.error is not None:
                    await emitter.emit(ErrorEvent(message=chunk.error.message, code=chunk.error.code))
                    continue

                if chunk.content:
                    parts.append(chunk.content)
                    await emitter.emit(TokenEvent(chunk.content))

                if chunk.tool_call is not None:
                    if tools is None:
                        logger.warning(
                            f"Ignoring tool call {chunk.tool_call.name!r} on a pass without tools"
                        )
                    elif result.tool_call is not None:
                        logger.warning(
                            f"Ignoring extra tool call {chunk.tool_call.name!r}; "
                            "only one tool call per turn is executed"
                        )
                    else:
                        result.tool_call = chunk.tool_call

                if chunk.usage is not None:
                    result.usage = chunk.usage
                if chunk.finish_reason is not None:
                    result.finish_reason = chunk.finish_reason

        if options.cancelled:
            return None

        result.content = "".join(parts)
        return result

    async def _execute_tool(
        self, call: ToolCallRequest, context: ToolContext, cancel: asyncio.Event
    ) -> Optional[ToolCallResult]:
        """Run the gate, racing it against cancellation.

        Returns:
            The tool result, or None if the turn was cancelled first.
        """
        return await self._until_cancelled(
            self.gate.execute(call.name, call.input, context, call_id=call.id), cancel
        )

    @staticmethod
    async def _until_cancelled(work: Awaitable[T], cancel: asyncio.Event) -> Optional[T]:
        """Await ``work`` unless ``cancel`` fires first.

        The losing side is cancelled and awaited before returning, so no
        task outlives the turn. Returns None when cancelled.
        """
        task = asyncio.ensure_future(work)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if cancel.is_set():
            if not task.cancelled():
                # Result raced the cancel; it is discarded either way
                task.exception()
            return None
        return task.result()

    def _abort(self, outcome: TurnOutcome) -> None:
        self._transition(outcome, TurnState.ABORTED)
        outcome.content = ""
        logger.info(f"Turn cancelled: conversation={outcome.conversation_id}")

    @staticmethod
    def _message_metadata(
        outcome: TurnOutcome, finish_reason: Optional[FinishReason]
    ) -> dict[str, Any]:
        usage = outcome.usage or Usage()
        metadata: dict[str, Any] = {
            "model": outcome.model_id,
            "promptTokens": usage.prompt_tokens,
            "completionTokens": usage.completion_tokens,
            "costEstimate": usage.cost_estimate,
            "latencyMs": usage.latency_ms,
            "finishReason": finish_reason.value if finish_reason else None,
            "citations": [
                {
                    "attachmentId": c.attachment_id,
                    "filename": c.filename,
                    "chunkIndex": c.chunk_index,
                    "similarity": c.similarity,
                }
                for c in outcome.citations
            ],
        }
        if outcome.tool_call is not None and outcome.tool_result is not None:
            metadata["toolCall"] = {
                "id": outcome.tool_call.id,
                "name": outcome.tool_call.name,
                "input": outcome.tool_call.input,
                "output": outcome.tool_result.output,
                "error": outcome.tool_result.error,
                "latencyMs": outcome.tool_result.latency_ms,
            }
        return metadata


def create_orchestrator(
    providers: ProviderFactory,
    store: ConversationStore,
    gate: ToolExecutionGate,
    assembler: Optional[RagContextAssembler] = None,
    settings: Optional[Settings] = None,
) -> StreamingOrchestrator:
    """Factory function to create an orchestrator from settings."""
    settings = settings or get_settings()
    return StreamingOrchestrator(
        providers=providers,
        store=store,
        gate=gate,
        assembler=assembler,
        settings=settings,
    )
