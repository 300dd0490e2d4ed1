"""FastAPI application exposing the streaming chat endpoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import AsyncIterator, Optional

import openai
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from chatgateway import __version__
from chatgateway.config import Settings, get_settings
from chatgateway.conversation.store import ConversationStore, SQLiteConversationStore
from chatgateway.models import ProviderFactory
from chatgateway.models.registry import DEFAULT_MODEL_ID, available_models
from chatgateway.orchestrator.engine import (
    StreamingOrchestrator,
    TurnRequest,
    create_orchestrator,
)
from chatgateway.rag.assembler import RagContextAssembler
from chatgateway.rag.embeddings import EmbeddingService, OpenAIEmbeddingService
from chatgateway.rag.vector_store import InMemoryVectorStore, VectorStore
from chatgateway.ratelimit import InMemoryRateLimiter, RateLimiter
from chatgateway.tools.builtin import register_builtin_tools
from chatgateway.tools.executor import create_gate
from chatgateway.tools.registry import ToolRegistry

from .emitter import EventEmitter, QueueTransport

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def drive_turn(
    orchestrator: StreamingOrchestrator,
    body: TurnRequest,
    owner_id: str,
    transport: QueueTransport,
    cancel: asyncio.Event,
    keepalive_interval: float,
) -> None:
    """Run one turn, logging any failure; the emitter closes on every path."""
    async with EventEmitter(transport, keepalive_interval=keepalive_interval) as emitter:
        try:
            await orchestrator.run_turn(body, owner_id, emitter, cancel)
        except Exception as e:
            logger.error(f"Turn for conversation {body.conversation_id} ended with error: {e}")


async def stream_frames(
    transport: QueueTransport, cancel: asyncio.Event
) -> AsyncIterator[str]:
    """Relay frames to the client, cancelling the turn if the client leaves."""
    completed = False
    try:
        async for frame in transport.frames():
            yield frame
        completed = True
    finally:
        if not completed:
            logger.info("Client disconnected, cancelling turn")
            cancel.set()
            transport.detach()


def create_app(
    settings: Optional[Settings] = None,
    *,
    providers: Optional[ProviderFactory] = None,
    store: Optional[ConversationStore] = None,
    vector_store: Optional[VectorStore] = None,
    embedder: Optional[EmbeddingService] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Build the application and wire its collaborators.

    Any collaborator not supplied is created from settings. Retrieval is only
    available when an embedder is given or an OpenAI key is configured.
    """
    settings = settings or get_settings()
    providers = providers or ProviderFactory.from_settings(settings)
    store = store or SQLiteConversationStore(settings.storage.resolved_database_path)
    vector_store = vector_store or InMemoryVectorStore()
    rate_limiter = rate_limiter or InMemoryRateLimiter(
        window_seconds=settings.rate_limit.window_seconds
    )

    if embedder is None and settings.openai_api_key:
        embedder = OpenAIEmbeddingService(
            openai.AsyncOpenAI(api_key=settings.openai_api_key),
            model=settings.rag.embedding_model,
            dimensions=settings.rag.embedding_dimensions,
        )
    assembler = (
        RagContextAssembler(
            embedder,
            vector_store,
            top_k=settings.rag.top_k,
            similarity_threshold=settings.rag.similarity_threshold,
        )
        if embedder is not None
        else None
    )

    registry = ToolRegistry()
    register_builtin_tools(registry, settings, assembler=assembler, store=vector_store)
    gate = create_gate(registry, settings.tools.timeout_seconds)
    orchestrator = create_orchestrator(
        providers, store, gate, assembler=assembler, settings=settings
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(store, SQLiteConversationStore):
            await store.initialize()
        yield
        for task in list(app.state.turn_tasks):
            task.cancel()

    app = FastAPI(title="Chat Gateway", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.providers = providers
    app.state.store = store
    app.state.vector_store = vector_store
    app.state.orchestrator = orchestrator
    app.state.rate_limiter = rate_limiter
    app.state.turn_tasks = set()

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__, "providers": await providers.health()}

    @app.get("/models")
    async def models() -> dict:
        return {
            "default": DEFAULT_MODEL_ID,
            "models": [
                {
                    "id": m.id,
                    "provider": m.provider.value,
                    "displayName": m.display_name,
                    "contextWindow": m.context_window,
                    "maxOutputTokens": m.max_output_tokens,
                    "supportsVision": m.supports_vision,
                    "supportsTools": m.supports_tools,
                }
                for m in available_models(settings.local_enabled)
            ],
        }

    @app.post("/chat/stream")
    async def chat_stream(request: Request, x_user_id: Optional[str] = Header(default=None)):
        if not x_user_id:
            return JSONResponse(
                status_code=401,
                content={"error": "Missing X-User-Id header", "code": "UNAUTHORIZED"},
            )

        decision = await rate_limiter.check_rate_limit(
            f"chat:{x_user_id}", settings.rate_limit.chat_max
        )
        headers = {
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(decision.reset_at, UTC).isoformat(),
        }
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "code": "RATE_LIMITED",
                    "resetAt": headers["X-RateLimit-Reset"],
                },
                headers=headers,
            )

        try:
            body = TurnRequest.model_validate(await request.json())
        except (ValidationError, ValueError) as e:
            logger.debug(f"Rejected chat request body: {e}")
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid request body", "code": "INVALID_REQUEST"},
                headers=headers,
            )

        transport = QueueTransport(maxsize=settings.stream.queue_size)
        cancel = asyncio.Event()
        task = asyncio.create_task(
            drive_turn(
                orchestrator,
                body,
                x_user_id,
                transport,
                cancel,
                settings.stream.keepalive_seconds,
            )
        )
        app.state.turn_tasks.add(task)
        task.add_done_callback(app.state.turn_tasks.discard)

        return StreamingResponse(
            stream_frames(transport, cancel),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, **headers},
        )

    return app
