"""Pytest configuration and fixtures for chat gateway tests."""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Generator, Optional, Sequence, Union

import pytest
import pytest_asyncio

from chatgateway.config import Settings, reset_settings
from chatgateway.conversation import SQLiteConversationStore
from chatgateway.errors import ProviderTransportError
from chatgateway.models import ProviderFactory
from chatgateway.models.base import ProviderAdapter, StreamOptions
from chatgateway.models.registry import ModelDescriptor, ProviderKind
from chatgateway.models.types import (
    FinishReason,
    StreamChunk,
    ToolCallRequest,
    Usage,
)
from chatgateway.orchestrator.events import StreamEvent
from chatgateway.rag import (
    AttachmentRecord,
    ChunkRecord,
    InMemoryVectorStore,
    RagContextAssembler,
)
from chatgateway.tools import ToolRegistry, create_gate
from chatgateway.tools.builtin import register_builtin_tools

ScriptItem = Union[StreamChunk, Exception]


# =============================================================================
# Stream scripting helpers
# =============================================================================


def text_pass(*tokens: str, usage: Optional[Usage] = None) -> list[ScriptItem]:
    """A pass that streams the given tokens and stops."""
    usage = usage or Usage(prompt_tokens=10, completion_tokens=len(tokens), total_tokens=10 + len(tokens))
    return [StreamChunk(content=t) for t in tokens] + [
        StreamChunk(is_complete=True, finish_reason=FinishReason.STOP, usage=usage)
    ]


def tool_pass(
    *calls: ToolCallRequest, text: str = "", usage: Optional[Usage] = None
) -> list[ScriptItem]:
    """A pass that optionally streams text and then requests tool calls."""
    usage = usage or Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15)
    items: list[ScriptItem] = [StreamChunk(content=text)] if text else []
    items.extend(StreamChunk(tool_call=call) for call in calls)
    items.append(StreamChunk(is_complete=True, finish_reason=FinishReason.TOOL_USE, usage=usage))
    return items


class ScriptedAdapter(ProviderAdapter):
    """Provider adapter that replays scripted passes.

    Each call to ``stream_chat`` consumes the next script. Exceptions in a
    script are raised at that point of the stream, exercising the base
    class's transport-error handling.
    """

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        passes: Optional[Sequence[Sequence[ScriptItem]]] = None,
        healthy: bool = True,
        kind: ProviderKind = ProviderKind.OPENAI,
    ):
        super().__init__(client=None)
        self.kind = kind
        self.passes = [list(p) for p in (passes or [])]
        self.healthy = healthy
        self.requests: list[dict[str, Any]] = []
        self.health_checks = 0

    def _build_request(self, messages, descriptor, tools, options) -> dict[str, Any]:
        return {"messages": list(messages), "tools": tools, "model": descriptor.id}

    async def _stream(self, request, descriptor, options: StreamOptions, started):
        self.requests.append(request)
        script = self.passes.pop(0) if self.passes else text_pass("ok")
        for item in script:
            await asyncio.sleep(0)
            if options.cancelled:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def _translate_error(self, error: Exception, descriptor: ModelDescriptor) -> ProviderTransportError:
        return ProviderTransportError(str(error), descriptor.id, status_code=502)

    async def check_health(self) -> bool:
        self.health_checks += 1
        return self.healthy


class RecordingEmitter:
    """Event sink that records events and can react to them."""

    def __init__(self, on_event: Optional[Callable[[StreamEvent], None]] = None):
        self.events: list[StreamEvent] = []
        self.on_event = on_event

    async def emit(self, event: StreamEvent) -> None:
        self.events.append(event)
        if self.on_event is not None:
            self.on_event(event)

    def types(self) -> list[str]:
        return [type(e).__name__ for e in self.events]


class RecordingTransport:
    """Transport that keeps written frames and counts closes."""

    def __init__(self) -> None:
        self.frames: list[str] = []
        self.close_count = 0

    async def write(self, frame: str) -> None:
        self.frames.append(frame)

    async def close(self) -> None:
        self.close_count += 1


class KeywordEmbedder:
    """Deterministic embedder counting vocabulary words in each text."""

    VOCABULARY = ("refund", "policy", "days", "weather", "invoice", "shipping")

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        return [
            [float(text.lower().count(word)) for word in self.VOCABULARY]
            for text in texts
        ]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(
        """
api_keys:
  openai: test-openai-key
  anthropic: test-anthropic-key

rag:
  top_k: 3
  similarity_threshold: 0.5

tools:
  timeout_seconds: 5

rate_limit:
  chat_max: 2

storage:
  database_path: "{db_path}"
""".format(db_path=str(temp_dir / "test.db").replace("\\", "/"))
    )
    return config_path


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with temporary paths."""
    reset_settings()
    return Settings(
        openai_api_key="test-openai-key",
        anthropic_api_key="test-anthropic-key",
        brave_search_api_key="",
        storage={"database_path": str(temp_dir / "test.db")},
        local={"endpoint": "http://localhost:8000/v1"},
    )


@pytest_asyncio.fixture
async def store(temp_dir: Path) -> AsyncGenerator[SQLiteConversationStore, None]:
    """Create an initialized conversation store."""
    db = SQLiteConversationStore(temp_dir / "conversations.db")
    await db.initialize()
    yield db


@pytest_asyncio.fixture
async def conversation(store: SQLiteConversationStore):
    """A conversation owned by user-1."""
    return await store.create_conversation(owner_id="user-1")


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest_asyncio.fixture
async def vector_store(embedder: KeywordEmbedder) -> InMemoryVectorStore:
    """A store holding one ready policy document owned by user-1."""
    vs = InMemoryVectorStore()
    vs.add_attachment(
        AttachmentRecord(id="att-policy", owner_id="user-1", filename="policy.pdf")
    )
    texts = [
        "Our refund policy: refunds within 30 days of purchase.",
        "Shipping is free on orders over fifty dollars.",
    ]
    vectors = await embedder.embed(texts)
    vs.add_chunks(
        [
            ChunkRecord(
                attachment_id="att-policy",
                chunk_index=i,
                content=text,
                embedding=tuple(vec),
            )
            for i, (text, vec) in enumerate(zip(texts, vectors))
        ]
    )
    embedder.calls.clear()
    return vs


@pytest.fixture
def assembler(embedder: KeywordEmbedder, vector_store: InMemoryVectorStore) -> RagContextAssembler:
    return RagContextAssembler(embedder, vector_store)


@pytest.fixture
def tool_registry(test_settings: Settings, assembler, vector_store) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(registry, test_settings, assembler=assembler, store=vector_store)
    return registry


@pytest.fixture
def gate(tool_registry: ToolRegistry):
    return create_gate(tool_registry, timeout=10.0)


@pytest.fixture
def adapter() -> ScriptedAdapter:
    return ScriptedAdapter()


@pytest.fixture
def providers(adapter: ScriptedAdapter) -> ProviderFactory:
    return ProviderFactory({ProviderKind.OPENAI: adapter})


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables for testing."""
    original = {}
    env_vars = [
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "LOCAL_MODEL_API_KEY",
        "BRAVE_SEARCH_API_KEY",
        "CHATGATEWAY_OPENAI_API_KEY",
        "CHATGATEWAY_RAG__TOP_K",
    ]
    for var in env_vars:
        original[var] = os.environ.pop(var, None)

    reset_settings()

    yield

    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]

    reset_settings()
