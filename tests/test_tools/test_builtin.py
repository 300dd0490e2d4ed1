"""Tests for built-in tools."""

import json

import httpx
import pytest

from chatgateway.config import Settings
from chatgateway.rag import AttachmentRecord, AttachmentStatus, ChunkRecord, InMemoryVectorStore
from chatgateway.tools import ToolContext, ToolExecutionGate, ToolRegistry
from chatgateway.tools.builtin import get_builtin_tools, register_builtin_tools
from chatgateway.tools.builtin.web_search import (
    BRAVE_SEARCH_URL,
    RESULTS_NOTE,
    STUB_TITLE,
    create_web_search_tool,
)


@pytest.fixture
def ctx() -> ToolContext:
    return ToolContext(owner_id="user-1", conversation_id="conv-1")


class TestRegistration:
    """Tests for registering built-in tools."""

    def test_all_tools_registered(self, tool_registry: ToolRegistry) -> None:
        """Test every built-in is registered when its dependencies exist."""
        assert set(tool_registry.list_tools()) == {
            "calculator",
            "retrieve_docs",
            "web_search",
            "summarize_attachment",
        }

    def test_document_tools_need_backends(self, test_settings: Settings) -> None:
        """Test document tools are skipped without an assembler or store."""
        names = [t.name for t in get_builtin_tools(test_settings)]
        assert names == ["calculator", "web_search"]

    def test_enabled_flag_from_settings(self, test_settings: Settings) -> None:
        """Test tools missing from the enabled list are registered but disabled."""
        settings = test_settings.model_copy(
            update={"tools": test_settings.tools.model_copy(update={"enabled": ["calculator"]})}
        )
        registry = ToolRegistry()
        register_builtin_tools(registry, settings)

        assert "web_search" in registry
        assert registry.list_tools() == ["calculator"]
        assert registry.get_enabled("web_search") is None


class TestRetrieveDocs:
    """Tests for the retrieve_docs tool."""

    @pytest.mark.asyncio
    async def test_found(self, gate: ToolExecutionGate, ctx: ToolContext) -> None:
        """Test matching passages are returned with context."""
        result = await gate.execute("retrieve_docs", {"query": "refund policy"}, ctx)

        assert result.success
        output = result.output
        assert output["found"] is True
        assert output["results"][0]["filename"] == "policy.pdf"
        assert output["results"][0]["chunkIndex"] == 0
        assert "<retrieved_context>" in output["context"]

    @pytest.mark.asyncio
    async def test_not_found(self, gate: ToolExecutionGate, ctx: ToolContext) -> None:
        """Test an unrelated query reports nothing found."""
        result = await gate.execute("retrieve_docs", {"query": "weather"}, ctx)
        assert result.output == {
            "found": False,
            "message": "No relevant documents found for this query.",
            "results": [],
        }

    @pytest.mark.asyncio
    async def test_other_owner_sees_nothing(self, gate: ToolExecutionGate) -> None:
        """Test documents are scoped to the calling owner."""
        result = await gate.execute(
            "retrieve_docs", {"query": "refund policy"}, ToolContext(owner_id="user-2")
        )
        assert result.output["found"] is False

    @pytest.mark.asyncio
    async def test_top_k_bounds(self, gate: ToolExecutionGate, ctx: ToolContext) -> None:
        """Test topK outside 1..20 is rejected."""
        result = await gate.execute("retrieve_docs", {"query": "refund", "topK": 21}, ctx)
        assert result.error.startswith("Invalid input:")


class TestSummarizeAttachment:
    """Tests for the summarize_attachment tool."""

    @pytest.mark.asyncio
    async def test_ready(self, gate: ToolExecutionGate, ctx: ToolContext) -> None:
        """Test a ready attachment returns its opening excerpt."""
        result = await gate.execute("summarize_attachment", {"attachmentId": "att-policy"}, ctx)

        output = result.output
        assert output["attachmentId"] == "att-policy"
        assert output["filename"] == "policy.pdf"
        assert output["chunksLoaded"] == 2
        assert output["excerpt"].startswith("Our refund policy")

    @pytest.mark.asyncio
    async def test_not_found(self, gate: ToolExecutionGate) -> None:
        """Test another owner's attachment is reported as not found."""
        result = await gate.execute(
            "summarize_attachment", {"attachmentId": "att-policy"}, ToolContext(owner_id="user-2")
        )
        assert result.error == "Attachment not found or access denied"

    @pytest.mark.asyncio
    async def test_not_ready(
        self, gate: ToolExecutionGate, vector_store: InMemoryVectorStore, ctx: ToolContext
    ) -> None:
        """Test an attachment still ingesting is reported as not ready."""
        vector_store.add_attachment(
            AttachmentRecord(
                id="att-new", owner_id="user-1", filename="new.txt", status=AttachmentStatus.PROCESSING
            )
        )
        result = await gate.execute("summarize_attachment", {"attachmentId": "att-new"}, ctx)
        assert result.output == {"status": "not_ready", "message": "Attachment is still being processed"}

    @pytest.mark.asyncio
    async def test_excerpt_capped(
        self, gate: ToolExecutionGate, vector_store: InMemoryVectorStore, ctx: ToolContext
    ) -> None:
        """Test at most twenty chunks and two thousand characters are returned."""
        vector_store.add_attachment(AttachmentRecord(id="att-big", owner_id="user-1", filename="big.txt"))
        vector_store.add_chunks(
            [ChunkRecord(attachment_id="att-big", chunk_index=i, content="x" * 150) for i in range(30)]
        )
        result = await gate.execute("summarize_attachment", {"attachmentId": "att-big"}, ctx)
        assert result.output["chunksLoaded"] == 20
        assert len(result.output["excerpt"]) == 2000


class TestWebSearch:
    """Tests for the web_search tool."""

    @pytest.mark.asyncio
    async def test_stub_without_key(self, ctx: ToolContext) -> None:
        """Test stub results are clearly labelled."""
        tool = create_web_search_tool(api_key=None)
        output = await tool.handler({"query": "python 3.14", "numResults": 5}, ctx)

        assert output["query"] == "python 3.14"
        assert output["note"] == RESULTS_NOTE
        assert output["results"][0]["title"] == STUB_TITLE
        assert output["results"][0]["stub"] is True
        assert output["results"][0]["snippet"] == 'Search results for "python 3.14" would appear here.'

    @pytest.mark.asyncio
    async def test_brave_success(self, ctx: ToolContext) -> None:
        """Test Brave results are mapped to title, url and snippet."""
        seen = {}

        def respond(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url.copy_with(query=None))
            seen["params"] = dict(request.url.params)
            seen["token"] = request.headers.get("X-Subscription-Token")
            body = {
                "web": {
                    "results": [
                        {"title": "A", "url": "https://a.test", "description": "first"},
                        {"title": "B", "url": "https://b.test", "description": "second"},
                    ]
                }
            }
            return httpx.Response(200, content=json.dumps(body))

        tool = create_web_search_tool(api_key="brave-key", transport=httpx.MockTransport(respond))
        output = await tool.handler({"query": "news", "numResults": 1}, ctx)

        assert seen["url"] == BRAVE_SEARCH_URL
        assert seen["params"] == {"q": "news", "count": "1", "text_decorations": "false"}
        assert seen["token"] == "brave-key"
        assert output["results"] == [{"title": "A", "url": "https://a.test", "snippet": "first"}]

    @pytest.mark.asyncio
    async def test_brave_error_status(self, ctx: ToolContext) -> None:
        """Test non-2xx responses fail the tool call."""
        transport = httpx.MockTransport(lambda request: httpx.Response(429))
        registry = ToolRegistry()
        registry.register(create_web_search_tool(api_key="brave-key", transport=transport))
        gate = ToolExecutionGate(registry=registry)

        result = await gate.execute("web_search", {"query": "news"}, ctx)
        assert result.error == "Brave Search API error: 429"
