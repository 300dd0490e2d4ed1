"""Built-in tools available to models.

- ``calculator``: restricted arithmetic evaluation
- ``retrieve_docs``: search over the caller's documents
- ``web_search``: Brave Search, or labelled stubs without a key
- ``summarize_attachment``: excerpt of one attachment's opening chunks
"""

from __future__ import annotations

from typing import Optional

from chatgateway.config.settings import Settings
from chatgateway.rag.assembler import RagContextAssembler
from chatgateway.rag.vector_store import VectorStore
from chatgateway.tools.builtin.calculator import create_calculator_tool, evaluate
from chatgateway.tools.builtin.documents import (
    create_retrieve_docs_tool,
    create_summarize_attachment_tool,
)
from chatgateway.tools.builtin.web_search import create_web_search_tool
from chatgateway.tools.registry import Tool, ToolRegistry


def get_builtin_tools(
    settings: Settings,
    assembler: Optional[RagContextAssembler] = None,
    store: Optional[VectorStore] = None,
) -> list[Tool]:
    """Build the built-in tools that can be supported with what is given.

    Document tools are skipped when no assembler or store is available.
    """
    tools = [
        create_calculator_tool(),
        create_web_search_tool(
            api_key=settings.brave_search_api_key,
            timeout=settings.tools.web_search_timeout_seconds,
        ),
    ]
    if assembler is not None:
        tools.append(create_retrieve_docs_tool(assembler))
    if store is not None:
        tools.append(create_summarize_attachment_tool(store))
    return tools


def register_builtin_tools(
    registry: ToolRegistry,
    settings: Settings,
    assembler: Optional[RagContextAssembler] = None,
    store: Optional[VectorStore] = None,
) -> None:
    """Register built-in tools, leaving those not in ``settings.tools.enabled`` disabled."""
    enabled = set(settings.tools.enabled)
    for tool in get_builtin_tools(settings, assembler, store):
        tool.enabled = tool.name in enabled
        registry.register(tool)


__all__ = [
    "create_calculator_tool",
    "create_retrieve_docs_tool",
    "create_summarize_attachment_tool",
    "create_web_search_tool",
    "evaluate",
    "get_builtin_tools",
    "register_builtin_tools",
]
