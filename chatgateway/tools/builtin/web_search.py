"""Web search tool using the Brave Search API.

Without an API key the tool answers with clearly labelled stub results so the
rest of the turn still exercises the tool path.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from chatgateway.errors import ToolExecutionError
from chatgateway.models.tools import ToolParameter
from chatgateway.tools.context import ToolContext
from chatgateway.tools.registry import Tool, create_tool

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
STUB_TITLE = "[Web search stub — configure BRAVE_SEARCH_API_KEY]"
RESULTS_NOTE = "Results from web search. Verify important facts independently."


def _stub_results(query: str, count: int) -> list[dict[str, Any]]:
    return [
        {
            "title": STUB_TITLE,
            "url": "https://example.com",
            "snippet": f'Search results for "{query}" would appear here.',
            "stub": True,
        }
    ][:count]


async def _brave_search(
    client: httpx.AsyncClient, api_key: str, query: str, count: int
) -> list[dict[str, Any]]:
    response = await client.get(
        BRAVE_SEARCH_URL,
        params={"q": query, "count": str(count), "text_decorations": "false"},
        headers={"Accept": "application/json", "X-Subscription-Token": api_key},
    )
    if response.is_error:
        raise ToolExecutionError(
            "web_search", f"Brave Search API error: {response.status_code}"
        )

    data = response.json()
    results = (data.get("web") or {}).get("results") or []
    return [
        {
            "title": r.get("title", ""),
            "url": r.get("url", ""),
            "snippet": r.get("description", ""),
        }
        for r in results[:count]
    ]


def create_web_search_tool(
    api_key: Optional[str] = None,
    timeout: float = 8.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tool:
    """Create the web search tool.

    Args:
        api_key: Brave Search subscription token. ``None`` selects stub mode.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport, used to mock the API in tests.

    Returns:
        Configured Tool instance.
    """

    async def handler(args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        query = args["query"]
        count = args["numResults"]

        if not api_key:
            logger.debug("web_search running in stub mode")
            results = _stub_results(query, count)
        else:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                results = await _brave_search(client, api_key, query, count)

        return {"query": query, "results": results, "note": RESULTS_NOTE}

    return create_tool(
        name="web_search",
        description=(
            "Search the web for current information. Use this for recent events or "
            "facts not found in the user's documents."
        ),
        parameters=[
            ToolParameter(
                name="query",
                type="string",
                description="Search query",
                min_length=1,
                max_length=500,
            ),
            ToolParameter(
                name="numResults",
                type="integer",
                description="Number of results to return",
                required=False,
                minimum=1,
                maximum=10,
                default=5,
            ),
        ],
        handler=handler,
        category="web",
    )
