"""Registry of tools the gateway can offer to models.

The orchestrator advertises the enabled definitions on the first model pass;
the execution gate resolves calls against the same registry, so a disabled
tool is invisible to both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, Union

from chatgateway.models.tools import ToolDefinition, ToolParameter
from chatgateway.tools.context import ToolContext

logger = logging.getLogger(__name__)

# (validated arguments, turn context) -> JSON-serializable output
ToolHandler = Callable[[dict[str, Any], ToolContext], Union[Any, Awaitable[Any]]]


@dataclass
class Tool:
    """A tool definition bound to the handler that runs it.

    ``category`` only groups tools in logs and listings.
    """

    definition: ToolDefinition
    handler: ToolHandler
    category: str = "general"
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.definition.name


class ToolRegistry:
    """Name-keyed collection of tools, in registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Add ``tool``; names are unique.

        Raises:
            ValueError: A tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        state = "enabled" if tool.enabled else "disabled"
        logger.debug(f"Registered tool {tool.name} [{tool.category}, {state}]")

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get_enabled(self, name: str) -> Optional[Tool]:
        """Return the tool only when it may currently be called."""
        tool = self._tools.get(name)
        return tool if tool is not None and tool.enabled else None

    def enable(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, value: bool) -> bool:
        tool = self._tools.get(name)
        if tool is None:
            return False
        tool.enabled = value
        return True

    def _select(self, enabled_only: bool) -> Iterator[Tool]:
        return (t for t in self._tools.values() if t.enabled or not enabled_only)

    def list_tools(self, enabled_only: bool = True) -> list[str]:
        return [t.name for t in self._select(enabled_only)]

    def get_definitions(self, enabled_only: bool = True) -> list[ToolDefinition]:
        """Definitions in the shape adapters translate for their providers."""
        return [t.definition for t in self._select(enabled_only)]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def create_tool(
    name: str,
    description: str,
    parameters: list[ToolParameter],
    handler: ToolHandler,
    category: str = "general",
) -> Tool:
    """Build a :class:`Tool` from its schema parts."""
    return Tool(
        definition=ToolDefinition(name=name, description=description, parameters=parameters),
        handler=handler,
        category=category,
    )
