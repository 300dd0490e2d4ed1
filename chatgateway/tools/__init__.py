"""Tool registry, execution gate and built-in tools."""

from chatgateway.tools.context import ToolContext
from chatgateway.tools.executor import DEFAULT_TOOL_TIMEOUT, ToolExecutionGate, create_gate
from chatgateway.tools.registry import Tool, ToolHandler, ToolRegistry, create_tool

__all__ = [
    "DEFAULT_TOOL_TIMEOUT",
    "Tool",
    "ToolContext",
    "ToolExecutionGate",
    "ToolHandler",
    "ToolRegistry",
    "create_gate",
    "create_tool",
]
