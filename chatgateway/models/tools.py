"""Tool schemas and their provider wire shapes.

A tool is described once as a :class:`ToolDefinition`; the OpenAI-style and
Anthropic-style adapters each render it into the envelope their API expects.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

# ToolParameter attribute -> JSON Schema keyword
_SCHEMA_KEYWORDS = (
    ("enum", "enum"),
    ("items", "items"),
    ("min_length", "minLength"),
    ("max_length", "maxLength"),
    ("minimum", "minimum"),
    ("maximum", "maximum"),
    ("pattern", "pattern"),
    ("default", "default"),
)


@dataclass
class ToolParameter:
    """One named argument of a tool.

    ``type`` is a JSON Schema primitive name. Length bounds apply to strings,
    numeric bounds to numbers, and ``pattern`` must match the whole string.
    An optional parameter that is absent receives ``default``.
    """

    name: str
    type: str
    description: str
    required: bool = True
    enum: Optional[list[str]] = None
    items: Optional[dict[str, Any]] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    pattern: Optional[str] = None
    default: Any = None

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        for attr, keyword in _SCHEMA_KEYWORDS:
            value = getattr(self, attr)
            # An empty enum constrains nothing
            if value is None or (attr == "enum" and not value):
                continue
            schema[keyword] = value
        return schema


@dataclass
class ToolDefinition:
    """Name, description and parameters of a callable tool."""

    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    def input_schema(self) -> dict[str, Any]:
        """JSON Schema of the argument object."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_anthropic(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }

    def to_openai(self) -> dict[str, Any]:
        function = {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema(),
        }
        return {"type": "function", "function": function}


def tools_to_anthropic(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [t.to_anthropic() for t in tools]


def tools_to_openai(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
    return [t.to_openai() for t in tools]
