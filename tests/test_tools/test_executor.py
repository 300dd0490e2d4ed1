"""Tests for the tool execution gate."""

import asyncio
import time
from typing import Any

import pytest

from chatgateway.models.tools import ToolParameter
from chatgateway.tools import (
    DEFAULT_TOOL_TIMEOUT,
    ToolContext,
    ToolExecutionGate,
    ToolRegistry,
    create_gate,
    create_tool,
)
from chatgateway.tools.builtin.calculator import create_calculator_tool


@pytest.fixture
def context() -> ToolContext:
    return ToolContext(owner_id="user-1", conversation_id="conv-1")


def echo_tool(**param_overrides: Any):
    param = dict(name="value", type="string", description="Value to echo")
    param.update(param_overrides)
    return create_tool(
        name="echo",
        description="Echo the value",
        parameters=[ToolParameter(**param)],
        handler=lambda args, ctx: {"echo": args.get("value")},
    )


def make_gate(*tools, timeout: float = DEFAULT_TOOL_TIMEOUT) -> ToolExecutionGate:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return ToolExecutionGate(registry=registry, timeout=timeout)


class TestLookup:
    """Tests for tool lookup."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, context: ToolContext) -> None:
        """Test unknown tools produce an error result."""
        gate = make_gate()
        result = await gate.execute("nope", {}, context, call_id="c1")
        assert result.error == "Unknown tool: nope"
        assert result.output is None
        assert result.id == "c1"

    @pytest.mark.asyncio
    async def test_disabled_tool_is_unknown(self, context: ToolContext) -> None:
        """Test disabled tools cannot be executed."""
        tool = echo_tool()
        tool.enabled = False
        result = await make_gate(tool).execute("echo", {"value": "x"}, context)
        assert result.error == "Unknown tool: echo"


class TestValidation:
    """Tests for input validation."""

    @pytest.mark.asyncio
    async def test_missing_required(self, context: ToolContext) -> None:
        """Test a missing required parameter is rejected."""
        result = await make_gate(echo_tool()).execute("echo", {}, context)
        assert result.error.startswith("Invalid input:")
        assert "value" in result.error

    @pytest.mark.asyncio
    async def test_non_object_input(self, context: ToolContext) -> None:
        """Test non-dict input is rejected."""
        result = await make_gate(echo_tool()).execute("echo", ["x"], context)
        assert result.error.startswith("Invalid input:")

    @pytest.mark.asyncio
    async def test_wrong_type(self, context: ToolContext) -> None:
        """Test type mismatches are rejected."""
        result = await make_gate(echo_tool()).execute("echo", {"value": 5}, context)
        assert "invalid type" in result.error

    @pytest.mark.asyncio
    async def test_bool_is_not_a_number(self, context: ToolContext) -> None:
        """Test booleans never satisfy numeric parameters."""
        gate = make_gate(echo_tool(type="integer"))
        result = await gate.execute("echo", {"value": True}, context)
        assert "invalid type" in result.error

    @pytest.mark.asyncio
    async def test_integral_float_accepted(self, context: ToolContext) -> None:
        """Test 5.0 satisfies an integer parameter."""
        gate = make_gate(echo_tool(type="integer"))
        result = await gate.execute("echo", {"value": 5.0}, context)
        assert result.output == {"echo": 5}

    @pytest.mark.asyncio
    async def test_enum(self, context: ToolContext) -> None:
        """Test values outside the enum are rejected."""
        gate = make_gate(echo_tool(enum=["a", "b"]))
        assert (await gate.execute("echo", {"value": "a"}, context)).success
        assert "must be one of" in (await gate.execute("echo", {"value": "c"}, context)).error

    @pytest.mark.asyncio
    async def test_string_length(self, context: ToolContext) -> None:
        """Test string length bounds."""
        gate = make_gate(echo_tool(min_length=2, max_length=4))
        assert "at least 2" in (await gate.execute("echo", {"value": "a"}, context)).error
        assert "at most 4" in (await gate.execute("echo", {"value": "abcde"}, context)).error
        assert (await gate.execute("echo", {"value": "abc"}, context)).success

    @pytest.mark.asyncio
    async def test_pattern(self, context: ToolContext) -> None:
        """Test strings must fully match the pattern."""
        gate = make_gate(echo_tool(pattern=r"[a-z]+"))
        assert "disallowed characters" in (await gate.execute("echo", {"value": "ab1"}, context)).error

    @pytest.mark.asyncio
    async def test_numeric_bounds(self, context: ToolContext) -> None:
        """Test minimum and maximum for numbers."""
        gate = make_gate(echo_tool(type="integer", minimum=1, maximum=20))
        assert ">= 1" in (await gate.execute("echo", {"value": 0}, context)).error
        assert "<= 20" in (await gate.execute("echo", {"value": 21}, context)).error

    @pytest.mark.asyncio
    async def test_default_filled_and_unknown_dropped(self, context: ToolContext) -> None:
        """Test absent optional parameters get defaults and unknown keys are dropped."""
        seen = {}

        def handler(args, ctx):
            seen.update(args)
            return "ok"

        tool = create_tool(
            name="search",
            description="Search",
            parameters=[
                ToolParameter(name="query", type="string", description="q"),
                ToolParameter(name="topK", type="integer", description="k", required=False, default=5),
            ],
            handler=handler,
        )
        result = await make_gate(tool).execute("search", {"query": "x", "extra": 1}, context)
        assert result.success
        assert seen == {"query": "x", "topK": 5}


class TestExecution:
    """Tests for handler execution."""

    @pytest.mark.asyncio
    async def test_success_records_latency(self, context: ToolContext) -> None:
        """Test successful calls return output and latency."""
        gate = make_gate(create_calculator_tool())
        result = await gate.execute("calculator", {"expression": "2 * (3 + 4)"}, context, call_id="c")
        assert result.success
        assert result.output == {"result": 14, "expression": "2 * (3 + 4)"}
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_async_handler(self, context: ToolContext) -> None:
        """Test async handlers are awaited."""

        async def handler(args, ctx):
            await asyncio.sleep(0)
            return {"owner": ctx.owner_id}

        tool = create_tool(name="who", description="Who", parameters=[], handler=handler)
        result = await make_gate(tool).execute("who", {}, context)
        assert result.output == {"owner": "user-1"}

    @pytest.mark.asyncio
    async def test_handler_exception(self, context: ToolContext) -> None:
        """Test handler exceptions become error results."""

        def handler(args, ctx):
            raise ValueError("Attachment not found or access denied")

        tool = create_tool(name="boom", description="Boom", parameters=[], handler=handler)
        result = await make_gate(tool).execute("boom", {}, context)
        assert result.error == "Attachment not found or access denied"
        assert result.output is None

    @pytest.mark.asyncio
    async def test_calculator_error_message(self, context: ToolContext) -> None:
        """Test gateway errors surface their plain message."""
        gate = make_gate(create_calculator_tool())
        result = await gate.execute("calculator", {"expression": "1/0"}, context)
        assert result.error == "Division by zero"

    @pytest.mark.asyncio
    async def test_deep_nesting_structured_error(self, context: ToolContext) -> None:
        """Test runaway nesting reaches the model as a calculator error."""
        gate = make_gate(create_calculator_tool())
        expression = "(" * 240 + "1" + ")" * 240
        result = await gate.execute("calculator", {"expression": expression}, context)
        assert result.error == "Expression is nested too deeply"

    @pytest.mark.asyncio
    async def test_timeout(self, context: ToolContext) -> None:
        """Test slow handlers are abandoned at the timeout."""

        async def slow(args, ctx):
            await asyncio.sleep(5)

        tool = create_tool(name="slow", description="Slow", parameters=[], handler=slow)
        gate = make_gate(tool, timeout=0.05)

        started = time.monotonic()
        result = await gate.execute("slow", {}, context)
        elapsed = time.monotonic() - started

        assert result.error == "Tool execution timeout"
        assert 40 <= result.latency_ms < 200
        assert elapsed < 1.0

    def test_default_timeout(self) -> None:
        """Test the gate defaults to a ten second budget."""
        assert DEFAULT_TOOL_TIMEOUT == 10.0
        assert create_gate(ToolRegistry()).timeout == 10.0
        assert create_gate(ToolRegistry(), timeout=3).timeout == 3


class TestToolRegistry:
    """Tests for the tool registry."""

    def test_duplicate_rejected(self) -> None:
        """Test a name can only be registered once."""
        registry = ToolRegistry()
        registry.register(echo_tool())
        with pytest.raises(ValueError):
            registry.register(echo_tool())

    def test_enable_disable(self) -> None:
        """Test disabled tools drop out of the advertised definitions."""
        registry = ToolRegistry()
        registry.register(echo_tool())
        assert [d.name for d in registry.get_definitions()] == ["echo"]

        assert registry.disable("echo")
        assert registry.get_definitions() == []
        assert registry.list_tools(enabled_only=False) == ["echo"]
        assert registry.enable("echo")
        assert registry.get_enabled("echo") is not None
        assert not registry.disable("missing")

    def test_json_schema(self) -> None:
        """Test parameters render as a JSON schema object."""
        definition = echo_tool(min_length=1, max_length=5).definition
        schema = definition.input_schema()
        assert schema["required"] == ["value"]
        assert schema["properties"]["value"] == {
            "type": "string",
            "description": "Value to echo",
            "minLength": 1,
            "maxLength": 5,
        }
        assert definition.to_anthropic()["input_schema"] == schema
        assert definition.to_openai()["function"]["parameters"] == schema
