"""Tool execution gate.

The gate looks up a requested tool, validates its input against the declared
parameters, runs the handler under a hard timeout and converts every failure
into a structured ``ToolCallResult``. Nothing but cancellation escapes it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

from chatgateway.errors import (
    GatewayError,
    ToolNotFoundError,
    ToolTimeoutError,
    ToolValidationError,
)
from chatgateway.models.tools import ToolParameter
from chatgateway.models.types import ToolCallResult
from chatgateway.tools.context import ToolContext
from chatgateway.tools.registry import Tool, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 10.0

_TYPE_MAP: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "array": list,
    "object": dict,
}


@dataclass
class ToolExecutionGate:
    """Runs one tool call with validation and a timeout.

    Example:
        >>> gate = ToolExecutionGate(registry)
        >>> result = await gate.execute("calculator", {"expression": "1+1"}, ctx)
        >>> result.output
        {'result': 2, 'expression': '1+1'}
    """

    registry: ToolRegistry
    timeout: float = DEFAULT_TOOL_TIMEOUT

    async def execute(
        self,
        name: str,
        raw_input: Any,
        context: ToolContext,
        call_id: str = "",
    ) -> ToolCallResult:
        """Execute a tool call.

        Args:
            name: Tool name requested by the model.
            raw_input: Arguments as parsed from the model's stream.
            context: Turn context passed to the handler.
            call_id: Provider-assigned id of the call.

        Returns:
            ToolCallResult with either ``output`` or ``error`` set.
        """
        tool = self.registry.get_enabled(name)
        if tool is None:
            error = ToolNotFoundError(name)
            logger.warning(f"Tool not found: {name}")
            return ToolCallResult(id=call_id, name=name, error=error.message)

        try:
            arguments = self._validate_arguments(tool, raw_input)
        except ToolValidationError as e:
            logger.warning(f"Validation failed: {name} - {e.reason}")
            return ToolCallResult(id=call_id, name=name, error=e.message)

        start = time.monotonic()
        try:
            output = await self._execute_with_timeout(tool, arguments, context)
        except ToolTimeoutError as e:
            latency = self._elapsed_ms(start)
            logger.error(f"Tool timeout: {name} after {latency}ms")
            return ToolCallResult(id=call_id, name=name, error=e.message, latency_ms=latency)
        except Exception as e:
            latency = self._elapsed_ms(start)
            message = e.message if isinstance(e, GatewayError) else str(e)
            logger.warning(f"Tool execution error: {name} - {type(e).__name__}: {message}")
            return ToolCallResult(
                id=call_id,
                name=name,
                error=message or "Tool execution failed",
                latency_ms=latency,
            )

        latency = self._elapsed_ms(start)
        logger.info(f"Tool executed successfully: {name} (took {latency}ms)")
        return ToolCallResult(id=call_id, name=name, output=output, latency_ms=latency)

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int(round((time.monotonic() - start) * 1000))

    def _validate_arguments(self, tool: Tool, raw_input: Any) -> dict[str, Any]:
        """Validate tool arguments against the tool definition.

        Unknown keys are dropped and defaults filled in for absent optional
        parameters.

        Returns:
            The cleaned argument dict.

        Raises:
            ToolValidationError: If validation fails.
        """
        if not isinstance(raw_input, dict):
            raise ToolValidationError(tool.name, "Expected an object of arguments")

        cleaned: dict[str, Any] = {}
        known = {p.name for p in tool.definition.parameters}
        for arg_name in raw_input:
            if arg_name not in known:
                logger.debug(f"Dropping unknown parameter {arg_name!r} for {tool.name}")

        for param in tool.definition.parameters:
            if param.name not in raw_input or raw_input[param.name] is None:
                if param.required:
                    raise ToolValidationError(
                        tool.name, f"Missing required parameter: {param.name}"
                    )
                if param.default is not None:
                    cleaned[param.name] = param.default
                continue

            cleaned[param.name] = self._validate_value(
                tool.name, param, raw_input[param.name]
            )

        return cleaned

    def _validate_value(self, tool_name: str, param: ToolParameter, value: Any) -> Any:
        # Integral floats such as 5.0 are accepted for integer parameters
        if param.type == "integer" and isinstance(value, float) and value.is_integer():
            value = int(value)

        if not self._validate_type(value, param.type):
            raise ToolValidationError(
                tool_name,
                f"Parameter '{param.name}' has invalid type. "
                f"Expected {param.type}, got {type(value).__name__}",
            )

        if param.enum and value not in param.enum:
            raise ToolValidationError(
                tool_name, f"Parameter '{param.name}' must be one of: {param.enum}"
            )

        if isinstance(value, str):
            if param.min_length is not None and len(value) < param.min_length:
                raise ToolValidationError(
                    tool_name,
                    f"Parameter '{param.name}' must be at least {param.min_length} characters",
                )
            if param.max_length is not None and len(value) > param.max_length:
                raise ToolValidationError(
                    tool_name,
                    f"Parameter '{param.name}' must be at most {param.max_length} characters",
                )
            if param.pattern is not None and not re.fullmatch(param.pattern, value):
                raise ToolValidationError(
                    tool_name, f"Parameter '{param.name}' contains disallowed characters"
                )

        if param.type in ("integer", "number"):
            if param.minimum is not None and value < param.minimum:
                raise ToolValidationError(
                    tool_name, f"Parameter '{param.name}' must be >= {param.minimum:g}"
                )
            if param.maximum is not None and value > param.maximum:
                raise ToolValidationError(
                    tool_name, f"Parameter '{param.name}' must be <= {param.maximum:g}"
                )

        return value

    def _validate_type(self, value: Any, expected_type: str) -> bool:
        """Validate a value against an expected JSON Schema type."""
        expected = _TYPE_MAP.get(expected_type)
        if expected is None:
            # Unknown type, allow anything
            return True

        # bool is an int subclass but never a valid number
        if expected_type in ("integer", "number") and isinstance(value, bool):
            return False

        return isinstance(value, expected)

    async def _execute_with_timeout(
        self,
        tool: Tool,
        arguments: dict[str, Any],
        context: ToolContext,
    ) -> Any:
        """Execute a tool handler with timeout protection.

        Raises:
            ToolTimeoutError: If execution times out.
            Exception: Any exception raised by the handler.
        """
        handler = tool.handler

        if inspect.iscoroutinefunction(handler):
            coro = handler(arguments, context)
        else:
            # Run sync handler in thread pool
            loop = asyncio.get_running_loop()
            coro = loop.run_in_executor(None, handler, arguments, context)

        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ToolTimeoutError(tool.name, self.timeout)


def create_gate(registry: ToolRegistry, timeout: Optional[float] = None) -> ToolExecutionGate:
    """Create a gate with the configured or default timeout."""
    return ToolExecutionGate(registry=registry, timeout=timeout or DEFAULT_TOOL_TIMEOUT)
