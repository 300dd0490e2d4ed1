"""Exception hierarchy for the chat gateway.

Every gateway exception carries a stable ``code``. Failures that reach the
caller mid-stream become ``error`` events with that code, so the codes here
are part of the wire contract.
"""

from __future__ import annotations

from typing import Any, Optional


class GatewayError(Exception):
    """Base exception for gateway failures.

    Attributes:
        message: Text safe to show to the caller.
        code: Wire-level error code.
        details: Extra context for logs; never sent to the caller.
    """

    default_code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class MissingAPIKeyError(GatewayError):
    """A provider was requested but has no credentials configured."""

    default_code = "MISSING_API_KEY"

    def __init__(self, provider: str):
        super().__init__(
            f"No credentials configured for provider '{provider}'",
            details={"provider": provider},
        )
        self.provider = provider


# -----------------------------------------------------------------------------
# Providers
# -----------------------------------------------------------------------------


class ProviderTransportError(GatewayError):
    """A provider stream failed mid-flight.

    Covers network failures, timeouts, authentication and rate-limit
    rejections from the upstream API. The adapter yields an error chunk
    carrying this exception before raising it.
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        details: dict[str, Any] = {"model": model}
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details=details)
        self.model = model
        self.status_code = status_code


# -----------------------------------------------------------------------------
# Tools
# -----------------------------------------------------------------------------


class ToolError(GatewayError):
    """A tool call could not produce output.

    The execution gate turns these into failed results; they never end a
    turn on their own.
    """

    default_code = "TOOL_ERROR"

    def __init__(self, tool_name: str, message: str, **details: Any):
        super().__init__(message, details={"tool": tool_name, **details})
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    default_code = "TOOL_NOT_FOUND"

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Unknown tool: {tool_name}")


class ToolValidationError(ToolError):
    """Arguments did not match the tool's declared parameters."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, tool_name: str, reason: str):
        super().__init__(tool_name, f"Invalid input: {reason}", reason=reason)
        self.reason = reason


class ToolTimeoutError(ToolError):
    default_code = "TOOL_TIMEOUT"

    def __init__(self, tool_name: str, timeout: float):
        super().__init__(tool_name, "Tool execution timeout", timeout_seconds=timeout)
        self.timeout = timeout


class ToolExecutionError(ToolError):
    """A handler reached an external service that reported failure."""

    default_code = "TOOL_EXECUTION_FAILED"


class CalculatorError(ToolError):
    """An arithmetic expression could not be evaluated."""

    default_code = "CALCULATOR_ERROR"

    def __init__(self, message: str, expression: Optional[str] = None):
        extra = {"expression": expression[:200]} if expression is not None else {}
        super().__init__("calculator", message, **extra)


# -----------------------------------------------------------------------------
# Retrieval and persistence
# -----------------------------------------------------------------------------


class RetrievalError(GatewayError):
    """Embedding or similarity search failed."""

    default_code = "RAG_ERROR"


class PersistenceError(GatewayError):
    """The conversation store rejected or failed an operation."""

    default_code = "PERSISTENCE_ERROR"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details={"operation": operation, **(details or {})})
        self.operation = operation


class ConversationNotFoundError(PersistenceError):
    """The conversation is missing or belongs to someone else.

    Both cases share one message so callers cannot probe for other users'
    conversation ids.
    """

    default_code = "NOT_FOUND"

    def __init__(self, conversation_id: str):
        super().__init__(
            "Conversation not found",
            operation="get_conversation",
            details={"conversation_id": conversation_id},
        )
        self.conversation_id = conversation_id
