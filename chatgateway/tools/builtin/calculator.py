"""Restricted-grammar arithmetic evaluator.

Expressions are tokenized and evaluated by a small recursive-descent parser;
nothing is ever passed to ``eval``. Grammar, lowest precedence first::

    expr    := term (('+' | '-') term)*
    term    := power (('*' | '/' | '%') power)*
    power   := unary (('^' | '**') power)?
    unary   := '-' unary | primary
    primary := NUMBER | '(' expr ')' | NAME '(' expr (',' expr)* ')'
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Union

from chatgateway.errors import CalculatorError
from chatgateway.models.tools import ToolParameter
from chatgateway.tools.context import ToolContext
from chatgateway.tools.registry import Tool, create_tool

MAX_EXPRESSION_LENGTH = 500
MAX_NESTING_DEPTH = 100

ALLOWED_PATTERN = r"[0-9a-z\s+\-*/%^().,]+"
_ALLOWED_RE = re.compile(ALLOWED_PATTERN)


def _js_round(x: float) -> float:
    # Half-up rounding, so round(2.5) == 3 and round(-2.5) == -2
    return math.floor(x + 0.5)


_UNARY_FUNCTIONS: dict[str, Callable[[float], float]] = {
    "sqrt": math.sqrt,
    "abs": abs,
    "round": _js_round,
    "floor": math.floor,
    "ceil": math.ceil,
    "log": math.log,
    "exp": math.exp,
}

_BINARY_FUNCTIONS: dict[str, Callable[[float, float], float]] = {
    "min": min,
    "max": max,
}


def tokenize(expression: str) -> list[str]:
    """Split an expression into number, operator and name tokens."""
    tokens: list[str] = []
    i = 0
    n = len(expression)
    while i < n:
        ch = expression[i]
        if ch.isspace():
            i += 1
        elif ch.isdigit() or ch == ".":
            start = i
            while i < n and (expression[i].isdigit() or expression[i] == "."):
                i += 1
            tokens.append(expression[start:i])
        elif ch == "*" and i + 1 < n and expression[i + 1] == "*":
            tokens.append("**")
            i += 2
        elif ch in "+-*/%^(),":
            tokens.append(ch)
            i += 1
        elif "a" <= ch <= "z":
            start = i
            while i < n and "a" <= expression[i] <= "z":
                i += 1
            tokens.append(expression[start:i])
        else:
            raise CalculatorError(f"Unexpected character: {ch}", expression)
    return tokens


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.pos = 0
        self.depth = 0

    def error(self, message: str) -> CalculatorError:
        return CalculatorError(message, self.expression)

    def descend(self) -> None:
        # Parentheses, calls, sign chains and exponents all recurse through here
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self.error("Expression is nested too deeply")

    def peek(self) -> Union[str, None]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def consume(self) -> str:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of expression")
        self.pos += 1
        return token

    def expect(self, token: str) -> None:
        if self.peek() != token:
            raise self.error(f"Expected '{token}'")
        self.pos += 1

    def parse(self) -> float:
        if not self.tokens:
            raise self.error("Empty expression")
        value = self.expr()
        if self.pos != len(self.tokens):
            raise self.error(f"Unexpected token at position {self.pos}: {self.tokens[self.pos]}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in ("+", "-"):
            op = self.consume()
            right = self.term()
            value = value + right if op == "+" else value - right
        return value

    def term(self) -> float:
        value = self.power()
        while self.peek() in ("*", "/", "%"):
            op = self.consume()
            right = self.power()
            if op == "*":
                value *= right
            elif right == 0:
                raise self.error("Division by zero" if op == "/" else "Modulo by zero")
            elif op == "/":
                value /= right
            else:
                value = math.fmod(value, right)
        return value

    def power(self) -> float:
        base = self.unary()
        if self.peek() in ("^", "**"):
            self.consume()
            self.descend()
            try:
                exponent = self.power()
            finally:
                self.depth -= 1
            try:
                return math.pow(base, exponent)
            except OverflowError:
                raise self.error("Result is too large")
            except ValueError:
                raise self.error("Math domain error")
        return base

    def unary(self) -> float:
        self.descend()
        try:
            if self.peek() == "-":
                self.consume()
                return -self.unary()
            if self.peek() == "+":
                self.consume()
                return self.unary()
            return self.primary()
        finally:
            self.depth -= 1

    def primary(self) -> float:
        token = self.consume()

        if token == "(":
            value = self.expr()
            self.expect(")")
            return value

        if token.isalpha():
            return self.call(token)

        try:
            return float(token)
        except ValueError:
            raise self.error(f"Not a number: {token}")

    def call(self, name: str) -> float:
        if name not in _UNARY_FUNCTIONS and name not in _BINARY_FUNCTIONS:
            raise self.error(f"Unknown function: {name}")

        self.expect("(")
        args = [self.expr()]
        while self.peek() == ",":
            self.consume()
            args.append(self.expr())
        self.expect(")")

        try:
            if name in _UNARY_FUNCTIONS:
                if len(args) != 1:
                    raise self.error(f"{name}() takes exactly one argument")
                return float(_UNARY_FUNCTIONS[name](args[0]))
            if len(args) != 2:
                raise self.error(f"{name}() takes exactly two arguments")
            return float(_BINARY_FUNCTIONS[name](args[0], args[1]))
        except OverflowError:
            raise self.error("Result is too large")
        except ValueError:
            raise self.error(f"Math domain error in {name}()")


def evaluate(expression: str) -> Union[int, float]:
    """Evaluate an arithmetic expression.

    Raises:
        CalculatorError: On disallowed characters, syntax errors, division by
            zero or a non-finite result.
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise CalculatorError("Expression is too long", expression)
    if not _ALLOWED_RE.fullmatch(expression):
        raise CalculatorError("Expression contains disallowed characters", expression)

    result = _Parser(expression).parse()
    if not math.isfinite(result):
        raise CalculatorError("Result is not a finite number", expression)

    if result.is_integer() and abs(result) < 2**53:
        return int(result)
    return result


def _calculator(args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
    expression = args["expression"]
    return {"result": evaluate(expression), "expression": expression}


def create_calculator_tool() -> Tool:
    """Create the calculator tool."""
    return create_tool(
        name="calculator",
        description=(
            "Evaluates a safe mathematical expression. Supports +, -, *, /, **, ^, %, "
            "sqrt, abs, round, floor, ceil, min, max, log, exp, and numeric literals."
        ),
        parameters=[
            ToolParameter(
                name="expression",
                type="string",
                description='Mathematical expression to evaluate, e.g. "2 * (3 + 4)"',
                min_length=1,
                max_length=MAX_EXPRESSION_LENGTH,
                pattern=ALLOWED_PATTERN,
            ),
        ],
        handler=_calculator,
        category="math",
    )
