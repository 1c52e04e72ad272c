"""
Recursive-descent evaluator for plain arithmetic.

Grammar::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | "(" expr ")"

Input is checked against a character whitelist before parsing and is never
compiled or executed. Division by zero follows IEEE semantics and yields an
infinity (or NaN for ``0/0``) instead of raising.
"""

from __future__ import annotations

import math
import re
from typing import List, Tuple

from .errors import EvaluationError, UnsafeExpression

_DISALLOWED = re.compile(r"[^0-9.+\-*/()\s]")
_LEXEME = re.compile(r"\s*(?:(\d+(?:\.\d*)?|\.\d+)|(.))")
MAX_DEPTH = 100


def check_safe(expression: str) -> None:
    match = _DISALLOWED.search(expression)
    if match:
        raise UnsafeExpression(f"Disallowed character {match.group(0)!r} in expression")


def divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _lex(expression: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    stripped = expression.rstrip()
    while pos < len(stripped):
        match = _LEXEME.match(stripped, pos)
        if match is None:
            break
        number, symbol = match.groups()
        tokens.append(("num", number) if number is not None else ("sym", symbol))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]]) -> None:
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self) -> str | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos][1]
        return None

    def take(self) -> Tuple[str, str]:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise EvaluationError("Empty expression")
        value = self.expr()
        if self.pos != len(self.tokens):
            raise EvaluationError(f"Unexpected token {self.peek()!r}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in ("+", "-"):
            _, op = self.take()
            rhs = self.term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def term(self) -> float:
        value = self.unary()
        while self.peek() in ("*", "/"):
            _, op = self.take()
            rhs = self.unary()
            value = value * rhs if op == "*" else divide(value, rhs)
        return value

    def unary(self) -> float:
        sign = 1.0
        while self.peek() in ("+", "-"):
            _, op = self.take()
            if op == "-":
                sign = -sign
        return sign * self.primary()

    def primary(self) -> float:
        if self.pos >= len(self.tokens):
            raise EvaluationError("Unexpected end of expression")
        kind, text = self.take()
        if kind == "num":
            return float(text)
        if text == "(":
            self.depth += 1
            if self.depth > MAX_DEPTH:
                raise EvaluationError("Expression nested too deeply")
            value = self.expr()
            if self.peek() != ")":
                raise EvaluationError("Missing closing parenthesis")
            self.take()
            self.depth -= 1
            return value
        raise EvaluationError(f"Unexpected token {text!r}")


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression after the whitelist check."""
    check_safe(expression)
    return _Parser(_lex(expression)).parse()


def format_number(value: float) -> str:
    """Render like a JavaScript number: integral values without a fraction."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if float(value).is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(float(value))
