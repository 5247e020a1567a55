"""Restricted arithmetic formula evaluation and named custom calculators.

Simple formulas are plain arithmetic over field ids, e.g.
``learnerCount * costPerLearner``. Identifiers are replaced by the numeric
value of the matching field, the substituted text must contain only digits,
whitespace, ``+ - * / ( )`` and ``.``, and the result is computed by a small
recursive-descent parser. Anything else is rejected and evaluates to 0.
"""

from __future__ import annotations

import math
import operator
import re
from typing import Any, Callable, Mapping

import numpy as np

from deal_calc.errors import InvalidExpressionError, UnknownCalculatorError
from deal_calc.runtime_logging import append_runtime_event


IDENTIFIER_RE = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*")
ALLOWED_SUBSTITUTED_RE = re.compile(r"^[0-9\s+\-*/().]+$")
TOKEN_RE = re.compile(r"\s*(?:(\d+\.\d*|\.\d+|\d+)|(.))")

# Each parenthesis level costs four parser frames.
MAX_NESTING_DEPTH = 50

_BINARY_OPERATORS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def coerce_number(value: Any) -> float:
    """Numeric value of a field for substitution; anything unusable is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, np.integer, np.floating)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


def _render_number(number: float) -> str:
    # Positional rendering keeps exponent markers out of the substituted text.
    return np.format_float_positional(number, trim="-")


def extract_identifiers(expression: str) -> list[str]:
    seen: list[str] = []
    for name in IDENTIFIER_RE.findall(expression or ""):
        if name not in seen:
            seen.append(name)
    return seen


def substitute(expression: str, values: Mapping[str, Any]) -> str:
    return IDENTIFIER_RE.sub(lambda m: _render_number(coerce_number(values.get(m.group(0)))), expression)


def _tokenize(text: str, expression: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    pos = 0
    stripped = text.rstrip()
    while pos < len(stripped):
        match = TOKEN_RE.match(stripped, pos)
        if match is None:
            raise InvalidExpressionError(expression, "Unexpected input")
        number, symbol = match.groups()
        if number is not None:
            tokens.append(("num", float(number)))
        elif symbol in _BINARY_OPERATORS or symbol in "()":
            tokens.append(("op", symbol))
        else:
            raise InvalidExpressionError(expression, f"Unexpected character {symbol!r}")
        pos = match.end()
    return tokens


class _Parser:
    """expr := term (('+'|'-') term)*, term := unary (('*'|'/') unary)*."""

    def __init__(self, tokens: list[tuple[str, Any]], expression: str):
        self.tokens = tokens
        self.expression = expression
        self.pos = 0
        self.depth = 0

    def _peek(self) -> tuple[str, Any] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take_op(self, symbols: str) -> str | None:
        tok = self._peek()
        if tok is not None and tok[0] == "op" and tok[1] in symbols:
            self.pos += 1
            return tok[1]
        return None

    def parse(self) -> float:
        if not self.tokens:
            raise InvalidExpressionError(self.expression, "Empty expression")
        value = self._expr()
        if self._peek() is not None:
            raise InvalidExpressionError(self.expression, "Unexpected trailing input")
        return value

    def _expr(self) -> float:
        value = self._term()
        while True:
            op = self._take_op("+-")
            if op is None:
                return value
            value = _BINARY_OPERATORS[op](value, self._term())

    def _term(self) -> float:
        value = self._unary()
        while True:
            op = self._take_op("*/")
            if op is None:
                return value
            rhs = self._unary()
            if op == "/" and rhs == 0:
                raise InvalidExpressionError(self.expression, "Division by zero")
            value = _BINARY_OPERATORS[op](value, rhs)

    def _unary(self) -> float:
        sign = 1.0
        while True:
            op = self._take_op("+-")
            if op is None:
                break
            if op == "-":
                sign = -sign
        return sign * self._primary()

    def _primary(self) -> float:
        tok = self._peek()
        if tok is None:
            raise InvalidExpressionError(self.expression, "Unexpected end of expression")
        if tok[0] == "num":
            self.pos += 1
            return float(tok[1])
        if self._take_op("(") is not None:
            self.depth += 1
            if self.depth > MAX_NESTING_DEPTH:
                raise InvalidExpressionError(self.expression, "Parentheses nested too deeply")
            value = self._expr()
            if self._take_op(")") is None:
                raise InvalidExpressionError(self.expression, "Missing closing parenthesis")
            self.depth -= 1
            return value
        raise InvalidExpressionError(self.expression, f"Unexpected token {tok[1]!r}")


def evaluate_arithmetic(text: str) -> float:
    """Evaluate a pure arithmetic string (no identifiers)."""
    if not ALLOWED_SUBSTITUTED_RE.match(text or ""):
        raise InvalidExpressionError(text, "Disallowed characters in expression")
    result = _Parser(_tokenize(text, text), text).parse()
    if not math.isfinite(result):
        raise InvalidExpressionError(text, "Non-finite result")
    return float(result)


def evaluate_strict(expression: str, values: Mapping[str, Any]) -> float:
    substituted = substitute(expression or "", values)
    if not ALLOWED_SUBSTITUTED_RE.match(substituted):
        raise InvalidExpressionError(substituted, "Disallowed characters in expression")
    return evaluate_arithmetic(substituted)


def evaluate(expression: str, values: Mapping[str, Any]) -> float:
    """Evaluate a simple formula; rejected expressions yield 0.0 and a runtime event."""
    try:
        return evaluate_strict(expression, values)
    except InvalidExpressionError as exc:
        append_runtime_event(
            level="ERROR",
            event="invalid_expression",
            message=f"Formula rejected: {exc.reason}.",
            context={"expression": expression, "substituted": exc.expression},
        )
        return 0.0


# Custom calculators.

CalculatorFn = Callable[[Mapping[str, Any]], dict]

CUSTOM_CALCULATORS: dict[str, CalculatorFn] = {}

SUBSCRIPTION_TIERS = (
    (50, 0.10),
    (100, 0.15),
    (200, 0.20),
)


def register_calculator(calculator_id: str) -> Callable[[CalculatorFn], CalculatorFn]:
    def _register(fn: CalculatorFn) -> CalculatorFn:
        CUSTOM_CALCULATORS[calculator_id] = fn
        return fn

    return _register


def _number_or(values: Mapping[str, Any], key: str, fallback: float) -> float:
    number = coerce_number(values.get(key))
    return number if number else fallback


@register_calculator("learnership-complex")
def learnership_complex(values: Mapping[str, Any]) -> dict:
    learner_count = coerce_number(values.get("learnerCount"))
    cost_per_learner = coerce_number(values.get("costPerLearner"))
    duration = _number_or(values, "duration", 12.0)
    discount = coerce_number(values.get("discountPercentage"))

    subtotal = learner_count * cost_per_learner
    discount_amount = subtotal * (discount / 100)
    total = subtotal - discount_amount
    return {
        "total": total,
        "breakdown": {
            "learnerCount": learner_count,
            "costPerLearner": cost_per_learner,
            "duration": duration,
            "subtotal": subtotal,
            "discountPercentage": discount,
            "discountAmount": discount_amount,
            "total": total,
        },
    }


@register_calculator("subscription-tiered")
def subscription_tiered(values: Mapping[str, Any]) -> dict:
    users = coerce_number(values.get("users"))
    base_rate = coerce_number(values.get("baseRate"))

    discount = 0.0
    for threshold, tier_discount in SUBSCRIPTION_TIERS:
        if users >= threshold:
            discount = tier_discount

    subtotal = users * base_rate
    discount_amount = subtotal * discount
    total = subtotal - discount_amount
    return {
        "total": total,
        "breakdown": {
            "users": users,
            "baseRate": base_rate,
            "subtotal": subtotal,
            "tierDiscount": discount * 100,
            "discountAmount": discount_amount,
            "total": total,
        },
    }


def run_custom_calculator(calculator_id: str, values: Mapping[str, Any]) -> dict:
    calculator = CUSTOM_CALCULATORS.get(calculator_id)
    if calculator is None:
        raise UnknownCalculatorError(calculator_id)
    return calculator(values)
