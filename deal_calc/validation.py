"""Field value validation, typed coercion and display formatting."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from deal_calc.calendar_utils import parse_date
from deal_calc.errors import DealCalcError, ValidationError
from deal_calc.formula import coerce_number
from deal_calc.metrics import round_money
from deal_calc.registry import TemplateRegistry, default_registry
from deal_calc.schema import NUMERIC_FIELD_TYPES, FieldDef


MISSING_DISPLAY = "-"


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: dict[str, str] = field(default_factory=dict)

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)

    def to_dict(self) -> dict:
        return {"isValid": self.is_valid, "errors": dict(self.errors)}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _bound_text(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


def _check_bounds(f: FieldDef, value: Any) -> str | None:
    rules = f.validation or {}
    if "min" not in rules and "max" not in rules:
        return None
    number = _as_float(value)
    if number is None:
        return f"{f.name} must be a number"
    message = None
    if "min" in rules and number < rules["min"]:
        message = f"{f.name} must be at least {_bound_text(rules['min'])}"
    if "max" in rules and number > rules["max"]:
        message = f"{f.name} must be at most {_bound_text(rules['max'])}"
    return message


def validate_field_values(
    template_id: str,
    field_values: Mapping[str, Any] | None,
    registry: TemplateRegistry | None = None,
) -> ValidationResult:
    """Collect every field violation; a required failure skips the range checks for that field."""
    registry = registry if registry is not None else default_registry()
    try:
        template = registry.get_template(template_id)
    except DealCalcError as exc:
        return ValidationResult(False, {"_template": str(exc)})

    values = field_values or {}
    errors: dict[str, str] = {}
    for f in template.fields:
        value = values.get(f.id)
        if _is_blank(value):
            if f.required:
                errors[f.id] = f"{f.name} is required"
            continue
        message = _check_bounds(f, value)
        if message:
            errors[f.id] = message
    return ValidationResult(not errors, errors)


def typed_field_value(f: FieldDef, value: Any) -> Any:
    if _is_blank(value):
        return f.default
    if f.type in NUMERIC_FIELD_TYPES:
        return coerce_number(value)
    if f.type == "date":
        return parse_date(value)
    return str(value)


def _grouped(number: float, decimals: int) -> str:
    # en-ZA: space between thousands, comma before decimals.
    rounded = round_money(number, decimals)
    whole, _, frac = f"{abs(rounded):,.{decimals}f}".partition(".")
    text = whole.replace(",", " ")
    frac = frac.rstrip("0")
    if frac:
        text = f"{text},{frac}"
    return f"-{text}" if rounded < 0 else text


def _plain_number(value: Any) -> str:
    number = _as_float(value)
    if number is None or not number.is_integer():
        return str(value)
    return str(int(number))


def format_field_value(field_type: str, value: Any, currency_symbol: str = "R") -> str:
    """Display text for a field value, e.g. ``R 420 000``, ``10%``, ``2024/04/01``."""
    if _is_blank(value):
        return MISSING_DISPLAY

    if field_type == "currency":
        number = _as_float(value)
        if number is None or not math.isfinite(number):
            return str(value)
        text = _grouped(number, 0)
        if text.startswith("-"):
            return f"-{currency_symbol} {text[1:]}"
        return f"{currency_symbol} {text}"
    if field_type == "percentage":
        return f"{_plain_number(value)}%"
    if field_type == "number":
        number = _as_float(value)
        if number is None or not math.isfinite(number):
            return str(value)
        return _grouped(number, 3)
    if field_type == "date":
        ts = parse_date(value)
        return ts.strftime("%Y/%m/%d") if ts is not None else str(value)
    return str(value)
