"""Error taxonomy for template lookup, formula evaluation and validation."""

from __future__ import annotations


class DealCalcError(Exception):
    """Base class for calculation engine errors."""


class TemplateNotFoundError(DealCalcError, LookupError):
    def __init__(self, template_id: str, message: str | None = None):
        self.template_id = str(template_id)
        super().__init__(message or f"Template not found: {template_id}")


class TemplateInheritanceError(DealCalcError):
    """Raised when an inheritsFrom chain loops or exceeds the depth limit."""

    def __init__(self, template_id: str, chain: list[str], message: str):
        self.template_id = str(template_id)
        self.chain = list(chain)
        super().__init__(message)


class UnknownCalculatorError(DealCalcError, LookupError):
    def __init__(self, calculator_id: str):
        self.calculator_id = str(calculator_id)
        super().__init__(f"Unknown calculator: {calculator_id}")


class InvalidExpressionError(DealCalcError, ValueError):
    """Formula text that must not be evaluated."""

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"{reason}: {expression!r}")


class ValidationError(DealCalcError, ValueError):
    """Carries every field-level violation at once."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(summary or "Validation failed.")
