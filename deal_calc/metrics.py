"""Rounding helpers and gross profit figures."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


def _safe_div(a: float, b: float) -> float:
    return float(a / b) if b else 0.0


def round_money(value: Any, places: int = 2) -> float:
    """Round half away from zero; non-finite or unusable values become 0.0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    quantum = Decimal(1).scaleb(-int(places))
    # repr() keeps the shortest float text, so 1.005 rounds like the literal it came from.
    rounded = float(Decimal(repr(number)).quantize(quantum, rounding=ROUND_HALF_UP))
    return rounded + 0.0


def gross_profit(income: Any, costs: Any) -> dict:
    """Income less costs; ``gpPercentage`` is 0 unless income is positive."""
    income_value = round_money(income)
    cost_value = round_money(costs)
    gp = round_money(income_value - cost_value)
    gp_pct = round_money(_safe_div(gp, income_value) * 100, 1) if income_value > 0 else 0.0
    return {
        "income": income_value,
        "costs": cost_value,
        "grossProfit": gp,
        "gpPercentage": gp_pct,
    }
