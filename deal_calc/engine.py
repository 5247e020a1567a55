"""Deal calculation engine: income, costs, monthly distribution and gross profit."""

from __future__ import annotations

import math
import re
from typing import Any, Mapping

import pandas as pd

from deal_calc.calendar_utils import (
    MONTH_ABBREVIATIONS,
    add_months,
    as_today,
    contract_months,
    financial_year_months,
    month_walk,
    parse_date,
    timestamp_key,
)
from deal_calc.errors import UnknownCalculatorError
from deal_calc.formula import coerce_number, evaluate, run_custom_calculator
from deal_calc.metrics import _safe_div, gross_profit, round_money
from deal_calc.registry import TemplateRegistry, default_registry
from deal_calc.runtime_logging import append_runtime_event
from deal_calc.schema import PERCENTAGE_OF_TOTAL, CostFieldDef, CustomFormula, SimpleFormula


DEFAULT_FREQUENCY = "once-off"
FREQUENCY_TAGS = ("monthly", "once-off", "end-of-program", "with-income")
FREQUENCY_ALIASES = {
    "end-of-learnership": "end-of-program",
    "end-of-contract": "end-of-program",
    "onceoff": "once-off",
    "once": "once-off",
}

MONTH_KEY_RE = re.compile(r"^([a-z]{3})(\d{4})$")


def _registry(registry: TemplateRegistry | None) -> TemplateRegistry:
    return registry if registry is not None else default_registry()


def merged_values(field_values: Mapping[str, Any] | None, product_defaults: Mapping[str, Any] | None = None) -> dict:
    """Product defaults overlaid by the entered field values."""
    return {**dict(product_defaults or {}), **dict(field_values or {})}


# Income.


def calculate_total(
    template_id: str,
    field_values: Mapping[str, Any] | None,
    product_defaults: Mapping[str, Any] | None = None,
    registry: TemplateRegistry | None = None,
) -> dict:
    template = _registry(registry).get_template(template_id)
    values = merged_values(field_values, product_defaults)
    formula = template.formula

    if isinstance(formula, SimpleFormula):
        total = evaluate(formula.expression, values)
        breakdown: dict = {"formula": formula.expression, "values": values}
    elif isinstance(formula, CustomFormula):
        try:
            result = run_custom_calculator(formula.calculator_id, values)
        except UnknownCalculatorError as exc:
            append_runtime_event(
                level="ERROR",
                event="unknown_calculator",
                message=str(exc),
                context={"template_id": template.id, "calculator_id": exc.calculator_id},
            )
            total, breakdown = 0.0, {"error": str(exc)}
        else:
            total = coerce_number(result.get("total"))
            breakdown = dict(result.get("breakdown") or {})
    else:
        total, breakdown = 0.0, {"error": "Template has no formula"}

    return {
        "total": total,
        "breakdown": breakdown,
        "templateId": template.id,
        "templateName": template.name,
    }


# Costs.


def normalize_frequency(raw: Any) -> str:
    """Map a stored frequency label (``End of Learnership``, ``Once-off``...) to its tag."""
    text = str(raw or "").strip().lower()
    if not text:
        return DEFAULT_FREQUENCY
    tag = re.sub(r"[\s_]+", "-", text)
    return FREQUENCY_ALIASES.get(tag, tag)


def _cost_label(cost: CostFieldDef, cost_values: Mapping[str, Any]) -> str:
    if cost.has_custom_label:
        label = str(cost_values.get(f"{cost.id}Label") or "").strip()
        if label:
            return label
    return cost.name


def calculate_costs(
    template_id: str,
    cost_values: Mapping[str, Any] | None,
    total_income: Any = 0,
    registry: TemplateRegistry | None = None,
) -> dict:
    template = _registry(registry).get_template(template_id)
    cost_values = cost_values or {}
    income = coerce_number(total_income)

    costs: dict[str, dict] = {}
    for cost in template.cost_fields:
        raw = cost_values.get(cost.id)
        if cost.is_percentage and cost.percentage_of == PERCENTAGE_OF_TOTAL:
            percentage = coerce_number(raw)
            entry = {
                "type": "percentage",
                "percentage": percentage,
                "amount": round_money(income * (percentage / 100)),
            }
        else:
            entry = {"type": "fixed", "amount": round_money(coerce_number(raw))}
        entry["frequency"] = normalize_frequency(cost_values.get(f"{cost.id}Frequency"))
        entry["label"] = _cost_label(cost, cost_values)
        costs[cost.id] = entry

    return {
        "costs": costs,
        "totalCost": round_money(sum(e["amount"] for e in costs.values())),
        "templateId": template.id,
    }


# Monthly distribution.


def certainty_percentage(raw: Any) -> float:
    """Certainty weighting in percent; absent or unusable values mean 100."""
    if raw is None or isinstance(raw, bool):
        return 100.0
    if isinstance(raw, str) and not raw.strip():
        return 100.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 100.0
    return value if math.isfinite(value) else 100.0


def adjusted_total(total: Any, certainty_pct: Any = None) -> float:
    return coerce_number(total) * (certainty_percentage(certainty_pct) / 100)


def _empty_months(fy_info: Mapping[str, Any] | None, today: pd.Timestamp) -> dict[str, float]:
    return dict.fromkeys(financial_year_months(fy_info, today), 0.0)


def _credit(months: dict[str, float], key: str | None, amount: float) -> None:
    # Keys outside the financial year window are dropped.
    if key in months:
        months[key] = round_money(months[key] + amount)


def _spread(months: dict[str, float], amount: float, start: pd.Timestamp, duration: int) -> None:
    share = round_money(_safe_div(amount, duration))
    for key in month_walk(start, duration):
        _credit(months, key, share)


def _log_unparsable_date(field_id: str, raw: Any) -> None:
    append_runtime_event(
        level="WARNING",
        event="distribution_date_unparsable",
        message=f"Could not parse {field_id} value {raw!r}.",
        context={"field": field_id, "value": str(raw)},
    )


def _start_date(field_values: Mapping[str, Any], today: pd.Timestamp) -> pd.Timestamp:
    raw = field_values.get("startDate")
    ts = parse_date(raw)
    if ts is not None:
        return ts
    if raw not in (None, ""):
        _log_unparsable_date("startDate", raw)
    return today


def _once_off_key(field_values: Mapping[str, Any]) -> str | None:
    field_id = "incomeMonth" if field_values.get("incomeMonth") else "startDate"
    raw = field_values.get(field_id)
    if not raw:
        return None
    if isinstance(raw, str):
        match = MONTH_KEY_RE.match(raw.strip().lower())
        if match and match.group(1) in MONTH_ABBREVIATIONS:
            return match.group(0)
    ts = parse_date(raw)
    if ts is None:
        _log_unparsable_date(field_id, raw)
        return None
    return timestamp_key(ts)


def distribute_income(
    distribution_type: str,
    total: Any,
    certainty_pct: Any,
    field_values: Mapping[str, Any] | None,
    fy_info: Mapping[str, Any] | None,
    today: Any = None,
) -> dict[str, float]:
    """Spread the certainty-weighted income total over the 12 financial-year months.

    ``once-off`` credits the month of ``incomeMonth`` (or ``startDate``) and
    credits nothing when neither is given. ``annual`` gives every month the same
    rounded twelfth. Anything else is treated as ``monthly``: the total is split
    over the contract duration starting at ``startDate``.
    """
    today = as_today(today)
    field_values = field_values or {}
    months = _empty_months(fy_info, today)
    amount = adjusted_total(total, certainty_pct)

    if distribution_type == "once-off":
        _credit(months, _once_off_key(field_values), round_money(amount))
    elif distribution_type == "annual":
        share = round_money(amount / 12)
        for key in months:
            months[key] = share
    else:
        _spread(months, amount, _start_date(field_values, today), contract_months(field_values))
    return months


def _cost_entries(costs: Mapping[str, Any]) -> Mapping[str, Any]:
    if "totalCost" in costs and isinstance(costs.get("costs"), Mapping):
        return costs["costs"]
    return costs


def unallocated_costs(costs: Mapping[str, Any]) -> dict[str, float]:
    """``with-income`` cost amounts the distributor leaves out of the monthly map."""
    return {
        cost_id: round_money(coerce_number(entry.get("amount")))
        for cost_id, entry in _cost_entries(costs).items()
        if normalize_frequency(entry.get("frequency")) == "with-income"
    }


def distribute_costs(
    costs: Mapping[str, Any],
    field_values: Mapping[str, Any] | None,
    fy_info: Mapping[str, Any] | None,
    today: Any = None,
) -> dict[str, float]:
    today = as_today(today)
    field_values = field_values or {}
    months = _empty_months(fy_info, today)
    entries = _cost_entries(costs)
    start = _start_date(field_values, today)
    duration = contract_months(field_values)

    for entry in entries.values():
        amount = coerce_number(entry.get("amount"))
        frequency = normalize_frequency(entry.get("frequency"))
        if frequency == "monthly":
            _spread(months, amount, start, duration)
        elif frequency == "with-income":
            continue
        elif frequency == "end-of-program":
            _credit(months, timestamp_key(add_months(start, duration - 1)), amount)
        else:
            _credit(months, timestamp_key(start), amount)

    unallocated = unallocated_costs(entries)
    if unallocated:
        append_runtime_event(
            level="WARNING",
            event="with_income_cost_unallocated",
            message="Costs billed with income are not allocated to months.",
            context={"costs": unallocated},
        )
    return months


def distribute_monthly(
    template_id: str,
    field_values: Mapping[str, Any] | None,
    fy_info: Mapping[str, Any] | None,
    registry: TemplateRegistry | None = None,
    today: Any = None,
) -> dict:
    """Distribute ``totalAmount`` using the template's distribution type."""
    template = _registry(registry).get_template(template_id)
    field_values = field_values or {}
    total = coerce_number(field_values.get("totalAmount"))
    certainty = certainty_percentage(field_values.get("certaintyPercentage"))
    months = distribute_income(template.distribution_type, total, certainty, field_values, fy_info, today)
    return {
        "distributionType": template.distribution_type,
        "total": round_money(adjusted_total(total, certainty)),
        "certaintyPercentage": certainty,
        "originalTotal": total,
        "months": months,
        "fyInfo": dict(fy_info or {}),
    }


# Full calculation.


def full_calculation(
    template_id: str,
    field_values: Mapping[str, Any] | None,
    cost_values: Mapping[str, Any] | None,
    fy_info: Mapping[str, Any] | None,
    product_defaults: Mapping[str, Any] | None = None,
    registry: TemplateRegistry | None = None,
    today: Any = None,
) -> dict:
    registry = _registry(registry)
    today = as_today(today)
    template = registry.get_template(template_id)
    values = merged_values(field_values, product_defaults)

    income = calculate_total(template_id, field_values, product_defaults, registry)
    costs = calculate_costs(template_id, cost_values, income["total"], registry)
    gp = gross_profit(income["total"], costs["totalCost"])

    certainty = certainty_percentage(values.get("certaintyPercentage"))
    income_months = distribute_income(template.distribution_type, income["total"], certainty, values, fy_info, today)
    cost_months = distribute_costs(costs, values, fy_info, today)
    gp_months = {key: round_money(income_months[key] - cost_months.get(key, 0.0)) for key in income_months}

    return {
        "templateId": template.id,
        "templateName": template.name,
        "income": {
            "total": income["total"],
            "breakdown": income["breakdown"],
            "monthly": income_months,
            "distributionType": template.distribution_type,
            "certaintyPercentage": certainty,
            "adjustedTotal": round_money(adjusted_total(income["total"], certainty)),
        },
        "costs": {
            "total": costs["totalCost"],
            "breakdown": costs["costs"],
            "monthly": cost_months,
            "unallocated": unallocated_costs(costs),
        },
        "grossProfit": {**gp, "monthly": gp_months},
        "summary": {
            "totalIncome": income["total"],
            "totalCosts": costs["totalCost"],
            "grossProfit": gp["grossProfit"],
            "gpPercentage": gp["gpPercentage"],
        },
    }


def monthly_frame(result: Mapping[str, Any]) -> pd.DataFrame:
    """One row per financial-year month of a ``full_calculation`` result."""
    income = result["income"]["monthly"]
    costs = result["costs"]["monthly"]
    gp = result["grossProfit"]["monthly"]
    rows = []
    for key in income:
        month_income = income[key]
        month_gp = gp.get(key, 0.0)
        rows.append(
            {
                "Month": key,
                "Income": month_income,
                "Costs": costs.get(key, 0.0),
                "Gross Profit": month_gp,
                "GP %": round_money(_safe_div(month_gp, month_income) * 100, 1) if month_income > 0 else 0.0,
            }
        )
    return pd.DataFrame(rows, columns=["Month", "Income", "Costs", "Gross Profit", "GP %"])
