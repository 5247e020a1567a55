"""Arithmetic integrity checks over a full calculation result."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import numpy as np

from deal_calc.engine import monthly_frame
from deal_calc.metrics import round_money


# Twelve shares rounded to cents drift by at most half a cent each.
MONTHLY_ROUNDING_ALLOWANCE = 12 * 0.005

FINDING_COLUMNS = ("Check", "Max Abs Delta", "Month of Max Delta", "LHS", "RHS")


def _identity_finding(
    check: str,
    sides: tuple[str, str],
    lhs: Any,
    rhs: Any,
    tol: float,
    months: Sequence[str] | None = None,
) -> dict[str, Any] | None:
    """Compare two totals or two month-aligned series; None when they agree within ``tol``."""
    delta = np.atleast_1d(np.asarray(lhs, dtype=float) - np.asarray(rhs, dtype=float))
    delta = np.abs(np.nan_to_num(delta, nan=0.0))
    if delta.size == 0:
        return None
    worst = int(np.argmax(delta))
    if delta[worst] <= float(tol):
        return None
    month = str(months[worst]) if months is not None and worst < len(months) else ""
    return dict(zip(FINDING_COLUMNS, (check, float(delta[worst]), month, *sides)))


def _excess_finding(check: str, sides: tuple[str, str], allocated: float, limit: float, allowance: float):
    # One-sided: allocating less than the limit is allowed (months outside the year are dropped).
    excess = float(allocated) - float(limit)
    if excess <= allowance:
        return None
    return dict(zip(FINDING_COLUMNS, (check, excess, "", *sides)))


def run_integrity_checks(result: Mapping[str, Any], tol: float = 0.011) -> list[dict[str, Any]]:
    """Return integrity findings (empty list means all checks passed)."""
    if not isinstance(result, Mapping) or not all(k in result for k in ("income", "costs", "grossProfit")):
        return [dict(zip(FINDING_COLUMNS, ("Calculation result not available", np.nan, "", "", "")))]

    income = result["income"]
    costs = result["costs"]
    gp = result["grossProfit"]
    entries = list(costs.get("breakdown", {}).values())

    findings = [
        _identity_finding(
            "Cost total identity",
            ("Total Cost", "Sum of cost amounts"),
            costs["total"],
            round_money(sum(float(e.get("amount", 0.0)) for e in entries)),
            tol,
        ),
        _identity_finding(
            "Gross profit identity",
            ("Gross Profit", "Income - Costs"),
            gp["grossProfit"],
            round_money(gp["income"] - gp["costs"]),
            tol,
        ),
    ]

    income_keys = list(income["monthly"])
    mismatched = (set(income_keys) ^ set(costs["monthly"])) | (set(income_keys) ^ set(gp["monthly"]))
    if mismatched or len(income_keys) != 12:
        findings.append(
            dict(
                zip(
                    FINDING_COLUMNS,
                    (
                        "Monthly key identity",
                        float(len(mismatched) or abs(len(income_keys) - 12)),
                        ", ".join(sorted(mismatched)),
                        "Income months",
                        "Cost and GP months",
                    ),
                )
            )
        )
        return [f for f in findings if f is not None]

    df = monthly_frame(result)
    findings.append(
        _identity_finding(
            "Monthly gross profit identity",
            ("Gross Profit", "Income - Costs"),
            df["Gross Profit"].to_numpy(),
            (df["Income"] - df["Costs"]).to_numpy(),
            tol,
            months=df["Month"].tolist(),
        )
    )

    findings.append(
        _excess_finding(
            "Income allocation coverage",
            ("Allocated income", "Adjusted total"),
            df["Income"].sum(),
            income.get("adjustedTotal", income["total"]),
            MONTHLY_ROUNDING_ALLOWANCE + float(tol),
        )
    )

    spread_lines = sum(1 for e in entries if e.get("frequency") == "monthly")
    findings.append(
        _excess_finding(
            "Cost allocation coverage",
            ("Allocated costs", "Allocatable costs"),
            df["Costs"].sum(),
            float(costs["total"]) - sum(float(v) for v in costs.get("unallocated", {}).values()),
            max(spread_lines, 1) * MONTHLY_ROUNDING_ALLOWANCE + float(tol),
        )
    )
    return [f for f in findings if f is not None]
