"""Financial-year calendar utilities."""

from __future__ import annotations

from typing import Any, Mapping

import pandas as pd

from deal_calc.defaults import DEFAULT_FINANCIAL_YEAR
from deal_calc.formula import coerce_number


MONTH_ABBREVIATIONS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

DEFAULT_FY_START_MONTH = 2  # March
DEFAULT_CONTRACT_MONTHS = 12


def month_key(month_index: int, year: int) -> str:
    return f"{MONTH_ABBREVIATIONS[int(month_index) % 12]}{int(year)}"


def timestamp_key(ts: pd.Timestamp) -> str:
    return month_key(ts.month - 1, ts.year)


def as_today(today: Any = None) -> pd.Timestamp:
    if today is None:
        return pd.Timestamp.today().normalize()
    return pd.Timestamp(today).normalize()


def parse_date(value: Any) -> pd.Timestamp | None:
    """Parse a date-like field value; None when it is missing or unusable."""
    if value is None or isinstance(value, (bool, int, float)):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts.normalize()


def add_months(ts: pd.Timestamp, months: int) -> pd.Timestamp:
    return ts + pd.DateOffset(months=int(months))


def month_walk(start: pd.Timestamp, count: int) -> list[str]:
    """Month keys for ``count`` consecutive months beginning at ``start``'s month."""
    first = pd.Timestamp(year=start.year, month=start.month, day=1)
    return [timestamp_key(d) for d in pd.date_range(first, periods=max(int(count), 0), freq="MS")]


def contract_months(values: Mapping[str, Any]) -> int:
    """Contract length: ``duration``, then ``contractMonths``, then 12; fractions truncate."""
    for key in ("duration", "contractMonths"):
        months = coerce_number(values.get(key))
        if months >= 1:
            return int(months)
    return DEFAULT_CONTRACT_MONTHS


def month_index_from_name(name: Any) -> int | None:
    text = str(name or "").strip().lower()
    if not text:
        return None
    for idx, full in enumerate(MONTH_NAMES):
        if text == full.lower() or text == MONTH_ABBREVIATIONS[idx]:
            return idx
    return None


def fy_start_year_for(start_month: int, today: Any = None) -> int:
    """Start year of the financial year that contains ``today``."""
    ts = as_today(today)
    return ts.year if ts.month - 1 >= start_month else ts.year - 1


def _start_month(fy_info: Mapping[str, Any] | None) -> int:
    raw = (fy_info or {}).get("startMonth")
    if raw is None or isinstance(raw, bool):
        return DEFAULT_FY_START_MONTH
    try:
        month = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_FY_START_MONTH
    return month if 0 <= month <= 11 else DEFAULT_FY_START_MONTH


def financial_year_months(fy_info: Mapping[str, Any] | None, today: Any = None) -> list[str]:
    """The 12 month keys of the financial year, in order.

    Key ``i`` is month ``(startMonth + i) % 12``; the year steps forward once
    the walk wraps from December to January.
    """
    start_month = _start_month(fy_info)
    raw_year = (fy_info or {}).get("startYear")
    try:
        start_year = int(raw_year) if raw_year is not None else fy_start_year_for(start_month, today)
    except (TypeError, ValueError):
        start_year = fy_start_year_for(start_month, today)
    keys = []
    for i in range(12):
        offset = start_month + i
        keys.append(month_key(offset % 12, start_year + offset // 12))
    return keys


def _start_year_from_label(label: Any, start_month: int) -> int | None:
    text = str(label or "").strip()
    if not text:
        return None
    try:
        end_year = int(text.split("/")[-1].strip())
    except ValueError:
        return None
    return end_year if start_month == 0 else end_year - 1


def financial_year_info(settings: Mapping[str, Any] | None = None, today: Any = None) -> dict:
    """Derive ``{startMonth, startYear, currencySymbol}`` from tenant FY settings."""
    merged = {**DEFAULT_FINANCIAL_YEAR, **{k: v for k, v in (settings or {}).items() if v not in (None, "")}}
    start_month = month_index_from_name(merged.get("financialYearStart"))
    if start_month is None:
        start_month = month_index_from_name(DEFAULT_FINANCIAL_YEAR["financialYearStart"])
    start_year = _start_year_from_label(merged.get("currentFinancialYear"), start_month)
    if start_year is None:
        start_year = fy_start_year_for(start_month, today)
    return {
        "startMonth": start_month,
        "startYear": start_year,
        "currencySymbol": str(merged.get("currencySymbol") or DEFAULT_FINANCIAL_YEAR["currencySymbol"]),
    }


def fy_label(fy_info: Mapping[str, Any]) -> str:
    keys = financial_year_months(fy_info)
    start = int(keys[0][3:])
    end = int(keys[-1][3:])
    return f"{start}/{end}" if start != end else str(start)
