import json
from datetime import date
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from deal_calc.calendar_utils import MONTH_NAMES, financial_year_info, fy_label
from deal_calc.engine import FREQUENCY_TAGS, full_calculation, monthly_frame
from deal_calc.errors import DealCalcError
from deal_calc.integrity_checks import run_integrity_checks
from deal_calc.options import get_effective_option_list
from deal_calc.persistence import storage_root_path
from deal_calc.registry import default_registry
from deal_calc.runtime_logging import (
    append_runtime_event,
    install_global_exception_logging,
    read_runtime_events,
    runtime_log_path,
    summarize_runtime_events,
)
from deal_calc.validation import format_field_value, validate_field_values


install_global_exception_logging()


def _stable_json(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


@st.cache_data(show_spinner=False)
def _full_calculation_cached(request_json: str) -> dict:
    request = json.loads(request_json)
    return full_calculation(
        request["template_id"],
        request["field_values"],
        request["cost_values"],
        request["fy_info"],
        today=request["today"],
    )


def _widget_key(template_id: str, field_id: str) -> str:
    return f"{template_id}__{field_id}"


def _option_values(template_id: str, list_key: str | None) -> list[str]:
    if not list_key:
        return []
    options = get_effective_option_list(None, None, list_key, {"calculationTemplateId": template_id})
    return [str(o.get("value", o["id"])) for o in options]


def _field_input(template, f):
    key = _widget_key(template.id, f.id)
    help_text = f.help_text or f"{f.name} ({f.type})"
    if f.type in ("number", "currency", "percentage"):
        default = f.default if isinstance(f.default, (int, float)) and not isinstance(f.default, bool) else 0.0
        return st.number_input(f.name, value=float(default), step=1.0, key=key, help=help_text)
    if f.type == "select":
        values = _option_values(template.id, f.list_key)
        choices = [""] + values
        index = choices.index(str(f.default)) if f.default is not None and str(f.default) in choices else 0
        return st.selectbox(f.name, options=choices, index=index, key=key, help=help_text) or None
    if f.type == "date":
        picked = st.date_input(f.name, value=date.today(), key=key, help=help_text)
        return picked.isoformat() if picked else None
    return st.text_input(f.name, value=str(f.default or ""), key=key, help=help_text) or None


def _cost_inputs(template, c) -> dict:
    key = _widget_key(template.id, c.id)
    out = {}
    cols = st.columns(3 if c.has_custom_label else 2)
    unit = "%" if c.is_percentage else "amount"
    out[c.id] = cols[0].number_input(
        f"{c.name} ({unit})",
        value=0.0,
        step=1.0,
        key=key,
        help="Percentage of total income." if c.is_percentage else "Fixed cost amount.",
    )
    if c.has_frequency:
        frequencies = list(c.frequency_options) or list(FREQUENCY_TAGS)
        out[f"{c.id}Frequency"] = cols[1].selectbox(
            "Frequency",
            options=frequencies,
            key=f"{key}__frequency",
            help="When this cost is incurred.",
        )
    if c.has_custom_label:
        out[f"{c.id}Label"] = cols[-1].text_input(
            "Label",
            value="",
            key=f"{key}__label",
            help="Custom description shown in the cost breakdown.",
        )
    return out


st.set_page_config(page_title="Deal Calculation Preview", layout="wide")
st.title("Deal Calculation Preview")
st.caption("Template-driven income, costs, gross profit and financial-year distribution.")

registry = default_registry()
template_rows = registry.list_templates()
if not template_rows:
    st.error("No calculation templates are available.")
    st.stop()

with st.sidebar:
    st.header("Financial Year")
    fy_defaults = financial_year_info({})
    fy_start_name = st.selectbox(
        "Financial Year Start",
        options=list(MONTH_NAMES),
        index=int(fy_defaults["startMonth"]),
        key="fy_start_month",
        help="First month of the tenant's financial year.",
    )
    fy_start_year = st.number_input(
        "FY Start Year",
        min_value=2000,
        max_value=2100,
        value=int(fy_defaults["startYear"]),
        step=1,
        key="fy_start_year",
        help="Calendar year in which the financial year starts.",
    )
    currency_symbol = st.text_input(
        "Currency Symbol",
        value=fy_defaults["currencySymbol"],
        key="currency_symbol",
        help="Prefix used for currency amounts.",
    )
    st.caption(f"Storage root: {storage_root_path()}")

    st.header("Template")
    template_ids = [row["id"] for row in template_rows]
    template_names = {row["id"]: row["name"] for row in template_rows}
    template_id = st.selectbox(
        "Calculation Template",
        options=template_ids,
        format_func=lambda tid: template_names.get(tid, tid),
        key="template_id",
        help="Template that defines the deal fields, costs and formula.",
    )

try:
    template = registry.get_template(template_id)
except DealCalcError as exc:
    st.error(f"Template could not be loaded: {exc}")
    st.stop()

fy_info = {
    "startMonth": MONTH_NAMES.index(fy_start_name),
    "startYear": int(fy_start_year),
    "currencySymbol": currency_symbol or "R",
}
symbol = fy_info["currencySymbol"]

if template.description:
    st.caption(template.description)
if len(template.lineage) > 1:
    st.caption(f"Inherits from: {' -> '.join(template.lineage[1:])}")

input_col, cost_col = st.columns(2)
field_values: dict = {}
cost_values: dict = {}
with input_col:
    st.subheader("Deal Fields")
    for f in template.fields:
        field_values[f.id] = _field_input(template, f)
with cost_col:
    st.subheader("Costs")
    if not template.cost_fields:
        st.caption("This template has no cost fields.")
    for c in template.cost_fields:
        cost_values.update(_cost_inputs(template, c))

validation = validate_field_values(template.id, field_values, registry=registry)
if not validation.is_valid:
    with st.expander(f"[!] Validation Errors ({len(validation.errors)})", expanded=True):
        st.caption("The deal cannot be saved until these are resolved. The preview below still runs.")
        for field_id, message in validation.errors.items():
            st.write(f"- {message}")

request = {
    "template_id": template.id,
    "field_values": field_values,
    "cost_values": cost_values,
    "fy_info": fy_info,
    "today": date.today().isoformat(),
}
try:
    result = _full_calculation_cached(_stable_json(request))
except DealCalcError as exc:
    append_runtime_event(
        level="ERROR",
        event="preview_calculation_failed",
        message=str(exc),
        context={"template_id": template.id},
        exc=exc,
    )
    st.error(f"Calculation failed: {exc}")
    st.stop()

summary = result["summary"]
st.subheader(f"Summary (FY {fy_label(fy_info)})")
m1, m2, m3, m4 = st.columns(4)
m1.metric("Total Income", format_field_value("currency", summary["totalIncome"], symbol))
m2.metric("Total Costs", format_field_value("currency", summary["totalCosts"], symbol))
m3.metric("Gross Profit", format_field_value("currency", summary["grossProfit"], symbol))
m4.metric("GP %", format_field_value("percentage", summary["gpPercentage"]))

if result["income"]["breakdown"].get("error"):
    st.warning(f"Income could not be calculated: {result['income']['breakdown']['error']}")

unallocated = result["costs"]["unallocated"]
if unallocated:
    st.info(
        "Costs billed with income are included in the totals but not in the monthly view: "
        + ", ".join(f"{k} ({format_field_value('currency', v, symbol)})" for k, v in unallocated.items())
    )

monthly_df = monthly_frame(result)
st.subheader("Monthly Distribution")
st.dataframe(monthly_df, width="stretch", hide_index=True)

fig = go.Figure()
fig.add_trace(go.Bar(x=monthly_df["Month"], y=monthly_df["Income"], name="Income"))
fig.add_trace(go.Bar(x=monthly_df["Month"], y=monthly_df["Costs"], name="Costs"))
fig.add_trace(go.Scatter(x=monthly_df["Month"], y=monthly_df["Gross Profit"], name="Gross Profit", mode="lines+markers"))
fig.update_layout(title="Income, Costs and Gross Profit by Month", barmode="group")
st.plotly_chart(fig, width="stretch")

with st.expander("Cost Breakdown", expanded=False):
    cost_rows = [
        {
            "Cost": entry["label"],
            "Type": entry["type"],
            "Amount": entry["amount"],
            "Frequency": entry["frequency"],
        }
        for entry in result["costs"]["breakdown"].values()
    ]
    if cost_rows:
        st.dataframe(pd.DataFrame(cost_rows), width="stretch", hide_index=True)
    else:
        st.caption("No costs.")

with st.expander("Income Breakdown", expanded=False):
    st.json(result["income"]["breakdown"])

integrity_findings = run_integrity_checks(result)
integrity_signature = _stable_json(integrity_findings)
if integrity_findings and st.session_state.get("_integrity_log_signature") != integrity_signature:
    append_runtime_event(
        level="ERROR",
        event="integrity_checks_failed",
        message=f"{len(integrity_findings)} integrity check(s) failed.",
        context={"template_id": template.id, "findings": integrity_findings},
    )
    st.session_state["_integrity_log_signature"] = integrity_signature
elif not integrity_findings:
    st.session_state["_integrity_log_signature"] = ""

if integrity_findings:
    with st.expander(f"[!] Integrity Findings ({len(integrity_findings)})", expanded=False):
        st.dataframe(pd.DataFrame(integrity_findings), width="stretch", hide_index=True)
else:
    st.caption("Integrity checks: passed.")

with st.expander("Runtime Events", expanded=False):
    runtime_events = read_runtime_events(limit=200)
    if runtime_events:
        st.caption("Event counts")
        st.dataframe(pd.DataFrame(summarize_runtime_events(runtime_events)), width="stretch", hide_index=True)
        runtime_df = pd.DataFrame(runtime_events)
        preferred_cols = ["timestamp_utc", "level", "event", "message", "exception_type", "exception_message", "context"]
        runtime_cols = [c for c in preferred_cols if c in runtime_df.columns] + [
            c for c in runtime_df.columns if c not in preferred_cols
        ]
        runtime_df = runtime_df[runtime_cols].astype(str)
        st.dataframe(runtime_df, width="stretch", hide_index=True)
    else:
        st.caption("No runtime events logged yet.")
    log_path = Path(runtime_log_path())
    if log_path.exists():
        st.download_button(
            "Download Runtime Log (JSONL)",
            log_path.read_text(encoding="utf-8"),
            file_name="deal_calc_runtime_events.jsonl",
            mime="application/x-ndjson",
            help="Structured runtime events for diagnosing calculation problems.",
        )
