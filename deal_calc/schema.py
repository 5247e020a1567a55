"""Calculation template schema: constants, value objects and sanitizing."""

from __future__ import annotations

import re
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any


FIELD_TYPES = {"number", "currency", "percentage", "select", "date", "text"}
NUMERIC_FIELD_TYPES = {"number", "currency", "percentage"}
COST_FIELD_TYPES = {"currency", "percentage"}
DISTRIBUTION_TYPES = {"once-off", "annual", "monthly"}
TEMPLATE_STATUSES = {"active", "archived", "deleted"}
FORMULA_TYPES = {"simple", "custom"}
LIST_TYPES = {"system", "tenant-configurable"}

DEFAULT_DISTRIBUTION_TYPE = "monthly"
PERCENTAGE_OF_TOTAL = "totalAmount"

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Keys an inheriting template takes from its parent when it does not define them.
INHERITED_KEYS = (
    "fields",
    "costFields",
    "formula",
    "distributionType",
    "hasCertaintyPercentage",
    "hasContractDuration",
    "hasPaymentFrequency",
    "systemLists",
)

KNOWN_TEMPLATE_KEYS = {
    "id",
    "name",
    "description",
    "version",
    "status",
    "inheritsFrom",
    "defaultCustomLists",
    "createdAt",
    "updatedAt",
    "modalWidth",
    "showBreakdownPreview",
    *INHERITED_KEYS,
}


@dataclass(frozen=True)
class FieldDef:
    id: str
    name: str
    type: str
    required: bool = False
    default: Any = None
    validation: dict | None = None
    list_key: str | None = None
    list_type: str | None = None
    allow_custom: bool = False
    help_text: str = ""


@dataclass(frozen=True)
class CostFieldDef:
    id: str
    name: str
    type: str = "currency"
    is_percentage: bool = False
    percentage_of: str | None = None
    has_frequency: bool = False
    frequency_options: tuple[str, ...] = ()
    has_custom_label: bool = False


@dataclass(frozen=True)
class SimpleFormula:
    expression: str
    description: str = ""


@dataclass(frozen=True)
class CustomFormula:
    calculator_id: str
    description: str = ""


@dataclass(frozen=True)
class CalculationTemplate:
    """Inheritance-resolved template, read-only during a calculation."""

    id: str
    name: str
    formula: SimpleFormula | CustomFormula | None
    fields: tuple[FieldDef, ...] = ()
    cost_fields: tuple[CostFieldDef, ...] = ()
    description: str = ""
    version: str = "1.0"
    status: str = "active"
    inherits_from: str | None = None
    lineage: tuple[str, ...] = ()
    distribution_type: str = DEFAULT_DISTRIBUTION_TYPE
    has_certainty_percentage: bool = False
    has_contract_duration: bool = False
    has_payment_frequency: bool = False
    system_lists: dict[str, list[dict]] = field(default_factory=dict)
    default_custom_lists: dict[str, list[dict]] = field(default_factory=dict)

    def field_by_id(self, field_id: str) -> FieldDef | None:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    @property
    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def _sanitize_validation(raw: Any, key_name: str, warnings: list[str]) -> dict | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        warnings.append(f"{key_name}.validation ignored because it is not an object.")
        return None
    out: dict = {}
    for bound in ("min", "max"):
        if bound not in raw or raw[bound] is None:
            continue
        try:
            out[bound] = float(raw[bound])
        except (TypeError, ValueError):
            warnings.append(f"{key_name}.validation.{bound} ignored because it is not numeric.")
    return out or None


def _sanitize_fields(raw_fields: Any, warnings: list[str]) -> list[dict]:
    if not isinstance(raw_fields, list):
        warnings.append("fields ignored because it is not a list.")
        return []
    seen: set[str] = set()
    out: list[dict] = []
    for idx, item in enumerate(raw_fields):
        key_name = f"fields[{idx}]"
        if not isinstance(item, dict):
            warnings.append(f"{key_name} ignored because entry is not an object.")
            continue
        field_id = str(item.get("id", "")).strip()
        if not IDENTIFIER_PATTERN.match(field_id):
            warnings.append(f"{key_name} ignored because id {field_id!r} is not a valid identifier.")
            continue
        if field_id in seen:
            warnings.append(f"{key_name} ignored because id {field_id!r} is duplicated.")
            continue
        field_type = str(item.get("type", "text")).strip()
        if field_type not in FIELD_TYPES:
            warnings.append(f"{key_name} ignored because type {field_type!r} is not supported.")
            continue
        entry = deepcopy(item)
        entry["id"] = field_id
        entry["type"] = field_type
        entry["name"] = str(item.get("name") or field_id)
        entry["required"] = _as_bool(item.get("required", False))
        validation = _sanitize_validation(item.get("validation"), key_name, warnings)
        if validation is None:
            entry.pop("validation", None)
        else:
            entry["validation"] = validation
        if field_type == "select" and not item.get("listKey"):
            warnings.append(f"{key_name} is a select field without a listKey.")
        seen.add(field_id)
        out.append(entry)
    return out


def _sanitize_cost_fields(raw_costs: Any, warnings: list[str]) -> list[dict]:
    if not isinstance(raw_costs, list):
        warnings.append("costFields ignored because it is not a list.")
        return []
    seen: set[str] = set()
    out: list[dict] = []
    for idx, item in enumerate(raw_costs):
        key_name = f"costFields[{idx}]"
        if not isinstance(item, dict):
            warnings.append(f"{key_name} ignored because entry is not an object.")
            continue
        cost_id = str(item.get("id", "")).strip()
        if not IDENTIFIER_PATTERN.match(cost_id):
            warnings.append(f"{key_name} ignored because id {cost_id!r} is not a valid identifier.")
            continue
        if cost_id in seen:
            warnings.append(f"{key_name} ignored because id {cost_id!r} is duplicated.")
            continue
        entry = deepcopy(item)
        entry["id"] = cost_id
        entry["name"] = str(item.get("name") or cost_id)
        entry["isPercentage"] = _as_bool(item.get("isPercentage", False))
        cost_type = str(item.get("type") or ("percentage" if entry["isPercentage"] else "currency"))
        if cost_type not in COST_FIELD_TYPES:
            warnings.append(f"{key_name}.type {cost_type!r} invalid; reset to currency.")
            cost_type = "currency"
        entry["type"] = cost_type
        if entry["isPercentage"]:
            percentage_of = item.get("percentageOf") or PERCENTAGE_OF_TOTAL
            if percentage_of != PERCENTAGE_OF_TOTAL:
                warnings.append(
                    f"{key_name}.percentageOf {percentage_of!r} is not supported; the cost is treated as fixed."
                )
            entry["percentageOf"] = percentage_of
        options = item.get("frequencyOptions") or []
        if not isinstance(options, list):
            warnings.append(f"{key_name}.frequencyOptions ignored because it is not a list.")
            options = []
        entry["frequencyOptions"] = [str(o) for o in options]
        entry["hasFrequency"] = _as_bool(item.get("hasFrequency", False))
        entry["hasCustomLabel"] = _as_bool(item.get("hasCustomLabel", False))
        seen.add(cost_id)
        out.append(entry)
    return out


def _sanitize_formula(raw: Any, warnings: list[str]) -> dict | None:
    if not isinstance(raw, dict):
        warnings.append("formula ignored because it is not an object.")
        return None
    formula_type = raw.get("type")
    if formula_type not in FORMULA_TYPES:
        warnings.append(f"formula.type {formula_type!r} is not supported.")
        return None
    if formula_type == "simple" and not str(raw.get("expression") or "").strip():
        warnings.append("simple formula has an empty expression.")
        return None
    if formula_type == "custom" and not str(raw.get("customCalculatorId") or "").strip():
        warnings.append("custom formula has no customCalculatorId.")
        return None
    return deepcopy(raw)


def _sanitize_option_lists(raw: Any, key_name: str, warnings: list[str]) -> dict[str, list[dict]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        warnings.append(f"{key_name} ignored because it is not an object.")
        return {}
    out: dict[str, list[dict]] = {}
    for list_key, options in raw.items():
        if not isinstance(options, list):
            warnings.append(f"{key_name}.{list_key} ignored because it is not a list.")
            continue
        cleaned = []
        for option in options:
            if isinstance(option, dict) and "id" in option:
                cleaned.append(
                    {
                        "id": str(option["id"]),
                        "name": str(option.get("name", option["id"])),
                        "value": option.get("value", option["id"]),
                    }
                )
            else:
                warnings.append(f"{key_name}.{list_key} entry ignored because it has no id.")
        out[str(list_key)] = cleaned
    return out


def parse_template(raw: Any) -> tuple[dict, list[str]]:
    """Sanitize a stored template payload.

    Only keys the payload actually carries are kept, so an inheriting template
    still falls through to its parent for everything it omits.
    Returns: (template_dict, warnings)
    """
    warnings: list[str] = []
    if not isinstance(raw, dict):
        return {}, ["Template payload is not an object."]

    template: dict = {}
    template_id = str(raw.get("id", "")).strip()
    if not template_id:
        warnings.append("Template has no id.")
    template["id"] = template_id
    template["name"] = str(raw.get("name") or template_id)
    template["description"] = str(raw.get("description") or "")
    template["version"] = str(raw.get("version") or "1.0")

    status = str(raw.get("status") or "active")
    if status not in TEMPLATE_STATUSES:
        warnings.append(f"status {status!r} invalid; reset to active.")
        status = "active"
    template["status"] = status

    unknown = sorted(k for k in raw if k not in KNOWN_TEMPLATE_KEYS)
    if unknown:
        warnings.append(f"Unknown template keys ignored: {', '.join(unknown)}.")

    if raw.get("inheritsFrom"):
        template["inheritsFrom"] = str(raw["inheritsFrom"]).strip()
    if "fields" in raw:
        template["fields"] = _sanitize_fields(raw["fields"], warnings)
    if "costFields" in raw:
        template["costFields"] = _sanitize_cost_fields(raw["costFields"], warnings)
    if "formula" in raw:
        formula = _sanitize_formula(raw["formula"], warnings)
        if formula is not None:
            template["formula"] = formula
    if "distributionType" in raw:
        distribution_type = str(raw["distributionType"])
        if distribution_type not in DISTRIBUTION_TYPES:
            warnings.append(f"distributionType {distribution_type!r} invalid; reset to {DEFAULT_DISTRIBUTION_TYPE}.")
            distribution_type = DEFAULT_DISTRIBUTION_TYPE
        template["distributionType"] = distribution_type
    for flag in ("hasCertaintyPercentage", "hasContractDuration", "hasPaymentFrequency"):
        if flag in raw:
            template[flag] = _as_bool(raw[flag])
    if "systemLists" in raw:
        template["systemLists"] = _sanitize_option_lists(raw["systemLists"], "systemLists", warnings)
    if "defaultCustomLists" in raw:
        template["defaultCustomLists"] = _sanitize_option_lists(
            raw["defaultCustomLists"], "defaultCustomLists", warnings
        )
    for stamp in ("createdAt", "updatedAt"):
        if raw.get(stamp):
            template[stamp] = str(raw[stamp])
    return template, warnings


def _field_from_dict(entry: dict) -> FieldDef:
    return FieldDef(
        id=entry["id"],
        name=entry["name"],
        type=entry["type"],
        required=bool(entry.get("required", False)),
        default=entry.get("default"),
        validation=entry.get("validation"),
        list_key=entry.get("listKey"),
        list_type=entry.get("listType"),
        allow_custom=bool(entry.get("allowCustom", False)),
        help_text=str(entry.get("helpText") or ""),
    )


def _cost_field_from_dict(entry: dict) -> CostFieldDef:
    return CostFieldDef(
        id=entry["id"],
        name=entry["name"],
        type=entry.get("type", "currency"),
        is_percentage=bool(entry.get("isPercentage", False)),
        percentage_of=entry.get("percentageOf"),
        has_frequency=bool(entry.get("hasFrequency", False)),
        frequency_options=tuple(entry.get("frequencyOptions") or ()),
        has_custom_label=bool(entry.get("hasCustomLabel", False)),
    )


def _formula_from_dict(entry: dict | None) -> SimpleFormula | CustomFormula | None:
    if not entry:
        return None
    if entry.get("type") == "custom":
        return CustomFormula(str(entry["customCalculatorId"]), str(entry.get("description") or ""))
    return SimpleFormula(str(entry["expression"]), str(entry.get("description") or ""))


def template_from_dict(resolved: dict, lineage: list[str] | None = None) -> CalculationTemplate:
    """Build the effective template value object from a fully resolved payload."""
    return CalculationTemplate(
        id=resolved["id"],
        name=resolved.get("name") or resolved["id"],
        formula=_formula_from_dict(resolved.get("formula")),
        fields=tuple(_field_from_dict(f) for f in resolved.get("fields", [])),
        cost_fields=tuple(_cost_field_from_dict(c) for c in resolved.get("costFields", [])),
        description=resolved.get("description", ""),
        version=resolved.get("version", "1.0"),
        status=resolved.get("status", "active"),
        inherits_from=resolved.get("inheritsFrom"),
        lineage=tuple(lineage or [resolved["id"]]),
        distribution_type=resolved.get("distributionType", DEFAULT_DISTRIBUTION_TYPE),
        has_certainty_percentage=bool(resolved.get("hasCertaintyPercentage", False)),
        has_contract_duration=bool(resolved.get("hasContractDuration", False)),
        has_payment_frequency=bool(resolved.get("hasPaymentFrequency", False)),
        system_lists=deepcopy(resolved.get("systemLists", {})),
        default_custom_lists=deepcopy(resolved.get("defaultCustomLists", {})),
    )
