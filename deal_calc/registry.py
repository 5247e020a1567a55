"""Template registry: store lookup with a static fallback table and inheritance resolution."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

import deal_calc.persistence as persistence
from deal_calc.defaults import DEFAULT_CALCULATION_TEMPLATES
from deal_calc.errors import TemplateInheritanceError, TemplateNotFoundError
from deal_calc.formula import CUSTOM_CALCULATORS, extract_identifiers
from deal_calc.runtime_logging import append_runtime_event
from deal_calc.schema import (
    INHERITED_KEYS,
    CalculationTemplate,
    CustomFormula,
    SimpleFormula,
    parse_template,
    template_from_dict,
)


MAX_INHERITANCE_DEPTH = 10


class TemplateRegistry:
    """Resolves calculation templates by id.

    Lookup is two-tier: the primary store first, then the static fallback
    table. ``store`` is anything exposing ``load_template(id) -> (payload,
    error)`` and ``list_stored_templates()``; the local JSON store module is
    the default.
    """

    def __init__(
        self,
        store: Any = None,
        fallback: dict[str, dict] | None = None,
        max_depth: int = MAX_INHERITANCE_DEPTH,
    ):
        self.store = store if store is not None else persistence
        self.fallback = DEFAULT_CALCULATION_TEMPLATES if fallback is None else fallback
        self.max_depth = int(max_depth)

    def _parse(self, payload: dict, source: str) -> dict:
        parsed, warnings = parse_template(payload)
        if warnings:
            append_runtime_event(
                level="WARNING",
                event="template_schema_warning",
                message=f"Template {parsed.get('id')} from {source} has schema warnings.",
                context={"template_id": parsed.get("id"), "source": source, "warnings": warnings},
            )
        return parsed

    def load_raw(self, template_id: str) -> dict | None:
        """Return the sanitized, unresolved payload for one id, or None."""
        payload, error = self.store.load_template(template_id)
        if error:
            append_runtime_event(
                level="WARNING",
                event="template_store_error",
                message=error,
                context={"template_id": template_id, "fallback_available": template_id in self.fallback},
            )
        if payload is not None:
            parsed = self._parse({**payload, "id": template_id}, "store")
            if parsed["status"] == "deleted":
                return None
            return parsed

        fallback = self.fallback.get(template_id)
        if fallback is None:
            return None
        return self._parse({**deepcopy(fallback), "id": template_id}, "defaults")

    def _chain(self, template_id: str) -> list[dict]:
        chain: list[dict] = []
        visited: list[str] = []
        current: str | None = template_id
        while current:
            if current in visited:
                raise TemplateInheritanceError(
                    template_id,
                    visited + [current],
                    f"Inheritance cycle for template {template_id}: {' -> '.join(visited + [current])}",
                )
            if len(visited) >= self.max_depth:
                raise TemplateInheritanceError(
                    template_id,
                    visited,
                    f"Inheritance chain for template {template_id} exceeds {self.max_depth} levels.",
                )
            raw = self.load_raw(current)
            if raw is None:
                if current == template_id:
                    raise TemplateNotFoundError(template_id)
                raise TemplateNotFoundError(
                    current,
                    f"Template not found: {current} (inherited by {visited[-1]})",
                )
            visited.append(current)
            chain.append(raw)
            current = raw.get("inheritsFrom")
        return chain

    @staticmethod
    def _merge(chain: list[dict]) -> dict:
        child = chain[0]
        resolved = {
            k: deepcopy(child[k])
            for k in ("id", "name", "description", "version", "status", "inheritsFrom")
            if k in child
        }
        custom_lists: dict[str, list[dict]] = {}
        for payload in reversed(chain):
            for key in INHERITED_KEYS:
                if key in payload:
                    resolved[key] = deepcopy(payload[key])
            custom_lists.update(deepcopy(payload.get("defaultCustomLists", {})))
        resolved["defaultCustomLists"] = custom_lists
        return resolved

    def _check_formula(self, template: CalculationTemplate) -> None:
        problems: list[str] = []
        if template.formula is None:
            problems.append("Template has no usable formula.")
        elif isinstance(template.formula, SimpleFormula):
            unknown = [n for n in extract_identifiers(template.formula.expression) if n not in template.field_ids]
            if unknown:
                problems.append(f"Formula references unknown fields: {', '.join(unknown)}.")
        elif isinstance(template.formula, CustomFormula) and template.formula.calculator_id not in CUSTOM_CALCULATORS:
            problems.append(f"Formula names an unregistered calculator: {template.formula.calculator_id}.")
        if problems:
            append_runtime_event(
                level="WARNING",
                event="template_formula_warning",
                message=" ".join(problems),
                context={"template_id": template.id, "lineage": list(template.lineage)},
            )

    def get_template(self, template_id: str) -> CalculationTemplate:
        """Return the effective template; raises TemplateNotFoundError or TemplateInheritanceError."""
        chain = self._chain(str(template_id))
        template = template_from_dict(self._merge(chain), [c["id"] for c in chain])
        self._check_formula(template)
        return template

    def list_templates(self, include_archived: bool = False) -> list[dict]:
        ids = set(self.fallback)
        try:
            ids.update(self.store.list_stored_templates())
        except (OSError, ValueError) as exc:
            append_runtime_event(level="WARNING", event="template_store_error", message=str(exc))
        rows = []
        for template_id in ids:
            raw = self.load_raw(template_id)
            if raw is None:
                continue
            if raw["status"] == "archived" and not include_archived:
                continue
            rows.append(
                {
                    "id": template_id,
                    "name": raw.get("name", template_id),
                    "description": raw.get("description", ""),
                    "status": raw["status"],
                    "inheritsFrom": raw.get("inheritsFrom"),
                }
            )
        return sorted(rows, key=lambda r: (r["name"], r["id"]))


_DEFAULT_REGISTRY = TemplateRegistry()


def default_registry() -> TemplateRegistry:
    return _DEFAULT_REGISTRY


def get_template(template_id: str) -> CalculationTemplate:
    return _DEFAULT_REGISTRY.get_template(template_id)
