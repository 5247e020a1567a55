"""Tenant and product configuration lookups: option lists, default values, financial year."""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Mapping

import deal_calc.persistence as persistence
from deal_calc.calendar_utils import financial_year_info
from deal_calc.registry import TemplateRegistry, default_registry


def _tenant_config(tenant_id: str | None, store: Any) -> dict:
    if not tenant_id:
        return {}
    store = store if store is not None else persistence
    return store.load_tenant_config(tenant_id)


def _product_list(product_context: Mapping[str, Any], list_key: str) -> list[dict] | None:
    entry = (product_context.get("customLists") or {}).get(list_key)
    if not isinstance(entry, Mapping):
        return None
    for key in ("defaultOptions", "options"):
        if entry.get(key):
            return deepcopy(list(entry[key]))
    return None


def get_effective_option_list(
    tenant_id: str | None,
    product_id: str | None,
    list_key: str,
    product_context: Mapping[str, Any] | None = None,
    registry: TemplateRegistry | None = None,
    store: Any = None,
) -> list[dict]:
    """Options for a select field.

    Resolution order: tenant override for the product, the product's own
    custom list, the template's ``defaultCustomLists``, the template's
    ``systemLists``, then an empty list. A tenant override only counts when it
    has at least one option.
    """
    product_context = product_context or {}
    product_id = product_id or product_context.get("id")

    overrides = _tenant_config(tenant_id, store).get("listOverrides", {})
    tenant_list = (overrides.get(product_id) or {}).get(list_key) if product_id else None
    if tenant_list:
        return deepcopy(list(tenant_list))

    product_list = _product_list(product_context, list_key)
    if product_list is not None:
        return product_list

    template_id = product_context.get("calculationTemplateId")
    if template_id:
        registry = registry if registry is not None else default_registry()
        template = registry.get_template(template_id)
        if template.default_custom_lists.get(list_key):
            return deepcopy(template.default_custom_lists[list_key])
        if template.system_lists.get(list_key):
            return deepcopy(template.system_lists[list_key])
    return []


def get_effective_default_values(
    tenant_id: str | None,
    product_id: str | None,
    product_context: Mapping[str, Any] | None = None,
    registry: TemplateRegistry | None = None,
    store: Any = None,
) -> dict:
    """Template field defaults < product ``defaultValues`` < tenant overrides."""
    product_context = product_context or {}
    product_id = product_id or product_context.get("id")
    defaults: dict = {}

    template_id = product_context.get("calculationTemplateId")
    if template_id:
        registry = registry if registry is not None else default_registry()
        for f in registry.get_template(template_id).fields:
            if f.default is not None:
                defaults[f.id] = deepcopy(f.default)

    defaults.update(deepcopy(dict(product_context.get("defaultValues") or {})))

    if product_id:
        overrides = _tenant_config(tenant_id, store).get("defaultValueOverrides", {})
        defaults.update(deepcopy(dict(overrides.get(product_id) or {})))
    return defaults


def get_financial_year_info(tenant_id: str | None, today: Any = None, store: Any = None) -> dict:
    settings = _tenant_config(tenant_id, store).get("financialYear") or {}
    return financial_year_info(settings, today)
