"""Local JSON stores for calculation templates and tenant configuration."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from deal_calc.defaults import DEFAULT_CALCULATION_TEMPLATES
from deal_calc.runtime_logging import append_runtime_event
from deal_calc.schema import parse_template


STORE_DIR = Path(".local_store")
TEMPLATE_STORE_FILE = STORE_DIR / "templates.json"
TENANT_CONFIG_STORE_FILE = STORE_DIR / "tenant_config.json"

_DEFAULT_STORE_DIR = Path(".local_store")
_STORAGE_ENV_VAR = "DEAL_CALC_STORAGE_ROOT"

TEMPLATE_KIND = "templates"
TENANT_CONFIG_KIND = "tenant_config"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _expand_storage_root(path_value: str | Path | None) -> Path:
    if path_value is None:
        return _DEFAULT_STORE_DIR
    text = str(path_value).strip()
    if not text:
        return _DEFAULT_STORE_DIR
    return Path(os.path.expandvars(os.path.expanduser(text)))


def configure_storage_root(path_value: str | Path | None) -> Path:
    """Configure the directory holding the template and tenant configuration stores."""

    global STORE_DIR, TEMPLATE_STORE_FILE, TENANT_CONFIG_STORE_FILE
    STORE_DIR = _expand_storage_root(path_value)
    TEMPLATE_STORE_FILE = STORE_DIR / "templates.json"
    TENANT_CONFIG_STORE_FILE = STORE_DIR / "tenant_config.json"
    return STORE_DIR


def storage_root_path() -> str:
    return str(STORE_DIR.resolve())


def storage_root_from_env() -> Path:
    return _expand_storage_root(os.getenv(_STORAGE_ENV_VAR, ""))


def _path_for(kind: str) -> Path:
    if kind == TEMPLATE_KIND:
        return TEMPLATE_STORE_FILE
    if kind == TENANT_CONFIG_KIND:
        return TENANT_CONFIG_STORE_FILE
    raise ValueError(f"Unsupported store kind: {kind}")


def _read_store(kind: str) -> dict:
    """Read a store file; raises OSError/ValueError when it cannot be used."""
    p = _path_for(kind)
    if not p.exists():
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{p.name} does not contain a JSON object.")
    return data


def _load_store(kind: str) -> dict:
    try:
        return _read_store(kind)
    except (OSError, ValueError):
        return {}


def _save_store(kind: str, data: dict) -> None:
    STORE_DIR.mkdir(parents=True, exist_ok=True)
    p = _path_for(kind)
    tmp = p.with_suffix(f"{p.suffix}.tmp")
    tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    tmp.replace(p)


# Templates.


def load_template(template_id: str) -> tuple[dict | None, str | None]:
    """Return (payload, error). A missing id is (None, None); an unreadable store is (None, error)."""
    try:
        store = _read_store(TEMPLATE_KIND)
    except (OSError, ValueError) as exc:
        return None, f"Template store unavailable: {exc}"
    payload = store.get(str(template_id))
    if payload is None:
        return None, None
    if not isinstance(payload, dict):
        return None, f"Stored template {template_id} is not an object."
    out = deepcopy(payload)
    out.setdefault("id", str(template_id))
    return out, None


def list_stored_templates() -> dict[str, dict]:
    return deepcopy(_load_store(TEMPLATE_KIND))


def save_template(template: dict, overwrite: bool = False) -> tuple[bool, str]:
    parsed, warnings = parse_template(template)
    template_id = parsed.get("id", "")
    if not template_id:
        return False, "Template id is required."
    store = _load_store(TEMPLATE_KIND)
    existing = store.get(template_id)
    if existing is not None and not overwrite:
        return False, "Template already exists."
    now = _now_iso()
    parsed["createdAt"] = (existing or {}).get("createdAt") or parsed.get("createdAt") or now
    parsed["updatedAt"] = now
    store[template_id] = parsed
    _save_store(TEMPLATE_KIND, store)
    if warnings:
        append_runtime_event(
            level="WARNING",
            event="template_schema_warning",
            message=f"Template {template_id} saved with schema warnings.",
            context={"template_id": template_id, "warnings": warnings},
        )
        return True, f"Saved with {len(warnings)} warning(s)."
    return True, "Saved."


def archive_template(template_id: str) -> bool:
    store = _load_store(TEMPLATE_KIND)
    if template_id not in store:
        return False
    store[template_id]["status"] = "archived"
    store[template_id]["updatedAt"] = _now_iso()
    _save_store(TEMPLATE_KIND, store)
    return True


def initialize_default_templates() -> int:
    """Copy default templates into the store when they are not there yet."""
    store = _load_store(TEMPLATE_KIND)
    created = 0
    for template_id, template in DEFAULT_CALCULATION_TEMPLATES.items():
        if template_id in store:
            continue
        ok, _ = save_template({**deepcopy(template), "id": template_id})
        if ok:
            created += 1
    return created


# Tenant configuration.


def _default_tenant_config(tenant_id: str) -> dict:
    return {
        "tenantId": tenant_id,
        "listOverrides": {},
        "defaultValueOverrides": {},
        "financialYear": {},
    }


def load_tenant_config(tenant_id: str | None) -> dict:
    if not tenant_id:
        return _default_tenant_config("")
    config = _default_tenant_config(str(tenant_id))
    stored = _load_store(TENANT_CONFIG_KIND).get(str(tenant_id))
    if isinstance(stored, dict):
        config.update(deepcopy(stored))
    return config


def _save_tenant_config(tenant_id: str, config: dict) -> None:
    store = _load_store(TENANT_CONFIG_KIND)
    config["tenantId"] = tenant_id
    config["updatedAt"] = _now_iso()
    store[tenant_id] = config
    _save_store(TENANT_CONFIG_KIND, store)


def save_list_override(tenant_id: str, product_id: str, list_key: str, options: list[dict]) -> tuple[bool, str]:
    if not tenant_id or not product_id or not list_key:
        return False, "Tenant ID, Product ID, and List Key are required."
    if not isinstance(options, list):
        return False, "Options must be a list."
    config = load_tenant_config(tenant_id)
    config["listOverrides"].setdefault(product_id, {})[list_key] = deepcopy(options)
    _save_tenant_config(tenant_id, config)
    return True, "Saved."


def remove_list_override(tenant_id: str, product_id: str, list_key: str) -> bool:
    config = load_tenant_config(tenant_id)
    product_lists = config["listOverrides"].get(product_id, {})
    if list_key not in product_lists:
        return False
    del product_lists[list_key]
    if not product_lists:
        config["listOverrides"].pop(product_id, None)
    _save_tenant_config(tenant_id, config)
    return True


def save_default_value_override(tenant_id: str, product_id: str, overrides: dict[str, Any]) -> tuple[bool, str]:
    if not tenant_id or not product_id:
        return False, "Tenant ID and Product ID are required."
    config = load_tenant_config(tenant_id)
    config["defaultValueOverrides"][product_id] = deepcopy(overrides)
    _save_tenant_config(tenant_id, config)
    return True, "Saved."


def save_financial_year_settings(tenant_id: str, settings: dict[str, Any]) -> tuple[bool, str]:
    if not tenant_id:
        return False, "Tenant ID is required."
    config = load_tenant_config(tenant_id)
    config["financialYear"] = {**config.get("financialYear", {}), **deepcopy(settings)}
    _save_tenant_config(tenant_id, config)
    return True, "Saved."


configure_storage_root(storage_root_from_env())
