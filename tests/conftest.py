from __future__ import annotations

from copy import deepcopy
from pathlib import Path

import pandas as pd
import pytest

import deal_calc.persistence as persistence
import deal_calc.runtime_logging as runtime_logging
from deal_calc.registry import TemplateRegistry


class DictTemplateStore:
    """In-memory stand-in for the template store used by registry tests."""

    def __init__(self, templates: dict | None = None, error: str | None = None):
        self.templates = deepcopy(templates or {})
        self.error = error
        self.calls: list[str] = []

    def load_template(self, template_id: str):
        self.calls.append(template_id)
        if self.error:
            return None, self.error
        payload = self.templates.get(template_id)
        if payload is None:
            return None, None
        return deepcopy(payload), None

    def list_stored_templates(self) -> dict:
        return deepcopy(self.templates)


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch) -> Path:
    root = Path(tmp_path)
    monkeypatch.setattr(persistence, "STORE_DIR", root)
    monkeypatch.setattr(persistence, "TEMPLATE_STORE_FILE", root / "templates.json")
    monkeypatch.setattr(persistence, "TENANT_CONFIG_STORE_FILE", root / "tenant_config.json")
    monkeypatch.setattr(runtime_logging, "LOG_DIR", root)
    monkeypatch.setattr(runtime_logging, "RUNTIME_EVENTS_LOG_FILE", root / "runtime_events.jsonl")
    return root


@pytest.fixture
def make_registry():
    def _make(templates: dict | None = None, fallback: dict | None = None, error: str | None = None, **kwargs):
        store = DictTemplateStore(templates, error=error)
        return TemplateRegistry(store=store, fallback=fallback if fallback is not None else {}, **kwargs)

    return _make


@pytest.fixture
def fy_info() -> dict:
    # Financial year March 2024 to February 2025.
    return {"startMonth": 2, "startYear": 2024}


@pytest.fixture
def today() -> pd.Timestamp:
    return pd.Timestamp("2024-06-15")
