from __future__ import annotations

import json
from pathlib import Path

import deal_calc.persistence as persistence
import deal_calc.runtime_logging as runtime_logging
from deal_calc.defaults import DEFAULT_CALCULATION_TEMPLATES
from deal_calc.registry import TemplateRegistry
from deal_calc.schema import parse_template, template_from_dict


WORKSHOP = {
    "id": "workshop",
    "name": "Workshop",
    "fields": [
        {"id": "seats", "name": "Seats", "type": "number", "required": "yes", "validation": {"min": "1"}},
        {"id": "price", "name": "Price", "type": "currency"},
    ],
    "costFields": [{"id": "venueCost", "name": "Venue", "type": "currency", "hasFrequency": True}],
    "formula": {"type": "simple", "expression": "seats * price"},
    "distributionType": "once-off",
}


def test_parse_template_keeps_clean_payload_without_warnings():
    parsed, warnings = parse_template(WORKSHOP)
    assert warnings == []
    assert parsed["fields"][0]["required"] is True
    assert parsed["fields"][0]["validation"] == {"min": 1.0}
    assert parsed["costFields"][0]["type"] == "currency"
    assert parsed["status"] == "active"
    assert "systemLists" not in parsed


def test_parse_template_drops_bad_entries_with_warnings():
    raw = dict(
        WORKSHOP,
        status="retired",
        distributionType="weekly",
        colour="blue",
        fields=[
            {"id": "seats", "name": "Seats", "type": "number"},
            {"id": "seats", "name": "Seats again", "type": "number"},
            {"id": "2bad", "name": "Bad", "type": "number"},
            {"id": "when", "name": "When", "type": "datetime"},
            {"id": "level", "name": "Level", "type": "select"},
            "not-a-field",
        ],
        formula={"type": "script", "expression": "seats"},
    )
    parsed, warnings = parse_template(raw)
    assert [f["id"] for f in parsed["fields"]] == ["seats", "level"]
    assert parsed["status"] == "active"
    assert parsed["distributionType"] == "monthly"
    assert "formula" not in parsed
    joined = " ".join(warnings)
    assert "duplicated" in joined
    assert "'2bad'" in joined
    assert "'datetime'" in joined
    assert "without a listKey" in joined
    assert "colour" in joined
    assert "'script'" in joined


def test_parse_template_rejects_non_object():
    assert parse_template(["x"]) == ({}, ["Template payload is not an object."])


def test_template_from_dict_builds_value_objects():
    parsed, _ = parse_template(WORKSHOP)
    template = template_from_dict(parsed)
    assert template.field_ids == ["seats", "price"]
    assert template.field_by_id("seats").validation == {"min": 1.0}
    assert template.field_by_id("missing") is None
    assert template.cost_fields[0].has_frequency is True
    assert template.lineage == ("workshop",)


def test_save_load_and_duplicate_guard():
    ok, msg = persistence.save_template(WORKSHOP)
    assert (ok, msg) == (True, "Saved.")
    payload, error = persistence.load_template("workshop")
    assert error is None
    assert payload["name"] == "Workshop"
    assert payload["createdAt"] == payload["updatedAt"]

    ok, msg = persistence.save_template(dict(WORKSHOP, name="Again"))
    assert (ok, msg) == (False, "Template already exists.")

    ok, _ = persistence.save_template(dict(WORKSHOP, name="Renamed"), overwrite=True)
    assert ok
    payload, _ = persistence.load_template("workshop")
    assert payload["name"] == "Renamed"
    assert persistence.load_template("nope") == (None, None)


def test_save_requires_an_id():
    ok, msg = persistence.save_template({"name": "Nameless"})
    assert not ok
    assert msg == "Template id is required."


def test_save_with_warnings_is_logged():
    ok, msg = persistence.save_template(dict(WORKSHOP, colour="blue"))
    assert ok
    assert msg == "Saved with 1 warning(s)."
    events = runtime_logging.read_runtime_events(event="template_schema_warning")
    assert events[0]["context"]["template_id"] == "workshop"


def test_archive_template():
    persistence.save_template(WORKSHOP)
    assert persistence.archive_template("workshop") is True
    assert persistence.archive_template("nope") is False
    assert persistence.load_template("workshop")[0]["status"] == "archived"


def test_initialize_default_templates_is_idempotent():
    assert persistence.initialize_default_templates() == len(DEFAULT_CALCULATION_TEMPLATES)
    assert persistence.initialize_default_templates() == 0
    stored = persistence.list_stored_templates()
    assert set(stored) == set(DEFAULT_CALCULATION_TEMPLATES)
    assert stored["compliance"]["inheritsFrom"] == "once-off-training"
    assert "fields" not in stored["compliance"]


def test_corrupt_store_reports_error_and_registry_falls_back(isolated_storage):
    (isolated_storage / "templates.json").write_text("{not json", encoding="utf-8")
    payload, error = persistence.load_template("learnership")
    assert payload is None
    assert error.startswith("Template store unavailable")
    assert persistence.list_stored_templates() == {}

    template = TemplateRegistry().get_template("learnership")
    assert template.formula.expression == "learnerCount * costPerLearner"
    assert runtime_logging.read_runtime_events(event="template_store_error")


def test_tenant_config_round_trip(isolated_storage):
    options = [{"id": "a", "name": "A", "value": "a"}]
    assert persistence.save_list_override("t1", "p1", "fundingTypes", options) == (True, "Saved.")
    assert persistence.save_default_value_override("t1", "p1", {"duration": 6})[0]
    assert persistence.save_financial_year_settings("t1", {"financialYearStart": "July"})[0]

    config = persistence.load_tenant_config("t1")
    assert config["tenantId"] == "t1"
    assert config["listOverrides"] == {"p1": {"fundingTypes": options}}
    assert config["defaultValueOverrides"] == {"p1": {"duration": 6}}
    assert config["financialYear"] == {"financialYearStart": "July"}

    raw = json.loads((isolated_storage / "tenant_config.json").read_text(encoding="utf-8"))
    assert "updatedAt" in raw["t1"]

    assert persistence.remove_list_override("t1", "p1", "fundingTypes") is True
    assert persistence.remove_list_override("t1", "p1", "fundingTypes") is False
    assert persistence.load_tenant_config("t1")["listOverrides"] == {}


def test_tenant_config_validation_and_defaults():
    assert persistence.save_list_override("", "p1", "k", []) == (
        False,
        "Tenant ID, Product ID, and List Key are required.",
    )
    assert persistence.save_list_override("t1", "p1", "k", "nope") == (False, "Options must be a list.")
    assert persistence.save_default_value_override("t1", "", {}) == (False, "Tenant ID and Product ID are required.")
    assert persistence.save_financial_year_settings("", {}) == (False, "Tenant ID is required.")
    assert persistence.load_tenant_config("fresh") == {
        "tenantId": "fresh",
        "listOverrides": {},
        "defaultValueOverrides": {},
        "financialYear": {},
    }


def test_configure_storage_root_moves_both_stores(tmp_path, monkeypatch):
    monkeypatch.setattr(persistence, "STORE_DIR", persistence.STORE_DIR)
    monkeypatch.setattr(persistence, "TEMPLATE_STORE_FILE", persistence.TEMPLATE_STORE_FILE)
    monkeypatch.setattr(persistence, "TENANT_CONFIG_STORE_FILE", persistence.TENANT_CONFIG_STORE_FILE)
    root = persistence.configure_storage_root(tmp_path / "nested")
    assert persistence.TEMPLATE_STORE_FILE == root / "templates.json"
    assert persistence.TENANT_CONFIG_STORE_FILE == root / "tenant_config.json"
    assert persistence.configure_storage_root("  ") == Path(".local_store")
