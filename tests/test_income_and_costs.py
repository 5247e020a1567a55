from __future__ import annotations

import pytest

import deal_calc.runtime_logging as runtime_logging
from deal_calc.engine import calculate_costs, calculate_total, normalize_frequency


CUSTOM = {
    "id": "tiered",
    "name": "Tiered Subscription",
    "fields": [
        {"id": "users", "name": "Users", "type": "number"},
        {"id": "baseRate", "name": "Base Rate", "type": "currency"},
    ],
    "formula": {"type": "custom", "customCalculatorId": "subscription-tiered"},
}

COSTS = {
    "id": "costed",
    "name": "Costed",
    "fields": [{"id": "qty", "name": "Quantity", "type": "number"}],
    "formula": {"type": "simple", "expression": "qty"},
    "costFields": [
        {"id": "commission", "name": "Commission", "type": "percentage", "isPercentage": True},
        {"id": "travelCost", "name": "Travel", "type": "currency", "hasFrequency": True},
        {"id": "customCost", "name": "Other Cost", "type": "currency", "hasCustomLabel": True},
    ],
}


def test_learnership_total():
    result = calculate_total("learnership", {"learnerCount": 15, "costPerLearner": 28000})
    assert result["total"] == 420000.0
    assert result["templateId"] == "learnership"
    assert result["templateName"] == "Learnership Program"
    assert result["breakdown"]["formula"] == "learnerCount * costPerLearner"
    assert result["breakdown"]["values"]["learnerCount"] == 15


def test_field_values_override_product_defaults():
    result = calculate_total(
        "learnership",
        {"learnerCount": 10},
        product_defaults={"learnerCount": 99, "costPerLearner": 1000},
    )
    assert result["total"] == 10000.0


def test_custom_formula_uses_registered_calculator(make_registry):
    registry = make_registry({"tiered": CUSTOM})
    result = calculate_total("tiered", {"users": 100, "baseRate": 50}, registry=registry)
    assert result["total"] == pytest.approx(4250.0)
    assert result["breakdown"]["tierDiscount"] == pytest.approx(15.0)


def test_unknown_calculator_degrades_to_zero(make_registry):
    broken = dict(CUSTOM, formula={"type": "custom", "customCalculatorId": "does-not-exist"})
    registry = make_registry({"tiered": broken})
    result = calculate_total("tiered", {"users": 100, "baseRate": 50}, registry=registry)
    assert result["total"] == 0.0
    assert result["breakdown"] == {"error": "Unknown calculator: does-not-exist"}
    assert runtime_logging.read_runtime_events(event="unknown_calculator")


def test_template_without_formula_totals_zero(make_registry):
    registry = make_registry({"bare": {"id": "bare", "fields": []}})
    result = calculate_total("bare", {}, registry=registry)
    assert result["total"] == 0.0
    assert "error" in result["breakdown"]


def test_percentage_cost_is_share_of_income(make_registry):
    registry = make_registry({"costed": COSTS})
    result = calculate_costs("costed", {"commission": 10}, 420000, registry=registry)
    commission = result["costs"]["commission"]
    assert commission["type"] == "percentage"
    assert commission["percentage"] == 10.0
    assert commission["amount"] == 42000.0
    assert commission["frequency"] == "once-off"


def test_fixed_costs_frequency_and_labels(make_registry):
    registry = make_registry({"costed": COSTS})
    result = calculate_costs(
        "costed",
        {
            "travelCost": "1500.555",
            "travelCostFrequency": "Monthly",
            "customCost": 200,
            "customCostLabel": "Venue hire",
        },
        0,
        registry=registry,
    )
    travel = result["costs"]["travelCost"]
    assert travel == {"type": "fixed", "amount": 1500.56, "frequency": "monthly", "label": "Travel"}
    assert result["costs"]["customCost"]["label"] == "Venue hire"
    assert result["totalCost"] == 1700.56


def test_empty_cost_values_total_zero():
    result = calculate_costs("learnership", {}, 420000)
    assert result["totalCost"] == 0.0
    assert set(result["costs"]) == {
        "facilitatorCost",
        "commissionPercentage",
        "travelCost",
        "assessorCost",
        "moderatorCost",
        "customCost",
    }
    assert all(entry["amount"] == 0.0 for entry in result["costs"].values())


def test_total_cost_equals_sum_of_rounded_amounts(make_registry):
    registry = make_registry({"costed": COSTS})
    result = calculate_costs(
        "costed",
        {"commission": 3.333, "travelCost": 0.005, "customCost": 0.005},
        1234.56,
        registry=registry,
    )
    amounts = [entry["amount"] for entry in result["costs"].values()]
    assert result["totalCost"] == round(sum(amounts), 2)


@pytest.mark.parametrize(
    "label, tag",
    [
        ("Monthly", "monthly"),
        ("Once-off", "once-off"),
        ("With Income", "with-income"),
        ("End of Learnership", "end-of-program"),
        ("end_of_contract", "end-of-program"),
        ("once", "once-off"),
        ("", "once-off"),
        (None, "once-off"),
        ("Quarterly", "quarterly"),
    ],
)
def test_normalize_frequency(label, tag):
    assert normalize_frequency(label) == tag
