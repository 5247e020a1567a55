from __future__ import annotations

import pytest

from deal_calc.calendar_utils import financial_year_months
from deal_calc.engine import calculate_costs, calculate_total, distribute_income, full_calculation, monthly_frame
from deal_calc.errors import TemplateNotFoundError
from deal_calc.metrics import gross_profit, round_money


FY_APRIL_2024 = {"startMonth": 3, "startYear": 2024}

LEARNERSHIP_FIELDS = {
    "dealName": "Acme NQF4",
    "learnerCount": 15,
    "costPerLearner": 28000,
    "duration": 12,
    "startDate": "2024-04-01",
    "certaintyPercentage": 100,
}


def test_scenario_learnership_total():
    assert calculate_total("learnership", {"learnerCount": 15, "costPerLearner": 28000})["total"] == 420000.0


def test_scenario_monthly_distribution():
    months = distribute_income(
        "monthly", 420000, 100, {"duration": 12, "startDate": "2024-04-01"}, FY_APRIL_2024
    )
    assert list(months.values()) == [35000.0] * 12


def test_scenario_gross_profit():
    result = gross_profit(420000, 70000)
    assert result == {"income": 420000.0, "costs": 70000.0, "grossProfit": 350000.0, "gpPercentage": 83.3}


def test_scenario_percentage_cost():
    result = calculate_costs("learnership", {"commissionPercentage": 10}, 420000)
    assert result["costs"]["commissionPercentage"]["amount"] == 42000.0


def test_scenario_financial_year_keys():
    assert financial_year_months({"startMonth": 2, "startYear": 2025}) == [
        "mar2025",
        "apr2025",
        "may2025",
        "jun2025",
        "jul2025",
        "aug2025",
        "sep2025",
        "oct2025",
        "nov2025",
        "dec2025",
        "jan2026",
        "feb2026",
    ]


@pytest.mark.parametrize("costs", [0, 100, -500, 1e9])
def test_gp_percentage_is_zero_without_income(costs):
    assert gross_profit(0, costs)["gpPercentage"] == 0.0


def test_gross_profit_rounding():
    result = gross_profit(1000.004, 333.335)
    assert result["income"] == 1000.0
    assert result["costs"] == 333.34
    assert result["grossProfit"] == 666.66
    assert result["gpPercentage"] == 66.7


def test_round_money_is_half_away_from_zero():
    assert round_money(2.675) == 2.68
    assert round_money(-2.675) == -2.68
    assert round_money(0.125, 2) == 0.13
    assert round_money(83.35, 1) == 83.4
    assert round_money(float("nan")) == 0.0
    assert round_money("x") == 0.0


def test_full_calculation_learnership():
    result = full_calculation(
        "learnership",
        LEARNERSHIP_FIELDS,
        {
            "facilitatorCost": 60000,
            "facilitatorCostFrequency": "Monthly",
            "commissionPercentage": 10,
            "commissionPercentageFrequency": "With Income",
            "travelCost": 5000,
            "assessorCost": 6000,
            "assessorCostFrequency": "End of Learnership",
        },
        FY_APRIL_2024,
    )
    assert result["templateId"] == "learnership"
    assert result["templateName"] == "Learnership Program"
    assert result["summary"] == {
        "totalIncome": 420000.0,
        "totalCosts": 113000.0,
        "grossProfit": 307000.0,
        "gpPercentage": 73.1,
    }
    assert result["costs"]["unallocated"] == {"commissionPercentage": 42000.0}

    income_monthly = result["income"]["monthly"]
    cost_monthly = result["costs"]["monthly"]
    gp_monthly = result["grossProfit"]["monthly"]
    assert list(income_monthly) == list(cost_monthly) == list(gp_monthly)
    assert income_monthly["apr2024"] == 35000.0
    assert cost_monthly["apr2024"] == 5000.0 + 5000.0
    assert cost_monthly["mar2025"] == 5000.0 + 6000.0
    assert gp_monthly["apr2024"] == 25000.0
    assert gp_monthly["may2024"] == 30000.0
    assert gp_monthly["mar2025"] == 24000.0


def test_full_calculation_weights_distribution_by_certainty():
    fields = dict(LEARNERSHIP_FIELDS, certaintyPercentage=50)
    result = full_calculation("learnership", fields, {}, FY_APRIL_2024)
    assert result["summary"]["totalIncome"] == 420000.0
    assert result["income"]["adjustedTotal"] == 210000.0
    assert set(result["income"]["monthly"].values()) == {17500.0}


def test_full_calculation_uses_product_defaults_for_distribution():
    result = full_calculation(
        "learnership",
        {"learnerCount": 10, "costPerLearner": 1200, "startDate": "2024-04-01"},
        {},
        FY_APRIL_2024,
        product_defaults={"duration": 6},
    )
    credited = [k for k, v in result["income"]["monthly"].items() if v]
    assert credited == ["apr2024", "may2024", "jun2024", "jul2024", "aug2024", "sep2024"]
    assert result["income"]["monthly"]["apr2024"] == 2000.0


def test_full_calculation_is_idempotent(fy_info, today):
    args = ("subscription", {"employeeCount": 40, "costPerEmployee": 150, "contractMonths": 24}, {"customCost": 999.99}, fy_info)
    first = full_calculation(*args, today=today)
    second = full_calculation(*args, today=today)
    assert first == second


def test_full_calculation_propagates_missing_template(fy_info):
    with pytest.raises(TemplateNotFoundError):
        full_calculation("no-such-template", {}, {}, fy_info)


def test_monthly_frame_rows(fy_info):
    result = full_calculation(
        "consulting",
        {"quantity": 10, "ratePerUnit": 1500, "startDate": "2024-07-03"},
        {"travelCost": 3000},
        fy_info,
    )
    df = monthly_frame(result)
    assert list(df.columns) == ["Month", "Income", "Costs", "Gross Profit", "GP %"]
    assert len(df) == 12
    jul = df.loc[df["Month"] == "jul2024"].iloc[0]
    assert jul["Income"] == 15000.0
    assert jul["Costs"] == 3000.0
    assert jul["Gross Profit"] == 12000.0
    assert jul["GP %"] == 80.0
    assert float(df.loc[df["Month"] == "aug2024", "GP %"].iloc[0]) == 0.0
