import copy
import sys
import os
import pytest

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from sunquote_engine.cash_flow import (
    build_result_cash_flow,
    chart_paybacks,
    cross_check_result,
    simulate_cash_flow
)
from sunquote_engine.solar_calculator_logic import apply_production_override, perform_solar_calculation
from sunquote_engine.system_design import generate_system_design_options

# (name, inputs, google override (kW, annual kWh) or None)
SCENARIOS = [
    ("Small house, low bill, small roof (IL)",
     {"bill_amount": 150, "roof_square_feet": 800, "sun_exposure": "good", "state": "IL"}, None),
    ("Medium house, $200 bill (CO)",
     {"bill_amount": 200, "roof_square_feet": 1800, "sun_exposure": "excellent", "state": "CO"}, None),
    ("Large bill, small roof, measured roof data (IL)",
     {"bill_amount": 500, "roof_square_feet": 603, "sun_exposure": "excellent", "state": "IL"}, (8, 9576)),
    ("Commercial building, huge roof, measured roof data (NY)",
     {"bill_amount": 500, "roof_square_feet": 71020, "sun_exposure": "excellent", "state": "NY"}, (24.84, 32280)),
    ("Tiny system, $80 bill (AZ)",
     {"bill_amount": 80, "roof_square_feet": 600, "sun_exposure": "excellent", "state": "AZ"}, None),
    ("Median US home, kWh-based (TX)",
     {"monthly_kwh": 900, "bill_amount": 0, "roof_square_feet": 1500, "sun_exposure": "good", "state": "TX"}, None),
    ("Poor sun area (WA)",
     {"bill_amount": 200, "roof_square_feet": 2000, "sun_exposure": "poor", "state": "WA"}, None),
]


def _scenario_result(inputs, override):
    inputs = {**inputs, "wants_battery": False}
    if override:
        return apply_production_override(inputs, override[0], override[1])
    return perform_solar_calculation(inputs)


@pytest.mark.parametrize("name, inputs, override", SCENARIOS, ids=[scenario[0] for scenario in SCENARIOS])
def test_cards_and_chart_agree(name, inputs, override):
    """Financing cards, the cash-flow chart and the bill offset view tell the same story."""
    result = _scenario_result(inputs, override)
    assert cross_check_result(result) == []


@pytest.mark.parametrize("name, inputs, override", SCENARIOS, ids=[scenario[0] for scenario in SCENARIOS])
def test_system_size_and_tiers_respect_roof(name, inputs, override):
    if override:
        pytest.skip("Measured systems are sized from roof imagery")
    result = _scenario_result(inputs, override)
    roof_max = inputs["roof_square_feet"] * 0.6 / 54
    assert result["system_size_kw"] <= roof_max + 0.1
    tiers = generate_system_design_options(result["annual_consumption"], result["sun_factor"],
                                           inputs["state"], inputs["roof_square_feet"])
    sizes = [tier["system_size_kw"] for tier in tiers]
    assert all(size <= roof_max + 0.1 for size in sizes)
    assert sizes == sorted(sizes)


def test_simulate_cash_flow_shape_and_columns():
    df = simulate_cash_flow(27000, 9600, 164.07, 2700, 74.25)
    assert list(df.index) == list(range(1, 26))
    assert df.index.name == "Year"
    assert list(df.columns) == [
        "Savings ($)", "Loan Payment ($)", "Lease Payment ($)", "Cash Cumulative ($)",
        "Loan Net ($)", "Loan Cumulative ($)", "Lease Net ($)", "Lease Cumulative ($)",
    ]


def test_lease_payments_stop_after_term():
    df = simulate_cash_flow(27000, 9600, 164.07, 2700, 74.25)
    assert df.loc[20, "Lease Payment ($)"] == pytest.approx(74.25 * 12)
    assert df.loc[21, "Lease Payment ($)"] == 0.0
    assert df.loc[25, "Loan Payment ($)"] == pytest.approx(164.07 * 12)


def test_cumulative_columns_start_from_upfront_outlay():
    df = simulate_cash_flow(27000, 9600, 164.07, 2700, 74.25)
    assert df.loc[1, "Cash Cumulative ($)"] == pytest.approx(-27000 + df.loc[1, "Savings ($)"])
    assert df.loc[1, "Loan Cumulative ($)"] == pytest.approx(-2700 + df.loc[1, "Loan Net ($)"])
    assert df.loc[1, "Lease Cumulative ($)"] == pytest.approx(df.loc[1, "Lease Net ($)"])


def test_chart_paybacks_report_zero_without_crossing():
    """A system that never pays back inside 25 years has no crossing on the chart."""
    df = simulate_cash_flow(500000, 1000, 0.0, 0.0, 0.0)
    paybacks = chart_paybacks(df, 500000, 0.0)
    assert paybacks["cash_payback"] == 0.0
    assert paybacks["cash_25_year"] < 0


def test_chart_cash_payback_matches_card_exactly_when_production_is_whole():
    result = perform_solar_calculation({"monthly_kwh": 1000, "roof_square_feet": 2000, "sun_exposure": "good", "state": "IL"})
    cash = next(card for card in result["financing"] if card["type"] == "cash")
    loan = next(card for card in result["financing"] if card["type"] == "loan")
    paybacks = chart_paybacks(build_result_cash_flow(result), result["system_cost"], loan["down_payment"])
    assert paybacks["cash_payback"] == pytest.approx(cash["payoff_years"])


def test_cross_check_flags_tampered_cards():
    result = perform_solar_calculation({"monthly_kwh": 1000, "roof_square_feet": 2000, "sun_exposure": "good", "state": "IL"})
    tampered = copy.deepcopy(result)
    cash = next(card for card in tampered["financing"] if card["type"] == "cash")
    cash["payoff_years"] = cash["payoff_years"] * 1.5
    lease = next(card for card in tampered["financing"] if card["type"] == "lease")
    lease["down_payment"] = 500.0
    tampered["environmental"]["grid_independence"] = 95

    issues = cross_check_result(tampered)
    assert len(issues) == 3
    assert any("Cash payback" in issue for issue in issues)
    assert any("Lease down payment" in issue for issue in issues)
    assert any("Grid independence" in issue for issue in issues)
