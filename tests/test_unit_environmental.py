import sys
import os
import pytest
from unittest.mock import patch

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from sunquote_engine.cash_flow import cross_check_result
from sunquote_engine.solar_calculator_logic import (
    calculate_bill_offset, calculate_environmental, perform_solar_calculation
)


def test_environmental_for_typical_system():
    env = calculate_environmental(8.0, 9600, 12000)
    assert env["annual_co2_offset"] == 3840
    assert env["trees_equivalent"] == 192
    assert env["grid_independence"] == 80


@pytest.mark.parametrize("production, consumption, expected", [
    (9600, 12000, 80),
    (15000, 12000, 100),  # Capped at 100%
    (9600, 0, 0),         # No consumption
    (9600, -500, 0),
    (0, 12000, 0),
    (1005, 2000, 50),     # round(50.25)
])
def test_grid_independence(production, consumption, expected):
    assert calculate_environmental(8.0, production, consumption)["grid_independence"] == expected


@pytest.mark.parametrize("production, consumption", [
    (9600, 12000), (6672, 12000), (11040, 9000), (1436, 1800), (0, 5000)
])
def test_grid_independence_equals_bill_offset(production, consumption):
    """The results page computes bill offset with its own function; both must agree."""
    env = calculate_environmental(8.0, production, consumption)
    assert env["grid_independence"] == calculate_bill_offset(production, consumption)


def test_grid_independence_does_not_depend_on_bill_offset():
    with patch("sunquote_engine.solar_calculator_logic.calculate_bill_offset", return_value=777):
        env = calculate_environmental(8.0, 9600, 12000)
    assert env["grid_independence"] == 80


def test_cross_check_flags_wrong_bill_offset():
    """A drifting bill offset figure is reported by the cash-flow cross-check."""
    result = perform_solar_calculation({"monthly_kwh": 1000, "roof_square_feet": 2000, "sun_exposure": "good", "state": "IL"})
    assert cross_check_result(result) == []
    with patch("sunquote_engine.cash_flow.calculate_bill_offset", return_value=777):
        issues = cross_check_result(result)
    assert any("Grid independence" in issue for issue in issues)


def test_trees_are_derived_from_rounded_co2():
    # 1262 kWh -> 504.8 lbs -> 505 lbs -> 25.25 trees -> 25
    env = calculate_environmental(1.0, 1262, 5000)
    assert env["annual_co2_offset"] == 505
    assert env["trees_equivalent"] == 25
