import sys
import os
import pytest

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from sunquote_engine.solar_calculator_logic import calculate_system_cost
from sunquote_engine.system_design import (
    SYSTEM_DESIGN_TIERS,
    format_system_option,
    generate_system_design_options,
    get_best_value_option
)


@pytest.fixture
def standard_household_options():
    """12,000 kWh/yr household, average sun, no roof limit."""
    return generate_system_design_options(12000, 1.0)


def test_three_tiers_in_order(standard_household_options):
    assert [option["name"] for option in standard_household_options] == ["Conservative", "Standard", "Aggressive"]
    assert [tier[1] for tier in SYSTEM_DESIGN_TIERS] == [70, 100, 130]


def test_tier_sizes_follow_coverage(standard_household_options):
    sizes = [option["system_size_kw"] for option in standard_household_options]
    assert sizes == [7.0, 10.0, 13.0]
    assert [option["percentage_of_consumption"] for option in standard_household_options] == [70, 100, 130]


def test_tier_costs_use_calculator_pricing(standard_household_options):
    for option in standard_household_options:
        assert option["system_cost_usd"] == round(calculate_system_cost(option["system_size_kw"]))
        assert option["estimated_annual_production"] == round(option["system_size_kw"] * 1200)


def test_roi_grows_and_payback_shrinks_with_size(standard_household_options):
    """Fixed install overhead makes larger systems cheaper per kW."""
    conservative, standard, aggressive = standard_household_options
    assert conservative["roi_25_year"] < standard["roi_25_year"] < aggressive["roi_25_year"]
    assert conservative["payback_years"] > standard["payback_years"] > aggressive["payback_years"]


def test_tiers_are_clamped_to_roof():
    # 1,000 sq ft roof fits 11.11 kW
    options = generate_system_design_options(12000, 1.0, roof_sqft=1000)
    assert [option["system_size_kw"] for option in options] == [7.0, 10.0, 11.1]


def test_tiers_scale_with_sun_factor():
    shaded = generate_system_design_options(12000, 0.70)
    sunny = generate_system_design_options(12000, 1.15)
    assert shaded[1]["system_size_kw"] > sunny[1]["system_size_kw"]


def test_tier_incentives_use_state_lookup():
    options = generate_system_design_options(12000, 1.0, state="IL")
    assert all(option["incentive_benefit"] == 10500 for option in options)
    assert all(option["incentive_benefit"] == 0 for option in generate_system_design_options(12000, 1.0))


def test_zero_consumption_produces_empty_tiers():
    options = generate_system_design_options(0, 1.0)
    for option in options:
        assert option["system_size_kw"] == 0.0
        assert option["percentage_of_consumption"] == 0
        assert option["payback_years"] is None


def test_best_value_prefers_highest_roi_per_payback_year(standard_household_options):
    best = get_best_value_option(standard_household_options)
    assert best["option"]["name"] == "Aggressive"
    assert "Best ROI" in best["reason"]


def test_best_value_handles_missing_payback():
    options = [
        {"name": "A", "roi_25_year": 40, "payback_years": None},
        {"name": "B", "roi_25_year": 30, "payback_years": 12.0},
    ]
    assert get_best_value_option(options)["option"]["name"] == "B"


def test_format_system_option():
    option = {"name": "Standard", "system_size_kw": 10.0, "percentage_of_consumption": 100}
    assert format_system_option(option) == "Standard (10.0kW) - 100% offset"
