import sys
import os
import pytest
from unittest.mock import patch

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from sunquote_engine.external_data import calculate_fallback_production
from sunquote_engine.quote_pipeline import (
    build_calculation_inputs,
    prepare_quote,
    recalculate_what_if,
    resolve_electricity_rate,
    select_panel_config
)
from sunquote_engine.solar_calculator_logic import perform_solar_calculation
from sunquote_engine.utils import InputValidationError

PIPELINE = "sunquote_engine.quote_pipeline"

FORM_DATA = {
    "address": "233 S Wacker Dr, Chicago, IL 60606",
    "state": "il",
    "monthly_kwh": 1000,
    "bill_amount": 0,
    "roof_square_feet": 2000,
    "sun_exposure": "good",
    "wants_battery": False,
    "property_type": "residential",
    "timeline": "immediate",
    "financing_preference": "cash",
}

CHICAGO = {"latitude": 41.8789, "longitude": -87.6359, "state_code": "IL", "zip_code": "60606", "source": "google_places"}
UTILITY = {"zip": "60606", "average_rate": 0.15, "utility_name": "Commonwealth Edison Co", "source": "openei"}
NO_ROOF_DATA = {"source": "state_average", "panel_configs": [], "tilt": 28, "azimuth": 180, "sun_exposure": "good"}


@pytest.fixture
def upstream():
    """Patches every external data source the pipeline touches."""
    with patch(f"{PIPELINE}.resolve_address", return_value=CHICAGO) as resolve, \
         patch(f"{PIPELINE}.fetch_utility_rate", return_value=UTILITY) as utility, \
         patch(f"{PIPELINE}.fetch_building_insights", return_value=NO_ROOF_DATA) as insights, \
         patch(f"{PIPELINE}.fetch_pvwatts_production",
               side_effect=lambda lat, lon, kw, state, **kwargs: calculate_fallback_production(kw, state)) as pvwatts:
        yield {"resolve_address": resolve, "fetch_utility_rate": utility,
               "fetch_building_insights": insights, "fetch_pvwatts_production": pvwatts}


def test_build_calculation_inputs_maps_form_data():
    inputs = build_calculation_inputs(FORM_DATA)
    assert inputs["state"] == "IL"
    assert inputs["bill_amount"] is None  # 0 means "not entered"
    assert inputs["electricity_rate"] is None
    assert inputs["monthly_kwh"] == 1000
    assert inputs["wants_battery"] is False


def test_select_panel_config_picks_closest_size():
    configs = [
        {"system_size_kw": 4.0, "yearly_energy_kwh": 5000},
        {"system_size_kw": 8.4, "yearly_energy_kwh": 10100},
        {"system_size_kw": 12.0, "yearly_energy_kwh": 14000},
        {"system_size_kw": 8.0, "yearly_energy_kwh": 0},  # Unusable
    ]
    assert select_panel_config(configs, 8.0)["system_size_kw"] == 8.4
    assert select_panel_config([], 8.0) is None


def test_resolve_electricity_rate_order(upstream):
    assert resolve_electricity_rate({"electricity_rate": 0.2, "state": "IL"}, "60606") == (0.2, {"source": "user"})
    assert resolve_electricity_rate({"electricity_rate": None, "state": "IL"}, "60606") == (0.15, UTILITY)
    rate, info = resolve_electricity_rate({"electricity_rate": None, "state": "HI"}, None)
    assert info == {"source": "state_average"}
    assert rate > 0.2


def test_prepare_quote_without_measured_data_keeps_internal_numbers(upstream):
    result = prepare_quote(FORM_DATA)
    internal = perform_solar_calculation({**build_calculation_inputs(FORM_DATA), "electricity_rate": 0.15})

    assert result["production_source"] == "internal"
    assert result["system_size_kw"] == internal["system_size_kw"]
    assert result["estimated_annual_production"] == internal["estimated_annual_production"]
    assert len(result["monthly_production_profile"]) == 12
    assert result["location"] == CHICAGO
    assert result["utility"] == UTILITY
    assert result["consistency_issues"] == []
    assert [tier["name"] for tier in result["system_design_options"]] == ["Conservative", "Standard", "Aggressive"]
    assert result["best_value"] is not None
    assert result["lead_score"] == 50 + 15 + 10 + (10 if internal["system_size_kw"] > 5 else 0) + (10 if internal["system_size_kw"] > 8 else 0)
    upstream["fetch_utility_rate"].assert_called_once_with("60606", "IL")


def test_prepare_quote_uses_google_solar_layout(upstream):
    upstream["fetch_building_insights"].return_value = {
        **NO_ROOF_DATA,
        "source": "google_solar_api",
        "panel_configs": [
            {"panels_count": 10, "system_size_kw": 4.0, "yearly_energy_kwh": 4800},
            {"panels_count": 20, "system_size_kw": 8.0, "yearly_energy_kwh": 10400},
        ],
    }
    result = prepare_quote(FORM_DATA)

    assert result["production_source"] == "google_solar"
    assert result["confidence"] == "measured"
    assert result["system_size_kw"] == 8.0
    assert result["estimated_annual_production"] == 10400
    assert result["roof_data"]["source"] == "google_solar_api"
    assert result["consistency_issues"] == []
    upstream["fetch_pvwatts_production"].assert_not_called()


def test_prepare_quote_uses_pvwatts_when_no_layout(upstream):
    monthly = [700, 750, 900, 1000, 1050, 1100, 1100, 1050, 950, 850, 700, 650]
    upstream["fetch_pvwatts_production"].side_effect = None
    upstream["fetch_pvwatts_production"].return_value = {
        "source": "nrel", "annual_production": sum(monthly), "monthly_production": monthly,
    }
    result = prepare_quote(FORM_DATA)

    assert result["production_source"] == "nrel"
    assert result["estimated_annual_production"] == sum(monthly)
    assert result["monthly_production_profile"] == monthly
    kwargs = upstream["fetch_pvwatts_production"].call_args.kwargs
    assert kwargs["tilt"] == 28
    assert kwargs["azimuth"] == 180


def test_prepare_quote_without_location_skips_roof_lookups(upstream):
    upstream["resolve_address"].return_value = None
    result = prepare_quote(FORM_DATA)
    assert result["location"] is None
    assert result["roof_data"] is None
    assert result["production_source"] == "internal"
    upstream["fetch_building_insights"].assert_not_called()


def test_prepare_quote_prefers_user_rate(upstream):
    result = prepare_quote({**FORM_DATA, "electricity_rate": 0.21})
    assert result["electricity_rate"] == 0.21
    assert result["utility"] == {"source": "user"}
    upstream["fetch_utility_rate"].assert_not_called()


def test_prepare_quote_rejects_invalid_input(upstream):
    with pytest.raises(InputValidationError) as exc_info:
        prepare_quote({**FORM_DATA, "state": "ZZ", "sun_exposure": "cloudy"})
    assert len(exc_info.value.to_response()["details"]) == 2
    upstream["resolve_address"].assert_not_called()


def test_recalculate_what_if():
    inputs = build_calculation_inputs(FORM_DATA)
    base = perform_solar_calculation(inputs)
    bigger = recalculate_what_if(inputs, monthly_kwh=1500)
    assert bigger["system_size_kw"] > base["system_size_kw"]
    assert inputs["monthly_kwh"] == 1000  # Original inputs untouched
    with pytest.raises(InputValidationError):
        recalculate_what_if(inputs, roof_square_feet=-1)
