import logging
from sunquote_engine.cash_flow import cross_check_result
from sunquote_engine.external_data import (
    fetch_building_insights, fetch_pvwatts_production, fetch_utility_rate, resolve_address
)
from sunquote_engine.solar_calculator_logic import (
    apply_production_override, calculate_lead_score, perform_solar_calculation
)
from sunquote_engine.system_design import generate_system_design_options, get_best_value_option
from sunquote_engine.utils import (
    extract_zip_code, get_default_utility_rate, normalize_state_code, require_valid_input
)

logger = logging.getLogger(__name__)


def build_calculation_inputs(form_data):
    """Maps the intake wizard's form_data onto the calculator's input dict."""
    return {
        "address": form_data.get("address", ""),
        "state": normalize_state_code(form_data.get("state")),
        "monthly_kwh": form_data.get("monthly_kwh") or None,
        "bill_amount": form_data.get("bill_amount") or None,
        "roof_square_feet": form_data.get("roof_square_feet"),
        "sun_exposure": form_data.get("sun_exposure"),
        "wants_battery": bool(form_data.get("wants_battery", False)),
        "property_type": form_data.get("property_type", "residential"),
        "electricity_rate": form_data.get("electricity_rate") or None,
        "timeline": form_data.get("timeline"),
        "financing_preference": form_data.get("financing_preference"),
    }


def select_panel_config(panel_configs, target_kw):
    """The roof layout whose size is closest to the internally sized system."""
    usable = [config for config in panel_configs if config.get("system_size_kw") and config.get("yearly_energy_kwh")]
    if not usable:
        return None
    return min(usable, key=lambda config: abs(config["system_size_kw"] - target_kw))


def resolve_electricity_rate(inputs, zip_code):
    """User-entered rate, else the utility rate for the ZIP, else the state average."""
    if inputs.get("electricity_rate"):
        return float(inputs["electricity_rate"]), {"source": "user"}
    if zip_code:
        utility = fetch_utility_rate(zip_code, inputs["state"])
        return utility["average_rate"], utility
    return get_default_utility_rate(inputs["state"]), {"source": "state_average"}


def _apply_external_production(inputs, internal_result, location):
    """
    Google Solar roof layout first, PVWatts second. Either one replaces the internal
    production figure; with neither the internal result stands.
    """
    latitude, longitude = location["latitude"], location["longitude"]
    insights = fetch_building_insights(latitude, longitude, inputs["state"])
    config = select_panel_config(insights.get("panel_configs", []), internal_result["system_size_kw"])
    if config:
        result = apply_production_override(inputs, config["system_size_kw"], config["yearly_energy_kwh"], "google_solar")
        return result, insights

    production = fetch_pvwatts_production(
        latitude, longitude, internal_result["system_size_kw"], inputs["state"],
        tilt=insights.get("tilt"), azimuth=insights.get("azimuth")
    )
    if production["source"] == "nrel":
        result = apply_production_override(
            inputs, internal_result["system_size_kw"], production["annual_production"], "nrel"
        )
        result["monthly_production_profile"] = production["monthly_production"]
        return result, insights

    internal_result["monthly_production_profile"] = production["monthly_production"]
    return internal_result, insights


def prepare_quote(form_data):
    """
    Full quote for the results screen.

    Raises InputValidationError for malformed input. Upstream data problems never
    raise: each source falls back to its deterministic estimate.
    """
    inputs = require_valid_input(build_calculation_inputs(form_data))
    zip_code = form_data.get("zip_code") or extract_zip_code(inputs["address"])
    inputs["electricity_rate"], utility = resolve_electricity_rate(inputs, zip_code)

    result = perform_solar_calculation(inputs)
    roof_data = None
    location = resolve_address(inputs["address"]) if inputs["address"] else None
    if location:
        result, roof_data = _apply_external_production(inputs, result, location)
    else:
        logger.info("No location resolved for the address; using the internal production estimate")

    result["location"] = location
    result["roof_data"] = roof_data
    result["utility"] = utility
    result["system_design_options"] = generate_system_design_options(
        result["annual_consumption"], result["sun_factor"], inputs["state"],
        inputs["roof_square_feet"], inputs["electricity_rate"]
    )
    result["best_value"] = get_best_value_option(result["system_design_options"])
    result["consistency_issues"] = cross_check_result(result)
    result["lead_score"] = calculate_lead_score(
        result["system_size_kw"], inputs.get("financing_preference"), inputs.get("timeline")
    )
    result["inputs"] = inputs
    return result


def recalculate_what_if(inputs, **changes):
    """Internal-formula result for the same inputs with a few values changed."""
    what_if_inputs = {**inputs, **changes}
    return perform_solar_calculation(require_valid_input(what_if_inputs))
