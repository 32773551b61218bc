import copy
import logging
from datetime import date
from sunquote_engine.incentive_definitions import INCENTIVES_DATABASE, get_utility_name
from sunquote_engine.utils import (
    ALL_STATE_CODES, AVG_PRODUCTION_PER_KW, INCENTIVE_LIFETIME_YEARS,
    SUPPORTED_REGION_NAMES, SYSTEM_COST_PER_WATT, FIXED_INSTALL_OVERHEAD,
    normalize_state_code
)

logger = logging.getLogger(__name__)


def calculate_incentive_benefit(incentive, system_size_kw, system_cost):
    """
    Dollar value of one incentive record for a given system.
    The unit alone decides how `amount` is read; the result is clamped to `max_amount`.
    """
    unit = incentive["unit"]
    amount = incentive["amount"]

    if unit == "dollars":
        benefit = amount
    elif unit == "$/watt":
        benefit = amount * system_size_kw * 1000
    elif unit == "$/kWh":
        benefit = amount * system_size_kw * AVG_PRODUCTION_PER_KW * INCENTIVE_LIFETIME_YEARS
    elif unit == "percentage":
        benefit = (amount / 100) * system_cost
    else:
        logger.warning("Unknown incentive unit '%s' on %s; valuing at $0", unit, incentive.get("id"))
        benefit = 0

    if incentive.get("max_amount") is not None:
        benefit = min(benefit, incentive["max_amount"])
    return max(0, benefit)


def is_incentive_applicable(incentive, system_size_kw, property_type, as_of):
    if property_type not in incentive["eligible_property_types"]:
        return False
    if incentive.get("min_system_size") is not None and system_size_kw < incentive["min_system_size"]:
        return False
    if incentive.get("max_system_size") is not None and system_size_kw > incentive["max_system_size"]:
        return False
    if incentive.get("start_date") and as_of < incentive["start_date"]:
        return False
    if incentive.get("end_date") and as_of > incentive["end_date"]:
        return False
    return bool(incentive.get("is_active"))


def lookup_incentives(state, system_size_kw, system_cost, property_type="residential", as_of=None):
    """
    Finds every applicable incentive for a system in `state` and values each one.

    Unknown states are not an error: they return an empty, zero-benefit result.
    `as_of` defaults to today and is compared against each record's start/end date.
    """
    state_code = normalize_state_code(state)
    as_of = as_of or date.today()

    applicable = []
    for incentive in INCENTIVES_DATABASE.get(state_code, []):
        if not is_incentive_applicable(incentive, system_size_kw, property_type, as_of):
            continue
        record = copy.deepcopy(incentive)
        record["utility"] = get_utility_name(incentive.get("utility_id"))
        record["estimated_benefit"] = calculate_incentive_benefit(incentive, system_size_kw, system_cost)
        applicable.append(record)

    total = sum(item["estimated_benefit"] for item in applicable)

    return {
        "state_code": state_code,
        "state_name": applicable[0]["state"] if applicable else SUPPORTED_REGION_NAMES.get(state_code, state),
        "incentives": applicable,
        "total_estimated_benefit": round(total),
        "has_utility_programs": any(item.get("utility_id") for item in applicable),
        "has_tax_exemptions": any(item["type"] == "tax-exemption" for item in applicable),
    }


def get_incentive_summary(state, system_size_kw, system_cost, property_type="residential", as_of=None):
    """
    Splits the lookup total into display buckets. The buckets always add back up to the lookup total.
    """
    result = lookup_incentives(state, system_size_kw, system_cost, property_type, as_of)

    buckets = {
        "utility_rebates": 0.0,
        "state_tax_benefits": 0.0,
        "sales_tax_exemption": 0.0,
        "other_incentives": 0.0,
    }
    for incentive in result["incentives"]:
        benefit = incentive["estimated_benefit"]
        if incentive["type"] == "rebate" and incentive.get("utility_id"):
            buckets["utility_rebates"] += benefit
        elif incentive["type"] == "rebate":
            buckets["state_tax_benefits"] += benefit
        elif incentive["type"] == "tax-exemption":
            buckets["state_tax_benefits"] += benefit
        elif incentive["type"] == "sales-tax":
            buckets["sales_tax_exemption"] += benefit
        else:
            buckets["other_incentives"] += benefit

    summary = {key: round(value) for key, value in buckets.items()}
    summary["total_first_year_benefit"] = result["total_estimated_benefit"]
    summary["incentive_count"] = len(result["incentives"])
    summary["state_code"] = result["state_code"]
    return summary


def has_incentives(state):
    return len(INCENTIVES_DATABASE.get(normalize_state_code(state), [])) > 0


def get_incentives_by_state(state):
    return copy.deepcopy(INCENTIVES_DATABASE.get(normalize_state_code(state), []))


def compare_state_incentives(system_size_kw, system_cost, property_type="residential", as_of=None):
    """Runs the lookup for all 50 states and returns {state_code: total_estimated_benefit}."""
    return {
        state_code: lookup_incentives(state_code, system_size_kw, system_cost, property_type, as_of)["total_estimated_benefit"]
        for state_code in ALL_STATE_CODES
    }


def get_top_incentive_states(limit=10, system_size_kw=8.0, system_cost=None, as_of=None):
    """
    Ranks states by total benefit for a reference system, highest first.
    Computed from the catalog on every call; states with no benefit are left out.
    """
    if system_cost is None:
        system_cost = FIXED_INSTALL_OVERHEAD + system_size_kw * 1000 * SYSTEM_COST_PER_WATT
    comparison = compare_state_incentives(system_size_kw, system_cost, as_of=as_of)
    ranked = sorted(
        ((state_code, benefit) for state_code, benefit in comparison.items() if benefit > 0),
        key=lambda item: (-item[1], item[0])
    )
    return [
        {"state_code": state_code, "state_name": SUPPORTED_REGION_NAMES[state_code], "total_estimated_benefit": benefit}
        for state_code, benefit in ranked[:limit]
    ]
