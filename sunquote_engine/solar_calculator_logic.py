import logging
import numpy as np
from sunquote_engine.incentives import lookup_incentives
from sunquote_engine.utils import (
    AVG_PRODUCTION_PER_KW, BASE_ELECTRICITY_RATE, CO2_LBS_PER_KWH, CO2_LBS_PER_TREE,
    DEFAULT_MONTHLY_KWH, DEFAULT_SUN_FACTOR, FIXED_INSTALL_OVERHEAD,
    LEASE_MIN_MONTHLY_PAYMENT, LEASE_SAVINGS_SHARE, LEASE_TERM_YEARS,
    LOAN_DOWN_PAYMENT_PCT, LOAN_INTEREST_RATE, LOAN_TERM_YEARS,
    MAX_PAYBACK_SEARCH_YEARS, PANEL_DEGRADATION, PPA_ESCALATOR, PPA_RATE_FACTOR,
    PPA_TERM_YEARS, PROJECTION_YEARS, RATE_ESCALATION, SAVINGS_RANGE_SPREAD,
    SQFT_PER_KW, SUN_EXPOSURE_FACTORS, SYSTEM_COST_PER_KW, TARGET_OFFSET_FRACTION,
    USABLE_ROOF_FRACTION, normalize_state_code
)

logger = logging.getLogger(__name__)

FINANCING_DESCRIPTIONS = {
    "cash": "Pay upfront, own your system from day 1",
    "loan": "Finance with competitive rates, own after payoff",
    "lease": "Zero down, predictable monthly payment",
    "ppa": "Pay for power produced, guaranteed savings",
}


# --- Sizing ---
def get_sun_factor(sun_exposure):
    return SUN_EXPOSURE_FACTORS.get(sun_exposure, DEFAULT_SUN_FACTOR)


def estimate_monthly_kwh(inputs):
    """
    Monthly usage in kWh: entered usage wins, then bill / national rate, then a 500 kWh default.
    """
    if inputs.get("monthly_kwh"):
        return float(inputs["monthly_kwh"])
    if inputs.get("bill_amount"):
        return float(inputs["bill_amount"]) / BASE_ELECTRICITY_RATE
    return float(DEFAULT_MONTHLY_KWH)


def calculate_annual_consumption(inputs):
    return estimate_monthly_kwh(inputs) * 12


def calculate_roof_max_kw(roof_square_feet):
    if not roof_square_feet or roof_square_feet <= 0:
        return 0.0
    return (roof_square_feet * USABLE_ROOF_FRACTION) / SQFT_PER_KW


def calculate_system_size(inputs):
    """
    kW needed to cover 80% of annual usage at this sun factor, capped by usable roof area.
    """
    sun_factor = get_sun_factor(inputs.get("sun_exposure"))
    target_annual_production = calculate_annual_consumption(inputs) * TARGET_OFFSET_FRACTION
    target_size_kw = target_annual_production / sun_factor / AVG_PRODUCTION_PER_KW
    return min(target_size_kw, calculate_roof_max_kw(inputs.get("roof_square_feet")))


def calculate_annual_production(system_size_kw, sun_factor=DEFAULT_SUN_FACTOR):
    return system_size_kw * AVG_PRODUCTION_PER_KW * sun_factor


def calculate_system_cost(system_size_kw):
    return FIXED_INSTALL_OVERHEAD + system_size_kw * SYSTEM_COST_PER_KW


# --- Financing Math ---
def calculate_monthly_payment(principal, annual_rate, years):
    """Standard amortized monthly payment."""
    if principal <= 0:
        return 0.0
    num_payments = years * 12
    monthly_rate = annual_rate / 12
    if monthly_rate == 0:
        return principal / num_payments
    growth = (1 + monthly_rate) ** num_payments
    return principal * (monthly_rate * growth) / (growth - 1)


def calculate_annual_savings(annual_production, year, electricity_rate=BASE_ELECTRICITY_RATE):
    """
    Bill savings in `year` (1-based): the utility rate escalates, panel output degrades linearly.
    """
    escalation = (1 + RATE_ESCALATION) ** year
    degradation = max(0.0, 1 - year * PANEL_DEGRADATION)
    return annual_production * electricity_rate * escalation * degradation


def project_annual_savings(annual_production, years=PROJECTION_YEARS, electricity_rate=BASE_ELECTRICITY_RATE):
    """Vector of savings for years 1..years."""
    year_index = np.arange(1, years + 1)
    escalation = (1 + RATE_ESCALATION) ** year_index
    degradation = np.maximum(0.0, 1 - year_index * PANEL_DEGRADATION)
    return annual_production * electricity_rate * escalation * degradation


def find_payback_year(initial_outlay, net_for_year, max_years=MAX_PAYBACK_SEARCH_YEARS):
    """
    Fractional year where the cumulative balance (starting at -initial_outlay) first turns non-negative.

    The crossing is only counted in a year whose net is positive and is interpolated
    linearly inside that year. Returns None when it never crosses within `max_years`.
    """
    cumulative = -initial_outlay
    for year in range(1, max_years + 1):
        net = net_for_year(year)
        previous = cumulative
        cumulative += net
        if previous < 0 <= cumulative and net > 0:
            return (year - 1) + (-previous / net)
    return None


def _loan_payment_for_year(year, monthly_payment):
    return monthly_payment * 12 if year <= LOAN_TERM_YEARS else 0.0


def _lease_payment_for_year(year, monthly_payment):
    return monthly_payment * 12 if year <= LEASE_TERM_YEARS else 0.0


def calculate_financing(system_size_kw, sun_factor=DEFAULT_SUN_FACTOR, annual_production=None,
                        electricity_rate=BASE_ELECTRICITY_RATE):
    """
    Cash, loan, lease and PPA projections for one system.

    Every option uses the same yearly savings curve, so the payback years here
    agree with a year-by-year cash-flow chart built from the same inputs.
    """
    if annual_production is None:
        annual_production = calculate_annual_production(system_size_kw, sun_factor)
    total_system_cost = calculate_system_cost(system_size_kw)

    def savings_for_year(year):
        return calculate_annual_savings(annual_production, year, electricity_rate)

    savings_25 = project_annual_savings(annual_production, PROJECTION_YEARS, electricity_rate)
    total_savings_25 = float(savings_25.sum())
    first_year_monthly_savings = float(savings_25[0]) / 12

    # === CASH ===
    cash_payback = find_payback_year(total_system_cost, savings_for_year)
    cash_roi = ((total_savings_25 - total_system_cost) / total_system_cost) * 100

    # === LOAN ===
    loan_down = total_system_cost * LOAN_DOWN_PAYMENT_PCT
    loan_principal = total_system_cost - loan_down
    loan_monthly = calculate_monthly_payment(loan_principal, LOAN_INTEREST_RATE, LOAN_TERM_YEARS)
    loan_total_interest = loan_monthly * LOAN_TERM_YEARS * 12 - loan_principal
    loan_paid_in_horizon = loan_down + sum(_loan_payment_for_year(y, loan_monthly) for y in range(1, PROJECTION_YEARS + 1))
    loan_payback = find_payback_year(
        loan_down, lambda year: savings_for_year(year) - _loan_payment_for_year(year, loan_monthly)
    )
    loan_roi = ((total_savings_25 - loan_paid_in_horizon) / loan_paid_in_horizon) * 100

    # === LEASE ===
    lease_monthly = max(LEASE_MIN_MONTHLY_PAYMENT, first_year_monthly_savings * LEASE_SAVINGS_SHARE)
    lease_total_cost = lease_monthly * 12 * LEASE_TERM_YEARS
    lease_savings_term = float(savings_25[:LEASE_TERM_YEARS].sum())
    lease_net_savings = lease_savings_term - lease_total_cost
    if savings_for_year(1) - _lease_payment_for_year(1, lease_monthly) >= 0:
        lease_payoff = 0.0
    else:
        lease_payoff = find_payback_year(
            0.0, lambda year: savings_for_year(year) - _lease_payment_for_year(year, lease_monthly)
        )
    lease_roi = (lease_net_savings / lease_total_cost) * 100

    # === PPA ===
    ppa_rate = electricity_rate * PPA_RATE_FACTOR
    ppa_years = np.arange(1, PPA_TERM_YEARS + 1)
    ppa_production = annual_production * np.maximum(0.0, 1 - ppa_years * PANEL_DEGRADATION)
    ppa_total_cost = float(np.sum(ppa_production * ppa_rate * (1 + PPA_ESCALATOR) ** (ppa_years - 1)))
    ppa_grid_value = float(project_annual_savings(annual_production, PPA_TERM_YEARS, electricity_rate).sum())
    ppa_savings = ppa_grid_value - ppa_total_cost
    ppa_roi = (ppa_savings / ppa_total_cost) * 100 if ppa_total_cost > 0 else 0.0

    return {
        "total_system_cost": total_system_cost,
        "annual_production": annual_production,
        "total_savings_25_year": total_savings_25,
        "cash": {
            "upfront": total_system_cost,
            "monthly": 0.0,
            "years_to_break_even": cash_payback,
            "roi_25_years": cash_roi,
        },
        "loan": {
            "down_payment": loan_down,
            "monthly_payment": loan_monthly,
            "total_interest": loan_total_interest,
            "years_to_break_even": loan_payback,
            "roi_25_years": loan_roi,
        },
        "lease": {
            "down_payment": 0.0,
            "monthly_payment": lease_monthly,
            "term_years": LEASE_TERM_YEARS,
            "total_cost": lease_total_cost,
            "net_savings": lease_net_savings,
            "years_to_break_even": lease_payoff,
            "roi_term": lease_roi,
        },
        "ppa": {
            "down_payment": 0.0,
            "monthly_payment": (annual_production / 12) * ppa_rate,
            "rate_per_kwh": ppa_rate,
            "escalator": PPA_ESCALATOR,
            "total_cost": ppa_total_cost,
            "savings_25_year": ppa_savings,
            "roi_25_years": ppa_roi,
        },
    }


def build_financing_options(financing):
    """Flattens calculate_financing() into the list of cards shown to the user."""
    cost = financing["total_system_cost"]
    return [
        {
            "type": "cash",
            "total_cost": cost,
            "down_payment": cost,
            "monthly_payment": 0.0,
            "total_interest": 0.0,
            "payoff_years": financing["cash"]["years_to_break_even"],
            "roi": financing["cash"]["roi_25_years"],
            "description": FINANCING_DESCRIPTIONS["cash"],
        },
        {
            "type": "loan",
            "total_cost": cost,
            "down_payment": financing["loan"]["down_payment"],
            "monthly_payment": financing["loan"]["monthly_payment"],
            "total_interest": financing["loan"]["total_interest"],
            "payoff_years": financing["loan"]["years_to_break_even"],
            "roi": financing["loan"]["roi_25_years"],
            "description": FINANCING_DESCRIPTIONS["loan"],
        },
        {
            "type": "lease",
            "total_cost": financing["lease"]["total_cost"],
            "down_payment": 0.0,
            "monthly_payment": financing["lease"]["monthly_payment"],
            "total_interest": 0.0,
            "payoff_years": financing["lease"]["years_to_break_even"],
            "roi": financing["lease"]["roi_term"],
            "term_years": financing["lease"]["term_years"],
            "net_savings": financing["lease"]["net_savings"],
            "description": FINANCING_DESCRIPTIONS["lease"],
        },
        {
            "type": "ppa",
            "total_cost": financing["ppa"]["total_cost"],
            "down_payment": 0.0,
            "monthly_payment": financing["ppa"]["monthly_payment"],
            "total_interest": 0.0,
            "payoff_years": float(PPA_TERM_YEARS),
            "roi": financing["ppa"]["roi_25_years"],
            "ppa_rate_per_kwh": financing["ppa"]["rate_per_kwh"],
            "ppa_escalator_percent": financing["ppa"]["escalator"] * 100,
            "ppa_savings_25_year": financing["ppa"]["savings_25_year"],
            "description": FINANCING_DESCRIPTIONS["ppa"],
        },
    ]


# --- Environmental ---
def calculate_environmental(system_size_kw, annual_production, annual_consumption):
    """
    CO2 offset (lbs/yr), tree equivalents and grid independence (% of usage covered).
    Zero or negative consumption gives 0% grid independence.
    """
    annual_co2_offset = round(annual_production * CO2_LBS_PER_KWH)
    if annual_consumption and annual_consumption > 0:
        grid_independence = min(100, round(annual_production / annual_consumption * 100))
    else:
        grid_independence = 0
    return {
        "annual_co2_offset": annual_co2_offset,
        "trees_equivalent": round(annual_co2_offset / CO2_LBS_PER_TREE),
        "grid_independence": grid_independence,
    }


def calculate_bill_offset(annual_production, annual_usage):
    """Share of the yearly bill covered by production, as shown on the results page."""
    if not annual_usage or annual_usage <= 0:
        return 0
    offset_pct = (annual_production / annual_usage) * 100
    return min(100, round(offset_pct))


def estimate_savings_range(annual_production, electricity_rate=BASE_ELECTRICITY_RATE):
    first_year = annual_production * electricity_rate
    return {
        "low": round(first_year * (1 - SAVINGS_RANGE_SPREAD)),
        "high": round(first_year * (1 + SAVINGS_RANGE_SPREAD)),
    }


# --- Orchestration ---
def _build_calculation_result(inputs, system_size_kw, sun_factor, production_source):
    electricity_rate = inputs.get("electricity_rate") or BASE_ELECTRICITY_RATE
    annual_consumption = calculate_annual_consumption(inputs)
    annual_production = calculate_annual_production(system_size_kw, sun_factor)

    financing = calculate_financing(system_size_kw, sun_factor, annual_production, electricity_rate)
    incentives = lookup_incentives(
        normalize_state_code(inputs.get("state")), system_size_kw,
        financing["total_system_cost"], inputs.get("property_type", "residential"),
        inputs.get("as_of")
    )

    return {
        "system_size_kw": system_size_kw,
        "estimated_annual_production": round(annual_production),
        "estimated_monthly_production": round(annual_production / 12),
        "annual_consumption": annual_consumption,
        "sun_factor": sun_factor,
        "electricity_rate": electricity_rate,
        "system_cost": financing["total_system_cost"],
        "financing": build_financing_options(financing),
        "environmental": calculate_environmental(system_size_kw, round(annual_production), annual_consumption),
        "incentives": incentives,
        "net_cost_after_incentives": max(0.0, financing["total_system_cost"] - incentives["total_estimated_benefit"]),
        "savings_range": estimate_savings_range(annual_production, electricity_rate),
        "production_source": production_source,
        "wants_battery": bool(inputs.get("wants_battery", False)),
        "confidence": "preliminary",
    }


def perform_solar_calculation(inputs):
    """
    Main orchestrator for the calculator.
    Inputs: monthly_kwh, bill_amount, roof_square_feet, sun_exposure, state, wants_battery
    (optional: electricity_rate, property_type, as_of).
    Pure: the same inputs always give the same result.
    """
    system_size_kw = round(calculate_system_size(inputs), 2)
    sun_factor = get_sun_factor(inputs.get("sun_exposure"))
    return _build_calculation_result(inputs, system_size_kw, sun_factor, "internal")


def apply_production_override(inputs, system_size_kw, annual_production_kwh, source="google_solar"):
    """
    Rebuilds the result around an externally measured system size and production.

    The sun factor is back-derived (kWh / kW / 1200) so the same financing and
    environmental functions see exactly the external production figure.
    Unusable override values fall back to the internal estimate.
    """
    if not system_size_kw or system_size_kw <= 0 or not annual_production_kwh or annual_production_kwh <= 0:
        logger.warning("Ignoring %s override (size=%s, kWh=%s); using internal estimate",
                       source, system_size_kw, annual_production_kwh)
        return perform_solar_calculation(inputs)

    effective_sun_factor = annual_production_kwh / system_size_kw / AVG_PRODUCTION_PER_KW
    result = _build_calculation_result(inputs, system_size_kw, effective_sun_factor, source)
    result["confidence"] = "measured"
    return result


def calculate_lead_score(system_size_kw, financing_type, timeline):
    """Simple 0-100 lead quality score for the installer dashboard."""
    score = 50
    if system_size_kw > 8:
        score += 20
    elif system_size_kw > 5:
        score += 10

    if timeline == "immediate":
        score += 15
    elif timeline == "3-months":
        score += 10

    if financing_type == "cash":
        score += 10
    return min(100, score)
