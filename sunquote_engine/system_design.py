from sunquote_engine.incentives import lookup_incentives
from sunquote_engine.solar_calculator_logic import (
    calculate_annual_production, calculate_annual_savings, calculate_monthly_payment,
    calculate_roof_max_kw, calculate_system_cost, find_payback_year, project_annual_savings
)
from sunquote_engine.utils import (
    AVG_PRODUCTION_PER_KW, BASE_ELECTRICITY_RATE, DEFAULT_SUN_FACTOR,
    LOAN_DOWN_PAYMENT_PCT, LOAN_INTEREST_RATE, LOAN_TERM_YEARS, PROJECTION_YEARS
)

# ---- Sizing tiers: (name, share of annual consumption to offset, description, recommended for) ----
SYSTEM_DESIGN_TIERS = [
    ("Conservative", 70, "Lower cost, partial offset (good for budget-conscious)", "Budget-conscious homeowners"),
    ("Standard", 100, "Balanced approach, covers your usage (most popular)", "Most homeowners (great balance)"),
    ("Aggressive", 130, "Maximum solar, room for future EVs and heat pumps", "Long-term investors"),
]


def generate_system_design_options(annual_consumption_kwh, sun_factor=DEFAULT_SUN_FACTOR,
                                   state=None, roof_sqft=None, electricity_rate=BASE_ELECTRICITY_RATE):
    """
    Three alternative system sizes for the same household.

    Each tier is clamped to the usable roof area and priced with the same cost,
    loan and savings functions as the main calculator. If the roof caps every
    tier, the tiers come back with the same size.
    """
    sun_factor = sun_factor if sun_factor and sun_factor > 0 else DEFAULT_SUN_FACTOR
    roof_max_kw = calculate_roof_max_kw(roof_sqft) if roof_sqft else None

    options = []
    for name, coverage, description, recommended_for in SYSTEM_DESIGN_TIERS:
        target_kw = (annual_consumption_kwh / sun_factor) * (coverage / 100) / AVG_PRODUCTION_PER_KW
        if roof_max_kw is not None:
            target_kw = min(target_kw, roof_max_kw)
        system_size_kw = round(max(target_kw, 0.0), 1)
        options.append(_price_tier(
            name, description, recommended_for, system_size_kw,
            annual_consumption_kwh, sun_factor, state, electricity_rate
        ))
    return options


def _price_tier(name, description, recommended_for, system_size_kw, annual_consumption_kwh,
                sun_factor, state, electricity_rate):
    annual_production = calculate_annual_production(system_size_kw, sun_factor)
    system_cost = calculate_system_cost(system_size_kw)
    loan_principal = system_cost * (1 - LOAN_DOWN_PAYMENT_PCT)
    monthly_payment = calculate_monthly_payment(loan_principal, LOAN_INTEREST_RATE, LOAN_TERM_YEARS)

    total_savings = float(project_annual_savings(annual_production, PROJECTION_YEARS, electricity_rate).sum())
    roi_25_year = ((total_savings - system_cost) / system_cost) * 100
    payback = find_payback_year(
        system_cost, lambda year: calculate_annual_savings(annual_production, year, electricity_rate)
    )
    coverage = (annual_production / annual_consumption_kwh) * 100 if annual_consumption_kwh > 0 else 0

    incentive_benefit = 0
    if state:
        incentive_benefit = lookup_incentives(state, system_size_kw, system_cost)["total_estimated_benefit"]

    return {
        "name": name,
        "description": description,
        "recommended_for": recommended_for,
        "system_size_kw": system_size_kw,
        "percentage_of_consumption": round(coverage),
        "estimated_annual_production": round(annual_production),
        "system_cost_usd": round(system_cost),
        "monthly_payment_loan": round(monthly_payment),
        "first_year_savings": round(calculate_annual_savings(annual_production, 1, electricity_rate)),
        "payback_years": round(payback, 1) if payback is not None else None,
        "roi_25_year": round(roi_25_year),
        "incentive_benefit": incentive_benefit,
    }


def format_system_option(option):
    return f"{option['name']} ({option['system_size_kw']}kW) - {option['percentage_of_consumption']}% offset"


def get_best_value_option(options):
    """Best value = highest ROI per year of payback."""
    def score(option):
        payback = option["payback_years"] if option["payback_years"] is not None else float(PROJECTION_YEARS * 2)
        return option["roi_25_year"] / max(payback, 1)

    best = max(options, key=score)
    return {
        "option": best,
        "reason": f"Best ROI ({best['roi_25_year']}%) with {best['payback_years']}-year payback",
    }
