import logging
import numpy as np
import pandas as pd
from sunquote_engine.solar_calculator_logic import calculate_bill_offset
from sunquote_engine.utils import (
    BASE_ELECTRICITY_RATE, LEASE_TERM_YEARS, LOAN_TERM_YEARS,
    PANEL_DEGRADATION, PROJECTION_YEARS, RATE_ESCALATION
)

logger = logging.getLogger(__name__)

CASH_PAYBACK_TOLERANCE = 0.05
LOAN_PAYBACK_TOLERANCE = 0.15


def simulate_cash_flow(system_cost, annual_production, loan_monthly, loan_down, lease_monthly,
                       electricity_rate=BASE_ELECTRICITY_RATE, years=PROJECTION_YEARS):
    """
    Year-by-year cash flow for the results chart, one row per year (1..years).

    Built independently from the financing cards so the two can be checked
    against each other.
    """
    year = np.arange(1, years + 1)
    savings = (annual_production * electricity_rate
               * (1 + RATE_ESCALATION) ** year
               * np.maximum(0.0, 1 - year * PANEL_DEGRADATION))
    loan_payment = np.where(year <= LOAN_TERM_YEARS, loan_monthly * 12, 0.0)
    lease_payment = np.where(year <= LEASE_TERM_YEARS, lease_monthly * 12, 0.0)

    df = pd.DataFrame({
        "Savings ($)": savings,
        "Loan Payment ($)": loan_payment,
        "Lease Payment ($)": lease_payment,
    }, index=pd.Index(year, name="Year"))

    df["Cash Cumulative ($)"] = -system_cost + df["Savings ($)"].cumsum()
    df["Loan Net ($)"] = df["Savings ($)"] - df["Loan Payment ($)"]
    df["Loan Cumulative ($)"] = -loan_down + df["Loan Net ($)"].cumsum()
    df["Lease Net ($)"] = df["Savings ($)"] - df["Lease Payment ($)"]
    df["Lease Cumulative ($)"] = df["Lease Net ($)"].cumsum()
    return df


def _crossing_year(cumulative, net, opening_balance):
    previous = cumulative.shift(1, fill_value=opening_balance)
    crossed = (previous < 0) & (cumulative >= 0) & (net > 0)
    if not crossed.any():
        return 0.0
    year = crossed.idxmax()
    return float((year - 1) + (-previous[year] / net[year]))


def chart_paybacks(cash_flow_df, system_cost, loan_down):
    """Payback years read off the chart. 0.0 means no crossing inside the horizon."""
    return {
        "cash_payback": _crossing_year(cash_flow_df["Cash Cumulative ($)"], cash_flow_df["Savings ($)"], -system_cost),
        "loan_payback": _crossing_year(cash_flow_df["Loan Cumulative ($)"], cash_flow_df["Loan Net ($)"], -loan_down),
        "cash_25_year": float(cash_flow_df["Cash Cumulative ($)"].iloc[-1]),
        "loan_25_year": float(cash_flow_df["Loan Cumulative ($)"].iloc[-1]),
        "lease_25_year": float(cash_flow_df["Lease Cumulative ($)"].iloc[-1]),
    }


def _financing_card(result, financing_type):
    return next(card for card in result["financing"] if card["type"] == financing_type)


def build_result_cash_flow(result):
    """Chart data for a perform_solar_calculation() result."""
    loan = _financing_card(result, "loan")
    lease = _financing_card(result, "lease")
    return simulate_cash_flow(
        result["system_cost"], result["estimated_annual_production"],
        loan["monthly_payment"], loan["down_payment"], lease["monthly_payment"],
        result.get("electricity_rate", BASE_ELECTRICITY_RATE)
    )


def _outside_tolerance(actual, expected, tolerance):
    if actual is None:
        return True
    diff = abs(actual - expected)
    return expected != 0 and diff / abs(expected) > tolerance


def cross_check_result(result):
    """
    Compares the card figures of a calculation result with the chart simulation.
    Returns a list of discrepancy messages; an empty list means the views agree.
    """
    cash = _financing_card(result, "cash")
    loan = _financing_card(result, "loan")
    lease = _financing_card(result, "lease")
    df = build_result_cash_flow(result)
    chart = chart_paybacks(df, result["system_cost"], loan["down_payment"])
    issues = []

    if cash["total_cost"] != cash["down_payment"]:
        issues.append(f"Cash total ({cash['total_cost']:.2f}) differs from cash down payment ({cash['down_payment']:.2f})")
    if abs(loan["down_payment"] - 0.10 * loan["total_cost"]) > 0.01:
        issues.append(f"Loan down payment ({loan['down_payment']:.2f}) is not 10% of cost")
    if lease["down_payment"] != 0:
        issues.append("Lease down payment is not $0")

    if chart["cash_payback"] > 0 and _outside_tolerance(cash["payoff_years"], chart["cash_payback"], CASH_PAYBACK_TOLERANCE):
        issues.append(f"Cash payback card({cash['payoff_years']}) vs chart({chart['cash_payback']:.2f})")
    if chart["loan_payback"] > 0 and _outside_tolerance(loan["payoff_years"], chart["loan_payback"], LOAN_PAYBACK_TOLERANCE):
        issues.append(f"Loan payback card({loan['payoff_years']}) vs chart({chart['loan_payback']:.2f})")

    bill_offset = calculate_bill_offset(result["estimated_annual_production"], result["annual_consumption"])
    if result["environmental"]["grid_independence"] != bill_offset:
        issues.append(f"Grid independence ({result['environmental']['grid_independence']}%) != bill offset ({bill_offset}%)")

    for issue in issues:
        logger.warning("Cash-flow cross-check: %s", issue)
    return issues
