import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from sunquote_engine.cash_flow import build_result_cash_flow, chart_paybacks
from sunquote_engine.incentives import compare_state_incentives, get_incentive_summary, get_top_incentive_states
from sunquote_engine.quote_pipeline import recalculate_what_if
from sunquote_engine.solar_calculator_logic import calculate_bill_offset
from sunquote_engine.system_design import format_system_option
from sunquote_engine.utils import (
    SUN_EXPOSURE_FACTORS, SUPPORTED_REGION_NAMES, TOOLTIPS, calculate_annual_electricity_cost,
    generate_progress_bar_markdown
)
from sunquote_engine.ui_calculator_screen import SCREEN_FLOW_MAP

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
SOURCE_LABELS = {
    "internal": "Estimated from your roof size and sun exposure",
    "google_solar": "Measured from Google Solar roof imagery",
    "nrel": "Modeled with NREL PVWatts for your location",
}


def _format_payoff(payoff_years):
    return f"{payoff_years:.1f} yrs" if payoff_years is not None else "Not within 50 yrs"


def _financing_table(financing):
    rows = []
    for card in financing:
        rows.append({
            "Option": card["type"].upper(),
            "Total Cost ($)": round(card["total_cost"]),
            "Down Payment ($)": round(card["down_payment"]),
            "Monthly Payment ($)": round(card["monthly_payment"]),
            "Payback": _format_payoff(card["payoff_years"]),
            "ROI (%)": round(card["roi"], 1),
            "Notes": card["description"],
        })
    return pd.DataFrame(rows).set_index("Option")


def display_cash_flow_chart(result):
    cash_flow_df = build_result_cash_flow(result)
    loan_card = next(card for card in result["financing"] if card["type"] == "loan")
    paybacks = chart_paybacks(cash_flow_df, result["system_cost"], loan_card["down_payment"])

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=cash_flow_df.index, y=cash_flow_df["Cash Cumulative ($)"], mode='lines', name='Cash', line=dict(color='green', width=3)))
    fig.add_trace(go.Scatter(x=cash_flow_df.index, y=cash_flow_df["Loan Cumulative ($)"], mode='lines', name='Loan', line=dict(color='#00BFFF', width=3)))
    fig.add_trace(go.Scatter(x=cash_flow_df.index, y=cash_flow_df["Lease Cumulative ($)"], mode='lines', name='Lease', line=dict(color='orange', width=3)))
    fig.add_hline(y=0, line_dash="dot", line_color="gray")
    fig.update_layout(
        xaxis_title="Year", yaxis_title="Cumulative Net Savings ($)",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1)
    )
    st.plotly_chart(fig, width="stretch")

    cap1, cap2, cap3 = st.columns(3)
    cap1.metric("Cash: 25-yr Net", f"${paybacks['cash_25_year']:,.0f}")
    cap2.metric("Loan: 25-yr Net", f"${paybacks['loan_25_year']:,.0f}")
    cap3.metric("Lease: 25-yr Net", f"${paybacks['lease_25_year']:,.0f}")

    with st.expander("View Year-by-Year Cash Flow"):
        st.dataframe(cash_flow_df.style.format("${:,.0f}"))


def display_system_design_options(result):
    options = result.get("system_design_options") or []
    if not options:
        return
    best = result["best_value"]
    st.success(f"⭐ **Best value:** {format_system_option(best['option'])}. {best['reason']}.", icon="🏆")

    cols = st.columns(len(options))
    for col, option in zip(cols, options):
        with col, st.container(border=True):
            st.markdown(f"**{option['name']}**")
            st.caption(option["description"])
            st.metric("System Size", f"{option['system_size_kw']:.1f} kW")
            st.metric("Covers", f"{option['percentage_of_consumption']}% of usage")
            st.metric("Cost", f"${option['system_cost_usd']:,.0f}")
            st.metric("Payback", _format_payoff(option["payback_years"]))
            st.metric("25-yr ROI", f"{option['roi_25_year']}%")
            st.caption(f"Recommended for: {option['recommended_for']}")


def display_incentives(result):
    incentives = result["incentives"]
    inputs = result.get("inputs", {})
    summary = get_incentive_summary(
        incentives["state_code"], result["system_size_kw"], result["system_cost"],
        inputs.get("property_type", "residential")
    )

    if not incentives["incentives"]:
        st.info(f"No active state or utility programs found for {incentives['state_name']}. "
                "Check with local utilities for new offers.", icon="💡")
        return

    inc1, inc2, inc3, inc4 = st.columns(4)
    inc1.metric("Utility Rebates", f"${summary['utility_rebates']:,.0f}")
    inc2.metric("State Programs", f"${summary['state_tax_benefits']:,.0f}")
    inc3.metric("Sales Tax Savings", f"${summary['sales_tax_exemption']:,.0f}")
    inc4.metric("Other", f"${summary['other_incentives']:,.0f}")

    rows = [{
        "Program": incentive["name"],
        "Provider": incentive.get("utility") or "Statewide",
        "Type": incentive["type"],
        "Estimated Benefit ($)": incentive["estimated_benefit"],
        "Details": incentive["description"],
    } for incentive in incentives["incentives"]]
    st.dataframe(pd.DataFrame(rows), hide_index=True, width="stretch")
    st.caption("Benefits are estimates. Program rules and funding change; confirm with the program administrator.")


def display_state_comparison(result):
    st.markdown("How would the same system be supported in other states?")
    comparison = compare_state_incentives(result["system_size_kw"], result["system_cost"])
    comparison_df = pd.DataFrame([
        {"State": code, "Name": SUPPORTED_REGION_NAMES[code], "Estimated Benefit ($)": benefit}
        for code, benefit in comparison.items()
    ])
    fig = px.choropleth(
        comparison_df, locations="State", locationmode="USA-states", color="Estimated Benefit ($)",
        scope="usa", hover_name="Name", color_continuous_scale="YlGn"
    )
    st.plotly_chart(fig, width="stretch")

    top_states = get_top_incentive_states(limit=10, system_size_kw=result["system_size_kw"], system_cost=result["system_cost"])
    if top_states:
        st.markdown("**Top states for this system:**")
        st.dataframe(pd.DataFrame(top_states), hide_index=True, width="stretch")


def display_what_if(result):
    inputs = result.get("inputs")
    if not inputs:
        return
    st.markdown("Change a few inputs to see how the estimate moves. This uses the simplified production formula.")
    wi1, wi2 = st.columns(2)
    with wi1:
        exposure_options = list(SUN_EXPOSURE_FACTORS)
        what_if_exposure = st.select_slider("Sun Exposure", options=exposure_options,
                                            value=inputs["sun_exposure"], key="wi_sun_exposure")
        what_if_roof = st.number_input("Roof Area (sq ft)", min_value=1, max_value=20000,
                                       value=min(20000, max(1, int(inputs["roof_square_feet"]))), step=50, key="wi_roof")
    with wi2:
        what_if_rate = st.number_input("Electricity Rate ($/kWh)", min_value=0.01, max_value=1.0,
                                       value=min(1.0, max(0.01, float(inputs["electricity_rate"]))), step=0.01, format="%.2f", key="wi_rate")
        what_if_kwh = st.number_input("Monthly Usage (kWh)", min_value=0, max_value=20000,
                                      value=min(20000, int(result["annual_consumption"] / 12)), step=50, key="wi_kwh")

    what_if = recalculate_what_if(inputs, sun_exposure=what_if_exposure, roof_square_feet=what_if_roof,
                                  electricity_rate=what_if_rate, monthly_kwh=what_if_kwh)
    cash_now = next(card for card in result["financing"] if card["type"] == "cash")
    cash_what_if = next(card for card in what_if["financing"] if card["type"] == "cash")
    w1, w2, w3 = st.columns(3)
    w1.metric("System Size", f"{what_if['system_size_kw']:.1f} kW",
              delta=f"{what_if['system_size_kw'] - result['system_size_kw']:+.1f} kW")
    w2.metric("Annual Production", f"{what_if['estimated_annual_production']:,} kWh",
              delta=f"{what_if['estimated_annual_production'] - result['estimated_annual_production']:+,} kWh")
    w3.metric("Cash Payback", _format_payoff(cash_what_if["payoff_years"]),
              delta=(f"{cash_what_if['payoff_years'] - cash_now['payoff_years']:+.1f} yrs"
                     if cash_what_if["payoff_years"] is not None and cash_now["payoff_years"] is not None else None),
              delta_color="inverse")


def display_results_screen():
    st.title("🌞 Your Solar Quote")
    st.markdown(generate_progress_bar_markdown(SCREEN_FLOW_MAP, 'results', final_step_completed=True), unsafe_allow_html=True)
    st.markdown("---")

    result = st.session_state.get("calculator_results_display")
    if not result:
        st.info("No quote calculated yet.", icon="💡")
        if st.button("⬅️ Back to Preferences", width="stretch", key="s5_back_empty"):
            return 'preferences'
        return None

    if result.get("error"):
        st.error("We couldn't calculate a quote from these inputs:", icon="🚨")
        for detail in result.get("details", []):
            st.write(f"- {detail}")
        if st.button("⬅️ Fix My Inputs", width="stretch", key="s5_fix_inputs"):
            return 'address'
        return None

    location = result.get("location")
    if location:
        st.success(f"📍 {location.get('formatted_address') or 'Location found'} "
                   f"(Lat {location['latitude']:.4f}, Lon {location['longitude']:.4f})")
    st.caption(f"Production: {SOURCE_LABELS.get(result['production_source'], result['production_source'])}. "
               f"Electricity rate: ${result['electricity_rate']:.3f}/kWh.")

    # --- Headline metrics ---
    cash_card = next(card for card in result["financing"] if card["type"] == "cash")
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("System Size", f"{result['system_size_kw']:.2f} kW")
    m2.metric("Annual Production", f"{result['estimated_annual_production']:,} kWh")
    m3.metric("Year-1 Savings", f"${result['savings_range']['low']:,}-${result['savings_range']['high']:,}")
    m4.metric("Cash Payback", _format_payoff(cash_card["payoff_years"]), help=TOOLTIPS.get("payoff_years"))

    n1, n2, n3, n4 = st.columns(4)
    n1.metric("System Cost", f"${result['system_cost']:,.0f}")
    n2.metric("Incentives", f"${result['incentives']['total_estimated_benefit']:,}")
    n3.metric("Net Cost", f"${result['net_cost_after_incentives']:,.0f}")
    n4.metric("Bill Offset", f"{calculate_bill_offset(result['estimated_annual_production'], result['annual_consumption'])}%")

    env = result["environmental"]
    e1, e2, e3 = st.columns(3)
    e1.metric("CO₂ Offset", f"{env['annual_co2_offset']:,} lbs/yr")
    e2.metric("Trees Equivalent", f"{env['trees_equivalent']:,}")
    e3.metric("Grid Independence", f"{env['grid_independence']}%", help=TOOLTIPS.get("grid_independence"))

    if result.get("wants_battery"):
        st.info("🔋 Battery storage is quoted separately by your installer.", icon="ℹ️")
    for issue in result.get("consistency_issues", []):
        st.warning(f"Estimate check: {issue}", icon="⚠️")

    tab1, tab2, tab3, tab4, tab5, tab6 = st.tabs([
        "💰 Financing", "📈 Cash Flow", "📐 System Options", "🎁 Incentives", "🗺️ State Comparison", "🔮 What If"
    ])
    with tab1:
        st.dataframe(_financing_table(result["financing"]), width="stretch")
        annual_bill = calculate_annual_electricity_cost(result["annual_consumption"], result["electricity_rate"])
        st.caption(f"Your current electricity cost is about ${annual_bill:,} per year.")
        if result.get("monthly_production_profile"):
            monthly_df = pd.DataFrame({"Month": MONTH_LABELS, "kWh Produced": result["monthly_production_profile"]})
            st.plotly_chart(px.bar(monthly_df, x="Month", y="kWh Produced", title="Estimated Monthly Production"),
                            width="stretch")
    with tab2:
        display_cash_flow_chart(result)
    with tab3:
        display_system_design_options(result)
    with tab4:
        display_incentives(result)
    with tab5:
        display_state_comparison(result)
    with tab6:
        display_what_if(result)

    st.markdown("---")
    nav_col1, nav_col2 = st.columns(2)
    with nav_col1:
        if st.button("⬅️ Adjust My Inputs", width="stretch", key="s5_back"):
            return 'preferences'
    with nav_col2:
        if st.button("Start a New Quote", type="primary", icon=":material/restart_alt:", width="stretch", key="s5_new"):
            return 'new_quote'
    return None
