import streamlit as st
from sunquote_engine.external_data import get_api_key, place_details, places_autocomplete
from sunquote_engine.solar_calculator_logic import (
    calculate_roof_max_kw, calculate_system_size, estimate_monthly_kwh
)
from sunquote_engine.utils import (
    BASE_ELECTRICITY_RATE, PROPERTY_TYPES, SUN_EXPOSURE_FACTORS, SUPPORTED_REGION_NAMES,
    TIMELINE_OPTIONS, TOOLTIPS, extract_zip_code, generate_progress_bar_markdown,
    get_default_utility_rate, validate_calculation_input
)

# ---- Screen Flow Map for User Journey (progress bar) ----
SCREEN_FLOW_MAP = {
    'address': (1, "Address"),
    'usage': (2, "Energy Usage"),
    'roof': (3, "Roof"),
    'preferences': (4, "Preferences"),
    'results': (5, "Your Solar Quote"),
}

FINANCING_PREFERENCES = ["cash", "loan", "lease", "ppa"]
STATE_OPTIONS = sorted(SUPPORTED_REGION_NAMES, key=lambda code: SUPPORTED_REGION_NAMES[code])


def _screen_header(title, subtitle, screen_key):
    st.title(title)
    st.markdown(subtitle)
    st.markdown(generate_progress_bar_markdown(SCREEN_FLOW_MAP, screen_key), unsafe_allow_html=True)
    st.markdown("---")


def _nav_buttons(back_screen, next_screen, next_label, key_prefix, can_continue=True):
    """Back / Continue row. Returns the screen key to navigate to, or None."""
    nav_col1, nav_col2 = st.columns(2)
    with nav_col1:
        if back_screen and st.button("⬅️ Back", width="stretch", key=f"{key_prefix}_back"):
            return back_screen
    with nav_col2:
        if st.button(next_label, type="primary", width="stretch",
                     key=f"{key_prefix}_continue", disabled=not can_continue):
            return next_screen
    return None


def display_address_screen():
    _screen_header("☀️ Let's Estimate Your Solar Savings",
                   "**Start with the property address. We use it for sun hours, utility rates and state incentives.**",
                   'address')
    form_data = st.session_state.form_data

    form_data["address"] = st.text_input(
        "📍 Property Address or ZIP Code",
        value=form_data.get("address", ""),
        key="s1_address",
        help=TOOLTIPS.get("address")
    )

    # Address suggestions only when Google Places is configured
    if get_api_key("google_places") and len(form_data["address"].strip()) >= 2:
        predictions = places_autocomplete(form_data["address"])
        if predictions:
            descriptions = [prediction["description"] for prediction in predictions]
            picked = st.selectbox("Did you mean...", options=["(keep what I typed)"] + descriptions, key="s1_prediction")
            if picked in descriptions:
                details = place_details(predictions[descriptions.index(picked)]["place_id"])
                if details:
                    form_data["address"] = details["formatted_address"]
                    form_data["zip_code"] = details.get("zip_code")
                    if details.get("state_code") in SUPPORTED_REGION_NAMES:
                        form_data["state"] = details["state_code"]

    current_state = form_data.get("state", "CA")
    form_data["state"] = st.selectbox(
        "🗺️ State",
        options=STATE_OPTIONS,
        index=STATE_OPTIONS.index(current_state) if current_state in STATE_OPTIONS else 0,
        format_func=lambda code: f"{SUPPORTED_REGION_NAMES[code]} ({code})",
        key="s1_state",
        help=TOOLTIPS.get("state")
    )

    zip_code = form_data.get("zip_code") or extract_zip_code(form_data["address"])
    if zip_code:
        st.success(f"ZIP code **{zip_code}** detected. We'll look up your local utility rate.", icon="✅")
    else:
        st.info("Add a 5-digit ZIP code to the address for a local utility rate. Otherwise the state average is used.", icon="💡")

    st.markdown("---")
    return _nav_buttons(None, 'usage', "Continue to Energy Usage ➡️", "s1",
                        can_continue=bool(form_data["address"].strip()))


def display_usage_screen():
    _screen_header("⚡ Your Energy Usage", "**Enter your monthly usage, or just your average bill.**", 'usage')
    form_data = st.session_state.form_data

    col1, col2 = st.columns(2)
    with col1:
        form_data["monthly_kwh"] = st.number_input(
            "Avg. Monthly Electricity Usage (kWh)",
            min_value=0, value=int(form_data.get("monthly_kwh") or 0), step=50,
            key="s2_monthly_kwh",
            help=TOOLTIPS.get("monthly_kwh")
        )
    with col2:
        form_data["bill_amount"] = st.number_input(
            "Avg. Monthly Electric Bill ($)",
            min_value=0, value=int(form_data.get("bill_amount") or 150), step=10,
            key="s2_bill_amount",
            help=TOOLTIPS.get("bill_amount")
        )

    state_rate = get_default_utility_rate(form_data.get("state"))
    with st.expander("Know your exact electricity rate? (Optional)"):
        use_custom_rate = st.checkbox("Use my own $/kWh rate", value=bool(form_data.get("electricity_rate")), key="s2_custom_rate")
        if use_custom_rate:
            form_data["electricity_rate"] = st.number_input(
                "Electricity Rate ($/kWh)", min_value=0.01, max_value=1.0,
                value=float(form_data.get("electricity_rate") or state_rate), step=0.01, format="%.2f",
                key="s2_rate"
            )
        else:
            form_data["electricity_rate"] = None
            st.caption(f"The {form_data.get('state', '')} average is about ${state_rate:.2f}/kWh.")

    monthly_kwh = estimate_monthly_kwh(form_data)
    if not form_data["monthly_kwh"]:
        st.info(f"Based on your bill at ${BASE_ELECTRICITY_RATE:.2f}/kWh, your estimated usage is **{monthly_kwh:,.0f} kWh/month**.", icon="💡")
    st.metric("Estimated Annual Usage (kWh)", f"{monthly_kwh * 12:,.0f}")

    st.markdown("---")
    return _nav_buttons('address', 'roof', "Continue to Roof ➡️", "s2")


def display_roof_screen():
    _screen_header("🏠 Your Roof", "**Roof size and sun exposure set the largest system that fits.**", 'roof')
    form_data = st.session_state.form_data

    form_data["roof_square_feet"] = st.number_input(
        "Roof Area (sq ft)", min_value=0, max_value=20000,
        value=int(form_data.get("roof_square_feet") or 1500), step=50,
        key="s3_roof_sqft",
        help=TOOLTIPS.get("roof_square_feet")
    )

    exposure_options = list(SUN_EXPOSURE_FACTORS)
    current_exposure = form_data.get("sun_exposure", "good")
    form_data["sun_exposure"] = st.radio(
        "☀️ Sun Exposure",
        options=exposure_options,
        index=exposure_options.index(current_exposure) if current_exposure in exposure_options else 2,
        format_func=str.capitalize,
        horizontal=True,
        key="s3_sun_exposure",
        help=TOOLTIPS.get("sun_exposure")
    )

    roof_max_kw = calculate_roof_max_kw(form_data["roof_square_feet"])
    if roof_max_kw > 0:
        suggested_kw = calculate_system_size(form_data)
        st.success(f"Your roof fits up to **{roof_max_kw:.1f} kW**. We'd start from about **{suggested_kw:.1f} kW**.", icon="📐")
    else:
        st.warning("Enter your roof area to size the system.", icon="⚠️")

    st.markdown("---")
    return _nav_buttons('usage', 'preferences', "Continue to Preferences ➡️", "s3", can_continue=roof_max_kw > 0)


def display_preferences_screen():
    _screen_header("⚙️ Your Preferences", "**Almost done. These help us tailor the quote.**", 'preferences')
    form_data = st.session_state.form_data

    col1, col2 = st.columns(2)
    with col1:
        current_property = form_data.get("property_type", PROPERTY_TYPES[0])
        form_data["property_type"] = st.selectbox(
            "Property Type", options=PROPERTY_TYPES,
            index=PROPERTY_TYPES.index(current_property) if current_property in PROPERTY_TYPES else 0,
            format_func=str.capitalize, key="s4_property_type"
        )
        current_timeline = form_data.get("timeline", TIMELINE_OPTIONS[1])
        form_data["timeline"] = st.selectbox(
            "Installation Timeline", options=TIMELINE_OPTIONS,
            index=TIMELINE_OPTIONS.index(current_timeline) if current_timeline in TIMELINE_OPTIONS else 1,
            key="s4_timeline", help=TOOLTIPS.get("timeline")
        )
    with col2:
        current_financing = form_data.get("financing_preference", "cash")
        form_data["financing_preference"] = st.selectbox(
            "Preferred Financing", options=FINANCING_PREFERENCES,
            index=FINANCING_PREFERENCES.index(current_financing) if current_financing in FINANCING_PREFERENCES else 0,
            format_func=str.upper, key="s4_financing", help=TOOLTIPS.get("financing_preference")
        )
        form_data["wants_battery"] = st.toggle(
            "🔋 Interested in battery storage?", value=form_data.get("wants_battery", False),
            key="s4_battery", help=TOOLTIPS.get("wants_battery")
        )

    is_valid, errors = validate_calculation_input({
        "state": form_data.get("state"),
        "sun_exposure": form_data.get("sun_exposure"),
        "roof_square_feet": form_data.get("roof_square_feet"),
        "monthly_kwh": form_data.get("monthly_kwh"),
        "bill_amount": form_data.get("bill_amount"),
    })
    for error in errors:
        st.error(error, icon="🚨")

    st.markdown("---")
    nav_col1, nav_col2 = st.columns(2)
    with nav_col1:
        if st.button("⬅️ Back", width="stretch", key="s4_back"):
            return 'roof'
    with nav_col2:
        if st.button("Calculate My Solar Quote", type="primary", icon=":material/finance:",
                     width="stretch", key="s4_calculate", disabled=not is_valid):
            st.session_state.trigger_calculator_api_processing = True  # Signals sunquote_app
            st.session_state.calculator_results_display = None
            return 'results'
    return None
