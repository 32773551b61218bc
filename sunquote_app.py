import streamlit as st
import logging
from sunquote_engine.external_data import load_api_keys
from sunquote_engine.quote_pipeline import prepare_quote
from sunquote_engine.utils import InputValidationError
from sunquote_engine.ui_calculator_screen import (
    display_address_screen,
    display_usage_screen,
    display_roof_screen,
    display_preferences_screen
)
from sunquote_engine.ui_results_screen import display_results_screen

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - [%(name)s] - %(message)s')
logger = logging.getLogger(__name__)

st.set_page_config(page_title="☀️ SunQuote Solar ROI Calculator")


# --- API Key Setup ---
try:
    missing_keys = load_api_keys(st.secrets)
except FileNotFoundError:
    # No secrets.toml; environment variables only
    missing_keys = load_api_keys()
if missing_keys and 'api_key_warning_shown' not in st.session_state:
    logger.info("External data keys not configured: %s. Using built-in estimates.", ", ".join(missing_keys))
    st.toast("Some live data sources are not configured. Estimates use built-in state averages.", icon="ℹ️")
    st.session_state.api_key_warning_shown = True

# --- Session State Initialization ---
if 'current_screen' not in st.session_state:
    st.session_state.current_screen = 'address'
if 'form_data' not in st.session_state:
    st.session_state.form_data = {}
if 'calculator_results_display' not in st.session_state:
    st.session_state.calculator_results_display = None
if 'trigger_calculator_api_processing' not in st.session_state:
    st.session_state.trigger_calculator_api_processing = False


def clear_project_data():
    """Resets session state for a new quote."""
    for key in list(st.session_state.keys()):
        if key not in ['current_screen', 'api_key_warning_shown']:
            del st.session_state[key]
    st.session_state.form_data = {}
    st.session_state.calculator_results_display = None
    st.session_state.trigger_calculator_api_processing = False


SCREEN_HANDLERS = {
    'address': display_address_screen,
    'usage': display_usage_screen,
    'roof': display_roof_screen,
    'preferences': display_preferences_screen,
    'results': display_results_screen,
}


# ====== Main App Router for the 5-Screen Quote Flow ======
if __name__ == "__main__":

    # Persistent Sidebar
    with st.sidebar:
        st.subheader("☀️ SunQuote")
        st.caption("Solar savings, financing and incentives in a few steps.")
        if st.button("Start Over", icon=":material/home:", width="stretch", key="sidebar_start_over"):
            clear_project_data()
            st.session_state.current_screen = 'address'
            st.rerun()

    # --- Centralized Calculation Logic for the Results Screen ---
    if st.session_state.get("trigger_calculator_api_processing", False):
        st.session_state.trigger_calculator_api_processing = False  # Consume signal
        try:
            with st.spinner("Analyzing your property and building your quote..."):
                st.session_state.calculator_results_display = prepare_quote(st.session_state.form_data)
        except InputValidationError as e:
            logger.warning("Quote rejected: %s", e)
            st.session_state.calculator_results_display = e.to_response()
        st.rerun()

    current_screen = st.session_state.current_screen
    handler = SCREEN_HANDLERS.get(current_screen)
    if handler is None:  # Default case if screen state is unknown
        st.session_state.current_screen = 'address'
        st.rerun()

    next_screen_signal = handler()
    if next_screen_signal == 'new_quote':
        clear_project_data()
        st.session_state.current_screen = 'address'
        st.rerun()
    elif next_screen_signal:
        st.session_state.current_screen = next_screen_signal
        st.rerun()
