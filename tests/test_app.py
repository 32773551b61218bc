from streamlit.testing.v1 import AppTest
from unittest.mock import patch
import sys, os

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

APP_PATH = os.path.join(project_root, "sunquote_app.py")

from sunquote_engine.quote_pipeline import prepare_quote

VALID_FORM_DATA = {
    "address": "123 Main St, Springfield",
    "state": "IL",
    "monthly_kwh": 1000,
    "bill_amount": 150,
    "roof_square_feet": 2000,
    "sun_exposure": "good",
    "wants_battery": False,
    "property_type": "residential",
    "timeline": "3-months",
    "financing_preference": "loan",
}


def offline():
    """Keeps the quote pipeline away from live geocoding."""
    return patch("sunquote_engine.quote_pipeline.resolve_address", return_value=None)


def test_app_starts_on_address_screen():
    at = AppTest.from_file(APP_PATH).run()
    assert not at.exception
    assert at.title[0].value == "☀️ Let's Estimate Your Solar Savings"
    assert at.session_state.current_screen == "address"
    continue_button = at.button(key="s1_continue")
    assert continue_button.disabled  # Nothing typed yet


def test_address_screen_moves_to_usage():
    at = AppTest.from_file(APP_PATH).run()
    at.text_input(key="s1_address").input("123 Main St, Springfield, IL 62704").run()
    at.button(key="s1_continue").click().run()

    assert at.session_state.current_screen == "usage"
    assert at.session_state.form_data["address"] == "123 Main St, Springfield, IL 62704"
    assert at.title[0].value == "⚡ Your Energy Usage"


def test_calculate_builds_quote_on_results_screen():
    """
    Preferences -> Calculate sets the processing flag; the router builds the quote and shows it.
    """
    at = AppTest.from_file(APP_PATH).run()
    at.session_state.current_screen = "preferences"
    at.session_state.form_data = dict(VALID_FORM_DATA)
    at.run()

    with offline():
        at.button(key="s4_calculate").click().run()

    assert not at.exception
    assert at.session_state.current_screen == "results"
    assert at.session_state.trigger_calculator_api_processing is False
    result = at.session_state.calculator_results_display
    assert result["system_size_kw"] > 0
    assert result["production_source"] == "internal"
    assert at.title[0].value == "🌞 Your Solar Quote"
    assert any(metric.label == "System Size" for metric in at.metric)


def test_invalid_inputs_show_error_response():
    at = AppTest.from_file(APP_PATH).run()
    at.session_state.current_screen = "results"
    at.session_state.form_data = {**VALID_FORM_DATA, "roof_square_feet": 0}
    at.session_state.trigger_calculator_api_processing = True
    with offline():
        at.run()

    assert not at.exception
    result = at.session_state.calculator_results_display
    assert result["status"] == 400
    assert any("couldn't calculate" in error.value for error in at.error)
    assert at.button(key="s5_fix_inputs") is not None


def test_new_quote_clears_session():
    with offline():
        quote = prepare_quote(VALID_FORM_DATA)
    at = AppTest.from_file(APP_PATH).run()
    at.session_state.current_screen = "results"
    at.session_state.form_data = dict(VALID_FORM_DATA)
    at.session_state.calculator_results_display = quote
    at.run()
    assert not at.exception

    at.button(key="s5_new").click().run()
    assert at.session_state.current_screen == "address"
    # The address screen refills its own widget defaults; everything the user entered is gone
    form_data = at.session_state.form_data
    assert form_data.get("address") == ""
    for field in ("monthly_kwh", "bill_amount", "roof_square_feet", "sun_exposure", "financing_preference"):
        assert field not in form_data
    assert at.session_state.calculator_results_display is None


def test_unknown_screen_resets_to_address():
    at = AppTest.from_file(APP_PATH).run()
    at.session_state.current_screen = "login"
    at.run()
    assert at.session_state.current_screen == "address"


def test_results_screen_has_no_deprecation_warnings():
    """Screens size their widgets with `width`, so no deprecation notice is rendered."""
    with offline():
        quote = prepare_quote(VALID_FORM_DATA)
    at = AppTest.from_file(APP_PATH).run()
    at.session_state.current_screen = "results"
    at.session_state.form_data = dict(VALID_FORM_DATA)
    at.session_state.calculator_results_display = quote
    at.run()
    assert not at.exception
    assert not any("use_container_width" in warning.value for warning in at.warning)
    for module in ("sunquote_app.py", "sunquote_engine/ui_calculator_screen.py", "sunquote_engine/ui_results_screen.py"):
        with open(os.path.join(project_root, module), encoding="utf-8") as source:
            assert "use_container_width" not in source.read()
