import re

# --- Important Constants ---
SYSTEM_COST_PER_WATT = 2.75  # $/W installed
SYSTEM_COST_PER_KW = SYSTEM_COST_PER_WATT * 1000  # For consistency with our kW-based logic
FIXED_INSTALL_OVERHEAD = 5000  # Permits, interconnection, design ($)
AVG_PRODUCTION_PER_KW = 1200  # kWh/kW/yr national baseline

BASE_ELECTRICITY_RATE = 0.14  # $/kWh US average
RATE_ESCALATION = 0.025  # 2.5% annual utility rate increase
PANEL_DEGRADATION = 0.005  # 0.5% output loss per year (linear)
PROJECTION_YEARS = 25

LOAN_INTEREST_RATE = 0.065
LOAN_TERM_YEARS = 25
LOAN_DOWN_PAYMENT_PCT = 0.10

LEASE_TERM_YEARS = 20
LEASE_SAVINGS_SHARE = 0.65  # Lease payment as a share of first-year savings
LEASE_MIN_MONTHLY_PAYMENT = 50

PPA_RATE_FACTOR = 0.75  # PPA price as a share of the grid rate
PPA_ESCALATOR = 0.025
PPA_TERM_YEARS = 25

# Sizing heuristics
TARGET_OFFSET_FRACTION = 0.8  # Default share of consumption the sized system covers
USABLE_ROOF_FRACTION = 0.6
SQFT_PER_KW = 54
DEFAULT_MONTHLY_KWH = 500

# Environmental factors
CO2_LBS_PER_KWH = 0.4
CO2_LBS_PER_TREE = 20

INCENTIVE_LIFETIME_YEARS = 25  # Horizon used to value $/kWh production incentives
MAX_PAYBACK_SEARCH_YEARS = 50
SAVINGS_RANGE_SPREAD = 0.10

SUN_EXPOSURE_FACTORS = {
    "poor": 0.70,
    "fair": 0.85,
    "good": 1.00,
    "excellent": 1.15,
}
DEFAULT_SUN_FACTOR = 1.0

PROPERTY_TYPES = ["residential", "commercial", "nonprofit"]
TIMELINE_OPTIONS = ["immediate", "3-months", "6-months", "just-researching"]

STATE_NAMES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas", "CA": "California",
    "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware", "FL": "Florida", "GA": "Georgia",
    "HI": "Hawaii", "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi", "MO": "Missouri",
    "MT": "Montana", "NE": "Nebraska", "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey",
    "NM": "New Mexico", "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
    "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah", "VT": "Vermont",
    "VA": "Virginia", "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}
ALL_STATE_CODES = list(STATE_NAMES.keys())  # The 50 states, used for comparisons
SUPPORTED_REGION_NAMES = {**STATE_NAMES, "DC": "District of Columbia"}


# --- State Solar Resource Table (NREL NSRDB averages) ---
# peak_sun_hours: daily hours at 1000 W/m2, solar_radiation: kWh/m2/day
STATE_SUN_HOURS = {
    "AZ": {"peak_sun_hours": 6.5, "annual_sun_hours": 2372, "solar_radiation": 6.57, "avg_tilt": 22, "avg_azimuth": 180, "avg_shading": 8},
    "NM": {"peak_sun_hours": 6.2, "annual_sun_hours": 2263, "solar_radiation": 6.27, "avg_tilt": 23, "avg_azimuth": 180, "avg_shading": 10},
    "NV": {"peak_sun_hours": 6.0, "annual_sun_hours": 2190, "solar_radiation": 5.98, "avg_tilt": 24, "avg_azimuth": 180, "avg_shading": 5},
    "CA": {"peak_sun_hours": 5.8, "annual_sun_hours": 2117, "solar_radiation": 5.82, "avg_tilt": 18, "avg_azimuth": 180, "avg_shading": 12},
    "CO": {"peak_sun_hours": 5.5, "annual_sun_hours": 2007, "solar_radiation": 5.50, "avg_tilt": 25, "avg_azimuth": 180, "avg_shading": 10},
    "UT": {"peak_sun_hours": 5.6, "annual_sun_hours": 2044, "solar_radiation": 5.60, "avg_tilt": 26, "avg_azimuth": 180, "avg_shading": 8},
    "WY": {"peak_sun_hours": 5.3, "annual_sun_hours": 1934, "solar_radiation": 5.33, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 12},
    "MT": {"peak_sun_hours": 4.8, "annual_sun_hours": 1752, "solar_radiation": 4.80, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 15},
    "ID": {"peak_sun_hours": 5.0, "annual_sun_hours": 1825, "solar_radiation": 5.01, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 13},
    "OR": {"peak_sun_hours": 4.2, "annual_sun_hours": 1533, "solar_radiation": 4.20, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 20},
    "WA": {"peak_sun_hours": 3.9, "annual_sun_hours": 1423, "solar_radiation": 3.90, "avg_tilt": 32, "avg_azimuth": 180, "avg_shading": 22},
    "HI": {"peak_sun_hours": 6.0, "annual_sun_hours": 2190, "solar_radiation": 6.02, "avg_tilt": 15, "avg_azimuth": 180, "avg_shading": 15},
    "TX": {"peak_sun_hours": 5.3, "annual_sun_hours": 1934, "solar_radiation": 5.26, "avg_tilt": 20, "avg_azimuth": 180, "avg_shading": 10},
    "OK": {"peak_sun_hours": 5.0, "annual_sun_hours": 1825, "solar_radiation": 5.02, "avg_tilt": 23, "avg_azimuth": 180, "avg_shading": 12},
    "KS": {"peak_sun_hours": 5.2, "annual_sun_hours": 1898, "solar_radiation": 5.15, "avg_tilt": 24, "avg_azimuth": 180, "avg_shading": 11},
    "NE": {"peak_sun_hours": 5.0, "annual_sun_hours": 1825, "solar_radiation": 5.01, "avg_tilt": 26, "avg_azimuth": 180, "avg_shading": 13},
    "SD": {"peak_sun_hours": 4.8, "annual_sun_hours": 1752, "solar_radiation": 4.77, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 14},
    "ND": {"peak_sun_hours": 4.5, "annual_sun_hours": 1642, "solar_radiation": 4.50, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 15},
    "FL": {"peak_sun_hours": 5.5, "annual_sun_hours": 2007, "solar_radiation": 5.47, "avg_tilt": 18, "avg_azimuth": 180, "avg_shading": 15},
    "GA": {"peak_sun_hours": 4.8, "annual_sun_hours": 1752, "solar_radiation": 4.74, "avg_tilt": 22, "avg_azimuth": 180, "avg_shading": 18},
    "NC": {"peak_sun_hours": 4.7, "annual_sun_hours": 1715, "solar_radiation": 4.71, "avg_tilt": 24, "avg_azimuth": 180, "avg_shading": 17},
    "SC": {"peak_sun_hours": 4.9, "annual_sun_hours": 1788, "solar_radiation": 4.90, "avg_tilt": 22, "avg_azimuth": 180, "avg_shading": 16},
    "AL": {"peak_sun_hours": 4.6, "annual_sun_hours": 1679, "solar_radiation": 4.59, "avg_tilt": 21, "avg_azimuth": 180, "avg_shading": 19},
    "MS": {"peak_sun_hours": 4.7, "annual_sun_hours": 1715, "solar_radiation": 4.69, "avg_tilt": 21, "avg_azimuth": 180, "avg_shading": 20},
    "LA": {"peak_sun_hours": 4.7, "annual_sun_hours": 1715, "solar_radiation": 4.71, "avg_tilt": 20, "avg_azimuth": 180, "avg_shading": 21},
    "TN": {"peak_sun_hours": 4.5, "annual_sun_hours": 1642, "solar_radiation": 4.52, "avg_tilt": 24, "avg_azimuth": 180, "avg_shading": 20},
    "AR": {"peak_sun_hours": 4.7, "annual_sun_hours": 1715, "solar_radiation": 4.69, "avg_tilt": 23, "avg_azimuth": 180, "avg_shading": 18},
    "VA": {"peak_sun_hours": 4.5, "annual_sun_hours": 1642, "solar_radiation": 4.50, "avg_tilt": 26, "avg_azimuth": 180, "avg_shading": 18},
    "WV": {"peak_sun_hours": 4.0, "annual_sun_hours": 1460, "solar_radiation": 4.01, "avg_tilt": 27, "avg_azimuth": 180, "avg_shading": 22},
    "MD": {"peak_sun_hours": 4.3, "annual_sun_hours": 1569, "solar_radiation": 4.30, "avg_tilt": 27, "avg_azimuth": 180, "avg_shading": 19},
    "DE": {"peak_sun_hours": 4.4, "annual_sun_hours": 1606, "solar_radiation": 4.40, "avg_tilt": 27, "avg_azimuth": 180, "avg_shading": 18},
    "DC": {"peak_sun_hours": 4.3, "annual_sun_hours": 1569, "solar_radiation": 4.30, "avg_tilt": 27, "avg_azimuth": 180, "avg_shading": 20},
    "NJ": {"peak_sun_hours": 4.3, "annual_sun_hours": 1569, "solar_radiation": 4.32, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 20},
    "NY": {"peak_sun_hours": 4.0, "annual_sun_hours": 1460, "solar_radiation": 4.01, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 22},
    "PA": {"peak_sun_hours": 4.2, "annual_sun_hours": 1533, "solar_radiation": 4.15, "avg_tilt": 29, "avg_azimuth": 180, "avg_shading": 21},
    "CT": {"peak_sun_hours": 4.1, "annual_sun_hours": 1496, "solar_radiation": 4.10, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 21},
    "RI": {"peak_sun_hours": 4.2, "annual_sun_hours": 1533, "solar_radiation": 4.23, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 20},
    "MA": {"peak_sun_hours": 4.2, "annual_sun_hours": 1533, "solar_radiation": 4.15, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 21},
    "VT": {"peak_sun_hours": 3.9, "annual_sun_hours": 1423, "solar_radiation": 3.92, "avg_tilt": 32, "avg_azimuth": 180, "avg_shading": 23},
    "NH": {"peak_sun_hours": 4.0, "annual_sun_hours": 1460, "solar_radiation": 4.01, "avg_tilt": 31, "avg_azimuth": 180, "avg_shading": 22},
    "ME": {"peak_sun_hours": 4.0, "annual_sun_hours": 1460, "solar_radiation": 3.98, "avg_tilt": 32, "avg_azimuth": 180, "avg_shading": 23},
    "OH": {"peak_sun_hours": 4.2, "annual_sun_hours": 1533, "solar_radiation": 4.21, "avg_tilt": 29, "avg_azimuth": 180, "avg_shading": 20},
    "IN": {"peak_sun_hours": 4.3, "annual_sun_hours": 1569, "solar_radiation": 4.30, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 19},
    "IL": {"peak_sun_hours": 4.4, "annual_sun_hours": 1606, "solar_radiation": 4.42, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 18},
    "MI": {"peak_sun_hours": 4.0, "annual_sun_hours": 1460, "solar_radiation": 4.01, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 21},
    "WI": {"peak_sun_hours": 4.2, "annual_sun_hours": 1533, "solar_radiation": 4.21, "avg_tilt": 30, "avg_azimuth": 180, "avg_shading": 20},
    "MN": {"peak_sun_hours": 4.3, "annual_sun_hours": 1569, "solar_radiation": 4.33, "avg_tilt": 31, "avg_azimuth": 180, "avg_shading": 19},
    "IA": {"peak_sun_hours": 4.5, "annual_sun_hours": 1642, "solar_radiation": 4.50, "avg_tilt": 28, "avg_azimuth": 180, "avg_shading": 17},
    "MO": {"peak_sun_hours": 4.6, "annual_sun_hours": 1679, "solar_radiation": 4.63, "avg_tilt": 27, "avg_azimuth": 180, "avg_shading": 17},
    "AK": {"peak_sun_hours": 3.0, "annual_sun_hours": 1095, "solar_radiation": 2.93, "avg_tilt": 40, "avg_azimuth": 180, "avg_shading": 25},
}
US_AVG_PEAK_SUN_HOURS = 4.5
US_AVG_ROOF_DEFAULTS = {"tilt": 25, "azimuth": 180, "shading": 15, "source": "us_average"}

# Annual kWh per installed kW used when PVWatts is unavailable
STATE_PRODUCTION_FACTORS = {
    "AZ": 1450, "NM": 1400, "NV": 1400,
    "CA": 1350, "CO": 1350, "UT": 1350,
    "TX": 1300, "FL": 1250,
    "NC": 1150, "SC": 1150, "GA": 1150,
    "MA": 1050, "NJ": 1050,
    "NY": 1000, "PA": 1000, "CT": 1000,
    "VT": 950,
}
# Jan..Dec production shape, normalized when applied
MONTHLY_PRODUCTION_PROFILE = [0.85, 0.87, 1.0, 1.1, 1.15, 1.18, 1.15, 1.1, 1.0, 0.9, 0.8, 0.82]

# --- Residential Utility Rates (EIA state averages, $/kWh) ---
STATE_UTILITY_RATES = {
    "AL": 0.1254, "AK": 0.2195, "AZ": 0.1298, "AR": 0.1046, "CA": 0.1756,
    "CO": 0.1287, "CT": 0.2283, "DE": 0.1389, "FL": 0.1205, "GA": 0.1196,
    "HI": 0.2867, "ID": 0.0893, "IL": 0.1393, "IN": 0.1247, "IA": 0.1268,
    "KS": 0.1266, "KY": 0.1098, "LA": 0.1039, "ME": 0.1494, "MD": 0.1426,
    "MA": 0.1487, "MI": 0.1556, "MN": 0.1233, "MS": 0.1097, "MO": 0.1177,
    "MT": 0.1038, "NE": 0.1239, "NV": 0.1269, "NH": 0.1848, "NJ": 0.1545,
    "NM": 0.1131, "NY": 0.1896, "NC": 0.1209, "ND": 0.1132, "OH": 0.1319,
    "OK": 0.1069, "OR": 0.1221, "PA": 0.1381, "RI": 0.1617, "SC": 0.1246,
    "SD": 0.1195, "TN": 0.1171, "TX": 0.1258, "UT": 0.1094, "VT": 0.1757,
    "VA": 0.1257, "WA": 0.1223, "WV": 0.1191, "WI": 0.1361, "WY": 0.1153,
}

# (first 3-digit prefix, last prefix, $/kWh). Unlisted prefixes use the state, then the national average.
ZIP_PREFIX_RATE_RANGES = [
    (10, 69, 0.22),    # New England
    (70, 89, 0.14),    # PR/VI
    (100, 199, 0.22),  # NY/NJ metro, PA
    (200, 219, 0.14),  # DC/MD
    (220, 246, 0.13),  # VA
    (247, 268, 0.12),  # WV
    (270, 289, 0.12),  # NC
    (290, 299, 0.14),  # SC
    (300, 319, 0.13),  # GA
    (320, 349, 0.13),  # FL
    (350, 369, 0.13),  # AL
    (370, 385, 0.12),  # TN
    (386, 397, 0.12),  # MS
    (400, 427, 0.12),  # KY
    (430, 458, 0.13),  # OH
    (460, 479, 0.14),  # IN
    (480, 499, 0.18),  # MI
    (500, 528, 0.14),  # IA
    (530, 549, 0.15),  # WI
    (550, 567, 0.14),  # MN
    (570, 577, 0.13),  # SD
    (580, 588, 0.12),  # ND
    (590, 599, 0.12),  # MT
    (600, 629, 0.15),  # IL
    (630, 658, 0.13),  # MO
    (660, 679, 0.14),  # KS
    (680, 693, 0.12),  # NE
    (700, 714, 0.12),  # LA
    (716, 729, 0.11),  # AR
    (730, 749, 0.11),  # OK
    (750, 799, 0.13),  # TX
    (800, 816, 0.14),  # CO
    (820, 831, 0.11),  # WY
    (832, 838, 0.11),  # ID
    (840, 847, 0.11),  # UT
    (850, 865, 0.13),  # AZ
    (870, 884, 0.14),  # NM
    (889, 898, 0.12),  # NV
    (900, 961, 0.27),  # CA
    (967, 968, 0.37),  # HI
    (970, 979, 0.12),  # OR
    (980, 994, 0.11),  # WA
    (995, 999, 0.23),  # AK
]

# --- Static Tooltips / Helper Texts ---
TOOLTIPS = {
    # --- Step 1: Address ---
    "address": "Your property address is used to find roof data, local sun hours, your utility rate, and state incentives.",
    "state": "Incentives and default electricity rates are looked up by state.",
    # --- Step 2: Usage ---
    "monthly_kwh": "Average monthly usage from your utility bill. If you leave this at 0 we estimate it from your bill amount.",
    "bill_amount": "Average monthly electric bill. Converted to kWh at the national average rate of $0.14/kWh when usage is not entered.",
    # --- Step 3: Roof ---
    "roof_square_feet": "Total roof area. About 60% is assumed usable, at roughly 54 sq ft per kW of panels.",
    "sun_exposure": "How much direct sun the roof gets. Poor (heavy shade) to Excellent (unshaded, south-facing).",
    # --- Step 4: Preferences ---
    "wants_battery": "Battery storage is quoted separately by the installer and does not change these estimates.",
    "timeline": "When you would like the system installed.",
    "financing_preference": "Which financing option you are most interested in. All options are shown on the results page.",
    # --- Results ---
    "payoff_years": "Fractional year in which cumulative savings first cover the money you put in.",
    "roi": "25-year net benefit divided by the total amount invested.",
    "grid_independence": "Share of your annual usage covered by the system's first-year production.",
}


class InputValidationError(Exception):
    """Raised by the outer request layer for malformed or missing inputs."""

    status_code = 400

    def __init__(self, errors, field=None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        self.field = field
        super().__init__("; ".join(self.errors))

    def to_response(self) -> dict:
        response = {"error": "Invalid input", "details": self.errors, "status": self.status_code}
        if self.field:
            response["field"] = self.field
        return response


# --- Progress Badge Utility ---
def generate_progress_bar_markdown(screen_flow_map, current_screen_key, final_step_completed=False):
    """
    Generates markdown for a progress bar with completed, current, and future steps highlighted.
    """
    current_step_num = screen_flow_map.get(current_screen_key, (0, ''))[0]
    if final_step_completed:
        current_step_num = len(screen_flow_map) + 1

    progress_display_list = []
    for screen_key, (step_num, step_name) in screen_flow_map.items():
        if step_num < current_step_num:
            progress_display_list.append(f":green-badge[:material/task_alt: {step_num}: {step_name}]")
        elif screen_key == current_screen_key:
            progress_display_list.append(f":violet-badge[:material/screen_record: {step_num}: {step_name}]")
        else:
            progress_display_list.append(f":grey-badge[:material/radio_button_partial: {step_num}: {step_name}]")

    return " **--** ".join(progress_display_list)


def normalize_state_code(state) -> str:
    return state.strip().upper() if isinstance(state, str) else ""


def extract_zip_code(address: str):
    """
    Finds a 5-digit ZIP in an address string.
    Takes the last 5-digit group so house numbers are not mistaken for ZIP codes.
    """
    if not address or not isinstance(address, str):
        return None
    address_clean = address.strip()
    if address_clean.isdigit() and len(address_clean) == 5:
        return address_clean
    all_five_digit_numbers = re.findall(r'\b\d{5}\b', address_clean)
    return all_five_digit_numbers[-1] if all_five_digit_numbers else None


def validate_zip_code(zip_code) -> tuple[bool, str]:
    if not isinstance(zip_code, str) or not re.fullmatch(r"\d{5}", zip_code.strip()):
        return False, f"Invalid ZIP code '{zip_code}'. Expected exactly 5 digits."
    return True, ""


def validate_coordinates(latitude, longitude) -> tuple[bool, str]:
    if latitude is None or longitude is None:
        return False, "Missing required parameters: latitude, longitude"
    try:
        lat, lon = float(latitude), float(longitude)
    except (TypeError, ValueError):
        return False, "Latitude and longitude must be numbers."
    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        return False, f"Coordinates out of range: ({lat}, {lon})."
    return True, ""


def validate_calculation_input(inputs: dict) -> tuple[bool, list[str]]:
    """
    Checks a calculator input dict before it reaches the calculation core.
    Returns (is_valid, list_of_error_messages).
    """
    errors = []
    if not isinstance(inputs, dict):
        return False, ["Calculation input must be a mapping."]

    state = normalize_state_code(inputs.get("state"))
    if state not in SUPPORTED_REGION_NAMES:
        errors.append(f"Unknown or missing state code '{inputs.get('state')}'.")

    if inputs.get("sun_exposure") not in SUN_EXPOSURE_FACTORS:
        errors.append(f"Sun exposure must be one of {', '.join(SUN_EXPOSURE_FACTORS)}.")

    roof = inputs.get("roof_square_feet")
    if isinstance(roof, bool) or not isinstance(roof, (int, float)) or roof <= 0:
        errors.append("Roof area (sq ft) is required and must be greater than 0.")

    for field in ("monthly_kwh", "bill_amount"):
        value = inputs.get(field)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            errors.append(f"'{field}' must be a non-negative number.")

    return len(errors) == 0, errors


def require_valid_input(inputs: dict) -> dict:
    is_valid, errors = validate_calculation_input(inputs)
    if not is_valid:
        raise InputValidationError(errors)
    return inputs


# --- State Lookup Helpers ---
def get_state_sun_data(state_code):
    return STATE_SUN_HOURS.get(normalize_state_code(state_code))


def get_peak_sun_hours(state_code) -> float:
    data = get_state_sun_data(state_code)
    return data["peak_sun_hours"] if data else US_AVG_PEAK_SUN_HOURS


def get_state_fallback_roof_data(state_code) -> dict:
    """Typical roof tilt/azimuth/shading for a state, used when roof imagery is unavailable."""
    data = get_state_sun_data(state_code)
    if not data:
        return dict(US_AVG_ROOF_DEFAULTS)
    return {
        "tilt": data["avg_tilt"],
        "azimuth": data["avg_azimuth"],
        "shading": data["avg_shading"],
        "source": "state_average",
        "state_name": SUPPORTED_REGION_NAMES.get(normalize_state_code(state_code)),
    }


def get_default_utility_rate(state_code) -> float:
    return STATE_UTILITY_RATES.get(normalize_state_code(state_code), BASE_ELECTRICITY_RATE)


def find_zip_prefix_rate(zip_code):
    """Residential $/kWh for the first three ZIP digits, or None when no range covers them."""
    if not zip_code or len(str(zip_code)) < 3 or not str(zip_code)[:3].isdigit():
        return None
    prefix = int(str(zip_code)[:3])
    for low, high, rate in ZIP_PREFIX_RATE_RANGES:
        if low <= prefix <= high:
            return rate
    return None


def estimate_rate_by_zip_prefix(zip_code, state_code=None) -> float:
    """Rough residential $/kWh: ZIP prefix range, then the state average, then the national rate."""
    rate = find_zip_prefix_rate(zip_code)
    if rate is not None:
        return rate
    return get_default_utility_rate(state_code)


def calculate_annual_electricity_cost(annual_kwh, rate_per_kwh) -> int:
    return round(annual_kwh * rate_per_kwh)


def calculate_optimal_tilt(latitude) -> float:
    # Rule of thumb: tilt ~ latitude, bounded to practical roof mounts
    return max(5.0, min(50.0, abs(float(latitude))))


def calculate_optimal_azimuth(latitude) -> int:
    return 180 if float(latitude) >= 0 else 0
