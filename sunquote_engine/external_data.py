import functools
import logging
import os
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from sunquote_engine.cache_handler import CACHE_TTL, ResponseCache, SlidingWindowRateLimiter, generate_cache_key
from sunquote_engine.utils import (
    AVG_PRODUCTION_PER_KW, MONTHLY_PRODUCTION_PROFILE, STATE_PRODUCTION_FACTORS,
    InputValidationError, calculate_optimal_azimuth, calculate_optimal_tilt,
    estimate_rate_by_zip_prefix, get_peak_sun_hours, get_state_fallback_roof_data,
    get_state_sun_data, normalize_state_code, validate_coordinates, validate_zip_code
)

logger = logging.getLogger(__name__)

PVWATTS_API_ENDPOINT_V8 = "https://developer.nrel.gov/api/pvwatts/v8.json"
GOOGLE_SOLAR_BUILDING_INSIGHTS_URL = "https://solar.googleapis.com/v1/buildingInsights:findClosest"
OPENEI_UTILITY_RATES_URL = "https://api.openei.org/utility_rates"
PLACES_AUTOCOMPLETE_URL = "https://maps.googleapis.com/maps/api/place/autocomplete/json"
PLACES_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"

DEFAULT_TIMEOUT = 15
RETRY_STATUS_CODES = [429, 500, 502, 503, 504]
SQFT_PER_SQ_METER = 10.764
ASSUMED_PANEL_KW = 0.4
FALLBACK_SYSTEM_EFFICIENCY = 0.75

# --- API Key Setup: filled from st.secrets by the app, env vars as a fallback ---
API_KEY_ENV_VARS = {
    "nrel": "NREL_API_KEY",
    "google_solar": "GOOGLE_SOLAR_API_KEY",
    "openei": "OPENEI_API_KEY",
    "google_places": "GOOGLE_PLACES_API_KEY",
}
API_KEYS_HOLDER = {name: None for name in API_KEY_ENV_VARS}
FEATURE_FLAGS = {"use_real_solar_api": False}

RATE_LIMITERS = {
    "nrel": SlidingWindowRateLimiter(max_requests=1000, window_seconds=3600),
    "google_solar": SlidingWindowRateLimiter(max_requests=600, window_seconds=60),
    "openei": SlidingWindowRateLimiter(max_requests=100, window_seconds=60),
    "google_places": SlidingWindowRateLimiter(max_requests=600, window_seconds=60),
    "nominatim": SlidingWindowRateLimiter(max_requests=1, window_seconds=1),
}
RESPONSE_CACHE = ResponseCache()
_SESSION_HOLDER = {"session": None}


class UpstreamDataError(Exception):
    """An external data source could not provide a usable answer."""


def load_api_keys(secrets=None):
    """
    Fills API_KEYS_HOLDER from a secrets mapping (st.secrets), then from environment variables.
    Returns the names of the keys that are still missing.
    """
    for name, env_var in API_KEY_ENV_VARS.items():
        value = secrets.get(env_var) if secrets is not None else None
        API_KEYS_HOLDER[name] = value or os.getenv(env_var)

    flag = secrets.get("USE_REAL_SOLAR_API") if secrets is not None else None
    flag = flag if flag is not None else os.getenv("USE_REAL_SOLAR_API", "false")
    FEATURE_FLAGS["use_real_solar_api"] = str(flag).lower() in ("1", "true", "yes")
    return [name for name, value in API_KEYS_HOLDER.items() if not value]


def get_api_key(name):
    return API_KEYS_HOLDER.get(name) or os.getenv(API_KEY_ENV_VARS[name])


# --- HTTP plumbing ---
def build_retrying_session(total_retries=3, backoff_factor=0.5, backoff_max=30):
    """
    requests Session that retries GETs on 429/5xx and connection errors with jittered exponential backoff.
    Other 4xx responses are returned straight away.
    """
    retry = Retry(
        total=total_retries,
        connect=total_retries,
        read=total_retries,
        status=total_retries,
        backoff_factor=backoff_factor,
        backoff_jitter=backoff_factor,
        backoff_max=backoff_max,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=frozenset(["GET"]),
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": "SunQuoteStreamlitApp/1.0", "Accept": "application/json"})
    return session


def get_session():
    if _SESSION_HOLDER["session"] is None:
        _SESSION_HOLDER["session"] = build_retrying_session()
    return _SESSION_HOLDER["session"]


def _get_json(service, url, params, session=None, limiter=None, timeout=DEFAULT_TIMEOUT):
    limiter = limiter or RATE_LIMITERS[service]
    if not limiter.can_request():
        raise UpstreamDataError(f"{service} rate limit reached, resets in {limiter.get_reset_time():.0f}s")
    response = (session or get_session()).get(url, params=params, timeout=timeout)
    response.raise_for_status()
    return response.json()


def with_fallback(fallback):
    """
    Turns upstream failures (network errors, non-2xx, missing keys, bad payloads)
    into the deterministic `fallback`, called with the same arguments.
    Input validation errors still propagate to the caller.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (requests.exceptions.RequestException, UpstreamDataError, KeyError, TypeError, ValueError) as e:
                logger.warning("%s unavailable (%s); using fallback data", func.__name__, e)
                return fallback(*args, **kwargs)
        return wrapper
    return decorator


# ======================= NREL PVWATTS =======================
def calculate_fallback_production(system_capacity_kw, state_code=None):
    """
    Annual and monthly production from state averages when PVWatts is unavailable.
    """
    state = normalize_state_code(state_code)
    if state in STATE_PRODUCTION_FACTORS:
        kwh_per_kw = STATE_PRODUCTION_FACTORS[state]
    elif get_state_sun_data(state):
        kwh_per_kw = get_peak_sun_hours(state) * 365 * FALLBACK_SYSTEM_EFFICIENCY
    else:
        kwh_per_kw = AVG_PRODUCTION_PER_KW

    annual = system_capacity_kw * kwh_per_kw
    profile_total = sum(MONTHLY_PRODUCTION_PROFILE)
    monthly = [round(annual * factor / profile_total) for factor in MONTHLY_PRODUCTION_PROFILE]
    return {
        "source": "fallback",
        "annual_production": round(annual),
        "monthly_production": monthly,
        "capacity_factor": round(annual / (system_capacity_kw * 8760) * 100, 1) if system_capacity_kw > 0 else 0.0,
        "kwh_per_kw": kwh_per_kw,
        "system": {"capacity": system_capacity_kw, "state": state or None},
    }


def _pvwatts_fallback(latitude, longitude, system_capacity_kw, state_code=None, **kwargs):
    return calculate_fallback_production(system_capacity_kw or 0.0, state_code)


@with_fallback(_pvwatts_fallback)
def fetch_pvwatts_production(latitude, longitude, system_capacity_kw, state_code=None,
                             tilt=None, azimuth=None, losses=14.08, array_type=1, module_type=1,
                             cache=None, limiter=None, session=None):
    """
    Monthly AC production from NREL PVWatts v8.
    Returns {"source": "nrel", "annual_production", "monthly_production", ...}, or the
    state-average estimate (source "fallback") on any upstream problem.
    """
    is_valid, reason = validate_coordinates(latitude, longitude)
    if not is_valid:
        raise UpstreamDataError(reason)
    if not system_capacity_kw or not 0.05 <= float(system_capacity_kw) <= 500000:
        raise UpstreamDataError(f"Invalid system capacity: {system_capacity_kw} kW")
    api_key = get_api_key("nrel")
    if not api_key:
        raise UpstreamDataError("NREL API key is missing")

    tilt = calculate_optimal_tilt(latitude) if tilt is None else tilt
    azimuth = calculate_optimal_azimuth(latitude) if azimuth is None else azimuth
    cache = cache or RESPONSE_CACHE
    cache_key = generate_cache_key("pvwatts", round(float(latitude), 4), round(float(longitude), 4),
                                   system_capacity_kw, tilt, azimuth, losses, array_type, module_type)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    params = {
        "api_key": api_key,
        "lat": latitude,
        "lon": longitude,
        "system_capacity": float(system_capacity_kw),
        "azimuth": azimuth,
        "tilt": tilt,
        "array_type": array_type,
        "module_type": module_type,
        "losses": losses,
        "timeframe": "monthly",
    }
    data = _get_json("nrel", PVWATTS_API_ENDPOINT_V8, params, session=session, limiter=limiter)

    outputs = data.get("outputs") or {}
    ac_monthly = outputs.get("ac_monthly")
    if not ac_monthly or len(ac_monthly) != 12:
        errors = data.get("errors") or ["PVWatts returned no monthly outputs"]
        raise UpstreamDataError(str(errors[0]) if isinstance(errors, list) else str(errors))

    result = {
        "source": "nrel",
        "annual_production": round(sum(ac_monthly)),
        "monthly_production": [round(value) for value in ac_monthly],
        "capacity_factor": round(float(outputs.get("capacity_factor", 0.0)), 1),
        "solar_radiation_annual": outputs.get("solrad_annual"),
        "station_info": data.get("station_info", {}),
        "system": {"capacity": float(system_capacity_kw), "tilt": tilt, "azimuth": azimuth, "losses": losses},
    }
    cache.set(cache_key, result, CACHE_TTL["SOLAR_DATA"])
    logger.info("PVWatts production fetched: %s kWh/yr for %s kW", result["annual_production"], system_capacity_kw)
    return result


# ======================= GOOGLE SOLAR =======================
def sun_exposure_category(sun_exposure_pct):
    """Maps a 0-100 sun exposure percentage onto the calculator's categories."""
    if sun_exposure_pct >= 80:
        return "excellent"
    if sun_exposure_pct >= 60:
        return "good"
    if sun_exposure_pct >= 40:
        return "fair"
    return "poor"


def _segment_from_stats(segment, max_sunshine_hours):
    stats = segment.get("stats", {})
    quantiles = stats.get("sunshineQuantiles") or []
    median_hours = quantiles[5] if len(quantiles) > 5 else 0
    sun_fraction = min(1.0, median_hours / max_sunshine_hours) if max_sunshine_hours else 0.0
    area_m2 = stats.get("areaMeters2", 0.0)
    box = segment.get("boundingBox", {})
    return {
        "area_m2": area_m2,
        "area_sqft": round(area_m2 * SQFT_PER_SQ_METER),
        "pitch_degrees": segment.get("pitchDegrees"),
        "azimuth_degrees": segment.get("azimuthDegrees"),
        "sun_exposure_pct": max(0, min(100, round(sun_fraction * 100))),
        # 85% usable area, 20% panel efficiency, 4.5 peak sun hours
        "estimated_annual_production": round(area_m2 * 0.85 * 0.20 * 4.5 * 365 * sun_fraction),
        "center": segment.get("center"),
        "bounds": {
            "north": box.get("ne", {}).get("latitude"),
            "south": box.get("sw", {}).get("latitude"),
            "east": box.get("ne", {}).get("longitude"),
            "west": box.get("sw", {}).get("longitude"),
        },
    }


def transform_building_insights(data):
    """
    Reduces a buildingInsights:findClosest payload to what the calculator needs.
    The largest panel configuration (last in Google's ascending list) drives the override.
    """
    potential = data["solarPotential"]
    max_sunshine_hours = potential.get("maxSunshineHoursPerYear") or 1800
    segments = [_segment_from_stats(segment, max_sunshine_hours) for segment in potential.get("roofSegmentStats", [])]

    panel_configs = [
        {
            "panels_count": config["panelsCount"],
            "yearly_energy_kwh": config["yearlyEnergyDcKwh"],
            "system_size_kw": round(config["panelsCount"] * ASSUMED_PANEL_KW, 2),
        }
        for config in potential.get("solarPanelConfigs", [])[-5:]
    ]
    if not panel_configs and potential.get("maxArrayPanelsCount", 0) > 0:
        panels = potential["maxArrayPanelsCount"]
        system_kw = panels * ASSUMED_PANEL_KW
        peak_sun_hours = max_sunshine_hours / 365
        panel_configs.append({
            "panels_count": panels,
            "yearly_energy_kwh": round(system_kw * peak_sun_hours * 365 * 0.80),
            "system_size_kw": round(system_kw, 2),
        })

    if segments:
        total_area = sum(segment["area_m2"] for segment in segments) or 1.0
        avg_sun_pct = sum(segment["sun_exposure_pct"] * segment["area_m2"] for segment in segments) / total_area
    else:
        avg_sun_pct = 75.0

    best = panel_configs[-1] if panel_configs else None
    whole_roof_m2 = (potential.get("wholeRoofStats") or {}).get("areaMeters2", 0.0)
    return {
        "source": "google_solar_api",
        "center": data.get("center"),
        "imagery_quality": data.get("imageryQuality"),
        "imagery_date": data.get("imageryDate"),
        "roof_segments": segments,
        "panel_configs": panel_configs,
        "max_array_panels": potential.get("maxArrayPanelsCount", 0),
        "max_sunshine_hours": max_sunshine_hours,
        "roof_area_sqft": round(whole_roof_m2 * SQFT_PER_SQ_METER),
        "carbon_offset_kg_per_mwh": potential.get("carbonOffsetFactorKgPerMwh", 0),
        "sun_exposure_pct": round(avg_sun_pct),
        "sun_exposure": sun_exposure_category(avg_sun_pct),
        "system_size_kw": best["system_size_kw"] if best else None,
        "annual_production_kwh": best["yearly_energy_kwh"] if best else None,
    }


def _building_insights_fallback(latitude, longitude, state_code=None, **kwargs):
    roof = get_state_fallback_roof_data(state_code)
    sun_pct = 100 - roof["shading"]
    return {
        "source": roof["source"],
        "center": {"latitude": latitude, "longitude": longitude},
        "roof_segments": [],
        "panel_configs": [],
        "tilt": roof["tilt"],
        "azimuth": roof["azimuth"],
        "roof_area_sqft": None,
        "sun_exposure_pct": sun_pct,
        "sun_exposure": sun_exposure_category(sun_pct),
        "system_size_kw": None,
        "annual_production_kwh": None,
    }


@with_fallback(_building_insights_fallback)
def fetch_building_insights(latitude, longitude, state_code=None, cache=None, limiter=None, session=None):
    """
    Roof segments and panel layouts from the Google Solar API.
    Disabled unless FEATURE_FLAGS['use_real_solar_api'] is set and a key is configured;
    otherwise returns state-average roof data with no production override.
    """
    if not FEATURE_FLAGS["use_real_solar_api"]:
        raise UpstreamDataError("Google Solar API disabled")
    is_valid, reason = validate_coordinates(latitude, longitude)
    if not is_valid:
        raise UpstreamDataError(reason)
    api_key = get_api_key("google_solar")
    if not api_key:
        raise UpstreamDataError("Google Solar API key is missing")

    cache = cache or RESPONSE_CACHE
    cache_key = generate_cache_key("building_insights", round(float(latitude), 5), round(float(longitude), 5))
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    params = {
        "location.latitude": latitude,
        "location.longitude": longitude,
        "requiredQuality": "HIGH",
        "key": api_key,
    }
    data = _get_json("google_solar", GOOGLE_SOLAR_BUILDING_INSIGHTS_URL, params, session=session, limiter=limiter)
    result = transform_building_insights(data)
    cache.set(cache_key, result, CACHE_TTL["SOLAR_DATA"])
    logger.info("Google Solar insights fetched (%s imagery, %d segments)",
                result["imagery_quality"], len(result["roof_segments"]))
    return result


# ======================= OPENEI UTILITY RATES =======================
def _utility_rate_fallback(zip_code, state_code=None, **kwargs):
    return {
        "zip": zip_code,
        "average_rate": estimate_rate_by_zip_prefix(zip_code, state_code),
        "utility_name": None,
        "source": "fallback",
    }


def fetch_utility_rate(zip_code, state_code=None, cache=None, limiter=None, session=None):
    """
    Residential $/kWh for a ZIP code. A malformed ZIP raises InputValidationError;
    any upstream failure returns the ZIP-prefix estimate.
    """
    is_valid, reason = validate_zip_code(zip_code)
    if not is_valid:
        raise InputValidationError(reason, field="zip")
    return _fetch_openei_rate(zip_code.strip(), state_code, cache=cache, limiter=limiter, session=session)


@with_fallback(_utility_rate_fallback)
def _fetch_openei_rate(zip_code, state_code=None, cache=None, limiter=None, session=None):
    api_key = get_api_key("openei")
    if not api_key:
        raise UpstreamDataError("OpenEI API key is missing")

    cache = cache or RESPONSE_CACHE
    cache_key = generate_cache_key("openei", zip_code)
    cached = cache.get(cache_key)
    if cached is not None:
        return {**cached, "source": "openei-cached"}

    params = {
        "version": "8",
        "format": "json",
        "api_key": api_key,
        "address": zip_code,
        "sector": "Residential",
        "approved": "true",
        "limit": "10",
    }
    data = _get_json("openei", OPENEI_UTILITY_RATES_URL, params, session=session, limiter=limiter)
    items = [item for item in data.get("items", []) if item.get("utility_name") and item.get("label")]
    if not items:
        raise UpstreamDataError(f"No utility rate schedules for ZIP {zip_code}")

    # Rate schedules rarely carry a flat $/kWh; use the regional estimate when they don't
    flat_rate = items[0].get("rate")
    rate = float(flat_rate) if isinstance(flat_rate, (int, float)) and flat_rate > 0 else estimate_rate_by_zip_prefix(zip_code, state_code)
    result = {
        "zip": zip_code,
        "average_rate": rate,
        "utility_name": items[0]["utility_name"],
        "rate_schedules": len(items),
        "source": "openei",
    }
    cache.set(cache_key, result, CACHE_TTL["UTILITY_RATES"])
    return result


# ======================= ADDRESS LOOKUP =======================
def _no_predictions(text, **kwargs):
    return []


@with_fallback(_no_predictions)
def places_autocomplete(text, cache=None, limiter=None, session=None):
    """US street-address suggestions: [{"description", "place_id"}]."""
    if not text or len(text.strip()) < 2:
        return []
    api_key = get_api_key("google_places")
    if not api_key:
        raise UpstreamDataError("Google Places API key is missing")

    cache = cache or RESPONSE_CACHE
    cache_key = generate_cache_key("places_autocomplete", text.strip().lower())
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    params = {"input": text.strip(), "key": api_key, "types": "address", "components": "country:us"}
    data = _get_json("google_places", PLACES_AUTOCOMPLETE_URL, params, session=session, limiter=limiter)
    predictions = [
        {"description": item["description"], "place_id": item["place_id"]}
        for item in data.get("predictions", [])
    ]
    cache.set(cache_key, predictions, CACHE_TTL["ADDRESSES"])
    return predictions


def parse_place_details(result):
    components = {}
    for component in result.get("address_components", []):
        for component_type in component.get("types", []):
            components[component_type] = component
    location = result["geometry"]["location"]
    return {
        "formatted_address": result.get("formatted_address"),
        "latitude": location["lat"],
        "longitude": location["lng"],
        "state_code": components.get("administrative_area_level_1", {}).get("short_name"),
        "zip_code": components.get("postal_code", {}).get("short_name"),
        "city": components.get("locality", {}).get("long_name"),
        "source": "google_places",
    }


def _no_place(place_id, **kwargs):
    return None


@with_fallback(_no_place)
def place_details(place_id, cache=None, limiter=None, session=None):
    """Coordinates and address parts for a Places prediction, or None."""
    if not place_id:
        raise InputValidationError("Missing place_id", field="place_id")
    api_key = get_api_key("google_places")
    if not api_key:
        raise UpstreamDataError("Google Places API key is missing")

    cache = cache or RESPONSE_CACHE
    cache_key = generate_cache_key("place_details", place_id)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    params = {"place_id": place_id, "key": api_key, "fields": "formatted_address,address_components,geometry"}
    data = _get_json("google_places", PLACES_DETAILS_URL, params, session=session, limiter=limiter)
    if data.get("status") not in (None, "OK"):
        raise UpstreamDataError(f"Places details status {data.get('status')}")
    details = parse_place_details(data["result"])
    cache.set(cache_key, details, CACHE_TTL["ADDRESSES"])
    return details


@with_fallback(_no_place)
def geocode_address_nominatim(address, cache=None, limiter=None, session=None):
    """
    Free-text geocoding through OpenStreetMap Nominatim, used when Places is not configured.
    A bare 5-digit input is searched as a postal code to avoid matching house numbers.
    """
    if not address or not address.strip():
        return None
    cache = cache or RESPONSE_CACHE
    cache_key = generate_cache_key("nominatim", address.strip().lower())
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    address_clean = address.strip()
    params = {"format": "json", "addressdetails": 1, "limit": 1, "countrycodes": "us"}
    if address_clean.isdigit() and len(address_clean) == 5:
        params["postalcode"] = address_clean
    else:
        params["q"] = address_clean

    data = _get_json("nominatim", NOMINATIM_SEARCH_URL, params, session=session, limiter=limiter, timeout=10)
    if not data:
        raise UpstreamDataError(f"Address '{address}' not found by Nominatim")
    match = data[0]
    details = match.get("address", {})
    iso_region = details.get("ISO3166-2-lvl4", "")
    result = {
        "formatted_address": match.get("display_name"),
        "latitude": float(match["lat"]),
        "longitude": float(match["lon"]),
        "state_code": iso_region.split("-")[-1] if iso_region.startswith("US-") else None,
        "zip_code": details.get("postcode"),
        "city": details.get("city") or details.get("town") or details.get("village"),
        "source": "nominatim",
    }
    cache.set(cache_key, result, CACHE_TTL["ADDRESSES"])
    return result


def resolve_address(address):
    """
    Address text -> location dict. Google Places when configured, Nominatim otherwise.
    Returns None when neither can place the address.
    """
    if get_api_key("google_places"):
        predictions = places_autocomplete(address)
        if predictions:
            details = place_details(predictions[0]["place_id"])
            if details:
                return details
    return geocode_address_nominatim(address)
