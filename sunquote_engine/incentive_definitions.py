from datetime import date
from sunquote_engine.utils import STATE_NAMES

# Stable utility identities. Incentive records point at these by id, never by display name.
UTILITY_PROVIDERS = {
    "tva": {"name": "Tennessee Valley Authority", "short_name": "TVA", "aliases": ["tva"], "states": ["AL", "TN", "MS", "KY"]},
    "aps": {"name": "Arizona Public Service", "short_name": "APS", "aliases": ["aps"], "states": ["AZ"]},
    "srp": {"name": "Salt River Project", "short_name": "SRP", "aliases": ["srp"], "states": ["AZ"]},
    "pge": {"name": "Pacific Gas and Electric", "short_name": "PG&E", "aliases": ["pg&e", "pge", "pacific gas & electric"], "states": ["CA"]},
    "sce": {"name": "Southern California Edison", "short_name": "SCE", "aliases": ["sce", "socal edison"], "states": ["CA"]},
    "xcel": {"name": "Xcel Energy", "short_name": "Xcel", "aliases": ["xcel"], "states": ["CO", "MN"]},
    "georgia_power": {"name": "Georgia Power", "short_name": "Georgia Power", "aliases": [], "states": ["GA"]},
    "heco": {"name": "Hawaiian Electric", "short_name": "HECO", "aliases": ["heco", "hawaiian electric company"], "states": ["HI"]},
    "nv_energy": {"name": "NV Energy", "short_name": "NV Energy", "aliases": ["nevada energy"], "states": ["NV"]},
    "focus_on_energy": {"name": "Focus on Energy", "short_name": "Focus on Energy", "aliases": ["wisconsin focus on energy"], "states": ["WI"]},
}

INCENTIVE_TYPES = ["rebate", "grant", "tax-exemption", "sales-tax", "other"]
INCENTIVE_UNITS = ["dollars", "$/watt", "$/kWh", "percentage"]


def resolve_utility_id(name):
    """
    Maps a utility display name, short name, or alias to its stable id.
    Returns None for unknown utilities.
    """
    if not name:
        return None
    needle = name.strip().lower()
    for utility_id, utility in UTILITY_PROVIDERS.items():
        candidates = {utility_id, utility["name"].lower(), utility["short_name"].lower(), *utility["aliases"]}
        if needle in candidates:
            return utility_id
    return None


def get_utility_name(utility_id):
    utility = UTILITY_PROVIDERS.get(utility_id)
    return utility["short_name"] if utility else None


def _program(state_code, incentive_id, name, incentive_type, amount, unit,
             description="", utility_id=None, max_amount=None, min_system_size=None,
             max_system_size=None, eligible_property_types=("residential",),
             start_date=None, end_date=None, website=None, is_active=True):
    return {
        "id": incentive_id,
        "state": STATE_NAMES[state_code],
        "state_code": state_code,
        "utility_id": utility_id,
        "type": incentive_type,
        "name": name,
        "description": description,
        "amount": amount,
        "unit": unit,
        "max_amount": max_amount,
        "min_system_size": min_system_size,
        "max_system_size": max_system_size,
        "eligible_property_types": list(eligible_property_types),
        "start_date": start_date,
        "end_date": end_date,
        "is_active": is_active,
        "website": website,
    }


RES = ("residential",)
RES_COM = ("residential", "commercial")

# Structured state incentive catalog, keyed by state code
INCENTIVES_DATABASE = {
    # ==================== SOUTHEAST ====================
    "AL": [
        _program("AL", "al-1", "TVA Residential Solar Rebate", "rebate", 0.75, "$/watt",
                 description="Rebate for residential solar installations",
                 utility_id="tva", max_amount=6000, min_system_size=2, max_system_size=20,
                 website="https://www.tva.gov"),
    ],
    "AR": [],
    "FL": [
        _program("FL", "fl-1", "Florida Sales Tax Exemption", "sales-tax", 6.0, "percentage",
                 description="Sales tax exemption on solar equipment"),
    ],
    "GA": [
        _program("GA", "ga-1", "Georgia Power Solar Rebate", "rebate", 0.50, "$/watt",
                 description="Utility rebate for new residential solar",
                 utility_id="georgia_power", max_amount=3500, min_system_size=2, max_system_size=25),
    ],
    "KY": [],
    "LA": [],
    "MS": [],
    "NC": [
        _program("NC", "nc-1", "North Carolina Sales Tax Exemption", "sales-tax", 4.75, "percentage",
                 description="Sales tax exemption on solar equipment",
                 end_date=date(2024, 12, 31)),
    ],
    "SC": [
        _program("SC", "sc-1", "South Carolina Sales Tax Exemption", "sales-tax", 7.5, "percentage",
                 description="Sales tax exemption on solar equipment"),
    ],
    "TN": [],
    "VA": [],
    "WV": [],

    # ==================== SOUTHWEST & MOUNTAIN ====================
    "AZ": [
        _program("AZ", "az-1", "APS Residential Solar Rebate", "rebate", 1.0, "$/watt",
                 description="Performance-based rebate for residential solar",
                 utility_id="aps", max_amount=7000, min_system_size=2, max_system_size=20),
        _program("AZ", "az-2", "SRP Residential Solar Rebate", "rebate", 0.75, "$/watt",
                 description="Utility rebate for SRP residential customers",
                 utility_id="srp", max_amount=5250, min_system_size=2, max_system_size=15),
    ],
    "CO": [
        _program("CO", "co-1", "Colorado Property Tax Exemption", "tax-exemption", 100, "percentage",
                 description="Exemption for solar energy improvements",
                 end_date=date(2027, 12, 31)),
        _program("CO", "co-2", "Xcel Energy Solar Rebate", "rebate", 0.70, "$/watt",
                 description="Solar*Rewards upfront rebate",
                 utility_id="xcel", max_amount=4900, min_system_size=2, max_system_size=25),
    ],
    "ID": [
        _program("ID", "id-1", "Idaho Solar Equipment Tax Exemption", "tax-exemption", 100, "percentage",
                 description="Exemption for solar equipment"),
    ],
    "MT": [
        _program("MT", "mt-1", "Montana Renewable Energy Program", "grant", 2500, "dollars",
                 description="State grant for residential renewable energy",
                 max_amount=7500, min_system_size=1),
    ],
    "NM": [
        _program("NM", "nm-1", "New Mexico Solar Energy Grant", "grant", 3000, "dollars",
                 description="State grant for solar installations",
                 max_amount=10000, min_system_size=2, eligible_property_types=("residential", "nonprofit")),
    ],
    "NV": [
        _program("NV", "nv-1", "NV Energy Solar Rebate", "rebate", 1.50, "$/watt",
                 description="Utility rebate for residential solar",
                 utility_id="nv_energy", max_amount=8000, min_system_size=2, max_system_size=25),
    ],
    "OK": [],
    "TX": [],
    "UT": [
        _program("UT", "ut-1", "Utah Sales Tax Exemption", "sales-tax", 4.85, "percentage",
                 description="Sales tax exemption on solar equipment"),
    ],
    "WY": [],

    # ==================== PACIFIC ====================
    "AK": [
        _program("AK", "ak-1", "Alaska Renewable Energy Fund Grant", "grant", 5000, "dollars",
                 description="State grant for renewable energy projects",
                 max_amount=50000, min_system_size=1,
                 eligible_property_types=("residential", "commercial", "nonprofit")),
    ],
    "CA": [
        _program("CA", "ca-1", "California Property Tax Exemption", "tax-exemption", 100, "percentage",
                 description="100% exemption on added property value from solar"),
        _program("CA", "ca-2", "California Sales Tax Exemption", "sales-tax", 7.25, "percentage",
                 description="Sales tax exemption on solar equipment",
                 eligible_property_types=RES_COM),
        _program("CA", "ca-3", "PG&E Solar Rebate Program", "rebate", 0.50, "$/watt",
                 description="Utility rebate for PG&E residential customers",
                 utility_id="pge", max_amount=3500, min_system_size=2, max_system_size=25),
        _program("CA", "ca-4", "SCE Solar Incentive", "rebate", 0.40, "$/watt",
                 description="Utility incentive for SCE residential customers",
                 utility_id="sce", max_amount=2800, min_system_size=2),
    ],
    "HI": [
        _program("HI", "hi-1", "Hawaii Property Tax Exemption", "tax-exemption", 100, "percentage",
                 description="Exemption on added property value from solar"),
        _program("HI", "hi-2", "Hawaiian Electric Solar Rebate", "rebate", 1.25, "$/watt",
                 description="Utility rebate for HECO residential customers",
                 utility_id="heco", max_amount=8750, min_system_size=2, max_system_size=20),
    ],
    "OR": [
        _program("OR", "or-1", "Oregon Property Tax Exemption", "tax-exemption", 100, "percentage",
                 description="Exemption on added property value from solar"),
    ],
    "WA": [
        _program("WA", "wa-1", "Washington Sales Tax Exemption", "sales-tax", 10.25, "percentage",
                 description="Sales tax exemption on solar equipment"),
    ],

    # ==================== MIDWEST ====================
    "IA": [
        _program("IA", "ia-1", "Iowa Renewable Energy Program Grant", "grant", 2000, "dollars",
                 description="State grant for residential renewable energy",
                 max_amount=10000, min_system_size=1),
    ],
    "IL": [
        _program("IL", "il-1", "Illinois Solar Incentive", "rebate", 1.50, "$/watt",
                 description="Illinois Shines renewable energy credit incentive",
                 max_amount=10500, min_system_size=2, max_system_size=25,
                 eligible_property_types=RES_COM),
    ],
    "IN": [],
    "KS": [],
    "MI": [],
    "MN": [
        _program("MN", "mn-1", "Minnesota Solar Rebate Program", "rebate", 1.50, "$/watt",
                 description="State rebate for residential and commercial solar",
                 max_amount=9000, min_system_size=2, max_system_size=40,
                 eligible_property_types=RES_COM),
    ],
    "MO": [],
    "ND": [],
    "NE": [],
    "OH": [],
    "SD": [],
    "WI": [
        _program("WI", "wi-1", "Wisconsin Solar Rebate", "rebate", 0.75, "$/watt",
                 description="Focus on Energy renewable rewards",
                 utility_id="focus_on_energy", max_amount=4500, min_system_size=2, max_system_size=25),
    ],

    # ==================== NORTHEAST & MID-ATLANTIC ====================
    "CT": [
        _program("CT", "ct-1", "Connecticut Solar Rebate", "rebate", 1.50, "$/watt",
                 description="Rebate for residential and commercial solar",
                 max_amount=6000, min_system_size=2, max_system_size=50,
                 eligible_property_types=RES_COM),
    ],
    "DE": [
        _program("DE", "de-1", "Delaware Solar Energy Tax Exemption", "tax-exemption", 100, "percentage",
                 description="Exemption for solar energy systems",
                 eligible_property_types=RES_COM),
    ],
    "MA": [
        _program("MA", "ma-1", "Massachusetts Property Tax Exemption", "tax-exemption", 100, "percentage",
                 description="20-year exemption on added property value from solar"),
    ],
    "MD": [
        _program("MD", "md-1", "Maryland Solar Rebate", "rebate", 1.25, "$/watt",
                 description="Residential Clean Energy Grant",
                 max_amount=7500, min_system_size=2, max_system_size=25),
    ],
    "ME": [
        _program("ME", "me-1", "Maine Solar Rebate", "rebate", 1.50, "$/watt",
                 description="State rebate for residential solar",
                 max_amount=7500, min_system_size=2, max_system_size=25),
    ],
    "NH": [
        _program("NH", "nh-1", "New Hampshire Solar Energy Tax Exemption", "tax-exemption", 100, "percentage",
                 description="Local option property tax exemption",
                 eligible_property_types=RES_COM),
    ],
    "NJ": [
        _program("NJ", "nj-1", "New Jersey Solar Rebate", "rebate", 1.25, "$/watt",
                 description="State rebate for residential solar",
                 max_amount=6250, min_system_size=2, max_system_size=25),
    ],
    "NY": [
        _program("NY", "ny-1", "New York State Solar Rebate", "rebate", 2.00, "$/watt",
                 description="NY-Sun incentive for residential and commercial solar",
                 max_amount=10000, min_system_size=2, max_system_size=50,
                 eligible_property_types=RES_COM),
    ],
    "PA": [],
    "RI": [
        _program("RI", "ri-1", "Rhode Island Solar Rebate", "rebate", 1.50, "$/watt",
                 description="Renewable Energy Fund small-scale solar grant",
                 max_amount=7500, min_system_size=2, max_system_size=25),
    ],
    "VT": [
        _program("VT", "vt-1", "Vermont Solar Rebate", "rebate", 1.50, "$/watt",
                 description="State rebate for residential solar",
                 max_amount=7500, min_system_size=2, max_system_size=25),
    ],
}
