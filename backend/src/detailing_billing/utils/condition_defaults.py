"""Region-aware condition pricing defaults for new businesses.

The "extreme" condition tier gets a regional label and description based on
where the business operates (winter salt in the rust belt, sand in coastal
states, and so on). The other tiers are the same everywhere.
"""
from typing import Any

TEMPLATES: dict[str, dict[str, str]] = {
    "rust_belt": {
        "label": "Winter Salt & Grime",
        "desc": "Heavy road salt accumulation, slush, and hardened city grime.",
    },
    "beach": {
        "label": "Sand & Surf",
        "desc": "Deep sand extraction, salt spray residue, and damp upholstery.",
    },
    "mountain": {
        "label": "Mud & Mountain",
        "desc": "Red clay mud, pine needles, road salt, or off-road debris.",
    },
    "bugs_sun": {
        "label": "Bugs & Sun",
        "desc": "Baked-on bug splatter, tar, or heavy dust accumulation.",
    },
    "generic": {
        "label": "Disaster Detail",
        "desc": "Heavy staining, mold, biological waste, or construction dust.",
    },
}

_REGIONS: dict[str, tuple[str, ...]] = {
    "rust_belt": ("NY", "IL", "MI", "OH", "PA", "MN", "WI", "IN", "MA", "CT", "RI", "VT", "NH", "ME"),
    "beach": ("FL", "CA", "HI", "SC", "NC", "GA", "AL", "MS", "LA"),
    "mountain": ("UT", "CO", "OR", "WA", "ID", "MT", "WY", "NV"),
    "bugs_sun": ("TX", "AZ", "NM", "OK", "AR", "TN", "KY", "MO", "KS", "NE", "IA", "SD", "ND"),
}

STATE_MAP: dict[str, str] = {code: region for region, codes in _REGIONS.items() for code in codes}

STATE_NAMES: dict[str, str] = {
    "UTAH": "UT",
    "COLORADO": "CO",
    "CALIFORNIA": "CA",
    "FLORIDA": "FL",
    "NEW YORK": "NY",
    "ILLINOIS": "IL",
    "MICHIGAN": "MI",
    "OHIO": "OH",
    "PENNSYLVANIA": "PA",
    "TEXAS": "TX",
    "ARIZONA": "AZ",
    "OREGON": "OR",
    "WASHINGTON": "WA",
    "IDAHO": "ID",
    "MONTANA": "MT",
    "WYOMING": "WY",
    "NEVADA": "NV",
    "NEW MEXICO": "NM",
    "SOUTH CAROLINA": "SC",
    "NORTH CAROLINA": "NC",
    "GEORGIA": "GA",
    "ALABAMA": "AL",
    "MISSISSIPPI": "MS",
    "LOUISIANA": "LA",
    "MINNESOTA": "MN",
    "WISCONSIN": "WI",
    "INDIANA": "IN",
    "MASSACHUSETTS": "MA",
    "CONNECTICUT": "CT",
    "RHODE ISLAND": "RI",
    "VERMONT": "VT",
    "NEW HAMPSHIRE": "NH",
    "MAINE": "ME",
    "HAWAII": "HI",
    "OKLAHOMA": "OK",
    "ARKANSAS": "AR",
    "TENNESSEE": "TN",
    "KENTUCKY": "KY",
    "MISSOURI": "MO",
    "KANSAS": "KS",
    "NEBRASKA": "NE",
    "IOWA": "IA",
    "SOUTH DAKOTA": "SD",
    "NORTH DAKOTA": "ND",
}


def normalize_state_code(state: str | None) -> str | None:
    """
    Normalize a state to its uppercase two-letter code.

    Accepts both "Utah" and "UT". Unknown full names are returned uppercased.
    """
    if not state or not state.strip():
        return None
    normalized = " ".join(state.split()).upper()
    if len(normalized) == 2:
        return normalized
    return STATE_NAMES.get(normalized, normalized)


def region_for_state(state: str | None) -> str:
    """Return the template key for ``state`` (``generic`` when unknown)."""
    code = normalize_state_code(state)
    if code is None:
        return "generic"
    return STATE_MAP.get(code, "generic")


def get_initial_condition_config(state: str | None) -> dict[str, Any]:
    """
    Build the condition pricing config stored on a new business.

    Args:
        state: US state code or full name from the signup form

    Returns:
        JSON-ready config with four tiers, the last one regionalized
    """
    template = TEMPLATES[region_for_state(state)]
    return {
        "enabled": True,
        "tiers": [
            {
                "id": "clean",
                "label": "Well Maintained",
                "description": "Regularly cleaned. Dust and light crumbs only.",
                "markup_percent": 0,
            },
            {
                "id": "moderate",
                "label": "Daily Driver",
                "description": "Standard messes. Cup holder spills, crumbs, mild dirt.",
                "markup_percent": 0.15,
            },
            {
                "id": "heavy",
                "label": "Heavily Dirty",
                "description": "Stains, pet hair, sticky residue, or strong odors.",
                "markup_percent": 0.25,
            },
            {
                "id": "extreme",
                "label": template["label"],
                "description": template["desc"],
                "markup_percent": 0.40,
            },
        ],
    }


def get_default_condition_config() -> dict[str, Any]:
    """Condition config for businesses without a known location."""
    return get_initial_condition_config(None)
