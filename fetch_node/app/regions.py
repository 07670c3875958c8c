"""
Region Catalog

The fixed set of regions a KeyFetch node can serve from, plus the lookup the
edge tier uses to pick a regional node from a coarse location code.

The lookup is pure: no I/O and no state. Each node only needs the catalog to
answer /v1/regions and to validate a region name requested in a fetch body.
"""

from typing import Any, Dict, List, Optional


DEFAULT_REGION = "us-east"

REGIONS: List[Dict[str, str]] = [
    {"id": "eu-frankfurt", "name": "Frankfurt", "country": "DE", "status": "online"},
    {"id": "ap-sydney", "name": "Sydney", "country": "AU", "status": "online"},
    {"id": "us-west", "name": "San Francisco", "country": "US", "status": "online"},
    {"id": "us-east", "name": "New York", "country": "US", "status": "online"},
]

# Edge location codes (airport style) grouped by the region that serves them.
# Anything not listed falls through to DEFAULT_REGION.
_LOCATION_REGIONS: Dict[str, frozenset] = {
    "eu-frankfurt": frozenset(
        ["FRA", "AMS", "LHR", "CDG", "WAW", "VIE", "PRG", "ZRH", "MIL", "MAD", "BCN"]
    ),
    "ap-sydney": frozenset(
        ["SYD", "MEL", "SIN", "HKG", "NRT", "ICN", "BOM", "DEL", "BKK"]
    ),
    "us-west": frozenset(["SFO", "LAX", "SEA", "SJC", "PDX", "DEN", "PHX"]),
}


def region_ids() -> List[str]:
    return [region["id"] for region in REGIONS]


def is_known_region(name: Optional[str]) -> bool:
    """Return True if name is one of the fixed region identifiers."""
    return bool(name) and name in region_ids()


def region_for_location(code: Optional[str]) -> str:
    """
    Map an edge location code to the region that should serve it.

    Args:
        code: Location code such as 'FRA' or 'sfo'; may be missing

    Returns:
        Region identifier, DEFAULT_REGION when the code is missing or unknown
    """
    if not code:
        return DEFAULT_REGION

    upper = code.strip().upper()
    for region_id, codes in _LOCATION_REGIONS.items():
        if upper in codes:
            return region_id

    return DEFAULT_REGION


def regions_payload(current: str) -> Dict[str, Any]:
    """Body for GET /v1/regions."""
    return {
        "regions": [dict(region) for region in REGIONS],
        "current": current,
    }


__all__ = [
    "DEFAULT_REGION",
    "REGIONS",
    "region_ids",
    "is_known_region",
    "region_for_location",
    "regions_payload",
]
