"""Great-circle distance between two coordinates."""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371


def haversine_distance_km(
    lat1: Optional[float],
    lon1: Optional[float],
    lat2: Optional[float],
    lon2: Optional[float],
) -> Optional[str]:
    """Distance in km rendered with one decimal, or None if a coordinate is missing."""
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return f"{EARTH_RADIUS_KM * c:.1f}"


def format_distance(distance: Optional[str]) -> str:
    if distance is None:
        return "Unknown"
    return f"{distance} km"
