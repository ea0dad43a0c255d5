"""Great-circle distance for nearby task discovery."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(
    lat1: float | None,
    lon1: float | None,
    lat2: float | None,
    lon2: float | None,
) -> float | None:
    """
    Distance in kilometres between two points given in decimal degrees.

    Returns None when any coordinate is missing, so SQLite comparisons
    against the result drop tasks posted without a location.
    """
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
