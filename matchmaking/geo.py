from __future__ import annotations

import math
from typing import Dict, Optional

EARTH_RADIUS_KM = 6371.0

proximity_radius_km: Dict[str, float] = {
    "local": 50.0,
    "metro": 100.0,
    "countrywide": 1000.0,
    "global": math.inf,
}


def distance_km(
    lat1: Optional[float],
    lon1: Optional[float],
    lat2: Optional[float],
    lon2: Optional[float],
) -> float:
    """Haversine great-circle distance on a spherical Earth.

    Returns +inf when any coordinate is missing, so an unknown distance is never
    mistaken for a short one.
    """
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return math.inf

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # clamp against float drift above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def max_distance_for(proximity: Optional[str]) -> float:
    """Map a proximity preference to a radius in km. Unknown or missing means unbounded."""
    if not proximity:
        return math.inf
    return proximity_radius_km.get(str(proximity).strip().lower(), math.inf)
