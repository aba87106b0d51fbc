"""Great-circle distance and drive-time estimates."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6_371.0
DEFAULT_SPEED_KMH = 48.0     # ~30 mph average incl. urban delay


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km between two lat/lng points."""
    rlat1, rlng1 = math.radians(lat1), math.radians(lng1)
    rlat2, rlng2 = math.radians(lat2), math.radians(lng2)
    dlat = rlat2 - rlat1
    dlng = rlng2 - rlng1
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def eta_minutes(distance_km: float, speed_kmh: float = DEFAULT_SPEED_KMH) -> int:
    """Estimated drive time in whole minutes."""
    return round_half_up(distance_km / speed_kmh * 60)
