"""Movement Simulator — advances a crew toward its destination one tick at a time.

Each call closes a fixed fraction of the remaining lat/lng gap, so progress
is fast at first and slows near the target. The crew never jumps straight to
the destination; arrival is declared once it is inside a small radius.
"""

from __future__ import annotations

from app.models.crew import Crew, MovementStep
from app.services.geo_service import DEFAULT_SPEED_KMH, eta_minutes, haversine_km

MOVE_FRACTION = 0.2
ARRIVAL_THRESHOLD_KM = 0.5


def _wrap_lng(deg: float) -> float:
    """Normalise a longitude or longitude difference into [-180, 180)."""
    return (deg + 540.0) % 360.0 - 180.0


def step(
    lat: float,
    lng: float,
    target_lat: float,
    target_lng: float,
    fraction: float = MOVE_FRACTION,
    arrival_km: float = ARRIVAL_THRESHOLD_KM,
    speed_kmh: float = DEFAULT_SPEED_KMH,
) -> MovementStep:
    if not 0 < fraction < 1:
        raise ValueError(f"fraction must be in (0, 1), got {fraction}")

    new_lat = lat + (target_lat - lat) * fraction
    new_lng = _wrap_lng(lng + _wrap_lng(target_lng - lng) * fraction)

    remaining = haversine_km(new_lat, new_lng, target_lat, target_lng)
    arrived = remaining < arrival_km

    return MovementStep(
        new_lat=new_lat,
        new_lng=new_lng,
        remaining_km=round(remaining, 3),
        eta_minutes=0 if arrived else max(0, eta_minutes(remaining, speed_kmh)),
        arrived=arrived,
    )


def step_crew(
    crew: Crew,
    target_lat: float,
    target_lng: float,
    fraction: float = MOVE_FRACTION,
    arrival_km: float = ARRIVAL_THRESHOLD_KM,
    speed_kmh: float = DEFAULT_SPEED_KMH,
) -> MovementStep:
    """Advance ``crew`` from its current position toward the target."""
    return step(crew.current_lat, crew.current_lng, target_lat, target_lng, fraction, arrival_km, speed_kmh)
