"""Dispatch Scorer — ranks available crews against an outage event.

Each candidate gets up to 110 points:
  - Proximity        0–40  (linear decay to zero at 50 km)
  - Specialization   0–35  (outage type → ordered list of preferred skills)
  - Availability     0–25  (on shift / on break / off duty)
  - Team size bonus  0–10  (only for incidents above 1 000 customers)

Off-duty crews remain eligible so the operator can see emergency options;
they are flagged as requiring authorisation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from app.models.crew import (
    Crew,
    CrewStatus,
    DutyStatus,
    OutageEvent,
    ScoreBreakdown,
    Specialization,
)
from app.services import shift_service
from app.services.errors import InvalidGeometryError
from app.services.geo_service import DEFAULT_SPEED_KMH, eta_minutes, haversine_km, round_half_up

# ── Constants ─────────────────────────────────────────────────────────

PROXIMITY_MAX = 40.0
PROXIMITY_RANGE_KM = 50.0
SPECIALIZATION_EXACT = 35.0
SPECIALIZATION_GENERAL = 10.0
TEAM_BONUS_CAP = 10.0
TEAM_BONUS_CUSTOMER_THRESHOLD = 1000

AVAILABILITY_SCORE: Dict[DutyStatus, Tuple[float, str]] = {
    DutyStatus.ON_SHIFT: (25.0, "On shift"),
    DutyStatus.ON_BREAK: (15.0, "On break"),
    DutyStatus.OFF_DUTY: (5.0, "Off duty"),
}

S = Specialization

# Outage type → specializations in order of preference
SPECIALIZATION_MATCHES: Dict[str, List[Specialization]] = {
    "Storm":             [S.STORM_RESPONSE, S.EMERGENCY_RESPONSE, S.LINE_CREW, S.GENERAL],
    "Flood":             [S.EMERGENCY_RESPONSE, S.UNDERGROUND, S.GENERAL],
    "Heavy Rain":        [S.STORM_RESPONSE, S.LINE_CREW, S.GENERAL],
    "Heatwave":          [S.TRANSFORMER, S.SUBSTATION, S.GENERAL],
    "Wildfire":          [S.EMERGENCY_RESPONSE, S.LINE_CREW, S.GENERAL],
    "Lightning":         [S.STORM_RESPONSE, S.HIGH_VOLTAGE, S.LINE_CREW, S.GENERAL],
    "Ice/Snow":          [S.STORM_RESPONSE, S.LINE_CREW, S.GENERAL],
    "High Wind":         [S.STORM_RESPONSE, S.LINE_CREW, S.TREE_TRIMMING, S.GENERAL],
    "Equipment Failure": [S.TRANSFORMER, S.SUBSTATION, S.HIGH_VOLTAGE, S.GENERAL],
    "Vegetation":        [S.TREE_TRIMMING, S.LINE_CREW, S.GENERAL],
    "Unknown":           [S.GENERAL, S.EMERGENCY_RESPONSE],
}


# ── Sub-scores ────────────────────────────────────────────────────────


def proximity_score(distance_km: float) -> float:
    return max(0.0, PROXIMITY_MAX - (distance_km / PROXIMITY_RANGE_KM) * PROXIMITY_MAX)


def specialization_score(
    specialization: Optional[Specialization], outage_type: Optional[str]
) -> Tuple[float, Optional[str]]:
    """Score a crew's skill against the outage type; returns (score, reason)."""
    preferred = SPECIALIZATION_MATCHES.get(outage_type or "Unknown", [S.GENERAL])
    spec = specialization or S.GENERAL
    if spec in preferred:
        idx = preferred.index(spec)
        if idx == 0:
            return SPECIALIZATION_EXACT, f"{spec.value} specialist"
        return 25.0 - idx * 5.0, f"{spec.value} capable"
    if spec == S.GENERAL:
        return SPECIALIZATION_GENERAL, None
    return 0.0, None


def team_size_bonus(team_size: int, customers_impacted: Optional[int]) -> float:
    if customers_impacted and customers_impacted > TEAM_BONUS_CUSTOMER_THRESHOLD:
        return min(team_size * 2.0, TEAM_BONUS_CAP)
    return 0.0


# ── Ranking ───────────────────────────────────────────────────────────


def score_crew(
    crew: Crew,
    event: OutageEvent,
    now: datetime,
    tz_name: Optional[str] = None,
    speed_kmh: float = DEFAULT_SPEED_KMH,
) -> ScoreBreakdown:
    """Score one crew against an event that has a geo centre."""
    if event.geo_center is None:
        raise InvalidGeometryError(f"Event {event.id} has no geo centre")
    reasons: List[str] = []

    dist = haversine_km(crew.current_lat, crew.current_lng, event.geo_center.lat, event.geo_center.lng)
    prox = proximity_score(dist)
    if dist < 5:
        reasons.append("Very close")
    elif dist < 15:
        reasons.append("Nearby")

    spec, spec_reason = specialization_score(crew.specialization, event.outage_type)
    if spec_reason:
        reasons.append(spec_reason)

    duty = shift_service.evaluate(crew.schedule, now, tz_name).duty_status
    avail, avail_reason = AVAILABILITY_SCORE[duty]
    reasons.append(avail_reason)

    bonus = team_size_bonus(crew.team_size, event.customers_impacted)

    return ScoreBreakdown(
        crew_id=crew.id,
        crew_code=crew.crew_id,
        crew_name=crew.crew_name,
        distance_km=round(dist, 2),
        eta_minutes=eta_minutes(dist, speed_kmh),
        proximity_score=round(prox, 2),
        specialization_score=spec,
        availability_score=avail,
        team_size_bonus=bonus,
        total_score=round_half_up(prox + spec + avail + bonus),
        duty_status=duty,
        requires_emergency_authorization=duty == DutyStatus.OFF_DUTY,
        match_reasons=reasons,
    )


def rank(
    crews: Iterable[Crew],
    event: OutageEvent,
    now: datetime,
    tz_name: Optional[str] = None,
    speed_kmh: float = DEFAULT_SPEED_KMH,
) -> List[ScoreBreakdown]:
    """Rank ``available`` crews for an event, best first.

    Returns an empty list when the event has no geo centre. Sorting is
    stable, so equal scores keep the input order.
    """
    if event.geo_center is None:
        return []

    scored = [
        score_crew(c, event, now, tz_name, speed_kmh)
        for c in crews
        if c.status == CrewStatus.AVAILABLE
    ]
    scored.sort(key=lambda s: s.total_score, reverse=True)
    return scored
