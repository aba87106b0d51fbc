"""Crew State Machine — the operational lifecycle of a field crew.

    available ──dispatch / emergency dispatch──▶ dispatched
    dispatched ──movement (not arrived)──▶ en_route ──movement──▶ en_route
    dispatched / en_route ──movement (arrived)──▶ on_site
    on_site ──mark returning──▶ returning
    on_site / returning ──mark available──▶ available

There is no terminal state; crews cycle indefinitely. Functions here are
pure: they validate a transition against the table and return the field
patch to persist (plus the overtime audit entry for emergency dispatch).
They never touch a store.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Set, Tuple

from app.models.crew import (
    Crew,
    CrewStatus,
    MovementStep,
    OutageEvent,
    OvertimeLogEntry,
)
from app.services.errors import IllegalTransitionError, InvalidGeometryError

ALLOWED_TRANSITIONS: Dict[CrewStatus, Set[CrewStatus]] = {
    CrewStatus.AVAILABLE:  {CrewStatus.DISPATCHED},
    CrewStatus.DISPATCHED: {CrewStatus.EN_ROUTE, CrewStatus.ON_SITE},
    CrewStatus.EN_ROUTE:   {CrewStatus.EN_ROUTE, CrewStatus.ON_SITE},
    CrewStatus.ON_SITE:    {CrewStatus.RETURNING, CrewStatus.AVAILABLE},
    CrewStatus.RETURNING:  {CrewStatus.AVAILABLE},
}

MOVING_STATUSES = {CrewStatus.DISPATCHED, CrewStatus.EN_ROUTE}
ACTIVE_STATUSES = {CrewStatus.DISPATCHED, CrewStatus.EN_ROUTE, CrewStatus.ON_SITE}


def can_transition(current: CrewStatus, target: CrewStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def ensure_transition(crew: Crew, target: CrewStatus) -> None:
    """Raise ``IllegalTransitionError`` unless ``crew`` may move to ``target``."""
    if not can_transition(crew.status, target):
        raise IllegalTransitionError(
            f"Crew {crew.crew_id} cannot go from {crew.status.value} to {target.value}",
            current=crew.status.value,
            requested=target.value,
        )


def _require_center(event: OutageEvent) -> None:
    if event.geo_center is None:
        raise InvalidGeometryError(f"Event {event.id} has no geo centre")


# ── Update builders ───────────────────────────────────────────────────


def dispatch_update(crew: Crew, event: OutageEvent, eta: int, now: datetime) -> Dict[str, Any]:
    """available → dispatched."""
    ensure_transition(crew, CrewStatus.DISPATCHED)
    _require_center(event)
    return {
        "status": CrewStatus.DISPATCHED,
        "assigned_event_id": event.id,
        "eta_minutes": eta,
        "dispatch_time": now,
    }


def emergency_dispatch_update(
    crew: Crew,
    event: OutageEvent,
    eta: int,
    now: datetime,
    authorized_by: str,
    reason: str,
    notes: Optional[str] = None,
) -> Tuple[Dict[str, Any], OvertimeLogEntry]:
    """available (off duty) → dispatched, with exactly one overtime entry."""
    authorized_by = (authorized_by or "").strip()
    if not authorized_by:
        raise ValueError("Emergency dispatch requires an authorizing identity")

    fields = dispatch_update(crew, event, eta, now)
    entry = OvertimeLogEntry(
        id=str(uuid.uuid4()),
        crew_id=crew.id,
        event_id=event.id,
        reason=reason,
        authorized_by=authorized_by,
        notes=(notes or "").strip(),
        dispatch_time=now,
        created_at=now,
    )
    return fields, entry


def movement_update(crew: Crew, step: MovementStep) -> Dict[str, Any]:
    """dispatched / en_route → en_route, or → on_site on arrival."""
    target = CrewStatus.ON_SITE if step.arrived else CrewStatus.EN_ROUTE
    ensure_transition(crew, target)
    return {
        "current_lat": step.new_lat,
        "current_lng": step.new_lng,
        "eta_minutes": 0 if step.arrived else step.eta_minutes,
        "status": target,
    }


def returning_update(crew: Crew) -> Dict[str, Any]:
    """on_site → returning. The assignment stays until the crew is released."""
    ensure_transition(crew, CrewStatus.RETURNING)
    return {"status": CrewStatus.RETURNING, "eta_minutes": None}


def available_update(crew: Crew) -> Dict[str, Any]:
    """on_site / returning → available, clearing the assignment."""
    ensure_transition(crew, CrewStatus.AVAILABLE)
    return {
        "status": CrewStatus.AVAILABLE,
        "assigned_event_id": None,
        "eta_minutes": None,
        "dispatch_time": None,
    }
