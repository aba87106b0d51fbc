"""Store Service — crew, outage-event and overtime-log persistence.

Two backends implement the same ``CrewStore`` protocol:

  - ``InMemoryCrewStore``  seeded demo roster, used when Supabase is not
    configured and in tests.
  - ``SupabaseCrewStore``  PostgREST tables ``crews``, ``scenarios`` and
    ``crew_overtime_logs``.

``update_crew`` takes the ``updated_at`` the caller read and rejects the
write with ``StoreConflictError`` if the row has moved on since.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import requests

from app.config import Settings
from app.models.crew import Crew, CrewStatus, OutageEvent, OvertimeLogEntry
from app.services.errors import NotFoundError, StoreConflictError, StoreUnavailableError

logger = logging.getLogger("gridcrew.store")


class CrewStore(Protocol):
    def get_crew(self, crew_id: str) -> Crew: ...

    def list_crews(self, status: Optional[CrewStatus] = None) -> List[Crew]: ...

    def update_crew(
        self,
        crew_id: str,
        fields: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Crew: ...

    def get_event(self, event_id: str) -> OutageEvent: ...

    def list_events(self) -> List[OutageEvent]: ...

    def append_overtime_log(self, entry: OvertimeLogEntry) -> OvertimeLogEntry: ...

    def list_overtime_logs(self, crew_id: Optional[str] = None) -> List[OvertimeLogEntry]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── In-memory backend ─────────────────────────────────────────────────


class InMemoryCrewStore:
    """Thread-safe in-process store. Reads return copies, never live records."""

    def __init__(
        self,
        crews: Optional[List[Crew]] = None,
        events: Optional[List[OutageEvent]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._crews: Dict[str, Crew] = {}
        self._events: Dict[str, OutageEvent] = {}
        self._overtime: List[OvertimeLogEntry] = []
        now = _utcnow()
        for c in crews or []:
            self._crews[c.id] = c.model_copy(
                update={"created_at": c.created_at or now, "updated_at": c.updated_at or now},
                deep=True,
            )
        for e in events or []:
            self._events[e.id] = e.model_copy(deep=True)

    def get_crew(self, crew_id: str) -> Crew:
        with self._lock:
            crew = self._crews.get(crew_id)
            if crew is None:
                raise NotFoundError("Crew", crew_id)
            return crew.model_copy(deep=True)

    def list_crews(self, status: Optional[CrewStatus] = None) -> List[Crew]:
        with self._lock:
            crews = sorted(self._crews.values(), key=lambda c: c.crew_id)
            return [c.model_copy(deep=True) for c in crews if status is None or c.status == status]

    def update_crew(
        self,
        crew_id: str,
        fields: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Crew:
        with self._lock:
            current = self._crews.get(crew_id)
            if current is None:
                raise NotFoundError("Crew", crew_id)
            if expected_updated_at is not None and current.updated_at != expected_updated_at:
                raise StoreConflictError(f"Crew {crew_id} was modified concurrently")

            stamp = _utcnow()
            if current.updated_at is not None and stamp <= current.updated_at:
                stamp = current.updated_at + timedelta(microseconds=1)

            updated = Crew.model_validate({**current.model_dump(), **fields, "updated_at": stamp})
            self._crews[crew_id] = updated
            return updated.model_copy(deep=True)

    def get_event(self, event_id: str) -> OutageEvent:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise NotFoundError("Event", event_id)
            return event.model_copy(deep=True)

    def list_events(self) -> List[OutageEvent]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._events.values()]

    def append_overtime_log(self, entry: OvertimeLogEntry) -> OvertimeLogEntry:
        with self._lock:
            self._overtime.append(entry)
            return entry

    def list_overtime_logs(self, crew_id: Optional[str] = None) -> List[OvertimeLogEntry]:
        with self._lock:
            return [e for e in self._overtime if crew_id is None or e.crew_id == crew_id]


# ── Supabase backend ──────────────────────────────────────────────────


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class SupabaseCrewStore:
    """PostgREST client for the dashboard's Supabase project."""

    def __init__(self, url: str, key: str, timeout: float = 5.0) -> None:
        self._base = f"{url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = requests.request(
                method,
                f"{self._base}/{table}",
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Supabase %s %s failed: %s", method, table, exc)
            raise StoreUnavailableError(f"Supabase {table} request failed: {exc}") from exc

        if not resp.ok:
            logger.error(
                "Supabase %s %s failed (%s): %s",
                method, table, resp.status_code, resp.text[:200],
            )
            raise StoreUnavailableError(f"Supabase {table} returned HTTP {resp.status_code}")
        if not resp.content:
            return []
        return resp.json()

    # crews

    def get_crew(self, crew_id: str) -> Crew:
        rows = self._request("GET", "crews", params={"id": f"eq.{crew_id}", "select": "*"})
        if not rows:
            raise NotFoundError("Crew", crew_id)
        return Crew.model_validate(rows[0])

    def list_crews(self, status: Optional[CrewStatus] = None) -> List[Crew]:
        params = {"select": "*", "order": "crew_id"}
        if status is not None:
            params["status"] = f"eq.{status.value}"
        rows = self._request("GET", "crews", params=params)
        return [Crew.model_validate(r) for r in rows]

    def update_crew(
        self,
        crew_id: str,
        fields: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Crew:
        params = {"id": f"eq.{crew_id}"}
        if expected_updated_at is not None:
            params["updated_at"] = f"eq.{expected_updated_at.isoformat()}"

        body = {k: _jsonable(v) for k, v in fields.items()}
        body["updated_at"] = _utcnow().isoformat()

        rows = self._request("PATCH", "crews", params=params, json=body, prefer="return=representation")
        if not rows:
            # Either the row is gone or its version moved on.
            self.get_crew(crew_id)
            raise StoreConflictError(f"Crew {crew_id} was modified concurrently")
        return Crew.model_validate(rows[0])

    # events

    def get_event(self, event_id: str) -> OutageEvent:
        rows = self._request("GET", "scenarios", params={"id": f"eq.{event_id}", "select": "*"})
        if not rows:
            raise NotFoundError("Event", event_id)
        return OutageEvent.model_validate(rows[0])

    def list_events(self) -> List[OutageEvent]:
        rows = self._request("GET", "scenarios", params={"select": "*"})
        return [OutageEvent.model_validate(r) for r in rows]

    # overtime log

    def append_overtime_log(self, entry: OvertimeLogEntry) -> OvertimeLogEntry:
        rows = self._request(
            "POST",
            "crew_overtime_logs",
            json=entry.model_dump(mode="json", exclude_none=True),
            prefer="return=representation",
        )
        return OvertimeLogEntry.model_validate(rows[0]) if rows else entry

    def list_overtime_logs(self, crew_id: Optional[str] = None) -> List[OvertimeLogEntry]:
        params = {"select": "*", "order": "dispatch_time"}
        if crew_id is not None:
            params["crew_id"] = f"eq.{crew_id}"
        rows = self._request("GET", "crew_overtime_logs", params=params)
        return [OvertimeLogEntry.model_validate(r) for r in rows]


# ── Demo roster (used when no Supabase project is configured) ─────────

_WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri"]
_WEEKEND = ["Sat", "Sun"]
_ALL_DAYS = _WEEKDAYS + _WEEKEND

_DEMO_CREWS: List[dict] = [
    {"id": "c-01", "crew_id": "CREW-101", "crew_name": "Houston Storm Alpha",      "specialization": "Storm Response",     "vehicle_type": "Bucket Truck",  "team_size": 4, "current_lat": 29.760, "current_lng": -95.370, "shift_start": "06:00", "shift_end": "18:00", "break_start": "12:00", "break_end": "12:30", "days_of_week": _WEEKDAYS},
    {"id": "c-02", "crew_id": "CREW-102", "crew_name": "Heights Line Bravo",       "specialization": "Line Crew",          "vehicle_type": "Bucket Truck",  "team_size": 3, "current_lat": 29.790, "current_lng": -95.400, "shift_start": "07:00", "shift_end": "19:00", "break_start": "13:00", "break_end": "13:30", "days_of_week": _WEEKDAYS},
    {"id": "c-03", "crew_id": "CREW-103", "crew_name": "Pasadena Transformer",     "specialization": "Transformer",        "vehicle_type": "Crane Truck",   "team_size": 3, "current_lat": 29.690, "current_lng": -95.210, "shift_start": "08:00", "shift_end": "16:00", "break_start": "12:00", "break_end": "12:30", "days_of_week": _WEEKDAYS},
    {"id": "c-04", "crew_id": "CREW-104", "crew_name": "Katy Emergency Delta",     "specialization": "Emergency Response", "vehicle_type": "Service Truck", "team_size": 5, "current_lat": 29.790, "current_lng": -95.820, "shift_start": "18:00", "shift_end": "06:00", "break_start": "00:00", "break_end": "00:30", "days_of_week": _ALL_DAYS},
    {"id": "c-05", "crew_id": "CREW-105", "crew_name": "Sugar Land Substation",    "specialization": "Substation",         "vehicle_type": "Crane Truck",   "team_size": 2, "current_lat": 29.620, "current_lng": -95.630, "shift_start": "08:00", "shift_end": "17:00", "break_start": None,    "break_end": None,    "days_of_week": _WEEKDAYS},
    {"id": "c-06", "crew_id": "CREW-106", "crew_name": "Spring Vegetation Foxtrot", "specialization": "Tree Trimming",     "vehicle_type": "Chipper Truck", "team_size": 4, "current_lat": 30.080, "current_lng": -95.420, "shift_start": "07:00", "shift_end": "15:00", "break_start": "11:00", "break_end": "11:30", "days_of_week": _WEEKDAYS},
    {"id": "c-07", "crew_id": "CREW-107", "crew_name": "Baytown Underground Golf", "specialization": "Underground",        "vehicle_type": "Vac Truck",     "team_size": 3, "current_lat": 29.740, "current_lng": -94.980, "shift_start": "09:00", "shift_end": "17:00", "break_start": "13:00", "break_end": "13:30", "days_of_week": _WEEKEND},
    {"id": "c-08", "crew_id": "CREW-108", "crew_name": "Galleria General Hotel",   "specialization": "General",            "vehicle_type": "Pickup",        "team_size": 2, "current_lat": 29.740, "current_lng": -95.460, "shift_start": "10:00", "shift_end": "22:00", "break_start": "16:00", "break_end": "16:30", "days_of_week": _ALL_DAYS},
]

_DEMO_EVENTS: List[dict] = [
    {"id": "evt-storm-downtown",  "name": "Downtown wind damage",      "geo_center": {"lat": 29.755, "lng": -95.365}, "outage_type": "Storm",             "customers_impacted": 4200, "priority": "high"},
    {"id": "evt-heat-pasadena",   "name": "Pasadena transformer loss", "geo_center": {"lat": 29.700, "lng": -95.200}, "outage_type": "Heatwave",          "customers_impacted": 850,  "priority": "medium"},
    {"id": "evt-veg-spring",      "name": "Spring feeder vegetation",  "geo_center": {"lat": 30.070, "lng": -95.430}, "outage_type": "Vegetation",        "customers_impacted": 310,  "priority": "low"},
    {"id": "evt-equip-unlocated", "name": "Unlocated relay trip",      "geo_center": None,                            "outage_type": "Equipment Failure", "customers_impacted": 1200, "priority": "medium"},
]


def demo_crews() -> List[Crew]:
    return [Crew.model_validate(r) for r in _DEMO_CREWS]


def demo_events() -> List[OutageEvent]:
    return [OutageEvent.model_validate(r) for r in _DEMO_EVENTS]


def build_store(settings: Settings) -> CrewStore:
    """Pick the store backend from settings, falling back to the demo roster."""
    if settings.store_backend == "supabase":
        if settings.supabase_url and settings.supabase_anon_key:
            logger.info("Using Supabase crew store at %s", settings.supabase_url)
            return SupabaseCrewStore(
                settings.supabase_url,
                settings.supabase_anon_key,
                timeout=settings.store_timeout_seconds,
            )
        logger.warning("store_backend=supabase but Supabase is not configured, using demo roster")
    return InMemoryCrewStore(demo_crews(), demo_events())
