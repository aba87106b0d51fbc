"""Shared fixtures: a frozen clock, a small roster and an in-memory store."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.models.crew import Crew, OutageEvent
from app.services.dispatch_service import DispatchService
from app.services.store_service import InMemoryCrewStore
from main import create_app

# Monday 2024-06-03, 09:00 UTC
MONDAY_9AM = datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)

WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri"]
_DAY_INDEX = {d: i for i, d in enumerate(["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"])}

EVENT_LAT = 29.760
EVENT_LNG = -95.370


def at(day: str, hour: int, minute: int = 0) -> datetime:
    """A UTC instant in the week of Monday 2024-06-03."""
    return MONDAY_9AM.replace(day=3 + _DAY_INDEX[day], hour=hour, minute=minute)


def make_crew(crew_id: str = "c-1", **overrides) -> Crew:
    data = {
        "id": crew_id,
        "crew_id": f"CREW-{crew_id.upper()}",
        "crew_name": f"Crew {crew_id}",
        "vehicle_type": "Bucket Truck",
        "team_size": 3,
        "specialization": "Storm Response",
        "current_lat": EVENT_LAT + 0.018,   # ~2 km north of the storm event
        "current_lng": EVENT_LNG,
        "shift_start": "08:00",
        "shift_end": "18:00",
        "break_start": "12:00",
        "break_end": "12:30",
        "days_of_week": WEEKDAYS,
    }
    data.update(overrides)
    return Crew.model_validate(data)


def make_event(event_id: str = "evt-storm", **overrides) -> OutageEvent:
    data = {
        "id": event_id,
        "name": "Downtown storm",
        "geo_center": {"lat": EVENT_LAT, "lng": EVENT_LNG},
        "outage_type": "Storm",
        "customers_impacted": 500,
        "priority": "high",
    }
    data.update(overrides)
    return OutageEvent.model_validate(data)


class FixedClock:
    """Settable clock so duty status can be tested without wall time."""

    def __init__(self, now: datetime = MONDAY_9AM):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def config() -> Settings:
    return Settings(store_backend="memory", simulation_workers=4, _env_file=None)


@pytest.fixture
def store() -> InMemoryCrewStore:
    crews = [
        make_crew("c-1"),
        make_crew("c-2", specialization="Line Crew", current_lat=EVENT_LAT + 0.09),
        # Night shift: off duty at Monday 09:00
        make_crew("c-3", shift_start="22:00", shift_end="06:00", break_start=None, break_end=None),
        make_crew("c-4", status="on_site", assigned_event_id="evt-storm", eta_minutes=0),
    ]
    events = [
        make_event(),
        make_event("evt-nogeo", geo_center=None, outage_type="Equipment Failure"),
        make_event("evt-big", customers_impacted=5000),
    ]
    return InMemoryCrewStore(crews, events)


@pytest.fixture
def service(store, clock, config) -> DispatchService:
    return DispatchService(store, now_fn=clock, config=config)


@pytest.fixture
def client(store, clock, config) -> TestClient:
    app = create_app(config=config, store=store, now_fn=clock)
    with TestClient(app) as c:
        yield c
