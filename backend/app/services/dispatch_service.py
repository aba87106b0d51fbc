"""Crew Dispatch Service — read-modify-write orchestration over the crew store.

Every mutating operation follows the same cycle:

  1. take the crew's in-process lock (at most one in-flight mutation per crew)
  2. read the crew (and event) from the store
  3. ask the state machine for the field patch, which validates the transition
  4. write the patch with compare-and-set on ``updated_at``

If the store reports a conflict (another process wrote in between), the whole
cycle is retried a bounded number of times before ``StoreConflictError``
surfaces. A rejected operation never writes.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from app.config import Settings, settings as default_settings
from app.models.crew import (
    AutoDispatchResult,
    Crew,
    CrewAvailability,
    CrewStatus,
    DutyStatus,
    EmergencyDispatchResult,
    MovementResult,
    OutageEvent,
    OvertimeLogEntry,
    RosterSummary,
    ScoreBreakdown,
    SimulationTickItem,
    SimulationTickResult,
)
from app.services import crew_state_service, movement_service, scoring_service, shift_service
from app.services.errors import (
    DispatchError,
    EmergencyAuthorizationRequired,
    IllegalTransitionError,
    InvalidGeometryError,
    NotFoundError,
    StoreConflictError,
)
from app.services.geo_service import eta_minutes, haversine_km
from app.services.store_service import CrewStore

logger = logging.getLogger("gridcrew.dispatch")

NowFn = Callable[[], datetime]
T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchService:
    def __init__(
        self,
        store: CrewStore,
        now_fn: NowFn = _utcnow,
        config: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.now_fn = now_fn
        self.config = config or default_settings
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ── Locking / retry ───────────────────────────────────────────────

    def _crew_lock(self, crew_id: str) -> threading.RLock:
        """Per-crew lock, reentrant so a caller can hold it across a mutation.

        Locks are only created for crews the store knows about.
        """
        with self._locks_guard:
            lock = self._locks.get(crew_id)
        if lock is None:
            self.store.get_crew(crew_id)
            with self._locks_guard:
                lock = self._locks.setdefault(crew_id, threading.RLock())
        return lock

    def _mutate(self, crew_id: str, plan: Callable[[Crew], Tuple[Dict[str, Any], T]]) -> Tuple[Crew, T]:
        """Run ``plan`` against a fresh read of the crew and persist its patch.

        ``plan`` returns ``(fields, extra)``; it raises to reject the operation.
        """
        attempts = max(1, self.config.store_conflict_retries)
        with self._crew_lock(crew_id):
            for attempt in range(1, attempts + 1):
                crew = self.store.get_crew(crew_id)
                fields, extra = plan(crew)
                try:
                    updated = self.store.update_crew(crew_id, fields, expected_updated_at=crew.updated_at)
                except StoreConflictError:
                    logger.warning(
                        "Conflict updating crew %s (attempt %d/%d)", crew_id, attempt, attempts
                    )
                    continue
                return updated, extra
        raise StoreConflictError(f"Crew {crew_id} kept changing; gave up after {attempts} attempts")

    def _event_with_center(self, event_id: str) -> OutageEvent:
        event = self.store.get_event(event_id)
        if event.geo_center is None:
            raise InvalidGeometryError(f"Event {event_id} has no geo centre")
        return event

    def _eta_to(self, crew: Crew, event: OutageEvent) -> int:
        center = event.geo_center
        dist = haversine_km(crew.current_lat, crew.current_lng, center.lat, center.lng)
        return eta_minutes(dist, self.config.vehicle_speed_kmh)

    def _duty(self, crew: Crew, now: datetime) -> DutyStatus:
        return shift_service.evaluate(crew.schedule, now, self.config.operations_timezone).duty_status

    # ── Queries ───────────────────────────────────────────────────────

    def list_crews(self, status: Optional[CrewStatus] = None) -> List[Crew]:
        return self.store.list_crews(status)

    def get_crew(self, crew_id: str) -> Crew:
        return self.store.get_crew(crew_id)

    def get_crew_availability(self, crew_id: str) -> CrewAvailability:
        crew = self.store.get_crew(crew_id)
        return shift_service.annotate(crew, self.now_fn(), self.config.operations_timezone)

    def list_crew_availability(self, status: Optional[CrewStatus] = None) -> List[CrewAvailability]:
        now = self.now_fn()
        tz = self.config.operations_timezone
        return [shift_service.annotate(c, now, tz) for c in self.store.list_crews(status)]

    def roster_summary(self) -> RosterSummary:
        annotated = self.list_crew_availability()
        by_status = Counter(a.crew.status for a in annotated)
        available = [a for a in annotated if a.crew.status == CrewStatus.AVAILABLE]
        return RosterSummary(
            total_crews=len(annotated),
            on_shift_available=sum(1 for a in available if a.is_on_shift),
            off_duty_available=sum(1 for a in available if not a.is_on_shift),
            active=sum(by_status[s] for s in crew_state_service.ACTIVE_STATUSES),
            by_status={s: by_status.get(s, 0) for s in CrewStatus},
        )

    def list_events(self) -> List[OutageEvent]:
        return self.store.list_events()

    def list_overtime_logs(self, crew_id: Optional[str] = None) -> List[OvertimeLogEntry]:
        if crew_id is not None:
            self.store.get_crew(crew_id)
        return self.store.list_overtime_logs(crew_id)

    def recommendations(self, event_id: str, limit: Optional[int] = None) -> List[ScoreBreakdown]:
        """Top-N crews for an event. Events without a geo centre rank nobody."""
        event = self.store.get_event(event_id)
        ranked = scoring_service.rank(
            self.store.list_crews(CrewStatus.AVAILABLE),
            event,
            self.now_fn(),
            self.config.operations_timezone,
            self.config.vehicle_speed_kmh,
        )
        return ranked[: limit or self.config.recommendation_limit]

    # ── Transitions ───────────────────────────────────────────────────

    def dispatch(self, crew_id: str, event_id: str) -> Crew:
        """Send an on-duty crew to an event."""
        event = self._event_with_center(event_id)

        def plan(crew: Crew) -> Tuple[Dict[str, Any], None]:
            now = self.now_fn()
            crew_state_service.ensure_transition(crew, CrewStatus.DISPATCHED)
            if self.config.require_emergency_for_off_duty and self._duty(crew, now) == DutyStatus.OFF_DUTY:
                raise EmergencyAuthorizationRequired(
                    f"Crew {crew.crew_id} is off duty; use emergency dispatch",
                    current=crew.status.value,
                    requested=CrewStatus.DISPATCHED.value,
                )
            return crew_state_service.dispatch_update(crew, event, self._eta_to(crew, event), now), None

        updated, _ = self._mutate(crew_id, plan)
        logger.info(
            "Dispatched crew %s to event %s (eta=%s min)",
            updated.crew_id, event_id, updated.eta_minutes,
        )
        return updated

    def emergency_dispatch(
        self,
        crew_id: str,
        event_id: str,
        authorized_by: str,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> EmergencyDispatchResult:
        """Dispatch under explicit authorisation, writing one overtime audit entry.

        The crew write and the log append succeed or fail together: if the
        append fails the crew is restored to its pre-dispatch fields.
        """
        event = self._event_with_center(event_id)

        def plan(crew: Crew) -> Tuple[Dict[str, Any], Tuple[OvertimeLogEntry, Dict[str, Any]]]:
            fields, entry = crew_state_service.emergency_dispatch_update(
                crew,
                event,
                self._eta_to(crew, event),
                self.now_fn(),
                authorized_by=authorized_by,
                reason=reason or self.config.overtime_default_reason,
                notes=notes,
            )
            prior = {k: getattr(crew, k) for k in fields}
            return fields, (entry, prior)

        with self._crew_lock(crew_id):
            updated, (entry, prior) = self._mutate(crew_id, plan)
            try:
                entry = self.store.append_overtime_log(entry)
            except DispatchError as exc:
                logger.error(
                    "Overtime log for crew %s failed, rolling back dispatch: %s", updated.crew_id, exc
                )
                self.store.update_crew(crew_id, prior, expected_updated_at=updated.updated_at)
                raise
        logger.info(
            "Emergency dispatch of crew %s to event %s authorized by %s",
            updated.crew_id, event_id, entry.authorized_by,
        )
        return EmergencyDispatchResult(crew=updated, overtime_log=entry)

    def movement_step(
        self,
        crew_id: str,
        target_lat: Optional[float] = None,
        target_lng: Optional[float] = None,
    ) -> MovementResult:
        """Advance a moving crew one tick. Target defaults to its event's centre."""

        def plan(crew: Crew) -> Tuple[Dict[str, Any], Any]:
            if crew.status not in crew_state_service.MOVING_STATUSES:
                raise IllegalTransitionError(
                    f"Crew {crew.crew_id} is {crew.status.value}, not travelling",
                    current=crew.status.value,
                    requested=CrewStatus.EN_ROUTE.value,
                )
            lat, lng = target_lat, target_lng
            if lat is None or lng is None:
                if not crew.assigned_event_id:
                    raise InvalidGeometryError(f"Crew {crew.crew_id} has no destination")
                center = self._event_with_center(crew.assigned_event_id).geo_center
                lat, lng = center.lat, center.lng
            step = movement_service.step_crew(
                crew,
                lat,
                lng,
                fraction=self.config.movement_fraction,
                arrival_km=self.config.arrival_threshold_km,
                speed_kmh=self.config.vehicle_speed_kmh,
            )
            return crew_state_service.movement_update(crew, step), step

        updated, step = self._mutate(crew_id, plan)
        if step.arrived:
            logger.info("Crew %s arrived on site (event %s)", updated.crew_id, updated.assigned_event_id)
        return MovementResult(crew=updated, step=step)

    def mark_returning(self, crew_id: str) -> Crew:
        updated, _ = self._mutate(crew_id, lambda c: (crew_state_service.returning_update(c), None))
        logger.info("Crew %s returning from event %s", updated.crew_id, updated.assigned_event_id)
        return updated

    def mark_available(self, crew_id: str) -> Crew:
        updated, _ = self._mutate(crew_id, lambda c: (crew_state_service.available_update(c), None))
        logger.info("Crew %s released and available", updated.crew_id)
        return updated

    # ── Policies ──────────────────────────────────────────────────────

    def auto_dispatch(
        self,
        event_id: str,
        authorized_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AutoDispatchResult:
        """Dispatch the best-ranked crew that can legally take the event.

        Off-duty candidates are only considered when ``authorized_by`` is
        given, in which case they go through the emergency path.
        """
        event = self._event_with_center(event_id)
        ranked = scoring_service.rank(
            self.store.list_crews(CrewStatus.AVAILABLE),
            event,
            self.now_fn(),
            self.config.operations_timezone,
            self.config.vehicle_speed_kmh,
        )
        for rec in ranked:
            try:
                if rec.requires_emergency_authorization:
                    if not authorized_by:
                        continue
                    result = self.emergency_dispatch(rec.crew_id, event_id, authorized_by, notes)
                    return AutoDispatchResult(crew=result.crew, score=rec, overtime_log=result.overtime_log)
                crew = self.dispatch(rec.crew_id, event_id)
                return AutoDispatchResult(crew=crew, score=rec)
            except IllegalTransitionError as exc:
                # Taken or went off duty since ranking; try the next one.
                logger.info("Skipping crew %s for auto-dispatch: %s", rec.crew_code, exc)
                continue
        raise NotFoundError("Dispatchable crew for event", event_id)

    def _step_one(self, crew: Crew) -> SimulationTickItem:
        try:
            result = self.movement_step(crew.id)
        except DispatchError as exc:
            logger.warning("Simulation step failed for crew %s: %s", crew.crew_id, exc)
            return SimulationTickItem(crew_id=crew.id, status=crew.status, error=str(exc))
        return SimulationTickItem(
            crew_id=crew.id,
            status=result.crew.status,
            arrived=result.step.arrived,
            eta_minutes=result.crew.eta_minutes,
        )

    def simulate_active(self) -> SimulationTickResult:
        """One movement tick for every travelling crew, in parallel across crews."""
        moving = [
            c for c in self.store.list_crews()
            if c.status in crew_state_service.MOVING_STATUSES
        ]
        if not moving:
            return SimulationTickResult(stepped=0, arrived=0, failed=0, results=[])

        workers = max(1, min(self.config.simulation_workers, len(moving)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crew-sim") as pool:
            results = list(pool.map(self._step_one, moving))

        failed = sum(1 for r in results if r.error)
        return SimulationTickResult(
            stepped=len(results) - failed,
            arrived=sum(1 for r in results if r.arrived),
            failed=failed,
            results=results,
        )
