"""Crew endpoints — roster queries and the dispatch lifecycle."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.models.crew import (
    Crew,
    CrewAvailability,
    CrewStatus,
    DispatchRequest,
    EmergencyDispatchRequest,
    EmergencyDispatchResult,
    MovementResult,
    MovementStepRequest,
    OvertimeLogEntry,
    RosterSummary,
    SimulationTickResult,
)
from app.schemas.responses import SuccessResponse
from app.services.dispatch_service import DispatchService

router = APIRouter(prefix="/api/crews", tags=["crews"])


def get_dispatch_service(request: Request) -> DispatchService:
    return request.app.state.dispatch


@router.get("", response_model=SuccessResponse[List[Crew]])
def list_crews(
    status: Optional[CrewStatus] = Query(default=None, examples=["available", "en_route"]),
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[List[Crew]]:
    """All crews, optionally filtered by operational status."""
    return SuccessResponse(data=service.list_crews(status))


@router.get("/availability", response_model=SuccessResponse[List[CrewAvailability]])
def list_availability(
    status: Optional[CrewStatus] = Query(default=None),
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[List[CrewAvailability]]:
    """Crews annotated with their current duty status."""
    return SuccessResponse(data=service.list_crew_availability(status))


@router.get("/summary", response_model=SuccessResponse[RosterSummary])
def roster_summary(
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[RosterSummary]:
    """Counts of on-shift, off-duty and active crews."""
    return SuccessResponse(data=service.roster_summary())


@router.post("/simulate", response_model=SuccessResponse[SimulationTickResult])
def simulate_all(
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[SimulationTickResult]:
    """Advance every travelling crew one movement tick toward its event.

    Call repeatedly (e.g. every few seconds) to walk crews
    dispatched → en_route → on_site.
    """
    return SuccessResponse(data=service.simulate_active())


@router.get("/{crew_id}", response_model=SuccessResponse[Crew])
def get_crew(
    crew_id: str,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[Crew]:
    return SuccessResponse(data=service.get_crew(crew_id))


@router.get("/{crew_id}/availability", response_model=SuccessResponse[CrewAvailability])
def crew_availability(
    crew_id: str,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[CrewAvailability]:
    return SuccessResponse(data=service.get_crew_availability(crew_id))


@router.get("/{crew_id}/overtime-logs", response_model=SuccessResponse[List[OvertimeLogEntry]])
def crew_overtime_logs(
    crew_id: str,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[List[OvertimeLogEntry]]:
    return SuccessResponse(data=service.list_overtime_logs(crew_id))


@router.post("/{crew_id}/dispatch", response_model=SuccessResponse[Crew])
def dispatch_crew(
    crew_id: str,
    body: DispatchRequest,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[Crew]:
    """Dispatch an available, on-duty crew to an outage event."""
    return SuccessResponse(data=service.dispatch(crew_id, body.event_id))


@router.post("/{crew_id}/emergency-dispatch", response_model=SuccessResponse[EmergencyDispatchResult])
def emergency_dispatch_crew(
    crew_id: str,
    body: EmergencyDispatchRequest,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[EmergencyDispatchResult]:
    """Dispatch an off-duty crew; the authorisation is logged as overtime."""
    result = service.emergency_dispatch(
        crew_id,
        body.event_id,
        authorized_by=body.authorized_by,
        notes=body.notes,
        reason=body.reason,
    )
    return SuccessResponse(data=result)


@router.post("/{crew_id}/movement-step", response_model=SuccessResponse[MovementResult])
def movement_step(
    crew_id: str,
    body: Optional[MovementStepRequest] = None,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[MovementResult]:
    """Move a travelling crew 20% closer to its destination."""
    body = body or MovementStepRequest()
    return SuccessResponse(data=service.movement_step(crew_id, body.target_lat, body.target_lng))


@router.post("/{crew_id}/mark-returning", response_model=SuccessResponse[Crew])
def mark_returning(
    crew_id: str,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[Crew]:
    return SuccessResponse(data=service.mark_returning(crew_id))


@router.post("/{crew_id}/mark-available", response_model=SuccessResponse[Crew])
def mark_available(
    crew_id: str,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[Crew]:
    """Release an on-site or returning crew and clear its assignment."""
    return SuccessResponse(data=service.mark_available(crew_id))
