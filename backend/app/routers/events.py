"""Outage event endpoints — crew recommendations and auto-dispatch."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.models.crew import (
    AutoDispatchRequest,
    AutoDispatchResult,
    OutageEvent,
    OvertimeLogEntry,
    ScoreBreakdown,
)
from app.routers.crews import get_dispatch_service
from app.schemas.responses import SuccessResponse
from app.services.dispatch_service import DispatchService

router = APIRouter(prefix="/api", tags=["events"])


@router.get("/events", response_model=SuccessResponse[List[OutageEvent]])
def list_events(
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[List[OutageEvent]]:
    return SuccessResponse(data=service.list_events())


@router.get("/events/{event_id}/recommendations", response_model=SuccessResponse[List[ScoreBreakdown]])
def recommendations(
    event_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[List[ScoreBreakdown]]:
    """Best-matching available crews for an event, highest score first.

    Events without a geo centre return an empty list.
    """
    return SuccessResponse(data=service.recommendations(event_id, limit))


@router.post("/events/{event_id}/auto-dispatch", response_model=SuccessResponse[AutoDispatchResult])
def auto_dispatch(
    event_id: str,
    body: Optional[AutoDispatchRequest] = None,
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[AutoDispatchResult]:
    """Dispatch the top recommendation that can legally take the event.

    Off-duty crews are only picked when ``authorized_by`` is supplied.
    """
    body = body or AutoDispatchRequest()
    return SuccessResponse(data=service.auto_dispatch(event_id, body.authorized_by, body.notes))


@router.get("/overtime-logs", response_model=SuccessResponse[List[OvertimeLogEntry]])
def overtime_logs(
    service: DispatchService = Depends(get_dispatch_service),
) -> SuccessResponse[List[OvertimeLogEntry]]:
    """Emergency-dispatch audit trail."""
    return SuccessResponse(data=service.list_overtime_logs())
