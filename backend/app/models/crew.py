"""Pydantic models for crews, outage events, overtime logs and dispatch scoring."""

from datetime import datetime, time
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, PositiveInt

# Roster day codes as stored in the crews table
Weekday = Literal["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

# ── Enums ───────────────────────────────────────────────────────────


class CrewStatus(str, Enum):
    AVAILABLE = "available"
    DISPATCHED = "dispatched"
    EN_ROUTE = "en_route"
    ON_SITE = "on_site"
    RETURNING = "returning"


class DutyStatus(str, Enum):
    ON_SHIFT = "on_shift"
    ON_BREAK = "on_break"
    OFF_DUTY = "off_duty"


class Specialization(str, Enum):
    STORM_RESPONSE = "Storm Response"
    EMERGENCY_RESPONSE = "Emergency Response"
    LINE_CREW = "Line Crew"
    GENERAL = "General"
    UNDERGROUND = "Underground"
    TRANSFORMER = "Transformer"
    SUBSTATION = "Substation"
    HIGH_VOLTAGE = "High Voltage"
    TREE_TRIMMING = "Tree Trimming"


# ── Crews ───────────────────────────────────────────────────────────


class ShiftSchedule(BaseModel):
    """Weekly roster of a crew. Times are wall-clock in the operations timezone."""
    shift_start: Optional[time] = None
    shift_end: Optional[time] = None
    break_start: Optional[time] = None
    break_end: Optional[time] = None
    days_of_week: List[Weekday] = Field(default_factory=list)


class Crew(BaseModel):
    id: str
    crew_id: str
    crew_name: str
    vehicle_type: str = "Bucket Truck"
    team_size: PositiveInt = 1
    specialization: Optional[Specialization] = None
    contact_phone: Optional[str] = None

    shift_start: Optional[time] = None
    shift_end: Optional[time] = None
    break_start: Optional[time] = None
    break_end: Optional[time] = None
    days_of_week: Optional[List[Weekday]] = None

    status: CrewStatus = CrewStatus.AVAILABLE
    current_lat: float
    current_lng: float
    assigned_event_id: Optional[str] = None
    eta_minutes: Optional[int] = None
    dispatch_time: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def schedule(self) -> ShiftSchedule:
        return ShiftSchedule(
            shift_start=self.shift_start,
            shift_end=self.shift_end,
            break_start=self.break_start,
            break_end=self.break_end,
            days_of_week=self.days_of_week or [],
        )


class ShiftEvaluation(BaseModel):
    is_work_day: bool
    is_on_break: bool
    duty_status: DutyStatus


class CrewAvailability(BaseModel):
    """A crew together with its duty state at a given instant (derived, never stored)."""
    crew: Crew
    evaluated_at: datetime
    is_work_day: bool
    is_on_shift: bool
    is_on_break: bool
    duty_status: DutyStatus


class RosterSummary(BaseModel):
    total_crews: int
    on_shift_available: int
    off_duty_available: int
    active: int
    by_status: Dict[CrewStatus, int]


# ── Outage events ───────────────────────────────────────────────────


class GeoPoint(BaseModel):
    lat: float
    lng: float


class OutageEvent(BaseModel):
    id: str
    name: str = ""
    geo_center: Optional[GeoPoint] = None
    outage_type: Optional[str] = None
    customers_impacted: Optional[int] = None
    priority: Optional[str] = None


# ── Overtime audit log ──────────────────────────────────────────────


class OvertimeLogEntry(BaseModel):
    """Audit record written once per emergency dispatch of an off-duty crew."""
    model_config = {"frozen": True}

    id: str
    crew_id: str
    event_id: str
    reason: str
    authorized_by: str
    notes: str = ""
    dispatch_time: datetime
    created_at: Optional[datetime] = None


# ── Scoring ─────────────────────────────────────────────────────────


class ScoreBreakdown(BaseModel):
    """How well one available crew fits one outage event."""
    crew_id: str
    crew_code: str
    crew_name: str
    distance_km: float
    eta_minutes: int
    proximity_score: float
    specialization_score: float
    availability_score: float
    team_size_bonus: float
    total_score: int
    duty_status: DutyStatus
    requires_emergency_authorization: bool
    match_reasons: List[str] = Field(default_factory=list)


# ── Movement ────────────────────────────────────────────────────────


class MovementStep(BaseModel):
    new_lat: float
    new_lng: float
    remaining_km: float
    eta_minutes: int
    arrived: bool


# ── Requests / results ──────────────────────────────────────────────


class DispatchRequest(BaseModel):
    """Request body for a normal dispatch."""
    event_id: str


class EmergencyDispatchRequest(BaseModel):
    """Request body for dispatching an off-duty crew under authorisation."""
    event_id: str
    authorized_by: str = Field(min_length=1)
    notes: Optional[str] = None
    reason: Optional[str] = None


class MovementStepRequest(BaseModel):
    """Target defaults to the assigned event's centre when omitted."""
    target_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    target_lng: Optional[float] = Field(default=None, ge=-180, le=180)


class AutoDispatchRequest(BaseModel):
    authorized_by: Optional[str] = None
    notes: Optional[str] = None


class EmergencyDispatchResult(BaseModel):
    crew: Crew
    overtime_log: OvertimeLogEntry


class MovementResult(BaseModel):
    crew: Crew
    step: MovementStep


class AutoDispatchResult(BaseModel):
    crew: Crew
    score: ScoreBreakdown
    overtime_log: Optional[OvertimeLogEntry] = None


class SimulationTickItem(BaseModel):
    crew_id: str
    status: Optional[CrewStatus] = None
    arrived: bool = False
    eta_minutes: Optional[int] = None
    error: Optional[str] = None


class SimulationTickResult(BaseModel):
    stepped: int
    arrived: int
    failed: int
    results: List[SimulationTickItem]
