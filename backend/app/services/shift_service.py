"""Shift Availability — derives a crew's duty status from its roster.

Duty status (on_shift / on_break / off_duty) is independent of the crew's
operational status and is never stored: it is a pure function of the
schedule and the current instant, recomputed on every query.
"""

from __future__ import annotations

from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from app.models.crew import (
    Crew,
    CrewAvailability,
    DutyStatus,
    ShiftEvaluation,
    ShiftSchedule,
)

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def in_time_range(t: int, start: int, end: int) -> bool:
    """Containment of minute-of-day ``t`` in ``[start, end)``, wrapping past midnight."""
    if start <= end:
        return start <= t < end
    # Overnight window, e.g. 22:00–06:00
    return t >= start or t < end


def _local(now: datetime, tz_name: Optional[str]) -> datetime:
    if tz_name and now.tzinfo is not None:
        return now.astimezone(ZoneInfo(tz_name))
    return now


def evaluate(schedule: ShiftSchedule, now: datetime, tz_name: Optional[str] = None) -> ShiftEvaluation:
    """Evaluate a roster at ``now``.

    A crew without a shift window or without work days is unrostered and is
    treated as always on shift.
    """
    if schedule.shift_start is None or schedule.shift_end is None or not schedule.days_of_week:
        return ShiftEvaluation(is_work_day=True, is_on_break=False, duty_status=DutyStatus.ON_SHIFT)

    local = _local(now, tz_name)
    weekday = WEEKDAYS[local.weekday()]
    minute = local.hour * 60 + local.minute

    is_work_day = weekday in schedule.days_of_week
    in_shift = in_time_range(minute, _minutes(schedule.shift_start), _minutes(schedule.shift_end))
    is_on_break = (
        schedule.break_start is not None
        and schedule.break_end is not None
        and in_time_range(minute, _minutes(schedule.break_start), _minutes(schedule.break_end))
    )

    if not is_work_day or not in_shift:
        status = DutyStatus.OFF_DUTY
    elif is_on_break:
        status = DutyStatus.ON_BREAK
    else:
        status = DutyStatus.ON_SHIFT

    return ShiftEvaluation(is_work_day=is_work_day, is_on_break=is_on_break, duty_status=status)


def annotate(crew: Crew, now: datetime, tz_name: Optional[str] = None) -> CrewAvailability:
    """Compose a crew with its duty state at ``now``."""
    ev = evaluate(crew.schedule, now, tz_name)
    return CrewAvailability(
        crew=crew,
        evaluated_at=now,
        is_work_day=ev.is_work_day,
        is_on_shift=ev.duty_status != DutyStatus.OFF_DUTY,
        is_on_break=ev.is_on_break,
        duty_status=ev.duty_status,
    )
