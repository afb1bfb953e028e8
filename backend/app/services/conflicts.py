"""Interval arithmetic for provider double-booking checks.

Everything here is pure: callers load the candidate appointments (same
provider, same clinic day, non-excluded status) and hand them over as
:class:`TimeSlot` values.

Only the *proposed* slot is buffered. Existing bookings are compared at their
natural bounds, so changing the buffer never invalidates slots that were
accepted under an older setting.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

SlotId = Union[int, str]


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    resource_id: Optional[str]
    id: Optional[SlotId] = None


def as_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def slot_for(appointment: Any, *, start: Optional[datetime] = None, resource_id: Any = ...) -> TimeSlot:
    """Build the slot an appointment occupies, optionally at a different start or resource."""
    begin = as_utc(start if start is not None else appointment.start_time)
    return TimeSlot(
        id=appointment.id,
        start=begin,
        end=begin + timedelta(minutes=appointment.duration_minutes),
        resource_id=appointment.provider_id if resource_id is ... else resource_id,
    )


def with_buffer(slot: TimeSlot, buffer_minutes: int) -> TimeSlot:
    if buffer_minutes <= 0:
        return slot
    return replace(slot, end=slot.end + timedelta(minutes=buffer_minutes))


def overlaps(first: TimeSlot, second: TimeSlot) -> bool:
    if first.resource_id != second.resource_id:
        return False
    if first.id is not None and second.id is not None and first.id == second.id:
        return False
    return as_utc(first.start) < as_utc(second.end) and as_utc(second.start) < as_utc(first.end)


def find_conflicts(
    proposed: TimeSlot,
    existing: Iterable[TimeSlot],
    *,
    buffer_minutes: int = 0,
) -> List[TimeSlot]:
    buffered = with_buffer(proposed, buffer_minutes)
    return [slot for slot in existing if overlaps(buffered, slot)]


def clinic_day_bounds(moment: Union[datetime, date], tz_name: str) -> Tuple[datetime, datetime]:
    """UTC bounds ``[start, end)`` of the clinic-local calendar day containing ``moment``."""
    tz = ZoneInfo(tz_name)
    if isinstance(moment, datetime):
        local_day = as_utc(moment).astimezone(tz).date()
    else:
        local_day = moment
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return as_utc(start), as_utc(end)


def _parse_clock(value: str) -> time:
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes or 0))


def free_starts(
    day: date,
    *,
    resource_id: Optional[str],
    periods: Sequence[Tuple[str, str]],
    duration_minutes: int,
    buffer_minutes: int,
    existing: Sequence[TimeSlot],
    tz_name: str,
) -> List[datetime]:
    """Start times inside the working periods whose buffered slot is conflict free.

    Candidates advance by ``duration + buffer`` from the start of each period
    and must end (unbuffered) within it.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    tz = ZoneInfo(tz_name)
    length = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=duration_minutes + max(buffer_minutes, 0))
    starts: List[datetime] = []
    for period_start, period_end in periods:
        current = datetime.combine(day, _parse_clock(period_start), tzinfo=tz)
        boundary = datetime.combine(day, _parse_clock(period_end), tzinfo=tz)
        while current + length <= boundary:
            candidate = TimeSlot(start=as_utc(current), end=as_utc(current + length), resource_id=resource_id)
            if not find_conflicts(candidate, existing, buffer_minutes=buffer_minutes):
                starts.append(current)
            current += step
    return starts
