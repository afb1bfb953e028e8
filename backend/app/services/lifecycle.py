"""Appointment lifecycle rules.

``scheduled -> confirmed -> present`` is driven by this core, as is the move
to ``cancelled`` from any live state. ``no_show`` and ``completed`` are set by
external processes and, like ``cancelled``, admit no further transitions here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from app.core.exceptions import InvalidTransitionError, TerminalStateError


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    PRESENT = "present"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    COMPLETED = "completed"


class ConfirmationKind(str, Enum):
    CONFIRMED = "confirmed"
    PRESENT = "present"


TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW, AppointmentStatus.COMPLETED})

# Statuses whose slots are free for other bookings.
SLOT_RELEASING_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})

_PROGRESS = {
    AppointmentStatus.SCHEDULED: 0,
    AppointmentStatus.CONFIRMED: 1,
    AppointmentStatus.PRESENT: 2,
}


@dataclass(frozen=True)
class Transition:
    previous: AppointmentStatus
    status: AppointmentStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.status


def parse_status(value: Optional[str]) -> AppointmentStatus:
    return AppointmentStatus(value or AppointmentStatus.SCHEDULED.value)


def confirm(current: str, kind: ConfirmationKind = ConfirmationKind.CONFIRMED) -> Transition:
    status = parse_status(current)
    target = AppointmentStatus(ConfirmationKind(kind).value)
    if status in TERMINAL_STATUSES:
        raise TerminalStateError(status.value, action="confirm")
    if _PROGRESS[status] >= _PROGRESS[target]:
        return Transition(previous=status, status=status)
    if target is AppointmentStatus.PRESENT and status is not AppointmentStatus.CONFIRMED:
        raise InvalidTransitionError(status.value, target.value, required=AppointmentStatus.CONFIRMED.value)
    return Transition(previous=status, status=target)


def cancel(current: str) -> Transition:
    status = parse_status(current)
    if status is AppointmentStatus.CANCELLED:
        return Transition(previous=status, status=status)
    if status in TERMINAL_STATUSES:
        raise TerminalStateError(status.value, action="cancel")
    return Transition(previous=status, status=AppointmentStatus.CANCELLED)


def ensure_reschedulable(current: str) -> AppointmentStatus:
    status = parse_status(current)
    if status is AppointmentStatus.CANCELLED:
        raise TerminalStateError(status.value, action="reschedule")
    return status


def append_cancellation_note(notes: Optional[str], reason: str, at: datetime) -> str:
    entry = f"[{at.isoformat(timespec='seconds')}] Cancelled: {reason.strip()}"
    if notes and notes.strip():
        return f"{notes.rstrip()}\n{entry}"
    return entry
