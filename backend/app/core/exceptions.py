"""Typed errors raised by the appointment write path."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

AppointmentId = Union[int, str]


class SchedulingError(Exception):
    """Base class for errors surfaced to callers of the write operations."""

    status_code: int = 500
    code: str = "SCHEDULING_ERROR"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code}


class AppointmentNotFoundError(SchedulingError):
    status_code = 404
    code = "APPOINTMENT_NOT_FOUND"

    def __init__(self, appointment_id: AppointmentId) -> None:
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class TerminalStateError(SchedulingError):
    status_code = 409
    code = "TERMINAL_STATE"

    def __init__(self, status: str, *, action: str) -> None:
        super().__init__(f"Cannot {action} appointment with status: {status}")
        self.status = status
        self.action = action

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["status"] = self.status
        return detail


class InvalidTransitionError(SchedulingError):
    status_code = 400
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str, *, required: str) -> None:
        super().__init__(f"Appointment must be {required} before marking as {requested}")
        self.current = current
        self.requested = requested
        self.required = required

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail.update({"status": self.current, "requested": self.requested, "required": self.required})
        return detail


class SchedulingConflictError(SchedulingError):
    status_code = 409
    code = "SCHEDULING_CONFLICT"

    def __init__(self, conflicting_ids: List[AppointmentId]) -> None:
        super().__init__("Time slot already booked")
        self.conflicting_ids = list(conflicting_ids)

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["conflicts"] = self.conflicting_ids
        return detail
