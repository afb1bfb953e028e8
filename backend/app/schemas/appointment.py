from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.core.config import settings
from app.services.lifecycle import AppointmentStatus, ConfirmationKind


class PatientSummary(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None


class AppointmentStatusRead(BaseModel):
    status: str
    changed_at: datetime
    changed_by: Optional[int] = None
    note: Optional[str] = None


class AppointmentRead(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    service_id: int
    service_type: Optional[str] = None
    provider_id: Optional[str] = None
    status: AppointmentStatus
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    patient: Optional[PatientSummary] = None
    status_history: List[AppointmentStatusRead] = Field(default_factory=list)


class AppointmentWriteResult(AppointmentRead):
    changed: bool = True
    already_cancelled: bool = False


class AppointmentRescheduleRequest(BaseModel):
    start_time: Optional[datetime] = None
    provider_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class AppointmentCancelRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason_length(cls, value: str) -> str:
        value = value.strip()
        if len(value) < settings.cancel_reason_min_length:
            raise ValueError(
                f"reason must be at least {settings.cancel_reason_min_length} characters"
            )
        if len(value) > settings.cancel_reason_max_length:
            raise ValueError(
                f"reason must be at most {settings.cancel_reason_max_length} characters"
            )
        return value


class AppointmentConfirmRequest(BaseModel):
    kind: ConfirmationKind = ConfirmationKind.CONFIRMED


class AvailabilityPeriods(BaseModel):
    morning: List[str] = Field(default_factory=list)
    afternoon: List[str] = Field(default_factory=list)


class DayAvailability(BaseModel):
    day: date
    provider_id: Optional[str] = None
    duration_minutes: int
    starts: List[datetime] = Field(default_factory=list)
    slots: List[str] = Field(default_factory=list)
    total_available: int = 0
    period: AvailabilityPeriods = Field(default_factory=AvailabilityPeriods)
