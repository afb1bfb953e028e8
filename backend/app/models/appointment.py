from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field

from app.models.base import TimestampMixin, utcnow


class Appointment(TimestampMixin, table=True):
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id")
    service_id: int = Field(foreign_key="services.id")
    provider_id: Optional[str] = Field(default=None, index=True, max_length=64)
    start_time: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    duration_minutes: int = Field(default=30)
    status: str = Field(default="scheduled", max_length=32, index=True)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    cancelled_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class AppointmentStatusHistory(TimestampMixin, table=True):
    __tablename__ = "appointment_status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    status: str = Field(max_length=32)
    changed_by: Optional[int] = Field(default=None)
    changed_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    note: Optional[str] = Field(default=None, max_length=500)
