from __future__ import annotations

from datetime import timezone

from sqlmodel import SQLModel

from app.models import Appointment, AppointmentStatusHistory, AuditEvent, Patient, Service
from app.models.base import utcnow


def test_tables_carry_timestamp_columns() -> None:
    for model in (Appointment, AppointmentStatusHistory, AuditEvent, Patient, Service):
        assert issubclass(model, SQLModel)
        columns = model.__table__.c
        assert "created_at" in columns
        assert "updated_at" in columns
        assert columns["created_at"].type.timezone is True


def test_event_times_are_timezone_aware() -> None:
    assert utcnow().tzinfo is timezone.utc
    assert AppointmentStatusHistory.__table__.c["changed_at"].type.timezone is True
    assert AuditEvent.__table__.c["timestamp"].type.timezone is True

    entry = AppointmentStatusHistory(appointment_id=1, status="confirmed")
    event = AuditEvent(action="appointment.confirm", resource_type="appointment")
    assert entry.changed_at.tzinfo is not None
    assert event.timestamp.tzinfo is not None
