"""Data access for the appointment write path."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlmodel import Session, select

from app.models import Appointment, AppointmentStatusHistory, Patient, Service
from app.services.conflicts import TimeSlot, as_utc, slot_for


class AppointmentRepository:
    """Wraps one session; every read and write of a write operation goes through it."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, appointment_id: int, *, for_update: bool = False) -> Optional[Appointment]:
        statement = select(Appointment).where(Appointment.id == appointment_id)
        if for_update:
            statement = statement.with_for_update()
        return self.session.exec(statement).first()

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        return self.session.get(Patient, patient_id)

    def get_service(self, service_id: int) -> Optional[Service]:
        return self.session.get(Service, service_id)

    def day_slots(
        self,
        *,
        provider_id: Optional[str],
        day_start: datetime,
        day_end: datetime,
        excluded_statuses: Iterable[str],
        exclude_id: Optional[int] = None,
    ) -> List[TimeSlot]:
        """Project same-provider appointments starting in ``[day_start, day_end)`` to slots."""
        statement = select(Appointment).where(
            Appointment.start_time >= as_utc(day_start),
            Appointment.start_time < as_utc(day_end),
            Appointment.status.not_in(list(excluded_statuses)),
        )
        if provider_id is None:
            statement = statement.where(Appointment.provider_id.is_(None))
        else:
            statement = statement.where(Appointment.provider_id == provider_id)
        if exclude_id is not None:
            statement = statement.where(Appointment.id != exclude_id)
        return [slot_for(row) for row in self.session.exec(statement).all()]

    def add_status_history(
        self,
        appointment: Appointment,
        *,
        status: str,
        actor_id: Optional[int],
        changed_at: datetime,
        note: Optional[str] = None,
    ) -> AppointmentStatusHistory:
        entry = AppointmentStatusHistory(
            appointment_id=appointment.id,
            status=status,
            changed_by=actor_id,
            changed_at=changed_at,
            note=note[:500] if note else note,
        )
        self.session.add(entry)
        return entry

    def status_history(self, appointment_id: int) -> List[AppointmentStatusHistory]:
        return list(
            self.session.exec(
                select(AppointmentStatusHistory)
                .where(AppointmentStatusHistory.appointment_id == appointment_id)
                .order_by(AppointmentStatusHistory.id.desc())
            ).all()
        )

    def save(self, appointment: Appointment) -> None:
        self.session.add(appointment)
