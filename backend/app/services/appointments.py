from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Dict, Iterator, Optional

import structlog
from sqlmodel import Session

from app.core.config import settings
from app.core.exceptions import AppointmentNotFoundError, SchedulingConflictError
from app.db.repository import AppointmentRepository
from app.models import Appointment
from app.models.base import utcnow
from app.schemas.appointment import (
    AppointmentRead,
    AppointmentStatusRead,
    AppointmentWriteResult,
    AvailabilityPeriods,
    DayAvailability,
    PatientSummary,
)
from app.services import audit, lifecycle
from app.services.audit_policy import ensure_appointment_metadata
from app.services.conflicts import as_utc, clinic_day_bounds, find_conflicts, free_starts, slot_for
from app.services.lifecycle import AppointmentStatus, ConfirmationKind
from app.services.notifications import (
    AppointmentCancelledEvent,
    AppointmentUpdatedEvent,
    NotificationDispatcher,
    SlotFreedEvent,
)

logger = structlog.get_logger(__name__)


def build_appointment_read(repository: AppointmentRepository, appointment: Appointment) -> AppointmentRead:
    slot = slot_for(appointment)
    patient = repository.get_patient(appointment.patient_id)
    service = repository.get_service(appointment.service_id)
    return AppointmentRead(
        id=appointment.id,
        start_time=slot.start,
        end_time=slot.end,
        duration_minutes=appointment.duration_minutes,
        service_id=appointment.service_id,
        service_type=service.name if service else None,
        provider_id=appointment.provider_id,
        status=lifecycle.parse_status(appointment.status),
        notes=appointment.notes,
        cancelled_at=as_utc(appointment.cancelled_at) if appointment.cancelled_at else None,
        patient=PatientSummary(id=patient.id, name=patient.name, phone=patient.phone) if patient else None,
        status_history=[
            AppointmentStatusRead(
                status=entry.status,
                changed_at=entry.changed_at,
                changed_by=entry.changed_by,
                note=entry.note,
            )
            for entry in repository.status_history(appointment.id)
        ],
    )


class AppointmentWriteService:
    """The only component that persists appointment changes.

    Each operation loads the row, validates the lifecycle rule, checks for
    conflicts and writes inside one session transaction; any error rolls the
    whole unit back. Notifications are handed to the dispatcher only after the
    commit and never influence the returned result.
    """

    def __init__(
        self,
        repository: AppointmentRepository,
        dispatcher: NotificationDispatcher,
        *,
        buffer_minutes: Optional[int] = None,
        clinic_timezone: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.dispatcher = dispatcher
        self.buffer_minutes = settings.scheduling_buffer_minutes if buffer_minutes is None else buffer_minutes
        self.clinic_timezone = clinic_timezone or settings.clinic_timezone
        self.clock = clock

    @property
    def session(self) -> Session:
        return self.repository.session

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _load(self, appointment_id: int) -> Appointment:
        appointment = self.repository.get(appointment_id, for_update=True)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    def _result(self, appointment: Appointment, *, changed: bool, already_cancelled: bool = False) -> AppointmentWriteResult:
        self.session.refresh(appointment)
        read = build_appointment_read(self.repository, appointment)
        return AppointmentWriteResult(
            **read.model_dump(),
            changed=changed,
            already_cancelled=already_cancelled,
        )

    def _ensure_slot_free(
        self,
        appointment: Appointment,
        *,
        start: datetime,
        provider_id: Optional[str],
    ) -> None:
        proposed = slot_for(appointment, start=start, resource_id=provider_id)
        day_start, day_end = clinic_day_bounds(proposed.start, self.clinic_timezone)
        candidates = self.repository.day_slots(
            provider_id=provider_id,
            day_start=day_start,
            day_end=day_end,
            excluded_statuses=[status.value for status in lifecycle.SLOT_RELEASING_STATUSES],
            exclude_id=appointment.id,
        )
        conflicts = find_conflicts(proposed, candidates, buffer_minutes=self.buffer_minutes)
        if conflicts:
            logger.info(
                "appointment_reschedule_conflict",
                appointment_id=appointment.id,
                provider_id=provider_id,
                conflicts=[slot.id for slot in conflicts],
            )
            raise SchedulingConflictError([slot.id for slot in conflicts])

    def reschedule(
        self,
        appointment_id: int,
        *,
        new_start: Optional[datetime] = None,
        new_provider: Optional[str] = None,
        actor_id: Optional[int] = None,
        context: Optional[dict] = None,
    ) -> AppointmentWriteResult:
        with self._transaction():
            appointment = self._load(appointment_id)
            lifecycle.ensure_reschedulable(appointment.status)

            previous_start = as_utc(appointment.start_time)
            previous_provider = appointment.provider_id
            target_start = as_utc(new_start) if new_start is not None else previous_start
            target_provider = new_provider if new_provider is not None else previous_provider

            changes: Dict[str, object] = {}
            if target_start != previous_start:
                changes["start_time"] = target_start
            if target_provider != previous_provider:
                changes["provider_id"] = target_provider

            if not changes:
                return self._result(appointment, changed=False)

            self._ensure_slot_free(appointment, start=target_start, provider_id=target_provider)

            now = self.clock()
            appointment.start_time = target_start
            appointment.provider_id = target_provider
            appointment.touch(now)
            self.repository.save(appointment)

            note_parts = [f"from={previous_start.isoformat()}", f"to={target_start.isoformat()}"]
            if "provider_id" in changes:
                note_parts.append(f"provider={previous_provider or '-'}->{target_provider or '-'}")
            self.repository.add_status_history(
                appointment,
                status=appointment.status,
                actor_id=actor_id,
                changed_at=now,
                note="rescheduled; " + "; ".join(note_parts),
            )
            audit.record_event(
                self.session,
                actor_id=actor_id,
                action="appointment.reschedule",
                resource_type="appointment",
                resource_id=str(appointment.id),
                metadata=ensure_appointment_metadata(
                    patient_id=appointment.patient_id,
                    extra={
                        "previous_start": previous_start.isoformat(),
                        "new_start": target_start.isoformat(),
                        "previous_provider_id": previous_provider,
                        "provider_id": target_provider,
                    },
                ),
                context=context or {},
            )

        result = self._result(appointment, changed=True)
        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment.id,
            provider_id=target_provider,
            start_time=target_start.isoformat(),
        )
        self.dispatcher.appointment_updated(
            AppointmentUpdatedEvent(appointment_id=appointment.id, changes=changes)
        )
        return result

    def cancel(
        self,
        appointment_id: int,
        *,
        reason: str,
        actor_id: Optional[int] = None,
        context: Optional[dict] = None,
    ) -> AppointmentWriteResult:
        with self._transaction():
            appointment = self._load(appointment_id)
            transition = lifecycle.cancel(appointment.status)
            if not transition.changed:
                logger.info("appointment_already_cancelled", appointment_id=appointment.id)
                return self._result(appointment, changed=False, already_cancelled=True)

            now = self.clock()
            appointment.notes = lifecycle.append_cancellation_note(appointment.notes, reason, now)
            appointment.status = transition.status.value
            appointment.cancelled_at = now
            appointment.touch(now)
            self.repository.save(appointment)

            self.repository.add_status_history(
                appointment,
                status=transition.status.value,
                actor_id=actor_id,
                changed_at=now,
                note=reason,
            )
            audit.record_event(
                self.session,
                actor_id=actor_id,
                action="appointment.cancel",
                resource_type="appointment",
                resource_id=str(appointment.id),
                metadata=ensure_appointment_metadata(
                    patient_id=appointment.patient_id,
                    reason=reason,
                    extra={"previous_status": transition.previous.value, "status": transition.status.value},
                ),
                context=context or {},
            )

        result = self._result(appointment, changed=True)
        logger.info("appointment_cancelled", appointment_id=appointment.id, provider_id=appointment.provider_id)
        patient = result.patient
        self.dispatcher.appointment_cancelled(
            AppointmentCancelledEvent(
                appointment_id=appointment.id,
                patient_id=appointment.patient_id,
                service_id=appointment.service_id,
                provider_id=appointment.provider_id,
                start_time=result.start_time,
                status=appointment.status,
                patient_name=patient.name if patient else None,
                patient_phone=patient.phone if patient else None,
                service_name=result.service_type,
            ),
            SlotFreedEvent(
                appointment_id=appointment.id,
                service_type=result.service_type,
                provider_id=appointment.provider_id,
                start_time=result.start_time,
            ),
        )
        return result

    def confirm(
        self,
        appointment_id: int,
        *,
        kind: ConfirmationKind = ConfirmationKind.CONFIRMED,
        actor_id: Optional[int] = None,
        context: Optional[dict] = None,
    ) -> AppointmentWriteResult:
        with self._transaction():
            appointment = self._load(appointment_id)
            transition = lifecycle.confirm(appointment.status, kind)
            if not transition.changed:
                return self._result(appointment, changed=False)

            now = self.clock()
            appointment.status = transition.status.value
            appointment.touch(now)
            self.repository.save(appointment)

            self.repository.add_status_history(
                appointment,
                status=transition.status.value,
                actor_id=actor_id,
                changed_at=now,
            )
            audit.record_event(
                self.session,
                actor_id=actor_id,
                action="appointment.confirm",
                resource_type="appointment",
                resource_id=str(appointment.id),
                metadata=ensure_appointment_metadata(
                    patient_id=appointment.patient_id,
                    extra={
                        "kind": ConfirmationKind(kind).value,
                        "previous_status": transition.previous.value,
                        "status": transition.status.value,
                    },
                ),
                context=context or {},
            )

        logger.info("appointment_confirmed", appointment_id=appointment.id, status=appointment.status)
        return self._result(appointment, changed=True)


def get_appointment(session: Session, appointment_id: int) -> AppointmentRead:
    repository = AppointmentRepository(session)
    appointment = repository.get(appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError(appointment_id)
    return build_appointment_read(repository, appointment)


def search_availability(
    session: Session,
    *,
    day: date,
    provider_id: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    service_id: Optional[int] = None,
) -> DayAvailability:
    repository = AppointmentRepository(session)
    duration = duration_minutes or settings.default_appointment_minutes
    if service_id is not None:
        service = repository.get_service(service_id)
        if service is None:
            raise ValueError(f"Unknown service {service_id}")
        duration = service.duration_minutes
    if duration <= 0:
        raise ValueError("duration_minutes must be positive")

    day_start, day_end = clinic_day_bounds(day, settings.clinic_timezone)
    existing = repository.day_slots(
        provider_id=provider_id,
        day_start=day_start,
        day_end=day_end,
        excluded_statuses=[status.value for status in lifecycle.SLOT_RELEASING_STATUSES],
    )
    starts = free_starts(
        day,
        resource_id=provider_id,
        periods=settings.working_periods,
        duration_minutes=duration,
        buffer_minutes=settings.scheduling_buffer_minutes,
        existing=existing,
        tz_name=settings.clinic_timezone,
    )
    labels = [start.strftime("%H:%M") for start in starts]
    return DayAvailability(
        day=day,
        provider_id=provider_id,
        duration_minutes=duration,
        starts=starts,
        slots=labels,
        total_available=len(labels),
        period=AvailabilityPeriods(
            morning=[label for start, label in zip(starts, labels) if start.hour < 12],
            afternoon=[label for start, label in zip(starts, labels) if start.hour >= 12],
        ),
    )
