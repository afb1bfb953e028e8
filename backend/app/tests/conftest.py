from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[3]
BACKEND_ROOT = PROJECT_ROOT / "backend"

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_clinic_scheduling.db")

from sqlalchemy import text  # noqa: E402
from sqlmodel import Session  # noqa: E402

from app.db.session import engine, init_db  # noqa: E402
from app.models import Appointment, Patient, Service  # noqa: E402
from app.services.notifications import (  # noqa: E402
    AppointmentCancelledEvent,
    AppointmentUpdatedEvent,
    NotificationDispatcher,
    SlotFreedEvent,
    SyncCollaborator,
    WaitlistCollaborator,
)


class RecordingSync(SyncCollaborator):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[Tuple[str, object]] = []

    def appointment_updated(self, event: AppointmentUpdatedEvent) -> None:
        self.calls.append(("appointment_updated", event))
        if self.fail:
            raise RuntimeError("sync unavailable")

    def appointment_cancelled(self, event: AppointmentCancelledEvent) -> None:
        self.calls.append(("appointment_cancelled", event))
        if self.fail:
            raise RuntimeError("sync unavailable")


class RecordingWaitlist(WaitlistCollaborator):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[SlotFreedEvent] = []

    def slot_freed(self, event: SlotFreedEvent) -> None:
        self.calls.append(event)
        if self.fail:
            raise RuntimeError("waitlist unavailable")


@pytest.fixture
def database() -> None:
    init_db()
    with Session(engine) as session:
        session.exec(text("DELETE FROM appointment_status_history"))
        session.exec(text("DELETE FROM appointments"))
        session.exec(text("DELETE FROM audit_events"))
        session.exec(text("DELETE FROM services"))
        session.exec(text("DELETE FROM patients"))
        session.commit()


@pytest.fixture
def session(database: None) -> Iterator[Session]:
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def sync() -> RecordingSync:
    return RecordingSync()


@pytest.fixture
def waitlist() -> RecordingWaitlist:
    return RecordingWaitlist()


@pytest.fixture
def dispatcher(sync: RecordingSync, waitlist: RecordingWaitlist) -> Iterator[NotificationDispatcher]:
    dispatcher = NotificationDispatcher(sync, waitlist, max_workers=2)
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def clinic(database: None) -> dict:
    """One patient and one 30 minute service."""
    with Session(engine) as session:
        patient = Patient(name="Maria Souza", phone="+55 11 98765-4321")
        service = Service(name="Consulta", duration_minutes=30)
        session.add(patient)
        session.add(service)
        session.commit()
        return {"patient_id": patient.id, "service_id": service.id}


@pytest.fixture
def book(clinic: dict) -> Callable[..., int]:
    """Insert an appointment directly; ``start`` must be an aware UTC datetime."""

    def _book(
        start: datetime,
        *,
        provider_id: Optional[str] = "dr-silva",
        status: str = "scheduled",
        duration_minutes: int = 30,
        notes: Optional[str] = None,
    ) -> int:
        with Session(engine) as session:
            appointment = Appointment(
                patient_id=clinic["patient_id"],
                service_id=clinic["service_id"],
                provider_id=provider_id,
                start_time=start,
                duration_minutes=duration_minutes,
                status=status,
                notes=notes,
            )
            session.add(appointment)
            session.commit()
            return appointment.id

    return _book


@pytest.fixture
def make_dispatcher() -> Iterator[Callable[..., Tuple[NotificationDispatcher, RecordingSync, RecordingWaitlist]]]:
    """Dispatchers over recording collaborators that can be told to fail."""
    created: List[NotificationDispatcher] = []

    def _make(
        *, sync_fails: bool = False, waitlist_fails: bool = False
    ) -> Tuple[NotificationDispatcher, RecordingSync, RecordingWaitlist]:
        sync = RecordingSync(fail=sync_fails)
        waitlist = RecordingWaitlist(fail=waitlist_fails)
        dispatcher = NotificationDispatcher(sync, waitlist, max_workers=2)
        created.append(dispatcher)
        return dispatcher, sync, waitlist

    yield _make
    for dispatcher in created:
        dispatcher.shutdown()
