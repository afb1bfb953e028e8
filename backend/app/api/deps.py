from __future__ import annotations


from typing import Iterator, Optional

from fastapi import Depends, Header, Request
from sqlmodel import Session

from app.db.repository import AppointmentRepository
from app.db.session import get_session
from app.services.appointments import AppointmentWriteService
from app.services.notifications import NotificationDispatcher, get_notification_dispatcher


def get_db() -> Iterator[Session]:
    with get_session() as session:
        yield session


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


def get_write_service(
    session: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AppointmentWriteService:
    return AppointmentWriteService(AppointmentRepository(session), dispatcher)


def get_actor_id(x_actor_id: Optional[int] = Header(default=None)) -> Optional[int]:
    return x_actor_id


def get_audit_context(request: Request) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "request_path": request.url.path,
    }
