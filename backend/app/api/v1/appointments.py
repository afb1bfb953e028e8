from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from app.api.deps import get_actor_id, get_audit_context, get_db, get_write_service
from app.core.exceptions import SchedulingError
from app.schemas import (
    AppointmentCancelRequest,
    AppointmentConfirmRequest,
    AppointmentRead,
    AppointmentRescheduleRequest,
    AppointmentWriteResult,
    DayAvailability,
    ErrorResponse,
)
from app.services.appointments import AppointmentWriteService, get_appointment, search_availability

router = APIRouter(prefix="/appointments", tags=["appointments"])

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
}


def _scheduling_error(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


@router.get("/availability", response_model=DayAvailability)
def list_availability(
    day: date,
    provider_id: Optional[str] = None,
    duration_minutes: Optional[int] = Query(default=None, ge=15, le=480),
    service_id: Optional[int] = None,
    session: Session = Depends(get_db),
) -> DayAvailability:
    try:
        return search_availability(
            session,
            day=day,
            provider_id=provider_id,
            duration_minutes=duration_minutes,
            service_id=service_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/{appointment_id}", response_model=AppointmentRead, responses=ERROR_RESPONSES)
def get_appointment_record(
    appointment_id: int,
    session: Session = Depends(get_db),
) -> AppointmentRead:
    try:
        return get_appointment(session, appointment_id)
    except SchedulingError as exc:
        raise _scheduling_error(exc) from exc


@router.post("/{appointment_id}/reschedule", response_model=AppointmentWriteResult, responses=ERROR_RESPONSES)
def reschedule_appointment_record(
    appointment_id: int,
    payload: AppointmentRescheduleRequest,
    service: AppointmentWriteService = Depends(get_write_service),
    actor_id: Optional[int] = Depends(get_actor_id),
    context: dict = Depends(get_audit_context),
) -> AppointmentWriteResult:
    try:
        return service.reschedule(
            appointment_id,
            new_start=payload.start_time,
            new_provider=payload.provider_id,
            actor_id=actor_id,
            context=context,
        )
    except SchedulingError as exc:
        raise _scheduling_error(exc) from exc


@router.post("/{appointment_id}/cancel", response_model=AppointmentWriteResult, responses=ERROR_RESPONSES)
def cancel_appointment_record(
    appointment_id: int,
    payload: AppointmentCancelRequest,
    service: AppointmentWriteService = Depends(get_write_service),
    actor_id: Optional[int] = Depends(get_actor_id),
    context: dict = Depends(get_audit_context),
) -> AppointmentWriteResult:
    try:
        return service.cancel(appointment_id, reason=payload.reason, actor_id=actor_id, context=context)
    except SchedulingError as exc:
        raise _scheduling_error(exc) from exc


@router.post("/{appointment_id}/confirm", response_model=AppointmentWriteResult, responses=ERROR_RESPONSES)
def confirm_appointment_record(
    appointment_id: int,
    payload: Optional[AppointmentConfirmRequest] = None,
    service: AppointmentWriteService = Depends(get_write_service),
    actor_id: Optional[int] = Depends(get_actor_id),
    context: dict = Depends(get_audit_context),
) -> AppointmentWriteResult:
    request = payload or AppointmentConfirmRequest()
    try:
        return service.confirm(appointment_id, kind=request.kind, actor_id=actor_id, context=context)
    except SchedulingError as exc:
        raise _scheduling_error(exc) from exc
