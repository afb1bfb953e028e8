from app.schemas.appointment import (
    AppointmentCancelRequest,
    AppointmentConfirmRequest,
    AppointmentRead,
    AppointmentRescheduleRequest,
    AppointmentStatusRead,
    AppointmentWriteResult,
    AvailabilityPeriods,
    DayAvailability,
    PatientSummary,
)
from app.schemas.common import ErrorDetail, ErrorResponse
