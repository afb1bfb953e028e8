from app.models.appointment import Appointment, AppointmentStatusHistory
from app.models.audit import AuditEvent
from app.models.patient import Patient, Service
