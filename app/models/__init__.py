"""Database models."""

from app.models.appointments import appointment_number_counters, appointments
from app.models.audit_logs import audit_logs
from app.models.metadata import metadata
from app.models.notifications import notifications
from app.models.patient_visits import patient_last_visits

__all__ = [
    "appointment_number_counters",
    "appointments",
    "audit_logs",
    "metadata",
    "notifications",
    "patient_last_visits",
]
