"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    BOOKED = "BOOKED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


ACTIVE_STATUSES = frozenset({AppointmentStatus.BOOKED, AppointmentStatus.CONFIRMED})


class ActorKind(str, Enum):
    """Kind of authenticated caller."""

    PATIENT = "PATIENT"
    STAFF = "STAFF"


class Actor(BaseModel):
    """Authenticated caller on whose behalf an operation runs."""

    id: UUID
    kind: ActorKind
    hospital_scope: UUID | None = None

    model_config = {"frozen": True}

    @property
    def is_staff(self) -> bool:
        return self.kind == ActorKind.STAFF


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    hospital_id: UUID
    department_id: UUID
    doctor_id: UUID | None = None
    scheduled_at: datetime
    reason: str | None = Field(None, min_length=1, max_length=500)
    notes: str | None = Field(None, max_length=1000)
    # Required when staff book on behalf of a patient
    patient_id: UUID | None = None

    @field_validator("scheduled_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Require an unambiguous instant."""
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("scheduled_at must include a timezone offset")
        return v


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new time."""

    new_date: datetime

    @field_validator("new_date")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Require an unambiguous instant."""
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("new_date must include a timezone offset")
        return v


class AppointmentCheckIn(BaseModel):
    """Schema for checking a patient in."""

    notes: str | None = Field(None, max_length=1000)


class ActorRef(BaseModel):
    """Tagged actor reference stored on the appointment."""

    id: UUID
    kind: ActorKind


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    appointment_number: str
    patient_id: UUID
    hospital_id: UUID
    department_id: UUID
    doctor_id: UUID | None = None
    scheduled_at: datetime
    reason: str
    notes: str | None = None
    staff_notes: str | None = None
    status: AppointmentStatus
    cancellation_reason: str | None = None
    cancelled_by: ActorRef | None = None
    cancelled_at: datetime | None = None
    check_in_time: datetime | None = None
    consultation_start: datetime | None = None
    consultation_end: datetime | None = None
    created_by: ActorRef
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_row(cls, row: dict) -> "AppointmentResponse":
        """Build a response from a flat appointments row."""
        data = dict(row)
        cancelled_by_id = data.pop("cancelled_by_id", None)
        cancelled_by_kind = data.pop("cancelled_by_kind", None)
        data["cancelled_by"] = (
            {"id": cancelled_by_id, "kind": cancelled_by_kind} if cancelled_by_id else None
        )
        data["created_by"] = {
            "id": data.pop("created_by_id"),
            "kind": data.pop("created_by_kind"),
        }
        data.pop("slot_end_at", None)
        return cls.model_validate(data)


class AppointmentFilters(BaseModel):
    """Schema for filtering the caller's appointments."""

    status: AppointmentStatus | None = None
    upcoming_only: bool = False


class HospitalScheduleFilters(BaseModel):
    """Schema for filtering a hospital's daily schedule."""

    day: date
    department_id: UUID | None = None
    status: AppointmentStatus | None = None


class SlotResponse(BaseModel):
    """A single bookable slot."""

    start: datetime
    end: datetime
    available: bool


class AvailabilityResponse(BaseModel):
    """Slot grid for one lane on one day."""

    hospital_id: UUID
    department_id: UUID
    doctor_id: UUID | None = None
    date: date
    slots: list[SlotResponse]


class DayStatistics(BaseModel):
    """Per-status appointment counts for a hospital day."""

    date: date
    total: int = 0
    pending: int = 0
    checked_in: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0
