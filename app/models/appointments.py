"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    Date,
    Index,
    Integer,
    Table,
    Text,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

from app.models.metadata import metadata

# Appointments without a doctor share one lane per department
UNASSIGNED_DOCTOR_ID = "00000000-0000-0000-0000-000000000000"

NO_OVERLAP_CONSTRAINT = "appointments_no_overlap"

appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("appointment_number", VARCHAR(32), nullable=False, unique=True),
    # Ownership / references (directories live in other services)
    Column("patient_id", UUID(as_uuid=True), nullable=False),
    Column("hospital_id", UUID(as_uuid=True), nullable=False),
    Column("department_id", UUID(as_uuid=True), nullable=False),
    Column("doctor_id", UUID(as_uuid=True), nullable=True),
    # Appointment details
    Column("scheduled_at", TIMESTAMP(timezone=True), nullable=False),
    # Closed end of the occupancy window, always scheduled_at + 30 minutes
    Column("slot_end_at", TIMESTAMP(timezone=True), nullable=False),
    Column("reason", Text, nullable=False),
    Column("notes", Text, nullable=True),
    Column("staff_notes", Text, nullable=True),
    # Status management
    Column("status", VARCHAR(20), nullable=False, server_default="BOOKED"),
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_by_id", UUID(as_uuid=True), nullable=True),
    Column("cancelled_by_kind", VARCHAR(20), nullable=True),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    # Visit progress
    Column("check_in_time", TIMESTAMP(timezone=True), nullable=True),
    Column("consultation_start", TIMESTAMP(timezone=True), nullable=True),
    Column("consultation_end", TIMESTAMP(timezone=True), nullable=True),
    # Audit fields
    Column("created_by_id", UUID(as_uuid=True), nullable=False),
    Column("created_by_kind", VARCHAR(20), nullable=False),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint(
        "status IN ('BOOKED', 'CONFIRMED', 'CHECKED_IN', 'IN_PROGRESS', 'COMPLETED', "
        "'CANCELLED', 'NO_SHOW', 'RESCHEDULED')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "(status = 'CANCELLED') = (cancelled_at IS NOT NULL AND cancellation_reason IS NOT NULL)",
        name="appointments_cancellation_check",
    ),
    CheckConstraint(
        "check_in_time IS NULL OR status IN ('CHECKED_IN', 'IN_PROGRESS', 'COMPLETED')",
        name="appointments_check_in_check",
    ),
    Index("idx_appointments_patient_scheduled", "patient_id", "scheduled_at"),
    Index("idx_appointments_lane", "hospital_id", "department_id", "doctor_id", "scheduled_at"),
    Index("idx_appointments_hospital_scheduled", "hospital_id", "scheduled_at"),
    Index("idx_appointments_status_scheduled", "status", "scheduled_at"),
)

# Per-day counter behind APT-YYYYMMDD-NNNNN numbers
appointment_number_counters = Table(
    "appointment_number_counters",
    metadata,
    Column("day", Date, primary_key=True),
    Column("last_value", Integer, nullable=False),
)

event.listen(
    metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)

# Two active appointments in one lane may not be 30 minutes or less apart.
event.listen(
    appointments,
    "after_create",
    DDL(
        f"ALTER TABLE appointments ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist ("
        "hospital_id WITH =, "
        "department_id WITH =, "
        f"(COALESCE(doctor_id, '{UNASSIGNED_DOCTOR_ID}'::uuid)) WITH =, "
        "tstzrange(scheduled_at, slot_end_at, '[]') WITH &&"
        ") WHERE (status IN ('BOOKED', 'CONFIRMED'))"
    ).execute_if(dialect="postgresql"),
)
