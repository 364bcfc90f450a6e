"""create appointment tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UNASSIGNED_DOCTOR_ID = "00000000-0000-0000-0000-000000000000"


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _created_at_column() -> sa.Column:
    return sa.Column(
        "created_at",
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()"),
        nullable=False,
    )


def upgrade() -> None:
    """Create appointments, counters, audit, notification and visit tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "appointments",
        _id_column(),
        sa.Column("appointment_number", sa.String(32), nullable=False),
        sa.Column("patient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("hospital_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("department_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("scheduled_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("slot_end_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("staff_notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'BOOKED'"),
            nullable=False,
        ),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancelled_by_kind", sa.String(20), nullable=True),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("check_in_time", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("consultation_start", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("consultation_end", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_by_kind", sa.String(20), nullable=False),
        _created_at_column(),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("appointment_number"),
        sa.CheckConstraint(
            "status IN ('BOOKED', 'CONFIRMED', 'CHECKED_IN', 'IN_PROGRESS', 'COMPLETED', "
            "'CANCELLED', 'NO_SHOW', 'RESCHEDULED')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "(status = 'CANCELLED') = "
            "(cancelled_at IS NOT NULL AND cancellation_reason IS NOT NULL)",
            name="appointments_cancellation_check",
        ),
        sa.CheckConstraint(
            "check_in_time IS NULL OR status IN ('CHECKED_IN', 'IN_PROGRESS', 'COMPLETED')",
            name="appointments_check_in_check",
        ),
    )
    op.create_index(
        "idx_appointments_patient_scheduled",
        "appointments",
        ["patient_id", "scheduled_at"],
    )
    op.create_index(
        "idx_appointments_lane",
        "appointments",
        ["hospital_id", "department_id", "doctor_id", "scheduled_at"],
    )
    op.create_index(
        "idx_appointments_hospital_scheduled",
        "appointments",
        ["hospital_id", "scheduled_at"],
    )
    op.create_index(
        "idx_appointments_status_scheduled",
        "appointments",
        ["status", "scheduled_at"],
    )

    # Active appointments in one lane may not be 30 minutes or less apart
    op.execute(
        "ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap "
        "EXCLUDE USING gist ("
        "hospital_id WITH =, "
        "department_id WITH =, "
        f"(COALESCE(doctor_id, '{UNASSIGNED_DOCTOR_ID}'::uuid)) WITH =, "
        "tstzrange(scheduled_at, slot_end_at, '[]') WITH &&"
        ") WHERE (status IN ('BOOKED', 'CONFIRMED'))"
    )

    op.create_table(
        "appointment_number_counters",
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("day"),
    )

    op.create_table(
        "audit_logs",
        _id_column(),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_kind", sa.String(20), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column(
            "resource",
            sa.String(30),
            server_default=sa.text("'APPOINTMENT'"),
            nullable=False,
        ),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("hospital_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'SUCCESS'"),
            nullable=False,
        ),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('SUCCESS', 'FAILED', 'UNAUTHORIZED')",
            name="audit_logs_status_check",
        ),
    )
    op.create_index("idx_audit_logs_actor_created", "audit_logs", ["actor_id", "created_at"])
    op.create_index(
        "idx_audit_logs_resource_created",
        "audit_logs",
        ["resource_id", "created_at"],
    )
    op.create_index(
        "idx_audit_logs_hospital_created",
        "audit_logs",
        ["hospital_id", "created_at"],
    )

    op.create_table(
        "notifications",
        _id_column(),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_kind", sa.String(20), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column(
            "priority",
            sa.String(20),
            server_default=sa.text("'MEDIUM'"),
            nullable=False,
        ),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "channel",
            sa.String(20),
            server_default=sa.text("'in_app'"),
            nullable=False,
        ),
        sa.Column("sent_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("read_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "notification_type IN ('APPOINTMENT_CONFIRMED', 'APPOINTMENT_CANCELLED', "
            "'APPOINTMENT_RESCHEDULED', 'APPOINTMENT_CHECKED_IN', 'APPOINTMENT_UPDATED', "
            "'APPOINTMENT_NO_SHOW')",
            name="notifications_type_check",
        ),
        sa.CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
            name="notifications_priority_check",
        ),
    )
    op.create_index(
        "idx_notifications_recipient_created",
        "notifications",
        ["recipient_id", "created_at"],
    )
    op.create_index("idx_notifications_appointment", "notifications", ["appointment_id"])

    op.create_table(
        "patient_last_visits",
        sa.Column("patient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("hospital_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("department_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("visited_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("patient_id"),
    )


def downgrade() -> None:
    """Drop all booking tables."""
    op.drop_table("patient_last_visits")
    op.drop_index("idx_notifications_appointment", table_name="notifications")
    op.drop_index("idx_notifications_recipient_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_audit_logs_hospital_created", table_name="audit_logs")
    op.drop_index("idx_audit_logs_resource_created", table_name="audit_logs")
    op.drop_index("idx_audit_logs_actor_created", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("appointment_number_counters")
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_no_overlap")
    op.drop_index("idx_appointments_status_scheduled", table_name="appointments")
    op.drop_index("idx_appointments_hospital_scheduled", table_name="appointments")
    op.drop_index("idx_appointments_lane", table_name="appointments")
    op.drop_index("idx_appointments_patient_scheduled", table_name="appointments")
    op.drop_table("appointments")
