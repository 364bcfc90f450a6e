"""In-app notification records created for appointment events."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from app.models.metadata import metadata

notifications = Table(
    "notifications",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("recipient_id", UUID(as_uuid=True), nullable=False),
    Column("recipient_kind", String(20), nullable=False),
    Column("title", Text, nullable=False),
    Column("body", Text, nullable=False),
    Column("notification_type", String(50), nullable=False),
    Column("priority", String(20), nullable=False, server_default="MEDIUM"),
    Column("data", JSONB, nullable=True),
    Column("appointment_id", UUID(as_uuid=True), nullable=True),
    Column("channel", String(20), nullable=False, server_default="in_app"),
    Column("sent_at", TIMESTAMP(timezone=True), nullable=True),
    Column("read_at", TIMESTAMP(timezone=True), nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint(
        "notification_type IN ('APPOINTMENT_CONFIRMED', 'APPOINTMENT_CANCELLED', "
        "'APPOINTMENT_RESCHEDULED', 'APPOINTMENT_CHECKED_IN', 'APPOINTMENT_UPDATED', "
        "'APPOINTMENT_NO_SHOW')",
        name="notifications_type_check",
    ),
    CheckConstraint(
        "priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
        name="notifications_priority_check",
    ),
    Index("idx_notifications_recipient_created", "recipient_id", "created_at"),
    Index("idx_notifications_appointment", "appointment_id"),
)
