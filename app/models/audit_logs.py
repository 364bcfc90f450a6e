"""Audit trail of appointment actions."""

from sqlalchemy import CheckConstraint, Column, Index, String, Table, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from app.models.metadata import metadata

audit_logs = Table(
    "audit_logs",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("actor_id", UUID(as_uuid=True), nullable=False),
    Column("actor_kind", String(20), nullable=False),
    Column("action", String(30), nullable=False),
    Column("resource", String(30), nullable=False, server_default="APPOINTMENT"),
    Column("resource_id", UUID(as_uuid=True), nullable=True),
    Column("hospital_id", UUID(as_uuid=True), nullable=True),
    Column("details", JSONB, nullable=True),
    Column("status", String(20), nullable=False, server_default="SUCCESS"),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint(
        "status IN ('SUCCESS', 'FAILED', 'UNAUTHORIZED')",
        name="audit_logs_status_check",
    ),
    Index("idx_audit_logs_actor_created", "actor_id", "created_at"),
    Index("idx_audit_logs_resource_created", "resource_id", "created_at"),
    Index("idx_audit_logs_hospital_created", "hospital_id", "created_at"),
)
