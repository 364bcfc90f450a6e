"""Denormalized last-visit pointer per patient."""

from sqlalchemy import Column, Table, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from app.models.metadata import metadata

patient_last_visits = Table(
    "patient_last_visits",
    metadata,
    Column("patient_id", UUID(as_uuid=True), primary_key=True),
    Column("hospital_id", UUID(as_uuid=True), nullable=False),
    Column("department_id", UUID(as_uuid=True), nullable=False),
    Column("appointment_id", UUID(as_uuid=True), nullable=True),
    Column("visited_at", TIMESTAMP(timezone=True), nullable=False),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
)
