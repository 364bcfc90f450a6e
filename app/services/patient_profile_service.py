"""Patient last-visit pointer."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.patient_visits import patient_last_visits

logger = structlog.get_logger(__name__)


class PatientProfileService:
    """Keeps ``patient_last_visits`` in step with check-ins."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize service with a session factory."""
        self.session_factory = session_factory

    async def update_last_visit(
        self,
        patient_id: UUID,
        hospital_id: UUID,
        department_id: UUID,
        *,
        appointment_id: UUID | None = None,
        visited_at: datetime | None = None,
    ) -> None:
        """
        Point the patient's last visit at the given hospital and department.

        Args:
            patient_id: Patient ID
            hospital_id: Hospital of the visit
            department_id: Department of the visit
            appointment_id: Appointment that produced the visit
            visited_at: Check-in time, defaults to now
        """
        now = datetime.now(UTC)
        values = {
            "hospital_id": hospital_id,
            "department_id": department_id,
            "appointment_id": appointment_id,
            "visited_at": visited_at or now,
            "updated_at": now,
        }
        stmt = (
            pg_insert(patient_last_visits)
            .values(patient_id=patient_id, **values)
            .on_conflict_do_update(index_elements=[patient_last_visits.c.patient_id], set_=values)
        )

        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

        logger.info(
            "patient_last_visit_updated",
            patient_id=str(patient_id),
            hospital_id=str(hospital_id),
        )
