"""Audit trail persistence."""

import structlog
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.audit_logs import audit_logs
from app.services.side_effects import AuditEvent

logger = structlog.get_logger(__name__)


class AuditService:
    """Appends audit entries in their own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize service with a session factory."""
        self.session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        """Append one audit entry."""
        async with self.session_factory() as session:
            await session.execute(
                insert(audit_logs).values(
                    actor_id=event.actor.id,
                    actor_kind=event.actor.kind.value,
                    action=event.action,
                    resource="APPOINTMENT",
                    resource_id=event.appointment_id,
                    hospital_id=event.hospital_id,
                    details=event.details,
                    status="SUCCESS",
                )
            )
            await session.commit()

        logger.info(
            "audit_recorded",
            action=event.action,
            appointment_id=str(event.appointment_id),
            actor_id=str(event.actor.id),
        )
