"""Appointment persistence on PostgreSQL."""

from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import SlotConflictException
from app.models.appointments import (
    NO_OVERLAP_CONSTRAINT,
    appointment_number_counters,
    appointments,
)
from app.schemas.appointments import ACTIVE_STATUSES, AppointmentStatus
from app.services.availability_service import SlotLane

logger = structlog.get_logger(__name__)


def _status_values(statuses: Iterable[AppointmentStatus]) -> list[str]:
    return sorted(status.value for status in statuses)


class AppointmentStore:
    """SQLAlchemy Core access to the appointments table."""

    def __init__(self, db: AsyncSession):
        """Initialize store with database session."""
        self.db = db

    @asynccontextmanager
    async def transaction(self, lock_keys: Sequence[int] = ()) -> AsyncIterator[None]:
        """
        Run the enclosed writes as one transaction.

        Args:
            lock_keys: Advisory lock ids held until commit or rollback
        """
        try:
            for key in lock_keys:
                await self.db.execute(select(func.pg_advisory_xact_lock(key)))
            yield
        except Exception:
            await self.db.rollback()
            raise
        else:
            await self.db.commit()

    async def get(self, appointment_id: UUID) -> dict[str, Any] | None:
        """Fetch one appointment by id."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def list_for_patient(
        self,
        patient_id: UUID,
        status: AppointmentStatus | None = None,
        scheduled_from: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """List a patient's appointments, earliest first."""
        conditions = [appointments.c.patient_id == patient_id]

        if status:
            conditions.append(appointments.c.status == status.value)

        if scheduled_from:
            conditions.append(appointments.c.scheduled_at >= scheduled_from)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_at.asc())
        )
        result = await self.db.execute(stmt)
        return [dict(row._mapping) for row in result.fetchall()]

    async def list_for_hospital(
        self,
        hospital_id: UUID,
        start: datetime,
        end: datetime,
        department_id: UUID | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[dict[str, Any]]:
        """List a hospital's appointments with ``start <= scheduled_at < end``."""
        conditions = [
            appointments.c.hospital_id == hospital_id,
            appointments.c.scheduled_at >= start,
            appointments.c.scheduled_at < end,
        ]

        if department_id:
            conditions.append(appointments.c.department_id == department_id)

        if status:
            conditions.append(appointments.c.status == status.value)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_at.asc())
        )
        result = await self.db.execute(stmt)
        return [dict(row._mapping) for row in result.fetchall()]

    async def count_by_status(
        self,
        hospital_id: UUID,
        start: datetime,
        end: datetime,
    ) -> dict[str, int]:
        """Count a hospital's appointments per status in ``[start, end)``."""
        stmt = (
            select(appointments.c.status, func.count())
            .where(
                and_(
                    appointments.c.hospital_id == hospital_id,
                    appointments.c.scheduled_at >= start,
                    appointments.c.scheduled_at < end,
                )
            )
            .group_by(appointments.c.status)
        )
        result = await self.db.execute(stmt)
        return {status: count for status, count in result.all()}

    def _lane_conditions(self, lane: SlotLane, start: datetime, end: datetime) -> list[Any]:
        doctor_condition = (
            appointments.c.doctor_id.is_(None)
            if lane.doctor_id is None
            else appointments.c.doctor_id == lane.doctor_id
        )
        return [
            appointments.c.hospital_id == lane.hospital_id,
            appointments.c.department_id == lane.department_id,
            doctor_condition,
            appointments.c.status.in_(_status_values(ACTIVE_STATUSES)),
            appointments.c.scheduled_at >= start,
            appointments.c.scheduled_at <= end,
        ]

    async def find_conflict(
        self,
        lane: SlotLane,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> dict[str, Any] | None:
        """First active appointment in the lane with ``start <= scheduled_at <= end``."""
        conditions = self._lane_conditions(lane, start, end)
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_at.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def list_active(
        self,
        lane: SlotLane,
        start: datetime,
        end: datetime,
    ) -> list[dict[str, Any]]:
        """Active appointments in the lane with ``start <= scheduled_at <= end``."""
        stmt = (
            select(appointments)
            .where(and_(*self._lane_conditions(lane, start, end)))
            .order_by(appointments.c.scheduled_at.asc())
        )
        result = await self.db.execute(stmt)
        return [dict(row._mapping) for row in result.fetchall()]

    async def next_appointment_number(self, day: date) -> int:
        """
        Bump and return the counter for ``day``.

        Committed on its own so the counter row is locked only briefly;
        numbers taken by failed bookings are skipped.
        """
        stmt = (
            pg_insert(appointment_number_counters)
            .values(day=day, last_value=1)
            .on_conflict_do_update(
                index_elements=[appointment_number_counters.c.day],
                set_={"last_value": appointment_number_counters.c.last_value + 1},
            )
            .returning(appointment_number_counters.c.last_value)
        )
        result = await self.db.execute(stmt)
        value = result.scalar_one()
        await self.db.commit()
        return value

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        """Insert an appointment inside the current transaction."""
        stmt = insert(appointments).values(**values).returning(appointments)
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            self._raise_if_overlap(e)
            raise
        return dict(result.fetchone()._mapping)

    async def update_if_status(
        self,
        appointment_id: UUID,
        allowed: Iterable[AppointmentStatus],
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Update an appointment only while its status is one of ``allowed``.

        Returns:
            Updated row, or None if the appointment is missing or its status
            no longer matches
        """
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status.in_(_status_values(allowed)),
                )
            )
            .values(**values)
            .returning(appointments)
        )
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            self._raise_if_overlap(e)
            raise
        row = result.fetchone()
        return dict(row._mapping) if row else None

    @staticmethod
    def _raise_if_overlap(error: IntegrityError) -> None:
        if NO_OVERLAP_CONSTRAINT in str(error.orig):
            logger.warning("overlap_constraint_violation", error=str(error.orig))
            raise SlotConflictException() from error
