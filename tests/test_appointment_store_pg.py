"""PostgreSQL tests for the appointment store and overlap constraint."""

import asyncio
import os
from collections.abc import AsyncGenerator
from datetime import date
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.exceptions import SlotConflictException
from app.models import metadata
from app.schemas.appointments import ACTIVE_STATUSES, AppointmentResponse, AppointmentStatus
from app.services.appointment_service import AppointmentLifecycleManager
from app.services.appointment_store import AppointmentStore
from app.services.availability_service import CONFLICT_WINDOW, SlotLane
from tests.helpers import DEPARTMENT_ID, HOSPITAL_ID, at, booking

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]


def row_values(scheduled_at, **overrides) -> dict:
    values = {
        "appointment_number": f"APT-PG-{uuid4().hex[:10]}",
        "patient_id": uuid4(),
        "hospital_id": HOSPITAL_ID,
        "department_id": DEPARTMENT_ID,
        "doctor_id": None,
        "scheduled_at": scheduled_at,
        "slot_end_at": scheduled_at + CONFLICT_WINDOW,
        "reason": "General consultation",
        "status": AppointmentStatus.BOOKED.value,
        "created_by_id": uuid4(),
        "created_by_kind": "PATIENT",
    }
    values.update(overrides)
    return values


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema on the test database."""
    url = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
    engine = create_async_engine(url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def pg_store(session_factory) -> AsyncGenerator[AppointmentStore, None]:
    async with session_factory() as session:
        yield AppointmentStore(session)


class TestOverlapConstraint:
    """The exclusion constraint backs up the application check."""

    @pytest.mark.asyncio
    async def test_overlapping_insert_is_rejected(self, pg_store):
        async with pg_store.transaction():
            await pg_store.insert(row_values(at(9)))

        with pytest.raises(SlotConflictException):
            async with pg_store.transaction():
                await pg_store.insert(row_values(at(9, 30)))

    @pytest.mark.asyncio
    async def test_cancelled_rows_do_not_block(self, pg_store):
        async with pg_store.transaction():
            await pg_store.insert(
                row_values(
                    at(9),
                    status="CANCELLED",
                    cancellation_reason="Cancelled by patient",
                    cancelled_at=at(8),
                )
            )
            await pg_store.insert(row_values(at(9)))

    @pytest.mark.asyncio
    async def test_separate_lanes_do_not_block(self, pg_store):
        async with pg_store.transaction():
            await pg_store.insert(row_values(at(9)))
            await pg_store.insert(row_values(at(9), doctor_id=uuid4()))
            await pg_store.insert(row_values(at(9, 31)))


class TestStoreQueries:
    """Tests for AppointmentStore reads and conditional writes."""

    @pytest.mark.asyncio
    async def test_find_conflict_is_inclusive(self, pg_store):
        async with pg_store.transaction():
            existing = await pg_store.insert(row_values(at(9)))

        lane = SlotLane(HOSPITAL_ID, DEPARTMENT_ID)
        hit = await pg_store.find_conflict(lane, at(9, 30) - CONFLICT_WINDOW, at(10))
        miss = await pg_store.find_conflict(lane, at(9, 31) - CONFLICT_WINDOW, at(10, 1))
        excluded = await pg_store.find_conflict(
            lane, at(8, 30), at(9, 30), exclude_id=existing["id"]
        )

        assert hit["id"] == existing["id"]
        assert miss is None
        assert excluded is None

    @pytest.mark.asyncio
    async def test_update_if_status(self, pg_store):
        async with pg_store.transaction():
            row = await pg_store.insert(row_values(at(9)))

        async with pg_store.transaction():
            confirmed = await pg_store.update_if_status(
                row["id"], ACTIVE_STATUSES, {"status": "CONFIRMED"}
            )
        async with pg_store.transaction():
            missed = await pg_store.update_if_status(
                row["id"], {AppointmentStatus.CHECKED_IN}, {"status": "IN_PROGRESS"}
            )

        assert confirmed["status"] == "CONFIRMED"
        assert missed is None

    @pytest.mark.asyncio
    async def test_counter_is_monotonic_per_day(self, pg_store):
        day = date(2025, 10, 30)
        values = [await pg_store.next_appointment_number(day) for _ in range(3)]
        other = await pg_store.next_appointment_number(date(2025, 10, 31))

        assert values == [1, 2, 3]
        assert other == 1

    @pytest.mark.asyncio
    async def test_count_by_status(self, pg_store):
        async with pg_store.transaction():
            await pg_store.insert(row_values(at(9)))
            await pg_store.insert(row_values(at(11), status="CONFIRMED"))

        counts = await pg_store.count_by_status(HOSPITAL_ID, at(0), at(0, day=2))

        assert counts == {"BOOKED": 1, "CONFIRMED": 1}


class TestConcurrentSessions:
    """Races between separate database sessions."""

    @pytest.mark.asyncio
    async def test_identical_slot_exactly_one_succeeds(
        self, session_factory, side_effects, clock, patient, other_patient
    ):
        async def attempt(actor):
            async with session_factory() as session:
                manager = AppointmentLifecycleManager(
                    AppointmentStore(session), side_effects, clock=clock
                )
                return await manager.create(actor, booking(at(9)))

        results = await asyncio.gather(
            attempt(patient),
            attempt(other_patient),
            return_exceptions=True,
        )

        assert sum(isinstance(result, AppointmentResponse) for result in results) == 1
        assert sum(isinstance(result, SlotConflictException) for result in results) == 1
