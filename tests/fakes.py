"""In-memory stand-ins for the appointment store and side-effect collaborators."""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from app.schemas.appointments import ACTIVE_STATUSES, ActorRef, AppointmentStatus
from app.services.availability_service import SlotLane
from app.services.side_effects import AuditEvent, NotificationEvent

NULLABLE_COLUMNS = (
    "doctor_id",
    "notes",
    "staff_notes",
    "cancellation_reason",
    "cancelled_by_id",
    "cancelled_by_kind",
    "cancelled_at",
    "check_in_time",
    "consultation_start",
    "consultation_end",
)


class InMemoryAppointmentStore:
    """
    Appointment store kept in a dict.

    ``transaction`` holds one asyncio lock per key, so reservations guarded by
    overlapping slot keys run one at a time just like the advisory locks do
    on PostgreSQL. Reads yield to the event loop to let concurrent requests
    interleave between the availability check and the write.
    """

    def __init__(self) -> None:
        self.rows: dict[UUID, dict[str, Any]] = {}
        self.counters: dict[date, int] = defaultdict(int)
        self.locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.acquired_keys: list[list[int]] = []

    @asynccontextmanager
    async def transaction(self, lock_keys: Sequence[int] = ()) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in lock_keys:
                await stack.enter_async_context(self.locks[key])
            self.acquired_keys.append(list(lock_keys))
            yield

    async def get(self, appointment_id: UUID) -> dict[str, Any] | None:
        row = self.rows.get(appointment_id)
        return dict(row) if row else None

    async def list_for_patient(
        self,
        patient_id: UUID,
        status: AppointmentStatus | None = None,
        scheduled_from: datetime | None = None,
    ) -> list[dict[str, Any]]:
        rows = [
            row
            for row in self.rows.values()
            if row["patient_id"] == patient_id
            and (status is None or row["status"] == status.value)
            and (scheduled_from is None or row["scheduled_at"] >= scheduled_from)
        ]
        return self._sorted(rows)

    async def list_for_hospital(
        self,
        hospital_id: UUID,
        start: datetime,
        end: datetime,
        department_id: UUID | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[dict[str, Any]]:
        rows = [
            row
            for row in self.rows.values()
            if row["hospital_id"] == hospital_id
            and start <= row["scheduled_at"] < end
            and (department_id is None or row["department_id"] == department_id)
            and (status is None or row["status"] == status.value)
        ]
        return self._sorted(rows)

    async def count_by_status(
        self,
        hospital_id: UUID,
        start: datetime,
        end: datetime,
    ) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for row in await self.list_for_hospital(hospital_id, start, end):
            counts[row["status"]] += 1
        return dict(counts)

    async def find_conflict(
        self,
        lane: SlotLane,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        for row in await self.list_active(lane, start, end):
            if row["id"] != exclude_id:
                return row
        return None

    async def list_active(
        self,
        lane: SlotLane,
        start: datetime,
        end: datetime,
    ) -> list[dict[str, Any]]:
        active = {status.value for status in ACTIVE_STATUSES}
        rows = [
            row
            for row in self.rows.values()
            if SlotLane.of(row) == lane
            and row["status"] in active
            and start <= row["scheduled_at"] <= end
        ]
        return self._sorted(rows)

    async def next_appointment_number(self, day: date) -> int:
        self.counters[day] += 1
        return self.counters[day]

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        row = {column: None for column in NULLABLE_COLUMNS}
        row.update(values)
        row.setdefault("id", uuid4())
        self.rows[row["id"]] = row
        return dict(row)

    async def update_if_status(
        self,
        appointment_id: UUID,
        allowed: Iterable[AppointmentStatus],
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        row = self.rows.get(appointment_id)
        if row is None or row["status"] not in {status.value for status in allowed}:
            return None
        row.update(values)
        return dict(row)

    @staticmethod
    def _sorted(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [dict(row) for row in sorted(rows, key=lambda row: row["scheduled_at"])]


class RecordingAuditRecorder:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)


class RecordingNotificationDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[ActorRef, NotificationEvent]] = []

    async def send(self, recipient: ActorRef, event: NotificationEvent) -> None:
        self.sent.append((recipient, event))


class InMemoryEventBus:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, channel: str, event: dict[str, Any]) -> None:
        self.published.append((channel, event))

    def events_on(self, channel: str) -> list[str]:
        return [event["event"] for name, event in self.published if name == channel]


class RecordingPatientProfileStore:
    def __init__(self) -> None:
        self.visits: list[dict[str, Any]] = []

    async def update_last_visit(
        self,
        patient_id: UUID,
        hospital_id: UUID,
        department_id: UUID,
        *,
        appointment_id: UUID | None = None,
        visited_at: datetime | None = None,
    ) -> None:
        self.visits.append(
            {
                "patient_id": patient_id,
                "hospital_id": hospital_id,
                "department_id": department_id,
                "appointment_id": appointment_id,
                "visited_at": visited_at,
            }
        )


class FailingCollaborator:
    """Raises on every side-effect call."""

    async def record(self, event: AuditEvent) -> None:
        raise RuntimeError("audit store unavailable")

    async def send(self, recipient: ActorRef, event: NotificationEvent) -> None:
        raise RuntimeError("notification service unavailable")

    async def publish(self, channel: str, event: dict[str, Any]) -> None:
        raise ConnectionError("redis unavailable")

    async def update_last_visit(self, *args: Any, **kwargs: Any) -> None:
        raise RuntimeError("profile store unavailable")
