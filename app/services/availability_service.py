"""Slot availability: conflict detection and the daily slot grid."""

import hashlib
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from app.config import settings
from app.schemas.appointments import SlotResponse

logger = structlog.get_logger(__name__)

# Active appointments in one lane must be more than this far apart
CONFLICT_WINDOW = timedelta(minutes=30)
SLOT_LENGTH = timedelta(minutes=30)


@dataclass(frozen=True)
class SlotLane:
    """Scope inside which two active appointments may not overlap."""

    hospital_id: UUID
    department_id: UUID
    doctor_id: UUID | None = None

    @classmethod
    def of(cls, appointment: dict[str, Any]) -> "SlotLane":
        """Lane of an appointment row or insert values."""
        return cls(
            hospital_id=appointment["hospital_id"],
            department_id=appointment["department_id"],
            doctor_id=appointment.get("doctor_id"),
        )

    @property
    def key(self) -> str:
        doctor = self.doctor_id or "unassigned"
        return f"{self.hospital_id}:{self.department_id}:{doctor}"


@dataclass(frozen=True)
class SlotCheck:
    """Result of checking one candidate time."""

    available: bool
    conflicting_appointment_id: UUID | None = None


def conflicts_with(candidate: datetime, scheduled_at: datetime) -> bool:
    """Inclusive buffer check: exactly 30 minutes apart still conflicts."""
    return abs(candidate - scheduled_at) <= CONFLICT_WINDOW


def _lock_id(name: str) -> int:
    digest = hashlib.blake2b(name.encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def slot_lock_keys(lane: SlotLane, when: datetime) -> list[int]:
    """
    Lock ids guarding a reservation at ``when``.

    Time is cut into 30-minute buckets and a reservation locks its own bucket
    and the next one. Two times at most 30 minutes apart always share a
    bucket; two times an hour or more apart never do, so unrelated slots do
    not wait on each other. Ids are sorted so concurrent reservations acquire
    them in the same order.
    """
    bucket = int(when.timestamp()) // int(CONFLICT_WINDOW.total_seconds())
    return sorted(_lock_id(f"{lane.key}:{b}") for b in (bucket, bucket + 1))


class SlotAvailabilityResolver:
    """Answers whether a lane is free at a given time."""

    def __init__(
        self,
        store: Any,
        timezone: str | None = None,
        day_start_hour: int | None = None,
        day_end_hour: int | None = None,
    ):
        """Initialize resolver over an appointment store."""
        self.store = store
        self.tz = ZoneInfo(timezone or settings.schedule_timezone)
        self.day_start_hour = (
            settings.slot_day_start_hour if day_start_hour is None else day_start_hour
        )
        self.day_end_hour = settings.slot_day_end_hour if day_end_hour is None else day_end_hour

    async def check(
        self,
        lane: SlotLane,
        candidate: datetime,
        exclude_appointment_id: UUID | None = None,
    ) -> SlotCheck:
        """
        Check a candidate time against active appointments in the lane.

        Args:
            lane: Conflict scope
            candidate: Requested start time
            exclude_appointment_id: Appointment being moved, ignored in the check

        Returns:
            SlotCheck, carrying the conflicting appointment id when taken
        """
        conflict = await self.store.find_conflict(
            lane,
            candidate - CONFLICT_WINDOW,
            candidate + CONFLICT_WINDOW,
            exclude_id=exclude_appointment_id,
        )
        if conflict is None:
            return SlotCheck(available=True)
        return SlotCheck(available=False, conflicting_appointment_id=conflict["id"])

    def day_grid(self, day: date) -> list[tuple[datetime, datetime]]:
        """Fixed 30-minute slots between opening and closing hour."""
        opening = datetime.combine(day, time.min, tzinfo=self.tz) + timedelta(
            hours=self.day_start_hour
        )
        closing = datetime.combine(day, time.min, tzinfo=self.tz) + timedelta(
            hours=self.day_end_hour
        )
        grid = []
        start = opening
        while start + SLOT_LENGTH <= closing:
            grid.append((start, start + SLOT_LENGTH))
            start += SLOT_LENGTH
        return grid

    async def list_slots(self, lane: SlotLane, day: date, now: datetime) -> list[SlotResponse]:
        """
        Build the slot grid for one lane and day.

        A slot is available when it starts after ``now`` and no active
        appointment lies within 30 minutes of its start.
        """
        grid = self.day_grid(day)
        if not grid:
            return []

        booked = await self.store.list_active(
            lane,
            grid[0][0] - CONFLICT_WINDOW,
            grid[-1][0] + CONFLICT_WINDOW,
        )
        booked_times = [row["scheduled_at"] for row in booked]

        slots = []
        for start, end in grid:
            taken = any(conflicts_with(start, scheduled_at) for scheduled_at in booked_times)
            slots.append(SlotResponse(start=start, end=end, available=start > now and not taken))

        logger.debug(
            "slot_grid_built",
            lane=lane.key,
            day=day.isoformat(),
            available=sum(1 for slot in slots if slot.available),
        )
        return slots
