"""Serialized check-then-reserve for appointment times."""

from datetime import datetime
from typing import Any

import structlog

from app.core.exceptions import SlotConflictException
from app.schemas.appointments import ACTIVE_STATUSES
from app.services.availability_service import (
    SlotAvailabilityResolver,
    SlotLane,
    slot_lock_keys,
)

logger = structlog.get_logger(__name__)


class BookingConflictGuard:
    """
    Runs availability check and write in one locked storage transaction.

    The store takes transaction-scoped locks on the lane's time buckets before
    the check, so two requests for overlapping times are serialized while
    requests for other slots or lanes proceed in parallel. The database
    exclusion constraint rejects anything that still gets through.
    """

    def __init__(self, store: Any, resolver: SlotAvailabilityResolver):
        """Initialize guard with store and resolver."""
        self.store = store
        self.resolver = resolver

    async def reserve_new(self, values: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a new appointment if its slot is free.

        Raises:
            SlotConflictException: If an active appointment is within the window
        """
        lane = SlotLane.of(values)
        scheduled_at = values["scheduled_at"]

        async with self.store.transaction(slot_lock_keys(lane, scheduled_at)):
            await self._ensure_available(lane, scheduled_at)
            return await self.store.insert(values)

    async def reserve_move(
        self,
        appointment: dict[str, Any],
        new_time: datetime,
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Move an active appointment to ``new_time`` if the slot is free.

        Returns:
            Updated row, or None if the appointment left the active states
            before the update ran

        Raises:
            SlotConflictException: If another active appointment is within the window
        """
        lane = SlotLane.of(appointment)

        async with self.store.transaction(slot_lock_keys(lane, new_time)):
            await self._ensure_available(lane, new_time, exclude_id=appointment["id"])
            return await self.store.update_if_status(appointment["id"], ACTIVE_STATUSES, values)

    async def _ensure_available(self, lane: SlotLane, when: datetime, exclude_id=None) -> None:
        check = await self.resolver.check(lane, when, exclude_appointment_id=exclude_id)
        if not check.available:
            logger.info(
                "slot_conflict",
                lane=lane.key,
                scheduled_at=when.isoformat(),
                conflicting_appointment_id=str(check.conflicting_appointment_id),
            )
            raise SlotConflictException(
                conflicting_appointment_id=check.conflicting_appointment_id,
            )
