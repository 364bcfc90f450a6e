"""Read paths over the appointment schedule."""

from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.clock import Clock, utcnow
from app.core.exceptions import AuthorizationException, NotFoundException
from app.schemas.appointments import (
    Actor,
    AppointmentFilters,
    AppointmentResponse,
    AppointmentStatus,
    AvailabilityResponse,
    DayStatistics,
    HospitalScheduleFilters,
)
from app.services.availability_service import SlotAvailabilityResolver, SlotLane


class ScheduleQueryService:
    """Service for listing and looking up appointments."""

    def __init__(self, store: Any, clock: Clock = utcnow):
        """Initialize service with appointment store."""
        self.store = store
        self.clock = clock
        self.resolver = SlotAvailabilityResolver(store)
        self.tz = ZoneInfo(settings.schedule_timezone)

    async def list_mine(
        self,
        actor: Actor,
        filters: AppointmentFilters,
    ) -> list[AppointmentResponse]:
        """
        List the calling patient's appointments, earliest first.

        Args:
            actor: Requesting patient
            filters: Status filter; ``upcoming_only`` keeps future BOOKED ones

        Returns:
            Appointments sorted by scheduled time ascending
        """
        if actor.is_staff:
            raise AuthorizationException("Staff should use the hospital schedule")

        status = filters.status
        scheduled_from = None
        if filters.upcoming_only:
            status = AppointmentStatus.BOOKED
            scheduled_from = self.clock()

        rows = await self.store.list_for_patient(
            actor.id,
            status=status,
            scheduled_from=scheduled_from,
        )
        return [AppointmentResponse.from_row(row) for row in rows]

    async def get_by_id(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If missing or owned by another patient
            AuthorizationException: If staff ask for another hospital's appointment
        """
        row = await self.store.get(appointment_id)
        if row is None:
            raise NotFoundException("Appointment not found")

        if actor.is_staff:
            if actor.hospital_scope != row["hospital_id"]:
                raise AuthorizationException("Cannot access appointments of a different hospital")
        elif row["patient_id"] != actor.id:
            raise NotFoundException("Appointment not found")

        return AppointmentResponse.from_row(row)

    async def list_available_slots(
        self,
        hospital_id: UUID,
        department_id: UUID,
        day: date,
        doctor_id: UUID | None = None,
    ) -> AvailabilityResponse:
        """Slot grid for one department (and optionally doctor) on one day."""
        lane = SlotLane(hospital_id=hospital_id, department_id=department_id, doctor_id=doctor_id)
        slots = await self.resolver.list_slots(lane, day, self.clock())
        return AvailabilityResponse(
            hospital_id=hospital_id,
            department_id=department_id,
            doctor_id=doctor_id,
            date=day,
            slots=slots,
        )

    async def list_for_hospital(
        self,
        actor: Actor,
        filters: HospitalScheduleFilters,
    ) -> list[AppointmentResponse]:
        """Staff view of their hospital's appointments on one day."""
        hospital_id = self._staff_hospital(actor)
        start, end = self._day_bounds(filters.day)
        rows = await self.store.list_for_hospital(
            hospital_id,
            start,
            end,
            department_id=filters.department_id,
            status=filters.status,
        )
        return [AppointmentResponse.from_row(row) for row in rows]

    async def day_statistics(self, actor: Actor, day: date) -> DayStatistics:
        """Check-in desk counters for the staff member's hospital."""
        hospital_id = self._staff_hospital(actor)
        start, end = self._day_bounds(day)
        counts = await self.store.count_by_status(hospital_id, start, end)

        def count(*statuses: AppointmentStatus) -> int:
            return sum(counts.get(status.value, 0) for status in statuses)

        return DayStatistics(
            date=day,
            total=sum(counts.values()),
            pending=count(AppointmentStatus.BOOKED, AppointmentStatus.CONFIRMED),
            checked_in=count(AppointmentStatus.CHECKED_IN),
            in_progress=count(AppointmentStatus.IN_PROGRESS),
            completed=count(AppointmentStatus.COMPLETED),
            cancelled=count(AppointmentStatus.CANCELLED),
            no_show=count(AppointmentStatus.NO_SHOW),
        )

    def _day_bounds(self, day: date) -> tuple[datetime, datetime]:
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        return start, start + timedelta(days=1)

    @staticmethod
    def _staff_hospital(actor: Actor) -> UUID:
        if not actor.is_staff or actor.hospital_scope is None:
            raise AuthorizationException("Only hospital staff can view the hospital schedule")
        return actor.hospital_scope
