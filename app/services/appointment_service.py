"""Appointment lifecycle: booking and status transitions."""

from datetime import date, datetime
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from app.config import settings
from app.core.clock import Clock, utcnow
from app.core.exceptions import (
    AuthorizationException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from app.schemas.appointments import (
    ACTIVE_STATUSES,
    Actor,
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStatus,
)
from app.services import notification_service as templates
from app.services.availability_service import CONFLICT_WINDOW, SlotAvailabilityResolver
from app.services.booking_guard import BookingConflictGuard
from app.services.side_effects import AppointmentSideEffects

logger = structlog.get_logger(__name__)

# operation -> (allowed source statuses, target status)
TRANSITIONS: dict[str, tuple[frozenset[AppointmentStatus], AppointmentStatus]] = {
    "cancel": (ACTIVE_STATUSES, AppointmentStatus.CANCELLED),
    "reschedule": (ACTIVE_STATUSES, AppointmentStatus.BOOKED),
    "confirm": (frozenset({AppointmentStatus.BOOKED}), AppointmentStatus.CONFIRMED),
    "check_in": (ACTIVE_STATUSES, AppointmentStatus.CHECKED_IN),
    "begin_consultation": (
        frozenset({AppointmentStatus.CHECKED_IN}),
        AppointmentStatus.IN_PROGRESS,
    ),
    "complete": (frozenset({AppointmentStatus.IN_PROGRESS}), AppointmentStatus.COMPLETED),
    "mark_no_show": (ACTIVE_STATUSES, AppointmentStatus.NO_SHOW),
}

DEFAULT_REASON = "General consultation"


def format_appointment_number(day: date, sequence: int) -> str:
    """Human-readable number, ``APT-YYYYMMDD-NNNNN``."""
    return f"APT-{day:%Y%m%d}-{sequence:05d}"


class AppointmentLifecycleManager:
    """Owns the appointment state machine."""

    def __init__(
        self,
        store: Any,
        side_effects: AppointmentSideEffects,
        clock: Clock = utcnow,
    ):
        """
        Initialize the manager.

        Args:
            store: Appointment persistence
            side_effects: Best-effort audit/notification/event fan-out
            clock: Source of the request's observed time
        """
        self.store = store
        self.side_effects = side_effects
        self.clock = clock
        self.resolver = SlotAvailabilityResolver(store)
        self.guard = BookingConflictGuard(store, self.resolver)

    async def create(self, actor: Actor, data: AppointmentCreate) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            actor: Patient booking for themselves, or staff booking for a patient
            data: Appointment creation data

        Returns:
            Created appointment in BOOKED status

        Raises:
            ValidationException: If the time is not in the future or no patient is given
            AuthorizationException: If the actor may not book for this patient/hospital
            SlotConflictException: If the slot is taken
        """
        now = self.clock()
        if data.scheduled_at <= now:
            raise ValidationException("Appointment date must be in the future")

        if actor.is_staff:
            if data.patient_id is None:
                raise ValidationException("patient_id is required when staff book an appointment")
            self._require_scope(actor, data.hospital_id)
            patient_id = data.patient_id
        else:
            if data.patient_id is not None and data.patient_id != actor.id:
                raise AuthorizationException("Patients can only book appointments for themselves")
            patient_id = actor.id

        day = now.astimezone(ZoneInfo(settings.schedule_timezone)).date()
        sequence = await self.store.next_appointment_number(day)
        scheduled_at = data.scheduled_at

        values = {
            "appointment_number": format_appointment_number(day, sequence),
            "patient_id": patient_id,
            "hospital_id": data.hospital_id,
            "department_id": data.department_id,
            "doctor_id": data.doctor_id,
            "scheduled_at": scheduled_at,
            "slot_end_at": scheduled_at + CONFLICT_WINDOW,
            "reason": data.reason or data.notes or DEFAULT_REASON,
            "notes": data.notes,
            "status": AppointmentStatus.BOOKED.value,
            "created_by_id": actor.id,
            "created_by_kind": actor.kind.value,
            "created_at": now,
            "updated_at": now,
        }

        row = await self.guard.reserve_new(values)
        appointment = AppointmentResponse.from_row(row)

        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            appointment_number=appointment.appointment_number,
            scheduled_at=appointment.scheduled_at.isoformat(),
            actor_kind=actor.kind.value,
        )

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="CREATE",
            event="appointment:created",
            notification=templates.booked(appointment),
        )
        return appointment

    async def cancel(
        self,
        appointment_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an active appointment.

        Args:
            appointment_id: Appointment ID
            actor: Owning patient, or staff of the appointment's hospital
            reason: Cancellation reason, defaults to ``Cancelled by <kind>``

        Returns:
            Cancelled appointment
        """
        row = await self._load(appointment_id, actor)
        now = self.clock()

        updated = await self._transition(
            row,
            "cancel",
            {
                "cancellation_reason": reason or f"Cancelled by {actor.kind.value.lower()}",
                "cancelled_by_id": actor.id,
                "cancelled_by_kind": actor.kind.value,
                "cancelled_at": now,
                "updated_at": now,
            },
        )
        appointment = AppointmentResponse.from_row(updated)

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="CANCEL",
            event="appointment:updated",
            notification=templates.cancelled(appointment),
            details={"reason": appointment.cancellation_reason},
        )
        return appointment

    async def reschedule(
        self,
        appointment_id: UUID,
        actor: Actor,
        new_date: datetime,
    ) -> AppointmentResponse:
        """
        Move an active appointment to a new time.

        The appointment keeps its id and number; the old time is overwritten
        and the status goes back to BOOKED.

        Raises:
            ValidationException: If the new time is not in the future
            SlotConflictException: If the new slot is taken; the appointment is unchanged
            InvalidStateException: If the appointment is not BOOKED/CONFIRMED
        """
        now = self.clock()
        if new_date <= now:
            raise ValidationException("New date must be in the future")

        row = await self._load(appointment_id, actor)
        _, target = TRANSITIONS["reschedule"]
        self._check_state(row, "reschedule")

        previous = row["scheduled_at"]
        updated = await self.guard.reserve_move(
            row,
            new_date,
            {
                "scheduled_at": new_date,
                "slot_end_at": new_date + CONFLICT_WINDOW,
                "status": target.value,
                "updated_at": now,
            },
        )
        if updated is None:
            raise await self._lost_race(row, "reschedule")

        appointment = AppointmentResponse.from_row(updated)
        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment.id),
            previous_scheduled_at=previous.isoformat(),
            scheduled_at=appointment.scheduled_at.isoformat(),
        )

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="UPDATE",
            event="appointment:updated",
            notification=templates.rescheduled(appointment, previous),
            details={
                "operation": "reschedule",
                "previous_scheduled_at": previous.isoformat(),
            },
        )
        return appointment

    async def confirm(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Confirm a booked appointment (staff only)."""
        row = await self._load(appointment_id, actor, staff_only=True)
        updated = await self._transition(row, "confirm", {"updated_at": self.clock()})
        appointment = AppointmentResponse.from_row(updated)

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="UPDATE",
            event="appointment:updated",
            notification=templates.confirmed(appointment),
            details={"operation": "confirm"},
        )
        return appointment

    async def check_in(
        self,
        appointment_id: UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> AppointmentResponse:
        """
        Check the patient in at the hospital.

        Args:
            appointment_id: Appointment ID
            actor: Staff member of the appointment's hospital
            notes: Optional staff notes

        Returns:
            Appointment in CHECKED_IN status
        """
        row = await self._load(appointment_id, actor, staff_only=True)
        now = self.clock()

        values: dict[str, Any] = {"check_in_time": now, "updated_at": now}
        if notes:
            values["staff_notes"] = notes

        updated = await self._transition(row, "check_in", values)
        appointment = AppointmentResponse.from_row(updated)

        logger.info(
            "appointment_checked_in",
            appointment_id=str(appointment.id),
            hospital_id=str(appointment.hospital_id),
        )

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="CHECK_IN",
            event="appointment:checkedin",
            notification=templates.checked_in(appointment),
            update_last_visit=True,
        )
        return appointment

    async def begin_consultation(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Start the consultation of a checked-in patient (staff only)."""
        row = await self._load(appointment_id, actor, staff_only=True)
        now = self.clock()
        updated = await self._transition(
            row,
            "begin_consultation",
            {"consultation_start": now, "updated_at": now},
        )
        appointment = AppointmentResponse.from_row(updated)

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="UPDATE",
            event="appointment:updated",
            notification=templates.status_changed(appointment, "Consultation Started"),
            details={"operation": "begin_consultation"},
        )
        return appointment

    async def complete(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """Finish a consultation in progress (staff only)."""
        row = await self._load(appointment_id, actor, staff_only=True)
        now = self.clock()
        updated = await self._transition(
            row,
            "complete",
            {"consultation_end": now, "updated_at": now},
        )
        appointment = AppointmentResponse.from_row(updated)

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="UPDATE",
            event="appointment:updated",
            notification=templates.status_changed(appointment, "Consultation Completed"),
            details={"operation": "complete"},
        )
        return appointment

    async def mark_no_show(self, appointment_id: UUID, actor: Actor) -> AppointmentResponse:
        """
        Record that the patient did not turn up (staff only).

        Raises:
            ValidationException: If the appointment time has not passed yet
        """
        row = await self._load(appointment_id, actor, staff_only=True)
        self._check_state(row, "mark_no_show")

        now = self.clock()
        if row["scheduled_at"] > now:
            raise ValidationException("Cannot mark a no-show before the appointment time")

        updated = await self._transition(row, "mark_no_show", {"updated_at": now})
        appointment = AppointmentResponse.from_row(updated)

        await self.side_effects.dispatch(
            actor,
            appointment,
            action="UPDATE",
            event="appointment:updated",
            notification=templates.no_show(appointment),
            details={"operation": "mark_no_show"},
        )
        return appointment

    async def _load(
        self,
        appointment_id: UUID,
        actor: Actor,
        staff_only: bool = False,
    ) -> dict[str, Any]:
        """
        Fetch an appointment the actor may act on.

        Patients see only their own appointments; anything else is reported
        as missing. Staff are limited to their hospital.
        """
        if staff_only and not actor.is_staff:
            raise AuthorizationException("Only hospital staff can perform this action")

        row = await self.store.get(appointment_id)
        if row is None:
            raise NotFoundException("Appointment not found")

        if actor.is_staff:
            self._require_scope(actor, row["hospital_id"])
        elif row["patient_id"] != actor.id:
            raise NotFoundException("Appointment not found")

        return row

    @staticmethod
    def _require_scope(actor: Actor, hospital_id: UUID) -> None:
        if actor.hospital_scope is None or actor.hospital_scope != hospital_id:
            raise AuthorizationException("Cannot access appointments of a different hospital")

    @staticmethod
    def _check_state(row: dict[str, Any], operation: str) -> None:
        allowed, target = TRANSITIONS[operation]
        current = AppointmentStatus(row["status"])
        if current not in allowed:
            raise InvalidStateException(current.value, target.value, operation)

    async def _transition(
        self,
        row: dict[str, Any],
        operation: str,
        values: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a status transition guarded by the source status."""
        self._check_state(row, operation)
        allowed, target = TRANSITIONS[operation]

        async with self.store.transaction():
            updated = await self.store.update_if_status(
                row["id"],
                allowed,
                {**values, "status": target.value},
            )

        if updated is None:
            raise await self._lost_race(row, operation)

        logger.info(
            "appointment_status_changed",
            appointment_id=str(row["id"]),
            operation=operation,
            from_status=row["status"],
            to_status=target.value,
        )
        return updated

    async def _lost_race(self, row: dict[str, Any], operation: str) -> InvalidStateException:
        """Error for an update that found the appointment already moved on."""
        latest = await self.store.get(row["id"])
        current = latest["status"] if latest else row["status"]
        _, target = TRANSITIONS[operation]
        return InvalidStateException(current, target.value, operation)
