"""In-app notifications for appointment events."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.notifications import notifications
from app.schemas.appointments import ActorRef, AppointmentResponse
from app.services.side_effects import NotificationEvent

logger = structlog.get_logger(__name__)


def _when(appointment: AppointmentResponse) -> str:
    return appointment.scheduled_at.strftime("%Y-%m-%d %H:%M %Z").strip()


def booked(appointment: AppointmentResponse) -> NotificationEvent:
    """Notification for a new booking."""
    return NotificationEvent(
        notification_type="APPOINTMENT_CONFIRMED",
        title="Appointment Booked",
        body=(
            f"Your appointment {appointment.appointment_number} on {_when(appointment)} "
            "has been booked."
        ),
        appointment_id=appointment.id,
    )


def cancelled(appointment: AppointmentResponse) -> NotificationEvent:
    """Notification for a cancellation."""
    return NotificationEvent(
        notification_type="APPOINTMENT_CANCELLED",
        title="Appointment Cancelled",
        body=(
            f"Your appointment {appointment.appointment_number} on {_when(appointment)} "
            f"has been cancelled: {appointment.cancellation_reason}."
        ),
        appointment_id=appointment.id,
    )


def rescheduled(appointment: AppointmentResponse, previous: datetime) -> NotificationEvent:
    """Notification for a moved appointment."""
    return NotificationEvent(
        notification_type="APPOINTMENT_RESCHEDULED",
        title="Appointment Rescheduled",
        body=(
            f"Your appointment {appointment.appointment_number} has been rescheduled from "
            f"{previous.strftime('%Y-%m-%d %H:%M %Z').strip()} to {_when(appointment)}."
        ),
        appointment_id=appointment.id,
        priority="HIGH",
        data={"previous_scheduled_at": previous.isoformat()},
    )


def confirmed(appointment: AppointmentResponse) -> NotificationEvent:
    """Notification for a staff confirmation."""
    return NotificationEvent(
        notification_type="APPOINTMENT_CONFIRMED",
        title="Appointment Confirmed",
        body=(
            f"Your appointment {appointment.appointment_number} on {_when(appointment)} "
            "has been confirmed by the hospital."
        ),
        appointment_id=appointment.id,
    )


def checked_in(appointment: AppointmentResponse) -> NotificationEvent:
    """Notification for a check-in."""
    return NotificationEvent(
        notification_type="APPOINTMENT_CHECKED_IN",
        title="Checked In",
        body=f"You are checked in for appointment {appointment.appointment_number}.",
        appointment_id=appointment.id,
    )


def status_changed(appointment: AppointmentResponse, title: str) -> NotificationEvent:
    """Notification for consultation progress."""
    return NotificationEvent(
        notification_type="APPOINTMENT_UPDATED",
        title=title,
        body=(
            f"Appointment {appointment.appointment_number} is now "
            f"{appointment.status.value.replace('_', ' ').lower()}."
        ),
        appointment_id=appointment.id,
        priority="LOW",
    )


def no_show(appointment: AppointmentResponse) -> NotificationEvent:
    """Notification for a missed appointment."""
    return NotificationEvent(
        notification_type="APPOINTMENT_NO_SHOW",
        title="Missed Appointment",
        body=(
            f"You were marked absent for appointment {appointment.appointment_number} "
            f"on {_when(appointment)}."
        ),
        appointment_id=appointment.id,
    )


class NotificationService:
    """Stores in-app notifications; delivery happens downstream."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize service with a session factory."""
        self.session_factory = session_factory

    async def send(self, recipient: ActorRef, event: NotificationEvent) -> None:
        """
        Create an in-app notification for a recipient.

        Args:
            recipient: Patient or staff member to notify
            event: Notification content
        """
        async with self.session_factory() as session:
            await session.execute(
                insert(notifications).values(
                    recipient_id=recipient.id,
                    recipient_kind=recipient.kind.value,
                    title=event.title,
                    body=event.body,
                    notification_type=event.notification_type,
                    priority=event.priority,
                    data=event.data or None,
                    appointment_id=event.appointment_id,
                    channel="in_app",
                    sent_at=datetime.now(UTC),
                )
            )
            await session.commit()

        logger.info(
            "notification_created",
            recipient_id=str(recipient.id),
            notification_type=event.notification_type,
            appointment_id=str(event.appointment_id),
        )
