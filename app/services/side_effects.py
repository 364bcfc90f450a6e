"""Best-effort fan-out of appointment side effects."""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

import structlog

from app.config import settings
from app.schemas.appointments import Actor, ActorKind, ActorRef, AppointmentResponse

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """One entry of the audit trail."""

    actor: Actor
    action: str
    appointment_id: UUID
    hospital_id: UUID
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationEvent:
    """In-app notification about an appointment."""

    notification_type: str
    title: str
    body: str
    appointment_id: UUID
    priority: str = "MEDIUM"
    data: dict[str, Any] = field(default_factory=dict)


class AuditRecorder(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


class NotificationDispatcher(Protocol):
    async def send(self, recipient: ActorRef, event: NotificationEvent) -> None: ...


class EventPublisher(Protocol):
    async def publish(self, channel: str, event: dict[str, Any]) -> None: ...


class PatientProfileStore(Protocol):
    async def update_last_visit(
        self,
        patient_id: UUID,
        hospital_id: UUID,
        department_id: UUID,
        *,
        appointment_id: UUID | None = None,
        visited_at: datetime | None = None,
    ) -> None: ...


def patient_channel(patient_id: UUID) -> str:
    """Real-time channel of a patient."""
    return f"{settings.realtime_channel_prefix}:{patient_id}"


class AppointmentSideEffects:
    """
    Fires audit, notification and real-time effects after a committed change.

    Every effect runs independently; a failure is logged and never reaches the
    caller, so the primary write always stands.
    """

    def __init__(
        self,
        audit: AuditRecorder,
        notifications: NotificationDispatcher,
        events: EventPublisher,
        patient_profiles: PatientProfileStore,
    ):
        """Initialize with the external collaborators."""
        self.audit = audit
        self.notifications = notifications
        self.events = events
        self.patient_profiles = patient_profiles

    async def dispatch(
        self,
        actor: Actor,
        appointment: AppointmentResponse,
        *,
        action: str,
        event: str,
        notification: NotificationEvent | None = None,
        details: dict[str, Any] | None = None,
        update_last_visit: bool = False,
    ) -> None:
        """
        Run all effects for one appointment change.

        Args:
            actor: Caller that performed the change
            appointment: Appointment after the change
            action: Audit action (CREATE, CANCEL, UPDATE, CHECK_IN)
            event: Real-time event name
            notification: Notification for the patient, if any
            details: Extra audit details
            update_last_visit: Move the patient's last-visit pointer
        """
        effects: list[tuple[str, Awaitable[None]]] = [
            (
                "audit",
                self.audit.record(
                    AuditEvent(
                        actor=actor,
                        action=action,
                        appointment_id=appointment.id,
                        hospital_id=appointment.hospital_id,
                        details={
                            "appointment_number": appointment.appointment_number,
                            "status": appointment.status.value,
                            **(details or {}),
                        },
                    )
                ),
            ),
            (
                "realtime",
                self.events.publish(
                    patient_channel(appointment.patient_id),
                    {"event": event, "appointment": appointment.model_dump(mode="json")},
                ),
            ),
        ]

        if notification is not None:
            recipient = ActorRef(id=appointment.patient_id, kind=ActorKind.PATIENT)
            effects.append(("notification", self.notifications.send(recipient, notification)))

        if update_last_visit:
            effects.append(
                (
                    "last_visit",
                    self.patient_profiles.update_last_visit(
                        appointment.patient_id,
                        appointment.hospital_id,
                        appointment.department_id,
                        appointment_id=appointment.id,
                        visited_at=appointment.check_in_time,
                    ),
                )
            )

        await asyncio.gather(
            *(self._best_effort(name, appointment.id, call) for name, call in effects)
        )

    @staticmethod
    async def _best_effort(name: str, appointment_id: UUID, call: Awaitable[None]) -> None:
        try:
            await call
        except Exception as e:
            # Log error but don't fail the request
            logger.warning(
                "side_effect_failed",
                effect=name,
                appointment_id=str(appointment_id),
                error=str(e),
            )
