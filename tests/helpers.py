"""Shared constants and builders for the test suite."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from app.core.security import create_actor_token
from app.schemas.appointments import Actor, AppointmentCreate

# Observed "now" for every test
NOW = datetime(2025, 10, 30, 12, 0, tzinfo=UTC)

HOSPITAL_ID = UUID("11111111-1111-1111-1111-111111111111")
OTHER_HOSPITAL_ID = UUID("22222222-2222-2222-2222-222222222222")
DEPARTMENT_ID = UUID("33333333-3333-3333-3333-333333333333")
OTHER_DEPARTMENT_ID = UUID("44444444-4444-4444-4444-444444444444")
DOCTOR_ID = UUID("55555555-5555-5555-5555-555555555555")
OTHER_DOCTOR_ID = UUID("66666666-6666-6666-6666-666666666666")


class FixedClock:
    """Clock that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def at(hour: int, minute: int = 0, day: int = 1) -> datetime:
    """Instant on November ``day`` 2025, UTC."""
    return datetime(2025, 11, day, hour, minute, tzinfo=UTC)


def booking(
    scheduled_at: datetime,
    hospital_id: UUID = HOSPITAL_ID,
    department_id: UUID = DEPARTMENT_ID,
    **extra,
) -> AppointmentCreate:
    """Booking request for the default hospital and department."""
    return AppointmentCreate(
        hospital_id=hospital_id,
        department_id=department_id,
        scheduled_at=scheduled_at,
        **extra,
    )


def auth_headers_for(actor: Actor) -> dict[str, str]:
    """Bearer header carrying the actor's claims."""
    token = create_actor_token(
        actor.id,
        actor.kind.value,
        hospital_id=actor.hospital_scope,
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}
