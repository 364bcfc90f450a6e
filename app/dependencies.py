"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.redis_client import get_redis_client
from app.core.security import decode_access_token
from app.database import AsyncSessionLocal, get_db
from app.schemas.appointments import Actor, ActorKind
from app.services.appointment_service import AppointmentLifecycleManager
from app.services.appointment_store import AppointmentStore
from app.services.audit_service import AuditService
from app.services.event_publisher import RedisEventPublisher
from app.services.notification_service import NotificationService
from app.services.patient_profile_service import PatientProfileService
from app.services.schedule_service import ScheduleQueryService
from app.services.side_effects import AppointmentSideEffects

# Security
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Actor:
    """
    Build the calling actor from a bearer token.

    The token is issued by the auth service and trusted as-is: ``sub`` is the
    actor id, ``actor_kind`` is PATIENT or STAFF and staff tokens carry
    ``hospital_id`` as their scope.

    Raises:
        HTTPException: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Could not validate credentials")

    actor_id = payload.get("sub")
    actor_kind = payload.get("actor_kind")
    hospital_id = payload.get("hospital_id")

    if not isinstance(actor_id, str) or not isinstance(actor_kind, str):
        raise _unauthorized("Could not validate credentials")

    try:
        return Actor(
            id=UUID(actor_id),
            kind=ActorKind(actor_kind.upper()),
            hospital_scope=UUID(hospital_id) if hospital_id else None,
        )
    except ValueError:
        raise _unauthorized("Invalid actor claims")


def get_clock() -> Clock:
    """Time source for request handling."""
    return utcnow


def get_appointment_store(db: Annotated[AsyncSession, Depends(get_db)]) -> AppointmentStore:
    """Appointment store bound to the request session."""
    return AppointmentStore(db)


def get_side_effects() -> AppointmentSideEffects:
    """Collaborators for audit, notifications, real-time events and visits."""
    return AppointmentSideEffects(
        audit=AuditService(AsyncSessionLocal),
        notifications=NotificationService(AsyncSessionLocal),
        events=RedisEventPublisher(get_redis_client()),
        patient_profiles=PatientProfileService(AsyncSessionLocal),
    )


def get_lifecycle_manager(
    store: Annotated[AppointmentStore, Depends(get_appointment_store)],
    side_effects: Annotated[AppointmentSideEffects, Depends(get_side_effects)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AppointmentLifecycleManager:
    """Lifecycle manager for the current request."""
    return AppointmentLifecycleManager(store, side_effects, clock=clock)


def get_schedule_service(
    store: Annotated[AppointmentStore, Depends(get_appointment_store)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> ScheduleQueryService:
    """Schedule query service for the current request."""
    return ScheduleQueryService(store, clock=clock)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
LifecycleManager = Annotated[AppointmentLifecycleManager, Depends(get_lifecycle_manager)]
ScheduleService = Annotated[ScheduleQueryService, Depends(get_schedule_service)]
