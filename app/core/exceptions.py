"""Custom application exceptions."""

from typing import Any
from uuid import UUID


class AppException(Exception):
    """Base application exception."""

    kind = "internal_error"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def details(self) -> dict[str, Any] | None:
        """Extra machine-readable context for the error body."""
        return None


class NotFoundException(AppException):
    """Resource not found exception."""

    kind = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class AuthorizationException(AppException):
    """Actor lacks the scope required for the operation."""

    kind = "authorization_error"

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ValidationException(AppException):
    """Validation error exception."""

    kind = "validation_error"

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class SlotConflictException(AppException):
    """Requested time overlaps an active appointment in the same lane."""

    kind = "slot_conflict"

    def __init__(
        self,
        message: str = "Time slot already booked. Please choose a different time.",
        conflicting_appointment_id: UUID | None = None,
    ):
        """Initialize with 409 status code."""
        self.conflicting_appointment_id = conflicting_appointment_id
        super().__init__(message, status_code=409)

    @property
    def details(self) -> dict[str, Any] | None:
        if self.conflicting_appointment_id is None:
            return None
        return {"conflicting_appointment_id": str(self.conflicting_appointment_id)}


class InvalidStateException(AppException):
    """Transition is not allowed from the appointment's current status."""

    kind = "invalid_state"

    def __init__(self, current_status: str, target_status: str, operation: str):
        """Initialize with 409 status code."""
        self.current_status = current_status
        self.target_status = target_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} appointment: transition from {current_status} "
            f"to {target_status} is not allowed",
            status_code=409,
        )

    @property
    def details(self) -> dict[str, Any] | None:
        return {
            "current_status": self.current_status,
            "target_status": self.target_status,
            "operation": self.operation,
        }
