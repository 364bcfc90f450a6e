"""Time source used by the booking services."""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current instant, timezone-aware."""
    return datetime.now(UTC)
