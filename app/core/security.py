"""Actor tokens.

Tokens are minted by the upstream auth service; this service only verifies
them. ``create_actor_token`` exists for local tooling and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from app.config import settings

TOKEN_TYPE = "access"


def create_actor_token(
    actor_id: UUID,
    actor_kind: str,
    hospital_id: UUID | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Sign an access token for a patient or staff actor.

    Args:
        actor_id: Actor ID, stored as ``sub``
        actor_kind: PATIENT or STAFF
        hospital_id: Hospital scope of a staff actor
        expires_delta: Lifetime, defaults to ``ACCESS_TOKEN_EXPIRE_MINUTES``

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    claims: dict[str, Any] = {
        "sub": str(actor_id),
        "actor_kind": actor_kind,
        "type": TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    if hospital_id is not None:
        claims["hospital_id"] = str(hospital_id)

    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Verify signature, expiry and token type.

    Returns:
        Claims, or None if the token must be rejected
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != TOKEN_TYPE:
        return None
    return payload
