"""JWT authentication dependency for FastAPI.

Validates Bearer tokens from the Authorization header and turns the claims
into an ``Actor``: the already-authenticated caller that workflow services
use for role checks and audit attribution.
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import ForbiddenException, UnauthorizedException
from src.models.enums import ActorRole

logger = logging.getLogger(__name__)

# FastAPI security scheme: extracts Bearer token from Authorization header
_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """The caller performing a workflow operation."""

    id: uuid.UUID
    name: str
    email: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.SYSTEM)

    @property
    def is_customer(self) -> bool:
        return self.role == ActorRole.CUSTOMER


# Attribution for scheduled jobs
SYSTEM_ACTOR = Actor(
    id=uuid.UUID(int=0),
    name="System",
    email="system@localhost",
    role=ActorRole.SYSTEM,
)


def require_admin(actor: Actor) -> None:
    """Raise ForbiddenException unless the actor is an admin."""
    if not actor.is_admin:
        raise ForbiddenException("This action requires admin access")


def require_customer(actor: Actor) -> None:
    """Raise ForbiddenException unless the actor is a customer."""
    if not actor.is_customer:
        raise ForbiddenException("This action is only available to customers")


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedException on failure."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Actor:
    """FastAPI dependency that extracts and validates the calling actor from JWT."""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = _decode_token(credentials.credentials)

    try:
        actor = Actor(
            id=uuid.UUID(payload["sub"]),
            name=payload.get("name") or payload["email"],
            email=payload["email"],
            role=ActorRole(payload.get("role", ActorRole.CUSTOMER.value)),
        )
    except (KeyError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc

    if actor.role == ActorRole.SYSTEM:
        raise UnauthorizedException("System identity cannot be used over HTTP")

    request.state.actor = actor
    return actor
