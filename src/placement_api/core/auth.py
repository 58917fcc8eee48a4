"""
Caller identity for HTTP and WebSocket endpoints.

Access tokens are issued by the identity service. This module validates
them and exposes the caller as a ``CurrentUser`` with a role of student,
company, admin or super_admin.

The ``dev-admin`` / ``dev-student`` tokens (and bare UUIDs) are accepted
only when settings say development AND PYTHON_ENV is not production or
staging.
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from placement_api.core.config import settings
from placement_api.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)

ADMIN_ROLES = frozenset({"admin", "super_admin"})


@dataclass
class CurrentUser:
    """
    Represents an authenticated caller.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: One of student, company, admin, super_admin
        name: User's display name (optional)
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    Requires settings.is_development, not settings.is_production, and a
    PYTHON_ENV that is neither production nor staging.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

# Development tokens: "dev-admin" maps to an admin, "dev-student" to an applicant
_DEV_USERS = {
    "dev-admin": CurrentUser(
        id=UUID("00000000-0000-0000-0000-000000000001"),
        email="admin@placements.dev",
        role="admin",
        name="Development Admin",
    ),
    "dev-student": CurrentUser(
        id=UUID("00000000-0000-0000-0000-000000000002"),
        email="student@placements.dev",
        role="student",
        name="Development Student",
    ),
}


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def resolve_token(token: str) -> CurrentUser:
    """
    Validate a token and extract the caller's claims.

    Shared by the HTTP bearer dependency and the WebSocket endpoint, which
    receives its token as a query parameter.

    Args:
        token: JWT token string

    Returns:
        CurrentUser built from the token claims

    Raises:
        HTTPException 401: If token is invalid, expired or of the wrong type
    """
    if _DEVELOPMENT_MODE:
        if token in _DEV_USERS:
            logger.debug("Development mode: Using test token")
            return _DEV_USERS[token]

        # Accept bare UUID tokens as student IDs for local testing
        try:
            user_id = UUID(token)
            return CurrentUser(
                id=user_id,
                email=f"student-{str(user_id)[:8]}@placements.dev",
                role="student",
                name="Test Student",
            )
        except ValueError:
            pass

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return CurrentUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """FastAPI dependency returning any authenticated user."""
    user = resolve_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id} ({user.role})")
    return user


async def get_current_admin_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency that validates the token and requires an admin role.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the user is not an admin
    """
    user = resolve_token(credentials.credentials)

    if not user.is_admin:
        logger.warning(
            f"Access denied: User {user.id} ({user.email}) has role '{user.role}', "
            "but an admin role is required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ADMIN_ACCESS_REQUIRED",
                "message": "Admin access is required for this endpoint.",
            },
        )

    logger.debug(f"Authenticated admin: {user.id} ({user.email})")
    return user


__all__ = [
    "ADMIN_ROLES",
    "CurrentUser",
    "get_current_admin_user",
    "get_current_user",
    "resolve_token",
]
