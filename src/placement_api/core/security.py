"""
Security Utilities

JWT creation and decoding. Password storage lives with the identity
provider; this service only consumes access tokens.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from placement_api.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: str,
    *,
    email: str,
    role: str,
    name: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: User ID placed in the ``sub`` claim
        email: User's email address
        role: User's role (student, company, admin, super_admin)
        name: Optional display name
        expires_delta: Token lifetime (defaults to configured minutes)

    Returns:
        Encoded JWT string
    """
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: dict[str, Any] = {
        "sub": subject,
        "email": email,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and verify a JWT. Returns None if it is invalid or expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug(f"Token decode failed: {e}")
        return None
