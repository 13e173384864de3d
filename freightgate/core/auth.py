"""
Auth utilities for the freightgate API.

Validates bearer JWTs and resolves the caller's identity (user id from the
token, role from the profile store). Falls back to the X-User-Id header when
AUTH_ALLOW_USER_ID_HEADER is enabled (tests, local tooling).
"""
from fastapi import Depends, Header, Request
from typing import Optional
import jwt
import logging

from freightgate.core.config import settings
from freightgate.core.errors import UnauthenticatedError
from freightgate.features.directory.service import get_role
from freightgate.models.access import Identity

logger = logging.getLogger(__name__)


def _algorithms() -> list[str]:
    return [alg.strip() for alg in settings.JWT_ALGORITHMS.split(",") if alg.strip()]


def verify_bearer_token(token: str) -> str:
    """
    Verify a bearer JWT and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id: Extracted from the token's 'sub' claim

    Raises:
        UnauthenticatedError: Invalid, expired or unverifiable token
    """
    if not settings.JWT_SECRET:
        logger.warning("JWT_SECRET is not configured; rejecting bearer token")
        raise UnauthenticatedError("Token verification unavailable")

    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=_algorithms(),
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthenticatedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthenticatedError("Invalid token")
    return str(user_id)


def resolve_user_id(request: Request, x_user_id: Optional[str] = None) -> Optional[str]:
    """
    Extract the caller's user id from request credentials.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (when allowed by configuration)

    Returns:
        user_id, or None when no credential was supplied

    Raises:
        UnauthenticatedError: a credential was supplied but is invalid
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return verify_bearer_token(auth_header[7:].strip())

    if x_user_id and settings.AUTH_ALLOW_USER_ID_HEADER:
        return x_user_id.strip() or None

    return None


def load_identity(user_id: str) -> Identity:
    """Attach the profile role to an authenticated user id."""
    return Identity(user_id=user_id, role=get_role(user_id))


async def get_optional_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Test/tooling user ID"),
) -> Optional[str]:
    """Dependency: user id or None. Invalid credentials count as anonymous."""
    try:
        return resolve_user_id(request, x_user_id)
    except UnauthenticatedError as exc:
        logger.info(f"Treating caller as unauthenticated: {exc.message}")
        return None


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Test/tooling user ID"),
) -> str:
    """Dependency: user id, or 401 when credentials are missing or invalid."""
    user_id = resolve_user_id(request, x_user_id)
    if not user_id:
        raise UnauthenticatedError("Missing Authorization (Bearer JWT) or X-User-Id header")
    return user_id


async def get_current_identity(user_id: str = Depends(get_current_user_id)) -> Identity:
    return load_identity(user_id)
