"""
Session Guard
=============

FastAPI dependencies that validate the ``auth`` session cookie.

- ``get_current_user``: required authentication. Missing cookie and invalid
  or expired tokens are rejected with 401.
- ``get_optional_user``: personalization only. Any failure yields ``None``
  and the request proceeds anonymously.

On success the verified ``SessionClaims`` are returned and also stored on
``request.state.user`` for downstream handlers.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from ..config import Settings
from ..dependencies import get_app_settings
from ..models import SessionClaims
from .tokens import InvalidSessionError, verify_session

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "unauthenticated"
INVALID_SESSION = "invalid_session"


def extract_session_token(request: Request, settings: Settings) -> Optional[str]:
    """Return the session cookie value, or None when absent or empty."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    return token or None


def authenticate(token: str, settings: Settings) -> SessionClaims:
    """
    Verify a session token with the configured secret.

    Raises:
        InvalidSessionError: On any signature, expiry or claim failure
    """
    return verify_session(
        token,
        settings.JWT_SECRET,
        algorithm=settings.SESSION_JWT_ALGORITHM,
    )


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> SessionClaims:
    """
    FastAPI dependency that requires a valid session cookie.

    Usage in routes:
        @router.get("/protected")
        async def protected_route(user: SessionClaims = Depends(get_current_user)):
            return {"email": user.email}

    Raises:
        HTTPException: 401 'unauthenticated' without a cookie,
                       401 'invalid_session' when verification fails
    """
    token = extract_session_token(request, settings)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHENTICATED,
        )

    try:
        claims = authenticate(token, settings)
    except InvalidSessionError as e:
        logger.warning(
            f"Rejected session cookie: {e}",
            extra={"path": request.url.path, "reason": type(e).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_SESSION,
        )

    request.state.user = claims
    return claims


async def get_optional_user(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Optional[SessionClaims]:
    """
    FastAPI dependency for optional authentication.

    Returns the verified claims if a valid cookie is present, None otherwise.

    Usage:
        @router.get("/greeting")
        async def route(user: Optional[SessionClaims] = Depends(get_optional_user)):
            if user:
                return {"message": f"Hello {user.email}"}
            return {"message": "Hello anonymous"}
    """
    token = extract_session_token(request, settings)
    if not token:
        return None

    try:
        claims = authenticate(token, settings)
    except InvalidSessionError as e:
        logger.debug(f"Ignoring invalid session cookie: {e}")
        return None

    request.state.user = claims
    return claims


__all__ = [
    "extract_session_token",
    "authenticate",
    "get_current_user",
    "get_optional_user",
    "UNAUTHENTICATED",
    "INVALID_SESSION",
]
