"""
Token Codec
===========

Encoding of the OAuth ``state`` parameter and signing/verification of the
session JWT carried by the ``auth`` cookie.

The state parameter is base64url JSON of the form
``{"redirect": "<origin>", "nonce": "<uuid>"}``. It is NOT signed: decoding
it only recovers the post-login redirect target and the nonce. Binding the
nonce to the browser is done separately with the ``oauth_nonce`` cookie.

Session tokens are HMAC-signed JWTs (HS256 by default) with the claims
``userId``, ``email``, ``name``, ``picture``, ``iat`` and ``exp``.
"""

import base64
import binascii
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidSignatureError as JWTInvalidSignatureError,
    InvalidTokenError,
    MissingRequiredClaimError,
)

from ..config import url_origin
from ..models import CsrfState, SessionClaims

logger = logging.getLogger(__name__)

REQUIRED_SESSION_CLAIMS = ["exp", "iat", "userId", "email"]


# =============================================================================
# Exceptions
# =============================================================================

class MalformedStateError(ValueError):
    """The state parameter is missing or cannot be decoded."""


class InvalidSessionError(Exception):
    """Base exception for session token verification failures."""


class InvalidSignatureError(InvalidSessionError):
    """Token signature does not match the configured secret."""


class SessionExpiredError(InvalidSessionError):
    """Token is past its expiry."""


class MalformedClaimsError(InvalidSessionError):
    """Token cannot be decoded or lacks required claims."""


# =============================================================================
# CSRF State
# =============================================================================

def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def encode_state(redirect_target: str, nonce: Optional[str] = None) -> str:
    """
    Encode the OAuth state parameter.

    Args:
        redirect_target: Base URL the user returns to after login
        nonce: Nonce to embed; a random UUID4 is generated when omitted

    Returns:
        Unpadded base64url string
    """
    payload = {
        "redirect": redirect_target,
        "nonce": nonce or str(uuid.uuid4()),
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return _b64url_encode(raw)


def decode_state(blob: Optional[str]) -> CsrfState:
    """
    Decode a state parameter produced by encode_state.

    Raises:
        MalformedStateError: If the value is missing, not base64url, not JSON,
                             or not a JSON object
    """
    if not blob:
        raise MalformedStateError("Missing state parameter")

    try:
        data = json.loads(_b64url_decode(blob).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedStateError(f"Undecodable state parameter: {e}") from e

    if not isinstance(data, dict):
        raise MalformedStateError("State parameter is not a JSON object")

    redirect = data.get("redirect")
    nonce = data.get("nonce")
    return CsrfState(
        redirect=redirect if isinstance(redirect, str) and redirect else None,
        nonce=nonce if isinstance(nonce, str) and nonce else None,
    )


def redirect_from_state(
    blob: Optional[str],
    default: str,
    allowed_origins: Iterable[str],
) -> Tuple[str, Optional[str]]:
    """
    Recover the post-login redirect target from a state parameter.

    Never raises. A missing or malformed state, or a redirect whose origin
    is not in ``allowed_origins``, yields ``default``.

    Returns:
        Tuple of (redirect base URL, nonce or None)
    """
    try:
        state = decode_state(blob)
    except MalformedStateError as e:
        logger.info(f"Falling back to default redirect: {e}")
        return default, None

    redirect = state.redirect
    if redirect and url_origin(redirect) in set(allowed_origins):
        return redirect.rstrip("/"), state.nonce

    if redirect:
        logger.warning(
            "State redirect target is not an allowed origin",
            extra={"redirect_origin": url_origin(redirect)},
        )
    return default, state.nonce


# =============================================================================
# Session JWT
# =============================================================================

def sign_session(
    claims: Dict[str, Any],
    secret: str,
    ttl_seconds: int,
    issued_at: Optional[datetime] = None,
    algorithm: str = "HS256",
) -> str:
    """
    Sign a session token over the given claim set.

    Args:
        claims: Session claims; must contain 'userId' and 'email'
        secret: HMAC secret
        ttl_seconds: Lifetime added to the issue time to form 'exp'
        issued_at: Issue time, defaults to now (UTC)
        algorithm: HMAC algorithm

    Returns:
        Encoded JWT string

    Raises:
        MalformedClaimsError: If a required claim is missing
    """
    for name in ("userId", "email"):
        if not claims.get(name):
            raise MalformedClaimsError(f"Missing required claim: '{name}'")

    now = issued_at or datetime.now(timezone.utc)
    payload = dict(claims)
    payload.update({
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
    })

    token = jwt.encode(payload, secret, algorithm=algorithm)

    logger.debug(
        "Signed session token",
        extra={"user_id": claims.get("userId"), "ttl_seconds": ttl_seconds},
    )
    return token


def verify_session(token: str, secret: str, algorithm: str = "HS256") -> SessionClaims:
    """
    Verify and decode a session token.

    Raises:
        SessionExpiredError: Token is past its 'exp'
        InvalidSignatureError: Signature does not verify under ``secret``
        MalformedClaimsError: Token is undecodable or lacks required claims
        InvalidSessionError: Any other verification failure
    """
    if not token:
        raise MalformedClaimsError("Empty session token")

    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": REQUIRED_SESSION_CLAIMS,
            },
        )
    except ExpiredSignatureError as e:
        raise SessionExpiredError("Session token has expired") from e
    except JWTInvalidSignatureError as e:
        raise InvalidSignatureError("Session token signature is invalid") from e
    except MissingRequiredClaimError as e:
        raise MalformedClaimsError(str(e)) from e
    except DecodeError as e:
        raise MalformedClaimsError(f"Undecodable session token: {e}") from e
    except InvalidTokenError as e:
        raise InvalidSessionError(f"Invalid session token: {e}") from e

    user_id = decoded.get("userId")
    email = decoded.get("email")
    if not isinstance(user_id, str) or not isinstance(email, str):
        raise MalformedClaimsError("Claims 'userId' and 'email' must be strings")
    if not user_id or not email:
        raise MalformedClaimsError("Claims 'userId' and 'email' must not be empty")

    return SessionClaims(
        user_id=user_id,
        email=email,
        name=decoded.get("name"),
        picture=decoded.get("picture"),
        issued_at=datetime.fromtimestamp(decoded["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(decoded["exp"], tz=timezone.utc),
    )


__all__ = [
    "encode_state",
    "decode_state",
    "redirect_from_state",
    "sign_session",
    "verify_session",
    "MalformedStateError",
    "InvalidSessionError",
    "InvalidSignatureError",
    "SessionExpiredError",
    "MalformedClaimsError",
]
