"""
Authentication routes for the Google OAuth 2.0 login flow.

This module implements the authorization code flow with Google and the
cookie-based session endpoints consumed by the admin dashboard and the
public site.
"""

import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from ..config import Settings, url_origin
from ..dependencies import get_app_settings, get_identity_provider, get_session_issuer
from ..models import (
    ErrorResponse,
    LogoutResponse,
    MeResponse,
    SessionClaims,
    SessionResponse,
    SessionState,
    UserProfile,
)
from .google import GoogleOAuthClient, IdentityProviderError
from .issuer import SessionIssuer, clear_cookie
from .session import get_current_user, get_optional_user
from .tokens import encode_state, redirect_from_state

logger = logging.getLogger(__name__)

NONCE_COOKIE_NAME = "oauth_nonce"
NONCE_COOKIE_MAX_AGE = 600
NONCE_COOKIE_PATH = "/auth"

CALLBACK_PATH = "/auth/google/callback"


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


# =============================================================================
# Helpers
# =============================================================================

def _is_secure(request: Request) -> bool:
    return request.url.scheme == "https"


def _callback_uri(request: Request, settings: Settings) -> str:
    if settings.GOOGLE_REDIRECT_URI:
        return settings.GOOGLE_REDIRECT_URI
    return f"{url_origin(str(request.url))}{CALLBACK_PATH}"


def _login_error_redirect(base_url: str, error_code: str, secure: bool) -> RedirectResponse:
    response = RedirectResponse(
        url=f"{base_url}/login?{urlencode({'error': error_code})}",
        status_code=status.HTTP_302_FOUND,
    )
    clear_cookie(NONCE_COOKIE_NAME, secure, path=NONCE_COOKIE_PATH).apply(response)
    return response


# =============================================================================
# Login Endpoint
# =============================================================================

@auth_router.get("/google", response_class=RedirectResponse)
async def login_with_google(
    request: Request,
    redirect: Optional[str] = Query(None, description="Origin to return to after login"),
    settings: Settings = Depends(get_app_settings),
    provider: GoogleOAuthClient = Depends(get_identity_provider),
):
    """
    Initiate the OAuth flow by redirecting to Google.

    This endpoint:
    1. Fails with 500 when GOOGLE_CLIENT_ID is not configured
    2. Picks the post-login target (``redirect`` if allowed, else FRONTEND_URL)
    3. Encodes target and a fresh nonce into the state parameter
    4. Stores the nonce in a short-lived HttpOnly cookie
    5. Redirects to the Google consent screen
    """
    if not provider.is_configured:
        logger.error("Login attempted without GOOGLE_CLIENT_ID configured")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="Google client ID is not configured").model_dump(),
        )

    target = settings.frontend_url_str
    if redirect:
        if url_origin(redirect) in settings.allowed_redirect_origins:
            target = redirect.rstrip("/")
        else:
            logger.warning(
                "Ignoring disallowed login redirect",
                extra={"redirect_origin": url_origin(redirect)},
            )

    nonce = secrets.token_urlsafe(24)
    state = encode_state(target, nonce)
    authorization_url = provider.authorization_url(_callback_uri(request, settings), state)

    response = RedirectResponse(url=authorization_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        NONCE_COOKIE_NAME,
        nonce,
        max_age=NONCE_COOKIE_MAX_AGE,
        path=NONCE_COOKIE_PATH,
        secure=_is_secure(request),
        httponly=True,
        samesite="lax",
    )
    return response


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/google/callback", response_class=RedirectResponse)
async def google_callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="State parameter from /auth/google"),
    error: Optional[str] = Query(None, description="Error code if consent was denied"),
    settings: Settings = Depends(get_app_settings),
    provider: GoogleOAuthClient = Depends(get_identity_provider),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """
    Handle the OAuth callback from Google.

    This endpoint:
    1. Redirects with 'google_auth_denied' if Google reported an error
    2. Redirects with 'no_code' if the code is missing
    3. Recovers the post-login target from state (default on failure)
    4. Exchanges the code, fetches the profile, requires a verified email
    5. Creates or updates the local user
    6. Sets the session cookie and redirects to <target>/dashboard

    Every failure ends in a redirect to the login page with ``?error=<code>``.
    """
    secure = _is_secure(request)
    default_target = settings.frontend_url_str

    if error:
        logger.warning("Google returned an OAuth error", extra={"oauth_error": error})
        return _login_error_redirect(default_target, "google_auth_denied", secure)

    if not code:
        return _login_error_redirect(default_target, "no_code", secure)

    try:
        target, state_nonce = redirect_from_state(
            state, default_target, settings.allowed_redirect_origins
        )

        if settings.OAUTH_STATE_COOKIE_CHECK:
            cookie_nonce = request.cookies.get(NONCE_COOKIE_NAME)
            if not cookie_nonce or not state_nonce or not secrets.compare_digest(
                cookie_nonce.encode(), state_nonce.encode()
            ):
                logger.warning("OAuth state nonce does not match login cookie")
                return _login_error_redirect(default_target, "invalid_state", secure)

        try:
            tokens = await provider.exchange_code(code, _callback_uri(request, settings))
            identity = await provider.fetch_profile(tokens.access_token)
        except IdentityProviderError as e:
            return _login_error_redirect(target, e.error_code, secure)

        if not identity.email_verified:
            logger.info(
                "Rejected login with unverified email",
                extra={"external_id": identity.external_id},
            )
            return _login_error_redirect(target, "email_not_verified", secure)

        user = await issuer.resolve_or_create_user(identity)
        cookie = issuer.issue_session_cookie(user, secure)

        response = RedirectResponse(
            url=f"{target}/dashboard",
            status_code=status.HTTP_302_FOUND,
        )
        cookie.apply(response)
        clear_cookie(NONCE_COOKIE_NAME, secure, path=NONCE_COOKIE_PATH).apply(response)

        logger.info("User logged in", extra={"user_id": user.id})
        return response

    except Exception as e:
        logger.error(f"Unexpected error in OAuth callback: {e}", exc_info=True)
        return _login_error_redirect(default_target, "unknown", secure)


# =============================================================================
# Session Endpoints
# =============================================================================

@auth_router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """Clear the session cookie. Succeeds with or without an active session."""
    response = JSONResponse(content=LogoutResponse().model_dump())
    issuer.clear_session_cookie(_is_secure(request)).apply(response)
    return response


@auth_router.get("/me", response_model=MeResponse)
async def me(user: SessionClaims = Depends(get_current_user)):
    """Return the authenticated user's profile; 401 without a valid session."""
    return MeResponse(data=UserProfile(**user.public_profile()))


@auth_router.get("/session", response_model=SessionResponse)
async def session_status(user: Optional[SessionClaims] = Depends(get_optional_user)):
    """Report whether the request carries a valid session. Never fails on bad cookies."""
    if user is None:
        return SessionResponse(data=SessionState(authenticated=False))

    return SessionResponse(
        data=SessionState(
            authenticated=True,
            user=UserProfile(**user.public_profile()),
        )
    )
