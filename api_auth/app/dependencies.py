from typing import TYPE_CHECKING

from fastapi import HTTPException, Request, status

from .config import Settings

if TYPE_CHECKING:
    from .auth.google import GoogleOAuthClient
    from .auth.issuer import SessionIssuer
    from .db import UserStore


def _app_state(request: Request):
    app_state = getattr(request.app.state, "app_state", None)
    if app_state is None or app_state.settings is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return app_state


def get_app_settings(request: Request) -> Settings:
    return _app_state(request).settings


def get_user_store(request: Request) -> "UserStore":
    return _app_state(request).user_store


def get_identity_provider(request: Request) -> "GoogleOAuthClient":
    return _app_state(request).identity_provider


def get_session_issuer(request: Request) -> "SessionIssuer":
    from .auth.issuer import SessionIssuer

    app_state = _app_state(request)
    return SessionIssuer(app_state.user_store, app_state.settings)
