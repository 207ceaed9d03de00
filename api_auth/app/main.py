"""
FastAPI Authentication API Application Factory
===============================================

This is the main entry point for the authentication service shared by the
digital menu admin dashboard and the public site.

Architecture:
    Browser → Auth API (this service) → Google OAuth 2.0
                      ↓
                  User database

Routers:
    - /auth/*         : Google login, callback, logout, session introspection
    - /api/protected  : Sample route guarded by the session cookie
    - /health         : Health check endpoint

Environment Variables:
    - GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET: Google OAuth credentials
    - JWT_SECRET: Secret for signing session JWTs (min 32 chars)
    - FRONTEND_URL: Public site base URL (default post-login target)
    - ADMIN_URL: Admin dashboard base URL
    - DATABASE_URL / DATABASE_AUTH_TOKEN: User database (in-memory when unset)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn api_auth.app.main:create_app --factory --reload --port 8787

    Production:
        uvicorn api_auth.app.main:create_app --factory --host 0.0.0.0 --port 8787 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from . import __version__
from .auth import auth_router
from .auth.google import GoogleOAuthClient
from .auth.session import get_current_user
from .config import Settings, get_settings, validate_configuration
from .db import UserStore, create_user_store
from .models import SessionClaims


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


class AppState:
    """
    Application state container.

    Holds the resources shared by request handlers: settings, the user
    store and the identity provider client.
    """
    def __init__(
        self,
        settings: Settings,
        user_store: UserStore,
        identity_provider: GoogleOAuthClient,
    ):
        self.settings = settings
        self.user_store = user_store
        self.identity_provider = identity_provider


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report configuration problems
        - Open the user store

    Shutdown tasks:
        - Close the user store
    """
    app_state: AppState = app.state.app_state
    settings = app_state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("api_auth.main")

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    await app_state.user_store.open()

    logger.info(
        "Auth API started",
        extra={
            "version": __version__,
            "allowed_redirect_origins": report["allowed_redirect_origins"],
        }
    )

    try:
        yield
    finally:
        logger.info("Shutting down auth API")
        await app_state.user_store.close()
        logger.info("Auth API shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    user_store: Optional[UserStore] = None,
    identity_provider: Optional[GoogleOAuthClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use instead of the environment
        user_store: UserStore to use instead of one built from settings
        identity_provider: Google client to use instead of the default

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Auth API",
        description="Google OAuth login and JWT session cookies for the digital menu apps",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.app_state = AppState(
        settings=settings,
        user_store=user_store or create_user_store(settings),
        identity_provider=identity_provider or GoogleOAuthClient(settings),
    )

    # Credentialed CORS for the admin and public front-ends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cookie"],
        expose_headers=["Set-Cookie"],
        max_age=86400,
    )

    app.include_router(auth_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "api-auth",
            "version": __version__,
        }

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """
        Root endpoint with service information.

        Returns:
            dict: Service metadata and available endpoints
        """
        return {
            "success": True,
            "service": "api-auth",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "login": "/auth/google",
                "session": "/auth/session",
                "me": "/auth/me",
                "logout": "/auth/logout",
            },
        }

    @app.get("/api/protected", tags=["Example"])
    async def protected(user: SessionClaims = Depends(get_current_user)) -> Dict[str, Any]:
        """Sample route that requires a valid session cookie."""
        return {
            "success": True,
            "message": "Protected route accessed",
            "data": {"userId": user.user_id, "email": user.email},
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Render HTTP errors (401, 404, ...) in the {success, error} envelope."""
        content: Dict[str, Any] = {"success": False, "error": exc.detail}
        if exc.status_code == 404:
            content["path"] = request.url.path
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("api_auth.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "internal_server_error",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m api_auth.app.main
    """
    settings = get_settings()

    uvicorn.run(
        "api_auth.app.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
