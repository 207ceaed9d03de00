"""
Configuration module for the Authentication API.

This module uses Pydantic Settings to load and validate environment variables
for Google OAuth 2.0, JWT session cookies, the user database, front-end
origins and logging.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def url_origin(url: str) -> str:
    """
    Reduce a URL to its origin (scheme://host[:port]).

    Returns an empty string for values that have no scheme or host, or that
    cannot be parsed at all.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Google client credentials may be unset at load time; /auth/google then
    answers with a server error while session checks and logout keep working.
    """

    # =========================================================================
    # Google OAuth 2.0 Configuration
    # =========================================================================

    GOOGLE_CLIENT_ID: Optional[str] = Field(
        None,
        description="Google OAuth client ID",
    )

    GOOGLE_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Google OAuth client secret",
    )

    GOOGLE_REDIRECT_URI: Optional[str] = Field(
        None,
        description="Registered callback URL; derived from the request origin when unset",
    )

    GOOGLE_AUTH_URL: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="Google authorization endpoint",
    )

    GOOGLE_TOKEN_URL: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Google token endpoint",
    )

    GOOGLE_USERINFO_URL: str = Field(
        default="https://www.googleapis.com/oauth2/v3/userinfo",
        description="Google userinfo endpoint",
    )

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for each outbound call to Google",
        gt=0,
        le=60,
    )

    OAUTH_STATE_COOKIE_CHECK: bool = Field(
        default=False,
        description="Require the state nonce to match the oauth_nonce cookie set at login",
    )

    # =========================================================================
    # Session JWT Configuration
    # =========================================================================

    JWT_SECRET: str = Field(
        ...,
        description="Secret key for signing session JWTs (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_TTL_SECONDS: int = Field(
        default=7 * 24 * 60 * 60,
        description="Session lifetime in seconds (JWT exp and cookie Max-Age)",
        ge=60,
    )

    SESSION_COOKIE_NAME: str = Field(
        default="auth",
        description="Name of the session cookie",
        min_length=1,
    )

    # =========================================================================
    # Front-end Configuration
    # =========================================================================

    FRONTEND_URL: str = Field(
        default="http://localhost:4321",
        description="Public site base URL; default post-login target",
    )

    ADMIN_URL: str = Field(
        default="http://localhost:3000",
        description="Admin dashboard base URL",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Extra comma-separated origins allowed for CORS and post-login redirects",
    )

    # =========================================================================
    # Database Configuration
    # =========================================================================

    DATABASE_URL: Optional[str] = Field(
        None,
        description="SQLAlchemy async URL for the user store (in-memory store when unset)",
    )

    DATABASE_AUTH_TOKEN: Optional[str] = Field(
        None,
        description="Auth token for hosted libSQL/Turso databases",
    )

    DATABASE_CREATE_TABLES: bool = Field(
        default=False,
        description="Create the users table on startup if it does not exist",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the server",
    )

    PORT: int = Field(
        default=8787,
        description="Port to bind the server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def frontend_url_str(self) -> str:
        """FRONTEND_URL without trailing slash."""
        return self.FRONTEND_URL.rstrip("/")

    @property
    def allowed_redirect_origins(self) -> List[str]:
        """
        Origins a login may return to.

        Returns:
            FRONTEND_URL, ADMIN_URL and ALLOWED_ORIGINS reduced to origins,
            without duplicates.
        """
        candidates = [self.FRONTEND_URL, self.ADMIN_URL]
        if self.ALLOWED_ORIGINS:
            candidates.extend(self.ALLOWED_ORIGINS.split(","))

        origins: List[str] = []
        for candidate in candidates:
            origin = url_origin(candidate)
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def cors_origins(self) -> List[str]:
        """Origins allowed to make credentialed cross-site requests."""
        return self.allowed_redirect_origins

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("FRONTEND_URL", "ADMIN_URL")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Front-end base URLs must be absolute http(s) URLs."""
        if not url_origin(v) or not v.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid base URL: '{v}'. Expected format: 'https://example.com'"
            )
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors are logged but only the
    settings validation itself is fatal.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if not settings.GOOGLE_CLIENT_ID:
        errors.append("GOOGLE_CLIENT_ID is not set; /auth/google will fail")

    if not settings.GOOGLE_CLIENT_SECRET:
        errors.append("GOOGLE_CLIENT_SECRET is not set; code exchange will fail")

    if not settings.DATABASE_URL:
        warnings.append("DATABASE_URL is not set; users are kept in memory only")

    if not settings.OAUTH_STATE_COOKIE_CHECK:
        warnings.append(
            "OAUTH_STATE_COOKIE_CHECK is disabled; callback state is not bound to the browser"
        )

    if settings.GOOGLE_REDIRECT_URI and not settings.GOOGLE_REDIRECT_URI.startswith("https://"):
        if "localhost" not in settings.GOOGLE_REDIRECT_URI:
            warnings.append("GOOGLE_REDIRECT_URI is not https")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "allowed_redirect_origins": settings.allowed_redirect_origins,
        "session_ttl_seconds": settings.SESSION_TTL_SECONDS,
    }
