"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the authentication service.

Models are organized by functional area:
- Identity models (external identity from Google, local user record)
- Token models (provider token set, CSRF state, session claims)
- Response envelopes (session, me, logout, errors)
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Identity Models
# ============================================================================

class ExternalIdentity(BaseModel):
    """Identity asserted by Google for the user completing a callback."""

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(..., description="Provider subject identifier (Google 'sub')")
    email: str = Field(..., description="Email address reported by the provider")
    email_verified: bool = Field(default=False, description="Provider-verified email flag")
    display_name: Optional[str] = Field(None, description="Full display name")
    picture_url: Optional[str] = Field(None, description="Avatar URL")

    @classmethod
    def from_userinfo(cls, data: Dict[str, Any]) -> "ExternalIdentity":
        """
        Build an identity from a Google userinfo (v3) response body.

        Raises:
            ValueError: If 'sub' is missing, null or empty
        """
        subject = data.get("sub")
        if subject is None or not str(subject).strip():
            raise ValueError("Profile has no subject identifier")

        verified = data.get("email_verified", False)
        if isinstance(verified, str):
            verified = verified.lower() == "true"
        return cls(
            external_id=str(subject),
            email=str(data.get("email") or ""),
            email_verified=bool(verified),
            display_name=data.get("name"),
            picture_url=data.get("picture"),
        )


class LocalUser(BaseModel):
    """User record owned by the service, joined to Google by external_id."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Local user identifier")
    email: str = Field(..., description="Email captured at first login")
    name: Optional[str] = Field(None, description="Display name")
    picture_url: Optional[str] = Field(None, description="Avatar URL")
    external_id: str = Field(..., description="Provider subject identifier")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last profile update timestamp")


# ============================================================================
# Token Models
# ============================================================================

class TokenSet(BaseModel):
    """Token endpoint response from Google."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None


class CsrfState(BaseModel):
    """Decoded OAuth state parameter."""

    redirect: Optional[str] = None
    nonce: Optional[str] = None


class SessionClaims(BaseModel):
    """Verified claim set carried by the session cookie."""

    user_id: str = Field(..., alias="userId")
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None
    issued_at: datetime
    expires_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    def public_profile(self) -> Dict[str, Optional[str]]:
        """Claims as exposed by /auth/me and /auth/session."""
        return {
            "userId": self.user_id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
        }


# ============================================================================
# Response Envelopes
# ============================================================================

class UserProfile(BaseModel):
    userId: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class SessionState(BaseModel):
    authenticated: bool
    user: Optional[UserProfile] = None


class SessionResponse(BaseModel):
    """Response model for GET /auth/session."""
    success: bool = True
    data: SessionState


class MeResponse(BaseModel):
    """Response model for GET /auth/me."""
    success: bool = True
    data: UserProfile


class LogoutResponse(BaseModel):
    """Response model for POST /auth/logout."""
    success: bool = True
    message: str = "Session closed"


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    success: bool = False
    error: str = Field(..., description="Error code or message")
