"""
Authentication Package

This package handles Google OAuth 2.0 login and cookie-based JWT sessions
for the digital menu admin dashboard and public site.

Key responsibilities:
- OAuth login initiation and callback handling
- CSRF state encoding and post-login redirect recovery
- Local user resolution (create on first login, profile refresh)
- Session JWT issuance in the HttpOnly ``auth`` cookie
- Session verification for protected and optional-auth routes

Modules:
- routes: Public authentication endpoints (/auth/google, /auth/google/callback, etc.)
- google: Google authorization, token and userinfo calls
- tokens: State encoding and session JWT signing/verification
- issuer: User upsert and session cookie directives
- session: FastAPI dependencies guarding routes

The authentication flow:
1. Browser initiates login via /auth/google
2. User consents on Google
3. Google redirects to /auth/google/callback with a code
4. Service exchanges the code, fetches the profile, upserts the user
5. Service sets the session cookie and redirects to the dashboard
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
