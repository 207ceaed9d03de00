"""
Session issuance: local user resolution and session cookie minting.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from starlette.responses import Response

from ..config import Settings
from ..db import UserStore
from ..models import ExternalIdentity, LocalUser
from .tokens import sign_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CookieDirective:
    """Cookie to set on an outgoing response."""

    name: str
    value: str
    max_age: int
    path: str = "/"
    http_only: bool = True
    secure: bool = False
    same_site: str = "lax"

    def apply(self, response: Response) -> None:
        if self.max_age <= 0:
            response.delete_cookie(
                self.name,
                path=self.path,
                secure=self.secure,
                httponly=self.http_only,
                samesite=self.same_site,
            )
            return

        response.set_cookie(
            self.name,
            self.value,
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.http_only,
            samesite=self.same_site,
        )


class SessionIssuer:
    """
    Turns a verified external identity into a local user and a session cookie.

    Args:
        user_store: Persistence for LocalUser records
        settings: Signing secret, algorithm, TTL and cookie name
    """

    def __init__(self, user_store: UserStore, settings: Settings):
        self.user_store = user_store
        self.settings = settings

    async def resolve_or_create_user(self, identity: ExternalIdentity) -> LocalUser:
        """
        Upsert the local user for an external identity.

        One read by external_id and at most one write. Existing users get
        name/picture updated only when they differ; email and external_id
        are never rewritten.
        """
        user = await self.user_store.find_by_external_id(identity.external_id)

        if user is None:
            user = await self.user_store.create(
                email=identity.email,
                name=identity.display_name,
                picture_url=identity.picture_url,
                external_id=identity.external_id,
            )
            logger.info("Created user on first login", extra={"user_id": user.id})
            return user

        if user.name != identity.display_name or user.picture_url != identity.picture_url:
            user = await self.user_store.update(
                user.id,
                name=identity.display_name,
                picture_url=identity.picture_url,
            )
            logger.info("Updated user profile", extra={"user_id": user.id})

        return user

    def issue_session_cookie(self, user: LocalUser, secure: bool) -> CookieDirective:
        """
        Sign a session token for the user and wrap it in a cookie directive.

        Args:
            user: Resolved local user
            secure: Whether the request was served over TLS
        """
        token = sign_session(
            {
                "userId": user.id,
                "email": user.email,
                "name": user.name,
                "picture": user.picture_url,
            },
            self.settings.JWT_SECRET,
            self.settings.SESSION_TTL_SECONDS,
            algorithm=self.settings.SESSION_JWT_ALGORITHM,
        )
        return CookieDirective(
            name=self.settings.SESSION_COOKIE_NAME,
            value=token,
            max_age=self.settings.SESSION_TTL_SECONDS,
            secure=secure,
        )

    def clear_session_cookie(self, secure: bool) -> CookieDirective:
        return clear_cookie(self.settings.SESSION_COOKIE_NAME, secure)


def clear_cookie(name: str, secure: bool, path: Optional[str] = "/") -> CookieDirective:
    """Directive that expires a cookie immediately."""
    return CookieDirective(name=name, value="", max_age=0, path=path or "/", secure=secure)
