"""
User persistence for the authentication flow.

The auth core depends only on the ``UserStore`` protocol. Two
implementations are provided:

- ``SqlUserStore``: async SQLAlchemy over any async URL
  (``sqlite+aiosqlite://``, ``sqlite+libsql://`` for Turso, ``postgresql+asyncpg://``)
- ``InMemoryUserStore``: process-local dictionary, used when no database
  is configured and in tests

Stores have an explicit ``open()``/``close()`` lifecycle owned by the
application lifespan. Every SQL operation runs in its own scoped
``AsyncSession`` so the connection goes back to the pool on every exit path.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ..config import Settings
from ..models import LocalUser
from .models import Base, UserRecord

logger = logging.getLogger(__name__)


class UserNotFoundError(LookupError):
    """No user exists with the requested id."""


@runtime_checkable
class UserStore(Protocol):
    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def find_by_external_id(self, external_id: str) -> Optional[LocalUser]: ...

    async def find_by_email(self, email: str) -> Optional[LocalUser]: ...

    async def create(
        self,
        *,
        email: str,
        name: Optional[str],
        picture_url: Optional[str],
        external_id: str,
    ) -> LocalUser: ...

    async def update(
        self,
        user_id: str,
        *,
        name: Optional[str],
        picture_url: Optional[str],
    ) -> LocalUser: ...


def _new_user_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# In-memory store
# =============================================================================

class InMemoryUserStore:
    """Dictionary-backed UserStore. Data lives as long as the process."""

    def __init__(self):
        self._users: Dict[str, LocalUser] = {}
        self.write_count = 0

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def find_by_external_id(self, external_id: str) -> Optional[LocalUser]:
        for user in self._users.values():
            if user.external_id == external_id:
                return user.model_copy()
        return None

    async def find_by_email(self, email: str) -> Optional[LocalUser]:
        for user in self._users.values():
            if user.email == email:
                return user.model_copy()
        return None

    async def create(self, *, email, name, picture_url, external_id) -> LocalUser:
        existing = await self.find_by_external_id(external_id)
        if existing is not None:
            return existing

        now = _utcnow()
        user = LocalUser(
            id=_new_user_id(),
            email=email,
            name=name,
            picture_url=picture_url,
            external_id=external_id,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        self.write_count += 1
        return user.model_copy()

    async def update(self, user_id, *, name, picture_url) -> LocalUser:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        updated = user.model_copy(
            update={"name": name, "picture_url": picture_url, "updated_at": _utcnow()}
        )
        self._users[user_id] = updated
        self.write_count += 1
        return updated.model_copy()


# =============================================================================
# SQL store
# =============================================================================

class SqlUserStore:
    """
    UserStore backed by an async SQLAlchemy engine.

    Args:
        database_url: SQLAlchemy async database URL
        auth_token: Passed to the driver as ``auth_token`` (libSQL/Turso)
        create_tables: Create the ``users`` table on open()
        echo: Log SQL statements
    """

    def __init__(
        self,
        database_url: str,
        auth_token: Optional[str] = None,
        create_tables: bool = False,
        echo: bool = False,
    ):
        self.database_url = database_url
        self.auth_token = auth_token
        self.create_tables = create_tables
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    async def open(self) -> None:
        if self._engine is not None:
            return

        url = make_url(self.database_url)
        engine_kwargs = {"echo": self.echo}
        connect_args = {}

        if self.auth_token:
            connect_args["auth_token"] = self.auth_token

        # In-memory SQLite only exists for the lifetime of one connection
        if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool

        self._engine = create_async_engine(
            url,
            connect_args=connect_args,
            **engine_kwargs,
        )
        self._sessionmaker = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )
        logger.info(
            "Opened SQL user store",
            extra={"backend": url.get_backend_name()},
        )

        if self.create_tables:
            await self.create_schema()

    async def create_schema(self) -> None:
        """Create missing tables. Does not alter existing ones."""
        if self._engine is None:
            raise RuntimeError("SqlUserStore is not open")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Closed SQL user store")

    def _session(self) -> AsyncSession:
        if self._sessionmaker is None:
            raise RuntimeError("SqlUserStore is not open")
        return self._sessionmaker()

    async def find_by_external_id(self, external_id: str) -> Optional[LocalUser]:
        async with self._session() as session:
            stmt = select(UserRecord).where(UserRecord.external_id == external_id)
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()
            return LocalUser.model_validate(record) if record else None

    async def find_by_email(self, email: str) -> Optional[LocalUser]:
        async with self._session() as session:
            stmt = (
                select(UserRecord)
                .where(UserRecord.email == email)
                .order_by(UserRecord.created_at)
                .limit(1)
            )
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()
            return LocalUser.model_validate(record) if record else None

    async def create(self, *, email, name, picture_url, external_id) -> LocalUser:
        now = _utcnow()
        record = UserRecord(
            id=_new_user_id(),
            email=email,
            name=name,
            picture_url=picture_url,
            external_id=external_id,
            created_at=now,
            updated_at=now,
        )

        async with self._session() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                # A concurrent login for the same external_id won the insert
                existing = await self.find_by_external_id(external_id)
                if existing is None:
                    raise
                logger.info(
                    "User created concurrently; reusing existing record",
                    extra={"user_id": existing.id},
                )
                return existing

            return LocalUser.model_validate(record)

    async def update(self, user_id, *, name, picture_url) -> LocalUser:
        async with self._session() as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                raise UserNotFoundError(user_id)

            record.name = name
            record.picture_url = picture_url
            record.updated_at = _utcnow()
            await session.commit()
            return LocalUser.model_validate(record)


# =============================================================================
# Factory
# =============================================================================

def create_user_store(settings: Settings) -> UserStore:
    """
    Build the UserStore described by the settings.

    Returns:
        SqlUserStore when DATABASE_URL is set, InMemoryUserStore otherwise
    """
    if settings.DATABASE_URL:
        return SqlUserStore(
            settings.DATABASE_URL,
            auth_token=settings.DATABASE_AUTH_TOKEN,
            create_tables=settings.DATABASE_CREATE_TABLES,
            echo=settings.LOG_LEVEL == "DEBUG",
        )

    logger.warning("DATABASE_URL not set; using in-memory user store")
    return InMemoryUserStore()
