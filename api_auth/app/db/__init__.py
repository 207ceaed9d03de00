"""
Database Package

User persistence behind the ``UserStore`` protocol: lookup by external
identity or email, create, and profile update.
"""

from .store import (
    InMemoryUserStore,
    SqlUserStore,
    UserNotFoundError,
    UserStore,
    create_user_store,
)

__all__ = [
    "InMemoryUserStore",
    "SqlUserStore",
    "UserNotFoundError",
    "UserStore",
    "create_user_store",
]
