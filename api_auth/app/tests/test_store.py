"""
Tests for the user stores.

SqlUserStore runs against in-memory SQLite through aiosqlite.
"""

import pytest

from api_auth.app.db import (
    InMemoryUserStore,
    SqlUserStore,
    UserNotFoundError,
    UserStore,
    create_user_store,
)

from conftest import make_settings


async def open_sql_store() -> SqlUserStore:
    store = SqlUserStore("sqlite+aiosqlite:///:memory:", create_tables=True)
    await store.open()
    return store


async def create_default(store, **overrides):
    values = {
        "email": "a@x.com",
        "name": "A",
        "picture_url": "p1",
        "external_id": "g1",
    }
    values.update(overrides)
    return await store.create(**values)


class TestSqlUserStore:

    @pytest.mark.asyncio
    async def test_create_and_find(self):
        store = await open_sql_store()
        try:
            created = await create_default(store)

            by_external = await store.find_by_external_id("g1")
            by_email = await store.find_by_email("a@x.com")

            assert by_external is not None
            assert by_external.id == created.id
            assert by_external.email == "a@x.com"
            assert by_external.name == "A"
            assert by_external.picture_url == "p1"
            assert by_email is not None
            assert by_email.id == created.id
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self):
        store = await open_sql_store()
        try:
            assert await store.find_by_external_id("nobody") is None
            assert await store.find_by_email("nobody@x.com") is None
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_update_profile(self):
        store = await open_sql_store()
        try:
            created = await create_default(store)

            updated = await store.update(created.id, name="A2", picture_url=None)
            found = await store.find_by_external_id("g1")

            assert updated.id == created.id
            assert updated.name == "A2"
            assert updated.picture_url is None
            assert found.name == "A2"
            assert found.email == "a@x.com"
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_update_unknown_user(self):
        store = await open_sql_store()
        try:
            with pytest.raises(UserNotFoundError):
                await store.update("missing-id", name="X", picture_url=None)
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_duplicate_external_id_returns_existing(self):
        store = await open_sql_store()
        try:
            first = await create_default(store)
            second = await create_default(store, name="Other")

            assert second.id == first.id
            assert second.name == "A"
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_operations_require_open(self):
        store = SqlUserStore("sqlite+aiosqlite:///:memory:")

        with pytest.raises(RuntimeError):
            await store.find_by_external_id("g1")

    @pytest.mark.asyncio
    async def test_open_and_close_are_idempotent(self):
        store = await open_sql_store()
        await store.open()
        await store.close()
        await store.close()


class TestInMemoryUserStore:

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        store = InMemoryUserStore()
        created = await create_default(store)

        created.name = "mutated"
        found = await store.find_by_external_id("g1")

        assert found.name == "A"

    @pytest.mark.asyncio
    async def test_update_unknown_user(self):
        store = InMemoryUserStore()

        with pytest.raises(UserNotFoundError):
            await store.update("missing-id", name="X", picture_url=None)


def test_create_user_store_selects_backend():
    in_memory = create_user_store(make_settings())
    sql = create_user_store(make_settings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))

    assert isinstance(in_memory, InMemoryUserStore)
    assert isinstance(sql, SqlUserStore)
    assert isinstance(in_memory, UserStore)
    assert isinstance(sql, UserStore)
