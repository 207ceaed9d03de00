"""
Shared fixtures for the authentication API tests.

Google is replaced by an ``httpx.MockTransport`` serving the token and
userinfo endpoints; users live in an ``InMemoryUserStore``.
"""

from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from api_auth.app.auth.google import GoogleOAuthClient
from api_auth.app.config import Settings
from api_auth.app.db import InMemoryUserStore
from api_auth.app.main import create_app


TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef-0123"
FRONTEND_URL = "http://localhost:4321"
ADMIN_URL = "http://localhost:3000"


def make_settings(**overrides) -> Settings:
    values = {
        "GOOGLE_CLIENT_ID": "test-client-id",
        "GOOGLE_CLIENT_SECRET": "test-client-secret",
        "JWT_SECRET": TEST_JWT_SECRET,
        "FRONTEND_URL": FRONTEND_URL,
        "ADMIN_URL": ADMIN_URL,
        "LOG_LEVEL": "INFO",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def google_profile(**overrides) -> Dict[str, Any]:
    profile = {
        "sub": "g1",
        "email": "a@x.com",
        "email_verified": True,
        "name": "A",
        "picture": "p1",
    }
    profile.update(overrides)
    return profile


def google_transport(
    token_status: int = 200,
    token_body: Optional[Dict[str, Any]] = None,
    profile_status: int = 200,
    profile_body: Optional[Dict[str, Any]] = None,
    calls: Optional[List[httpx.Request]] = None,
) -> httpx.MockTransport:
    """
    Mock the Google token and userinfo endpoints.

    Args:
        token_status: HTTP status returned by the token endpoint
        token_body: JSON body of the token endpoint
        profile_status: HTTP status returned by the userinfo endpoint
        profile_body: JSON body of the userinfo endpoint
        calls: Optional list collecting every request made
    """
    if token_body is None:
        token_body = {"access_token": "tok1", "token_type": "Bearer", "expires_in": 3599}
    if profile_body is None:
        profile_body = google_profile()

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if request.url.host == "oauth2.googleapis.com" and request.url.path == "/token":
            return httpx.Response(token_status, json=token_body)
        if request.url.host == "www.googleapis.com" and request.url.path == "/oauth2/v3/userinfo":
            return httpx.Response(profile_status, json=profile_body)
        return httpx.Response(404, json={"error": "not_found"})

    return httpx.MockTransport(handler)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def make_client(settings, user_store):
    """
    Factory for TestClients running the full application lifespan.

    Redirects are not followed so tests can inspect Location and Set-Cookie.
    """
    clients = []

    def _make(
        transport: Optional[httpx.MockTransport] = None,
        app_settings: Optional[Settings] = None,
        store=None,
        base_url: str = "http://testserver",
    ) -> TestClient:
        app_settings = app_settings or settings
        provider = GoogleOAuthClient(app_settings, transport=transport or google_transport())
        app = create_app(
            settings=app_settings,
            user_store=store if store is not None else user_store,
            identity_provider=provider,
        )
        client = TestClient(app, base_url=base_url, follow_redirects=False)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


def set_cookie_headers(response) -> List[str]:
    return response.headers.get_list("set-cookie")


def find_cookie(response, name: str) -> Optional[str]:
    """Return the raw Set-Cookie header for ``name`` or None."""
    for header in set_cookie_headers(response):
        if header.startswith(f"{name}="):
            return header
    return None


def cookie_value(header: str) -> str:
    return header.split(";", 1)[0].split("=", 1)[1].strip('"')
