"""
Tests for the Google OAuth client.

Outbound calls go through ``httpx.MockTransport``; no network access.
"""

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from api_auth.app.auth.google import (
    GOOGLE_SCOPES,
    GoogleOAuthClient,
    ProfileFetchError,
    TokenExchangeError,
)

from conftest import google_profile, google_transport, make_settings

CALLBACK = "http://testserver/auth/google/callback"


def test_authorization_url_parameters():
    client = GoogleOAuthClient(make_settings())

    url = client.authorization_url(CALLBACK, "state-blob")
    parts = urlsplit(url)
    params = {k: v[0] for k, v in parse_qs(parts.query).items()}

    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://accounts.google.com/o/oauth2/v2/auth"
    assert params == {
        "client_id": "test-client-id",
        "redirect_uri": CALLBACK,
        "response_type": "code",
        "scope": GOOGLE_SCOPES,
        "access_type": "offline",
        "prompt": "consent",
        "state": "state-blob",
    }


def test_is_configured_requires_client_id():
    assert GoogleOAuthClient(make_settings()).is_configured
    assert not GoogleOAuthClient(make_settings(GOOGLE_CLIENT_ID=None)).is_configured


class TestExchangeCode:

    @pytest.mark.asyncio
    async def test_posts_form_and_returns_tokens(self):
        calls = []
        client = GoogleOAuthClient(make_settings(), transport=google_transport(calls=calls))

        tokens = await client.exchange_code("abc", CALLBACK)

        assert tokens.access_token == "tok1"
        assert len(calls) == 1
        request = calls[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        assert form == {
            "code": "abc",
            "client_id": "test-client-id",
            "client_secret": "test-client-secret",
            "redirect_uri": CALLBACK,
            "grant_type": "authorization_code",
        }

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        transport = google_transport(
            token_status=400,
            token_body={"error": "invalid_grant", "error_description": "Bad Request"},
        )
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(TokenExchangeError) as exc_info:
            await client.exchange_code("used-code", CALLBACK)

        assert exc_info.value.error_code == "token_exchange_failed"
        assert "Bad Request" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_error_body_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="<html>oops</html>"))
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(TokenExchangeError):
            await client.exchange_code("abc", CALLBACK)

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = GoogleOAuthClient(make_settings(), transport=httpx.MockTransport(handler))

        with pytest.raises(TokenExchangeError):
            await client.exchange_code("abc", CALLBACK)

    @pytest.mark.asyncio
    async def test_missing_access_token_raises(self):
        transport = google_transport(token_body={"token_type": "Bearer"})
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(TokenExchangeError):
            await client.exchange_code("abc", CALLBACK)


class TestFetchProfile:

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        calls = []
        client = GoogleOAuthClient(make_settings(), transport=google_transport(calls=calls))

        identity = await client.fetch_profile("tok1")

        assert calls[0].method == "GET"
        assert calls[0].headers["authorization"] == "Bearer tok1"
        assert identity.external_id == "g1"
        assert identity.email == "a@x.com"
        assert identity.email_verified is True
        assert identity.display_name == "A"
        assert identity.picture_url == "p1"

    @pytest.mark.asyncio
    async def test_string_email_verified(self):
        transport = google_transport(profile_body=google_profile(email_verified="false"))
        client = GoogleOAuthClient(make_settings(), transport=transport)

        identity = await client.fetch_profile("tok1")

        assert identity.email_verified is False

    @pytest.mark.asyncio
    async def test_optional_fields_may_be_absent(self):
        transport = google_transport(profile_body={"sub": "g2", "email": "b@x.com", "email_verified": True})
        client = GoogleOAuthClient(make_settings(), transport=transport)

        identity = await client.fetch_profile("tok1")

        assert identity.display_name is None
        assert identity.picture_url is None

    @pytest.mark.asyncio
    async def test_unauthorized_raises(self):
        transport = google_transport(profile_status=401, profile_body={"error": "invalid_token"})
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(ProfileFetchError) as exc_info:
            await client.fetch_profile("expired")

        assert exc_info.value.error_code == "profile_fetch_failed"

    @pytest.mark.asyncio
    async def test_missing_subject_raises(self):
        transport = google_transport(profile_body={"email": "a@x.com", "email_verified": True})
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(ProfileFetchError):
            await client.fetch_profile("tok1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["x"], "profile", 42])
    async def test_non_object_body_raises(self, body):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(ProfileFetchError):
            await client.fetch_profile("tok1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("subject", [None, "", "   "])
    async def test_empty_subject_raises(self, subject):
        transport = google_transport(profile_body=google_profile(sub=subject))
        client = GoogleOAuthClient(make_settings(), transport=transport)

        with pytest.raises(ProfileFetchError):
            await client.fetch_profile("tok1")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = GoogleOAuthClient(make_settings(), transport=httpx.MockTransport(handler))

        with pytest.raises(ProfileFetchError):
            await client.fetch_profile("tok1")
