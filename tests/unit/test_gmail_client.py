"""Unit tests for the Google OAuth2 / Gmail REST client.

HTTP traffic is served by httpx.MockTransport; nothing leaves the process.
"""

import time
from collections.abc import Callable
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from invoiceflow.gmail.client import (
    GMAIL_API_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    GmailApiError,
    GmailClient,
)
from invoiceflow.shared.config import Settings

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_url="https://app.example.com/",
        google_oauth_client_id="client-id",
        google_oauth_client_secret="client-secret",
    )


def _client(settings: Settings, handler: Handler) -> GmailClient:
    return GmailClient(settings, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_is_available(settings: Settings) -> None:
    assert GmailClient(settings).is_available() is True
    assert GmailClient(Settings(google_oauth_client_id="only-id")).is_available() is False


def test_authorization_url(settings: Settings) -> None:
    url = GmailClient(settings).authorization_url("state-123")

    parts = urlsplit(url)
    params = parse_qs(parts.query)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
        "https://accounts.google.com/o/oauth2/v2/auth"
    )
    assert params["client_id"] == ["client-id"]
    assert params["redirect_uri"] == [
        "https://app.example.com/integrations/gmail/oauth/callback"
    ]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert params["state"] == ["state-123"]
    assert "gmail.readonly" in params["scope"][0]


def test_exchange_code(settings: Settings) -> None:
    """Test that the code exchange posts client credentials and computes expiry."""
    captured: dict[str, list[str]] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == GOOGLE_TOKEN_URL
        captured.update(parse_qs(request.content.decode()))
        return httpx.Response(
            200,
            json={
                "access_token": "at",
                "refresh_token": "rt",
                "scope": "gmail.readonly",
                "expires_in": 3600,
            },
        )

    before = int(time.time() * 1000)
    tokens = _client(settings, handler).exchange_code("auth-code")

    assert captured["grant_type"] == ["authorization_code"]
    assert captured["code"] == ["auth-code"]
    assert captured["client_secret"] == ["client-secret"]
    assert tokens.access_token == "at"
    assert tokens.refresh_token == "rt"
    assert tokens.expires_at is not None
    assert tokens.expires_at >= before + 3600 * 1000


def test_refresh_without_expiry(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert parse_qs(request.content.decode())["grant_type"] == ["refresh_token"]
        return httpx.Response(200, json={"access_token": "fresh"})

    tokens = _client(settings, handler).refresh_access_token("rt")

    assert tokens.access_token == "fresh"
    assert tokens.refresh_token is None
    assert tokens.expires_at is None


def test_fetch_primary_email(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == GOOGLE_USERINFO_URL
        assert request.headers["Authorization"] == "Bearer at"
        return httpx.Response(200, json={"email": "ap@example.com"})

    assert _client(settings, handler).fetch_primary_email("at") == "ap@example.com"


def test_fetch_primary_email_missing(settings: Settings) -> None:
    client = _client(settings, lambda request: httpx.Response(200, json={"id": "1"}))

    assert client.fetch_primary_email("at") is None


def test_list_message_ids(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/messages")
        assert request.url.params["q"] == "has:attachment"
        assert request.url.params["maxResults"] == "3"
        return httpx.Response(200, json={"messages": [{"id": "m1"}, {"id": "m2"}, {}]})

    client = _client(settings, handler)

    assert client.list_message_ids("at", "has:attachment", 3) == ["m1", "m2"]


def test_list_message_ids_empty_mailbox(settings: Settings) -> None:
    client = _client(settings, lambda request: httpx.Response(200, json={"resultSizeEstimate": 0}))

    assert client.list_message_ids("at", "q", 5) == []


def test_get_message(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url).startswith(f"{GMAIL_API_URL}/messages/m1")
        assert request.url.params["format"] == "full"
        return httpx.Response(200, json={"id": "m1"})

    assert _client(settings, handler).get_message("at", "m1") == {"id": "m1"}


def test_error_status_raises(settings: Settings) -> None:
    client = _client(settings, lambda request: httpx.Response(401, json={"error": "invalid"}))

    with pytest.raises(GmailApiError, match="401"):
        client.exchange_code("bad")


def test_transport_error_raises(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GmailApiError, match="connection refused"):
        _client(settings, handler).fetch_primary_email("at")


def test_close_releases_own_http_client(settings: Settings) -> None:
    client = GmailClient(settings)

    client.close()

    assert client._http.is_closed


def test_close_leaves_injected_http_client_open(settings: Settings) -> None:
    http_client = httpx.Client()
    client = GmailClient(settings, http_client=http_client)

    client.close()

    assert not http_client.is_closed
    http_client.close()
