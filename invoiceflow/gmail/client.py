"""Google OAuth2 and Gmail REST client.

Thin wrapper over the HTTP endpoints used by the Gmail integration: the
OAuth consent URL, code exchange, token refresh, the userinfo endpoint and
the read-only Gmail messages API.

Based on Google's REST references:
https://developers.google.com/identity/protocols/oauth2/web-server
https://developers.google.com/gmail/api/reference/rest
"""

import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

GMAIL_SCOPES = (
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
)


class GmailApiError(Exception):
    """Google rejected a request or could not be reached."""


class OAuthTokens(BaseModel):
    """Token response from Google's token endpoint.

    Attributes:
        access_token: Short-lived access token
        refresh_token: Long-lived refresh token (only on first consent)
        scope: Space-separated granted scopes
        expires_at: Access token expiry in milliseconds since epoch
    """

    access_token: str | None = None
    refresh_token: str | None = None
    scope: str | None = None
    expires_at: int | None = None


class GmailClient:
    """Client for Google OAuth2 and the Gmail API."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=30.0)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def is_available(self) -> bool:
        return bool(
            self.settings.google_oauth_client_id and self.settings.google_oauth_client_secret
        )

    def authorization_url(self, state: str) -> str:
        """Build the consent URL requesting offline Gmail read access."""
        params = {
            "client_id": self.settings.google_oauth_client_id,
            "redirect_uri": self.settings.gmail_redirect_uri,
            "response_type": "code",
            "scope": " ".join(GMAIL_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.settings.gmail_redirect_uri,
            }
        )

    def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """Obtain a fresh access token."""
        logger.info("Refreshing Gmail access token")
        return self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def fetch_primary_email(self, access_token: str) -> str | None:
        """Return the email address of the authorizing Google account."""
        data = self._get(GOOGLE_USERINFO_URL, access_token)
        email = data.get("email")
        return email if isinstance(email, str) and email else None

    def list_message_ids(self, access_token: str, query: str, max_results: int) -> list[str]:
        data = self._get(
            f"{GMAIL_API_URL}/messages",
            access_token,
            params={"q": query, "maxResults": max_results},
        )
        return [ref["id"] for ref in data.get("messages", []) if ref.get("id")]

    def get_message(self, access_token: str, message_id: str) -> dict[str, Any]:
        return self._get(
            f"{GMAIL_API_URL}/messages/{message_id}", access_token, params={"format": "full"}
        )

    def _token_request(self, form: dict[str, str]) -> OAuthTokens:
        form = {
            **form,
            "client_id": self.settings.google_oauth_client_id,
            "client_secret": self.settings.google_oauth_client_secret,
        }
        data = self._send("POST", GOOGLE_TOKEN_URL, data=form)

        expires_in = data.get("expires_in")
        expires_at = (
            int(time.time() * 1000) + int(expires_in) * 1000 if expires_in is not None else None
        )
        return OAuthTokens(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            expires_at=expires_at,
        )

    def _get(
        self, url: str, access_token: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self._send(
            "GET", url, params=params, headers={"Authorization": f"Bearer {access_token}"}
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise GmailApiError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise GmailApiError(f"Google API returned {response.status_code} for {url}")
        result: dict[str, Any] = response.json()
        return result
