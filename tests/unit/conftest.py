"""Fixtures for API tests: an application wired to in-memory services."""

import json
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from invoiceflow.api.main import create_app
from invoiceflow.db.session import Database
from invoiceflow.extraction.base import ModelProvider, UserTurn
from invoiceflow.gmail.client import GmailClient
from invoiceflow.shared.config import Settings
from invoiceflow.storage.service import PresignedUrlResult, StorageResult, StorageService

AUTH_SECRET = "api-test-secret-with-enough-length"


class StubModelProvider(ModelProvider):
    """Model provider returning a fixed response."""

    def __init__(self, settings: Settings, response: str) -> None:
        super().__init__(settings)
        self.response = response
        self.calls: list[list[UserTurn]] = []

    @property
    def provider_name(self) -> str:
        return "stub"

    def is_available(self) -> bool:
        return True

    def complete_json(self, system_prompt: str, user_turns: list[UserTurn]) -> str:
        self.calls.append(user_turns)
        return self.response


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        auth_secret=AUTH_SECRET,
        app_url="https://app.example.com",
        google_oauth_client_id="client-id",
        google_oauth_client_secret="client-secret",
    )


@pytest.fixture
def model_provider(api_settings: Settings) -> StubModelProvider:
    response = {
        "vendor": {"name": "Acme Corp"},
        "invoice": {"number": "INV-7", "date": "2024-01-15", "total": "$42.00"},
        "lineItems": [{"description": "Widget", "quantity": 2, "unit_price": "21.00"}],
    }
    return StubModelProvider(api_settings, json.dumps(response))


@pytest.fixture
def storage() -> MagicMock:
    """Available storage backend that accepts every request."""
    mock = MagicMock(spec=StorageService)
    mock.is_available.return_value = True
    mock.health_check.return_value = True
    mock.get_presigned_upload_url.return_value = PresignedUrlResult(
        success=True,
        url="https://storage.test/invoice-attachments",
        fields={"policy": "eyJwb2xpY3kiOiB0cnVlfQ", "x-amz-signature": "sig"},
        expires_in_seconds=900,
    )
    mock.get_presigned_url.side_effect = lambda key, expires_seconds=None: PresignedUrlResult(
        success=True, url=f"https://storage.test/{key}?sig=1", expires_in_seconds=600
    )
    mock.upload_bytes.side_effect = lambda data, object_name, content_type: StorageResult(
        success=True, object_name=object_name, bucket="invoice-attachments", size=len(data)
    )
    return mock


@pytest.fixture
def gmail_client() -> MagicMock:
    mock = MagicMock(spec=GmailClient)
    mock.is_available.return_value = True
    mock.authorization_url.side_effect = lambda state: (
        f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"
    )
    return mock


@pytest.fixture
def app(
    api_settings: Settings,
    database: Database,
    storage: MagicMock,
    model_provider: StubModelProvider,
    gmail_client: MagicMock,
) -> FastAPI:
    return create_app(
        api_settings,
        database=database,
        storage=storage,
        model_provider=model_provider,
        gmail_client=gmail_client,
    )


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers(app: FastAPI) -> dict[str, str]:
    token = app.state.services.session_service.issue_token("user-1", email="ap@example.com")
    return {"Authorization": f"Bearer {token}"}
