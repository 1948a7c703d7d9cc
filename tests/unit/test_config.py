"""Unit tests for configuration management."""

import os

import pytest
from pydantic import ValidationError

from invoiceflow.shared.config import Settings, get_settings


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings(_env_file=None)  # type: ignore[call-arg]

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "invoiceflow-api"
    assert settings.service_version == "0.1.0"
    assert settings.model_provider == "openai"
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.pdf_text_chunk_size == 4000
    assert settings.pdf_text_max_chunks == 5
    assert settings.storage_enabled is False
    assert settings.storage_bucket == "invoice-attachments"
    assert settings.presign_upload_ttl_seconds == 900
    assert settings.presign_download_ttl_seconds == 600
    assert settings.auth_secret == ""


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_DATABASE_URL"] = "postgresql+psycopg://user:pw@db:5432/invoices"
    os.environ["APP_PDF_TEXT_MAX_CHUNKS"] = "3"

    settings = Settings(_env_file=None)  # type: ignore[call-arg]

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.database_url == "postgresql+psycopg://user:pw@db:5432/invoices"
    assert settings.pdf_text_max_chunks == 3


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings(_env_file=None)  # type: ignore[call-arg]

    assert settings.log_level == "DEBUG"


def test_unsupported_database_url_rejected() -> None:
    """Test that non SQLite/PostgreSQL URLs are rejected."""
    with pytest.raises(ValidationError, match="Unsupported database URL"):
        Settings(database_url="mysql://localhost/invoices")


def test_gmail_redirect_uri_derived_from_app_url() -> None:
    """Test the OAuth callback default."""
    settings = Settings(app_url="https://invoices.example.com/")

    assert settings.gmail_redirect_uri == (
        "https://invoices.example.com/integrations/gmail/oauth/callback"
    )


def test_gmail_redirect_uri_override() -> None:
    settings = Settings(google_oauth_redirect_uri="https://api.example.com/cb")

    assert settings.gmail_redirect_uri == "https://api.example.com/cb"


def test_get_settings_factory(clean_env: None) -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
