"""Unit tests for model provider factory.

Tests cover:
- Provider registry lookups
- Factory function provider creation
- Configuration-based selection
- Error handling for unknown providers
"""

import logging

import pytest
from pydantic import ValidationError

from invoiceflow.extraction.base import ModelProvider, UserTurn
from invoiceflow.extraction.factory import ProviderRegistry, create_model_provider
from invoiceflow.extraction.openai_provider import OpenAIModelProvider
from invoiceflow.shared.config import Settings


def test_provider_registry_default_providers() -> None:
    """Test that registry contains default providers."""
    assert "openai" in ProviderRegistry.list_providers()


def test_provider_registry_get_openai() -> None:
    assert ProviderRegistry.get_provider_class("openai") == OpenAIModelProvider


def test_provider_registry_unknown_provider() -> None:
    """Test that unknown provider raises ValueError listing the available ones."""
    with pytest.raises(ValueError, match="Unknown model provider") as exc_info:
        ProviderRegistry.get_provider_class("nonexistent")

    assert "Available providers" in str(exc_info.value)
    assert "openai" in str(exc_info.value)


def test_provider_registry_register_new_provider() -> None:
    """Test registering a new provider."""

    class TestProvider(ModelProvider):
        def complete_json(self, system_prompt: str, user_turns: list[UserTurn]) -> str:
            return "{}"

        def is_available(self) -> bool:
            return True

        @property
        def provider_name(self) -> str:
            return "test"

    ProviderRegistry.register("test", TestProvider)
    try:
        assert "test" in ProviderRegistry.list_providers()
        assert ProviderRegistry.get_provider_class("test") == TestProvider
    finally:
        del ProviderRegistry._providers["test"]


def test_create_model_provider_default() -> None:
    """Test factory creates OpenAI provider by default."""
    provider = create_model_provider(Settings(_env_file=None))  # type: ignore[call-arg]

    assert isinstance(provider, OpenAIModelProvider)
    assert provider.provider_name == "openai"


def test_create_model_provider_logs_creation(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO):
        create_model_provider(Settings(_env_file=None))  # type: ignore[call-arg]

    assert "Created model provider: openai" in caplog.text


def test_create_model_provider_warns_if_unavailable(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that factory warns when the API key is missing."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with caplog.at_level(logging.WARNING):
        provider = create_model_provider(Settings(_env_file=None))  # type: ignore[call-arg]

    assert provider.is_available() is False
    assert "not fully available" in caplog.text


def test_invalid_provider_rejected_by_settings() -> None:
    """Invalid provider names are caught by settings validation."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, model_provider="invalid")  # type: ignore[call-arg, arg-type]
