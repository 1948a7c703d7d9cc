"""Unit tests for the OpenAI model provider.

The OpenAI client is replaced with a MagicMock; no network calls are made.
"""

from unittest.mock import MagicMock

import pytest

from invoiceflow.extraction.base import InvoiceExtractionError
from invoiceflow.extraction.openai_provider import OpenAIModelProvider
from invoiceflow.shared.config import Settings


def _completion(content: object) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.chat.completions.create.return_value = _completion('{"vendor": {"name": "Acme"}}')
    return mock


def test_provider_name() -> None:
    assert OpenAIModelProvider(Settings(), client=MagicMock()).provider_name == "openai"


def test_is_available_with_injected_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    assert OpenAIModelProvider(Settings(), client=MagicMock()).is_available() is True
    assert OpenAIModelProvider(Settings()).is_available() is False


def test_complete_json_request(client: MagicMock) -> None:
    """Test that JSON mode, model and temperature are passed through."""
    settings = Settings(openai_model="gpt-4o", openai_temperature=0.2)
    provider = OpenAIModelProvider(settings, client=client)
    turns = [[{"type": "text", "text": "Email content:\nhello"}]]

    result = provider.complete_json("system prompt", turns)

    assert result == '{"vendor": {"name": "Acme"}}'
    client.chat.completions.create.assert_called_once_with(
        model="gpt-4o",
        temperature=0.2,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": "system prompt"},
            {"role": "user", "content": turns[0]},
        ],
    )


@pytest.mark.parametrize("content", [None, ""])
def test_empty_content_raises(client: MagicMock, content: object) -> None:
    client.chat.completions.create.return_value = _completion(content)
    provider = OpenAIModelProvider(Settings(), client=client)

    with pytest.raises(InvoiceExtractionError, match="empty response"):
        provider.complete_json("system", [])


def test_no_choices_raises(client: MagicMock) -> None:
    client.chat.completions.create.return_value = MagicMock(choices=[])
    provider = OpenAIModelProvider(Settings(), client=client)

    with pytest.raises(InvoiceExtractionError, match="empty response"):
        provider.complete_json("system", [])


def test_non_text_content_raises(client: MagicMock) -> None:
    client.chat.completions.create.return_value = _completion([{"type": "image"}])
    provider = OpenAIModelProvider(Settings(), client=client)

    with pytest.raises(InvoiceExtractionError, match="textual content"):
        provider.complete_json("system", [])


def test_missing_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    provider = OpenAIModelProvider(Settings())

    with pytest.raises(InvoiceExtractionError, match="OPENAI_API_KEY"):
        provider.complete_json("system", [])


def test_api_errors_propagate(client: MagicMock) -> None:
    """Test that failures are not retried."""
    client.chat.completions.create.side_effect = RuntimeError("timeout")
    provider = OpenAIModelProvider(Settings(), client=client)

    with pytest.raises(RuntimeError, match="timeout"):
        provider.complete_json("system", [])

    assert client.chat.completions.create.call_count == 1
