"""Abstract base class for hosted language model providers.

The extraction orchestrator only needs one capability from a model: a chat
completion that returns JSON text, given a system instruction and an ordered
list of (possibly multi-modal) user turns. Providers implement that contract
so the orchestrator can be tested with a stub and the backing API swapped.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from invoiceflow.shared.config import Settings

# One user turn: a list of OpenAI-style content parts, e.g.
# {"type": "text", "text": "..."} or {"type": "image_url", "image_url": {"url": "..."}}
UserTurn = list[dict[str, Any]]


class InvoiceExtractionError(Exception):
    """Raised when an invoice could not be extracted.

    Covers unsupported attachments, download failures, empty or unparsable
    model output and schema validation failures. The underlying exception is
    kept on ``cause`` for diagnostics and is never shown to API callers.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class AttachmentReference(BaseModel):
    """Stored attachment to include in an extraction request.

    Attributes:
        key: Object key in attachment storage
        filename: Original filename (used in prompts)
        content_type: Declared MIME type
        size: Size in bytes if known
    """

    key: str
    filename: str | None = None
    content_type: str
    size: int | None = None


class ModelProvider(ABC):
    """Abstract base class for JSON-mode chat completion providers.

    Example implementations:
    - OpenAIModelProvider: Uses OpenAI chat completions (cloud-based)
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def complete_json(self, system_prompt: str, user_turns: list[UserTurn]) -> str:
        """Run a chat completion and return the raw JSON text.

        Args:
            system_prompt: Fixed system instruction
            user_turns: Ordered user turns (text, images, PDF text chunks)

        Returns:
            JSON text produced by the model

        Raises:
            InvoiceExtractionError: If the model returned no usable content
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured (e.g., API key present).

        Returns:
            True if provider can be used, False otherwise
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'openai')
        """
