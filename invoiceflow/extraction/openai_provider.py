"""OpenAI-based model provider for invoice extraction.

Uses the OpenAI chat completions API in JSON mode. Image attachments are
passed as ``image_url`` content parts; everything else arrives as text.

Failures are not retried: a failed or slow call propagates to the caller.
"""

import logging
import os
from typing import Any

from openai import OpenAI

from invoiceflow.extraction.base import InvoiceExtractionError, ModelProvider, UserTurn
from invoiceflow.shared.config import Settings

logger = logging.getLogger(__name__)


class OpenAIModelProvider(ModelProvider):
    """OpenAI chat completions provider.

    Requires OPENAI_API_KEY environment variable unless a client is injected.
    """

    def __init__(self, settings: Settings, client: OpenAI | None = None) -> None:
        """Initialize OpenAI model provider.

        Args:
            settings: Application settings
            client: Preconfigured OpenAI client (created lazily if omitted)
        """
        super().__init__(settings)
        self._client = client

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if an OpenAI client can be built.

        Returns:
            True if a client was injected or OPENAI_API_KEY is set
        """
        return self._client is not None or os.getenv("OPENAI_API_KEY") is not None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise InvoiceExtractionError("OPENAI_API_KEY environment variable not set")
            self._client = OpenAI(api_key=api_key)
        return self._client

    def complete_json(self, system_prompt: str, user_turns: list[UserTurn]) -> str:
        """Request a JSON-mode completion from OpenAI.

        Args:
            system_prompt: Fixed system instruction
            user_turns: Ordered user turns

        Returns:
            Raw JSON text from the first choice

        Raises:
            InvoiceExtractionError: If the response has no textual content
        """
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": "user", "content": turn} for turn in user_turns)

        logger.info(
            f"Requesting {self.settings.openai_model} completion with {len(user_turns)} user turns"
        )
        response = self._get_client().chat.completions.create(  # type: ignore[call-overload]
            model=self.settings.openai_model,
            temperature=self.settings.openai_temperature,
            response_format={"type": "json_object"},
            messages=messages,
        )

        if not response.choices:
            raise InvoiceExtractionError("OpenAI returned an empty response")
        content = response.choices[0].message.content
        if not content:
            raise InvoiceExtractionError("OpenAI returned an empty response")
        if not isinstance(content, str):
            raise InvoiceExtractionError("OpenAI response did not include textual content")
        return content
