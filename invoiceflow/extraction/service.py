"""Invoice extraction orchestration.

Turns free-text email content and stored attachments into a validated
``InvoiceExtraction``:

1. Resolve each attachment key to a time-limited download URL
2. Build one user turn per content unit (email text, image, PDF text chunk)
3. Ask the model for JSON
4. Normalize the JSON, stamp the processing time and validate it

Every failure surfaces as ``InvoiceExtractionError``; there is no partial result.
"""

import json
import logging
from datetime import datetime, timezone

import httpx

from invoiceflow.extraction.base import (
    AttachmentReference,
    InvoiceExtractionError,
    ModelProvider,
    UserTurn,
)
from invoiceflow.extraction.normalize import normalize_extraction_payload
from invoiceflow.extraction.pdf_text import chunk_pdf_text, download_attachment, extract_pdf_text
from invoiceflow.extraction.schema import InvoiceExtraction, validate_extraction
from invoiceflow.shared.config import Settings
from invoiceflow.storage.service import StorageService

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are an expert invoice extraction system.

Return ONLY valid JSON. Do not wrap it in markdown code blocks.

Use this structure:
{
  "vendor": {"name": "", "taxId": "", "address": "", "email": "", "phone": ""},
  "invoice": {"number": "", "date": "YYYY-MM-DD", "dueDate": "YYYY-MM-DD",
              "currency": "USD", "subtotal": 0, "taxAmount": 0, "totalAmount": 0},
  "assignment": {"department": "", "employee": "", "costCenter": ""},
  "lineItems": [{"description": "", "quantity": 1, "unitPrice": 0, "amount": 0, "category": ""}],
  "aiEnhancements": {"confidence": 0.0, "suggestedCategories": []}
}

Guidelines:
- Extract vendor details from the invoice
- Return accurate monetary values as numbers
- Provide ISO 8601 dates (YYYY-MM-DD) when possible
- Include every line item with description, quantity, unit price, and total amount
- Suggest the most likely department or employee when available
- If information is missing, omit the field rather than guessing
""".strip()

SUPPORTED_IMAGE_CONTENT_TYPES = frozenset(
    {"image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp"}
)
PDF_CONTENT_TYPES = frozenset({"application/pdf"})


def normalize_content_type(content_type: str) -> str:
    """Strip parameters and normalize case: 'Application/PDF; x=y' -> 'application/pdf'."""
    return content_type.split(";")[0].strip().lower()


def _display_name(attachment: AttachmentReference) -> str:
    name = (attachment.filename or "").strip()
    return name or "attachment"


class InvoiceExtractor:
    """Extraction pipeline over a model provider and attachment storage."""

    def __init__(
        self,
        settings: Settings,
        model_provider: ModelProvider,
        storage: StorageService,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize extractor.

        Args:
            settings: Application settings
            model_provider: JSON-mode chat completion provider
            storage: Attachment storage used to resolve download URLs
            http_client: HTTP client for PDF downloads (created if omitted)
        """
        self.settings = settings
        self.model_provider = model_provider
        self.storage = storage
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(follow_redirects=True)

    def close(self) -> None:
        """Close the download client if this extractor created it."""
        if self._owns_http:
            self._http.close()

    def extract(
        self,
        content: str | None = None,
        attachments: list[AttachmentReference] | None = None,
    ) -> InvoiceExtraction:
        """Extract a validated invoice from email text and/or attachments.

        Args:
            content: Free-text email content
            attachments: Stored attachments to include

        Returns:
            Validated InvoiceExtraction

        Raises:
            InvoiceExtractionError: On any failure
        """
        try:
            user_turns = self.build_user_turns(content, attachments or [])
            raw = self.model_provider.complete_json(SYSTEM_PROMPT, user_turns)
            parsed = json.loads(raw)
            candidate = normalize_extraction_payload(parsed)
            extraction = validate_extraction(candidate, datetime.now(timezone.utc))
        except InvoiceExtractionError:
            raise
        except Exception as e:
            raise InvoiceExtractionError("Failed to extract invoice data", cause=e) from e

        logger.info(
            f"Extracted invoice {extraction.invoice.number} from {extraction.vendor.name} "
            f"with {len(extraction.line_items)} line items"
        )
        return extraction

    def build_user_turns(
        self, content: str | None, attachments: list[AttachmentReference]
    ) -> list[UserTurn]:
        """Build the ordered user turns for the model request.

        Raises:
            InvoiceExtractionError: For unsupported types, unresolvable keys,
                failed downloads and PDFs without text
        """
        turns: list[UserTurn] = []
        if content:
            turns.append([{"type": "text", "text": f"Email content:\n{content}"}])

        for attachment in attachments:
            content_type = normalize_content_type(attachment.content_type)
            display_name = _display_name(attachment)

            if content_type in SUPPORTED_IMAGE_CONTENT_TYPES:
                url = self._resolve_download_url(attachment)
                turns.append(
                    [
                        {
                            "type": "text",
                            "text": f'Invoice attachment "{display_name}" ({content_type})',
                        },
                        {"type": "image_url", "image_url": {"url": url}},
                    ]
                )
            elif content_type in PDF_CONTENT_TYPES:
                turns.extend(self._pdf_turns(attachment, display_name))
            else:
                raise InvoiceExtractionError(
                    f'Unsupported attachment content type "{attachment.content_type}". '
                    "Supported types: PDF, PNG, JPEG, GIF, WEBP."
                )

        return turns

    def _resolve_download_url(self, attachment: AttachmentReference) -> str:
        result = self.storage.get_presigned_url(
            attachment.key, expires_seconds=self.settings.presign_download_ttl_seconds
        )
        if not result.success or not result.url:
            raise InvoiceExtractionError(
                f'Failed to resolve attachment "{_display_name(attachment)}": {result.error}'
            )
        return result.url

    def _pdf_turns(self, attachment: AttachmentReference, display_name: str) -> list[UserTurn]:
        url = self._resolve_download_url(attachment)
        data = download_attachment(
            self._http, url, display_name, self.settings.attachment_download_timeout_seconds
        )

        try:
            text = extract_pdf_text(data)
        except Exception as e:
            raise InvoiceExtractionError(
                f'Failed to extract text from PDF attachment "{display_name}".', cause=e
            ) from e

        result = chunk_pdf_text(
            text, self.settings.pdf_text_chunk_size, self.settings.pdf_text_max_chunks
        )
        if not result.chunks:
            raise InvoiceExtractionError(
                f'No extractable text found in PDF attachment "{display_name}".'
            )

        total = len(result.chunks)
        turns: list[UserTurn] = []
        for index, chunk in enumerate(result.chunks):
            note = ""
            if result.truncated and index == total - 1:
                note = (
                    f"\n\n[Note: truncated to the first {result.used_length} "
                    f"of {result.total_length} characters.]"
                )
            turns.append(
                [
                    {
                        "type": "text",
                        "text": f'Extracted text from PDF attachment "{display_name}" '
                        f"(part {index + 1} of {total}){note}\n\n{chunk}",
                    }
                ]
            )
        return turns
