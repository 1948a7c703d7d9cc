"""PDF attachment text extraction and prompt chunking.

Models receive PDF invoices as text: the PDF is downloaded from storage,
its text extracted with pdfplumber, cleaned up, and split into bounded
chunks so a long document cannot blow up the prompt.

Only text-based PDFs produce output; scanned PDFs yield empty text.
"""

import io
import logging
import re
from dataclasses import dataclass, field

import httpx
import pdfplumber

from invoiceflow.extraction.base import InvoiceExtractionError

logger = logging.getLogger(__name__)

_HORIZONTAL_WHITESPACE = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass
class PdfTextChunks:
    """Chunked PDF text ready to be sent as prompt turns."""

    chunks: list[str] = field(default_factory=list)
    truncated: bool = False
    used_length: int = 0
    total_length: int = 0


def download_attachment(
    client: httpx.Client, url: str, display_name: str, timeout: float
) -> bytes:
    """Download attachment bytes from a presigned URL.

    Raises:
        InvoiceExtractionError: On transport errors or non-2xx responses
    """
    try:
        response = client.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        raise InvoiceExtractionError(
            f'Failed to download PDF attachment "{display_name}".', cause=e
        ) from e

    if not response.is_success:
        raise InvoiceExtractionError(
            f'Failed to download PDF attachment "{display_name}": '
            f"{response.status_code} {response.reason_phrase}"
        )
    return response.content


def extract_pdf_text(data: bytes) -> str:
    """Extract the text of every page of a PDF.

    Args:
        data: Raw PDF bytes

    Returns:
        Page texts joined by newlines (empty for image-only PDFs)
    """
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    logger.debug(f"Extracted text from {len(pages)} PDF pages")
    return "\n".join(pages)


def normalize_pdf_text(text: str) -> str:
    """Collapse whitespace noise left over from PDF text extraction."""
    text = text.replace("\r\n", "\n").replace("\x00", "")
    text = _HORIZONTAL_WHITESPACE.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def chunk_pdf_text(text: str, chunk_size: int, max_chunks: int) -> PdfTextChunks:
    """Normalize and split PDF text into at most max_chunks chunks.

    Text beyond chunk_size * max_chunks characters is dropped and the result
    is flagged as truncated.
    """
    normalized = normalize_pdf_text(text)
    total_length = len(normalized)
    if total_length == 0:
        return PdfTextChunks()

    kept = normalized[: chunk_size * max_chunks]
    chunks = []
    for start in range(0, len(kept), chunk_size):
        chunk = kept[start : start + chunk_size].strip()
        if chunk:
            chunks.append(chunk)

    return PdfTextChunks(
        chunks=chunks,
        truncated=len(kept) < total_length,
        used_length=len(kept),
        total_length=total_length,
    )
