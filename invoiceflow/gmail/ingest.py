"""Discovery of invoice-bearing Gmail messages.

Lists recent messages for a linked account and summarizes the ones carrying
attachments the extraction pipeline can handle. Message bodies and
attachment bytes are not downloaded here.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from invoiceflow.db import crud
from invoiceflow.db.models import GmailCredential, current_millis
from invoiceflow.gmail.client import GmailClient

logger = logging.getLogger(__name__)

ACCESS_TOKEN_REFRESH_BUFFER_MS = 60_000

SUPPORTED_MIME_TYPES = frozenset(
    {"application/pdf", "image/png", "image/jpeg", "image/heic", "image/heif"}
)
SUPPORTED_EXTENSIONS = frozenset({"pdf", "png", "jpg", "jpeg", "heic", "heif"})

DEFAULT_QUERY = (
    "has:attachment (filename:pdf OR filename:png OR filename:jpg OR "
    "filename:jpeg OR filename:heic OR filename:heif)"
)


class GmailNotLinkedError(Exception):
    """The user has not linked a Gmail account."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GmailAttachmentSummary(_CamelModel):
    attachment_id: str
    filename: str
    mime_type: str
    size: int | None = None
    part_id: str | None = None


class GmailMessageSummary(_CamelModel):
    id: str
    thread_id: str | None = None
    history_id: str | None = None
    snippet: str | None = None
    subject: str | None = None
    from_: str | None = None
    received_at: int | None = None
    attachment_count: int = 0
    attachments: list[GmailAttachmentSummary] = []

    model_config = ConfigDict(
        alias_generator=lambda name: "from" if name == "from_" else to_camel(name),
        populate_by_name=True,
    )


def is_supported_attachment(mime_type: str | None, filename: str | None) -> bool:
    if mime_type and mime_type.lower() in SUPPORTED_MIME_TYPES:
        return True
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1].lower() in SUPPORTED_EXTENSIONS
    return False


def collect_attachments(part: dict[str, Any] | None) -> list[GmailAttachmentSummary]:
    """Walk a MIME part tree and collect supported attachments, depth first."""
    found: list[GmailAttachmentSummary] = []
    if not part:
        return found

    body = part.get("body") or {}
    if body.get("attachmentId") and is_supported_attachment(
        part.get("mimeType"), part.get("filename")
    ):
        found.append(
            GmailAttachmentSummary(
                attachment_id=body["attachmentId"],
                filename=part.get("filename") or "attachment",
                mime_type=part.get("mimeType") or "application/octet-stream",
                size=body.get("size"),
                part_id=part.get("partId"),
            )
        )

    for nested in part.get("parts") or []:
        found.extend(collect_attachments(nested))
    return found


def _header(payload: dict[str, Any] | None, name: str) -> str | None:
    for header in (payload or {}).get("headers") or []:
        if (header.get("name") or "").lower() == name.lower():
            value: str | None = header.get("value")
            return value
    return None


def summarize_message(message: dict[str, Any]) -> GmailMessageSummary:
    """Summarize a Gmail API message resource (format=full)."""
    try:
        received_at = int(message["internalDate"]) if message.get("internalDate") else None
    except (TypeError, ValueError):
        received_at = None

    payload = message.get("payload")
    attachments = collect_attachments(payload)
    return GmailMessageSummary(
        id=message.get("id") or "unknown",
        thread_id=message.get("threadId"),
        history_id=message.get("historyId"),
        snippet=message.get("snippet"),
        subject=_header(payload, "subject"),
        from_=_header(payload, "from"),
        received_at=received_at,
        attachment_count=len(attachments),
        attachments=attachments,
    )


def ensure_access_token(db: Session, client: GmailClient, credential: GmailCredential) -> str:
    """Return a usable access token, refreshing and persisting it when stale."""
    fresh = (
        credential.access_token
        and credential.expires_at
        and credential.expires_at - ACCESS_TOKEN_REFRESH_BUFFER_MS > current_millis()
    )
    if fresh:
        return credential.access_token  # type: ignore[return-value]

    tokens = client.refresh_access_token(credential.refresh_token)
    crud.update_gmail_tokens(
        db,
        credential,
        access_token=tokens.access_token or credential.access_token,
        scope=tokens.scope or credential.scope,
        expires_at=tokens.expires_at or credential.expires_at,
    )
    if not credential.access_token:
        raise ValueError("Google did not return an access token")
    return credential.access_token


def fetch_recent_invoice_messages(
    db: Session,
    client: GmailClient,
    user_id: str,
    max_results: int = 10,
    query: str | None = None,
) -> list[GmailMessageSummary]:
    """List recent messages of the linked account that carry invoice attachments.

    Raises:
        GmailNotLinkedError: If the user has no linked Gmail account
        GmailApiError: If Google rejects a request
    """
    credential = crud.get_gmail_credential(db, user_id)
    if credential is None:
        raise GmailNotLinkedError("Gmail account not linked")

    access_token = ensure_access_token(db, client, credential)
    message_ids = client.list_message_ids(access_token, query or DEFAULT_QUERY, max_results)

    summaries = []
    for message_id in message_ids:
        summary = summarize_message(client.get_message(access_token, message_id))
        if summary.attachments:
            summaries.append(summary)

    logger.info(f"Found {len(summaries)} of {len(message_ids)} Gmail messages with attachments")
    return summaries
