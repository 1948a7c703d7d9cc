import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from invoiceflow.db.cursor import decode_cursor, encode_cursor
from invoiceflow.db.models import (
    Attachment,
    GmailCredential,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    current_millis,
)
from invoiceflow.extraction.base import AttachmentReference
from invoiceflow.extraction.schema import InvoiceExtraction

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

UPDATABLE_FIELDS = frozenset({"status", "approver_notes"})


class InvoicePersistenceError(Exception):
    """The invoice transaction committed but the invoice could not be read back."""


@dataclass
class InvoicePage:
    invoices: list[Invoice] = field(default_factory=list)
    next_cursor: str | None = None


def new_id() -> str:
    return str(uuid.uuid4())


def _with_relations():
    return (selectinload(Invoice.line_items), selectinload(Invoice.attachments))


def get_invoice(db: Session, invoice_id: str) -> Invoice | None:
    stmt = (
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .options(*_with_relations())
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).one_or_none()


def create_invoice(
    db: Session,
    extraction: InvoiceExtraction,
    *,
    email_id: str | None = None,
    attachments: list[AttachmentReference] | None = None,
    now: int | None = None,
) -> Invoice:
    """Persist an extraction as an invoice with its line items and attachments.

    All rows are written in one transaction; on any error nothing is kept.

    Raises:
        InvoicePersistenceError: If the committed invoice cannot be re-fetched
    """
    now = now if now is not None else current_millis()
    invoice_id = new_id()
    header = extraction.invoice
    assignment = extraction.assignment

    try:
        db.add(
            Invoice(
                id=invoice_id,
                email_id=email_id,
                status=InvoiceStatus.PENDING,
                vendor_name=extraction.vendor.name,
                vendor_tax_id=extraction.vendor.tax_id,
                invoice_number=header.number,
                invoice_date=header.date,
                due_date=header.due_date,
                currency=header.currency,
                subtotal=header.subtotal,
                tax_amount=header.tax_amount,
                total_amount=header.total_amount,
                assignment_department=assignment.department,
                assignment_employee=assignment.employee,
                assignment_cost_center=assignment.cost_center,
                created_at=now,
                updated_at=now,
            )
        )
        db.flush()

        db.add_all(
            InvoiceLineItem(
                id=new_id(),
                invoice_id=invoice_id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=item.amount,
                category=item.category,
                sort_order=index,
                created_at=now,
            )
            for index, item in enumerate(extraction.line_items)
        )
        db.add_all(
            Attachment(
                id=new_id(),
                invoice_id=invoice_id,
                storage_key=attachment.key,
                filename=attachment.filename or "attachment",
                mime_type=attachment.content_type,
                size=attachment.size,
                created_at=now,
            )
            for attachment in attachments or []
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    invoice = get_invoice(db, invoice_id)
    if invoice is None:
        logger.error(f"Invoice {invoice_id} committed but not found on re-fetch")
        raise InvoicePersistenceError(f"Invoice {invoice_id} could not be read back")
    return invoice


def list_invoices(
    db: Session,
    *,
    status: InvoiceStatus | None = None,
    vendor: str | None = None,
    q: str | None = None,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> InvoicePage:
    """List invoices newest first with keyset pagination.

    A cursor that cannot be decoded is ignored and the first page returned.
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    conditions = []

    if status is not None:
        conditions.append(Invoice.status == status)
    if vendor:
        conditions.append(Invoice.vendor_name.icontains(vendor, autoescape=True))
    if q:
        conditions.append(
            or_(
                Invoice.vendor_name.icontains(q, autoescape=True),
                Invoice.invoice_number.icontains(q, autoescape=True),
            )
        )
    if cursor:
        position = decode_cursor(cursor)
        if position is None:
            logger.info("Ignoring malformed invoice cursor")
        else:
            conditions.append(
                or_(
                    Invoice.created_at < position.created_at,
                    and_(Invoice.created_at == position.created_at, Invoice.id < position.id),
                )
            )

    stmt = (
        select(Invoice)
        .where(*conditions)
        .options(*_with_relations())
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit + 1)
    )
    rows = list(db.scalars(stmt))

    next_cursor = None
    if len(rows) > limit:
        rows.pop()
        # The last row on this page is the exclusive upper bound of the next one
        last = rows[-1]
        next_cursor = encode_cursor(last.created_at, last.id)

    return InvoicePage(invoices=rows, next_cursor=next_cursor)


def update_invoice(db: Session, invoice_id: str, changes: dict[str, Any]) -> Invoice | None:
    """Apply status/approver notes changes.

    Returns:
        The updated invoice, or None if no invoice has this id
    """
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        return None

    for name, value in changes.items():
        if name not in UPDATABLE_FIELDS:
            raise ValueError(f"Field cannot be updated: {name}")
        setattr(invoice, name, value)
    invoice.updated_at = current_millis()
    db.commit()

    return get_invoice(db, invoice_id)


def get_gmail_credential(db: Session, user_id: str) -> GmailCredential | None:
    return db.scalars(
        select(GmailCredential).where(GmailCredential.user_id == user_id)
    ).one_or_none()


def upsert_gmail_credential(
    db: Session,
    *,
    user_id: str,
    email: str,
    access_token: str | None,
    refresh_token: str,
    scope: str | None,
    expires_at: int | None,
) -> GmailCredential:
    credential = get_gmail_credential(db, user_id)
    if credential is None:
        credential = GmailCredential(id=new_id(), user_id=user_id)
        db.add(credential)

    credential.google_account_email = email
    credential.access_token = access_token
    credential.refresh_token = refresh_token
    credential.scope = scope
    credential.expires_at = expires_at
    credential.updated_at = current_millis()
    db.commit()
    return credential


def update_gmail_tokens(
    db: Session,
    credential: GmailCredential,
    *,
    access_token: str | None,
    scope: str | None,
    expires_at: int | None,
) -> GmailCredential:
    credential.access_token = access_token
    credential.scope = scope
    credential.expires_at = expires_at
    credential.updated_at = current_millis()
    db.commit()
    return credential
