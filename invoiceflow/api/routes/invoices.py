"""Invoice processing, listing and approval routes."""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from invoiceflow.api import metrics
from invoiceflow.api.dependencies import ServiceContainer, get_db, get_services
from invoiceflow.api.schemas import (
    InvoiceListResponse,
    InvoiceOut,
    InvoiceResponse,
    ProcessInvoiceRequest,
    ProcessInvoiceResponse,
    UpdateInvoiceRequest,
)
from invoiceflow.db import crud
from invoiceflow.db.models import InvoiceStatus
from invoiceflow.extraction.base import InvoiceExtractionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/process", response_model=ProcessInvoiceResponse, response_model_exclude_none=True)
def process_invoice(
    body: ProcessInvoiceRequest,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> ProcessInvoiceResponse:
    """Extract an invoice from email content and/or attachments and store it.

    The invoice is created with status ``pending``. Extraction failures are
    returned as 500 with the extraction error message.
    """
    references = [attachment.to_reference() for attachment in body.attachments]
    logger.info(
        f"Invoice processing requested: email_id={body.email_id}, "
        f"has_content={bool(body.content)}, attachments={len(references)}"
    )

    start_time = time.time()
    try:
        extraction = services.extractor.extract(body.content, references)
    except InvoiceExtractionError:
        metrics.extraction_requests_total.labels(status="failed").inc()
        metrics.invoices_processed_total.labels(status="failed").inc()
        raise
    finally:
        metrics.extraction_processing_duration_seconds.observe(time.time() - start_time)

    metrics.extraction_requests_total.labels(status="success").inc()
    logger.info(f"Extraction completed for vendor {extraction.vendor.name}")

    try:
        invoice = crud.create_invoice(
            db, extraction, email_id=body.email_id, attachments=references
        )
    except Exception:
        metrics.invoices_processed_total.labels(status="failed").inc()
        raise

    metrics.invoices_processed_total.labels(status="success").inc()
    logger.info(f"Invoice created: {invoice.id}")
    return ProcessInvoiceResponse(invoice=InvoiceOut.from_row(invoice), extraction=extraction)


@router.get("", response_model=InvoiceListResponse, response_model_exclude_none=True)
def list_invoices(
    status_filter: InvoiceStatus | None = Query(None, alias="status"),  # noqa: B008
    vendor: str | None = Query(None, max_length=256),  # noqa: B008
    q: str | None = Query(None, max_length=256),  # noqa: B008
    cursor: str | None = Query(None),  # noqa: B008
    limit: int = Query(crud.DEFAULT_PAGE_SIZE, ge=1, le=crud.MAX_PAGE_SIZE),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> InvoiceListResponse:
    """List invoices newest first.

    Pass ``nextCursor`` from a previous page as ``cursor`` to continue.
    """
    page = crud.list_invoices(
        db, status=status_filter, vendor=vendor, q=q, cursor=cursor, limit=limit
    )
    logger.info(f"Listed {len(page.invoices)} invoices (more={page.next_cursor is not None})")
    return InvoiceListResponse(
        invoices=[InvoiceOut.from_row(invoice) for invoice in page.invoices],
        next_cursor=page.next_cursor,
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse, response_model_exclude_none=True)
def get_invoice(invoice_id: str, db: Session = Depends(get_db)) -> InvoiceResponse:  # noqa: B008
    invoice = crud.get_invoice(db, invoice_id)
    if invoice is None:
        logger.info(f"Invoice not found: {invoice_id}")
        raise HTTPException(status_code=404, detail="Invoice not found")

    logger.info(f"Invoice fetched: {invoice_id}")
    return InvoiceResponse(invoice=InvoiceOut.from_row(invoice))


@router.patch("/{invoice_id}", response_model=InvoiceResponse, response_model_exclude_none=True)
def update_invoice(
    invoice_id: str,
    body: UpdateInvoiceRequest,
    db: Session = Depends(get_db),  # noqa: B008
) -> InvoiceResponse:
    """Update the approval status and/or approver notes of an invoice."""
    invoice = crud.update_invoice(db, invoice_id, body.changes())
    if invoice is None:
        logger.info(f"Invoice not found: {invoice_id}")
        raise HTTPException(status_code=404, detail="Invoice not found")

    logger.info(f"Invoice updated: {invoice_id} status={invoice.status.value}")
    return InvoiceResponse(invoice=InvoiceOut.from_row(invoice))
