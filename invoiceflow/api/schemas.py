"""Request and response models for the HTTP API.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

from invoiceflow.db.models import Attachment, Invoice, InvoiceLineItem, InvoiceStatus
from invoiceflow.extraction.base import AttachmentReference
from invoiceflow.extraction.schema import InvoiceExtraction

ALLOWED_ATTACHMENT_CONTENT_TYPES = frozenset(
    {"application/pdf", "image/png", "image/jpeg", "image/heic", "image/heif"}
)
MAX_UPLOAD_SIZE_BYTES = 25 * 1024 * 1024


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    error: str
    issues: list[dict[str, Any]] | None = None


# Attachments


class PresignRequest(ApiModel):
    filename: str = Field(..., min_length=1, max_length=256)
    content_type: str = Field(..., min_length=1, max_length=128)
    size: int | None = Field(None, gt=0, le=MAX_UPLOAD_SIZE_BYTES)

    @model_validator(mode="after")
    def check_content_type(self) -> "PresignRequest":
        if self.content_type not in ALLOWED_ATTACHMENT_CONTENT_TYPES:
            raise ValueError(f"Unsupported content type: {self.content_type}")
        return self


class PresignResponse(ApiModel):
    """Upload target: POST ``fields`` plus the file as multipart form data to ``upload_url``."""

    key: str
    upload_url: str
    method: str = "POST"
    fields: dict[str, str]
    expires_in: int
    max_size: int = MAX_UPLOAD_SIZE_BYTES


class UploadResponse(ApiModel):
    key: str
    filename: str
    content_type: str
    size: int
    url: str | None = None
    max_size: int = MAX_UPLOAD_SIZE_BYTES


# Invoices


class AttachmentInput(ApiModel):
    key: str = Field(..., min_length=3, max_length=512, pattern=r"^[a-zA-Z0-9/_\\.\-]+$")
    filename: str = Field(..., min_length=1, max_length=256)
    content_type: str = Field(..., min_length=1, max_length=128)
    size: int | None = Field(None, ge=0)

    def to_reference(self) -> AttachmentReference:
        return AttachmentReference(
            key=self.key,
            filename=self.filename,
            content_type=self.content_type,
            size=self.size,
        )


class ProcessInvoiceRequest(ApiModel):
    email_id: str | None = None
    content: str | None = None
    attachments: list[AttachmentInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_content_or_attachments(self) -> "ProcessInvoiceRequest":
        if not self.content and not self.attachments:
            raise ValueError("Either content or attachments must be provided")
        return self


class UpdateInvoiceRequest(ApiModel):
    status: InvoiceStatus | None = None
    approver_notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def require_one_field(self) -> "UpdateInvoiceRequest":
        if self.status is None and "approver_notes" not in self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields to apply; approver_notes may be explicitly cleared with null."""
        changes: dict[str, Any] = {}
        if self.status is not None:
            changes["status"] = self.status
        if "approver_notes" in self.model_fields_set:
            changes["approver_notes"] = self.approver_notes
        return changes


class VendorOut(ApiModel):
    name: str
    tax_id: str | None = None


class InvoiceHeaderOut(ApiModel):
    number: str
    date: str
    due_date: str | None = None
    currency: str
    subtotal: float | None = None
    tax_amount: float | None = None
    total_amount: float


class AssignmentOut(ApiModel):
    department: str | None = None
    employee: str | None = None
    cost_center: str | None = None


class LineItemOut(ApiModel):
    id: str
    description: str
    quantity: float
    unit_price: float
    amount: float
    category: str | None = None
    sort_order: int = 0

    @classmethod
    def from_row(cls, item: InvoiceLineItem) -> "LineItemOut":
        return cls(
            id=item.id,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            amount=item.amount,
            category=item.category,
            sort_order=item.sort_order or 0,
        )


class AttachmentOut(ApiModel):
    id: str
    filename: str
    mime_type: str
    size: int | None = None
    key: str

    @classmethod
    def from_row(cls, attachment: Attachment) -> "AttachmentOut":
        return cls(
            id=attachment.id,
            filename=attachment.filename,
            mime_type=attachment.mime_type,
            size=attachment.size,
            key=attachment.storage_key,
        )


class InvoiceOut(ApiModel):
    id: str
    email_id: str | None = None
    status: InvoiceStatus
    vendor: VendorOut
    invoice: InvoiceHeaderOut
    assignment: AssignmentOut
    approver_notes: str | None = None
    line_items: list[LineItemOut] = Field(default_factory=list)
    attachments: list[AttachmentOut] = Field(default_factory=list)
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, invoice: Invoice) -> "InvoiceOut":
        return cls(
            id=invoice.id,
            email_id=invoice.email_id,
            status=invoice.status,
            vendor=VendorOut(name=invoice.vendor_name, tax_id=invoice.vendor_tax_id),
            invoice=InvoiceHeaderOut(
                number=invoice.invoice_number,
                date=invoice.invoice_date,
                due_date=invoice.due_date,
                currency=invoice.currency,
                subtotal=invoice.subtotal,
                tax_amount=invoice.tax_amount,
                total_amount=invoice.total_amount,
            ),
            assignment=AssignmentOut(
                department=invoice.assignment_department,
                employee=invoice.assignment_employee,
                cost_center=invoice.assignment_cost_center,
            ),
            approver_notes=invoice.approver_notes,
            line_items=[LineItemOut.from_row(item) for item in invoice.line_items],
            attachments=[AttachmentOut.from_row(item) for item in invoice.attachments],
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
        )


class InvoiceResponse(ApiModel):
    invoice: InvoiceOut


class ProcessInvoiceResponse(ApiModel):
    invoice: InvoiceOut
    extraction: InvoiceExtraction


class InvoiceListResponse(ApiModel):
    invoices: list[InvoiceOut]
    next_cursor: str | None = None

    @model_serializer(mode="wrap")
    def _keep_next_cursor(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> dict[str, Any]:
        # nextCursor is null on the last page, even when None fields are excluded
        data = handler(self)
        data.setdefault("nextCursor" if info.by_alias else "next_cursor", self.next_cursor)
        return data


# Auth and Gmail


class GmailLinkResponse(ApiModel):
    authorization_url: str
    state: str
    expires_in: int = 900


class GmailCheckRequest(ApiModel):
    max_results: int | None = Field(None, gt=0, le=50)
    query: str | None = Field(None, max_length=512)


class GmailLinkedResponse(ApiModel):
    success: bool = True
    email: str
    scope: str | None = None
    expires_at: int | None = None
