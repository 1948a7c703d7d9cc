"""Invoice extraction models.

Strict shape for the structured data produced by the extraction pipeline.
Candidates produced by ``normalize.normalize_extraction_payload`` are checked
against these models before anything is persisted.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class ExtractionModel(BaseModel):
    """Base model using camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VendorInfo(ExtractionModel):
    """Invoice issuer."""

    name: str = Field(..., min_length=1, description="Vendor company name")
    tax_id: str | None = Field(None, description="VAT / tax identification number")
    address: str | None = None
    email: EmailStr | None = None
    phone: str | None = None


class InvoiceHeader(ExtractionModel):
    """Invoice-level identifiers and totals."""

    number: str = Field(..., min_length=1, description="Invoice number")
    date: str = Field(..., min_length=1, description="Issue date (ISO 8601)")
    due_date: str | None = Field(None, description="Payment due date (ISO 8601)")
    currency: str = Field("USD", description="Currency code (ISO 4217)")
    subtotal: float | None = Field(None, ge=0, description="Subtotal before tax")
    tax_amount: float | None = Field(None, ge=0, description="Tax amount")
    total_amount: float = Field(..., ge=0, description="Total amount including tax")


class Assignment(ExtractionModel):
    """Suggested internal owner of the invoice."""

    department: str | None = None
    employee: str | None = None
    cost_center: str | None = None


class LineItem(ExtractionModel):
    """Single invoice line."""

    description: str
    quantity: float = Field(1, ge=0)
    unit_price: float = Field(..., ge=0)
    amount: float = Field(..., ge=0, description="Line total")
    category: str | None = None


class AIEnhancements(ExtractionModel):
    """Metadata about the extraction itself."""

    confidence: float | None = Field(
        None, ge=0, le=1, description="Overall extraction confidence (0-1)"
    )
    suggested_categories: list[str] | None = None
    processing_timestamp: str | None = None


class InvoiceExtraction(ExtractionModel):
    """Complete extraction result for one invoice."""

    vendor: VendorInfo
    invoice: InvoiceHeader
    assignment: Assignment = Field(default_factory=Assignment)
    line_items: list[LineItem] = Field(..., min_length=1)
    ai_enhancements: AIEnhancements | None = None


def validate_extraction(
    candidate: dict[str, Any], processed_at: datetime | None = None
) -> InvoiceExtraction:
    """Validate a normalized candidate, stamping the processing time.

    Whatever the model put in ``processingTimestamp`` is overwritten.

    Args:
        candidate: Output of normalize_extraction_payload
        processed_at: Processing time (defaults to now, UTC)

    Returns:
        Validated InvoiceExtraction

    Raises:
        pydantic.ValidationError: If required fields are missing or out of range
    """
    processed_at = processed_at or datetime.now(timezone.utc)
    enhancements = candidate.get("aiEnhancements")
    stamped = {
        **candidate,
        "aiEnhancements": {
            **(enhancements if isinstance(enhancements, dict) else {}),
            "processingTimestamp": processed_at.isoformat(),
        },
    }
    return InvoiceExtraction.model_validate(stamped)
