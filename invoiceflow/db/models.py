import enum
import time

from sqlalchemy import BigInteger, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def current_millis() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


class Base(DeclarativeBase):
    pass


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLARIFICATION_NEEDED = "clarification_needed"


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(
            InvoiceStatus,
            native_enum=False,
            length=32,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=InvoiceStatus.PENDING,
        index=True,
    )

    vendor_name: Mapped[str] = mapped_column(Text)
    vendor_tax_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_number: Mapped[str] = mapped_column(Text)
    invoice_date: Mapped[str] = mapped_column(Text)
    due_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(Text, default="USD")
    subtotal: Mapped[float | None] = mapped_column(Float, nullable=True)
    tax_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_amount: Mapped[float] = mapped_column(Float)

    assignment_department: Mapped[str | None] = mapped_column(Text, nullable=True)
    assignment_employee: Mapped[str | None] = mapped_column(Text, nullable=True)
    assignment_cost_center: Mapped[str | None] = mapped_column(Text, nullable=True)
    approver_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # (created_at, id) is the pagination sort key
    created_at: Mapped[int] = mapped_column(BigInteger, default=current_millis, index=True)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, default=current_millis, onupdate=current_millis
    )

    line_items: Mapped[list["InvoiceLineItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceLineItem.sort_order",
    )
    attachments: Mapped[list["Attachment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Attachment.created_at",
    )


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    invoice_id: Mapped[str] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), index=True
    )
    description: Mapped[str] = mapped_column(Text)
    quantity: Mapped[float] = mapped_column(Float, default=1)
    unit_price: Mapped[float] = mapped_column(Float)
    amount: Mapped[float] = mapped_column(Float)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[int] = mapped_column(BigInteger, default=current_millis)

    invoice: Mapped[Invoice] = relationship(back_populates="line_items")


class Attachment(Base):
    __tablename__ = "attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    invoice_id: Mapped[str] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), index=True
    )
    storage_key: Mapped[str] = mapped_column(String(512))
    filename: Mapped[str] = mapped_column(String(256))
    mime_type: Mapped[str] = mapped_column(String(128))
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=current_millis)

    invoice: Mapped[Invoice] = relationship(back_populates="attachments")


class GmailCredential(Base):
    __tablename__ = "gmail_credentials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, unique=True)
    google_account_email: Mapped[str] = mapped_column(String(320))
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str] = mapped_column(Text)
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=current_millis)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, default=current_millis, onupdate=current_millis
    )
