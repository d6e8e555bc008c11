"""Invoice models.

An invoice stores the charges it actually billed per bucket (pay amounts for
partial invoices) and the set of jobs it covers. Columns that do not apply to
the billing type are NULL.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric
from sqlalchemy import UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def _money(comment: Optional[str] = None):
    return mapped_column(Numeric(14, 2), nullable=True, comment=comment)


class Invoice(Base):
    """Persisted invoice (draft / proforma)."""
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    draft_view_id: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="D{account_id}{fy pair}{seq}, e.g. D1262700001"
    )
    proforma_view_id: Mapped[Optional[str]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        index=True,
        comment="P{account_id}{fy pair}{seq}, set when shifted to Proforma"
    )
    account_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    client_info_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    job_register_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("job_registers.id", ondelete="SET NULL"),
        nullable=True
    )

    # Type & Status
    billing_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Service, Reimbursement, Service_Reimbursement"
    )
    invoice_type: Mapped[str] = mapped_column(
        String(50),
        default="full_invoice",
        nullable=False,
        comment="full_invoice, partial_invoice"
    )
    invoice_status: Mapped[str] = mapped_column(
        String(20),
        default="Active",
        nullable=False,
        index=True,
        comment="Active, Delete"
    )
    invoice_stage_status: Mapped[str] = mapped_column(
        String(20),
        default="Draft",
        nullable=False,
        comment="Draft, Proforma, Canceled"
    )

    # Billed charges
    professional_charges: Mapped[Optional[Decimal]] = _money()
    registration_other_charges: Mapped[Optional[Decimal]] = _money()
    ca_charges: Mapped[Optional[Decimal]] = _money()
    ce_charges: Mapped[Optional[Decimal]] = _money()
    ca_cert_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ce_cert_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    application_fees: Mapped[Optional[Decimal]] = _money()
    remi_one_charges: Mapped[Optional[Decimal]] = _money()
    remi_two_charges: Mapped[Optional[Decimal]] = _money()
    remi_three_charges: Mapped[Optional[Decimal]] = _money()
    remi_four_charges: Mapped[Optional[Decimal]] = _money()
    remi_five_charges: Mapped[Optional[Decimal]] = _money()
    reward_amount: Mapped[Optional[Decimal]] = _money()
    discount_amount: Mapped[Optional[Decimal]] = _money()

    # GST
    gst_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, comment="SC, I, EXEMPTED")
    cgst_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    sgst_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    igst_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    cgst_amount: Mapped[Optional[Decimal]] = _money()
    sgst_amount: Mapped[Optional[Decimal]] = _money()
    igst_amount: Mapped[Optional[Decimal]] = _money()

    # Totals
    service_subtotal: Mapped[Optional[Decimal]] = _money("Taxable service amount")
    final_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    pay_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    amount_in_words: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    remark: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    proforma_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    selected_jobs: Mapped[List["InvoiceSelectedJob"]] = relationship(
        "InvoiceSelectedJob",
        back_populates="invoice",
        cascade="all, delete-orphan"
    )

    @property
    def job_ids(self) -> List[uuid.UUID]:
        return [selected.job_id for selected in self.selected_jobs]

    def __repr__(self) -> str:
        return f"<Invoice(draft_view_id='{self.draft_view_id}', billing_type='{self.billing_type}')>"


class InvoiceSelectedJob(Base):
    """Job covered by an invoice."""
    __tablename__ = "invoice_selected_jobs"
    __table_args__ = (
        UniqueConstraint("invoice_id", "job_id", name="uq_invoice_selected_job"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="selected_jobs")
