"""Job models: job registers (job types), jobs, custom field values and service charges."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.gst_rate import GstRate


class JobRegister(Base):
    """Job type (e.g. "Drawback Claim") with its GST rate."""
    __tablename__ = "job_registers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    job_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    job_title: Mapped[str] = mapped_column(String(200), nullable=False)
    gst_rate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("gst_rates.id", ondelete="SET NULL"),
        nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default="Active", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    gst_rate: Mapped[Optional["GstRate"]] = relationship("GstRate")
    jobs: Mapped[List["Job"]] = relationship("Job", back_populates="job_register")


class Job(Base):
    """A unit of billable work for a client."""
    __tablename__ = "jobs"

    # Columns kept on the row by older screens; custom field values win.
    LEGACY_ATTRIBUTES = (
        "quantity",
        "claim_amount_after_finalization",
        "no_of_cac",
        "no_of_cec",
        "application_date",
        "claim_no",
        "dbk_claim_date",
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    job_no: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    account_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    client_info_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    client_bu_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    job_register_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("job_registers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default="In_process",
        nullable=False,
        index=True,
        comment="In_process, Closed"
    )
    billing_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Service, Reimbursement, Service_Reimbursement, Service_Reimbursement_Split"
    )
    invoice_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="full_invoice, partial_invoice"
    )
    remark: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    quantity: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    claim_amount_after_finalization: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    no_of_cac: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    no_of_cec: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    application_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    claim_no: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    dbk_claim_date: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

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
    job_register: Mapped["JobRegister"] = relationship("JobRegister", back_populates="jobs")
    field_values: Mapped[List["JobFieldValue"]] = relationship(
        "JobFieldValue",
        back_populates="job",
        cascade="all, delete-orphan"
    )
    service_charges: Mapped[List["JobServiceCharge"]] = relationship(
        "JobServiceCharge",
        back_populates="job",
        cascade="all, delete-orphan"
    )

    def legacy_attributes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.LEGACY_ATTRIBUTES}

    def __repr__(self) -> str:
        return f"<Job(job_no='{self.job_no}', status='{self.status}')>"


class JobFieldValue(Base):
    """Dynamic (field name, value) pair attached to a job."""
    __tablename__ = "job_field_values"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    field_name: Mapped[str] = mapped_column(String(200), nullable=False)
    field_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    job: Mapped["Job"] = relationship("Job", back_populates="field_values")


class JobServiceCharge(Base):
    """
    Per-job pricing configuration.

    Only the Active row of a job is used for invoicing. Remi charges are free
    text as entered and parsed leniently.
    """
    __tablename__ = "job_service_charges"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="Active",
        nullable=False,
        comment="Active, Inactive"
    )

    # Pricing
    fixed: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    in_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 3), nullable=True)
    min: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    max: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    per_shb: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        comment="Rate per unit (shipping bill)"
    )
    percentage_per_shb: Mapped[Optional[str]] = mapped_column(String(5), default="No", comment="Yes, No")
    fixed_percentage_per_shb: Mapped[Optional[str]] = mapped_column(String(5), default="No", comment="Yes, No")

    # Other charges
    registration_other_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    ca_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True, comment="Per CA certificate")
    ce_charges: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True, comment="Per CE certificate")
    application_fees: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)

    # Reimbursement lines
    remi_one_desc: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    remi_one_charges: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    remi_two_desc: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    remi_two_charges: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    remi_three_desc: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    remi_three_charges: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    remi_four_desc: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    remi_four_charges: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    remi_five_desc: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    remi_five_charges: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    gst_type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="SC, I, EXEMPTED"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    job: Mapped["Job"] = relationship("Job", back_populates="service_charges")

    def as_row(self) -> Dict[str, Any]:
        """Column values keyed by column name."""
        return {column.name: getattr(self, column.key) for column in self.__table__.columns}
