"""GST rate master keyed by SAC code."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class GstRate(Base):
    """
    Base GST percentages for a Services Accounting Code.

    A job register points at one GstRate; the job's service charge gst_type
    decides which of these rates are actually charged.
    """
    __tablename__ = "gst_rates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    sac_no: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Services Accounting Code"
    )
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    cgst: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), comment="CGST %")
    sgst: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), comment="SGST %")
    igst: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), comment="IGST %")

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

    def __repr__(self) -> str:
        return f"<GstRate(sac_no='{self.sac_no}', cgst={self.cgst}, sgst={self.sgst}, igst={self.igst})>"
