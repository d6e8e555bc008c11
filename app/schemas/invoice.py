"""Pydantic schemas for invoice computation and persistence."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.core.enum_utils import parse_choice
from app.schemas.base import CamelResponseSchema, CamelSchema
from app.services.invoicing import Annexure, InvoiceBreakdown
from app.services.invoicing.records import (
    REMI_BUCKETS,
    REMI_SLOT_NAMES,
    BillingType,
    InvoiceStageStatus,
    InvoiceType,
    parse_billing_type,
    parse_invoice_type,
)


# ==================== Requests ====================

class InvoiceSampleRequest(CamelSchema):
    """Current invoice-creation choices, used for the preview."""
    job_ids: List[UUID] = Field(default_factory=list)
    billing_type: BillingType = BillingType.SERVICE_REIMBURSEMENT
    invoice_type: InvoiceType = InvoiceType.FULL
    reward_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    reward_discount_percent: Optional[str] = Field(
        None,
        description="Signed percentage of the professional charges, e.g. '+10' or '-5'"
    )
    pay_amounts: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Partial invoice pay amount per charge column, e.g. {'professional_charges': 500}"
    )

    @field_validator("billing_type", mode="before")
    @classmethod
    def parse_billing(cls, v):
        parsed = parse_billing_type(v)
        if parsed is None:
            raise ValueError(f"Unknown billing type: {v}")
        return parsed

    @field_validator("invoice_type", mode="before")
    @classmethod
    def parse_invoice(cls, v):
        parsed = parse_invoice_type(v)
        if parsed is None:
            raise ValueError(f"Unknown invoice type: {v}")
        return parsed


class InvoiceCreate(InvoiceSampleRequest):
    """Schema for creating an invoice."""
    account_id: Optional[int] = None
    client_info_id: Optional[int] = None
    job_register_id: Optional[UUID] = None
    remark: Optional[str] = None


class InvoiceStageUpdate(CamelSchema):
    """
    Move an invoice to another stage.

    Shifting to Proforma recomputes every charge from current job data;
    reward/discount default to the stored values.
    """
    invoice_stage_status: InvoiceStageStatus
    reward_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None

    @field_validator("invoice_stage_status", mode="before")
    @classmethod
    def parse_stage(cls, v):
        parsed = parse_choice(v, InvoiceStageStatus)
        if parsed is None:
            raise ValueError(f"Unknown invoice stage: {v}")
        return parsed


# ==================== Breakdown ====================

class GstResponse(CamelResponseSchema):
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal


class RemiFieldResponse(CamelResponseSchema):
    key: str
    slot: int
    description: str
    charges: Decimal


class LedgerEntryResponse(CamelResponseSchema):
    bucket: str
    total: Decimal
    opening: Decimal
    pay: Decimal
    remaining: Decimal


class CombinedFieldResponse(CamelResponseSchema):
    header: str
    number: str
    date: str
    combined: str


class AnnexureRowResponse(CamelResponseSchema):
    sr_no: int
    job_id: UUID
    job_no: str
    remark: str
    application_date: str
    claim_no: str
    claim_date: str
    professional_charges: Decimal
    registration_charges: Decimal
    ca_cert_count: int
    ce_cert_count: int
    ca_charges: Decimal
    ce_charges: Decimal
    application_fees: Decimal
    remi: List[RemiFieldResponse]
    amounts: Dict[str, str]
    combined: Dict[str, str]
    own_combined_fields: List[CombinedFieldResponse]
    total: Decimal


class AnnexureTotalsResponse(CamelResponseSchema):
    professional_charges: Decimal
    registration_charges: Decimal
    ca_charges: Decimal
    ce_charges: Decimal
    application_fees: Decimal
    remi: List[RemiFieldResponse]
    total: Decimal


class AnnexureColumnsResponse(CamelResponseSchema):
    remi: List[RemiFieldResponse]
    amounts: List[str]
    combined: List[str]


class AnnexureResponse(CamelResponseSchema):
    rows: List[AnnexureRowResponse]
    totals: AnnexureTotalsResponse
    columns: AnnexureColumnsResponse


class InvoiceBreakdownResponse(CamelResponseSchema):
    """Computed invoice amounts (preview and stored-invoice recomputation)."""
    billing_type: str
    invoice_type: str
    professional_charges: Decimal
    registration_charges: Decimal
    ca_charges: Decimal
    ce_charges: Decimal
    ca_cert_count: int
    ce_cert_count: int
    application_fees: Decimal
    remi_charges: Dict[str, Decimal]
    remi_fields: List[RemiFieldResponse]
    gst: GstResponse
    gst_type: Optional[str] = None
    service_subtotal: Decimal
    reimbursement_subtotal: Decimal
    final_amount: Decimal
    reward_amount: Decimal
    discount_amount: Decimal
    quantity: Decimal
    percentage: Decimal
    per_shb: Decimal
    is_partial_mode: bool = False
    ledger: List[LedgerEntryResponse] = Field(default_factory=list)
    amount_in_words: Optional[str] = None
    annexure: Optional[AnnexureResponse] = None

    @classmethod
    def from_breakdown(
        cls,
        breakdown: InvoiceBreakdown,
        annexure: Optional[Annexure] = None,
        amount_in_words: Optional[str] = None,
    ) -> "InvoiceBreakdownResponse":
        remi_charges = {
            f"remi_{REMI_SLOT_NAMES[slot]}": breakdown.remi_charges.get(bucket, Decimal("0"))
            for slot, bucket in REMI_BUCKETS.items()
        }
        data: Dict[str, Any] = {
            "billing_type": breakdown.billing_type.value,
            "invoice_type": breakdown.invoice_type.value,
            "professional_charges": breakdown.professional_charges,
            "registration_charges": breakdown.registration_charges,
            "ca_charges": breakdown.ca_charges,
            "ce_charges": breakdown.ce_charges,
            "ca_cert_count": breakdown.ca_cert_count,
            "ce_cert_count": breakdown.ce_cert_count,
            "application_fees": breakdown.application_fees,
            "remi_charges": remi_charges,
            "remi_fields": [RemiFieldResponse.model_validate(line) for line in breakdown.remi_fields],
            "gst": GstResponse.model_validate(breakdown.gst),
            "gst_type": breakdown.gst_type,
            "service_subtotal": breakdown.service_subtotal,
            "reimbursement_subtotal": breakdown.reimbursement_subtotal,
            "final_amount": breakdown.final_amount,
            "reward_amount": breakdown.reward_amount,
            "discount_amount": breakdown.discount_amount,
            "quantity": breakdown.quantity,
            "percentage": breakdown.percentage,
            "per_shb": breakdown.per_shb,
            "is_partial_mode": breakdown.is_partial_mode,
            "ledger": [
                LedgerEntryResponse(
                    bucket=entry.bucket.value,
                    total=entry.total,
                    opening=entry.opening,
                    pay=entry.pay,
                    remaining=entry.remaining,
                )
                for entry in breakdown.ledger.values()
            ],
            "amount_in_words": amount_in_words,
            "annexure": AnnexureResponse.model_validate(annexure) if annexure is not None else None,
        }
        return cls(**data)


# ==================== Invoices ====================

class InvoiceResponse(CamelResponseSchema):
    """Response schema for a stored invoice."""
    id: UUID
    draft_view_id: str
    proforma_view_id: Optional[str] = None
    account_id: Optional[int] = None
    client_info_id: Optional[int] = None
    job_register_id: Optional[UUID] = None
    billing_type: str
    invoice_type: str
    invoice_status: str
    invoice_stage_status: str

    professional_charges: Optional[Decimal] = None
    registration_other_charges: Optional[Decimal] = None
    ca_charges: Optional[Decimal] = None
    ce_charges: Optional[Decimal] = None
    ca_cert_count: Optional[int] = None
    ce_cert_count: Optional[int] = None
    application_fees: Optional[Decimal] = None
    remi_one_charges: Optional[Decimal] = None
    remi_two_charges: Optional[Decimal] = None
    remi_three_charges: Optional[Decimal] = None
    remi_four_charges: Optional[Decimal] = None
    remi_five_charges: Optional[Decimal] = None
    reward_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None

    gst_type: Optional[str] = None
    cgst_rate: Optional[Decimal] = None
    sgst_rate: Optional[Decimal] = None
    igst_rate: Optional[Decimal] = None
    cgst_amount: Optional[Decimal] = None
    sgst_amount: Optional[Decimal] = None
    igst_amount: Optional[Decimal] = None

    service_subtotal: Optional[Decimal] = None
    final_amount: Decimal
    pay_amount: Decimal
    amount_in_words: Optional[str] = None
    remark: Optional[str] = None
    job_ids: List[UUID] = Field(default_factory=list)
    proforma_created_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class InvoiceDetailResponse(InvoiceResponse):
    """Stored invoice plus its freshly recomputed breakdown."""
    breakdown: Optional[InvoiceBreakdownResponse] = None


class InvoiceListResponse(CamelResponseSchema):
    """Response for listing invoices."""
    items: List[InvoiceResponse]
    total: int
    page: int = 1
    size: int = 50
    pages: int = 1


class EligibleJobResponse(CamelResponseSchema):
    """A job that can be selected for a new invoice."""
    id: UUID
    job_no: str
    status: str
    billing_type: Optional[str] = None
    invoice_type: Optional[str] = None
    account_id: Optional[int] = None
    client_info_id: Optional[int] = None
    job_register_id: UUID
    remark: Optional[str] = None
