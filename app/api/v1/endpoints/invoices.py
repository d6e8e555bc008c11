"""API endpoints for job invoices (preview, create, list, stage changes, soft delete)."""
from typing import Optional, List
from uuid import UUID
import logging
import math

from fastapi import APIRouter, HTTPException, status, Query
from pydantic.alias_generators import to_snake

from app.api.deps import Invoices
from app.schemas.invoice import (
    InvoiceSampleRequest,
    InvoiceCreate,
    InvoiceStageUpdate,
    InvoiceBreakdownResponse,
    InvoiceResponse,
    InvoiceDetailResponse,
    InvoiceListResponse,
    EligibleJobResponse,
)
from app.services.invoice_service import (
    InvoiceGenerationError,
    InvoiceNotFoundError,
    amount_to_words,
)
from app.services.invoicing.records import (
    BillingType,
    InvoiceSelection,
    InvoiceStageStatus,
    InvoiceType,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def _selection(request: InvoiceSampleRequest) -> InvoiceSelection:
    """Request body -> engine selection; pay amount keys may be camelCase."""
    return InvoiceSelection(
        job_ids=tuple(request.job_ids),
        billing_type=request.billing_type,
        invoice_type=request.invoice_type,
        reward_amount=request.reward_amount,
        discount_amount=request.discount_amount,
        pay_amounts={to_snake(key): value for key, value in request.pay_amounts.items()},
    )


def _bad_request(e: InvoiceGenerationError) -> HTTPException:
    logger.warning(f"Invoice request rejected: {e.message}")
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": e.message, **e.details},
    )


# ==================== Eligible jobs ====================

@router.get("/eligible-jobs", response_model=List[EligibleJobResponse])
async def list_eligible_jobs(
    service: Invoices,
    job_register_id: UUID = Query(..., alias="jobRegisterId"),
    billing_type: str = Query(BillingType.SERVICE_REIMBURSEMENT.value, alias="billingType"),
    invoice_type: str = Query(InvoiceType.FULL.value, alias="invoiceType"),
    account_id: Optional[int] = Query(None, alias="accountId"),
):
    """Jobs of a register that can still be invoiced for the billing/invoice type."""
    try:
        jobs = await service.list_eligible_jobs(job_register_id, billing_type, invoice_type, account_id)
    except InvoiceGenerationError as e:
        raise _bad_request(e)
    return [EligibleJobResponse.model_validate(job) for job in jobs]


# ==================== Preview ====================

@router.post("/sample", response_model=InvoiceBreakdownResponse)
async def sample_invoice(request: InvoiceSampleRequest, service: Invoices):
    """
    Compute the invoice without saving it.

    Called on every change of the creation screen (job selection, billing
    type, reward/discount, partial pay amounts).
    """
    try:
        breakdown, annexure = await service.calculate_breakdown(
            _selection(request),
            reward_discount_percent=request.reward_discount_percent,
        )
    except InvoiceGenerationError as e:
        raise _bad_request(e)

    return InvoiceBreakdownResponse.from_breakdown(
        breakdown,
        annexure=annexure,
        amount_in_words=amount_to_words(breakdown.final_amount),
    )


# ==================== Invoices ====================

@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    service: Invoices,
    invoice_status: Optional[str] = Query(None, alias="invoiceStatus"),
    invoice_stage_status: Optional[str] = Query(None, alias="invoiceStageStatus"),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
):
    """List invoices, newest first."""
    skip = (page - 1) * size
    invoices, total = await service.list_invoices(
        invoice_status=invoice_status,
        invoice_stage_status=invoice_stage_status,
        skip=skip,
        limit=size,
    )

    return InvoiceListResponse(
        items=[InvoiceResponse.model_validate(invoice) for invoice in invoices],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if total > 0 else 1,
    )


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(invoice_in: InvoiceCreate, service: Invoices):
    """Create a draft invoice for the selected jobs."""
    try:
        invoice = await service.create_invoice(
            _selection(invoice_in),
            account_id=invoice_in.account_id,
            client_info_id=invoice_in.client_info_id,
            job_register_id=invoice_in.job_register_id,
            remark=invoice_in.remark,
            reward_discount_percent=invoice_in.reward_discount_percent,
        )
    except InvoiceGenerationError as e:
        raise _bad_request(e)
    return InvoiceResponse.model_validate(invoice)


@router.get("/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_invoice(invoice_id: UUID, service: Invoices):
    """Get an invoice with its breakdown recomputed from current job data."""
    try:
        invoice = await service.get_invoice(invoice_id)
    except InvoiceNotFoundError:
        raise HTTPException(status_code=404, detail="Invoice not found")

    detail = InvoiceDetailResponse.model_validate(invoice)
    try:
        breakdown, annexure = await service.recompute(invoice)
    except InvoiceGenerationError:
        # Jobs were removed after invoicing; stored amounts are still returned
        return detail

    detail.breakdown = InvoiceBreakdownResponse.from_breakdown(
        breakdown,
        annexure=annexure,
        amount_in_words=amount_to_words(breakdown.final_amount),
    )
    return detail


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice_stage(invoice_id: UUID, update: InvoiceStageUpdate, service: Invoices):
    """
    Change an invoice's stage.

    Only the shift to Proforma is handled here; it recomputes all amounts
    server-side. Cancel an invoice with DELETE.
    """
    if update.invoice_stage_status != InvoiceStageStatus.PROFORMA:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": f"Cannot move an invoice to {update.invoice_stage_status.value} here"},
        )
    try:
        invoice = await service.shift_to_proforma(
            invoice_id,
            reward_amount=update.reward_amount,
            discount_amount=update.discount_amount,
        )
    except InvoiceNotFoundError:
        raise HTTPException(status_code=404, detail="Invoice not found")
    except InvoiceGenerationError as e:
        raise _bad_request(e)
    return InvoiceResponse.model_validate(invoice)


@router.delete("/{invoice_id}", response_model=InvoiceResponse)
async def delete_invoice(invoice_id: UUID, service: Invoices):
    """Soft delete an invoice; its jobs become invoiceable again."""
    try:
        invoice = await service.delete_invoice(invoice_id)
    except InvoiceNotFoundError:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return InvoiceResponse.model_validate(invoice)
