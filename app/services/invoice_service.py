"""Invoice Service for job-based invoice generation.

Loads job snapshots, prior invoices and GST rates from the database, runs the
pure invoicing engine (app.services.invoicing) and persists the result.

Flow:
- Eligible jobs are listed per job register / billing type / invoice type
- Every change on the creation screen calls calculate_breakdown() (preview)
- create_invoice() recomputes the breakdown server-side and stores the billed
  amounts; columns not relevant to the billing type are NULL
- shift_to_proforma() recomputes a stored draft from current job data and
  assigns its proforma view id
"""
import uuid
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from num2words import num2words
from sqlalchemy import select, func, and_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.invoice import Invoice, InvoiceSelectedJob
from app.models.job import Job, JobRegister, JobServiceCharge
from app.services.invoicing import (
    Annexure,
    InvoiceBreakdown,
    build_annexure,
    compute_breakdown,
    eligible_jobs,
    invoice_charge_fields,
    reward_discount_from_percent,
)
from app.services.invoicing.eligibility import invoiced_job_ids
from app.services.invoicing.records import (
    ChargeBucket,
    GstRateRecord,
    InvoiceSelection,
    InvoiceStageStatus,
    InvoiceStatus,
    InvoiceType,
    BillingType,
    JobRecord,
    MasterData,
    PriorInvoiceRecord,
    ServiceChargeRecord,
    parse_billing_type,
    parse_invoice_type,
)


logger = logging.getLogger(__name__)


class InvoiceGenerationError(Exception):
    """Exception raised when an invoice cannot be computed or created."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvoiceNotFoundError(Exception):
    """Exception raised when an invoice does not exist."""

    def __init__(self, invoice_id: Any):
        self.invoice_id = invoice_id
        self.message = f"Invoice {invoice_id} not found"
        super().__init__(self.message)


def financial_year_pair(now: Optional[datetime] = None) -> str:
    """Indian financial year (April-March) as a 4-digit pair, e.g. '2627' for FY 2026-27."""
    now = now or datetime.now(timezone.utc)
    start = now.year if now.month >= 4 else now.year - 1
    return f"{start % 100:02d}{(start + 1) % 100:02d}"


def amount_to_words(amount: Decimal) -> str:
    """Convert amount to words (Indian numbering system)."""
    amount = Decimal(amount).quantize(Decimal("0.01"))
    rupees = int(amount)
    paise = int((amount - rupees) * 100)

    words = num2words(rupees, lang='en_IN').replace(",", "")
    result = f"Rupees {words.title()} Only"

    if paise > 0:
        paise_words = num2words(paise, lang='en_IN').replace(",", "")
        result = f"Rupees {words.title()} and {paise_words.title()} Paise Only"

    return result


def job_record(job: Job) -> JobRecord:
    """Snapshot of a Job row (with job_register.gst_rate loaded)."""
    gst_rate = None
    if job.job_register is not None and job.job_register.gst_rate is not None:
        rate = job.job_register.gst_rate
        gst_rate = GstRateRecord(sac_no=rate.sac_no, cgst=rate.cgst, sgst=rate.sgst, igst=rate.igst)

    return JobRecord(
        id=job.id,
        job_no=job.job_no,
        status=job.status,
        billing_type=job.billing_type,
        invoice_type=job.invoice_type,
        quantity=job.quantity,
        remark=job.remark,
        account_id=job.account_id,
        job_register_id=job.job_register_id,
        gst_rate=gst_rate,
        attributes=job.legacy_attributes(),
    )


def active_service_charge(charges: Sequence[JobServiceCharge]) -> Optional[JobServiceCharge]:
    """The Active charge row, else the first row."""
    for charge in charges:
        if charge.status == "Active":
            return charge
    return charges[0] if charges else None


def prior_invoice_record(invoice: Invoice) -> PriorInvoiceRecord:
    charges = {}
    for bucket in ChargeBucket:
        value = getattr(invoice, bucket.value)
        if value is not None:
            charges[bucket] = value
    return PriorInvoiceRecord(
        id=invoice.id,
        billing_type=invoice.billing_type,
        invoice_type=invoice.invoice_type,
        invoice_status=invoice.invoice_status,
        invoice_stage_status=invoice.invoice_stage_status,
        job_ids=frozenset(invoice.job_ids),
        charges=charges,
    )


class InvoiceService:
    """Service for job invoice computation and management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Loading ====================

    def _job_query(self):
        return select(Job).options(
            selectinload(Job.field_values),
            selectinload(Job.service_charges),
            selectinload(Job.job_register).selectinload(JobRegister.gst_rate),
        )

    async def load_master_data(self, job_ids: Sequence[uuid.UUID]) -> MasterData:
        """Fetch jobs, their active service charges and custom field values."""
        if not job_ids:
            return MasterData(jobs={})

        result = await self.db.execute(self._job_query().where(Job.id.in_(list(job_ids))))
        rows = result.scalars().all()

        jobs: Dict[uuid.UUID, JobRecord] = {}
        service_charges: Dict[uuid.UUID, ServiceChargeRecord] = {}
        field_values: Dict[uuid.UUID, Dict[str, Any]] = {}

        for job in rows:
            jobs[job.id] = job_record(job)
            charge = active_service_charge(job.service_charges)
            if charge is not None:
                service_charges[job.id] = ServiceChargeRecord.from_row(charge.as_row())
            field_values[job.id] = {fv.field_name: fv.field_value for fv in job.field_values}

        missing = [job_id for job_id in job_ids if job_id not in jobs]
        if missing:
            logger.warning(f"Jobs not found while loading invoice data: {missing}")

        return MasterData(jobs=jobs, service_charges=service_charges, field_values=field_values)

    async def get_prior_invoices(
        self,
        job_ids: Optional[Sequence[uuid.UUID]] = None,
        exclude_invoice_id: Optional[uuid.UUID] = None,
    ) -> List[PriorInvoiceRecord]:
        """
        Active invoices, optionally only those covering any of job_ids.
        """
        query = (
            select(Invoice)
            .options(selectinload(Invoice.selected_jobs))
            .where(Invoice.invoice_status == InvoiceStatus.ACTIVE.value)
        )
        if job_ids is not None:
            if not job_ids:
                return []
            covering = select(InvoiceSelectedJob.invoice_id).where(
                InvoiceSelectedJob.job_id.in_(list(job_ids))
            )
            query = query.where(Invoice.id.in_(covering))
        if exclude_invoice_id is not None:
            query = query.where(Invoice.id != exclude_invoice_id)

        result = await self.db.execute(query.order_by(Invoice.created_at))
        return [prior_invoice_record(invoice) for invoice in result.scalars().all()]

    # ==================== Eligible jobs ====================

    async def list_eligible_jobs(
        self,
        job_register_id: uuid.UUID,
        billing_type: Any,
        invoice_type: Any,
        account_id: Optional[int] = None,
    ) -> List[Job]:
        """Jobs of a register that can be put on a new invoice."""
        billing = parse_billing_type(billing_type)
        kind = parse_invoice_type(invoice_type)
        if billing is None:
            raise InvoiceGenerationError(f"Unknown billing type: {billing_type}")
        if kind is None:
            raise InvoiceGenerationError(f"Unknown invoice type: {invoice_type}")

        query = self._job_query().where(Job.job_register_id == job_register_id)
        if account_id is not None:
            query = query.where(Job.account_id == account_id)
        result = await self.db.execute(query.order_by(Job.created_at))
        rows = result.scalars().all()

        prior = await self.get_prior_invoices([job.id for job in rows])
        allowed = {record.id for record in eligible_jobs([job_record(job) for job in rows], billing, kind, prior)}
        return [job for job in rows if job.id in allowed]

    # ==================== Computation ====================

    def _validate_selection(self, job_ids: Sequence[uuid.UUID], invoice_type: InvoiceType) -> None:
        if not job_ids:
            raise InvoiceGenerationError("Select at least one job")
        if invoice_type == InvoiceType.PARTIAL and len(job_ids) > 1:
            raise InvoiceGenerationError(
                "A partial invoice covers exactly one job",
                {"selected": len(job_ids)},
            )
        if len(job_ids) > settings.INVOICE_MAX_JOBS:
            raise InvoiceGenerationError(
                f"An invoice can cover at most {settings.INVOICE_MAX_JOBS} jobs",
                {"selected": len(job_ids), "limit": settings.INVOICE_MAX_JOBS},
            )

    async def calculate_breakdown(
        self,
        selection: InvoiceSelection,
        reward_discount_percent: Optional[str] = None,
        exclude_invoice_id: Optional[uuid.UUID] = None,
    ) -> Tuple[InvoiceBreakdown, Optional[Annexure]]:
        """
        Compute the invoice breakdown for a selection.

        Returns:
            (breakdown, annexure); annexure is None for single-job invoices
        """
        job_ids = list(dict.fromkeys(selection.job_ids))
        self._validate_selection(job_ids, selection.invoice_type)

        master = await self.load_master_data(job_ids)
        if not master.jobs:
            raise InvoiceGenerationError("No valid jobs found", {"job_ids": [str(j) for j in job_ids]})

        prior = await self.get_prior_invoices(job_ids, exclude_invoice_id=exclude_invoice_id)
        breakdown = compute_breakdown(selection, master, prior)

        if reward_discount_percent:
            reward, discount = reward_discount_from_percent(
                reward_discount_percent, breakdown.professional_charges
            )
            selection = InvoiceSelection(
                job_ids=selection.job_ids,
                billing_type=selection.billing_type,
                invoice_type=selection.invoice_type,
                reward_amount=reward,
                discount_amount=discount,
                pay_amounts=selection.pay_amounts,
            )
            breakdown = compute_breakdown(selection, master, prior)

        annexure = None
        if len(breakdown.job_ids) > 1:
            annexure = build_annexure(
                breakdown.job_ids, master.jobs, master.service_charges, master.field_values
            )
        return breakdown, annexure

    # ==================== Persistence ====================

    async def _next_view_id(self, column, letter: str, account_id: Optional[int]) -> str:
        prefix = f"{letter}{account_id if account_id is not None else 0}{financial_year_pair()}"
        result = await self.db.execute(select(column).where(column.like(f"{prefix}%")))
        highest = 0
        for (view_id,) in result.all():
            suffix = view_id[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:04d}"

    async def generate_draft_view_id(self, account_id: Optional[int]) -> str:
        """Next D{account_id}{fy pair}{seq:04d} for the account."""
        return await self._next_view_id(Invoice.draft_view_id, "D", account_id)

    async def generate_proforma_view_id(self, account_id: Optional[int]) -> str:
        """Next P{account_id}{fy pair}{seq:04d} for the account."""
        return await self._next_view_id(Invoice.proforma_view_id, "P", account_id)

    def _stored_amounts(self, breakdown: InvoiceBreakdown) -> Dict[str, Any]:
        """Every invoice column derived from a breakdown."""
        include_service = breakdown.billing_type.includes_service
        return dict(
            ca_cert_count=breakdown.ca_cert_count if include_service else None,
            ce_cert_count=breakdown.ce_cert_count if include_service else None,
            gst_type=breakdown.gst_type,
            cgst_rate=breakdown.gst.cgst_rate,
            sgst_rate=breakdown.gst.sgst_rate,
            igst_rate=breakdown.gst.igst_rate,
            service_subtotal=breakdown.service_subtotal if include_service else None,
            final_amount=breakdown.final_amount,
            pay_amount=breakdown.final_amount,
            amount_in_words=amount_to_words(breakdown.final_amount),
            **invoice_charge_fields(breakdown),
        )

    async def create_invoice(
        self,
        selection: InvoiceSelection,
        account_id: Optional[int] = None,
        client_info_id: Optional[int] = None,
        job_register_id: Optional[uuid.UUID] = None,
        remark: Optional[str] = None,
        reward_discount_percent: Optional[str] = None,
    ) -> Invoice:
        """
        Create an invoice for the selected jobs.

        Raises:
            InvoiceGenerationError: invalid selection, job already invoiced,
                or a partial invoice without any pay amount
        """
        if selection.is_partial and selection.billing_type != BillingType.SERVICE_REIMBURSEMENT:
            selection = InvoiceSelection(
                job_ids=selection.job_ids,
                billing_type=BillingType.SERVICE_REIMBURSEMENT,
                invoice_type=selection.invoice_type,
                reward_amount=selection.reward_amount,
                discount_amount=selection.discount_amount,
                pay_amounts=selection.pay_amounts,
            )

        job_ids = list(dict.fromkeys(selection.job_ids))
        self._validate_selection(job_ids, selection.invoice_type)

        prior = await self.get_prior_invoices(job_ids)
        blocked = invoiced_job_ids(selection.billing_type, selection.invoice_type, prior)
        already = [str(job_id) for job_id in job_ids if str(job_id) in blocked]
        if already:
            raise InvoiceGenerationError(
                "Job already invoiced for this billing type",
                {"job_ids": already},
            )

        breakdown, _ = await self.calculate_breakdown(selection, reward_discount_percent)

        if selection.is_partial and not breakdown.is_partial_mode:
            raise InvoiceGenerationError("Enter a pay amount for at least one charge on a partial invoice")

        if job_register_id is None or account_id is None:
            master_job = (await self.load_master_data(breakdown.job_ids[:1])).jobs.get(breakdown.job_ids[0])
            if master_job is not None:
                job_register_id = job_register_id or master_job.job_register_id
                account_id = account_id if account_id is not None else master_job.account_id

        invoice = Invoice(
            draft_view_id=await self.generate_draft_view_id(account_id),
            account_id=account_id,
            client_info_id=client_info_id,
            job_register_id=job_register_id,
            billing_type=breakdown.billing_type.value,
            invoice_type=breakdown.invoice_type.value,
            invoice_status=InvoiceStatus.ACTIVE.value,
            invoice_stage_status=InvoiceStageStatus.DRAFT.value,
            remark=remark,
            **self._stored_amounts(breakdown),
        )
        invoice.selected_jobs = [InvoiceSelectedJob(job_id=job_id) for job_id in breakdown.job_ids]

        self.db.add(invoice)
        await self.db.flush()

        logger.info(
            f"Created invoice {invoice.draft_view_id} ({invoice.billing_type}/{invoice.invoice_type}) "
            f"for {len(breakdown.job_ids)} jobs, final amount {breakdown.final_amount}"
        )
        return await self.get_invoice(invoice.id)

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.selected_jobs))
            .where(Invoice.id == invoice_id)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def selection_for(self, invoice: Invoice) -> InvoiceSelection:
        """Selection that reproduces a stored invoice."""
        invoice_type = parse_invoice_type(invoice.invoice_type) or InvoiceType.FULL
        pay_amounts: Dict[ChargeBucket, Any] = {}
        if invoice_type == InvoiceType.PARTIAL:
            for bucket in ChargeBucket:
                value = getattr(invoice, bucket.value)
                if value is not None:
                    pay_amounts[bucket] = value
        return InvoiceSelection(
            job_ids=tuple(invoice.job_ids),
            billing_type=parse_billing_type(invoice.billing_type) or BillingType.SERVICE_REIMBURSEMENT,
            invoice_type=invoice_type,
            reward_amount=invoice.reward_amount,
            discount_amount=invoice.discount_amount,
            pay_amounts=pay_amounts,
        )

    async def recompute(self, invoice: Invoice) -> Tuple[InvoiceBreakdown, Optional[Annexure]]:
        """Breakdown of a stored invoice from current master data."""
        return await self.calculate_breakdown(
            self.selection_for(invoice),
            exclude_invoice_id=invoice.id,
        )

    async def shift_to_proforma(
        self,
        invoice_id: uuid.UUID,
        reward_amount: Optional[Decimal] = None,
        discount_amount: Optional[Decimal] = None,
    ) -> Invoice:
        """
        Move an invoice to the Proforma stage.

        Every charge column is recomputed from current job data so the
        proforma reflects the latest fields and rates. Reward/discount
        default to the stored values. The proforma view id is assigned on
        the first shift and kept afterwards.

        Raises:
            InvoiceNotFoundError: no such invoice
            InvoiceGenerationError: deleted invoice or no jobs left to bill
        """
        invoice = await self.get_invoice(invoice_id)
        if invoice.invoice_status != InvoiceStatus.ACTIVE.value:
            raise InvoiceGenerationError(
                "Only active invoices can be shifted to Proforma",
                {"invoice_id": str(invoice.id)},
            )
        if not invoice.job_ids:
            raise InvoiceGenerationError("No jobs found for this invoice", {"invoice_id": str(invoice.id)})

        stored = self.selection_for(invoice)
        selection = InvoiceSelection(
            job_ids=stored.job_ids,
            billing_type=stored.billing_type,
            invoice_type=stored.invoice_type,
            reward_amount=reward_amount if reward_amount is not None else stored.reward_amount,
            discount_amount=discount_amount if discount_amount is not None else stored.discount_amount,
            pay_amounts=stored.pay_amounts,
        )
        breakdown, _ = await self.calculate_breakdown(selection, exclude_invoice_id=invoice.id)

        for column, value in self._stored_amounts(breakdown).items():
            setattr(invoice, column, value)

        now = datetime.now(timezone.utc)
        invoice.invoice_stage_status = InvoiceStageStatus.PROFORMA.value
        if invoice.proforma_view_id is None:
            invoice.proforma_view_id = await self.generate_proforma_view_id(invoice.account_id)
            invoice.proforma_created_at = now
        invoice.updated_at = now
        await self.db.flush()

        logger.info(
            f"Invoice {invoice.draft_view_id} shifted to Proforma as {invoice.proforma_view_id}, "
            f"final amount {breakdown.final_amount}"
        )
        return await self.get_invoice(invoice.id)

    async def list_invoices(
        self,
        invoice_status: Optional[str] = None,
        invoice_stage_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Invoice], int]:
        conditions = []
        if invoice_status:
            conditions.append(Invoice.invoice_status == invoice_status)
        if invoice_stage_status:
            conditions.append(Invoice.invoice_stage_status == invoice_stage_status)

        count_query = select(func.count(Invoice.id))
        query = select(Invoice).options(selectinload(Invoice.selected_jobs))
        if conditions:
            count_query = count_query.where(and_(*conditions))
            query = query.where(and_(*conditions))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Invoice.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def delete_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        """Soft delete: the invoice stops counting toward opening amounts and releases its jobs."""
        invoice = await self.get_invoice(invoice_id)
        invoice.invoice_status = InvoiceStatus.DELETE.value
        invoice.invoice_stage_status = InvoiceStageStatus.CANCELED.value
        invoice.updated_at = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info(f"Invoice {invoice.draft_view_id} deleted")
        return invoice
