"""
Multi-Job Aggregator

Prices every selected job, collects its reimbursement charges and sums each
charge bucket across the selection. compute_breakdown() then layers reward /
discount, the partial settlement ledger and GST on top to produce the
InvoiceBreakdown used for both preview and persistence.

Remi lines are summed by slot index (1-5), not by description: two jobs with
different descriptions in slot 1 land in the same remi_one bucket, and the
column takes the first job's description.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.services.invoicing.field_resolver import JobField, JobFieldSnapshot
from app.services.invoicing.gst_calculator import GstBreakdown, apply_gst
from app.services.invoicing.numbers import ZERO, money, non_negative, to_decimal
from app.services.invoicing.partial_settlement import LedgerEntry, ledger_for
from app.services.invoicing.pricing_engine import PricedJob, field_snapshot, price_job
from app.services.invoicing.records import (
    REIMBURSEMENT_BUCKETS,
    REMI_BUCKETS,
    SERVICE_BUCKETS,
    BillingType,
    ChargeBucket,
    GstRateRecord,
    InvoiceSelection,
    InvoiceType,
    JobId,
    JobRecord,
    MasterData,
    PriorInvoiceRecord,
    ServiceChargeRecord,
)

logger = logging.getLogger(__name__)


# ==================== Per-job charges ====================

@dataclass(frozen=True)
class RemiLine:
    slot: int
    description: str
    charges: Decimal

    @property
    def key(self) -> str:
        return f"R{self.slot}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot": self.slot,
            "key": self.key,
            "description": self.description,
            "charges": float(self.charges),
        }


def remi_lines(service_charge: Optional[ServiceChargeRecord]) -> Tuple[RemiLine, ...]:
    """Configured remi lines of a job, ordered by slot. Lines without a description are skipped."""
    if service_charge is None:
        return ()
    lines = []
    for slot in sorted(REMI_BUCKETS):
        description, charges = service_charge.remi.get(slot, (None, None))
        if description is None:
            continue
        text = str(description).strip()
        if not text or text.upper() == "NULL":
            continue
        lines.append(RemiLine(slot=slot, description=text, charges=money(charges)))
    return tuple(lines)


@dataclass(frozen=True)
class JobCharges:
    """Everything one job contributes to an invoice."""
    job_id: JobId
    priced: PricedJob
    registration_charges: Decimal = ZERO
    ca_cert_count: int = 0
    ce_cert_count: int = 0
    ca_charges: Decimal = ZERO
    ce_charges: Decimal = ZERO
    application_fees: Decimal = ZERO
    remi: Tuple[RemiLine, ...] = ()
    fields: JobFieldSnapshot = field(default_factory=JobFieldSnapshot)

    def remi_amount(self, slot: int) -> Decimal:
        for line in self.remi:
            if line.slot == slot:
                return line.charges
        return ZERO


def charge_job(
    job: JobRecord,
    service_charge: Optional[ServiceChargeRecord],
    field_values: Any = None,
) -> JobCharges:
    fields = field_snapshot(job, field_values)
    priced = price_job(job, service_charge, fields)

    ca_count = fields.integer(JobField.CA_CERT_COUNT)
    ce_count = fields.integer(JobField.CE_CERT_COUNT)

    if service_charge is None:
        registration = ca_rate = ce_rate = ZERO
    else:
        registration = non_negative(service_charge.registration_other_charges)
        ca_rate = non_negative(service_charge.ca_charges)
        ce_rate = non_negative(service_charge.ce_charges)

    if fields.has(JobField.APPLICATION_FEES):
        application_fees = fields.decimal(JobField.APPLICATION_FEES)
    elif service_charge is not None:
        application_fees = to_decimal(service_charge.application_fees)
    else:
        application_fees = ZERO

    return JobCharges(
        job_id=job.id,
        priced=priced,
        registration_charges=money(registration),
        ca_cert_count=ca_count,
        ce_cert_count=ce_count,
        ca_charges=money(ca_rate * ca_count),
        ce_charges=money(ce_rate * ce_count),
        application_fees=money(application_fees),
        remi=remi_lines(service_charge),
        fields=fields,
    )


# ==================== Aggregate ====================

@dataclass(frozen=True)
class Aggregate:
    """Bucket totals over a job selection."""
    jobs: Tuple[JobCharges, ...] = ()
    professional_charges: Decimal = ZERO
    registration_charges: Decimal = ZERO
    ca_charges: Decimal = ZERO
    ce_charges: Decimal = ZERO
    ca_cert_count: int = 0
    ce_cert_count: int = 0
    application_fees: Decimal = ZERO
    remi_totals: Tuple[Decimal, ...] = (ZERO, ZERO, ZERO, ZERO, ZERO)
    remi_fields: Tuple[RemiLine, ...] = ()
    quantity: Decimal = ZERO
    percentage: Decimal = ZERO
    per_shb: Decimal = ZERO
    gst_type: Optional[str] = None
    gst_rates: Optional[GstRateRecord] = None

    def remi_total(self, slot: int) -> Decimal:
        return self.remi_totals[slot - 1]

    def bucket_totals(self) -> Dict[ChargeBucket, Decimal]:
        totals = {
            ChargeBucket.PROFESSIONAL: self.professional_charges,
            ChargeBucket.REGISTRATION: self.registration_charges,
            ChargeBucket.CA: self.ca_charges,
            ChargeBucket.CE: self.ce_charges,
            ChargeBucket.APPLICATION_FEES: self.application_fees,
        }
        for slot, bucket in REMI_BUCKETS.items():
            totals[bucket] = self.remi_total(slot)
        return totals


def _first_nonzero(values: Iterable[Decimal]) -> Decimal:
    for value in values:
        if value != ZERO:
            return value
    return ZERO


def aggregate(
    job_ids: Sequence[JobId],
    jobs: Mapping[JobId, JobRecord],
    service_charges: Mapping[JobId, ServiceChargeRecord],
    field_values: Mapping[JobId, Any],
) -> Aggregate:
    """
    Sum every charge bucket over the selected jobs.

    Job ids with no job record are skipped. GST type and rates come from the
    first selected job only; a mixed selection is billed with that job's
    classification.
    """
    per_job: List[JobCharges] = []
    for job_id in job_ids:
        job = jobs.get(job_id)
        if job is None:
            logger.debug(f"Job {job_id} not found in master data, skipped")
            continue
        per_job.append(charge_job(job, service_charges.get(job_id), field_values.get(job_id)))

    remi_totals = [ZERO] * len(REMI_BUCKETS)
    remi_headers: Dict[int, str] = {}
    for charges in per_job:
        for line in charges.remi:
            remi_totals[line.slot - 1] += line.charges
            remi_headers.setdefault(line.slot, line.description)

    remi_fields = tuple(
        RemiLine(slot=slot, description=remi_headers[slot], charges=money(remi_totals[slot - 1]))
        for slot in sorted(remi_headers)
    )

    gst_type = None
    gst_rates = None
    if per_job:
        first_id = per_job[0].job_id
        first_charge = service_charges.get(first_id)
        gst_type = first_charge.gst_type if first_charge is not None else None
        gst_rates = jobs[first_id].gst_rate

    return Aggregate(
        jobs=tuple(per_job),
        professional_charges=money(sum((c.priced.amount for c in per_job), ZERO)),
        registration_charges=money(sum((c.registration_charges for c in per_job), ZERO)),
        ca_charges=money(sum((c.ca_charges for c in per_job), ZERO)),
        ce_charges=money(sum((c.ce_charges for c in per_job), ZERO)),
        ca_cert_count=sum(c.ca_cert_count for c in per_job),
        ce_cert_count=sum(c.ce_cert_count for c in per_job),
        application_fees=money(sum((c.application_fees for c in per_job), ZERO)),
        remi_totals=tuple(money(total) for total in remi_totals),
        remi_fields=remi_fields,
        quantity=sum((c.priced.quantity for c in per_job), ZERO),
        percentage=_first_nonzero(c.priced.percentage for c in per_job),
        per_shb=_first_nonzero(c.priced.per_shb for c in per_job),
        gst_type=gst_type,
        gst_rates=gst_rates,
    )


# ==================== Reward / discount ====================

def clamp_reward_discount(reward: Any, discount: Any, base_amount: Any) -> Tuple[Decimal, Decimal]:
    """Clamp reward and discount into [0, base amount]."""
    base = non_negative(base_amount)
    clamped = []
    for label, value in (("reward", reward), ("discount", discount)):
        amount = money(non_negative(value))
        if amount > base:
            logger.debug(f"{label} amount {amount} exceeds base amount {base}, clamped")
            amount = money(base)
        clamped.append(amount)
    return clamped[0], clamped[1]


def reward_discount_from_percent(percent: Any, base_amount: Any) -> Tuple[Decimal, Decimal]:
    """
    Convert a signed percentage of the base amount to (reward, discount).

    "+10" or 10 is a 10% reward, "-5" a 5% discount. The magnitude is clamped
    to 0..100.
    """
    if percent is None:
        return ZERO, ZERO
    text = str(percent).strip()
    if not text:
        return ZERO, ZERO

    negative = text.startswith("-")
    magnitude = to_decimal(text.replace("+", "").replace("-", ""))
    magnitude = min(max(magnitude, ZERO), Decimal("100"))

    amount = money(non_negative(base_amount) * magnitude / Decimal("100"))
    return (ZERO, amount) if negative else (amount, ZERO)


# ==================== Breakdown ====================

@dataclass(frozen=True)
class InvoiceBreakdown:
    """Billed amounts for one invoice."""
    billing_type: BillingType
    invoice_type: InvoiceType
    professional_charges: Decimal = ZERO
    registration_charges: Decimal = ZERO
    ca_charges: Decimal = ZERO
    ce_charges: Decimal = ZERO
    ca_cert_count: int = 0
    ce_cert_count: int = 0
    application_fees: Decimal = ZERO
    remi_charges: Mapping[ChargeBucket, Decimal] = field(default_factory=dict)
    remi_fields: Tuple[RemiLine, ...] = ()
    gst: GstBreakdown = field(default_factory=GstBreakdown)
    gst_type: Optional[str] = None
    service_subtotal: Decimal = ZERO
    reimbursement_subtotal: Decimal = ZERO
    final_amount: Decimal = ZERO
    reward_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    quantity: Decimal = ZERO
    percentage: Decimal = ZERO
    per_shb: Decimal = ZERO
    is_partial_mode: bool = False
    ledger: Mapping[ChargeBucket, LedgerEntry] = field(default_factory=dict)
    job_ids: Tuple[JobId, ...] = ()

    def charge(self, bucket: ChargeBucket) -> Decimal:
        if bucket in self.remi_charges:
            return self.remi_charges[bucket]
        return {
            ChargeBucket.PROFESSIONAL: self.professional_charges,
            ChargeBucket.REGISTRATION: self.registration_charges,
            ChargeBucket.CA: self.ca_charges,
            ChargeBucket.CE: self.ce_charges,
            ChargeBucket.APPLICATION_FEES: self.application_fees,
        }.get(bucket, ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "billing_type": self.billing_type.value,
            "invoice_type": self.invoice_type.value,
            "professional_charges": float(self.professional_charges),
            "registration_charges": float(self.registration_charges),
            "ca_charges": float(self.ca_charges),
            "ce_charges": float(self.ce_charges),
            "ca_cert_count": self.ca_cert_count,
            "ce_cert_count": self.ce_cert_count,
            "application_fees": float(self.application_fees),
            "remi_charges": {bucket.value: float(amount) for bucket, amount in self.remi_charges.items()},
            "remi_fields": [line.to_dict() for line in self.remi_fields],
            "gst": self.gst.to_dict(),
            "service_subtotal": float(self.service_subtotal),
            "final_amount": float(self.final_amount),
            "reward_amount": float(self.reward_amount),
            "discount_amount": float(self.discount_amount),
        }


def compute_breakdown(
    selection: InvoiceSelection,
    master_data: MasterData,
    prior_invoices: Iterable[PriorInvoiceRecord] = (),
) -> InvoiceBreakdown:
    """
    Full invoice computation for the current selection.

    Pure: callers re-run it on every change (job selection, reward/discount,
    pay amounts) instead of patching a previous result.

    Partial invoices always bill as Service_Reimbursement. When any pay amount
    is set, every bucket is billed from its pay amount (0 when untouched).
    """
    agg = aggregate(
        selection.job_ids,
        master_data.jobs,
        master_data.service_charges,
        master_data.field_values,
    )
    totals = agg.bucket_totals()

    billing_type = selection.billing_type
    ledger_entries: Dict[ChargeBucket, LedgerEntry] = {}
    partial_mode = False
    billed = dict(totals)

    if selection.is_partial:
        billing_type = BillingType.SERVICE_REIMBURSEMENT
        ledger = ledger_for(
            [charges.job_id for charges in agg.jobs],
            totals,
            prior_invoices,
            selection.pay_amounts,
        )
        ledger_entries = ledger.entries()
        partial_mode = ledger.is_partial_mode
        billed = {bucket: ledger.billed(bucket) for bucket in ChargeBucket}

    reward, discount = clamp_reward_discount(
        selection.reward_amount,
        selection.discount_amount,
        billed[ChargeBucket.PROFESSIONAL],
    )

    service_subtotal = ZERO
    if billing_type.includes_service:
        service_subtotal = money(
            sum((billed[bucket] for bucket in SERVICE_BUCKETS), ZERO) + reward - discount
        )

    reimbursement_subtotal = ZERO
    if billing_type.includes_reimbursement:
        reimbursement_subtotal = money(sum((billed[bucket] for bucket in REIMBURSEMENT_BUCKETS), ZERO))

    gst = apply_gst(service_subtotal, agg.gst_type, agg.gst_rates)
    if not billing_type.includes_service:
        gst = gst.without_amounts()

    final_amount = money(service_subtotal + gst.total + reimbursement_subtotal)

    return InvoiceBreakdown(
        billing_type=billing_type,
        invoice_type=selection.invoice_type,
        professional_charges=billed[ChargeBucket.PROFESSIONAL],
        registration_charges=billed[ChargeBucket.REGISTRATION],
        ca_charges=billed[ChargeBucket.CA],
        ce_charges=billed[ChargeBucket.CE],
        ca_cert_count=agg.ca_cert_count,
        ce_cert_count=agg.ce_cert_count,
        application_fees=billed[ChargeBucket.APPLICATION_FEES],
        remi_charges={bucket: billed[bucket] for bucket in REMI_BUCKETS.values()},
        remi_fields=agg.remi_fields,
        gst=gst,
        gst_type=agg.gst_type,
        service_subtotal=service_subtotal,
        reimbursement_subtotal=reimbursement_subtotal,
        final_amount=final_amount,
        reward_amount=reward,
        discount_amount=discount,
        quantity=agg.quantity,
        percentage=agg.percentage,
        per_shb=agg.per_shb,
        is_partial_mode=partial_mode,
        ledger=ledger_entries,
        job_ids=tuple(charges.job_id for charges in agg.jobs),
    )


# ==================== Write boundary ====================

def invoice_charge_fields(breakdown: InvoiceBreakdown) -> Dict[str, Optional[Decimal]]:
    """
    Charge columns for the persisted invoice.

    Service billing nulls the reimbursement columns, Reimbursement billing
    nulls the service columns (and reward/discount); combined billing keeps
    all of them.
    """
    include_service = breakdown.billing_type.includes_service
    include_reimbursement = breakdown.billing_type.includes_reimbursement

    values: Dict[str, Optional[Decimal]] = {}
    for bucket in SERVICE_BUCKETS:
        values[bucket.value] = breakdown.charge(bucket) if include_service else None
    for bucket in REIMBURSEMENT_BUCKETS:
        values[bucket.value] = breakdown.charge(bucket) if include_reimbursement else None

    values["reward_amount"] = breakdown.reward_amount if include_service else None
    values["discount_amount"] = breakdown.discount_amount if include_service else None
    values["cgst_amount"] = breakdown.gst.cgst_amount if include_service else None
    values["sgst_amount"] = breakdown.gst.sgst_amount if include_service else None
    values["igst_amount"] = breakdown.gst.igst_amount if include_service else None
    return values
