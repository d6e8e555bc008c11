"""
Partial Settlement Ledger

Tracks, per charge bucket, how much of a job set's computed total has
already been invoiced and how much this invoice bills:

    opening    sum of the bucket's stored charge over every prior active
               invoice that covers any selected job (partials compound)
    pay        this invoice's amount, clamped to [0, total - opening]
    remaining  total - opening - pay

Once any bucket has pay > 0 the whole invoice is billed from pay amounts.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional

from app.services.invoicing.numbers import ZERO, money, to_decimal
from app.services.invoicing.records import (
    ChargeBucket,
    JobId,
    PriorInvoiceRecord,
    bucket_map,
)

logger = logging.getLogger(__name__)


def covering_invoices(
    selected_job_ids: Iterable[JobId],
    prior_invoices: Iterable[PriorInvoiceRecord],
) -> list:
    """Active prior invoices sharing at least one job with the selection."""
    selected = {str(job_id) for job_id in selected_job_ids}
    if not selected:
        return []
    return [
        invoice for invoice in prior_invoices
        if invoice.is_active and selected & {str(job_id) for job_id in invoice.job_ids}
    ]


def compute_opening(
    bucket: ChargeBucket,
    selected_job_ids: Iterable[JobId],
    prior_invoices: Iterable[PriorInvoiceRecord],
) -> Decimal:
    """Cumulative amount already invoiced for a bucket against the job set."""
    total = ZERO
    for invoice in covering_invoices(selected_job_ids, prior_invoices):
        total += invoice.charge(bucket)
    return money(total)


@dataclass(frozen=True)
class LedgerEntry:
    bucket: ChargeBucket
    total: Decimal
    opening: Decimal
    pay: Decimal
    remaining: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket.value,
            "total": float(self.total),
            "opening": float(self.opening),
            "pay": float(self.pay),
            "remaining": float(self.remaining),
        }


class PartialSettlementLedger:
    """
    Opening/pay/remaining amounts for one invoice-creation session.

    Usage:
        ledger = PartialSettlementLedger()
        ledger.select_jobs(job_ids, prior_invoices, bucket_totals)
        ledger.set_pay(ChargeBucket.PROFESSIONAL, 500)
        ledger.remaining(ChargeBucket.PROFESSIONAL)
    """

    def __init__(self, totals: Optional[Mapping[ChargeBucket, Any]] = None):
        self._totals: Dict[ChargeBucket, Decimal] = bucket_map()
        self._opening: Dict[ChargeBucket, Decimal] = bucket_map()
        self._pay: Dict[ChargeBucket, Decimal] = bucket_map()
        if totals:
            self._set_totals(totals)

    def _set_totals(self, totals: Mapping[ChargeBucket, Any]) -> None:
        self._totals = bucket_map()
        for bucket, amount in totals.items():
            self._totals[bucket] = money(amount)

    def select_jobs(
        self,
        job_ids: Iterable[JobId],
        prior_invoices: Iterable[PriorInvoiceRecord],
        totals: Optional[Mapping[ChargeBucket, Any]] = None,
    ) -> None:
        """
        Start over for a new job selection.

        Opening amounts are recomputed from scratch and every pay amount is
        reset to 0.
        """
        job_ids = list(job_ids)
        prior_invoices = list(prior_invoices)
        if totals is not None:
            self._set_totals(totals)
        self._opening = {
            bucket: compute_opening(bucket, job_ids, prior_invoices)
            for bucket in ChargeBucket
        }
        self._pay = bucket_map()

    def total(self, bucket: ChargeBucket) -> Decimal:
        return self._totals[bucket]

    def opening(self, bucket: ChargeBucket) -> Decimal:
        return self._opening[bucket]

    def pay(self, bucket: ChargeBucket) -> Decimal:
        return self._pay[bucket]

    def max_pay(self, bucket: ChargeBucket) -> Decimal:
        available = self._totals[bucket] - self._opening[bucket]
        return available if available > ZERO else ZERO

    def set_pay(self, bucket: ChargeBucket, requested: Any) -> Decimal:
        """Set a pay amount, clamped into [0, total - opening]."""
        amount = money(requested)
        upper = self.max_pay(bucket)
        clamped = min(max(amount, ZERO), upper)
        if clamped != amount:
            logger.debug(f"Pay amount for {bucket.value} clamped from {amount} to {clamped}")
        self._pay[bucket] = clamped
        return clamped

    def remaining(self, bucket: ChargeBucket) -> Decimal:
        return self._totals[bucket] - self._opening[bucket] - self._pay[bucket]

    @property
    def is_partial_mode(self) -> bool:
        return any(amount > ZERO for amount in self._pay.values())

    def billed(self, bucket: ChargeBucket) -> Decimal:
        """Amount this invoice bills for a bucket."""
        return self._pay[bucket] if self.is_partial_mode else self._totals[bucket]

    def entries(self) -> Dict[ChargeBucket, LedgerEntry]:
        return {
            bucket: LedgerEntry(
                bucket=bucket,
                total=self._totals[bucket],
                opening=self._opening[bucket],
                pay=self._pay[bucket],
                remaining=self.remaining(bucket),
            )
            for bucket in ChargeBucket
        }


def ledger_for(
    job_ids: Iterable[JobId],
    totals: Mapping[ChargeBucket, Any],
    prior_invoices: Iterable[PriorInvoiceRecord],
    pay_amounts: Optional[Mapping[Any, Any]] = None,
) -> PartialSettlementLedger:
    """Build a ledger and apply requested pay amounts (keyed by bucket or column name)."""
    ledger = PartialSettlementLedger()
    ledger.select_jobs(job_ids, prior_invoices, totals)
    for key, requested in (pay_amounts or {}).items():
        try:
            bucket = ChargeBucket(key)
        except ValueError:
            logger.debug(f"Ignoring pay amount for unknown bucket {key!r}")
            continue
        if to_decimal(requested) != ZERO:
            ledger.set_pay(bucket, requested)
    return ledger
