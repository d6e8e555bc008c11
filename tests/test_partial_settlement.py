from decimal import Decimal

import pytest

from app.services.invoicing.partial_settlement import (
    PartialSettlementLedger,
    compute_opening,
    ledger_for,
)
from app.services.invoicing.records import ChargeBucket, PriorInvoiceRecord

PRO = ChargeBucket.PROFESSIONAL
REMI = ChargeBucket.REMI_ONE


def prior(job_ids, status="Active", stage="Draft", **charges):
    return PriorInvoiceRecord(
        id=f"inv-{len(charges)}-{'-'.join(map(str, job_ids))}",
        billing_type="Service_Reimbursement",
        invoice_type="partial_invoice",
        invoice_status=status,
        invoice_stage_status=stage,
        job_ids=frozenset(job_ids),
        charges={ChargeBucket(name): Decimal(str(value)) for name, value in charges.items()},
    )


TOTALS = {PRO: Decimal("1500"), REMI: Decimal("50")}


class TestOpening:
    def test_partials_compound(self):
        invoices = [
            prior([1], professional_charges=400),
            prior([1, 2], professional_charges=300),
        ]
        assert compute_opening(PRO, [1], invoices) == Decimal("700.00")

    def test_only_intersecting_invoices(self):
        invoices = [prior([2], professional_charges=400)]
        assert compute_opening(PRO, [1], invoices) == Decimal("0")

    def test_inactive_invoices_ignored(self):
        invoices = [
            prior([1], status="Delete", professional_charges=400),
            prior([1], stage="Canceled", professional_charges=300),
        ]
        assert compute_opening(PRO, [1], invoices) == Decimal("0")

    def test_ids_compared_as_text(self):
        invoices = [prior(["7"], professional_charges=250)]
        assert compute_opening(PRO, [7], invoices) == Decimal("250.00")


class TestLedger:
    def test_invariant_after_set_pay(self):
        ledger = PartialSettlementLedger()
        ledger.select_jobs([1], [prior([1], professional_charges=400)], TOTALS)

        for requested in (0, 100, 1100, 5000, -20):
            ledger.set_pay(PRO, requested)
            assert ledger.opening(PRO) + ledger.pay(PRO) + ledger.remaining(PRO) == ledger.total(PRO)
            assert Decimal("0") <= ledger.pay(PRO) <= ledger.total(PRO) - ledger.opening(PRO)

    @pytest.mark.parametrize(
        "requested, expected",
        [(500, "500.00"), (5000, "1100.00"), (-5, "0.00")],
    )
    def test_pay_clamped(self, requested, expected):
        ledger = PartialSettlementLedger()
        ledger.select_jobs([1], [prior([1], professional_charges=400)], TOTALS)
        assert ledger.set_pay(PRO, requested) == Decimal(expected)

    def test_fully_invoiced_bucket_accepts_no_pay(self):
        ledger = PartialSettlementLedger()
        ledger.select_jobs([1], [prior([1], professional_charges=2000)], TOTALS)
        assert ledger.max_pay(PRO) == Decimal("0")
        assert ledger.set_pay(PRO, 100) == Decimal("0")

    def test_select_jobs_resets_pay_and_recomputes_opening(self):
        invoices = [prior([1], professional_charges=400)]
        ledger = PartialSettlementLedger()
        ledger.select_jobs([1], invoices, TOTALS)
        ledger.set_pay(PRO, 300)
        assert ledger.is_partial_mode

        ledger.select_jobs([2], invoices, TOTALS)
        assert ledger.pay(PRO) == Decimal("0")
        assert ledger.opening(PRO) == Decimal("0")
        assert not ledger.is_partial_mode

    def test_partial_mode_bills_pay_amounts(self):
        ledger = PartialSettlementLedger()
        ledger.select_jobs([1], [], TOTALS)
        assert ledger.billed(PRO) == Decimal("1500.00")

        ledger.set_pay(REMI, 20)
        assert ledger.billed(REMI) == Decimal("20.00")
        # untouched buckets bill nothing once any pay amount is set
        assert ledger.billed(PRO) == Decimal("0")

    def test_entries_cover_every_bucket(self):
        ledger = PartialSettlementLedger(TOTALS)
        assert set(ledger.entries()) == set(ChargeBucket)


def test_ledger_for_accepts_column_names():
    ledger = ledger_for(
        [1],
        TOTALS,
        [],
        {"professional_charges": "600", "unknown_charges": 10, REMI: 0},
    )
    assert ledger.pay(PRO) == Decimal("600.00")
    assert ledger.pay(REMI) == Decimal("0")
    assert ledger.remaining(PRO) == Decimal("900.00")
