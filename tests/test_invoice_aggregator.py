from decimal import Decimal

import pytest

from conftest import make_charge, make_job
from app.services.invoicing.aggregator import (
    aggregate,
    clamp_reward_discount,
    compute_breakdown,
    invoice_charge_fields,
    remi_lines,
    reward_discount_from_percent,
)
from app.services.invoicing.records import (
    BillingType,
    ChargeBucket,
    InvoiceSelection,
    InvoiceType,
    MasterData,
    PriorInvoiceRecord,
)


@pytest.fixture
def master():
    """
    Job 1: 500 + 1% of 100000 = 1500, registration 200, 2 CA certs at 100,
           application fees 150, Freight 50, SC.
    Job 2: max(2% of 20000, 500) = 500, nothing else.
    """
    jobs = {
        1: make_job(1, job_no="JOB-001"),
        2: make_job(2, job_no="JOB-002"),
    }
    service_charges = {
        1: make_charge(
            fixed=500,
            in_percentage=1,
            registration_other_charges=200,
            ca_charges=100,
            application_fees=150,
            gst_type="SC",
            remi={1: ("Freight", "50")},
        ),
        2: make_charge(in_percentage=2, min=500, gst_type="SC"),
    }
    field_values = {
        1: {"Claim Amount after Finalization": "100000", "No of CAC": "2"},
        2: {"Claim Amount after Finalization": "20000"},
    }
    return MasterData(jobs=jobs, service_charges=service_charges, field_values=field_values)


def test_remi_summed_by_slot(master):
    agg = aggregate([1, 2], master.jobs, master.service_charges, master.field_values)
    assert agg.remi_total(1) == Decimal("50.00")
    assert [line.description for line in agg.remi_fields] == ["Freight"]
    assert agg.professional_charges == Decimal("2000.00")
    assert agg.ca_charges == Decimal("200.00")
    assert agg.ca_cert_count == 2


def test_different_descriptions_share_a_slot(master):
    charges = dict(master.service_charges)
    charges[2] = make_charge(in_percentage=2, remi={1: ("Courier", "30")})
    agg = aggregate([1, 2], master.jobs, charges, master.field_values)
    assert agg.remi_total(1) == Decimal("80.00")
    assert agg.remi_fields[0].description == "Freight"


def test_aggregate_is_idempotent(master):
    first = aggregate([1, 2], master.jobs, master.service_charges, master.field_values)
    second = aggregate([1, 2], master.jobs, master.service_charges, master.field_values)
    assert first == second


def test_unknown_jobs_skipped(master):
    agg = aggregate([1, 99], master.jobs, master.service_charges, master.field_values)
    assert len(agg.jobs) == 1


def test_remi_lines_skip_blank_descriptions():
    charge = make_charge(remi={1: ("NULL", "10"), 2: ("", "5"), 3: ("Postage", "abc")})
    lines = remi_lines(charge)
    assert [(line.slot, line.charges) for line in lines] == [(3, Decimal("0.00"))]


class TestRewardDiscount:
    def test_reward_clamped_to_base(self):
        assert clamp_reward_discount(100, None, 80) == (Decimal("80.00"), Decimal("0.00"))

    def test_negative_values_become_zero(self):
        assert clamp_reward_discount(-10, -5, 80) == (Decimal("0.00"), Decimal("0.00"))

    def test_percent(self):
        assert reward_discount_from_percent("+10", 1500) == (Decimal("150.00"), Decimal("0"))
        assert reward_discount_from_percent("-5", 1500) == (Decimal("0"), Decimal("75.00"))
        assert reward_discount_from_percent("250", 100) == (Decimal("100.00"), Decimal("0"))
        assert reward_discount_from_percent("", 100) == (Decimal("0"), Decimal("0"))


class TestBreakdown:
    def test_full_service_reimbursement(self, master):
        breakdown = compute_breakdown(InvoiceSelection(job_ids=(1,)), master)

        assert breakdown.professional_charges == Decimal("1500.00")
        assert breakdown.service_subtotal == Decimal("1900.00")
        assert breakdown.gst.cgst_amount == Decimal("171.00")
        assert breakdown.gst.sgst_amount == Decimal("171.00")
        assert breakdown.reimbursement_subtotal == Decimal("200.00")
        assert breakdown.final_amount == Decimal("2442.00")
        assert not breakdown.is_partial_mode

    def test_multi_job(self, master):
        breakdown = compute_breakdown(InvoiceSelection(job_ids=(1, 2)), master)
        assert breakdown.service_subtotal == Decimal("2400.00")
        assert breakdown.gst.total == Decimal("432.00")
        assert breakdown.final_amount == Decimal("3032.00")

    def test_reward_and_discount(self, master):
        selection = InvoiceSelection(job_ids=(1,), reward_amount=100, discount_amount=50)
        breakdown = compute_breakdown(selection, master)
        assert breakdown.service_subtotal == Decimal("1950.00")

    def test_service_only_drops_reimbursements(self, master):
        selection = InvoiceSelection(job_ids=(1,), billing_type=BillingType.SERVICE)
        breakdown = compute_breakdown(selection, master)
        assert breakdown.reimbursement_subtotal == Decimal("0")
        assert breakdown.final_amount == Decimal("2242.00")

        fields = invoice_charge_fields(breakdown)
        assert fields["professional_charges"] == Decimal("1500.00")
        assert fields["application_fees"] is None
        assert fields["remi_one_charges"] is None

    def test_reimbursement_only_is_untaxed(self, master):
        selection = InvoiceSelection(job_ids=(1,), billing_type=BillingType.REIMBURSEMENT, reward_amount=50)
        breakdown = compute_breakdown(selection, master)
        assert breakdown.service_subtotal == Decimal("0")
        assert breakdown.gst.total == Decimal("0")
        assert breakdown.gst.cgst_rate == Decimal("9")
        assert breakdown.final_amount == Decimal("200.00")

        fields = invoice_charge_fields(breakdown)
        assert fields["professional_charges"] is None
        assert fields["reward_amount"] is None
        assert fields["cgst_amount"] is None
        assert fields["remi_one_charges"] == Decimal("50.00")

    def test_partial_without_pay_bills_totals(self, master):
        selection = InvoiceSelection(
            job_ids=(1,),
            billing_type=BillingType.SERVICE,
            invoice_type=InvoiceType.PARTIAL,
        )
        breakdown = compute_breakdown(selection, master)
        assert breakdown.billing_type == BillingType.SERVICE_REIMBURSEMENT
        assert not breakdown.is_partial_mode
        assert breakdown.final_amount == Decimal("2442.00")

    def test_partial_pay(self, master):
        previous = PriorInvoiceRecord(
            id="p1",
            billing_type="Service_Reimbursement",
            invoice_type="partial_invoice",
            invoice_status="Active",
            invoice_stage_status="Draft",
            job_ids=frozenset({1}),
            charges={ChargeBucket.PROFESSIONAL: Decimal("500")},
        )
        selection = InvoiceSelection(
            job_ids=(1,),
            invoice_type=InvoiceType.PARTIAL,
            pay_amounts={ChargeBucket.PROFESSIONAL: 2000},
        )
        breakdown = compute_breakdown(selection, master, [previous])

        assert breakdown.is_partial_mode
        assert breakdown.professional_charges == Decimal("1000.00")
        assert breakdown.registration_charges == Decimal("0")
        assert breakdown.service_subtotal == Decimal("1000.00")
        assert breakdown.final_amount == Decimal("1180.00")

        entry = breakdown.ledger[ChargeBucket.PROFESSIONAL]
        assert (entry.total, entry.opening, entry.pay, entry.remaining) == (
            Decimal("1500.00"), Decimal("500.00"), Decimal("1000.00"), Decimal("0.00")
        )
