from conftest import make_job
from app.services.invoicing.eligibility import eligible_jobs, invoiced_job_ids, is_eligible
from app.services.invoicing.records import BillingType, InvoiceType, PriorInvoiceRecord


def invoice(job_ids, billing_type="Service_Reimbursement", invoice_type="full_invoice", status="Active"):
    return PriorInvoiceRecord(
        id="inv",
        billing_type=billing_type,
        invoice_type=invoice_type,
        invoice_status=status,
        invoice_stage_status="Draft",
        job_ids=frozenset(job_ids),
    )


def test_full_invoice_needs_closed_full_job():
    assert is_eligible(make_job(), BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL)
    assert not is_eligible(make_job(status="In_process"), BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL)
    assert not is_eligible(make_job(invoice_type="partial_invoice"), BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL)


def test_split_jobs_bill_service_and_reimbursement_separately():
    job = make_job(billing_type="Service_Reimbursement_Split")
    assert is_eligible(job, BillingType.SERVICE, InvoiceType.FULL)
    assert is_eligible(job, BillingType.REIMBURSEMENT, InvoiceType.FULL)
    assert not is_eligible(job, BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL)


def test_partial_accepts_jobs_in_process():
    job = make_job(status="In_process")
    assert is_eligible(job, BillingType.SERVICE_REIMBURSEMENT, InvoiceType.PARTIAL)


def test_partial_still_needs_full_invoice_job():
    job = make_job(status="In_process", invoice_type="partial_invoice")
    assert not is_eligible(job, BillingType.SERVICE_REIMBURSEMENT, InvoiceType.PARTIAL)
    assert not is_eligible(make_job(invoice_type="partial_invoice"), BillingType.SERVICE_REIMBURSEMENT, InvoiceType.PARTIAL)


def test_invoiced_jobs_excluded():
    jobs = [make_job(1), make_job(2)]
    result = eligible_jobs(jobs, BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL, [invoice([1])])
    assert [job.id for job in result] == [2]


def test_deleted_invoice_releases_jobs():
    jobs = [make_job(1)]
    result = eligible_jobs(
        jobs, BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL, [invoice([1], status="Delete")]
    )
    assert [job.id for job in result] == [1]


def test_other_billing_type_does_not_block():
    blocked = invoiced_job_ids(BillingType.REIMBURSEMENT, InvoiceType.FULL, [invoice([1], billing_type="Service")])
    assert blocked == set()


def test_partial_invoices_keep_compounding():
    priors = [invoice([1], invoice_type="partial_invoice")]
    assert invoiced_job_ids(BillingType.SERVICE_REIMBURSEMENT, InvoiceType.PARTIAL, priors) == set()
    assert invoiced_job_ids(BillingType.SERVICE_REIMBURSEMENT, InvoiceType.FULL, priors) == {"1"}
