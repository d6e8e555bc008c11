"""Which jobs may be selected for a new invoice."""
import logging
from typing import Iterable, List, Set

from app.core.enum_utils import parse_choice
from app.services.invoicing.records import (
    BillingType,
    InvoiceType,
    JobBillingType,
    JobRecord,
    JobStatus,
    PriorInvoiceRecord,
    parse_billing_type,
    parse_invoice_type,
)

logger = logging.getLogger(__name__)


# Invoice billing type -> job billing classifications it can bill
ACCEPTED_JOB_BILLING = {
    BillingType.SERVICE: {JobBillingType.SERVICE, JobBillingType.SERVICE_REIMBURSEMENT_SPLIT},
    BillingType.REIMBURSEMENT: {JobBillingType.REIMBURSEMENT, JobBillingType.SERVICE_REIMBURSEMENT_SPLIT},
    BillingType.SERVICE_REIMBURSEMENT: {JobBillingType.SERVICE_REIMBURSEMENT},
}

# Invoice type -> job statuses it can bill
ACCEPTED_JOB_STATUS = {
    InvoiceType.FULL: {JobStatus.CLOSED},
    InvoiceType.PARTIAL: {JobStatus.IN_PROCESS, JobStatus.CLOSED},
}


def invoiced_job_ids(
    billing_type: BillingType,
    invoice_type: InvoiceType,
    prior_invoices: Iterable[PriorInvoiceRecord],
) -> Set[str]:
    """
    Ids (as strings) of jobs already covered by an active invoice of the
    same billing type.

    For partial selection only full invoices block a job, so partial
    settlements can keep compounding.
    """
    blocked: Set[str] = set()
    for invoice in prior_invoices:
        if not invoice.is_active:
            continue
        if parse_billing_type(invoice.billing_type) != billing_type:
            continue
        if invoice_type == InvoiceType.PARTIAL and parse_invoice_type(invoice.invoice_type) == InvoiceType.PARTIAL:
            continue
        blocked.update(str(job_id) for job_id in invoice.job_ids)
    return blocked


def is_eligible(job: JobRecord, billing_type: BillingType, invoice_type: InvoiceType) -> bool:
    job_billing = parse_choice(job.billing_type, JobBillingType)
    if job_billing not in ACCEPTED_JOB_BILLING[billing_type]:
        return False

    status = parse_choice(job.status, JobStatus)
    if status not in ACCEPTED_JOB_STATUS[invoice_type]:
        return False

    # Jobs flagged for partial billing are never offered, whatever the invoice type
    return parse_invoice_type(job.invoice_type) == InvoiceType.FULL


def eligible_jobs(
    jobs: Iterable[JobRecord],
    billing_type: BillingType,
    invoice_type: InvoiceType,
    prior_invoices: Iterable[PriorInvoiceRecord] = (),
) -> List[JobRecord]:
    """Jobs matching the billing/invoice type and not already invoiced."""
    if invoice_type == InvoiceType.PARTIAL:
        billing_type = BillingType.SERVICE_REIMBURSEMENT

    blocked = invoiced_job_ids(billing_type, invoice_type, prior_invoices)
    result = [
        job for job in jobs
        if is_eligible(job, billing_type, invoice_type) and str(job.id) not in blocked
    ]
    logger.debug(
        f"{len(result)} eligible jobs for {billing_type.value}/{invoice_type.value}, "
        f"{len(blocked)} already invoiced"
    )
    return result
