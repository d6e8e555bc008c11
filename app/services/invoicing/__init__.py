"""
Invoice Computation Engine

Pure, synchronous pricing/tax/settlement logic over immutable job snapshots:
- field_resolver: alias-tolerant custom field lookup and typed JobFieldSnapshot
- pricing_engine: the twelve professional-charge formulas
- gst_calculator: CGST/SGST/IGST by gst_type
- aggregator: multi-job bucket totals and the final InvoiceBreakdown
- partial_settlement: opening/pay/remaining ledger for partial invoices
- annexure: per-job itemized table for multi-job invoices
- eligibility: which jobs can be selected for a new invoice
"""

from app.services.invoicing.aggregator import (
    Aggregate,
    InvoiceBreakdown,
    JobCharges,
    RemiLine,
    aggregate,
    clamp_reward_discount,
    compute_breakdown,
    invoice_charge_fields,
    reward_discount_from_percent,
)
from app.services.invoicing.annexure import Annexure, build_annexure
from app.services.invoicing.eligibility import eligible_jobs
from app.services.invoicing.field_resolver import (
    FIELD_ALIASES,
    JobField,
    JobFieldSnapshot,
    resolve,
    resolve_field,
)
from app.services.invoicing.gst_calculator import GstBreakdown, apply_gst
from app.services.invoicing.partial_settlement import (
    LedgerEntry,
    PartialSettlementLedger,
    compute_opening,
)
from app.services.invoicing.pricing_engine import (
    FORMULA_TABLE,
    PricedJob,
    PricingFormula,
    price_job,
    select_formula,
)
from app.services.invoicing.records import (
    BillingType,
    ChargeBucket,
    GstRateRecord,
    GstType,
    InvoiceSelection,
    InvoiceType,
    JobBillingType,
    JobRecord,
    JobStatus,
    MasterData,
    PriorInvoiceRecord,
    ServiceChargeRecord,
)

__all__ = [
    "Aggregate",
    "Annexure",
    "BillingType",
    "ChargeBucket",
    "FIELD_ALIASES",
    "FORMULA_TABLE",
    "GstBreakdown",
    "GstRateRecord",
    "GstType",
    "InvoiceBreakdown",
    "InvoiceSelection",
    "InvoiceType",
    "JobBillingType",
    "JobCharges",
    "JobField",
    "JobFieldSnapshot",
    "JobRecord",
    "JobStatus",
    "LedgerEntry",
    "MasterData",
    "PartialSettlementLedger",
    "PricedJob",
    "PricingFormula",
    "PriorInvoiceRecord",
    "RemiLine",
    "ServiceChargeRecord",
    "aggregate",
    "apply_gst",
    "build_annexure",
    "clamp_reward_discount",
    "compute_breakdown",
    "compute_opening",
    "eligible_jobs",
    "invoice_charge_fields",
    "price_job",
    "resolve",
    "resolve_field",
    "reward_discount_from_percent",
    "select_formula",
]
