"""Immutable snapshot records consumed by the invoicing core.

The persistence layer converts ORM rows into these records once per request;
every core function takes them as read-only input and returns new values.
"""
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from app.core.enum_utils import parse_choice
from app.services.invoicing.numbers import ZERO, to_decimal


JobId = Union[uuid.UUID, int, str]


class BillingType(str, Enum):
    """What an invoice bills."""
    SERVICE = "Service"
    REIMBURSEMENT = "Reimbursement"
    SERVICE_REIMBURSEMENT = "Service_Reimbursement"

    @property
    def includes_service(self) -> bool:
        return self in (BillingType.SERVICE, BillingType.SERVICE_REIMBURSEMENT)

    @property
    def includes_reimbursement(self) -> bool:
        return self in (BillingType.REIMBURSEMENT, BillingType.SERVICE_REIMBURSEMENT)


class JobBillingType(str, Enum):
    """Billing classification stored on a job."""
    SERVICE = "Service"
    REIMBURSEMENT = "Reimbursement"
    SERVICE_REIMBURSEMENT = "Service_Reimbursement"
    SERVICE_REIMBURSEMENT_SPLIT = "Service_Reimbursement_Split"


class InvoiceType(str, Enum):
    FULL = "full_invoice"
    PARTIAL = "partial_invoice"


class JobStatus(str, Enum):
    IN_PROCESS = "In_process"
    CLOSED = "Closed"


class InvoiceStatus(str, Enum):
    ACTIVE = "Active"
    DELETE = "Delete"


class InvoiceStageStatus(str, Enum):
    DRAFT = "Draft"
    PROFORMA = "Proforma"
    CANCELED = "Canceled"


class GstType(str, Enum):
    """GST classification on a job's service charge."""
    SC = "SC"              # State + Central (CGST + SGST)
    I = "I"                # Interstate (IGST)
    EXEMPTED = "EXEMPTED"


class ChargeBucket(str, Enum):
    """
    Charge buckets tracked per invoice.

    Values are the column names used on the persisted invoice, so a prior
    invoice's stored charge for a bucket is read by value.
    """
    PROFESSIONAL = "professional_charges"
    REGISTRATION = "registration_other_charges"
    CA = "ca_charges"
    CE = "ce_charges"
    APPLICATION_FEES = "application_fees"
    REMI_ONE = "remi_one_charges"
    REMI_TWO = "remi_two_charges"
    REMI_THREE = "remi_three_charges"
    REMI_FOUR = "remi_four_charges"
    REMI_FIVE = "remi_five_charges"


SERVICE_BUCKETS = (
    ChargeBucket.PROFESSIONAL,
    ChargeBucket.REGISTRATION,
    ChargeBucket.CA,
    ChargeBucket.CE,
)

REIMBURSEMENT_BUCKETS = (
    ChargeBucket.APPLICATION_FEES,
    ChargeBucket.REMI_ONE,
    ChargeBucket.REMI_TWO,
    ChargeBucket.REMI_THREE,
    ChargeBucket.REMI_FOUR,
    ChargeBucket.REMI_FIVE,
)

# Slot index (1-5) -> bucket
REMI_BUCKETS = {
    1: ChargeBucket.REMI_ONE,
    2: ChargeBucket.REMI_TWO,
    3: ChargeBucket.REMI_THREE,
    4: ChargeBucket.REMI_FOUR,
    5: ChargeBucket.REMI_FIVE,
}

REMI_SLOT_NAMES = {1: "one", 2: "two", 3: "three", 4: "four", 5: "five"}


_BILLING_ALIASES = {
    "servicereimbursement": BillingType.SERVICE_REIMBURSEMENT,
    "serviceandreimbursement": BillingType.SERVICE_REIMBURSEMENT,
}


def parse_billing_type(value: Any) -> Optional[BillingType]:
    return parse_choice(value, BillingType, _BILLING_ALIASES)


def parse_invoice_type(value: Any) -> Optional[InvoiceType]:
    return parse_choice(value, InvoiceType)


def parse_gst_type(value: Any) -> Optional[GstType]:
    """Unset, blank or unknown tags return None (the default GST policy)."""
    return parse_choice(value, GstType)


@dataclass(frozen=True)
class GstRateRecord:
    """Base SAC rates from the job register's GST rate master."""
    sac_no: Optional[str] = None
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO


@dataclass(frozen=True)
class JobRecord:
    id: JobId
    job_no: Optional[str] = None
    status: Optional[str] = None
    billing_type: Optional[str] = None
    invoice_type: Optional[str] = None
    quantity: Any = None
    remark: Optional[str] = None
    account_id: Optional[Any] = None
    job_register_id: Optional[Any] = None
    gst_rate: Optional[GstRateRecord] = None
    # Legacy column values kept on the job row itself; used when the
    # custom field store has no value for a field.
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceChargeRecord:
    """The authoritative (active) service-charge row of a job."""
    fixed: Any = None
    in_percentage: Any = None
    min: Any = None
    max: Any = None
    per_shb: Any = None
    percentage_per_shb: bool = False
    fixed_percentage_per_shb: bool = False
    registration_other_charges: Any = None
    ca_charges: Any = None
    ce_charges: Any = None
    application_fees: Any = None
    gst_type: Optional[str] = None
    # Slot index (1-5) -> (description, raw charge text)
    remi: Mapping[int, Tuple[Optional[str], Any]] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ServiceChargeRecord":
        """Build from a flat mapping using the stored column names."""
        remi = {
            slot: (row.get(f"remi_{name}_desc"), row.get(f"remi_{name}_charges"))
            for slot, name in REMI_SLOT_NAMES.items()
        }
        return cls(
            fixed=row.get("fixed"),
            in_percentage=row.get("in_percentage"),
            min=row.get("min"),
            max=row.get("max"),
            per_shb=row.get("per_shb"),
            percentage_per_shb=yes_flag(row.get("percentage_per_shb")),
            fixed_percentage_per_shb=yes_flag(row.get("fixed_percentage_per_shb")),
            registration_other_charges=row.get("registration_other_charges"),
            ca_charges=row.get("ca_charges"),
            ce_charges=row.get("ce_charges"),
            application_fees=row.get("application_fees"),
            gst_type=row.get("gst_type"),
            remi=remi,
        )


def yes_flag(value: Any) -> bool:
    """Combination flags are stored as 'Yes'/'No' strings."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("yes", "true", "1") if value is not None else False


@dataclass(frozen=True)
class PriorInvoiceRecord:
    """A previously persisted invoice as seen by the settlement ledger."""
    id: Any
    billing_type: Optional[str]
    invoice_type: Optional[str]
    invoice_status: Optional[str]
    invoice_stage_status: Optional[str]
    job_ids: FrozenSet[JobId]
    charges: Mapping[ChargeBucket, Decimal] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return (
            self.invoice_status == InvoiceStatus.ACTIVE.value
            and self.invoice_stage_status != InvoiceStageStatus.CANCELED.value
        )

    def charge(self, bucket: ChargeBucket) -> Decimal:
        return to_decimal(self.charges.get(bucket))


@dataclass(frozen=True)
class MasterData:
    """Everything the core needs about the selected jobs."""
    jobs: Mapping[JobId, JobRecord]
    service_charges: Mapping[JobId, ServiceChargeRecord] = field(default_factory=dict)
    field_values: Mapping[JobId, Mapping[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class InvoiceSelection:
    """The user's current invoice-creation choices."""
    job_ids: Tuple[JobId, ...]
    billing_type: BillingType = BillingType.SERVICE_REIMBURSEMENT
    invoice_type: InvoiceType = InvoiceType.FULL
    reward_amount: Any = None
    discount_amount: Any = None
    pay_amounts: Mapping[ChargeBucket, Any] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return self.invoice_type == InvoiceType.PARTIAL


def bucket_map(default: Decimal = ZERO) -> Dict[ChargeBucket, Decimal]:
    return {bucket: default for bucket in ChargeBucket}
