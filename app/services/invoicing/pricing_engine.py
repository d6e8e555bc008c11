"""
Pricing Formula Engine

Derives a job's professional-service amount from its service-charge row.

A charge row configures up to five scalars. Which of them are present
(value > 0) selects exactly one formula from FORMULA_TABLE:

    key = (has_fixed, has_percentage, has_min, has_max, has_per_shb)

Twelve keys are defined; every other combination maps to the explicit
FIXED_FALLBACK formula (fixed if present, else 0).

    percentage_amount = claim_amount * in_percentage / 100
    per_unit_amount   = quantity * per_shb
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from app.services.invoicing.field_resolver import JobField, JobFieldSnapshot
from app.services.invoicing.numbers import ZERO, money, non_negative
from app.services.invoicing.records import JobRecord, ServiceChargeRecord

logger = logging.getLogger(__name__)


class PricingFormula(str, Enum):
    """Pricing formulas, numbered as shown on the service-charge screen."""
    FIXED = "fixed"                                          # 1
    PERCENTAGE = "percentage"                                # 2
    PERCENTAGE_OR_MIN = "percentage_or_min"                  # 3
    PERCENTAGE_OR_MAX = "percentage_or_max"                  # 4
    PERCENTAGE_MIN_MAX = "percentage_min_max"                # 5
    PER_UNIT = "per_unit"                                    # 6
    FIXED_PLUS_PERCENTAGE = "fixed_plus_percentage"          # 7
    FIXED_PLUS_PERCENTAGE_OR_MIN = "fixed_plus_percentage_or_min"  # 8
    FIXED_PLUS_PERCENTAGE_OR_MAX = "fixed_plus_percentage_or_max"  # 9
    FIXED_PLUS_PERCENTAGE_MIN_MAX = "fixed_plus_percentage_min_max"  # 10
    PERCENTAGE_PER_UNIT = "percentage_per_unit"              # 11
    FIXED_PERCENTAGE_PER_UNIT = "fixed_percentage_per_unit"  # 12
    FIXED_FALLBACK = "fixed_fallback"


@dataclass(frozen=True)
class PricingInputs:
    """Non-negative scalars a formula is evaluated against."""
    fixed: Decimal
    in_percentage: Decimal
    min: Decimal
    max: Decimal
    per_shb: Decimal
    claim_amount: Decimal
    quantity: Decimal
    percentage_per_shb: bool = False
    fixed_percentage_per_shb: bool = False

    @property
    def percentage_amount(self) -> Decimal:
        return self.claim_amount * self.in_percentage / Decimal("100")

    @property
    def per_unit_amount(self) -> Decimal:
        return self.quantity * self.per_shb

    @property
    def presence(self) -> Tuple[bool, bool, bool, bool, bool]:
        return (
            self.fixed > ZERO,
            self.in_percentage > ZERO,
            self.min > ZERO,
            self.max > ZERO,
            self.per_shb > ZERO,
        )


def _bounded(p: PricingInputs) -> Decimal:
    return max(p.min, min(p.percentage_amount, p.max))


def _percentage_per_unit(p: PricingInputs) -> Decimal:
    if p.percentage_per_shb:
        return p.percentage_amount + p.per_unit_amount
    return max(p.percentage_amount, p.per_unit_amount)


def _fixed_percentage_per_unit(p: PricingInputs) -> Decimal:
    if p.fixed_percentage_per_shb:
        return p.fixed + p.percentage_amount + p.per_unit_amount
    return p.fixed + max(p.percentage_amount, p.per_unit_amount)


FORMULAS: Dict[PricingFormula, Callable[[PricingInputs], Decimal]] = {
    PricingFormula.FIXED: lambda p: p.fixed,
    PricingFormula.PERCENTAGE: lambda p: p.percentage_amount,
    PricingFormula.PERCENTAGE_OR_MIN: lambda p: max(p.percentage_amount, p.min),
    PricingFormula.PERCENTAGE_OR_MAX: lambda p: min(p.percentage_amount, p.max),
    PricingFormula.PERCENTAGE_MIN_MAX: _bounded,
    PricingFormula.PER_UNIT: lambda p: p.per_unit_amount,
    PricingFormula.FIXED_PLUS_PERCENTAGE: lambda p: p.fixed + p.percentage_amount,
    PricingFormula.FIXED_PLUS_PERCENTAGE_OR_MIN: lambda p: p.fixed + max(p.percentage_amount, p.min),
    PricingFormula.FIXED_PLUS_PERCENTAGE_OR_MAX: lambda p: p.fixed + min(p.percentage_amount, p.max),
    PricingFormula.FIXED_PLUS_PERCENTAGE_MIN_MAX: lambda p: p.fixed + _bounded(p),
    PricingFormula.PERCENTAGE_PER_UNIT: _percentage_per_unit,
    PricingFormula.FIXED_PERCENTAGE_PER_UNIT: _fixed_percentage_per_unit,
    # fixed is 0 when absent, so this is "fixed if present else 0"
    PricingFormula.FIXED_FALLBACK: lambda p: p.fixed,
}

# (fixed, percentage, min, max, per_shb) -> formula
FORMULA_TABLE: Dict[Tuple[bool, bool, bool, bool, bool], PricingFormula] = {
    (True, False, False, False, False): PricingFormula.FIXED,
    (False, True, False, False, False): PricingFormula.PERCENTAGE,
    (False, True, True, False, False): PricingFormula.PERCENTAGE_OR_MIN,
    (False, True, False, True, False): PricingFormula.PERCENTAGE_OR_MAX,
    (False, True, True, True, False): PricingFormula.PERCENTAGE_MIN_MAX,
    (False, False, False, False, True): PricingFormula.PER_UNIT,
    (True, True, False, False, False): PricingFormula.FIXED_PLUS_PERCENTAGE,
    (True, True, True, False, False): PricingFormula.FIXED_PLUS_PERCENTAGE_OR_MIN,
    (True, True, False, True, False): PricingFormula.FIXED_PLUS_PERCENTAGE_OR_MAX,
    (True, True, True, True, False): PricingFormula.FIXED_PLUS_PERCENTAGE_MIN_MAX,
    (False, True, False, False, True): PricingFormula.PERCENTAGE_PER_UNIT,
    (True, True, False, False, True): PricingFormula.FIXED_PERCENTAGE_PER_UNIT,
}


def select_formula(
    has_fixed: bool,
    has_percentage: bool,
    has_min: bool,
    has_max: bool,
    has_per_shb: bool,
) -> PricingFormula:
    key = (has_fixed, has_percentage, has_min, has_max, has_per_shb)
    return FORMULA_TABLE.get(key, PricingFormula.FIXED_FALLBACK)


@dataclass(frozen=True)
class PricedJob:
    """Pricing result for one job."""
    quantity: Decimal = ZERO
    amount: Decimal = ZERO
    percentage: Decimal = ZERO
    percentage_amount: Decimal = ZERO
    per_shb: Decimal = ZERO
    formula: Optional[PricingFormula] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quantity": float(self.quantity),
            "amount": float(self.amount),
            "percentage": float(self.percentage),
            "percentage_amount": float(self.percentage_amount),
            "per_shb": float(self.per_shb),
            "formula": self.formula.value if self.formula else None,
        }


FieldValues = Union[JobFieldSnapshot, Mapping[str, Any], None]


def field_snapshot(job: Optional[JobRecord], field_values: FieldValues) -> JobFieldSnapshot:
    """Accept a prepared snapshot or a raw {name: value} map."""
    if isinstance(field_values, JobFieldSnapshot):
        return field_values
    attributes = job.attributes if job is not None else None
    return JobFieldSnapshot.from_values(field_values, attributes)


def pricing_inputs(
    job: JobRecord,
    service_charge: ServiceChargeRecord,
    fields: JobFieldSnapshot,
) -> PricingInputs:
    quantity = fields.get(JobField.QUANTITY)
    if quantity is None:
        quantity = job.quantity

    return PricingInputs(
        fixed=non_negative(service_charge.fixed),
        in_percentage=non_negative(service_charge.in_percentage),
        min=non_negative(service_charge.min),
        max=non_negative(service_charge.max),
        per_shb=non_negative(service_charge.per_shb),
        claim_amount=non_negative(fields.get(JobField.CLAIM_AMOUNT)),
        quantity=non_negative(quantity),
        percentage_per_shb=service_charge.percentage_per_shb,
        fixed_percentage_per_shb=service_charge.fixed_percentage_per_shb,
    )


def price_job(
    job: Optional[JobRecord],
    service_charge: Optional[ServiceChargeRecord],
    field_values: FieldValues = None,
) -> PricedJob:
    """
    Price one job.

    Args:
        job: Job snapshot
        service_charge: The job's active service-charge row
        field_values: JobFieldSnapshot or the job's raw custom field values

    Returns:
        PricedJob; all zeros when the job or its charge row is missing.
    """
    if job is None or service_charge is None:
        return PricedJob()

    inputs = pricing_inputs(job, service_charge, field_snapshot(job, field_values))
    formula = select_formula(*inputs.presence)
    if formula == PricingFormula.FIXED_FALLBACK:
        logger.debug(
            f"Job {job.id}: no pricing formula for presence {inputs.presence}, "
            f"falling back to fixed={inputs.fixed}"
        )

    return PricedJob(
        quantity=inputs.quantity,
        amount=money(FORMULAS[formula](inputs)),
        percentage=inputs.in_percentage,
        percentage_amount=money(inputs.percentage_amount),
        per_shb=inputs.per_shb,
        formula=formula,
    )
