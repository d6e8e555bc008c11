"""
Field Value Resolver

Custom job fields are stored as free-text (name, value) pairs, so the same
logical field appears as "Quantity", "quantity", "No of CAC", "no_of_cac" or
"noofcac" depending on which job register created it.

Two layers:

* resolve() / resolve_field(): tolerant lookup of one raw name.
* JobField + FIELD_ALIASES: a typed registry of the fields the invoicing
  engine reads, each with its known historical spellings. A job's values are
  resolved once into a JobFieldSnapshot and every consumer reads typed
  fields from it.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from app.services.invoicing.numbers import ZERO, to_decimal, to_int


_WHITESPACE = re.compile(r"\s+")

# Placeholder values written by older import scripts
_EMPTY_MARKERS = ("NA", "NULL")


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _lookup(values: Mapping[str, Any], name: str) -> Optional[Any]:
    if _has_value(values.get(name)):
        return values[name]
    lowered = name.lower()
    for key, value in values.items():
        if key.lower() == lowered and _has_value(value):
            return value
    return None


def resolve_field(field_name: Optional[str], values: Optional[Mapping[str, Any]]) -> Optional[Any]:
    """
    Look up one field in a single job's {name: value} map.

    Order: exact key, case-insensitive key, then the variants
    underscores->spaces, whitespace->underscores and underscores stripped,
    each matched case-insensitively. Blank values count as missing.

    Returns:
        The stored value or None. Never raises.
    """
    if not field_name or not values:
        return None

    value = _lookup(values, field_name)
    if value is not None:
        return value

    variants = (
        field_name.replace("_", " "),
        _WHITESPACE.sub("_", field_name),
        field_name.replace("_", "").lower(),
    )
    for variant in variants:
        value = _lookup(values, variant)
        if value is not None:
            return value
    return None


def resolve(job_id: Any, field_name: Optional[str], value_map: Optional[Mapping[Any, Mapping[str, Any]]]) -> Optional[Any]:
    """Look up a field for a job in a {job_id: {name: value}} store."""
    if job_id is None or not value_map:
        return None
    return resolve_field(field_name, value_map.get(job_id))


class JobField(str, Enum):
    """Logical job fields read by pricing, aggregation and the annexure."""
    # Pricing inputs
    CLAIM_AMOUNT = "claim_amount_after_finalization"
    QUANTITY = "quantity"
    CA_CERT_COUNT = "no_of_cac"
    CE_CERT_COUNT = "no_of_cec"
    APPLICATION_FEES = "appl_fee_duty_paid"

    # Annexure administrative details
    APPLICATION_DATE = "application_ref_date"
    CLAIM_NO = "claim_no"
    CLAIM_DATE = "dbk_claim_date"

    # Annexure amount columns
    EXEMPTED_AMOUNT = "exempted_amount"
    DUTY_CREDIT_AMOUNT = "duty_credit_amount"
    ACTUAL_DUTY_CREDIT_AMOUNT = "actual_duty_credit_amount"
    LICENSE_AMOUNT = "license_amount"
    REFUND_AMOUNT = "refund_amount"
    ACTUAL_REFUND_AMOUNT = "actual_refund_amount"
    SANCTIONED_AMOUNT = "sanctioned_amount"
    ACTUAL_SANCTIONED_AMOUNT = "actual_sanctioned_amount"

    # Annexure No & Date pairs
    AUTHORISATION_NO = "authorisation_no"
    AUTHORISATION_DATE = "authorisation_date"
    DUTY_CREDIT_SCRIP_NO = "duty_credit_scrip_no"
    DUTY_CREDIT_SCRIP_DATE = "duty_credit_scrip_date"
    LICENSE_NO = "license_no"
    LICENSE_DATE = "license_date"
    CERTIFICATE_NO = "certificate_no"
    CERTIFICATE_DATE = "certificate_date"
    REFUND_ORDER_NO = "refund_sanction_order_no"
    REFUND_ORDER_DATE = "refund_sanction_order_date"
    SANCTION_ORDER_NO = "sanction_order_no"
    SANCTION_ORDER_DATE = "sanction_order_date"
    BRAND_RATE_LETTER_NO = "brand_rate_letter_no"
    BRAND_RATE_LETTER_DATE = "brand_rate_letter_date"


def _spellings(snake: str, title: str, *extra: str) -> Tuple[str, ...]:
    return (snake, title, snake.replace("_", "")) + extra


# Known spellings per field, tried in order. Each spelling still goes
# through resolve_field(), so case and separator differences are covered.
FIELD_ALIASES: Dict[JobField, Tuple[str, ...]] = {
    JobField.CLAIM_AMOUNT: ("claim_amount_after_finalization", "Claim Amount after Finalization", "claim_amount"),
    JobField.QUANTITY: ("quantity", "Quantity"),
    JobField.CA_CERT_COUNT: ("no_of_cac", "No of CAC", "noofcac"),
    JobField.CE_CERT_COUNT: ("no_of_cec", "No of CEC", "noofcec"),
    JobField.APPLICATION_FEES: ("appl_fee_duty_paid", "Appl Fees Paid", "appl_fees_paid", "application_fees"),

    JobField.APPLICATION_DATE: ("application_ref_date", "Application Ref Date", "application_date"),
    JobField.CLAIM_NO: ("claim_no", "Claim No"),
    JobField.CLAIM_DATE: ("dbk_claim_date", "DBK Claim Date"),

    JobField.EXEMPTED_AMOUNT: _spellings("exempted_amount", "Exempted Amount", "exempted_amt", "Exempted Amt"),
    JobField.DUTY_CREDIT_AMOUNT: _spellings("duty_credit_amount", "Duty Credit Amount", "duty_credit_amt", "Duty Credit Amt"),
    JobField.ACTUAL_DUTY_CREDIT_AMOUNT: _spellings(
        "actual_duty_credit_amount", "Actual Duty Credit Amount", "actual_duty_credit_amt", "Actual Duty Credit Amt"
    ),
    JobField.LICENSE_AMOUNT: _spellings("license_amount", "License Amount", "license_amt", "License Amt"),
    JobField.REFUND_AMOUNT: _spellings(
        "refund_amount", "Refund Amount", "refund_amt", "Refund Amt",
        "duty_credit_refund_sanctioned_exempted_amount", "Duty Credit Refund Sanctioned Exempted Amount",
    ),
    JobField.ACTUAL_REFUND_AMOUNT: _spellings(
        "actual_refund_amount", "Actual Refund Amount", "actual_refund_amt", "Actual Refund Amt"
    ),
    JobField.SANCTIONED_AMOUNT: _spellings("sanctioned_amount", "Sanctioned Amount", "sanctioned_amt", "Sanctioned Amt"),
    JobField.ACTUAL_SANCTIONED_AMOUNT: _spellings(
        "actual_sanctioned_amount", "Actual Sanctioned Amount", "actual_sanctioned_amt", "Actual Sanctioned Amt",
        "actual_duty_credit_refund_sanctioned_amount", "Actual Duty Credit Refund Sanctioned Amount",
    ),

    JobField.AUTHORISATION_NO: _spellings("authorisation_no", "Authorisation No", "auth_no", "Auth No"),
    JobField.AUTHORISATION_DATE: (
        "sanction___approval_date", "Sanction Approval Date",
        "authorisation_date", "Authorisation Date", "auth_date", "Auth Date",
    ),
    JobField.DUTY_CREDIT_SCRIP_NO: _spellings(
        "duty_credit_scrip_no", "Duty Credit Scrip No", "duty_credit_no", "Duty Credit No"
    ),
    JobField.DUTY_CREDIT_SCRIP_DATE: _spellings(
        "duty_credit_scrip_date", "Duty Credit Scrip Date", "duty_credit_date", "Duty Credit Date"
    ),
    JobField.LICENSE_NO: _spellings("license_no", "License No", "lic_no", "Lic No"),
    JobField.LICENSE_DATE: _spellings("license_date", "License Date", "lic_date", "Lic Date"),
    JobField.CERTIFICATE_NO: _spellings("certificate_no", "Certificate No", "cert_no", "Cert No"),
    JobField.CERTIFICATE_DATE: _spellings("certificate_date", "Certificate Date", "cert_date", "Cert Date"),
    JobField.REFUND_ORDER_NO: _spellings(
        "refund_sanction_order_no", "Refund Sanction Order No", "refund_no", "Refund No"
    ),
    JobField.REFUND_ORDER_DATE: _spellings(
        "refund_sanction_order_date", "Refund Sanction Order Date", "refund_date", "Refund Date"
    ),
    JobField.SANCTION_ORDER_NO: _spellings("sanction_order_no", "Sanction Order No", "sanc_ord_no", "Sanc Ord No"),
    JobField.SANCTION_ORDER_DATE: _spellings(
        "sanction_order_date", "Sanction Order Date", "sanc_ord_date", "Sanc Ord Date"
    ),
    JobField.BRAND_RATE_LETTER_NO: _spellings(
        "brand_rate_letter_no", "Brand Rate Letter No", "brand_rate_lett_no", "Brand Rate Lett No"
    ),
    JobField.BRAND_RATE_LETTER_DATE: _spellings(
        "brand_rate_letter_date", "Brand Rate Letter Date", "brand_rate_lett_date", "Brand Rate Lett Date"
    ),
}

# Legacy columns on the job row consulted when no custom field is set.
JOB_ATTRIBUTE_KEYS: Dict[JobField, Tuple[str, ...]] = {
    JobField.CLAIM_AMOUNT: ("claim_amount_after_finalization",),
    JobField.QUANTITY: ("quantity",),
    JobField.CA_CERT_COUNT: ("no_of_cac",),
    JobField.CE_CERT_COUNT: ("no_of_cec",),
    JobField.APPLICATION_DATE: ("application_date",),
    JobField.CLAIM_NO: ("claim_no",),
    JobField.CLAIM_DATE: ("dbk_claim_date",),
    JobField.REFUND_AMOUNT: ("refund_amount", "duty_credit_refund_sanctioned_exempted_amount"),
    JobField.ACTUAL_SANCTIONED_AMOUNT: ("actual_sanctioned_amount", "actual_duty_credit_refund_sanctioned_amount"),
    JobField.AUTHORISATION_DATE: ("sanction___approval_date", "authorisation_date"),
}


def _usable(value: Any) -> bool:
    return _has_value(value) and str(value).strip().upper() not in _EMPTY_MARKERS


@dataclass(frozen=True)
class JobFieldSnapshot:
    """Typed view of one job's custom fields, resolved once."""
    values: Mapping[JobField, Any] = field(default_factory=dict)

    @classmethod
    def from_values(
        cls,
        values: Optional[Mapping[str, Any]],
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> "JobFieldSnapshot":
        """
        Resolve every registered field.

        Aliases are tried in order against the custom field values; the job
        row's legacy attributes are the last resort. "NA"/"NULL" placeholders
        count as missing.
        """
        values = values or {}
        attributes = attributes or {}
        resolved: Dict[JobField, Any] = {}

        for job_field in JobField:
            found = None
            for alias in FIELD_ALIASES.get(job_field, (job_field.value,)):
                candidate = resolve_field(alias, values)
                if _usable(candidate):
                    found = candidate
                    break
            if found is None:
                for key in JOB_ATTRIBUTE_KEYS.get(job_field, (job_field.value,)):
                    if _usable(attributes.get(key)):
                        found = attributes[key]
                        break
            if found is not None:
                resolved[job_field] = found

        return cls(values=resolved)

    def get(self, job_field: JobField) -> Optional[Any]:
        return self.values.get(job_field)

    def has(self, job_field: JobField) -> bool:
        return job_field in self.values

    def decimal(self, job_field: JobField, default: Decimal = ZERO) -> Decimal:
        return to_decimal(self.values.get(job_field), default)

    def integer(self, job_field: JobField) -> int:
        return to_int(self.values.get(job_field))

    def text(self, job_field: JobField) -> Optional[str]:
        value = self.values.get(job_field)
        return None if value is None else str(value).strip()
