"""
Annexure Formatter

Per-job itemized rows plus a totals row for invoices covering more than one
job.

Dynamic columns (remi slots, statutory amounts, No & Date pairs) are the
union over ALL selected jobs, and both the rows and the totals use that same
column list. A job lacking a column shows 0 for remi slots and "NA" for the
others. Each row also lists the dynamic fields populated for that job alone.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from app.services.invoicing.aggregator import JobCharges, RemiLine, charge_job
from app.services.invoicing.field_resolver import JobField, JobFieldSnapshot
from app.services.invoicing.numbers import ZERO, money
from app.services.invoicing.records import JobId, JobRecord, ServiceChargeRecord

NA = "NA"

# Column header -> field
AMOUNT_COLUMNS: Tuple[Tuple[str, JobField], ...] = (
    ("Exem Amt", JobField.EXEMPTED_AMOUNT),
    ("Duty Cre Amt", JobField.DUTY_CREDIT_AMOUNT),
    ("Act Duty Cre Amt", JobField.ACTUAL_DUTY_CREDIT_AMOUNT),
    ("Lic Amt", JobField.LICENSE_AMOUNT),
    ("Ref Amt", JobField.REFUND_AMOUNT),
    ("Act Ref Amt", JobField.ACTUAL_REFUND_AMOUNT),
    ("San Amt", JobField.SANCTIONED_AMOUNT),
    ("Act Sanc Amt", JobField.ACTUAL_SANCTIONED_AMOUNT),
)

# Column header -> (number field, date field, number prefix)
COMBINED_COLUMNS: Tuple[Tuple[str, JobField, JobField, str], ...] = (
    ("Aut No & Date", JobField.AUTHORISATION_NO, JobField.AUTHORISATION_DATE, ""),
    ("Duty Credit No & Date", JobField.DUTY_CREDIT_SCRIP_NO, JobField.DUTY_CREDIT_SCRIP_DATE, "D-"),
    ("Lic No & Date", JobField.LICENSE_NO, JobField.LICENSE_DATE, ""),
    ("Cert No & Date", JobField.CERTIFICATE_NO, JobField.CERTIFICATE_DATE, ""),
    ("Refund No & Date", JobField.REFUND_ORDER_NO, JobField.REFUND_ORDER_DATE, ""),
    ("Sanc Ord No & Date", JobField.SANCTION_ORDER_NO, JobField.SANCTION_ORDER_DATE, ""),
    ("Brand Rate Lett No & Date", JobField.BRAND_RATE_LETTER_NO, JobField.BRAND_RATE_LETTER_DATE, ""),
)


def format_date(value: Any) -> str:
    """Render a date as DD-MM-YYYY; unparseable text is returned as-is."""
    if value is None:
        return NA
    if isinstance(value, datetime):
        return value.strftime("%d-%m-%Y")
    if isinstance(value, date):
        return value.strftime("%d-%m-%Y")

    text = str(value).strip()
    if not text or text.upper() == NA:
        return NA
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate).strftime("%d-%m-%Y")
    except ValueError:
        return text


@dataclass(frozen=True)
class CombinedField:
    header: str
    number: str = NA
    date: str = NA

    @property
    def combined(self) -> str:
        if self.number != NA and self.date != NA:
            return f"{self.number} / {self.date}"
        if self.number != NA:
            return self.number
        return self.date

    def to_dict(self) -> Dict[str, str]:
        return {
            "header": self.header,
            "number": self.number,
            "date": self.date,
            "combined": self.combined,
        }


def amount_fields(fields: JobFieldSnapshot) -> Tuple[Tuple[str, str], ...]:
    """Populated statutory amount fields of one job, as (header, value)."""
    return tuple(
        (header, fields.text(job_field))
        for header, job_field in AMOUNT_COLUMNS
        if fields.has(job_field)
    )


def combined_fields(fields: JobFieldSnapshot) -> Tuple[CombinedField, ...]:
    """Populated No & Date pairs of one job (either half is enough)."""
    found = []
    for header, number_field, date_field, prefix in COMBINED_COLUMNS:
        if not fields.has(number_field) and not fields.has(date_field):
            continue
        number = NA
        if fields.has(number_field):
            number = fields.text(number_field)
            if prefix and not number.startswith(prefix):
                number = f"{prefix}{number}"
        when = format_date(fields.get(date_field)) if fields.has(date_field) else NA
        found.append(CombinedField(header=header, number=number, date=when))
    return tuple(found)


@dataclass(frozen=True)
class AnnexureColumns:
    remi: Tuple[RemiLine, ...] = ()
    amounts: Tuple[str, ...] = ()
    combined: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "remi": [{"key": line.key, "description": line.description} for line in self.remi],
            "amounts": list(self.amounts),
            "combined": list(self.combined),
        }


@dataclass(frozen=True)
class AnnexureRow:
    sr_no: int
    job_id: JobId
    job_no: str
    remark: str
    application_date: str
    claim_no: str
    claim_date: str
    professional_charges: Decimal
    registration_charges: Decimal
    ca_cert_count: int
    ce_cert_count: int
    ca_charges: Decimal
    ce_charges: Decimal
    application_fees: Decimal
    remi: Tuple[RemiLine, ...]
    amounts: Mapping[str, str]
    combined: Mapping[str, str]
    own_amount_fields: Tuple[Tuple[str, str], ...] = ()
    own_combined_fields: Tuple[CombinedField, ...] = ()

    @property
    def total(self) -> Decimal:
        return money(
            self.professional_charges
            + self.registration_charges
            + self.ca_charges
            + self.ce_charges
            + self.application_fees
            + sum((line.charges for line in self.remi), ZERO)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sr_no": self.sr_no,
            "job_id": str(self.job_id),
            "job_no": self.job_no,
            "remark": self.remark,
            "application_date": self.application_date,
            "claim_no": self.claim_no,
            "claim_date": self.claim_date,
            "professional_charges": float(self.professional_charges),
            "registration_charges": float(self.registration_charges),
            "ca_cert_count": self.ca_cert_count,
            "ce_cert_count": self.ce_cert_count,
            "ca_charges": float(self.ca_charges),
            "ce_charges": float(self.ce_charges),
            "application_fees": float(self.application_fees),
            "remi": [line.to_dict() for line in self.remi],
            "amounts": dict(self.amounts),
            "combined": dict(self.combined),
            "own_amount_fields": [{"header": h, "value": v} for h, v in self.own_amount_fields],
            "own_combined_fields": [c.to_dict() for c in self.own_combined_fields],
            "total": float(self.total),
        }


@dataclass(frozen=True)
class AnnexureTotals:
    professional_charges: Decimal = ZERO
    registration_charges: Decimal = ZERO
    ca_charges: Decimal = ZERO
    ce_charges: Decimal = ZERO
    application_fees: Decimal = ZERO
    remi: Tuple[RemiLine, ...] = ()
    total: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "professional_charges": float(self.professional_charges),
            "registration_charges": float(self.registration_charges),
            "ca_charges": float(self.ca_charges),
            "ce_charges": float(self.ce_charges),
            "application_fees": float(self.application_fees),
            "remi": [line.to_dict() for line in self.remi],
            "total": float(self.total),
        }


@dataclass(frozen=True)
class Annexure:
    rows: Tuple[AnnexureRow, ...] = ()
    totals: AnnexureTotals = field(default_factory=AnnexureTotals)
    columns: AnnexureColumns = field(default_factory=AnnexureColumns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": [row.to_dict() for row in self.rows],
            "totals": self.totals.to_dict(),
            "columns": self.columns.to_dict(),
        }


def _text(value: Optional[str]) -> str:
    return value if value else NA


def _union_columns(per_job: Sequence[JobCharges]) -> AnnexureColumns:
    remi_headers: Dict[int, str] = {}
    amount_headers = set()
    combined_headers = set()
    for charges in per_job:
        for line in charges.remi:
            remi_headers.setdefault(line.slot, line.description)
        amount_headers.update(header for header, _ in amount_fields(charges.fields))
        combined_headers.update(c.header for c in combined_fields(charges.fields))

    return AnnexureColumns(
        remi=tuple(
            RemiLine(slot=slot, description=remi_headers[slot], charges=ZERO)
            for slot in sorted(remi_headers)
        ),
        amounts=tuple(header for header, _ in AMOUNT_COLUMNS if header in amount_headers),
        combined=tuple(header for header, *_ in COMBINED_COLUMNS if header in combined_headers),
    )


def _row(sr_no: int, job: JobRecord, charges: JobCharges, columns: AnnexureColumns) -> AnnexureRow:
    fields = charges.fields
    own_amounts = amount_fields(fields)
    own_combined = combined_fields(fields)
    amount_lookup = dict(own_amounts)
    combined_lookup = {c.header: c.combined for c in own_combined}

    application_date = fields.get(JobField.APPLICATION_DATE)
    claim_date = fields.get(JobField.CLAIM_DATE) or application_date

    return AnnexureRow(
        sr_no=sr_no,
        job_id=job.id,
        job_no=_text(job.job_no),
        remark=job.remark or "",
        application_date=format_date(application_date),
        claim_no=_text(fields.text(JobField.CLAIM_NO)),
        claim_date=format_date(claim_date),
        professional_charges=charges.priced.amount,
        registration_charges=charges.registration_charges,
        ca_cert_count=charges.ca_cert_count,
        ce_cert_count=charges.ce_cert_count,
        ca_charges=charges.ca_charges,
        ce_charges=charges.ce_charges,
        application_fees=charges.application_fees,
        remi=tuple(
            RemiLine(slot=column.slot, description=column.description, charges=charges.remi_amount(column.slot))
            for column in columns.remi
        ),
        amounts={header: amount_lookup.get(header, NA) for header in columns.amounts},
        combined={header: combined_lookup.get(header, NA) for header in columns.combined},
        own_amount_fields=own_amounts,
        own_combined_fields=own_combined,
    )


def build_annexure(
    job_ids: Sequence[JobId],
    jobs: Mapping[JobId, JobRecord],
    service_charges: Mapping[JobId, ServiceChargeRecord],
    field_values: Mapping[JobId, Any],
) -> Annexure:
    """Build per-job rows and column totals for the selected jobs."""
    selected: List[Tuple[JobRecord, JobCharges]] = []
    for job_id in job_ids:
        job = jobs.get(job_id)
        if job is None:
            continue
        selected.append((job, charge_job(job, service_charges.get(job_id), field_values.get(job_id))))

    columns = _union_columns([charges for _, charges in selected])
    rows = tuple(
        _row(index, job, charges, columns)
        for index, (job, charges) in enumerate(selected, start=1)
    )

    remi_totals = tuple(
        RemiLine(
            slot=column.slot,
            description=column.description,
            charges=money(sum((row.remi[i].charges for row in rows), ZERO)),
        )
        for i, column in enumerate(columns.remi)
    )
    totals = AnnexureTotals(
        professional_charges=money(sum((row.professional_charges for row in rows), ZERO)),
        registration_charges=money(sum((row.registration_charges for row in rows), ZERO)),
        ca_charges=money(sum((row.ca_charges for row in rows), ZERO)),
        ce_charges=money(sum((row.ce_charges for row in rows), ZERO)),
        application_fees=money(sum((row.application_fees for row in rows), ZERO)),
        remi=remi_totals,
        total=money(sum((row.total for row in rows), ZERO)),
    )
    return Annexure(rows=rows, totals=totals, columns=columns)
