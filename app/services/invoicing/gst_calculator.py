"""
GST Tax Calculator

Displayed rates are always the job register's base SAC rates. The job's
gst_type only decides which amounts are charged:

    SC        CGST + SGST, no IGST
    I         IGST only
    EXEMPTED  nothing
    unset     CGST + SGST; IGST only when both CGST and SGST rates are 0

GST is charged on the service subtotal only. Application fees and remi
lines are reimbursements and never taxed.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from app.services.invoicing.numbers import ZERO, money, to_decimal
from app.services.invoicing.records import GstRateRecord, GstType, parse_gst_type

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class GstBreakdown:
    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    igst_rate: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    def without_amounts(self) -> "GstBreakdown":
        """Same rates, nothing charged (reimbursement-only invoices)."""
        return GstBreakdown(
            cgst_rate=self.cgst_rate,
            sgst_rate=self.sgst_rate,
            igst_rate=self.igst_rate,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cgst_rate": float(self.cgst_rate),
            "sgst_rate": float(self.sgst_rate),
            "igst_rate": float(self.igst_rate),
            "cgst_amount": float(self.cgst_amount),
            "sgst_amount": float(self.sgst_amount),
            "igst_amount": float(self.igst_amount),
        }


def _tax(subtotal: Decimal, rate: Decimal) -> Decimal:
    return money(subtotal * rate / HUNDRED)


def apply_gst(subtotal: Any, gst_type: Any, base_rates: Optional[GstRateRecord]) -> GstBreakdown:
    """
    Compute CGST/SGST/IGST on a service subtotal.

    Args:
        subtotal: Taxable service amount
        gst_type: "SC", "I", "EXEMPTED" or unset (any spelling/case)
        base_rates: The job register's SAC rates, None when not configured

    Returns:
        GstBreakdown with the base rates and the charged amounts
    """
    rates = base_rates or GstRateRecord()
    cgst_rate = to_decimal(rates.cgst)
    sgst_rate = to_decimal(rates.sgst)
    igst_rate = to_decimal(rates.igst)
    amount = to_decimal(subtotal)

    kind = parse_gst_type(gst_type)
    cgst = sgst = igst = ZERO

    if kind == GstType.SC:
        cgst = _tax(amount, cgst_rate)
        sgst = _tax(amount, sgst_rate)
    elif kind == GstType.I:
        igst = _tax(amount, igst_rate)
    elif kind == GstType.EXEMPTED:
        pass
    else:
        if gst_type not in (None, ""):
            logger.debug(f"Unknown gst_type {gst_type!r}, applying default GST policy")
        cgst = _tax(amount, cgst_rate)
        sgst = _tax(amount, sgst_rate)
        if cgst_rate <= ZERO and sgst_rate <= ZERO:
            igst = _tax(amount, igst_rate)

    return GstBreakdown(
        cgst_rate=cgst_rate,
        sgst_rate=sgst_rate,
        igst_rate=igst_rate,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
    )
