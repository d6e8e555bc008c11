"""Lenient numeric coercion for job field values and service-charge columns.

Field values arrive as free text ("1,200", "NULL", "", "12 Nos") and the
invoicing core must always produce a number. Parsing order:

1. direct Decimal parse
2. strip everything except digits, '.' and '-' and take the leading number
3. fall back to the default (0)
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_NUMBER = re.compile(r"-?\d*\.?\d+")


def _parse(text: str) -> Optional[Decimal]:
    try:
        value = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce any value to Decimal, never raising."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, (int, float)):
        parsed = _parse(str(value))
        return default if parsed is None else parsed

    text = str(value).strip()
    if not text or text.upper() == "NULL":
        return default

    parsed = _parse(text)
    if parsed is not None:
        return parsed

    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", text))
    if match:
        parsed = _parse(match.group(0))
        if parsed is not None:
            return parsed
    return default


def to_int(value: Any) -> int:
    """Integer part of a lenient parse (certificate counts and the like)."""
    return int(to_decimal(value))


def money(value: Any) -> Decimal:
    """Round to 2 decimal places, half-up."""
    amount = to_decimal(value)
    # quantize needs room for every integer digit plus the two decimals
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def non_negative(value: Any) -> Decimal:
    amount = to_decimal(value)
    return amount if amount > ZERO else ZERO
