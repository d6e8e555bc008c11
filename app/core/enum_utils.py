"""
Enum Utilities for VARCHAR-based Status Fields

STORAGE CONVENTION:
━━━━━━━━━━━━━━━━━━━
• Database: VARCHAR(50) - NOT PostgreSQL ENUM
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• Values are stored exactly as the legacy invoicing screens wrote them
  ("Service_Reimbursement", "full_invoice", "In_process", ...), so unlike
  most status columns they are NOT upper-cased.

INPUT TOLERANCE:
━━━━━━━━━━━━━━━━
Users and older clients send labels such as "Service & Reimbursement",
"Partial Invoice" or "sc". parse_choice() matches an input against an enum's
values ignoring case, spaces, underscores and '&' so every spelling lands on
the canonical stored value.
"""

import re
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar


T = TypeVar('T', bound=Enum)

_SEPARATORS = re.compile(r"[\s_&]+")


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(BillingType.SERVICE)
        'Service'
        >>> get_enum_value("Service")
        'Service'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def choice_key(value: Any) -> str:
    """Canonical comparison key: lower-case, separators removed."""
    return _SEPARATORS.sub("", str(value)).lower()


def parse_choice(
    value: Any,
    enum_class: Type[T],
    aliases: Optional[Dict[str, T]] = None,
) -> Optional[T]:
    """
    Convert loosely spelled input to an enum member.

    Args:
        value: Enum instance, stored value or UI label
        enum_class: The Enum class to convert to
        aliases: Extra spellings keyed by choice_key()

    Returns:
        Enum instance or None if nothing matches

    Examples:
        >>> parse_choice("Service & Reimbursement", BillingType)
        BillingType.SERVICE_REIMBURSEMENT
        >>> parse_choice("Partial Invoice", InvoiceType)
        InvoiceType.PARTIAL
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    key = choice_key(get_enum_value(value))
    if not key:
        return None
    if aliases and key in aliases:
        return aliases[key]
    for member in enum_class:
        if choice_key(member.value) == key or choice_key(member.name) == key:
            return member
    return None

