# utils/validators.py
"""
Input checks shared by the repositories. Every failure is a DomainError
carrying the field label, raised before any write starts.
"""
from __future__ import annotations

import math
from typing import Optional

from ..constants import ORDER_STATUSES
from ..database.errors import DomainError


def normalize_text(s: Optional[str]) -> Optional[str]:
    """Strip; blank strings are stored as NULL."""
    if s is None:
        return None
    return s.strip() or None


def require_text(value: Optional[str], field_label: str) -> str:
    text = normalize_text(value)
    if text is None:
        raise DomainError(f"{field_label} cannot be empty.")
    return text


# ---- Numbers ----

def as_number(x, field_label: str) -> float:
    try:
        val = float(x)
    except (TypeError, ValueError):
        raise DomainError(f"{field_label} must be a number.") from None
    if not math.isfinite(val):
        raise DomainError(f"{field_label} must be a finite number.")
    return val


def require_non_negative(x, field_label: str) -> float:
    val = as_number(x, field_label)
    if val < 0:
        raise DomainError(f"{field_label} cannot be negative.")
    return val


def optional_non_negative(x, field_label: str) -> Optional[float]:
    return None if x is None else require_non_negative(x, field_label)


# ---- Orders ----

def require_status(status: str) -> str:
    if status not in ORDER_STATUSES:
        raise DomainError(
            f"Unknown order status {status!r}; expected one of {', '.join(ORDER_STATUSES)}."
        )
    return status
