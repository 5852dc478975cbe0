# database/errors.py
from __future__ import annotations

import sqlite3


class DomainError(Exception):
    """Domain-level error the host application can surface directly."""
    pass


class ConstraintViolation(DomainError):
    """Uniqueness or reference failure; the originating write was rolled back."""
    pass


class MigrationOrderError(DomainError):
    """Schema history is out of order, has a gap, or is newer than this code."""
    pass


class TransactionFailure(DomainError):
    """The storage engine aborted the unit of work."""
    pass


def translate_sqlite_error(exc: sqlite3.Error) -> DomainError:
    if isinstance(exc, sqlite3.IntegrityError):
        return ConstraintViolation(str(exc))
    return TransactionFailure(str(exc))


__all__ = [
    "DomainError",
    "ConstraintViolation",
    "MigrationOrderError",
    "TransactionFailure",
    "translate_sqlite_error",
]
