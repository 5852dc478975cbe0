# utils/helpers.py
from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Optional, Union

DateLike = Union[date, datetime, str]
Clock = Callable[[], datetime]

_log = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_str(clock: Optional[Clock] = None) -> str:
    """Return the current timestamp as an ISO-8601 string (seconds precision)."""
    return (clock or utc_now)().isoformat(timespec="seconds")


def new_id() -> str:
    return str(uuid.uuid4())


def to_date(value: DateLike) -> date:
    """
    Normalize a date-ish value to `datetime.date`.

    Accepts date, datetime, or an ISO string ('YYYY-MM-DD' or a full timestamp).
    Raises ValueError on anything else.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(value).date()
        except ValueError as e:
            _log.debug("to_date: failed to parse %r: %s", value, e)
            raise ValueError(f"Could not parse {value!r} as a date.") from e
    raise ValueError(f"Could not parse {value!r} as a date.")


def date_str(value: Optional[DateLike]) -> Optional[str]:
    return None if value is None else to_date(value).isoformat()


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[str, str]:
    """
    Half-open ISO bounds [first day, first day of next month) for comparing
    'YYYY-MM-DD' text columns without wrapping them in strftime().
    """
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start.isoformat(), end.isoformat()


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)
