# database/targets.py
"""
Monthly target reconciliation.

Order of work for one (order_booker, year, month):
  1) ensure the target row exists (INSERT OR IGNORE against the UNIQUE key)
  2) achieved_amount  = SUM(daily_entries.net_amount) over the month
  3) remaining / percentage / daily target from (target, achieved, working days)

Runs inside the caller's transaction; never commits.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, Optional

from ..utils.calculations import TargetDependents, target_dependents
from ..utils.helpers import DateLike, days_in_month, month_bounds, new_id, to_date

_log = logging.getLogger(__name__)


def find_target_id(conn: sqlite3.Connection, order_booker_id: str, year: int, month: int) -> Optional[str]:
    row = conn.execute(
        "SELECT id FROM monthly_targets WHERE order_booker_id = ? AND year = ? AND month = ?",
        (order_booker_id, year, month),
    ).fetchone()
    return row[0] if row else None


def ensure_target(
    conn: sqlite3.Connection,
    order_booker_id: str,
    year: int,
    month: int,
    *,
    now: str,
    target_amount: float = 0.0,
    working_days: Optional[int] = None,
) -> str:
    """Create the (agent, year, month) row if absent. Returns its id either way."""
    dim = days_in_month(year, month)
    conn.execute(
        """
        INSERT OR IGNORE INTO monthly_targets (
            id, order_booker_id, year, month, target_amount, achieved_amount,
            remaining_amount, achievement_percentage, days_in_month,
            working_days_in_month, daily_target_amount, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, 0, ?, 0, ?, ?, 0, ?, ?)
        """,
        (
            new_id(), order_booker_id, year, month, target_amount, target_amount,
            dim, working_days if working_days is not None else dim, now, now,
        ),
    )
    return find_target_id(conn, order_booker_id, year, month)


def achieved_for_month(conn: sqlite3.Connection, order_booker_id: str, year: int, month: int) -> float:
    start, end = month_bounds(year, month)
    row = conn.execute(
        """
        SELECT COALESCE(SUM(net_amount), 0.0)
          FROM daily_entries
         WHERE order_booker_id = ? AND date >= ? AND date < ?
        """,
        (order_booker_id, start, end),
    ).fetchone()
    return float(row[0] or 0.0)


def recompute_dependents(conn: sqlite3.Connection, target_id: str, *, now: str) -> TargetDependents:
    row = conn.execute(
        "SELECT target_amount, achieved_amount, working_days_in_month FROM monthly_targets WHERE id = ?",
        (target_id,),
    ).fetchone()
    deps = target_dependents(
        target_amount=row["target_amount"],
        achieved_amount=row["achieved_amount"],
        working_days_in_month=row["working_days_in_month"],
    )
    conn.execute(
        """
        UPDATE monthly_targets
           SET remaining_amount = ?, achievement_percentage = ?, daily_target_amount = ?, updated_at = ?
         WHERE id = ?
        """,
        (deps.remaining_amount, deps.achievement_percentage, deps.daily_target_amount, now, target_id),
    )
    return deps


def reconcile_target(
    conn: sqlite3.Connection,
    order_booker_id: str,
    year: int,
    month: int,
    *,
    now: str,
    create_missing: bool = True,
) -> Optional[str]:
    """
    Bring one target in line with the daily entries of its month.
    With create_missing=False an absent target is left absent (returns None).
    """
    if create_missing:
        target_id = ensure_target(conn, order_booker_id, year, month, now=now)
    else:
        target_id = find_target_id(conn, order_booker_id, year, month)
        if target_id is None:
            return None

    achieved = achieved_for_month(conn, order_booker_id, year, month)
    conn.execute(
        "UPDATE monthly_targets SET achieved_amount = ?, updated_at = ? WHERE id = ?",
        (achieved, now, target_id),
    )
    deps = recompute_dependents(conn, target_id, now=now)
    _log.debug(
        "target %s %04d-%02d achieved=%.2f remaining=%.2f pct=%.2f",
        order_booker_id, year, month, achieved, deps.remaining_amount, deps.achievement_percentage,
    )
    return target_id


def reconcile_for_dates(
    conn: sqlite3.Connection,
    keys: Iterable[tuple[str, DateLike]],
    *,
    now: str,
    create_missing: bool = True,
) -> None:
    """Reconcile each distinct (agent, year, month) touched by (agent, date) pairs."""
    months = set()
    for order_booker_id, d in keys:
        dd = to_date(d)
        months.add((order_booker_id, dd.year, dd.month))
    for order_booker_id, year, month in sorted(months):
        reconcile_target(conn, order_booker_id, year, month, now=now, create_missing=create_missing)


__all__ = [
    "find_target_id",
    "ensure_target",
    "achieved_for_month",
    "recompute_dependents",
    "reconcile_target",
    "reconcile_for_dates",
]
