from __future__ import annotations
from dataclasses import dataclass, fields
import logging
import sqlite3
from typing import Optional, Sequence

from ...utils.helpers import Clock, days_in_month, new_id, now_str, previous_month
from ...utils.validators import require_non_negative
from ..errors import ConstraintViolation, DomainError
from ..targets import ensure_target, find_target_id, reconcile_target
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)


@dataclass
class MonthlyTarget:
    id: str
    order_booker_id: str
    year: int
    month: int
    target_amount: float
    achieved_amount: float
    remaining_amount: float
    achievement_percentage: float
    days_in_month: int
    working_days_in_month: int
    daily_target_amount: float
    created_at: str | None = None
    updated_at: str | None = None


_FIELDS = tuple(f.name for f in fields(MonthlyTarget))


def _check_period(year: int, month: int) -> None:
    if not 1 <= int(month) <= 12:
        raise DomainError(f"Month must be between 1 and 12, got {month}.")
    if int(year) < 1:
        raise DomainError(f"Invalid year {year}.")


def _working_days(value, year: int, month: int) -> int | None:
    if value is None:
        return None
    days = require_non_negative(value, "Working days")
    if days > days_in_month(year, month):
        raise DomainError(f"Working days cannot exceed {days_in_month(year, month)}.")
    return int(days)


class MonthlyTargetsRepo:
    """
    One row per (order booker, year, month).

    achieved_amount is always SUM(daily_entries.net_amount) for the month; the
    remaining amount, percentage and daily target follow from it. Rows are created
    explicitly here or lazily by the first daily entry of the month.
    """

    def __init__(self, conn: sqlite3.Connection, *, clock: Optional[Clock] = None):
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return now_str(self.clock)

    # ---- Queries ----------------------------------------------------------

    def list_targets(
        self,
        year: int | None = None,
        month: int | None = None,
        order_booker_ids: Sequence[str] | None = None,
    ) -> list[sqlite3.Row]:
        where, params = [], []
        if year is not None:
            where.append("mt.year = ?")
            params.append(year)
        if month is not None:
            where.append("mt.month = ?")
            params.append(month)
        if order_booker_ids:
            where.append(f"mt.order_booker_id IN ({', '.join('?' for _ in order_booker_ids)})")
            params += list(order_booker_ids)
        sql = f"""
          SELECT {', '.join('mt.' + c for c in _FIELDS)},
                 ob.name AS order_booker_name, ob.name_urdu AS order_booker_name_urdu
            FROM monthly_targets mt
            JOIN order_bookers ob ON ob.id = mt.order_booker_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY mt.year DESC, mt.month DESC, ob.name COLLATE NOCASE"
        return self.conn.execute(sql, params).fetchall()

    def get(self, target_id: str) -> MonthlyTarget | None:
        r = self.conn.execute(
            f"SELECT {', '.join(_FIELDS)} FROM monthly_targets WHERE id = ?", (target_id,)
        ).fetchone()
        return MonthlyTarget(**r) if r else None

    def get_for(self, order_booker_id: str, year: int, month: int) -> MonthlyTarget | None:
        tid = find_target_id(self.conn, order_booker_id, year, month)
        return self.get(tid) if tid else None

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        order_booker_id: str,
        year: int,
        month: int,
        target_amount: float,
        working_days: int | None = None,
    ) -> MonthlyTarget:
        """Explicit create. A second target for the same (agent, year, month) is a ConstraintViolation."""
        _check_period(year, month)
        amount = require_non_negative(target_amount, "Target amount")
        wd = _working_days(working_days, year, month)
        dim = days_in_month(year, month)
        now = self._now()
        tid = new_id()
        with immediate_tx(self.conn):
            if find_target_id(self.conn, order_booker_id, year, month):
                raise ConstraintViolation(
                    f"A target for {order_booker_id!r} in {year:04d}-{month:02d} already exists."
                )
            self.conn.execute(
                """
                INSERT INTO monthly_targets (
                    id, order_booker_id, year, month, target_amount, achieved_amount,
                    remaining_amount, achievement_percentage, days_in_month,
                    working_days_in_month, daily_target_amount, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, 0, 0, ?, ?, 0, ?, ?)
                """,
                (tid, order_booker_id, year, month, amount, dim,
                 wd if wd is not None else dim, now, now),
            )
            reconcile_target(self.conn, order_booker_id, year, month, now=now)
        return self.get(tid)

    def set_target(self, target_id: str, target_amount: float, working_days: int | None = None) -> MonthlyTarget:
        """Change the target (and optionally the working days); dependents are recomputed."""
        amount = require_non_negative(target_amount, "Target amount")
        now = self._now()
        with immediate_tx(self.conn):
            r = self.conn.execute(
                "SELECT order_booker_id, year, month FROM monthly_targets WHERE id = ?", (target_id,)
            ).fetchone()
            if r is None:
                raise DomainError(f"Monthly target {target_id!r} not found.")
            wd = _working_days(working_days, r["year"], r["month"])
            if wd is None:
                self.conn.execute(
                    "UPDATE monthly_targets SET target_amount = ?, updated_at = ? WHERE id = ?",
                    (amount, now, target_id),
                )
            else:
                self.conn.execute(
                    "UPDATE monthly_targets SET target_amount = ?, working_days_in_month = ?, "
                    "updated_at = ? WHERE id = ?",
                    (amount, wd, now, target_id),
                )
            reconcile_target(self.conn, r["order_booker_id"], r["year"], r["month"], now=now)
        return self.get(target_id)

    def upsert(
        self,
        order_booker_id: str,
        year: int,
        month: int,
        target_amount: float,
        working_days: int | None = None,
    ) -> MonthlyTarget:
        _check_period(year, month)
        now = self._now()
        with immediate_tx(self.conn):
            if self.conn.execute(
                "SELECT 1 FROM order_bookers WHERE id = ?", (order_booker_id,)
            ).fetchone() is None:
                raise ConstraintViolation(f"Order booker {order_booker_id!r} does not exist.")
            tid = ensure_target(self.conn, order_booker_id, year, month, now=now)
            return self.set_target(tid, target_amount, working_days)

    def copy_from_month(
        self,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
        order_booker_ids: Sequence[str] | None = None,
    ) -> list[MonthlyTarget]:
        """Carry target amounts from one month into another (upsert per order booker)."""
        _check_period(to_year, to_month)
        source = self.list_targets(from_year, from_month, order_booker_ids)
        with immediate_tx(self.conn):
            copied = [
                self.upsert(r["order_booker_id"], to_year, to_month, r["target_amount"])
                for r in source
            ]
        _log.info(
            "copied %d targets %04d-%02d -> %04d-%02d",
            len(copied), from_year, from_month, to_year, to_month,
        )
        return copied

    def copy_from_previous_month(
        self, year: int, month: int, order_booker_ids: Sequence[str] | None = None
    ) -> list[MonthlyTarget]:
        prev_year, prev_month = previous_month(year, month)
        return self.copy_from_month(prev_year, prev_month, year, month, order_booker_ids)

    def reconcile_all(self) -> int:
        """Maintenance rebuild: recompute every existing target from the daily entries."""
        now = self._now()
        with immediate_tx(self.conn):
            keys = self.conn.execute(
                "SELECT order_booker_id, year, month FROM monthly_targets"
            ).fetchall()
            for k in keys:
                reconcile_target(
                    self.conn, k["order_booker_id"], k["year"], k["month"],
                    now=now, create_missing=False,
                )
        return len(keys)
