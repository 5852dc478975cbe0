from __future__ import annotations
from dataclasses import dataclass
import sqlite3
from typing import Optional

from ...utils.helpers import Clock, date_str, new_id, now_str, to_date, utc_now
from ...utils.validators import normalize_text, require_text
from ..errors import DomainError
from ..transactions import immediate_tx


@dataclass
class OrderBooker:
    id: str
    name: str
    name_urdu: str
    phone: str
    email: str | None
    join_date: str
    is_active: int
    created_at: str | None = None
    updated_at: str | None = None


_COLUMNS = "id, name, name_urdu, phone, email, join_date, is_active, created_at, updated_at"


class OrderBookersRepo:
    """
    Order bookers (field sales agents).

    Deleting an order booker cascades to its daily entries, orders and monthly
    targets; nothing is left that needs re-aggregation.
    """

    def __init__(self, conn: sqlite3.Connection, *, clock: Optional[Clock] = None):
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return now_str(self.clock)

    # ---- Queries ----------------------------------------------------------

    def list_order_bookers(self, search: str | None = None, active_only: bool = False) -> list[OrderBooker]:
        where, params = [], []
        if active_only:
            where.append("is_active = 1")
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            where.append("(name LIKE ? OR name_urdu LIKE ? OR phone LIKE ?)")
            params += [pattern, pattern, pattern]
        sql = f"SELECT {_COLUMNS} FROM order_bookers"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY name COLLATE NOCASE"
        return [OrderBooker(**r) for r in self.conn.execute(sql, params).fetchall()]

    def list_with_current_target(
        self, year: int | None = None, month: int | None = None, active_only: bool = False
    ) -> list[sqlite3.Row]:
        """
        Order bookers joined with their target row for (year, month),
        defaulting to the clock's current month. Missing targets read as 0.
        """
        if year is None or month is None:
            today = (self.clock or utc_now)().date()
            year, month = today.year, today.month
        sql = f"""
            SELECT ob.id, ob.name, ob.name_urdu, ob.phone, ob.email, ob.join_date, ob.is_active,
                   COALESCE(mt.target_amount, 0.0)          AS current_month_target,
                   COALESCE(mt.achieved_amount, 0.0)        AS current_month_achievement,
                   COALESCE(mt.remaining_amount, 0.0)       AS current_month_remaining,
                   COALESCE(mt.achievement_percentage, 0.0) AS current_month_percentage
              FROM order_bookers ob
              LEFT JOIN monthly_targets mt
                     ON mt.order_booker_id = ob.id AND mt.year = ? AND mt.month = ?
             {"WHERE ob.is_active = 1" if active_only else ""}
             ORDER BY ob.name COLLATE NOCASE
        """
        return self.conn.execute(sql, (year, month)).fetchall()

    def get(self, order_booker_id: str) -> OrderBooker | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM order_bookers WHERE id = ?", (order_booker_id,)
        ).fetchone()
        return OrderBooker(**r) if r else None

    def exists(self, order_booker_id: str) -> bool:
        return self.conn.execute(
            "SELECT 1 FROM order_bookers WHERE id = ?", (order_booker_id,)
        ).fetchone() is not None

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        name: str,
        name_urdu: str,
        phone: str,
        email: str | None = None,
        join_date=None,
        is_active: bool = True,
    ) -> str:
        name_n = require_text(name, "Name")
        urdu_n = require_text(name_urdu, "Urdu name")
        phone_n = require_text(phone, "Phone")
        now = self._now()
        joined = date_str(join_date) if join_date is not None else to_date(now).isoformat()
        oid = new_id()
        with immediate_tx(self.conn):
            self.conn.execute(
                f"INSERT INTO order_bookers ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (oid, name_n, urdu_n, phone_n, normalize_text(email), joined,
                 1 if is_active else 0, now, now),
            )
        return oid

    def update(
        self,
        order_booker_id: str,
        *,
        name: str,
        name_urdu: str,
        phone: str,
        email: str | None = None,
        join_date=None,
        is_active: bool | None = None,
    ) -> None:
        name_n = require_text(name, "Name")
        urdu_n = require_text(name_urdu, "Urdu name")
        phone_n = require_text(phone, "Phone")
        current = self.get(order_booker_id)
        if current is None:
            raise DomainError(f"Order booker {order_booker_id!r} not found.")
        joined = date_str(join_date) if join_date is not None else current.join_date
        active = current.is_active if is_active is None else (1 if is_active else 0)
        with immediate_tx(self.conn):
            self.conn.execute(
                "UPDATE order_bookers SET name=?, name_urdu=?, phone=?, email=?, join_date=?, "
                "is_active=?, updated_at=? WHERE id=?",
                (name_n, urdu_n, phone_n, normalize_text(email), joined, active,
                 self._now(), order_booker_id),
            )

    def set_active(self, order_booker_id: str, active: bool) -> None:
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE order_bookers SET is_active=?, updated_at=? WHERE id=?",
                (1 if active else 0, self._now(), order_booker_id),
            )
            if cur.rowcount == 0:
                raise DomainError(f"Order booker {order_booker_id!r} not found.")

    def delete(self, order_booker_id: str) -> None:
        with immediate_tx(self.conn):
            cur = self.conn.execute("DELETE FROM order_bookers WHERE id=?", (order_booker_id,))
            if cur.rowcount == 0:
                raise DomainError(f"Order booker {order_booker_id!r} not found.")
