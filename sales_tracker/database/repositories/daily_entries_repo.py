from __future__ import annotations
from dataclasses import dataclass, fields
import logging
import sqlite3
from typing import Iterable, Optional, Sequence

from ...utils.helpers import Clock, DateLike, month_bounds, new_id, now_str, to_date
from ...utils.validators import normalize_text, optional_non_negative, require_non_negative
from ..errors import ConstraintViolation, DomainError
from ..propagation import recompute_daily_entry_item, recompute_daily_entry_totals
from ..targets import reconcile_for_dates
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class DailyEntry:
    id: str
    order_booker_id: str
    date: str
    notes: str | None
    total_amount: float = 0.0
    total_return_amount: float = 0.0
    net_amount: float = 0.0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class DailyEntryItem:
    product_id: str
    quantity_sold: int = 0
    quantity_returned: int = 0
    cost_price_override: float | None = None
    sell_price_override: float | None = None
    # derived / storage
    id: str | None = None
    daily_entry_id: str | None = None
    net_quantity: int = 0
    total_cost: float = 0.0
    total_revenue: float = 0.0
    return_amount: float = 0.0
    created_at: str | None = None
    updated_at: str | None = None


_ITEM_FIELDS = tuple(f.name for f in fields(DailyEntryItem))


def _as_date(value: DateLike) -> str:
    try:
        return to_date(value).isoformat()
    except ValueError as e:
        raise DomainError(str(e)) from e


def _quantity(value, label: str) -> int:
    q = require_non_negative(value, label)
    if q != int(q):
        raise DomainError(f"{label} must be a whole number.")
    return int(q)


class DailyEntriesRepo:
    """
    Daily entries (header) + line items.

    Every write recomputes, in one transaction:
      item derived fields -> header totals -> monthly target of the entry's month
    (and of the previous month when the entry moves between months or agents).
    """

    def __init__(self, conn: sqlite3.Connection, *, clock: Optional[Clock] = None):
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return now_str(self.clock)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_entries(
        self,
        order_booker_ids: Sequence[str] | None = None,
        date_from: DateLike | None = None,
        date_to: DateLike | None = None,
        year: int | None = None,
        month: int | None = None,
    ) -> list[sqlite3.Row]:
        where, params = [], []
        if order_booker_ids:
            where.append(f"de.order_booker_id IN ({', '.join('?' for _ in order_booker_ids)})")
            params += list(order_booker_ids)
        if year is not None and month is not None:
            start, end = month_bounds(year, month)
            where.append("de.date >= ? AND de.date < ?")
            params += [start, end]
        if date_from is not None:
            where.append("de.date >= ?")
            params.append(_as_date(date_from))
        if date_to is not None:
            where.append("de.date <= ?")
            params.append(_as_date(date_to))

        sql = """
          SELECT de.id, de.order_booker_id, ob.name AS order_booker_name,
                 ob.name_urdu AS order_booker_name_urdu, de.date, de.notes,
                 CAST(de.total_amount AS REAL)        AS total_amount,
                 CAST(de.total_return_amount AS REAL) AS total_return_amount,
                 CAST(de.net_amount AS REAL)          AS net_amount,
                 (SELECT COUNT(*) FROM daily_entry_items i WHERE i.daily_entry_id = de.id) AS item_count
            FROM daily_entries de
            JOIN order_bookers ob ON ob.id = de.order_booker_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY de.date DESC, ob.name COLLATE NOCASE"
        return self.conn.execute(sql, params).fetchall()

    def get(self, entry_id: str) -> DailyEntry | None:
        r = self.conn.execute(
            "SELECT id, order_booker_id, date, notes, total_amount, total_return_amount, "
            "net_amount, created_at, updated_at FROM daily_entries WHERE id = ?",
            (entry_id,),
        ).fetchone()
        return DailyEntry(**r) if r else None

    def list_items(self, entry_id: str) -> list[DailyEntryItem]:
        rows = self.conn.execute(
            f"SELECT {', '.join(_ITEM_FIELDS)} FROM daily_entry_items "
            "WHERE daily_entry_id = ? ORDER BY rowid",
            (entry_id,),
        ).fetchall()
        return [DailyEntryItem(**r) for r in rows]

    def list_items_detailed(self, entry_id: str) -> list[sqlite3.Row]:
        """Items with product/company names and the effective prices used."""
        return self.conn.execute(
            """
            SELECT i.id, i.product_id, p.name AS product_name, c.name AS company_name,
                   i.quantity_sold, i.quantity_returned, i.net_quantity,
                   COALESCE(i.cost_price_override, p.cost_price) AS cost_price,
                   COALESCE(i.sell_price_override, p.sell_price) AS sell_price,
                   i.total_cost, i.total_revenue, i.return_amount
              FROM daily_entry_items i
              JOIN products p  ON p.id = i.product_id
              JOIN companies c ON c.id = p.company_id
             WHERE i.daily_entry_id = ?
             ORDER BY i.rowid
            """,
            (entry_id,),
        ).fetchall()

    def get_with_items(self, entry_id: str) -> tuple[DailyEntry, list[DailyEntryItem]] | None:
        header = self.get(entry_id)
        if header is None:
            return None
        return header, self.list_items(entry_id)

    def monthly_analytics(self, year: int, month: int) -> list[sqlite3.Row]:
        """Per order booker: entry count, gross/returns/net for the month, and the target row."""
        start, end = month_bounds(year, month)
        return self.conn.execute(
            """
            SELECT ob.id AS order_booker_id, ob.name, ob.name_urdu,
                   COUNT(de.id)                              AS entry_count,
                   COALESCE(SUM(de.total_amount), 0.0)        AS total_sales,
                   COALESCE(SUM(de.total_return_amount), 0.0) AS total_returns,
                   COALESCE(SUM(de.net_amount), 0.0)          AS net_sales,
                   COALESCE(mt.target_amount, 0.0)            AS target_amount,
                   COALESCE(mt.achievement_percentage, 0.0)   AS achievement_percentage
              FROM order_bookers ob
              LEFT JOIN daily_entries de
                     ON de.order_booker_id = ob.id AND de.date >= ? AND de.date < ?
              LEFT JOIN monthly_targets mt
                     ON mt.order_booker_id = ob.id AND mt.year = ? AND mt.month = ?
             GROUP BY ob.id
             ORDER BY net_sales DESC, ob.name COLLATE NOCASE
            """,
            (start, end, year, month),
        ).fetchall()

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------
    def _ensure_order_booker(self, order_booker_id: str) -> None:
        if self.conn.execute(
            "SELECT 1 FROM order_bookers WHERE id = ?", (order_booker_id,)
        ).fetchone() is None:
            raise ConstraintViolation(f"Order booker {order_booker_id!r} does not exist.")

    def _ensure_product(self, product_id: str) -> None:
        if self.conn.execute("SELECT 1 FROM products WHERE id = ?", (product_id,)).fetchone() is None:
            raise ConstraintViolation(f"Product {product_id!r} does not exist.")

    def _header_key(self, entry_id: str) -> tuple[str, str]:
        r = self.conn.execute(
            "SELECT order_booker_id, date FROM daily_entries WHERE id = ?", (entry_id,)
        ).fetchone()
        if r is None:
            raise DomainError(f"Daily entry {entry_id!r} not found.")
        return r["order_booker_id"], r["date"]

    def _insert_item(self, entry_id: str, it: DailyEntryItem, now: str) -> str:
        sold = _quantity(it.quantity_sold, "Quantity sold")
        returned = _quantity(it.quantity_returned, "Quantity returned")
        cost_o = optional_non_negative(it.cost_price_override, "Cost price")
        sell_o = optional_non_negative(it.sell_price_override, "Sell price")
        self._ensure_product(it.product_id)
        iid = it.id or new_id()
        self.conn.execute(
            """
            INSERT INTO daily_entry_items (
                id, daily_entry_id, product_id, quantity_sold, quantity_returned,
                cost_price_override, sell_price_override, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (iid, entry_id, it.product_id, sold, returned, cost_o, sell_o, now, now),
        )
        recompute_daily_entry_item(self.conn, iid, now=now)
        return iid

    def _settle(self, entry_id: str, keys: Iterable[tuple[str, str]], now: str) -> None:
        recompute_daily_entry_totals(self.conn, entry_id, now=now)
        reconcile_for_dates(self.conn, keys, now=now)

    # ---------------------------------------------------------------------
    # WRITE - header
    # ---------------------------------------------------------------------
    def create(
        self,
        order_booker_id: str,
        date: DateLike,
        items: Iterable[DailyEntryItem],
        notes: str | None = None,
    ) -> DailyEntry:
        d = _as_date(date)
        now = self._now()
        eid = new_id()
        with immediate_tx(self.conn):
            self._ensure_order_booker(order_booker_id)
            self.conn.execute(
                """
                INSERT INTO daily_entries (
                    id, order_booker_id, date, notes, total_amount, total_return_amount,
                    net_amount, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 0, 0, 0, ?, ?)
                """,
                (eid, order_booker_id, d, normalize_text(notes), now, now),
            )
            for it in items:
                self._insert_item(eid, it, now)
            self._settle(eid, [(order_booker_id, d)], now)
        _log.debug("created daily entry %s for %s on %s", eid, order_booker_id, d)
        return self.get(eid)

    def update(
        self,
        entry_id: str,
        *,
        order_booker_id: str | None = None,
        date: DateLike | None = None,
        notes=_UNSET,
        items: Iterable[DailyEntryItem] | None = None,
    ) -> DailyEntry:
        """
        Change header fields and/or replace the full item set.
        When the entry moves to another month or agent, both the old and the
        new month's targets are reconciled.
        """
        now = self._now()
        with immediate_tx(self.conn):
            old_agent, old_date = self._header_key(entry_id)
            new_agent = order_booker_id or old_agent
            new_date = _as_date(date) if date is not None else old_date
            if new_agent != old_agent:
                self._ensure_order_booker(new_agent)

            sets, params = ["order_booker_id = ?", "date = ?", "updated_at = ?"], [new_agent, new_date, now]
            if notes is not _UNSET:
                sets.append("notes = ?")
                params.append(normalize_text(notes))
            self.conn.execute(
                f"UPDATE daily_entries SET {', '.join(sets)} WHERE id = ?", (*params, entry_id)
            )

            if items is not None:
                self.conn.execute("DELETE FROM daily_entry_items WHERE daily_entry_id = ?", (entry_id,))
                for it in items:
                    self._insert_item(entry_id, it, now)

            self._settle(entry_id, [(old_agent, old_date), (new_agent, new_date)], now)
        return self.get(entry_id)

    def delete(self, entry_id: str) -> None:
        now = self._now()
        with immediate_tx(self.conn):
            key = self._header_key(entry_id)
            self.conn.execute("DELETE FROM daily_entries WHERE id = ?", (entry_id,))
            reconcile_for_dates(self.conn, [key], now=now, create_missing=False)
        _log.debug("deleted daily entry %s", entry_id)

    # ---------------------------------------------------------------------
    # WRITE - items
    # ---------------------------------------------------------------------
    def add_item(self, entry_id: str, item: DailyEntryItem) -> DailyEntry:
        now = self._now()
        with immediate_tx(self.conn):
            key = self._header_key(entry_id)
            self._insert_item(entry_id, item, now)
            self._settle(entry_id, [key], now)
        return self.get(entry_id)

    def update_item(
        self,
        item_id: str,
        *,
        product_id: str | None = None,
        quantity_sold=None,
        quantity_returned=None,
        cost_price_override=_UNSET,
        sell_price_override=_UNSET,
    ) -> DailyEntry:
        """Only the passed fields change. Pass an override as None to clear it."""
        now = self._now()
        with immediate_tx(self.conn):
            r = self.conn.execute(
                "SELECT daily_entry_id FROM daily_entry_items WHERE id = ?", (item_id,)
            ).fetchone()
            if r is None:
                raise DomainError(f"Daily entry item {item_id!r} not found.")
            entry_id = r["daily_entry_id"]

            sets, params = [], []
            if product_id is not None:
                self._ensure_product(product_id)
                sets.append("product_id = ?")
                params.append(product_id)
            if quantity_sold is not None:
                sets.append("quantity_sold = ?")
                params.append(_quantity(quantity_sold, "Quantity sold"))
            if quantity_returned is not None:
                sets.append("quantity_returned = ?")
                params.append(_quantity(quantity_returned, "Quantity returned"))
            if cost_price_override is not _UNSET:
                sets.append("cost_price_override = ?")
                params.append(optional_non_negative(cost_price_override, "Cost price"))
            if sell_price_override is not _UNSET:
                sets.append("sell_price_override = ?")
                params.append(optional_non_negative(sell_price_override, "Sell price"))
            if sets:
                self.conn.execute(
                    f"UPDATE daily_entry_items SET {', '.join(sets)} WHERE id = ?", (*params, item_id)
                )

            recompute_daily_entry_item(self.conn, item_id, now=now)
            self._settle(entry_id, [self._header_key(entry_id)], now)
        return self.get(entry_id)

    def delete_item(self, item_id: str) -> DailyEntry:
        now = self._now()
        with immediate_tx(self.conn):
            r = self.conn.execute(
                "SELECT daily_entry_id FROM daily_entry_items WHERE id = ?", (item_id,)
            ).fetchone()
            if r is None:
                raise DomainError(f"Daily entry item {item_id!r} not found.")
            entry_id = r["daily_entry_id"]
            self.conn.execute("DELETE FROM daily_entry_items WHERE id = ?", (item_id,))
            self._settle(entry_id, [self._header_key(entry_id)], now)
        return self.get(entry_id)
