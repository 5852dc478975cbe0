from __future__ import annotations
from dataclasses import dataclass, fields
import logging
import sqlite3
from typing import Iterable, Optional

from ...constants import DEFAULT_ORDER_STATUS, ORDER_STATUSES
from ...utils.helpers import Clock, DateLike, new_id, now_str, to_date
from ...utils.validators import normalize_text, require_non_negative, require_status
from ..errors import ConstraintViolation, DomainError
from ..propagation import recompute_order_item, recompute_order_totals
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class Order:
    id: str
    order_booker_id: str
    order_date: str
    supply_date: str | None
    status: str
    notes: str | None
    total_amount: float = 0.0
    total_cost: float = 0.0
    total_profit: float = 0.0
    total_cartons: float = 0.0
    return_cartons: float = 0.0
    return_amount: float = 0.0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class OrderItem:
    product_id: str
    quantity: int
    cost_price: float | None = None     # None -> product's current cost price
    sell_price: float | None = None     # None -> product's current sell price
    return_quantity: int = 0
    # derived / storage
    id: str | None = None
    order_id: str | None = None
    total_cost: float = 0.0
    total_amount: float = 0.0
    profit: float = 0.0
    cartons: float = 0.0
    return_amount: float = 0.0
    return_cartons: float = 0.0
    created_at: str | None = None
    updated_at: str | None = None


_ORDER_FIELDS = tuple(f.name for f in fields(Order))
_ITEM_FIELDS = tuple(f.name for f in fields(OrderItem))

# list_orders(sort_by=...) whitelist -> SQL expression
_SORT_COLUMNS = {
    "order_date": "o.order_date",
    "supply_date": "o.supply_date",
    "total_amount": "o.total_amount",
    "total_profit": "o.total_profit",
    "total_cartons": "o.total_cartons",
    "status": "o.status",
    "order_booker_name": "ob.name",
    "created_at": "o.created_at",
}


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


class OrdersRepo:
    """
    Orders (header) + order items.

    Items freeze cost/sell price at write time. Every item write recomputes the
    item's derived fields and then the order's six rollups in the same transaction.
    """

    def __init__(self, conn: sqlite3.Connection, *, clock: Optional[Clock] = None):
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return now_str(self.clock)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_orders(
        self,
        order_booker_id: str | None = None,
        status: str | None = None,
        date_from: DateLike | None = None,
        date_to: DateLike | None = None,
        search: str | None = None,
        sort_by: str = "order_date",
        sort_dir: str = "desc",
    ) -> list[sqlite3.Row]:
        where, params = self._filters(order_booker_id, status, date_from, date_to, search)
        column = _SORT_COLUMNS.get(sort_by)
        if column is None:
            raise DomainError(f"Cannot sort orders by {sort_by!r}.")
        direction = "ASC" if str(sort_dir).lower() == "asc" else "DESC"

        sql = """
          SELECT o.id, o.order_booker_id, ob.name AS order_booker_name,
                 ob.name_urdu AS order_booker_name_urdu,
                 o.order_date, o.supply_date, o.status, o.notes,
                 CAST(o.total_amount AS REAL)   AS total_amount,
                 CAST(o.total_cost AS REAL)     AS total_cost,
                 CAST(o.total_profit AS REAL)   AS total_profit,
                 CAST(o.total_cartons AS REAL)  AS total_cartons,
                 CAST(o.return_cartons AS REAL) AS return_cartons,
                 CAST(o.return_amount AS REAL)  AS return_amount,
                 (SELECT COUNT(*) FROM order_items oi WHERE oi.order_id = o.id) AS item_count
            FROM orders o
            JOIN order_bookers ob ON ob.id = o.order_booker_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" ORDER BY {column} {direction}, o.created_at {direction}"
        return self.conn.execute(sql, params).fetchall()

    @staticmethod
    def _filters(order_booker_id, status, date_from, date_to, search) -> tuple[list, list]:
        where, params = [], []
        if order_booker_id:
            where.append("o.order_booker_id = ?")
            params.append(order_booker_id)
        if status:
            where.append("o.status = ?")
            params.append(require_status(status))
        if date_from is not None:
            where.append("o.order_date >= ?")
            params.append(_as_date(date_from))
        if date_to is not None:
            where.append("o.order_date <= ?")
            params.append(_as_date(date_to))
        if search and search.strip():
            where.append("(o.notes LIKE ? OR ob.name LIKE ?)")
            pattern = f"%{search.strip()}%"
            params += [pattern, pattern]
        return where, params

    def get(self, order_id: str) -> Order | None:
        r = self.conn.execute(
            f"SELECT {', '.join(_ORDER_FIELDS)} FROM orders WHERE id = ?", (order_id,)
        ).fetchone()
        return Order(**r) if r else None

    def list_items(self, order_id: str) -> list[OrderItem]:
        rows = self.conn.execute(
            f"SELECT {', '.join(_ITEM_FIELDS)} FROM order_items WHERE order_id = ? ORDER BY rowid",
            (order_id,),
        ).fetchall()
        return [OrderItem(**r) for r in rows]

    def list_items_detailed(self, order_id: str) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT oi.id, oi.product_id, p.name AS product_name, c.name AS company_name,
                   p.unit_per_carton, oi.quantity, oi.return_quantity,
                   oi.cost_price, oi.sell_price, oi.total_cost, oi.total_amount, oi.profit,
                   oi.cartons, oi.return_amount, oi.return_cartons
              FROM order_items oi
              JOIN products p  ON p.id = oi.product_id
              JOIN companies c ON c.id = p.company_id
             WHERE oi.order_id = ?
             ORDER BY oi.rowid
            """,
            (order_id,),
        ).fetchall()

    def get_with_items(self, order_id: str) -> tuple[Order, list[OrderItem]] | None:
        header = self.get(order_id)
        if header is None:
            return None
        return header, self.list_items(order_id)

    def summary(
        self,
        order_booker_id: str | None = None,
        status: str | None = None,
        date_from: DateLike | None = None,
        date_to: DateLike | None = None,
        search: str | None = None,
    ) -> dict:
        """Totals over the filtered orders plus a count per status (every status present, 0 if none)."""
        where, params = self._filters(order_booker_id, status, date_from, date_to, search)
        clause = (" WHERE " + " AND ".join(where)) if where else ""
        base = "FROM orders o JOIN order_bookers ob ON ob.id = o.order_booker_id" + clause

        r = self.conn.execute(
            f"""
            SELECT COUNT(*)                               AS total_orders,
                   COALESCE(SUM(o.total_amount), 0.0)     AS total_amount,
                   COALESCE(SUM(o.total_cost), 0.0)       AS total_cost,
                   COALESCE(SUM(o.total_profit), 0.0)     AS total_profit,
                   COALESCE(SUM(o.total_cartons), 0.0)    AS total_cartons,
                   COALESCE(SUM(o.return_cartons), 0.0)   AS return_cartons,
                   COALESCE(SUM(o.return_amount), 0.0)    AS return_amount
            {base}
            """,
            params,
        ).fetchone()
        out = {k: r[k] for k in r.keys()}

        by_status = {s: 0 for s in ORDER_STATUSES}
        for s, n in self.conn.execute(f"SELECT o.status, COUNT(*) {base} GROUP BY o.status", params):
            by_status[s] = int(n)
        out["by_status"] = by_status
        return out

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------
    def _ensure_order_booker(self, order_booker_id: str) -> None:
        if self.conn.execute(
            "SELECT 1 FROM order_bookers WHERE id = ?", (order_booker_id,)
        ).fetchone() is None:
            raise ConstraintViolation(f"Order booker {order_booker_id!r} does not exist.")

    def _product_prices(self, product_id: str) -> sqlite3.Row:
        r = self.conn.execute(
            "SELECT cost_price, sell_price FROM products WHERE id = ?", (product_id,)
        ).fetchone()
        if r is None:
            raise ConstraintViolation(f"Product {product_id!r} does not exist.")
        return r

    def _order_id_for_item(self, item_id: str) -> str:
        r = self.conn.execute("SELECT order_id FROM order_items WHERE id = ?", (item_id,)).fetchone()
        if r is None:
            raise DomainError(f"Order item {item_id!r} not found.")
        return r["order_id"]

    def _ensure_order(self, order_id: str) -> None:
        if self.conn.execute("SELECT 1 FROM orders WHERE id = ?", (order_id,)).fetchone() is None:
            raise DomainError(f"Order {order_id!r} not found.")

    def _insert_item(self, order_id: str, it: OrderItem, now: str) -> str:
        qty = _quantity(it.quantity, "Quantity")
        ret = _quantity(it.return_quantity or 0, "Return quantity")
        prices = self._product_prices(it.product_id)
        cost = require_non_negative(
            it.cost_price if it.cost_price is not None else prices["cost_price"], "Cost price"
        )
        sell = require_non_negative(
            it.sell_price if it.sell_price is not None else prices["sell_price"], "Sell price"
        )
        iid = it.id or new_id()
        self.conn.execute(
            """
            INSERT INTO order_items (
                id, order_id, product_id, quantity, cost_price, sell_price, return_quantity,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (iid, order_id, it.product_id, qty, cost, sell, ret, now, now),
        )
        recompute_order_item(self.conn, iid, now=now)
        return iid

    # ---------------------------------------------------------------------
    # WRITE - header
    # ---------------------------------------------------------------------
    def create(
        self,
        order_booker_id: str,
        order_date: DateLike,
        items: Iterable[OrderItem],
        *,
        supply_date: DateLike | None = None,
        status: str = DEFAULT_ORDER_STATUS,
        notes: str | None = None,
    ) -> Order:
        od = _as_date(order_date)
        sd = _as_date(supply_date) if supply_date is not None else None
        st = require_status(status)
        now = self._now()
        oid = new_id()
        with immediate_tx(self.conn):
            self._ensure_order_booker(order_booker_id)
            self.conn.execute(
                """
                INSERT INTO orders (
                    id, order_booker_id, order_date, supply_date, status, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (oid, order_booker_id, od, sd, st, normalize_text(notes), now, now),
            )
            for it in items:
                self._insert_item(oid, it, now)
            recompute_order_totals(self.conn, oid, now=now)
        _log.debug("created order %s for %s", oid, order_booker_id)
        return self.get(oid)

    def update(
        self,
        order_id: str,
        *,
        order_booker_id: str | None = None,
        order_date: DateLike | None = None,
        supply_date=_UNSET,
        status: str | None = None,
        notes=_UNSET,
    ) -> Order:
        """Header fields only; pass supply_date/notes as None to clear them."""
        sets, params = [], []
        if order_booker_id is not None:
            sets.append("order_booker_id = ?")
            params.append(order_booker_id)
        if order_date is not None:
            sets.append("order_date = ?")
            params.append(_as_date(order_date))
        if supply_date is not _UNSET:
            sets.append("supply_date = ?")
            params.append(_as_date(supply_date) if supply_date is not None else None)
        if status is not None:
            sets.append("status = ?")
            params.append(require_status(status))
        if notes is not _UNSET:
            sets.append("notes = ?")
            params.append(normalize_text(notes))

        with immediate_tx(self.conn):
            self._ensure_order(order_id)
            if order_booker_id is not None:
                self._ensure_order_booker(order_booker_id)
            sets.append("updated_at = ?")
            params.append(self._now())
            self.conn.execute(f"UPDATE orders SET {', '.join(sets)} WHERE id = ?", (*params, order_id))
        return self.get(order_id)

    def set_status(self, order_id: str, status: str) -> Order:
        return self.update(order_id, status=status)

    def delete(self, order_id: str) -> None:
        with immediate_tx(self.conn):
            cur = self.conn.execute("DELETE FROM orders WHERE id = ?", (order_id,))
            if cur.rowcount == 0:
                raise DomainError(f"Order {order_id!r} not found.")
        _log.debug("deleted order %s", order_id)

    # ---------------------------------------------------------------------
    # WRITE - items
    # ---------------------------------------------------------------------
    def add_item(self, order_id: str, item: OrderItem) -> Order:
        now = self._now()
        with immediate_tx(self.conn):
            self._ensure_order(order_id)
            self._insert_item(order_id, item, now)
            recompute_order_totals(self.conn, order_id, now=now)
        return self.get(order_id)

    def update_item(
        self,
        item_id: str,
        *,
        product_id: str | None = None,
        quantity=None,
        cost_price=None,
        sell_price=None,
        return_quantity=None,
    ) -> Order:
        """Only the passed fields change; derived fields and the order rollups follow."""
        sets, params = [], []
        if quantity is not None:
            sets.append("quantity = ?")
            params.append(_quantity(quantity, "Quantity"))
        if cost_price is not None:
            sets.append("cost_price = ?")
            params.append(require_non_negative(cost_price, "Cost price"))
        if sell_price is not None:
            sets.append("sell_price = ?")
            params.append(require_non_negative(sell_price, "Sell price"))
        if return_quantity is not None:
            sets.append("return_quantity = ?")
            params.append(_quantity(return_quantity, "Return quantity"))

        now = self._now()
        with immediate_tx(self.conn):
            order_id = self._order_id_for_item(item_id)
            if product_id is not None:
                self._product_prices(product_id)
                sets.append("product_id = ?")
                params.append(product_id)
            if sets:
                self.conn.execute(
                    f"UPDATE order_items SET {', '.join(sets)} WHERE id = ?", (*params, item_id)
                )
            recompute_order_item(self.conn, item_id, now=now)
            recompute_order_totals(self.conn, order_id, now=now)
        return self.get(order_id)

    def record_return(self, item_id: str, return_quantity) -> Order:
        return self.update_item(item_id, return_quantity=return_quantity)

    def delete_item(self, item_id: str) -> Order:
        now = self._now()
        with immediate_tx(self.conn):
            order_id = self._order_id_for_item(item_id)
            self.conn.execute("DELETE FROM order_items WHERE id = ?", (item_id,))
            recompute_order_totals(self.conn, order_id, now=now)
        return self.get(order_id)
