# database/propagation.py
"""
Aggregate propagation: line item -> header.

Every function here runs inside the caller's transaction and never commits.
Item-level derived fields are recomputed first, then the header rollups are
re-aggregated from the stored item rows, so an empty item set yields zeros.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Iterable

from ..utils.calculations import (
    DailyEntryItemTotals,
    DailyEntryTotals,
    OrderItemTotals,
    OrderTotals,
    daily_entry_item_totals,
    daily_entry_totals,
    effective_price,
    order_item_totals,
    order_totals,
)
from .errors import ConstraintViolation

_log = logging.getLogger(__name__)


def _product_row(conn: sqlite3.Connection, product_id: str) -> sqlite3.Row:
    row = conn.execute(
        "SELECT id, cost_price, sell_price, unit_per_carton FROM products WHERE id = ?",
        (product_id,),
    ).fetchone()
    if row is None:
        raise ConstraintViolation(f"Product {product_id!r} does not exist.")
    return row


# -----------------------------
# Orders
# -----------------------------

def recompute_order_item(conn: sqlite3.Connection, item_id: str, *, now: str) -> OrderItemTotals:
    item = conn.execute(
        "SELECT id, product_id, quantity, cost_price, sell_price, return_quantity "
        "FROM order_items WHERE id = ?",
        (item_id,),
    ).fetchone()
    if item is None:
        raise ConstraintViolation(f"Order item {item_id!r} does not exist.")
    product = _product_row(conn, item["product_id"])

    t = order_item_totals(
        quantity=item["quantity"],
        cost_price=item["cost_price"],
        sell_price=item["sell_price"],
        return_quantity=item["return_quantity"] or 0,
        unit_per_carton=product["unit_per_carton"],
    )
    conn.execute(
        """
        UPDATE order_items
           SET total_cost = ?, total_amount = ?, profit = ?, cartons = ?,
               return_amount = ?, return_cartons = ?, updated_at = ?
         WHERE id = ?
        """,
        (t.total_cost, t.total_amount, t.profit, t.cartons,
         t.return_amount, t.return_cartons, now, item_id),
    )
    return t


def recompute_order_totals(conn: sqlite3.Connection, order_id: str, *, now: str) -> OrderTotals:
    rows = conn.execute(
        "SELECT total_cost, total_amount, profit, cartons, return_amount, return_cartons "
        "FROM order_items WHERE order_id = ?",
        (order_id,),
    ).fetchall()
    totals = order_totals(
        OrderItemTotals(
            total_cost=r["total_cost"] or 0.0,
            total_amount=r["total_amount"] or 0.0,
            profit=r["profit"] or 0.0,
            cartons=r["cartons"] or 0.0,
            return_amount=r["return_amount"] or 0.0,
            return_cartons=r["return_cartons"] or 0.0,
        )
        for r in rows
    )
    conn.execute(
        """
        UPDATE orders
           SET total_amount = ?, total_cost = ?, total_profit = ?,
               total_cartons = ?, return_cartons = ?, return_amount = ?, updated_at = ?
         WHERE id = ?
        """,
        (totals.total_amount, totals.total_cost, totals.total_profit,
         totals.total_cartons, totals.return_cartons, totals.return_amount, now, order_id),
    )
    _log.debug("order %s totals -> %s", order_id, totals)
    return totals


def propagate_order(conn: sqlite3.Connection, order_id: str, *, now: str) -> OrderTotals:
    """Recompute every item of the order, then its header."""
    item_ids = [r[0] for r in conn.execute(
        "SELECT id FROM order_items WHERE order_id = ?", (order_id,)
    ).fetchall()]
    for item_id in item_ids:
        recompute_order_item(conn, item_id, now=now)
    return recompute_order_totals(conn, order_id, now=now)


# -----------------------------
# Daily entries
# -----------------------------

def recompute_daily_entry_item(
    conn: sqlite3.Connection, item_id: str, *, now: str
) -> DailyEntryItemTotals:
    item = conn.execute(
        "SELECT id, product_id, quantity_sold, quantity_returned, "
        "cost_price_override, sell_price_override "
        "FROM daily_entry_items WHERE id = ?",
        (item_id,),
    ).fetchone()
    if item is None:
        raise ConstraintViolation(f"Daily entry item {item_id!r} does not exist.")
    product = _product_row(conn, item["product_id"])

    t = daily_entry_item_totals(
        quantity_sold=item["quantity_sold"],
        quantity_returned=item["quantity_returned"],
        cost_price=effective_price(item["cost_price_override"], product["cost_price"]),
        sell_price=effective_price(item["sell_price_override"], product["sell_price"]),
    )
    conn.execute(
        """
        UPDATE daily_entry_items
           SET net_quantity = ?, total_cost = ?, total_revenue = ?, return_amount = ?, updated_at = ?
         WHERE id = ?
        """,
        (t.net_quantity, t.total_cost, t.total_revenue, t.return_amount, now, item_id),
    )
    return t


def recompute_daily_entry_totals(
    conn: sqlite3.Connection, entry_id: str, *, now: str
) -> DailyEntryTotals:
    rows = conn.execute(
        "SELECT net_quantity, total_cost, total_revenue, return_amount "
        "FROM daily_entry_items WHERE daily_entry_id = ?",
        (entry_id,),
    ).fetchall()
    totals = daily_entry_totals(
        DailyEntryItemTotals(
            net_quantity=r["net_quantity"] or 0.0,
            total_cost=r["total_cost"] or 0.0,
            total_revenue=r["total_revenue"] or 0.0,
            return_amount=r["return_amount"] or 0.0,
        )
        for r in rows
    )
    conn.execute(
        """
        UPDATE daily_entries
           SET total_amount = ?, total_return_amount = ?, net_amount = ?, updated_at = ?
         WHERE id = ?
        """,
        (totals.total_amount, totals.total_return_amount, totals.net_amount, now, entry_id),
    )
    _log.debug("daily entry %s totals -> %s", entry_id, totals)
    return totals


# -----------------------------
# Fan-out after reference deletes
# -----------------------------

def affected_by_products(conn: sqlite3.Connection, product_ids: Iterable[str]) -> dict:
    """
    Headers whose item sets lose rows when these products go away.
    Collect BEFORE the delete; the cascade removes the evidence.

    Returns {"orders": set[order_id], "entries": set[entry_id],
             "targets": set[(order_booker_id, date)]}.
    """
    ids = list(product_ids)
    out = {"orders": set(), "entries": set(), "targets": set()}
    if not ids:
        return out
    marks = ", ".join("?" for _ in ids)
    for r in conn.execute(
        f"SELECT DISTINCT order_id FROM order_items WHERE product_id IN ({marks})", ids
    ):
        out["orders"].add(r[0])
    for r in conn.execute(
        f"""
        SELECT DISTINCT de.id, de.order_booker_id, de.date
          FROM daily_entry_items dei
          JOIN daily_entries de ON de.id = dei.daily_entry_id
         WHERE dei.product_id IN ({marks})
        """,
        ids,
    ):
        out["entries"].add(r[0])
        out["targets"].add((r[1], r[2]))
    return out


def settle_after_product_removal(conn: sqlite3.Connection, affected: dict, *, now: str) -> None:
    """
    Re-aggregate the headers collected by affected_by_products() after the
    cascade ran, then reconcile the targets of the touched months.
    Headers that no longer exist are skipped; absent targets stay absent.
    """
    from .targets import reconcile_for_dates

    for order_id in sorted(affected["orders"]):
        if conn.execute("SELECT 1 FROM orders WHERE id = ?", (order_id,)).fetchone():
            recompute_order_totals(conn, order_id, now=now)
    for entry_id in sorted(affected["entries"]):
        if conn.execute("SELECT 1 FROM daily_entries WHERE id = ?", (entry_id,)).fetchone():
            recompute_daily_entry_totals(conn, entry_id, now=now)
    reconcile_for_dates(conn, affected["targets"], now=now, create_missing=False)


def product_ids_for_company(conn: sqlite3.Connection, company_id: str) -> list[str]:
    return [r[0] for r in conn.execute(
        "SELECT id FROM products WHERE company_id = ?", (company_id,)
    ).fetchall()]


__all__ = [
    "recompute_order_item",
    "recompute_order_totals",
    "propagate_order",
    "recompute_daily_entry_item",
    "recompute_daily_entry_totals",
    "affected_by_products",
    "settle_after_product_removal",
    "product_ids_for_company",
]
