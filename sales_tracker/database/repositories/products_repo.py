from __future__ import annotations
from dataclasses import dataclass
import logging
import sqlite3
from typing import Optional

from ...utils.helpers import Clock, new_id, now_str
from ...utils.validators import require_non_negative, require_text
from ..errors import ConstraintViolation, DomainError
from ..propagation import affected_by_products, settle_after_product_removal
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)


@dataclass
class Product:
    id: str
    company_id: str
    name: str
    cost_price: float
    sell_price: float
    unit_per_carton: int
    created_at: str | None = None
    updated_at: str | None = None


_COLUMNS = "id, company_id, name, cost_price, sell_price, unit_per_carton, created_at, updated_at"


class ProductsRepo:
    """
    Products belong to a company. Line items freeze their own prices, so a price
    change here never rewrites existing order or daily entry items.
    """

    def __init__(self, conn: sqlite3.Connection, *, clock: Optional[Clock] = None):
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return now_str(self.clock)

    @staticmethod
    def _validate(name, cost_price, sell_price, unit_per_carton) -> tuple:
        name_n = require_text(name, "Product name")
        cost = require_non_negative(cost_price, "Cost price")
        sell = require_non_negative(sell_price, "Sell price")
        upc = require_non_negative(unit_per_carton, "Units per carton")
        return name_n, cost, sell, int(upc)

    def _ensure_company(self, company_id: str) -> None:
        if self.conn.execute("SELECT 1 FROM companies WHERE id=?", (company_id,)).fetchone() is None:
            raise ConstraintViolation(f"Company {company_id!r} does not exist.")

    # ---------------------------- Queries ----------------------------

    def list_products(self, company_id: str | None = None, search: str | None = None) -> list[Product]:
        where, params = [], []
        if company_id:
            where.append("company_id = ?")
            params.append(company_id)
        if search and search.strip():
            where.append("name LIKE ?")
            params.append(f"%{search.strip()}%")
        sql = f"SELECT {_COLUMNS} FROM products"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY name COLLATE NOCASE"
        return [Product(**r) for r in self.conn.execute(sql, params).fetchall()]

    def list_with_company(self) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT p.id, p.name, p.cost_price, p.sell_price, p.unit_per_carton,
                   p.company_id, c.name AS company_name
              FROM products p
              JOIN companies c ON c.id = p.company_id
             ORDER BY c.name COLLATE NOCASE, p.name COLLATE NOCASE
            """
        ).fetchall()

    def get(self, product_id: str) -> Product | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products WHERE id = ?", (product_id,)
        ).fetchone()
        return Product(**r) if r else None

    # ---------------------------- Mutations ----------------------------

    def create(
        self,
        company_id: str,
        name: str,
        cost_price: float,
        sell_price: float,
        unit_per_carton: int,
    ) -> str:
        name_n, cost, sell, upc = self._validate(name, cost_price, sell_price, unit_per_carton)
        now = self._now()
        pid = new_id()
        with immediate_tx(self.conn):
            self._ensure_company(company_id)
            self.conn.execute(
                f"INSERT INTO products ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (pid, company_id, name_n, cost, sell, upc, now, now),
            )
        return pid

    def update(
        self,
        product_id: str,
        *,
        company_id: str,
        name: str,
        cost_price: float,
        sell_price: float,
        unit_per_carton: int,
    ) -> None:
        name_n, cost, sell, upc = self._validate(name, cost_price, sell_price, unit_per_carton)
        with immediate_tx(self.conn):
            self._ensure_company(company_id)
            cur = self.conn.execute(
                "UPDATE products SET company_id=?, name=?, cost_price=?, sell_price=?, "
                "unit_per_carton=?, updated_at=? WHERE id=?",
                (company_id, name_n, cost, sell, upc, self._now(), product_id),
            )
            if cur.rowcount == 0:
                raise DomainError(f"Product {product_id!r} not found.")

    def delete(self, product_id: str) -> None:
        """
        Cascades to every order item and daily entry item for this product;
        the owning headers and their monthly targets are re-aggregated in the
        same transaction.
        """
        now = self._now()
        with immediate_tx(self.conn):
            affected = affected_by_products(self.conn, [product_id])
            cur = self.conn.execute("DELETE FROM products WHERE id=?", (product_id,))
            if cur.rowcount == 0:
                raise DomainError(f"Product {product_id!r} not found.")
            settle_after_product_removal(self.conn, affected, now=now)
        _log.info(
            "deleted product %s (%d orders, %d daily entries re-aggregated)",
            product_id, len(affected["orders"]), len(affected["entries"]),
        )
