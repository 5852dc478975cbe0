from __future__ import annotations
from dataclasses import dataclass
import logging
import sqlite3
from typing import Optional

from ...utils.helpers import Clock, new_id, now_str
from ...utils.validators import normalize_text, require_text
from ..errors import DomainError
from ..propagation import affected_by_products, product_ids_for_company, settle_after_product_removal
from ..transactions import immediate_tx

_log = logging.getLogger(__name__)


@dataclass
class Company:
    id: str
    name: str
    address: str | None
    email: str | None
    phone: str | None
    created_at: str | None = None
    updated_at: str | None = None


_COLUMNS = "id, name, address, email, phone, created_at, updated_at"


class CompaniesRepo:
    def __init__(self, conn: sqlite3.Connection, *, clock: Optional[Clock] = None):
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return now_str(self.clock)

    # ---- Queries ----------------------------------------------------------

    def list_companies(self, search: str | None = None) -> list[Company]:
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            rows = self.conn.execute(
                f"SELECT {_COLUMNS} FROM companies "
                "WHERE name LIKE ? OR address LIKE ? OR email LIKE ? OR phone LIKE ? "
                "ORDER BY name COLLATE NOCASE",
                (pattern, pattern, pattern, pattern),
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"SELECT {_COLUMNS} FROM companies ORDER BY name COLLATE NOCASE"
            ).fetchall()
        return [Company(**r) for r in rows]

    def get(self, company_id: str) -> Company | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM companies WHERE id = ?", (company_id,)
        ).fetchone()
        return Company(**r) if r else None

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        name: str,
        address: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> str:
        name_n = require_text(name, "Company name")
        now = self._now()
        cid = new_id()
        with immediate_tx(self.conn):
            self.conn.execute(
                f"INSERT INTO companies ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (cid, name_n, normalize_text(address), normalize_text(email),
                 normalize_text(phone), now, now),
            )
        return cid

    def update(
        self,
        company_id: str,
        *,
        name: str,
        address: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> None:
        name_n = require_text(name, "Company name")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE companies SET name=?, address=?, email=?, phone=?, updated_at=? WHERE id=?",
                (name_n, normalize_text(address), normalize_text(email),
                 normalize_text(phone), self._now(), company_id),
            )
            if cur.rowcount == 0:
                raise DomainError(f"Company {company_id!r} not found.")

    def delete(self, company_id: str) -> None:
        """
        Cascades to the company's products and every line item that references them.
        Orders, daily entries and monthly targets that lost items are re-aggregated
        in the same transaction.
        """
        now = self._now()
        with immediate_tx(self.conn):
            affected = affected_by_products(self.conn, product_ids_for_company(self.conn, company_id))
            cur = self.conn.execute("DELETE FROM companies WHERE id=?", (company_id,))
            if cur.rowcount == 0:
                raise DomainError(f"Company {company_id!r} not found.")
            settle_after_product_removal(self.conn, affected, now=now)
        _log.info(
            "deleted company %s (%d orders, %d daily entries re-aggregated)",
            company_id, len(affected["orders"]), len(affected["entries"]),
        )
