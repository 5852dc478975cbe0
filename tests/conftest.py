# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets a fresh, fully migrated SQLite file under tmp_path
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (via get_connection)
# - Clock is frozen at 2025-07-15 12:00 UTC so "current month" is July 2025
# - `ids` seeds one order booker, one company and two products
#   (units per carton 5 and 0)
# ---------------------------------------------------------------------

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from sales_tracker.database import get_connection
from sales_tracker.database.repositories import (
    CompaniesRepo,
    DailyEntriesRepo,
    MonthlyTargetsRepo,
    OrderBookersRepo,
    OrdersRepo,
    ProductsRepo,
    ReportsRepo,
)

FROZEN_NOW = datetime(2025, 7, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return lambda: FROZEN_NOW


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "sales_tracker.db"


@pytest.fixture
def conn(db_path, clock):
    con = get_connection(db_path, clock=clock)
    try:
        yield con
    finally:
        con.close()


@pytest.fixture
def repos(conn, clock):
    return SimpleNamespace(
        bookers=OrderBookersRepo(conn, clock=clock),
        companies=CompaniesRepo(conn, clock=clock),
        products=ProductsRepo(conn, clock=clock),
        entries=DailyEntriesRepo(conn, clock=clock),
        orders=OrdersRepo(conn, clock=clock),
        targets=MonthlyTargetsRepo(conn, clock=clock),
        reports=ReportsRepo(conn),
    )


@pytest.fixture
def ids(repos):
    booker = repos.bookers.create("Kashif", "کاشف", "+92-300-1000001", join_date="2025-01-01")
    company = repos.companies.create("Fruiticana", "Karachi", "info@fruiticana.com")
    product = repos.products.create(company, "Fruity Orange", 100, 120, 5)
    loose = repos.products.create(company, "Loose Candy", 10, 15, 0)
    return {
        "booker": booker,
        "company": company,
        "product": product,
        "product_no_carton": loose,
    }
