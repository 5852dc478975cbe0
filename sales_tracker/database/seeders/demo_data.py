"""
Demo data set: one beverage company, its products, four order bookers and
July 2025 activity (daily entries every working day, a handful of orders).

Everything is written through the repositories so every stored total comes
from the propagation/reconciliation code, never from this file.
Runs only when there are no order bookers yet.
"""
from __future__ import annotations

import logging
import random
import sqlite3
from datetime import date, timedelta
from typing import Optional

from ...utils.helpers import Clock
from ..repositories import (
    CompaniesRepo,
    DailyEntriesRepo,
    DailyEntryItem,
    MonthlyTargetsRepo,
    OrderBookersRepo,
    OrderItem,
    OrdersRepo,
    ProductsRepo,
)

_log = logging.getLogger(__name__)

DEMO_YEAR = 2025
DEMO_MONTH = 7
MONTHLY_TARGET = 700000.0

ORDER_BOOKERS = [
    ("Kashif", "کاشف", "+92-300-1000001", "kashif@fruiticana.com"),
    ("Abdur Rehman", "عبدالرحمن", "+92-300-1000002", "abdur.rehman@fruiticana.com"),
    ("Naveed", "نوید", "+92-300-1000003", "naveed@fruiticana.com"),
    ("Mobin", "موبن", "+92-300-1000004", "mobin@fruiticana.com"),
]

COMPANY = ("Fruiticana", "Karachi, Pakistan", "info@fruiticana.com", "+92-21-1234567")

PRODUCTS = [
    # name, cost, sell, units per carton
    ("Fruity Orange", 100.0, 120.0, 24),
    ("Fruity Apple", 110.0, 135.0, 24),
    ("Fruity Mango", 120.0, 150.0, 24),
    ("Fresh Cola", 80.0, 100.0, 24),
    ("Lemon Fizz", 90.0, 115.0, 24),
    ("Energy Boost", 150.0, 180.0, 12),
]


def seed_demo_data(conn: sqlite3.Connection, *, clock: Optional[Clock] = None, seed: int = 2025) -> bool:
    """Returns True when data was written, False when the database already had order bookers."""
    row = conn.execute("SELECT COUNT(*) AS n FROM order_bookers").fetchone()
    if row and row["n"] > 0:
        return False

    rnd = random.Random(seed)
    companies = CompaniesRepo(conn, clock=clock)
    products = ProductsRepo(conn, clock=clock)
    bookers = OrderBookersRepo(conn, clock=clock)
    targets = MonthlyTargetsRepo(conn, clock=clock)
    entries = DailyEntriesRepo(conn, clock=clock)
    orders = OrdersRepo(conn, clock=clock)

    company_id = companies.create(*COMPANY)
    product_ids = [products.create(company_id, *p) for p in PRODUCTS]
    booker_ids = [
        bookers.create(name, urdu, phone, email, join_date=date(DEMO_YEAR, 1, 1))
        for name, urdu, phone, email in ORDER_BOOKERS
    ]
    for bid in booker_ids:
        targets.upsert(bid, DEMO_YEAR, DEMO_MONTH, MONTHLY_TARGET)

    day = date(DEMO_YEAR, DEMO_MONTH, 1)
    while day.month == DEMO_MONTH:
        if day.weekday() != 4:  # Fridays off
            for bid in booker_ids:
                items = []
                for pid in rnd.sample(product_ids, 3):
                    sold = rnd.randint(20, 120)
                    items.append(DailyEntryItem(
                        product_id=pid,
                        quantity_sold=sold,
                        quantity_returned=rnd.randint(0, sold // 10),
                    ))
                entries.create(bid, day, items)
        day += timedelta(days=1)

    for n in range(12):
        order_day = date(DEMO_YEAR, DEMO_MONTH, 1 + n * 2)
        items = [
            OrderItem(product_id=pid, quantity=rnd.randint(24, 240), return_quantity=rnd.randint(0, 6))
            for pid in rnd.sample(product_ids, 2)
        ]
        status = ("completed", "supplied", "pending")[n % 3]
        orders.create(
            booker_ids[n % len(booker_ids)],
            order_day,
            items,
            supply_date=order_day + timedelta(days=1) if status != "pending" else None,
            status=status,
        )

    _log.info("seeded demo data for %04d-%02d", DEMO_YEAR, DEMO_MONTH)
    return True
