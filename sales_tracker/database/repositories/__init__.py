# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from sales_tracker.database.repositories import (
        # Order bookers
        OrderBookersRepo, OrderBooker,
        # Companies / products
        CompaniesRepo, Company, ProductsRepo, Product,
        # Daily entries
        DailyEntriesRepo, DailyEntry, DailyEntryItem,
        # Orders
        OrdersRepo, Order, OrderItem,
        # Monthly targets
        MonthlyTargetsRepo, MonthlyTarget,
        # Reports
        ReportsRepo, SalesReportLine, SalesReportSummary,
    )

Every write method runs its write plus all dependent recomputation in one
transaction and, for headers, returns the recomputed state.
"""

# ------------- Order bookers ---------------
from .order_bookers_repo import OrderBookersRepo, OrderBooker

# ------------ Companies / products ---------
from .companies_repo import CompaniesRepo, Company
from .products_repo import ProductsRepo, Product

# -------------- Daily entries --------------
from .daily_entries_repo import DailyEntriesRepo, DailyEntry, DailyEntryItem

# ------------------ Orders -----------------
from .orders_repo import OrdersRepo, Order, OrderItem

# ------------- Monthly targets -------------
from .monthly_targets_repo import MonthlyTargetsRepo, MonthlyTarget

# ----------------- Reports -----------------
from .reports_repo import ReportsRepo, SalesReportLine, SalesReportSummary

__all__ = [
    # order_bookers_repo
    "OrderBookersRepo",
    "OrderBooker",
    # companies_repo / products_repo
    "CompaniesRepo",
    "Company",
    "ProductsRepo",
    "Product",
    # daily_entries_repo
    "DailyEntriesRepo",
    "DailyEntry",
    "DailyEntryItem",
    # orders_repo
    "OrdersRepo",
    "Order",
    "OrderItem",
    # monthly_targets_repo
    "MonthlyTargetsRepo",
    "MonthlyTarget",
    # reports_repo
    "ReportsRepo",
    "SalesReportLine",
    "SalesReportSummary",
]
