"""
utils/calculations.py

Pure arithmetic for every derived field the database stores:
- order line items and order header rollups
- daily entry line items and daily entry header rollups
- monthly target dependents (remaining / percentage / daily target)

Do not import repos or open DB connections here.
Only compute numbers; persistence belongs in database.propagation / database.targets.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

__all__ = [
    "safe_div",
    "OrderItemTotals",
    "OrderTotals",
    "DailyEntryItemTotals",
    "DailyEntryTotals",
    "TargetDependents",
    "order_item_totals",
    "order_totals",
    "daily_entry_item_totals",
    "daily_entry_totals",
    "target_dependents",
    "effective_price",
]


def safe_div(numerator: float, divisor: Optional[float]) -> float:
    """numerator / divisor, or 0.0 when the divisor is missing or not positive."""
    if divisor is None or divisor <= 0:
        return 0.0
    return numerator / divisor


def _num(x: Optional[float]) -> float:
    return float(x) if x is not None else 0.0


# -----------------------------
# Orders
# -----------------------------

@dataclass(frozen=True)
class OrderItemTotals:
    total_cost: float
    total_amount: float
    profit: float
    cartons: float
    return_amount: float
    return_cartons: float


@dataclass(frozen=True)
class OrderTotals:
    total_amount: float = 0.0
    total_cost: float = 0.0
    total_profit: float = 0.0
    total_cartons: float = 0.0
    return_cartons: float = 0.0
    return_amount: float = 0.0


def order_item_totals(
    *,
    quantity: float,
    cost_price: float,
    sell_price: float,
    return_quantity: float = 0.0,
    unit_per_carton: Optional[float],
) -> OrderItemTotals:
    """
    total_cost    = quantity * cost_price
    total_amount  = quantity * sell_price
    profit        = total_amount - total_cost
    cartons       = quantity / unit_per_carton          (0 when divisor <= 0)
    return_amount = return_quantity * sell_price
    return_cartons= return_quantity / unit_per_carton   (0 when divisor <= 0)
    """
    qty = _num(quantity)
    ret = _num(return_quantity)
    cost = _num(cost_price)
    sell = _num(sell_price)

    total_cost = qty * cost
    total_amount = qty * sell
    return OrderItemTotals(
        total_cost=total_cost,
        total_amount=total_amount,
        profit=total_amount - total_cost,
        cartons=safe_div(qty, unit_per_carton),
        return_amount=ret * sell,
        return_cartons=safe_div(ret, unit_per_carton),
    )


def order_totals(items: Iterable[OrderItemTotals]) -> OrderTotals:
    """Sum item-level fields into the six header rollups. Empty input -> all zero."""
    amount = cost = profit = cartons = ret_cartons = ret_amount = 0.0
    for it in items:
        amount += it.total_amount
        cost += it.total_cost
        profit += it.profit
        cartons += it.cartons
        ret_cartons += it.return_cartons
        ret_amount += it.return_amount
    return OrderTotals(
        total_amount=amount,
        total_cost=cost,
        total_profit=profit,
        total_cartons=cartons,
        return_cartons=ret_cartons,
        return_amount=ret_amount,
    )


# -----------------------------
# Daily entries
# -----------------------------

@dataclass(frozen=True)
class DailyEntryItemTotals:
    net_quantity: float
    total_cost: float
    total_revenue: float
    return_amount: float


@dataclass(frozen=True)
class DailyEntryTotals:
    total_amount: float = 0.0
    total_return_amount: float = 0.0
    net_amount: float = 0.0


def effective_price(override: Optional[float], product_price: Optional[float]) -> float:
    """An explicit override (including 0) wins; None falls back to the product price."""
    return _num(override) if override is not None else _num(product_price)


def daily_entry_item_totals(
    *,
    quantity_sold: float,
    quantity_returned: float,
    cost_price: float,
    sell_price: float,
) -> DailyEntryItemTotals:
    """
    net_quantity  = sold - returned
    total_cost    = net_quantity * cost_price
    total_revenue = sold * sell_price        (gross)
    return_amount = returned * sell_price
    """
    sold = _num(quantity_sold)
    returned = _num(quantity_returned)
    net = sold - returned
    return DailyEntryItemTotals(
        net_quantity=net,
        total_cost=net * _num(cost_price),
        total_revenue=sold * _num(sell_price),
        return_amount=returned * _num(sell_price),
    )


def daily_entry_totals(items: Iterable[DailyEntryItemTotals]) -> DailyEntryTotals:
    gross = returns = 0.0
    for it in items:
        gross += it.total_revenue
        returns += it.return_amount
    return DailyEntryTotals(
        total_amount=gross,
        total_return_amount=returns,
        net_amount=gross - returns,
    )


# -----------------------------
# Monthly targets
# -----------------------------

@dataclass(frozen=True)
class TargetDependents:
    remaining_amount: float
    achievement_percentage: float
    daily_target_amount: float


def target_dependents(
    *,
    target_amount: float,
    achieved_amount: float,
    working_days_in_month: Optional[float],
) -> TargetDependents:
    """
    remaining_amount       = target - achieved
    achievement_percentage = achieved / target * 100   (0 when target <= 0)
    daily_target_amount    = target / working_days     (0 when working_days <= 0)
    """
    target = _num(target_amount)
    achieved = _num(achieved_amount)
    return TargetDependents(
        remaining_amount=target - achieved,
        achievement_percentage=safe_div(achieved, target) * 100.0,
        daily_target_amount=safe_div(target, working_days_in_month),
    )
