from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import Optional

from ...utils.calculations import safe_div
from ...utils.helpers import DateLike, date_str, month_bounds


@dataclass(frozen=True)
class SalesReportLine:
    product_id: str
    product_name: str
    company_name: str
    cost_price: float
    sell_price: float
    total_cartons: float
    return_cartons: float
    net_cartons: float
    total_amount: float
    return_amount: float
    net_amount: float
    profit: float
    profit_margin: float


@dataclass(frozen=True)
class SalesReportSummary:
    total_cartons: float = 0.0
    total_return_cartons: float = 0.0
    total_net_cartons: float = 0.0
    total_amount: float = 0.0
    total_return_amount: float = 0.0
    total_net_amount: float = 0.0
    total_profit: float = 0.0
    profit_margin: float = 0.0


class ReportsRepo:
    """
    Read-only sales reporting over order items.

    Lines are grouped per product and frozen price pair, so the same product sold
    at two prices shows as two lines. Net figures subtract returns:
      net_amount = total_amount - return_amount
      profit     = net_amount - cost_price * (quantity - return_quantity)
      margin     = profit / net_amount * 100   (0 when net_amount <= 0)

    Dates filter on orders.order_date (inclusive, ISO 'YYYY-MM-DD').
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @staticmethod
    def _date_filter(date_from: Optional[DateLike], date_to: Optional[DateLike]) -> tuple[str, list]:
        clause, params = "", []
        if date_from is not None:
            clause += " AND o.order_date >= ?"
            params.append(date_str(date_from))
        if date_to is not None:
            clause += " AND o.order_date <= ?"
            params.append(date_str(date_to))
        return clause, params

    def daily_sales_report(
        self, date_from: Optional[DateLike] = None, date_to: Optional[DateLike] = None
    ) -> list[SalesReportLine]:
        clause, params = self._date_filter(date_from, date_to)
        sql = f"""
        SELECT p.id   AS product_id,
               p.name AS product_name,
               c.name AS company_name,
               oi.cost_price,
               oi.sell_price,
               COALESCE(SUM(oi.cartons), 0.0)                           AS total_cartons,
               COALESCE(SUM(oi.return_cartons), 0.0)                    AS return_cartons,
               COALESCE(SUM(oi.total_amount), 0.0)                      AS total_amount,
               COALESCE(SUM(oi.return_amount), 0.0)                     AS return_amount,
               COALESCE(SUM(oi.quantity - oi.return_quantity), 0)       AS net_quantity
          FROM order_items oi
          JOIN orders o    ON o.id = oi.order_id
          JOIN products p  ON p.id = oi.product_id
          JOIN companies c ON c.id = p.company_id
         WHERE 1=1 {clause}
         GROUP BY p.id, oi.sell_price, oi.cost_price
         ORDER BY p.name COLLATE NOCASE, oi.sell_price
        """
        out = []
        for r in self.conn.execute(sql, params):
            net_amount = float(r["total_amount"]) - float(r["return_amount"])
            profit = net_amount - float(r["cost_price"]) * float(r["net_quantity"])
            out.append(SalesReportLine(
                product_id=r["product_id"],
                product_name=r["product_name"],
                company_name=r["company_name"],
                cost_price=float(r["cost_price"]),
                sell_price=float(r["sell_price"]),
                total_cartons=float(r["total_cartons"]),
                return_cartons=float(r["return_cartons"]),
                net_cartons=float(r["total_cartons"]) - float(r["return_cartons"]),
                total_amount=float(r["total_amount"]),
                return_amount=float(r["return_amount"]),
                net_amount=net_amount,
                profit=profit,
                profit_margin=safe_div(profit, net_amount) * 100.0,
            ))
        return out

    def daily_sales_summary(
        self, date_from: Optional[DateLike] = None, date_to: Optional[DateLike] = None
    ) -> SalesReportSummary:
        clause, params = self._date_filter(date_from, date_to)
        sql = f"""
        SELECT COALESCE(SUM(oi.cartons), 0.0)        AS total_cartons,
               COALESCE(SUM(oi.return_cartons), 0.0) AS total_return_cartons,
               COALESCE(SUM(oi.total_amount), 0.0)   AS total_amount,
               COALESCE(SUM(oi.return_amount), 0.0)  AS total_return_amount,
               COALESCE(SUM(oi.cost_price * (oi.quantity - oi.return_quantity)), 0.0) AS net_cost
          FROM order_items oi
          JOIN orders o ON o.id = oi.order_id
         WHERE 1=1 {clause}
        """
        r = self.conn.execute(sql, params).fetchone()
        net_amount = float(r["total_amount"]) - float(r["total_return_amount"])
        profit = net_amount - float(r["net_cost"])
        return SalesReportSummary(
            total_cartons=float(r["total_cartons"]),
            total_return_cartons=float(r["total_return_cartons"]),
            total_net_cartons=float(r["total_cartons"]) - float(r["total_return_cartons"]),
            total_amount=float(r["total_amount"]),
            total_return_amount=float(r["total_return_amount"]),
            total_net_amount=net_amount,
            total_profit=profit,
            profit_margin=safe_div(profit, net_amount) * 100.0,
        )

    def agent_performance(self, year: int, month: int) -> list[sqlite3.Row]:
        """Monthly target rows ranked by achievement, with each agent's order totals for the month."""
        start, end = month_bounds(year, month)
        sql = """
        SELECT ob.id AS order_booker_id, ob.name, ob.name_urdu,
               COALESCE(mt.target_amount, 0.0)          AS target_amount,
               COALESCE(mt.achieved_amount, 0.0)        AS achieved_amount,
               COALESCE(mt.achievement_percentage, 0.0) AS achievement_percentage,
               (SELECT COUNT(*) FROM orders o
                 WHERE o.order_booker_id = ob.id AND o.order_date >= ? AND o.order_date < ?) AS order_count,
               (SELECT COALESCE(SUM(o.total_amount), 0.0) FROM orders o
                 WHERE o.order_booker_id = ob.id AND o.order_date >= ? AND o.order_date < ?) AS order_amount
          FROM order_bookers ob
          LEFT JOIN monthly_targets mt
                 ON mt.order_booker_id = ob.id AND mt.year = ? AND mt.month = ?
         ORDER BY achievement_percentage DESC, ob.name COLLATE NOCASE
        """
        return list(self.conn.execute(sql, (start, end, start, end, year, month)))
