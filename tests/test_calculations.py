import pytest

from sales_tracker.utils.calculations import (
    OrderTotals,
    DailyEntryTotals,
    daily_entry_item_totals,
    daily_entry_totals,
    effective_price,
    order_item_totals,
    order_totals,
    safe_div,
    target_dependents,
)


def test_order_item_reference_scenario():
    t = order_item_totals(quantity=10, cost_price=100, sell_price=120, return_quantity=2, unit_per_carton=5)
    assert t.total_cost == pytest.approx(1000)
    assert t.total_amount == pytest.approx(1200)
    assert t.profit == pytest.approx(200)
    assert t.cartons == pytest.approx(2)
    assert t.return_amount == pytest.approx(240)
    assert t.return_cartons == pytest.approx(0.4)


@pytest.mark.parametrize("divisor", [0, None, -3])
def test_cartons_are_zero_without_a_usable_divisor(divisor):
    t = order_item_totals(quantity=7, cost_price=1, sell_price=2, return_quantity=1, unit_per_carton=divisor)
    assert t.cartons == 0
    assert t.return_cartons == 0
    assert t.total_amount == pytest.approx(14)


def test_empty_rollups_are_zero():
    assert order_totals([]) == OrderTotals()
    assert daily_entry_totals([]) == DailyEntryTotals()


def test_order_totals_sum_items():
    a = order_item_totals(quantity=10, cost_price=100, sell_price=120, return_quantity=2, unit_per_carton=5)
    b = order_item_totals(quantity=3, cost_price=10, sell_price=15, unit_per_carton=0)
    t = order_totals([a, b])
    assert t.total_amount == pytest.approx(1245)
    assert t.total_cost == pytest.approx(1030)
    assert t.total_profit == pytest.approx(215)
    assert t.total_cartons == pytest.approx(2)
    assert t.return_cartons == pytest.approx(0.4)
    assert t.return_amount == pytest.approx(240)


def test_effective_price_honours_explicit_zero():
    assert effective_price(None, 120) == 120
    assert effective_price(0, 120) == 0
    assert effective_price(99.5, 120) == 99.5


def test_daily_entry_item_and_header():
    item = daily_entry_item_totals(quantity_sold=10, quantity_returned=3, cost_price=100, sell_price=120)
    assert item.net_quantity == 7
    assert item.total_cost == pytest.approx(700)
    assert item.total_revenue == pytest.approx(1200)
    assert item.return_amount == pytest.approx(360)

    header = daily_entry_totals([item, item])
    assert header.total_amount == pytest.approx(2400)
    assert header.total_return_amount == pytest.approx(720)
    assert header.net_amount == pytest.approx(header.total_amount - header.total_return_amount)


def test_target_dependents():
    d = target_dependents(target_amount=700000, achieved_amount=50000, working_days_in_month=31)
    assert d.remaining_amount == pytest.approx(650000)
    assert d.achievement_percentage == pytest.approx(7.142857, rel=1e-6)
    assert d.daily_target_amount == pytest.approx(700000 / 31)


def test_target_dependents_degenerate_divisors():
    d = target_dependents(target_amount=0, achieved_amount=1234, working_days_in_month=0)
    assert d.achievement_percentage == 0
    assert d.daily_target_amount == 0
    assert d.remaining_amount == pytest.approx(-1234)


def test_safe_div():
    assert safe_div(10, 4) == 2.5
    assert safe_div(10, 0) == 0.0
    assert safe_div(10, None) == 0.0
