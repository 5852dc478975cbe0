import pytest

from sales_tracker.database.repositories import DailyEntryItem, OrderItem


@pytest.fixture
def sales(repos, ids):
    repos.orders.create(
        ids["booker"], "2025-07-02",
        [OrderItem(product_id=ids["product"], quantity=10, cost_price=100, sell_price=120, return_quantity=2)],
    )
    repos.orders.create(
        ids["booker"], "2025-07-09",
        [OrderItem(product_id=ids["product"], quantity=5, cost_price=100, sell_price=130)],
    )
    repos.orders.create(
        ids["booker"], "2025-08-01",
        [OrderItem(product_id=ids["product_no_carton"], quantity=4, cost_price=10, sell_price=15)],
    )


def test_same_product_at_two_prices_gives_two_lines(repos, ids, sales):
    lines = repos.reports.daily_sales_report("2025-07-01", "2025-07-31")
    assert [(l.product_name, l.sell_price) for l in lines] == [("Fruity Orange", 120), ("Fruity Orange", 130)]

    first, second = lines
    assert first.company_name == "Fruiticana"
    assert first.total_cartons == pytest.approx(2)
    assert first.return_cartons == pytest.approx(0.4)
    assert first.net_cartons == pytest.approx(1.6)
    assert first.net_amount == pytest.approx(960)
    assert first.profit == pytest.approx(160)
    assert first.profit_margin == pytest.approx(160 / 960 * 100)

    assert second.net_amount == pytest.approx(650)
    assert second.profit == pytest.approx(150)


def test_unfiltered_report_includes_every_product(repos, ids, sales):
    names = [l.product_name for l in repos.reports.daily_sales_report()]
    assert names == ["Fruity Orange", "Fruity Orange", "Loose Candy"]


def test_summary(repos, ids, sales):
    s = repos.reports.daily_sales_summary(date_to="2025-07-31")
    assert s.total_amount == pytest.approx(1850)
    assert s.total_return_amount == pytest.approx(240)
    assert s.total_net_amount == pytest.approx(1610)
    assert s.total_profit == pytest.approx(310)
    assert s.total_net_cartons == pytest.approx(2.6)
    assert s.profit_margin == pytest.approx(310 / 1610 * 100)


def test_empty_summary_has_zero_margin(repos, ids):
    s = repos.reports.daily_sales_summary("2030-01-01", "2030-01-31")
    assert s.total_amount == 0
    assert s.profit_margin == 0


def test_agent_performance(repos, ids, sales):
    other = repos.bookers.create("Naveed", "نوید", "+92-300-1000003")
    repos.targets.create(ids["booker"], 2025, 7, 10000)
    repos.entries.create(ids["booker"], "2025-07-04", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)])

    rows = repos.reports.agent_performance(2025, 7)
    assert [r["order_booker_id"] for r in rows] == [ids["booker"], other]
    top = rows[0]
    assert top["achievement_percentage"] == pytest.approx(12)
    assert top["order_count"] == 2
    assert top["order_amount"] == pytest.approx(1850)
    assert rows[1]["target_amount"] == 0
