import pytest

from sales_tracker.database.errors import ConstraintViolation, DomainError
from sales_tracker.database.repositories import DailyEntryItem


def _items_net(items):
    return sum(i.total_revenue - i.return_amount for i in items)


def test_create_rolls_items_into_header(repos, ids):
    entry = repos.entries.create(
        ids["booker"], "2025-07-03",
        [
            DailyEntryItem(product_id=ids["product"], quantity_sold=10, quantity_returned=3),
            DailyEntryItem(product_id=ids["product_no_carton"], quantity_sold=4, quantity_returned=0),
        ],
        notes="market round",
    )
    assert entry.total_amount == pytest.approx(1200 + 60)
    assert entry.total_return_amount == pytest.approx(360)
    assert entry.net_amount == pytest.approx(entry.total_amount - entry.total_return_amount)

    header, items = repos.entries.get_with_items(entry.id)
    assert header.notes == "market round"
    assert [i.net_quantity for i in items] == [7, 4]
    assert items[0].total_cost == pytest.approx(700)
    assert header.net_amount == pytest.approx(_items_net(items))


def test_overrides_win_and_can_be_cleared(repos, ids):
    entry = repos.entries.create(
        ids["booker"], "2025-07-03",
        [DailyEntryItem(product_id=ids["product"], quantity_sold=10, sell_price_override=0)],
    )
    assert entry.total_amount == 0

    (item,) = repos.entries.list_items(entry.id)
    entry = repos.entries.update_item(item.id, sell_price_override=None, cost_price_override=90)
    (item,) = repos.entries.list_items(entry.id)
    assert entry.total_amount == pytest.approx(1200)
    assert item.total_cost == pytest.approx(900)

    detailed = repos.entries.list_items_detailed(entry.id)
    assert detailed[0]["sell_price"] == 120
    assert detailed[0]["cost_price"] == 90


def test_first_entry_creates_target_lazily(repos, ids):
    assert repos.targets.get_for(ids["booker"], 2025, 7) is None
    entry = repos.entries.create(
        ids["booker"], "2025-07-03", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)]
    )
    t = repos.targets.get_for(ids["booker"], 2025, 7)
    assert t is not None
    assert t.target_amount == 0
    assert t.achieved_amount == pytest.approx(entry.net_amount)
    assert t.achievement_percentage == 0
    assert t.days_in_month == 31
    assert t.working_days_in_month == 31
    assert t.daily_target_amount == 0


def test_achievement_against_explicit_target(repos, ids):
    repos.targets.create(ids["booker"], 2025, 7, 700000)
    repos.entries.create(
        ids["booker"], "2025-07-15",
        [DailyEntryItem(product_id=ids["product"], quantity_sold=50, sell_price_override=1000)],
    )
    t = repos.targets.get_for(ids["booker"], 2025, 7)
    assert t.achieved_amount == pytest.approx(50000)
    assert t.remaining_amount == pytest.approx(650000)
    assert t.achievement_percentage == pytest.approx(7.142857, rel=1e-6)
    assert t.daily_target_amount == pytest.approx(700000 / 31)


def test_month_bounds_are_half_open(repos, ids):
    for day in ("2025-07-01", "2025-07-31", "2025-08-01"):
        repos.entries.create(ids["booker"], day, [DailyEntryItem(product_id=ids["product"], quantity_sold=1)])
    july = repos.targets.get_for(ids["booker"], 2025, 7)
    august = repos.targets.get_for(ids["booker"], 2025, 8)
    assert july.achieved_amount == pytest.approx(240)
    assert august.achieved_amount == pytest.approx(120)
    assert august.days_in_month == 31


def test_moving_entry_reconciles_both_months(repos, ids):
    entry = repos.entries.create(
        ids["booker"], "2025-07-20", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)]
    )
    repos.entries.update(entry.id, date="2025-08-02")
    assert repos.targets.get_for(ids["booker"], 2025, 7).achieved_amount == 0
    assert repos.targets.get_for(ids["booker"], 2025, 8).achieved_amount == pytest.approx(1200)


def test_moving_entry_between_agents(repos, ids):
    other = repos.bookers.create("Naveed", "نوید", "+92-300-1000003")
    entry = repos.entries.create(
        ids["booker"], "2025-07-20", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)]
    )
    repos.entries.update(entry.id, order_booker_id=other)
    assert repos.targets.get_for(ids["booker"], 2025, 7).achieved_amount == 0
    assert repos.targets.get_for(other, 2025, 7).achieved_amount == pytest.approx(1200)


def test_replacing_items(repos, ids):
    entry = repos.entries.create(
        ids["booker"], "2025-07-20", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)]
    )
    entry = repos.entries.update(
        entry.id, items=[DailyEntryItem(product_id=ids["product_no_carton"], quantity_sold=2)]
    )
    assert entry.total_amount == pytest.approx(30)
    assert len(repos.entries.list_items(entry.id)) == 1
    assert repos.targets.get_for(ids["booker"], 2025, 7).achieved_amount == pytest.approx(30)


def test_deleting_items_and_entries(repos, ids):
    entry = repos.entries.create(
        ids["booker"], "2025-07-20", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)]
    )
    (item,) = repos.entries.list_items(entry.id)
    entry = repos.entries.delete_item(item.id)
    assert (entry.total_amount, entry.total_return_amount, entry.net_amount) == (0, 0, 0)

    entry = repos.entries.add_item(entry.id, DailyEntryItem(product_id=ids["product"], quantity_sold=2))
    assert repos.targets.get_for(ids["booker"], 2025, 7).achieved_amount == pytest.approx(240)

    repos.entries.delete(entry.id)
    assert repos.entries.get(entry.id) is None
    t = repos.targets.get_for(ids["booker"], 2025, 7)
    assert t is not None
    assert t.achieved_amount == 0


def test_returns_above_sold_give_negative_net(repos, ids):
    entry = repos.entries.create(
        ids["booker"], "2025-07-20",
        [DailyEntryItem(product_id=ids["product"], quantity_sold=1, quantity_returned=3)],
    )
    (item,) = repos.entries.list_items(entry.id)
    assert item.net_quantity == -2
    assert entry.net_amount == pytest.approx(-240)


def test_validation(conn, repos, ids):
    with pytest.raises(DomainError):
        repos.entries.create(
            ids["booker"], "2025-07-20", [DailyEntryItem(product_id=ids["product"], quantity_sold=-1)]
        )
    with pytest.raises(DomainError):
        repos.entries.create(ids["booker"], "not a date", [])
    with pytest.raises(ConstraintViolation):
        repos.entries.create("ghost", "2025-07-20", [])
    with pytest.raises(ConstraintViolation):
        repos.entries.create(ids["booker"], "2025-07-20", [DailyEntryItem(product_id="ghost", quantity_sold=1)])
    assert conn.execute("SELECT COUNT(*) FROM daily_entries").fetchone()[0] == 0
    assert conn.execute("SELECT COUNT(*) FROM monthly_targets").fetchone()[0] == 0


@pytest.mark.parametrize("bad", [float("nan"), float("inf")])
def test_non_finite_numbers_rejected(conn, repos, ids, bad):
    with pytest.raises(DomainError):
        repos.entries.create(
            ids["booker"], "2025-07-20", [DailyEntryItem(product_id=ids["product"], quantity_sold=bad)]
        )
    with pytest.raises(DomainError):
        repos.entries.create(
            ids["booker"], "2025-07-20",
            [DailyEntryItem(product_id=ids["product"], quantity_sold=1, sell_price_override=bad)],
        )
    assert conn.execute("SELECT COUNT(*) FROM daily_entries").fetchone()[0] == 0


@pytest.mark.parametrize("bad", ["2025-07-10XYZ", "2025-13-01", "10/07/2025"])
def test_malformed_dates_rejected(repos, ids, bad):
    with pytest.raises(DomainError):
        repos.entries.create(ids["booker"], bad, [])


def test_timestamp_dates_are_truncated_to_the_day(repos, ids):
    entry = repos.entries.create(ids["booker"], "2025-07-10T08:30:00+00:00", [])
    assert entry.date == "2025-07-10"


def test_listing_and_monthly_analytics(repos, ids):
    other = repos.bookers.create("Naveed", "نوید", "+92-300-1000003")
    repos.entries.create(ids["booker"], "2025-07-01", [DailyEntryItem(product_id=ids["product"], quantity_sold=10)])
    repos.entries.create(ids["booker"], "2025-07-02", [DailyEntryItem(product_id=ids["product"], quantity_sold=5)])
    repos.entries.create(other, "2025-06-30", [DailyEntryItem(product_id=ids["product"], quantity_sold=5)])

    july = repos.entries.list_entries(year=2025, month=7)
    assert [r["date"] for r in july] == ["2025-07-02", "2025-07-01"]
    assert all(r["item_count"] == 1 for r in july)
    assert len(repos.entries.list_entries(order_booker_ids=[other])) == 1

    rows = {r["order_booker_id"]: r for r in repos.entries.monthly_analytics(2025, 7)}
    assert rows[ids["booker"]]["entry_count"] == 2
    assert rows[ids["booker"]]["net_sales"] == pytest.approx(1800)
    assert rows[other]["entry_count"] == 0
    assert rows[other]["net_sales"] == 0
