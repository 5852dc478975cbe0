import pytest

from sales_tracker.database.errors import ConstraintViolation, DomainError
from sales_tracker.database.propagation import propagate_order
from sales_tracker.database.repositories import OrderItem


def _order_rows(conn, order_id):
    header = dict(conn.execute("SELECT * FROM orders WHERE id=?", (order_id,)).fetchone())
    items = [dict(r) for r in conn.execute(
        "SELECT * FROM order_items WHERE order_id=? ORDER BY rowid", (order_id,)
    )]
    return header, items


def test_reference_scenario_and_delete_to_zero(repos, ids):
    order = repos.orders.create(
        ids["booker"], "2025-07-10",
        [OrderItem(product_id=ids["product"], quantity=10, cost_price=100, sell_price=120, return_quantity=2)],
    )
    assert order.total_cost == pytest.approx(1000)
    assert order.total_amount == pytest.approx(1200)
    assert order.total_profit == pytest.approx(200)
    assert order.total_cartons == pytest.approx(2)
    assert order.return_amount == pytest.approx(240)
    assert order.return_cartons == pytest.approx(0.4)

    (item,) = repos.orders.list_items(order.id)
    assert item.profit == pytest.approx(200)
    assert item.cartons == pytest.approx(2)

    after = repos.orders.delete_item(item.id)
    for field in ("total_amount", "total_cost", "total_profit", "total_cartons", "return_cartons", "return_amount"):
        assert getattr(after, field) == 0


def test_zero_units_per_carton_gives_zero_cartons(repos, ids):
    order = repos.orders.create(
        ids["booker"], "2025-07-10",
        [OrderItem(product_id=ids["product_no_carton"], quantity=9, return_quantity=3)],
    )
    (item,) = repos.orders.list_items(order.id)
    assert item.cartons == 0
    assert item.return_cartons == 0
    assert order.total_cartons == 0
    assert order.total_amount == pytest.approx(9 * 15)


def test_prices_default_to_product_and_stay_frozen(repos, ids):
    order = repos.orders.create(ids["booker"], "2025-07-10", [OrderItem(product_id=ids["product"], quantity=5)])
    (item,) = repos.orders.list_items(order.id)
    assert (item.cost_price, item.sell_price) == (100, 120)

    repos.products.update(
        ids["product"], company_id=ids["company"], name="Fruity Orange",
        cost_price=200, sell_price=260, unit_per_carton=5,
    )
    (item,) = repos.orders.list_items(order.id)
    assert (item.cost_price, item.sell_price) == (100, 120)
    assert repos.orders.get(order.id).total_amount == pytest.approx(600)


def test_item_updates_recompute_header(repos, ids):
    order = repos.orders.create(
        ids["booker"], "2025-07-10",
        [
            OrderItem(product_id=ids["product"], quantity=10, cost_price=100, sell_price=120),
            OrderItem(product_id=ids["product_no_carton"], quantity=4, cost_price=10, sell_price=15),
        ],
    )
    assert order.total_amount == pytest.approx(1200 + 60)

    first, _ = repos.orders.list_items(order.id)
    order = repos.orders.update_item(first.id, quantity=20, sell_price=130)
    assert order.total_amount == pytest.approx(2600 + 60)
    assert order.total_cost == pytest.approx(2000 + 40)
    assert order.total_cartons == pytest.approx(4)

    order = repos.orders.record_return(first.id, 5)
    assert order.return_amount == pytest.approx(650)
    assert order.return_cartons == pytest.approx(1)

    order = repos.orders.add_item(order.id, OrderItem(product_id=ids["product"], quantity=5, cost_price=1, sell_price=2))
    assert order.total_amount == pytest.approx(2600 + 60 + 10)


def test_recompute_is_idempotent(conn, repos, ids):
    order = repos.orders.create(
        ids["booker"], "2025-07-10",
        [OrderItem(product_id=ids["product"], quantity=10, cost_price=100, sell_price=120, return_quantity=2)],
    )
    before = _order_rows(conn, order.id)
    propagate_order(conn, order.id, now=order.updated_at)
    propagate_order(conn, order.id, now=order.updated_at)
    conn.commit()
    assert _order_rows(conn, order.id) == before


def test_status_and_header_updates(repos, ids):
    order = repos.orders.create(ids["booker"], "2025-07-10", [], notes="first visit")
    assert order.status == "pending"
    assert order.total_amount == 0

    order = repos.orders.set_status(order.id, "supplied")
    assert order.status == "supplied"

    order = repos.orders.update(order.id, supply_date="2025-07-12", notes=None)
    assert order.supply_date == "2025-07-12"
    assert order.notes is None

    with pytest.raises(DomainError):
        repos.orders.set_status(order.id, "shipped")


def test_missing_references_roll_back(conn, repos, ids):
    with pytest.raises(ConstraintViolation):
        repos.orders.create("no-such-booker", "2025-07-10", [])
    with pytest.raises(ConstraintViolation):
        repos.orders.create(
            ids["booker"], "2025-07-10",
            [OrderItem(product_id=ids["product"], quantity=1), OrderItem(product_id="ghost", quantity=1)],
        )
    assert conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 0
    assert conn.execute("SELECT COUNT(*) FROM order_items").fetchone()[0] == 0


def test_negative_quantity_rejected(repos, ids):
    with pytest.raises(DomainError):
        repos.orders.create(ids["booker"], "2025-07-10", [OrderItem(product_id=ids["product"], quantity=-1)])


def test_non_finite_values_rejected(conn, repos, ids):
    with pytest.raises(DomainError):
        repos.orders.create(
            ids["booker"], "2025-07-10", [OrderItem(product_id=ids["product"], quantity=float("inf"))]
        )
    with pytest.raises(DomainError):
        repos.orders.create(
            ids["booker"], "2025-07-10",
            [OrderItem(product_id=ids["product"], quantity=1, sell_price=float("nan"))],
        )
    with pytest.raises(DomainError):
        repos.products.create(ids["company"], "Odd", float("nan"), 1, 1)
    assert conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 0


def test_list_and_summary(repos, ids):
    repos.orders.create(ids["booker"], "2025-07-01", [OrderItem(product_id=ids["product"], quantity=10)])
    repos.orders.create(
        ids["booker"], "2025-07-05", [OrderItem(product_id=ids["product"], quantity=5)], status="completed",
    )
    repos.orders.create(ids["booker"], "2025-08-01", [OrderItem(product_id=ids["product"], quantity=1)])

    rows = repos.orders.list_orders(date_from="2025-07-01", date_to="2025-07-31", sort_by="total_amount", sort_dir="asc")
    assert [r["total_amount"] for r in rows] == [600, 1200]
    assert rows[0]["order_booker_name"] == "Kashif"

    s = repos.orders.summary(date_to="2025-07-31")
    assert s["total_orders"] == 2
    assert s["total_amount"] == pytest.approx(1800)
    assert s["by_status"] == {"pending": 1, "supplied": 0, "completed": 1}

    with pytest.raises(DomainError):
        repos.orders.list_orders(sort_by="id; DROP TABLE orders")


def test_delete_order_cascades_items(conn, repos, ids):
    order = repos.orders.create(ids["booker"], "2025-07-01", [OrderItem(product_id=ids["product"], quantity=10)])
    repos.orders.delete(order.id)
    assert repos.orders.get(order.id) is None
    assert conn.execute("SELECT COUNT(*) FROM order_items").fetchone()[0] == 0
    with pytest.raises(DomainError):
        repos.orders.delete(order.id)
