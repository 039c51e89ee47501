"""Revenue and order statistics."""

import uuid

import pytest

from bistro.models import MenuItem, Payment, PaymentMenuItem, User, UserRole
from bistro.services.stats import StatsAggregator


def menu_item(name: str, category: str, price: float) -> MenuItem:
    return MenuItem(id=uuid.uuid4(), name=name, category=category, price=price)


def payment(email: str, price: float, menu_ids: list, transaction_id=None) -> Payment:
    return Payment(
        id=uuid.uuid4(),
        email=email,
        price=price,
        transaction_id=transaction_id or f"txn_{uuid.uuid4().hex[:8]}",
        cart_ids=[],
        status="succeeded",
        items=[PaymentMenuItem(menu_item_id=m) for m in menu_ids],
    )


@pytest.fixture
async def catalog(session):
    items = {
        "pizza_a": menu_item("Margherita", "Pizza", 12.5),
        "pizza_b": menu_item("Marinara", "Pizza", 9.0),
        "salad": menu_item("Caesar", "Salad", 8.0),
        "dessert": menu_item("Tiramisu", "Dessert", 6.0),
    }
    session.add_all(items.values())
    await session.commit()
    return items


async def test_empty_store_has_zero_revenue(session):
    stats = await StatsAggregator(session).admin_stats()

    assert stats.user_count == 0
    assert stats.menu_item_count == 0
    assert stats.order_count == 0
    assert stats.total_revenue == 0


async def test_admin_stats_counts_and_revenue(session, catalog):
    session.add_all([
        User(id=uuid.uuid4(), email="a@x.com", role=UserRole.CUSTOMER),
        User(id=uuid.uuid4(), email="boss@x.com", role=UserRole.ADMIN),
        payment("a@x.com", 10.1, [catalog["salad"].id]),
        payment("a@x.com", 20.2, [catalog["pizza_a"].id]),
    ])
    await session.commit()

    stats = await StatsAggregator(session).admin_stats()

    assert stats.user_count == 2
    assert stats.menu_item_count == 4
    assert stats.order_count == 2
    assert stats.total_revenue == 30.3


async def test_order_stats_by_category(session, catalog):
    session.add_all([
        payment("a@x.com", 20.5, [catalog["pizza_a"].id, catalog["salad"].id]),
        payment("b@x.com", 9.0, [catalog["pizza_b"].id]),
    ])
    await session.commit()

    rows = await StatsAggregator(session).order_stats_by_category()

    assert {(r.category, r.count, r.total) for r in rows} == {
        ("Pizza", 2, 21.5),
        ("Salad", 1, 8.0),
    }


async def test_order_stats_counts_repeated_items(session, catalog):
    salad = catalog["salad"].id
    session.add(payment("a@x.com", 24.0, [salad, salad, salad]))
    await session.commit()

    rows = await StatsAggregator(session).order_stats_by_category()

    assert [(r.category, r.count, r.total) for r in rows] == [("Salad", 3, 24.0)]


async def test_order_stats_skips_items_removed_from_menu(session, catalog):
    session.add(payment("a@x.com", 20.0, [catalog["salad"].id, uuid.uuid4()]))
    await session.commit()

    rows = await StatsAggregator(session).order_stats_by_category()

    assert [(r.category, r.count) for r in rows] == [("Salad", 1)]


async def test_order_stats_empty_without_payments(session, catalog):
    assert await StatsAggregator(session).order_stats_by_category() == []


async def test_user_stats_are_scoped_to_identity(session, catalog):
    session.add_all([
        payment("a@x.com", 20.5, [catalog["pizza_a"].id, catalog["salad"].id]),
        payment("a@x.com", 6.0, [catalog["dessert"].id]),
        payment("b@x.com", 9.0, [catalog["pizza_b"].id]),
    ])
    await session.commit()

    aggregator = StatsAggregator(session)
    a_stats = await aggregator.user_stats("a@x.com")
    b_stats = await aggregator.user_stats("b@x.com")
    c_stats = await aggregator.user_stats("c@x.com")

    assert (a_stats.order_count, a_stats.payment_count, a_stats.menu_count) == (3, 2, 4)
    assert (b_stats.order_count, b_stats.payment_count) == (1, 1)
    assert (c_stats.order_count, c_stats.payment_count) == (0, 0)
