"""
Tests for the order engine.
"""
from decimal import Decimal

import pytest

from conftest import add_product
from domain import Caller
from engines.order_engine import OrderEngine, OrderLine, compute_totals, format_order_number
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError

ADDRESS = "742 Evergreen Terrace, Springfield"


class TestComputeTotals:
    """Tests for order total arithmetic."""

    def test_reference_order(self):
        """Two lines at 79.99 x1 and 29.99 x2."""
        totals = compute_totals([
            OrderLine(1, 1, Decimal("79.99")),
            OrderLine(2, 2, Decimal("29.99")),
        ])
        assert totals == {
            "subtotal": Decimal("139.97"),
            "tax": Decimal("11.55"),
            "fees": Decimal("4.99"),
            "total": Decimal("156.51"),
        }

    def test_tax_rounds_half_up(self):
        # 10.00 * 0.0825 = 0.825
        totals = compute_totals([OrderLine(1, 1, Decimal("10.00"))])
        assert totals["tax"] == Decimal("0.83")
        assert totals["total"] == Decimal("15.82")

    def test_float_prices_are_converted_exactly(self):
        totals = compute_totals([OrderLine(1, 3, 0.1)])
        assert totals["subtotal"] == Decimal("0.30")

    def test_order_number_format(self):
        assert format_order_number(1) == "ORD-10001"


class TestCreateOrder:
    """Tests for atomic order creation."""

    @pytest.fixture
    def engine(self, store, clock):
        return OrderEngine(store, clock=clock)

    @pytest.fixture
    def headphones(self, store):
        return add_product(store, "Wireless Headphones", "79.99", stock=5)

    @pytest.fixture
    def plant_pots(self, store):
        return add_product(store, "Plant Pot Set", "29.99", stock=3, category="Home")

    def test_creates_order_with_totals_and_items(self, engine, store, shopper, headphones, plant_pots):
        order = engine.create_order(shopper.id, [
            OrderLine(headphones.id, 1, Decimal("79.99")),
            OrderLine(plant_pots.id, 2, Decimal("29.99")),
        ], ADDRESS)

        assert order.status == "pending"
        assert order.order_number == format_order_number(order.id)
        assert order.subtotal == Decimal("139.97")
        assert order.tax == Decimal("11.55")
        assert order.fees == Decimal("4.99")
        assert order.total == Decimal("156.51")
        assert [(item.product_id, item.quantity) for item in order.items] == [
            (headphones.id, 1),
            (plant_pots.id, 2),
        ]
        assert order.items[0].name == "Wireless Headphones"

    def test_decrements_stock(self, engine, store, shopper, headphones, plant_pots):
        engine.create_order(shopper.id, [
            OrderLine(headphones.id, 2, Decimal("79.99")),
            OrderLine(plant_pots.id, 3, Decimal("29.99")),
        ], ADDRESS)

        assert store.products.get(headphones.id).stock == 3
        assert store.products.get(plant_pots.id).stock == 0

    def test_price_snapshot_survives_catalog_change(self, engine, store, shopper, headphones):
        order = engine.create_order(shopper.id, [OrderLine(headphones.id, 1, Decimal("79.99"))], ADDRESS)

        with store.transaction():
            product = store.products.get(headphones.id)
            product.price = Decimal("99.99")
            store.products.update(product)

        fetched = engine.get_order(order.id, Caller(shopper.id))
        assert fetched.items[0].price_at_purchase == Decimal("79.99")
        assert fetched.total == Decimal("91.58")

    def test_sub_cent_prices_round_once_for_totals_and_items(self, engine, store, shopper, headphones):
        order = engine.create_order(shopper.id, [OrderLine(headphones.id, 2, Decimal("10.005"))], ADDRESS)

        assert order.items[0].price_at_purchase == Decimal("10.01")
        assert order.subtotal == Decimal("20.02")
        stored = store.order_items.list_by_order(order.id)
        assert order.subtotal == sum(item.price_at_purchase * item.quantity for item in stored)

    def test_unknown_product_rolls_back(self, engine, store, shopper, headphones):
        with pytest.raises(NotFoundError):
            engine.create_order(shopper.id, [
                OrderLine(headphones.id, 1, Decimal("79.99")),
                OrderLine(9999, 1, Decimal("5.00")),
            ], ADDRESS)

        assert store.orders.list() == []
        assert store.order_items.list() == []
        assert store.products.get(headphones.id).stock == 5

    def test_insufficient_stock_rolls_back(self, engine, store, shopper, headphones, plant_pots):
        with pytest.raises(ConflictError):
            engine.create_order(shopper.id, [
                OrderLine(headphones.id, 2, Decimal("79.99")),
                OrderLine(plant_pots.id, 4, Decimal("29.99")),
            ], ADDRESS)

        assert store.orders.list() == []
        assert store.order_items.list() == []
        assert store.products.get(headphones.id).stock == 5
        assert store.products.get(plant_pots.id).stock == 3

    def test_rejects_empty_order(self, engine, shopper):
        with pytest.raises(ValidationError):
            engine.create_order(shopper.id, [], ADDRESS)

    def test_rejects_blank_address(self, engine, shopper, headphones):
        with pytest.raises(ValidationError):
            engine.create_order(shopper.id, [OrderLine(headphones.id, 1, Decimal("79.99"))], "   ")

    def test_rejects_non_positive_quantity(self, engine, store, shopper, headphones):
        with pytest.raises(ValidationError):
            engine.create_order(shopper.id, [OrderLine(headphones.id, 0, Decimal("79.99"))], ADDRESS)
        assert store.orders.list() == []

    def test_rejects_negative_price(self, engine, shopper, headphones):
        with pytest.raises(ValidationError):
            engine.create_order(shopper.id, [OrderLine(headphones.id, 1, Decimal("-1.00"))], ADDRESS)


class TestOrderAccess:
    """Tests for reading orders."""

    @pytest.fixture
    def engine(self, store, clock):
        return OrderEngine(store, clock=clock)

    @pytest.fixture
    def order(self, engine, store, shopper):
        product = add_product(store, "Desk Lamp", "54.99")
        return engine.create_order(shopper.id, [OrderLine(product.id, 1, Decimal("54.99"))], ADDRESS)

    def test_owner_can_read(self, engine, order, shopper):
        assert engine.get_order(order.id, Caller(shopper.id)).id == order.id

    def test_admin_can_read(self, engine, order, admin):
        assert engine.get_order(order.id, Caller(admin.id, is_admin=True)).id == order.id

    def test_other_user_is_forbidden(self, engine, order, other_shopper):
        with pytest.raises(ForbiddenError):
            engine.get_order(order.id, Caller(other_shopper.id))

    def test_missing_order(self, engine, shopper):
        with pytest.raises(NotFoundError):
            engine.get_order(424242, Caller(shopper.id))

    def test_list_is_scoped_to_owner(self, engine, store, clock, order, shopper, other_shopper, admin):
        clock.advance(minutes=5)
        product = add_product(store, "Candles", "24.99")
        other = engine.create_order(other_shopper.id, [OrderLine(product.id, 1, Decimal("24.99"))], ADDRESS)

        assert [o.id for o in engine.list_orders(Caller(shopper.id))] == [order.id]
        assert [o.id for o in engine.list_orders(Caller(admin.id, is_admin=True))] == [other.id, order.id]

    def test_search_and_recent(self, engine, order):
        assert [o.id for o in engine.search_orders(order.order_number.lower())] == [order.id]
        assert engine.search_orders("springfield")[0].id == order.id
        assert engine.search_orders("nowhere") == []
        assert [o.id for o in engine.recent_orders(1)] == [order.id]


class TestUpdateStatus:
    """Tests for the order status workflow."""

    @pytest.fixture
    def engine(self, store, clock):
        return OrderEngine(store, clock=clock)

    @pytest.fixture
    def order(self, engine, store, shopper):
        product = add_product(store, "Denim Jacket", "89.99")
        return engine.create_order(shopper.id, [OrderLine(product.id, 1, Decimal("89.99"))], ADDRESS)

    @pytest.fixture
    def admin_caller(self, admin):
        return Caller(admin.id, is_admin=True)

    def test_forward_progression(self, engine, order, admin_caller):
        for status in ("processing", "shipped", "delivered"):
            assert engine.update_status(order.id, status, admin_caller).status == status

    def test_bogus_status_leaves_order_unchanged(self, engine, order, admin_caller, shopper):
        with pytest.raises(ValidationError):
            engine.update_status(order.id, "bogus", admin_caller)
        assert engine.get_order(order.id, Caller(shopper.id)).status == "pending"

    def test_requires_admin(self, engine, order, shopper):
        with pytest.raises(ForbiddenError):
            engine.update_status(order.id, "processing", Caller(shopper.id))

    def test_missing_order(self, engine, admin_caller):
        with pytest.raises(NotFoundError):
            engine.update_status(9999, "processing", admin_caller)

    def test_backwards_transition_conflicts(self, engine, order, admin_caller):
        engine.update_status(order.id, "processing", admin_caller)
        with pytest.raises(ConflictError):
            engine.update_status(order.id, "pending", admin_caller)

    def test_skipping_a_step_conflicts(self, engine, order, admin_caller):
        with pytest.raises(ConflictError):
            engine.update_status(order.id, "delivered", admin_caller)

    def test_terminal_states_are_final(self, engine, order, admin_caller):
        engine.update_status(order.id, "cancelled", admin_caller)
        with pytest.raises(ConflictError):
            engine.update_status(order.id, "processing", admin_caller)

    def test_same_status_is_a_no_op(self, engine, order, admin_caller):
        assert engine.update_status(order.id, "pending", admin_caller).status == "pending"

    def test_permissive_mode_allows_any_transition(self, store, clock, order, admin_caller):
        engine = OrderEngine(store, strict_status=False, clock=clock)
        engine.update_status(order.id, "delivered", admin_caller)
        assert engine.update_status(order.id, "pending", admin_caller).status == "pending"


class TestAggregates:
    """Tests for revenue and order count."""

    def test_cancelled_orders_are_excluded(self, store, clock, shopper, admin):
        engine = OrderEngine(store, clock=clock)
        product = add_product(store, "Clean Code", "34.99", stock=10, category="Books")
        kept = engine.create_order(shopper.id, [OrderLine(product.id, 1, Decimal("34.99"))], ADDRESS)
        dropped = engine.create_order(shopper.id, [OrderLine(product.id, 2, Decimal("34.99"))], ADDRESS)
        engine.update_status(dropped.id, "cancelled", Caller(admin.id, is_admin=True))

        assert engine.get_order_count() == 1
        assert engine.get_revenue() == kept.total

    def test_empty_store(self, store):
        engine = OrderEngine(store)
        assert engine.get_revenue() == Decimal("0.00")
        assert engine.get_order_count() == 0
