"""Order management engine."""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Set

from opentelemetry import trace

from config import FLAT_FEE, ORDER_NUMBER_BASE, TAX_RATE
from domain import (
    ORDER_STATUSES,
    Caller,
    Order,
    OrderItem,
    OrderStatus,
    round2,
    utcnow,
)
from errors import ConflictError, ForbiddenError, NotFoundError, StorefrontError, ValidationError
from monitoring import (
    order_amount_histogram,
    order_status_changes_counter,
    orders_created_counter,
    orders_rejected_counter,
)
from repositories.base import Store

logger = logging.getLogger(__name__)

# Forward-only workflow; cancellation is allowed until delivery
ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    OrderStatus.PENDING.value: {OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PROCESSING.value: {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value},
    OrderStatus.DELIVERED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}


@dataclass
class OrderLine:
    """One line of a checkout request."""
    product_id: int
    quantity: int
    price_at_purchase: Decimal


def compute_totals(lines: List[OrderLine], tax_rate: Decimal = TAX_RATE, fee: Decimal = FLAT_FEE) -> Dict[str, Decimal]:
    """
    Compute order totals from price snapshots.

    Args:
        lines: Order lines with the unit price captured at purchase
        tax_rate: Sales tax rate applied to the subtotal
        fee: Flat shipping/processing fee

    Returns:
        Mapping with subtotal, tax, fees and total, each rounded to cents
    """
    subtotal = round2(sum(
        (Decimal(str(line.price_at_purchase)) * line.quantity for line in lines),
        Decimal("0")
    ))
    tax = round2(subtotal * tax_rate)
    fees = round2(fee)
    total = round2(subtotal + tax + fees)
    return {"subtotal": subtotal, "tax": tax, "fees": fees, "total": total}


def format_order_number(order_id: int) -> str:
    return f"ORD-{ORDER_NUMBER_BASE + order_id}"


class OrderEngine:
    """Engine for creating orders and driving their status workflow."""

    def __init__(
        self,
        store: Store,
        strict_status: bool = True,
        clock: Callable = utcnow
    ):
        """
        Initialize order engine.

        Args:
            store: Persistence store
            strict_status: Enforce the forward-only status workflow
            clock: Source of the current UTC time
        """
        self.store = store
        self.strict_status = strict_status
        self.clock = clock
        self.tracer = trace.get_tracer(__name__)

    def create_order(
        self,
        user_id: int,
        items: List[OrderLine],
        shipping_address: Optional[str]
    ) -> Order:
        """
        Create an order and take its items out of stock.

        The order row, its line items and every stock decrement are written
        in one transaction; any failure leaves none of them behind.

        Args:
            user_id: Owner of the order
            items: Lines with product, quantity and price snapshot
            shipping_address: Free-text delivery address

        Returns:
            The created order with its line items

        Raises:
            ValidationError: If the order has no items, no address or a bad line
            NotFoundError: If a line references an unknown product
            ConflictError: If a product does not have enough stock
        """
        if not items:
            raise ValidationError("Order must contain at least one item")
        if not shipping_address or not shipping_address.strip():
            raise ValidationError("Shipping address is required")
        for line in items:
            if line.quantity <= 0:
                raise ValidationError("Item quantity must be a positive integer")
            if Decimal(str(line.price_at_purchase)) < 0:
                raise ValidationError("Item price cannot be negative")

        # Totals and stored items share the same cent-rounded snapshot
        items = [OrderLine(line.product_id, line.quantity, round2(line.price_at_purchase)) for line in items]
        totals = compute_totals(items)

        span = trace.get_current_span()
        span.set_attribute("order.item_count", len(items))
        span.set_attribute("order.total", float(totals["total"]))

        try:
            with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
                db_span.set_attribute("user.id", user_id)
                with self.store.transaction():
                    order = Order(
                        user_id=user_id,
                        status=OrderStatus.PENDING.value,
                        shipping_address=shipping_address.strip(),
                        created_at=self.clock(),
                        **totals
                    )
                    self.store.orders.insert(order)
                    order.order_number = format_order_number(order.id)
                    self.store.orders.update(order)

                    for line in items:
                        product = self.store.products.get(line.product_id, for_update=True)
                        if product is None:
                            raise NotFoundError(f"Product {line.product_id} not found")
                        self.store.products.decrement_stock(product.id, line.quantity)

                        item = OrderItem(
                            order_id=order.id,
                            product_id=product.id,
                            quantity=line.quantity,
                            price_at_purchase=line.price_at_purchase,
                        )
                        self.store.order_items.insert(item)
                        item.name = product.name
                        item.image = product.image
                        item.category = product.category
                        order.items.append(item)
                db_span.set_attribute("order.id", order.id)
        except StorefrontError as e:
            orders_rejected_counter.add(1, {"reason": type(e).__name__})
            logger.warning("Order creation rolled back", extra={
                "user_id": user_id,
                "item_count": len(items),
                "error": str(e)
            })
            raise

        orders_created_counter.add(1)
        order_amount_histogram.record(float(order.total))

        logger.info("Order created", extra={
            "user_id": user_id,
            "order_id": order.id,
            "order_number": order.order_number,
            "total": str(order.total),
            "item_count": len(order.items)
        })
        return order

    def list_orders(self, caller: Caller) -> List[Order]:
        """
        List orders visible to the caller, newest first.

        Admins see every order; other users only their own.
        """
        if caller.is_admin:
            orders = self.store.orders.list()
        else:
            orders = self.store.orders.list_by_user(caller.user_id)
        return [self._with_items(order) for order in self._newest_first(orders)]

    def get_order(self, order_id: int, caller: Caller) -> Order:
        """
        Get a single order with its line items.

        Raises:
            NotFoundError: If the order does not exist
            ForbiddenError: If the caller is neither the owner nor an admin
        """
        order = self.store.orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if not caller.is_admin and order.user_id != caller.user_id:
            raise ForbiddenError("Access denied")
        return self._with_items(order)

    def update_status(self, order_id: int, new_status: str, caller: Caller) -> Order:
        """
        Change an order's status.

        Args:
            order_id: Order identifier
            new_status: Target status
            caller: Requesting identity, must be an admin

        Returns:
            The updated order

        Raises:
            ForbiddenError: If the caller is not an admin
            ValidationError: If the status is unknown
            NotFoundError: If the order does not exist
            ConflictError: If strict mode forbids the transition
        """
        if not caller.is_admin:
            raise ForbiddenError("Admin privileges required")
        if new_status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

        with self.store.transaction():
            order = self.store.orders.get(order_id, for_update=True)
            if order is None:
                raise NotFoundError("Order not found")

            old_status = order.status
            if old_status == new_status:
                return self._with_items(order)
            if self.strict_status and new_status not in ORDER_TRANSITIONS.get(old_status, set()):
                raise ConflictError(f"Cannot change order status from {old_status} to {new_status}")

            order.status = new_status
            self.store.orders.update(order)

        order_status_changes_counter.add(1, {"from": old_status, "to": new_status})
        logger.info("Order status updated", extra={
            "order_id": order_id,
            "from_status": old_status,
            "to_status": new_status,
            "admin_id": caller.user_id
        })
        return self._with_items(order)

    def get_revenue(self) -> Decimal:
        """Sum of totals over non-cancelled orders."""
        return round2(sum(
            (order.total for order in self._billable_orders()),
            Decimal("0")
        ))

    def get_order_count(self) -> int:
        """Number of non-cancelled orders."""
        return len(self._billable_orders())

    def search_orders(self, term: str) -> List[Order]:
        """Match orders by order number, status or shipping address."""
        needle = term.lower()
        matches = [
            order for order in self.store.orders.list()
            if needle in (order.order_number or "").lower()
            or needle in order.status.lower()
            or needle in order.shipping_address.lower()
        ]
        return [self._with_items(order) for order in self._newest_first(matches)]

    def recent_orders(self, count: int = 5) -> List[Order]:
        return self._newest_first(self.store.orders.list())[:count]

    def _billable_orders(self) -> List[Order]:
        return [
            order for order in self.store.orders.list()
            if order.status != OrderStatus.CANCELLED.value
        ]

    @staticmethod
    def _newest_first(orders: List[Order]) -> List[Order]:
        return sorted(orders, key=lambda order: (order.created_at, order.id), reverse=True)

    def _with_items(self, order: Order) -> Order:
        items = self.store.order_items.list_by_order(order.id)
        for item in items:
            product = self.store.products.get(item.product_id) if item.product_id else None
            if product is not None:
                item.name = product.name
                item.image = product.image
                item.category = product.category
        order.items = items
        return order
