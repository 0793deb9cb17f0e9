"""Orders API router."""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from opentelemetry import trace

from auth import get_current_caller
from dependencies import get_order_engine
from domain import Caller
from engines.order_engine import OrderEngine, OrderLine
from errors import ForbiddenError
from schemas import OrderCreate, OrderResponse, OrderStatusUpdate

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    request: OrderCreate,
    caller: Caller = Depends(get_current_caller),
    orders: OrderEngine = Depends(get_order_engine)
):
    """Place an order - requires authentication."""
    span = trace.get_current_span()
    span.set_attribute("user.id", caller.user_id)

    lines = [
        OrderLine(item.product_id, item.quantity, item.price_at_purchase)
        for item in request.items
    ]
    return orders.create_order(caller.user_id, lines, request.shipping_address)


@router.get("", response_model=List[OrderResponse])
def get_orders(
    search: Optional[str] = Query(None),
    caller: Caller = Depends(get_current_caller),
    orders: OrderEngine = Depends(get_order_engine)
):
    """
    Get the caller's orders, or every order for admins.

    Admins may pass ``search`` to match order number, address or status.
    """
    if search:
        if not caller.is_admin:
            raise ForbiddenError("Only admins can search orders")
        return orders.search_orders(search)
    return orders.list_orders(caller)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    caller: Caller = Depends(get_current_caller),
    orders: OrderEngine = Depends(get_order_engine)
):
    return orders.get_order(order_id, caller)


@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    request: OrderStatusUpdate,
    caller: Caller = Depends(get_current_caller),
    orders: OrderEngine = Depends(get_order_engine)
):
    """Move an order through its workflow (admin only)."""
    return orders.update_status(order_id, request.status, caller)
