"""Admin back-office API router."""
from fastapi import APIRouter, Depends

from auth import require_admin
from dependencies import get_auction_engine, get_order_engine, get_review_engine, get_store
from domain import Caller
from engines.auction_engine import AuctionEngine
from engines.order_engine import OrderEngine
from engines.review_engine import ReviewEngine
from repositories import Store
from schemas import StatsResponse

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    caller: Caller = Depends(require_admin),
    store: Store = Depends(get_store),
    orders: OrderEngine = Depends(get_order_engine),
    auctions: AuctionEngine = Depends(get_auction_engine),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    """Dashboard counters; revenue and order count exclude cancelled orders."""
    return {
        "total_revenue": orders.get_revenue(),
        "order_count": orders.get_order_count(),
        "product_count": len(store.products.list()),
        "user_count": len(store.users.list()),
        "auction_count": auctions.auction_count(),
        "active_auction_count": auctions.active_auction_count(),
        "bid_count": auctions.total_bid_count(),
        "review_count": reviews.total_review_count(),
        "pending_review_count": reviews.pending_count(),
        "recent_orders": [orders.get_order(o.id, caller) for o in orders.recent_orders()],
    }
