"""Dependency injection for the store and engines."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import ORDER_STATUS_STRICT, REVIEW_AUTO_APPROVE, STORE_BACKEND
from database import get_db
from engines.auction_engine import AuctionEngine
from engines.order_engine import OrderEngine
from engines.review_engine import ReviewEngine
from repositories import SqlStore, Store


def get_store(request: Request, db: Session = Depends(get_db)) -> Store:
    """Get the store for this request, in-process or backed by the database session."""
    if STORE_BACKEND == "memory":
        return request.app.state.memory_store
    return SqlStore(db)


def get_order_engine(store: Store = Depends(get_store)) -> OrderEngine:
    """Get order engine instance."""
    return OrderEngine(store, strict_status=ORDER_STATUS_STRICT)


def get_auction_engine(store: Store = Depends(get_store)) -> AuctionEngine:
    """Get auction engine instance."""
    return AuctionEngine(store)


def get_review_engine(store: Store = Depends(get_store)) -> ReviewEngine:
    """Get review engine instance."""
    return ReviewEngine(store, auto_approve=REVIEW_AUTO_APPROVE)
