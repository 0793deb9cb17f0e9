"""In-memory store for tests and the database-free demo mode."""
import copy
import heapq
import logging
from contextlib import contextmanager
from datetime import datetime
from threading import RLock
from typing import Dict, Iterator, List, Optional

from domain import Auction, Bid, Order, OrderItem, Product, Review, User
from errors import ConflictError, NotFoundError
from repositories.base import (
    AuctionRepository,
    BidRepository,
    OrderItemRepository,
    OrderRepository,
    ProductRepository,
    Repository,
    ReviewRepository,
    Store,
    UserRepository,
)

logger = logging.getLogger(__name__)


class MemoryRepository(Repository):
    """
    Dictionary-backed repository.

    Entities are copied on the way in and out so callers can only change
    stored state through insert/update.
    """

    def __init__(self, lock: RLock):
        self._lock = lock
        self._rows: Dict[int, object] = {}
        self._next_id = 1

    def _select(self, predicate) -> list:
        with self._lock:
            return [copy.deepcopy(row) for _, row in sorted(self._rows.items()) if predicate(row)]

    def get(self, entity_id: int, for_update: bool = False):
        with self._lock:
            row = self._rows.get(entity_id)
            return copy.deepcopy(row) if row is not None else None

    def list(self):
        return self._select(lambda row: True)

    def insert(self, entity):
        with self._lock:
            if entity.id is None:
                entity.id = self._next_id
            self._next_id = max(self._next_id, entity.id) + 1
            self._rows[entity.id] = copy.deepcopy(entity)
            return entity

    def update(self, entity):
        with self._lock:
            if entity.id not in self._rows:
                raise NotFoundError(f"{type(entity).__name__} {entity.id} not found")
            self._rows[entity.id] = copy.deepcopy(entity)
            return entity

    def snapshot(self) -> dict:
        return {"rows": dict(self._rows), "next_id": self._next_id}

    def restore(self, state: dict) -> None:
        self._rows = state["rows"]
        self._next_id = state["next_id"]


class MemoryUserRepository(MemoryRepository, UserRepository):

    def get_by_email(self, email: str) -> Optional[User]:
        matches = self._select(lambda user: user.email == email.lower())
        return matches[0] if matches else None


class MemoryProductRepository(MemoryRepository, ProductRepository):

    def decrement_stock(self, product_id: int, quantity: int) -> Product:
        with self._lock:
            product = self.get(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if product.stock < quantity:
                raise ConflictError(f"Insufficient stock for {product.name}")
            product.stock -= quantity
            return self.update(product)


class MemoryOrderRepository(MemoryRepository, OrderRepository):

    def insert(self, entity: Order) -> Order:
        # Line items live in the order_items repository
        stored = copy.copy(entity)
        stored.items = []
        super().insert(stored)
        entity.id = stored.id
        return entity

    def update(self, entity: Order) -> Order:
        stored = copy.copy(entity)
        stored.items = []
        super().update(stored)
        return entity

    def list_by_user(self, user_id: int) -> List[Order]:
        return self._select(lambda order: order.user_id == user_id)


class MemoryOrderItemRepository(MemoryRepository, OrderItemRepository):

    def list_by_order(self, order_id: int) -> List[OrderItem]:
        return self._select(lambda item: item.order_id == order_id)


class MemoryAuctionRepository(MemoryRepository, AuctionRepository):
    """Keeps a min-heap of (ends_at, id) so expiry checks skip live auctions."""

    def __init__(self, lock: RLock):
        super().__init__(lock)
        self._deadlines: list = []

    def insert(self, entity: Auction) -> Auction:
        with self._lock:
            super().insert(entity)
            heapq.heappush(self._deadlines, (entity.ends_at, entity.id))
            return entity

    def list_expired(self, now: datetime) -> List[Auction]:
        with self._lock:
            expired = []
            while self._deadlines and self._deadlines[0][0] <= now:
                _, auction_id = heapq.heappop(self._deadlines)
                auction = self.get(auction_id)
                if auction is not None and auction.status == "active":
                    expired.append(auction)
            return expired

    def snapshot(self) -> dict:
        state = super().snapshot()
        state["deadlines"] = list(self._deadlines)
        return state

    def restore(self, state: dict) -> None:
        super().restore(state)
        self._deadlines = state["deadlines"]


class MemoryBidRepository(MemoryRepository, BidRepository):

    def list_by_auction(self, auction_id: int) -> List[Bid]:
        return self._select(lambda bid: bid.auction_id == auction_id)

    def list_by_bidder(self, bidder_id: int) -> List[Bid]:
        return self._select(lambda bid: bid.bidder_id == bidder_id)


class MemoryReviewRepository(MemoryRepository, ReviewRepository):

    def list_by_product(self, product_id: int) -> List[Review]:
        return self._select(lambda review: review.product_id == product_id)

    def list_by_status(self, status: str) -> List[Review]:
        return self._select(lambda review: review.status == status)

    def delete(self, review_id: int) -> None:
        with self._lock:
            self._rows.pop(review_id, None)


class MemoryStore(Store):
    """
    Store keeping every entity in process memory.

    A single re-entrant lock is held for the whole of each transaction, which
    linearises all writes. Rollback restores the snapshot taken when the
    outermost transaction began.
    """

    def __init__(self):
        self._lock = RLock()
        self._depth = 0
        self.users = MemoryUserRepository(self._lock)
        self.products = MemoryProductRepository(self._lock)
        self.orders = MemoryOrderRepository(self._lock)
        self.order_items = MemoryOrderItemRepository(self._lock)
        self.auctions = MemoryAuctionRepository(self._lock)
        self.bids = MemoryBidRepository(self._lock)
        self.reviews = MemoryReviewRepository(self._lock)

    def _repositories(self) -> List[MemoryRepository]:
        return [
            self.users, self.products, self.orders, self.order_items,
            self.auctions, self.bids, self.reviews,
        ]

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshots = [repo.snapshot() for repo in self._repositories()]
            self._depth = 1
            try:
                yield self
            except Exception:
                for repo, state in zip(self._repositories(), snapshots):
                    repo.restore(state)
                logger.debug("Rolled back in-memory transaction")
                raise
            finally:
                self._depth = 0
