"""Repository interfaces the engines depend on.

Each entity gets a repository exposing get/list/insert/update plus the few
queries the engines need. A Store groups the repositories behind a single
transaction boundary so the same engine code runs against the SQL store in
production and the in-memory store in tests.
"""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from domain import Auction, Bid, Order, OrderItem, Product, Review, User

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Basic persistence operations for one entity type."""

    @abstractmethod
    def get(self, entity_id: int, for_update: bool = False) -> Optional[T]:
        """Return the entity or None. ``for_update`` locks it until commit."""

    @abstractmethod
    def list(self) -> List[T]:
        """Return every entity ordered by id."""

    @abstractmethod
    def insert(self, entity: T) -> T:
        """Persist a new entity and assign its id."""

    @abstractmethod
    def update(self, entity: T) -> T:
        """Overwrite the stored entity with the same id."""


class UserRepository(Repository[User]):

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        ...


class ProductRepository(Repository[Product]):

    @abstractmethod
    def decrement_stock(self, product_id: int, quantity: int) -> Product:
        """
        Take ``quantity`` units out of stock.

        Raises:
            NotFoundError: If the product does not exist
            ConflictError: If fewer than ``quantity`` units are in stock
        """


class OrderRepository(Repository[Order]):

    @abstractmethod
    def list_by_user(self, user_id: int) -> List[Order]:
        ...


class OrderItemRepository(Repository[OrderItem]):

    @abstractmethod
    def list_by_order(self, order_id: int) -> List[OrderItem]:
        ...


class AuctionRepository(Repository[Auction]):

    @abstractmethod
    def list_expired(self, now: datetime) -> List[Auction]:
        """Active auctions whose deadline is at or before ``now``."""


class BidRepository(Repository[Bid]):

    @abstractmethod
    def list_by_auction(self, auction_id: int) -> List[Bid]:
        ...

    @abstractmethod
    def list_by_bidder(self, bidder_id: int) -> List[Bid]:
        ...

    def highest_for_auction(self, auction_id: int) -> Optional[Bid]:
        bids = self.list_by_auction(auction_id)
        if not bids:
            return None
        return max(bids, key=lambda bid: bid.amount)


class ReviewRepository(Repository[Review]):

    @abstractmethod
    def list_by_product(self, product_id: int) -> List[Review]:
        ...

    @abstractmethod
    def list_by_status(self, status: str) -> List[Review]:
        ...

    @abstractmethod
    def delete(self, review_id: int) -> None:
        ...


class Store(ABC):
    """Unit of work over all repositories."""

    users: UserRepository
    products: ProductRepository
    orders: OrderRepository
    order_items: OrderItemRepository
    auctions: AuctionRepository
    bids: BidRepository
    reviews: ReviewRepository

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Context manager wrapping an all-or-nothing unit of work.

        Every write made inside the block is committed when it exits normally
        and discarded when it raises.
        """
