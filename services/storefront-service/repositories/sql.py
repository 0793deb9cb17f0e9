"""SQLAlchemy-backed store used in production."""
import logging
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from domain import Auction, Bid, Order, OrderItem, Product, Review, User
from errors import ConflictError, InternalError, NotFoundError
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


class SqlRepository(Repository):
    """Maps one ORM model onto its domain dataclass by column name."""

    model = None
    entity = None

    def __init__(self, session: Session):
        self.session = session
        self._columns = [column.key for column in self.model.__table__.columns]
        self._entity_fields = {f.name for f in fields(self.entity)}

    def _to_entity(self, row):
        return self.entity(**{
            name: getattr(row, name)
            for name in self._columns
            if name in self._entity_fields
        })

    def _query(self):
        return self.session.query(self.model)

    def get(self, entity_id: int, for_update: bool = False):
        query = self._query().filter(self.model.id == entity_id)
        if for_update:
            query = query.with_for_update()
        row = query.first()
        return self._to_entity(row) if row else None

    def list(self):
        return [self._to_entity(row) for row in self._query().order_by(self.model.id).all()]

    def insert(self, entity):
        values = {name: getattr(entity, name) for name in self._columns if name != "id"}
        if entity.id is not None:
            values["id"] = entity.id
        row = self.model(**values)
        self.session.add(row)
        self.session.flush()
        for name in self._columns:
            setattr(entity, name, getattr(row, name))
        return entity

    def update(self, entity):
        row = self.session.get(self.model, entity.id)
        if row is None:
            raise NotFoundError(f"{self.entity.__name__} {entity.id} not found")
        for name in self._columns:
            if name != "id":
                setattr(row, name, getattr(entity, name))
        self.session.flush()
        return entity


class SqlUserRepository(SqlRepository, UserRepository):
    model = models.User
    entity = User

    def get_by_email(self, email: str) -> Optional[User]:
        row = self._query().filter(models.User.email == email.lower()).first()
        return self._to_entity(row) if row else None


class SqlProductRepository(SqlRepository, ProductRepository):
    model = models.Product
    entity = Product

    def decrement_stock(self, product_id: int, quantity: int) -> Product:
        # Conditional update keeps the check and the write in one statement
        result = self.session.execute(
            update(models.Product)
            .where(models.Product.id == product_id, models.Product.stock >= quantity)
            .values(stock=models.Product.stock - quantity)
            .execution_options(synchronize_session="fetch")
        )
        product = self.get(product_id)
        if result.rowcount == 0:
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            raise ConflictError(f"Insufficient stock for {product.name}")
        return product


class SqlOrderRepository(SqlRepository, OrderRepository):
    model = models.Order
    entity = Order

    def list_by_user(self, user_id: int) -> List[Order]:
        rows = self._query().filter(models.Order.user_id == user_id).order_by(models.Order.id).all()
        return [self._to_entity(row) for row in rows]


class SqlOrderItemRepository(SqlRepository, OrderItemRepository):
    model = models.OrderItem
    entity = OrderItem

    def list_by_order(self, order_id: int) -> List[OrderItem]:
        rows = self._query().filter(models.OrderItem.order_id == order_id).order_by(models.OrderItem.id).all()
        return [self._to_entity(row) for row in rows]


class SqlAuctionRepository(SqlRepository, AuctionRepository):
    model = models.Auction
    entity = Auction

    def list_expired(self, now: datetime) -> List[Auction]:
        rows = (
            self._query()
            .filter(models.Auction.status == "active", models.Auction.ends_at <= now)
            .order_by(models.Auction.ends_at)
            .all()
        )
        return [self._to_entity(row) for row in rows]


class SqlBidRepository(SqlRepository, BidRepository):
    model = models.Bid
    entity = Bid

    def list_by_auction(self, auction_id: int) -> List[Bid]:
        rows = self._query().filter(models.Bid.auction_id == auction_id).order_by(models.Bid.id).all()
        return [self._to_entity(row) for row in rows]

    def list_by_bidder(self, bidder_id: int) -> List[Bid]:
        rows = self._query().filter(models.Bid.bidder_id == bidder_id).order_by(models.Bid.id).all()
        return [self._to_entity(row) for row in rows]

    def highest_for_auction(self, auction_id: int) -> Optional[Bid]:
        row = (
            self._query()
            .filter(models.Bid.auction_id == auction_id)
            .order_by(models.Bid.amount.desc())
            .first()
        )
        return self._to_entity(row) if row else None


class SqlReviewRepository(SqlRepository, ReviewRepository):
    model = models.Review
    entity = Review

    def list_by_product(self, product_id: int) -> List[Review]:
        rows = self._query().filter(models.Review.product_id == product_id).order_by(models.Review.id).all()
        return [self._to_entity(row) for row in rows]

    def list_by_status(self, status: str) -> List[Review]:
        rows = self._query().filter(models.Review.status == status).order_by(models.Review.id).all()
        return [self._to_entity(row) for row in rows]

    def delete(self, review_id: int) -> None:
        self._query().filter(models.Review.id == review_id).delete(synchronize_session="fetch")
        self.session.flush()


class SqlStore(Store):
    """Store backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session
        self.users = SqlUserRepository(session)
        self.products = SqlProductRepository(session)
        self.orders = SqlOrderRepository(session)
        self.order_items = SqlOrderItemRepository(session)
        self.auctions = SqlAuctionRepository(session)
        self.bids = SqlBidRepository(session)
        self.reviews = SqlReviewRepository(session)
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator["SqlStore"]:
        if self._depth:
            # Nested blocks join the outer unit of work
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Database transaction failed", extra={"error": str(e)})
            raise InternalError("Database transaction failed") from e
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._depth = 0
