"""Auction lifecycle and bidding engine.

Auctions move from ``active`` to exactly one terminal state:

    active --(deadline passed, has bids)--> sold
    active --(deadline passed, no bids)---> ended
    active --(seller or admin cancels)----> cancelled

There is no background timer. Every public operation first settles auctions
whose deadline has passed, so a read issued after the deadline always sees the
final state.
"""
import logging
import math
import time
from datetime import timedelta
from decimal import Decimal
from threading import Lock
from typing import Callable, Dict, List, Optional

from opentelemetry import trace

from config import MAX_AUCTION_HOURS, MIN_BID_INCREMENT
from domain import Auction, AuctionStatus, Bid, round2, utcnow
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from monitoring import (
    auction_sweep_duration_histogram,
    auctions_closed_counter,
    auctions_created_counter,
    bids_placed_counter,
    bids_rejected_counter,
)
from repositories.base import Store

logger = logging.getLogger(__name__)

DEFAULT_AUCTION_IMAGE = "https://picsum.photos/seed/auction-default/600/400"


class AuctionLocks:
    """Hands out one lock per auction id, shared by every engine instance."""

    def __init__(self):
        self._guard = Lock()
        self._locks: Dict[int, Lock] = {}

    def __call__(self, auction_id: int) -> Lock:
        with self._guard:
            return self._locks.setdefault(auction_id, Lock())

    def __contains__(self, auction_id: int) -> bool:
        with self._guard:
            return auction_id in self._locks

    def discard(self, auction_id: int) -> None:
        """Forget the lock of an auction that can no longer take bids."""
        with self._guard:
            self._locks.pop(auction_id, None)


auction_locks = AuctionLocks()


class AuctionEngine:
    """Engine for auctions and their bid ledger."""

    def __init__(
        self,
        store: Store,
        min_increment: Decimal = MIN_BID_INCREMENT,
        max_duration_hours: float = MAX_AUCTION_HOURS,
        clock: Callable = utcnow
    ):
        """
        Initialize auction engine.

        Args:
            store: Persistence store
            min_increment: Minimum amount a bid must add to the current price
            max_duration_hours: Longest allowed auction duration
            clock: Source of the current UTC time
        """
        self.store = store
        self.min_increment = min_increment
        self.max_duration_hours = max_duration_hours
        self.clock = clock
        self.tracer = trace.get_tracer(__name__)

    # --- Expiry ---

    def settle_expired(self) -> List[Auction]:
        """
        Close every active auction whose deadline has passed.

        Auctions with bids become ``sold`` to the highest bidder, the rest
        become ``ended``.

        Returns:
            The auctions closed by this sweep
        """
        started = time.perf_counter()
        now = self.clock()
        settled = []

        with self.tracer.start_as_current_span("auctions.settle_expired") as span:
            with self.store.transaction():
                for candidate in self.store.auctions.list_expired(now):
                    auction = self.store.auctions.get(candidate.id, for_update=True)
                    if auction is None or auction.status != AuctionStatus.ACTIVE.value:
                        continue

                    top_bid = self.store.bids.highest_for_auction(auction.id) if auction.bid_count else None
                    if top_bid is not None:
                        auction.status = AuctionStatus.SOLD.value
                        auction.winner_id = top_bid.bidder_id
                        auction.winner_name = top_bid.bidder_name
                    else:
                        auction.status = AuctionStatus.ENDED.value
                    self.store.auctions.update(auction)
                    settled.append(auction)
            span.set_attribute("auctions.settled", len(settled))

        auction_sweep_duration_histogram.record(time.perf_counter() - started)
        for auction in settled:
            auction_locks.discard(auction.id)
            auctions_closed_counter.add(1, {"outcome": auction.status})
            logger.info("Auction closed", extra={
                "auction_id": auction.id,
                "outcome": auction.status,
                "final_price": str(auction.current_price),
                "bid_count": auction.bid_count,
                "winner_id": auction.winner_id
            })
        return settled

    # --- Read ---

    def get_auction(self, auction_id: int) -> Auction:
        self.settle_expired()
        auction = self.store.auctions.get(auction_id)
        if auction is None:
            raise NotFoundError("Auction not found")
        return auction

    def list_active(self) -> List[Auction]:
        """Active auctions, soonest ending first."""
        self.settle_expired()
        active = [a for a in self.store.auctions.list() if a.status == AuctionStatus.ACTIVE.value]
        return sorted(active, key=lambda a: a.ends_at)

    def list_all(self) -> List[Auction]:
        self.settle_expired()
        return self._newest_first(self.store.auctions.list())

    def list_by_seller(self, seller_id: int) -> List[Auction]:
        self.settle_expired()
        return self._newest_first([a for a in self.store.auctions.list() if a.seller_id == seller_id])

    def list_by_bidder(self, bidder_id: int) -> List[Auction]:
        """Auctions the user has placed at least one bid on."""
        self.settle_expired()
        auction_ids = {bid.auction_id for bid in self.store.bids.list_by_bidder(bidder_id)}
        return self._newest_first([a for a in self.store.auctions.list() if a.id in auction_ids])

    def list_bids(self, auction_id: int) -> List[Bid]:
        """Bids on an auction, newest first."""
        self.get_auction(auction_id)
        bids = self.store.bids.list_by_auction(auction_id)
        return sorted(bids, key=lambda bid: (bid.created_at, bid.id), reverse=True)

    def search(self, term: str) -> List[Auction]:
        """Match auctions by title, description, seller name or category."""
        self.settle_expired()
        needle = term.lower()
        return [
            a for a in self.store.auctions.list()
            if needle in a.title.lower()
            or needle in (a.description or "").lower()
            or needle in (a.seller_name or "").lower()
            or needle in (a.category or "").lower()
        ]

    def categories(self) -> List[str]:
        return sorted({a.category for a in self.store.auctions.list() if a.category})

    def user_highest_bid(self, auction_id: int, user_id: int) -> Decimal:
        amounts = [bid.amount for bid in self.store.bids.list_by_auction(auction_id) if bid.bidder_id == user_id]
        return max(amounts) if amounts else Decimal("0")

    def is_highest_bidder(self, auction_id: int, user_id: int) -> bool:
        top_bid = self.store.bids.highest_for_auction(auction_id)
        return top_bid is not None and top_bid.bidder_id == user_id

    def auction_count(self) -> int:
        return len(self.store.auctions.list())

    def active_auction_count(self) -> int:
        return len(self.list_active())

    def total_bid_count(self) -> int:
        return len(self.store.bids.list())

    # --- Write ---

    def create_auction(
        self,
        seller_id: int,
        title: str,
        description: str,
        image: Optional[str],
        category: str,
        starting_price: Decimal,
        duration_hours: float,
        seller_name: str = ""
    ) -> Auction:
        """
        List a new auction.

        Args:
            seller_id: User creating the listing
            title: Listing title
            description: Listing description
            image: Image URL, a placeholder is used when empty
            category: Category name
            starting_price: Opening price
            duration_hours: Time until the auction closes

        Returns:
            The created auction

        Raises:
            ValidationError: If the title is blank, the price is not positive or
                the duration is not a positive number within the maximum
        """
        if not title or not title.strip():
            raise ValidationError("Title is required")
        starting_price = round2(starting_price)
        if starting_price <= 0:
            raise ValidationError("Starting price must be greater than zero")
        if duration_hours is None or not math.isfinite(duration_hours) or duration_hours <= 0:
            raise ValidationError("Duration must be greater than zero")
        if duration_hours > self.max_duration_hours:
            raise ValidationError(f"Duration cannot exceed {self.max_duration_hours:g} hours")

        now = self.clock()
        auction = Auction(
            seller_id=seller_id,
            seller_name=seller_name,
            title=title.strip(),
            description=description or "",
            image_url=image or DEFAULT_AUCTION_IMAGE,
            category=category or "",
            starting_price=starting_price,
            current_price=starting_price,
            bid_count=0,
            status=AuctionStatus.ACTIVE.value,
            created_at=now,
            ends_at=now + timedelta(hours=duration_hours),
        )
        with self.store.transaction():
            self.store.auctions.insert(auction)

        auctions_created_counter.add(1, {"category": auction.category})
        logger.info("Auction created", extra={
            "auction_id": auction.id,
            "seller_id": seller_id,
            "starting_price": str(starting_price),
            "ends_at": auction.ends_at.isoformat()
        })
        return auction

    def place_bid(
        self,
        auction_id: int,
        bidder_id: int,
        amount: Decimal,
        bidder_name: str = ""
    ) -> Bid:
        """
        Place a bid.

        The checks and the price update run under the auction's lock and a
        row lock, so two concurrent bids can never both beat the same price.

        Args:
            auction_id: Auction to bid on
            bidder_id: User placing the bid
            amount: Offered amount
            bidder_name: Display name recorded on the bid

        Returns:
            The accepted bid

        Raises:
            NotFoundError: If the auction does not exist
            ConflictError: If the auction is closed or past its deadline
            ForbiddenError: If the bidder is the seller
            ValidationError: If the amount is below current price plus the increment
        """
        self.settle_expired()
        amount = round2(amount)

        with auction_locks(auction_id), self.store.transaction():
            auction = self.store.auctions.get(auction_id, for_update=True)
            try:
                if auction is None:
                    raise NotFoundError("Auction not found")
                if auction.status != AuctionStatus.ACTIVE.value:
                    raise ConflictError("This auction is no longer active")
                now = self.clock()
                if auction.ends_at <= now:
                    raise ConflictError("This auction has ended")
                if auction.seller_id == bidder_id:
                    raise ForbiddenError("You cannot bid on your own auction")
                min_bid = round2(auction.current_price + self.min_increment)
                if amount < min_bid:
                    raise ValidationError(f"Bid must be at least ${min_bid:.2f}")
            except (NotFoundError, ConflictError, ForbiddenError, ValidationError) as e:
                bids_rejected_counter.add(1, {"reason": type(e).__name__})
                raise

            bid = Bid(
                auction_id=auction_id,
                bidder_id=bidder_id,
                bidder_name=bidder_name,
                amount=amount,
                created_at=now,
            )
            self.store.bids.insert(bid)
            auction.current_price = amount
            auction.bid_count += 1
            self.store.auctions.update(auction)

        bids_placed_counter.add(1, {"category": auction.category})
        logger.info("Bid placed", extra={
            "auction_id": auction_id,
            "bid_id": bid.id,
            "bidder_id": bidder_id,
            "amount": str(amount),
            "bid_count": auction.bid_count
        })
        return bid

    def cancel_auction(self, auction_id: int, requester_id: int, is_admin: bool = False) -> Auction:
        """
        Cancel an active auction.

        Raises:
            NotFoundError: If the auction does not exist
            ForbiddenError: If the requester is neither the seller nor an admin
            ConflictError: If the auction is not active
        """
        self.settle_expired()

        with auction_locks(auction_id), self.store.transaction():
            auction = self.store.auctions.get(auction_id, for_update=True)
            if auction is None:
                raise NotFoundError("Auction not found")
            if auction.seller_id != requester_id and not is_admin:
                raise ForbiddenError("You can only cancel your own auctions")
            if auction.status != AuctionStatus.ACTIVE.value:
                raise ConflictError("Only active auctions can be cancelled")
            auction.status = AuctionStatus.CANCELLED.value
            self.store.auctions.update(auction)

        auction_locks.discard(auction_id)
        auctions_closed_counter.add(1, {"outcome": auction.status})
        logger.info("Auction cancelled", extra={
            "auction_id": auction_id,
            "requester_id": requester_id,
            "by_admin": is_admin and auction.seller_id != requester_id
        })
        return auction

    @staticmethod
    def _newest_first(auctions: List[Auction]) -> List[Auction]:
        return sorted(auctions, key=lambda a: (a.created_at, a.id), reverse=True)
