"""Domain records passed between the engines, the stores and the API layer."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

CENTS = Decimal("0.01")


def round2(value) -> Decimal:
    """Round a money amount half-up to two decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class AuctionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"
    SOLD = "sold"
    CANCELLED = "cancelled"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


ORDER_STATUSES = [s.value for s in OrderStatus]
REVIEW_STATUSES = [s.value for s in ReviewStatus]


@dataclass
class Caller:
    """Identity of the authenticated requester."""
    user_id: int
    is_admin: bool = False
    email: Optional[str] = None


@dataclass
class User:
    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: str = "user"
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        """Public name, e.g. "Jane S."."""
        initial = f" {self.last_name[:1]}." if self.last_name else ""
        return f"{self.first_name}{initial}"


@dataclass
class Product:
    name: str
    price: Decimal
    description: str = ""
    image: str = ""
    category: str = ""
    rating: Decimal = Decimal("0")
    stock: int = 0
    disabled: bool = False
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class OrderItem:
    product_id: Optional[int]
    quantity: int
    price_at_purchase: Decimal
    order_id: Optional[int] = None
    id: Optional[int] = None
    # Joined from the catalog for display; not persisted
    name: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None


@dataclass
class Order:
    user_id: int
    status: str
    subtotal: Decimal
    tax: Decimal
    fees: Decimal
    total: Decimal
    shipping_address: str
    created_at: Optional[datetime] = None
    order_number: Optional[str] = None
    id: Optional[int] = None
    items: List[OrderItem] = field(default_factory=list)


@dataclass
class Auction:
    seller_id: int
    title: str
    starting_price: Decimal
    current_price: Decimal
    ends_at: datetime
    seller_name: str = ""
    description: str = ""
    image_url: str = ""
    category: str = ""
    bid_count: int = 0
    status: str = AuctionStatus.ACTIVE.value
    created_at: Optional[datetime] = None
    winner_id: Optional[int] = None
    winner_name: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Bid:
    auction_id: int
    bidder_id: int
    amount: Decimal
    bidder_name: str = ""
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Review:
    product_id: int
    user_id: int
    rating: int
    title: str
    comment: str = ""
    user_name: str = ""
    helpful: int = 0
    status: str = ReviewStatus.PENDING.value
    created_at: Optional[datetime] = None
    id: Optional[int] = None
