"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ORMResponse(BaseModel):
    """Base for responses built from domain records."""
    model_config = ConfigDict(from_attributes=True)


# --- Auth ---

class RegisterRequest(BaseModel):
    """Schema for account registration."""
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    """Schema for login request."""
    email: str
    password: str


class UserResponse(ORMResponse):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    """Schema for login and registration response."""
    token: str
    token_type: str = "bearer"
    user: UserResponse


# --- Products ---

class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    price: Decimal = Field(..., ge=0)
    image: str = ""
    category: str = ""
    stock: int = Field(0, ge=0)


class ProductUpdate(BaseModel):
    """Partial product update; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    disabled: Optional[bool] = None


class ProductResponse(ORMResponse):
    """Schema for product response."""
    id: int
    name: str
    description: str
    price: float
    image: str
    category: str
    rating: float
    stock: int
    disabled: bool


class ProductDetailResponse(ProductResponse):
    average_rating: float
    review_count: int


# --- Orders ---

class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int
    price_at_purchase: Decimal


class OrderCreate(BaseModel):
    """Schema for checkout request."""
    items: List[OrderItemRequest]
    shipping_address: str


class OrderStatusUpdate(BaseModel):
    status: str


class OrderItemResponse(ORMResponse):
    id: int
    product_id: Optional[int] = None
    quantity: int
    price_at_purchase: float
    name: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None


class OrderResponse(ORMResponse):
    """Schema for order response."""
    id: int
    order_number: Optional[str] = None
    user_id: int
    status: str
    subtotal: float
    tax: float
    fees: float
    total: float
    shipping_address: str
    created_at: datetime
    items: List[OrderItemResponse] = []


# --- Auctions ---

class AuctionCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: str = ""
    image: Optional[str] = None
    category: str = ""
    starting_price: Decimal
    # Range checks happen in the engine so they answer 400
    duration_hours: float = Field(..., allow_inf_nan=False)


class AuctionResponse(ORMResponse):
    id: int
    seller_id: int
    seller_name: str
    title: str
    description: str
    image_url: str
    category: str
    starting_price: float
    current_price: float
    bid_count: int
    status: str
    created_at: datetime
    ends_at: datetime
    winner_id: Optional[int] = None
    winner_name: Optional[str] = None


class MyAuctionsResponse(BaseModel):
    selling: List[AuctionResponse]
    bidding: List[AuctionResponse]


class BidCreate(BaseModel):
    amount: Decimal


class MyBidResponse(BaseModel):
    """The caller's standing on one auction."""
    highest_bid: float
    is_highest_bidder: bool


class BidResponse(ORMResponse):
    id: int
    auction_id: int
    bidder_id: int
    bidder_name: str
    amount: float
    created_at: datetime


# --- Reviews ---

class ReviewCreate(BaseModel):
    rating: int
    title: str = Field(..., max_length=255)
    comment: str = ""


class ReviewStatusUpdate(BaseModel):
    status: str


class ReviewResponse(ORMResponse):
    id: int
    product_id: int
    user_id: int
    user_name: str
    rating: int
    title: str
    comment: str
    helpful: int
    status: str
    created_at: datetime


class ProductReviewsResponse(BaseModel):
    """Approved reviews with the product's rating summary."""
    reviews: List[ReviewResponse]
    average_rating: float
    review_count: int


# --- Admin ---

class StatsResponse(BaseModel):
    """Back-office dashboard counters."""
    total_revenue: float
    order_count: int
    product_count: int
    user_count: int
    auction_count: int
    active_auction_count: int
    bid_count: int
    review_count: int
    pending_review_count: int
    recent_orders: List[OrderResponse]
