"""Auctions API router."""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from opentelemetry import trace

from auth import get_current_caller, require_admin
from dependencies import get_auction_engine, get_store
from domain import Caller
from engines.auction_engine import AuctionEngine
from repositories import Store
from schemas import AuctionCreate, AuctionResponse, BidCreate, BidResponse, MyAuctionsResponse, MyBidResponse

router = APIRouter(prefix="/auctions", tags=["auctions"])


def _display_name(store: Store, user_id: int) -> str:
    user = store.users.get(user_id)
    return user.display_name if user else ""


@router.get("", response_model=List[AuctionResponse])
def get_auctions(
    search: Optional[str] = Query(None),
    auctions: AuctionEngine = Depends(get_auction_engine)
):
    """
    List active auctions, soonest ending first.

    With ``search`` every auction matching the term is returned, whatever its status.
    """
    if search:
        return auctions.search(search)
    return auctions.list_active()


@router.get("/all", response_model=List[AuctionResponse])
def get_all_auctions(
    caller: Caller = Depends(require_admin),
    auctions: AuctionEngine = Depends(get_auction_engine)
):
    return auctions.list_all()


@router.get("/categories", response_model=List[str])
def get_auction_categories(auctions: AuctionEngine = Depends(get_auction_engine)):
    return auctions.categories()


@router.get("/mine", response_model=MyAuctionsResponse)
def get_my_auctions(
    caller: Caller = Depends(get_current_caller),
    auctions: AuctionEngine = Depends(get_auction_engine)
):
    """Auctions the caller is selling and auctions they have bid on."""
    return {
        "selling": auctions.list_by_seller(caller.user_id),
        "bidding": auctions.list_by_bidder(caller.user_id),
    }


@router.post("", response_model=AuctionResponse, status_code=201)
def create_auction(
    request: AuctionCreate,
    caller: Caller = Depends(get_current_caller),
    auctions: AuctionEngine = Depends(get_auction_engine),
    store: Store = Depends(get_store)
):
    """List a new auction - requires authentication."""
    return auctions.create_auction(
        seller_id=caller.user_id,
        title=request.title,
        description=request.description,
        image=request.image,
        category=request.category,
        starting_price=request.starting_price,
        duration_hours=request.duration_hours,
        seller_name=_display_name(store, caller.user_id),
    )


@router.get("/{auction_id}", response_model=AuctionResponse)
def get_auction(auction_id: int, auctions: AuctionEngine = Depends(get_auction_engine)):
    return auctions.get_auction(auction_id)


@router.get("/{auction_id}/bids", response_model=List[BidResponse])
def get_bids(auction_id: int, auctions: AuctionEngine = Depends(get_auction_engine)):
    """Bid history, newest first."""
    return auctions.list_bids(auction_id)


@router.get("/{auction_id}/my-bid", response_model=MyBidResponse)
def get_my_bid(
    auction_id: int,
    caller: Caller = Depends(get_current_caller),
    auctions: AuctionEngine = Depends(get_auction_engine)
):
    """The caller's highest bid and whether it currently leads."""
    auctions.get_auction(auction_id)
    return {
        "highest_bid": auctions.user_highest_bid(auction_id, caller.user_id),
        "is_highest_bidder": auctions.is_highest_bidder(auction_id, caller.user_id),
    }


@router.post("/{auction_id}/bids", response_model=BidResponse, status_code=201)
def place_bid(
    auction_id: int,
    request: BidCreate,
    caller: Caller = Depends(get_current_caller),
    auctions: AuctionEngine = Depends(get_auction_engine),
    store: Store = Depends(get_store)
):
    """Bid on an auction - requires authentication."""
    span = trace.get_current_span()
    span.set_attribute("auction.id", auction_id)
    span.set_attribute("bid.amount", float(request.amount))

    return auctions.place_bid(
        auction_id,
        caller.user_id,
        request.amount,
        bidder_name=_display_name(store, caller.user_id),
    )


@router.post("/{auction_id}/cancel", response_model=AuctionResponse)
def cancel_auction(
    auction_id: int,
    caller: Caller = Depends(get_current_caller),
    auctions: AuctionEngine = Depends(get_auction_engine)
):
    """Cancel an active auction (seller or admin)."""
    return auctions.cancel_auction(auction_id, caller.user_id, is_admin=caller.is_admin)
