"""Reviews API router."""
from fastapi import APIRouter, Depends, Query, Response
from typing import List, Optional

from auth import get_current_caller, require_admin
from dependencies import get_review_engine, get_store
from domain import Caller
from engines.review_engine import ReviewEngine
from repositories import Store
from schemas import ProductReviewsResponse, ReviewCreate, ReviewResponse, ReviewStatusUpdate

router = APIRouter(tags=["reviews"])


@router.get("/products/{product_id}/reviews", response_model=ProductReviewsResponse)
def get_product_reviews(product_id: int, reviews: ReviewEngine = Depends(get_review_engine)):
    """Approved reviews for a product with its rating summary."""
    approved = reviews.list_approved(product_id)
    return {
        "reviews": approved,
        "average_rating": reviews.average_rating(product_id),
        "review_count": len(approved),
    }


@router.post("/products/{product_id}/reviews", response_model=ReviewResponse, status_code=201)
def submit_review(
    product_id: int,
    request: ReviewCreate,
    caller: Caller = Depends(get_current_caller),
    reviews: ReviewEngine = Depends(get_review_engine),
    store: Store = Depends(get_store)
):
    """Review a product - one review per user and product."""
    user = store.users.get(caller.user_id)
    return reviews.submit_review(
        product_id,
        caller.user_id,
        request.rating,
        request.title,
        request.comment,
        user_name=user.display_name if user else "",
    )


@router.get("/reviews", response_model=List[ReviewResponse])
def get_reviews(
    product_id: Optional[int] = Query(None),
    caller: Caller = Depends(require_admin),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    return reviews.list_all(product_id)


@router.get("/reviews/pending", response_model=List[ReviewResponse])
def get_pending_reviews(
    caller: Caller = Depends(require_admin),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    """Moderation queue, oldest first."""
    return reviews.list_pending()


@router.put("/reviews/{review_id}/status", response_model=ReviewResponse)
def update_review_status(
    review_id: int,
    request: ReviewStatusUpdate,
    caller: Caller = Depends(require_admin),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    return reviews.set_status(review_id, request.status)


@router.post("/reviews/{review_id}/helpful", response_model=ReviewResponse)
def mark_review_helpful(
    review_id: int,
    caller: Caller = Depends(get_current_caller),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    return reviews.mark_helpful(review_id)


@router.delete("/reviews/{review_id}", status_code=204)
def delete_review(
    review_id: int,
    caller: Caller = Depends(require_admin),
    reviews: ReviewEngine = Depends(get_review_engine)
):
    reviews.delete_review(review_id)
    return Response(status_code=204)
