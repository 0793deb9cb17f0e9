"""Product review and moderation engine."""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional

from opentelemetry import trace

from domain import REVIEW_STATUSES, Review, ReviewStatus, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from monitoring import reviews_moderated_counter, reviews_submitted_counter
from repositories.base import Store

logger = logging.getLogger(__name__)


class ReviewEngine:
    """
    Engine for product reviews.

    Only approved reviews are shown on the storefront and count towards a
    product's rating. Whether new submissions start approved or wait in the
    moderation queue is controlled by ``auto_approve``.
    """

    def __init__(self, store: Store, auto_approve: bool = True, clock: Callable = utcnow):
        self.store = store
        self.auto_approve = auto_approve
        self.clock = clock
        self.tracer = trace.get_tracer(__name__)

    def submit_review(
        self,
        product_id: int,
        user_id: int,
        rating: int,
        title: str,
        comment: str,
        user_name: str = ""
    ) -> Review:
        """
        Submit a review for a product.

        Raises:
            ValidationError: If the rating is not 1-5 or the title is blank
            NotFoundError: If the product does not exist
            ConflictError: If the user already reviewed the product
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 1 and 5")
        if not title or not title.strip():
            raise ValidationError("Review title is required")

        status = ReviewStatus.APPROVED if self.auto_approve else ReviewStatus.PENDING
        review = Review(
            product_id=product_id,
            user_id=user_id,
            user_name=user_name,
            rating=rating,
            title=title.strip(),
            comment=comment or "",
            helpful=0,
            status=status.value,
            created_at=self.clock(),
        )
        with self.tracer.start_as_current_span("reviews.submit") as span:
            span.set_attribute("product.id", product_id)
            with self.store.transaction():
                if self.store.products.get(product_id, for_update=True) is None:
                    raise NotFoundError("Product not found")
                if self.has_reviewed(product_id, user_id):
                    raise ConflictError("You have already reviewed this product")
                self.store.reviews.insert(review)

        reviews_submitted_counter.add(1, {"status": review.status})
        logger.info("Review submitted", extra={
            "review_id": review.id,
            "product_id": product_id,
            "user_id": user_id,
            "rating": rating,
            "status": review.status
        })
        return review

    def list_approved(self, product_id: int) -> List[Review]:
        """Approved reviews for the storefront, newest first."""
        return self._newest_first([
            r for r in self.store.reviews.list_by_product(product_id)
            if r.status == ReviewStatus.APPROVED.value
        ])

    def list_all(self, product_id: Optional[int] = None) -> List[Review]:
        """Reviews in any status, optionally for one product (admin)."""
        if product_id is None:
            reviews = self.store.reviews.list()
        else:
            reviews = self.store.reviews.list_by_product(product_id)
        return self._newest_first(reviews)

    def list_pending(self) -> List[Review]:
        """Moderation queue, oldest first."""
        return self.store.reviews.list_by_status(ReviewStatus.PENDING.value)

    def set_status(self, review_id: int, status: str) -> Review:
        """
        Move a review to any moderation status.

        Raises:
            ValidationError: If the status is unknown
            NotFoundError: If the review does not exist
        """
        if status not in REVIEW_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(REVIEW_STATUSES)}")

        with self.store.transaction():
            review = self._get(review_id, for_update=True)
            old_status = review.status
            review.status = status
            self.store.reviews.update(review)

        reviews_moderated_counter.add(1, {"status": status})
        logger.info("Review status updated", extra={
            "review_id": review_id,
            "from_status": old_status,
            "to_status": status
        })
        return review

    def mark_helpful(self, review_id: int) -> Review:
        with self.store.transaction():
            review = self._get(review_id, for_update=True)
            review.helpful += 1
            self.store.reviews.update(review)
        return review

    def delete_review(self, review_id: int) -> None:
        with self.store.transaction():
            self._get(review_id, for_update=True)
            self.store.reviews.delete(review_id)
        logger.info("Review deleted", extra={"review_id": review_id})

    def average_rating(self, product_id: int) -> float:
        """Mean approved rating rounded to one decimal, 0 when there are none."""
        ratings = [r.rating for r in self.list_approved(product_id)]
        if not ratings:
            return 0.0
        mean = Decimal(sum(ratings)) / Decimal(len(ratings))
        return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    def review_count(self, product_id: int) -> int:
        return len(self.list_approved(product_id))

    def has_reviewed(self, product_id: int, user_id: int) -> bool:
        return any(r.user_id == user_id for r in self.store.reviews.list_by_product(product_id))

    def total_review_count(self) -> int:
        return len(self.store.reviews.list())

    def pending_count(self) -> int:
        return len(self.list_pending())

    def _get(self, review_id: int, for_update: bool = False) -> Review:
        review = self.store.reviews.get(review_id, for_update=for_update)
        if review is None:
            raise NotFoundError("Review not found")
        return review

    @staticmethod
    def _newest_first(reviews: List[Review]) -> List[Review]:
        return sorted(reviews, key=lambda r: (r.created_at, r.id), reverse=True)
