"""
Rating eligibility.

A buyer owes a rating for every offer they bought whose transaction is
completed and that they have not reviewed yet. The list is recomputed on
each call.
"""

from app.features.part_requests.domain.errors import (
    NotFound,
    RequestValidationError,
    StateConflict,
)
from app.features.part_requests.domain.models import Offer, PendingRating, Review
from app.features.part_requests.repository.review_repository import ReviewRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_REVIEW_LENGTH = 2000


class RatingEligibilityTracker:
    async def pending_ratings(self, buyer_id: str) -> list[PendingRating]:
        return await ReviewRepository.list_pending_for_buyer(buyer_id)

    async def submit_rating(
        self,
        offer: Offer | None,
        reviewer_id: str,
        rating: int,
        review_text: str | None = None,
    ) -> Review:
        """
        Record a buyer's rating for a completed offer.

        Raises:
            RequestValidationError: rating outside 1..5 or review too long
            NotFound: offer missing or not bought by this reviewer
            StateConflict: transaction not completed, or already rated
        """
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise RequestValidationError("Rating must be a whole number", field="rating")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise RequestValidationError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}", field="rating"
            )

        text = (review_text or "").strip() or None
        if text and len(text) > MAX_REVIEW_LENGTH:
            raise RequestValidationError("Review text is too long", field="review_text")

        if offer is None or offer.buyer_id != reviewer_id:
            raise NotFound("Offer not found", resource_type="offer")

        if not offer.transaction_completed:
            raise StateConflict(
                "Only completed transactions can be rated",
                current_state=offer.status.value,
            )

        review = await ReviewRepository.create_for_offer(
            offer_id=offer.id,
            reviewer_id=reviewer_id,
            seller_id=offer.seller_id,
            rating=rating,
            review_text=text,
        )
        if review is None:
            logger.warning("Duplicate rating rejected", offer_id=offer.id, reviewer_id=reviewer_id)
            raise StateConflict("This offer has already been rated", current_state="rated")

        return review


rating_eligibility_tracker = RatingEligibilityTracker()
