"""
Part request API models.
Request bodies for input validation and response bodies for output formatting.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.features.part_requests.domain.models import (
    FanOutResult,
    ModerationRecord,
    NotificationRecord,
    Offer,
    PartRequest,
    PendingRating,
    Review,
)


# Requests


class SubmitPartRequestBody(BaseModel):
    """Body for submitting a new part request."""

    car_make: str = Field(..., max_length=100, description="Vehicle make, e.g. Toyota")
    car_model: str = Field(..., max_length=100, description="Vehicle model, e.g. Corolla")
    car_year: int = Field(..., description="Vehicle model year")
    part_needed: str = Field(..., max_length=200, description="Name of the part")
    phone: str = Field(..., max_length=32, description="Contact phone number")
    location: str = Field(..., max_length=200, description="City or area")
    description: str | None = Field(default=None, max_length=2000, description="Extra details")
    photo_url: str | None = Field(default=None, max_length=1000, description="Uploaded photo URL")


class MakeOfferBody(BaseModel):
    """Body for a seller's offer on a request."""

    price: Decimal = Field(..., description="Offered price")
    message: str | None = Field(default=None, max_length=1000, description="Note to the buyer")


class SubmitRatingBody(BaseModel):
    """Body for rating a seller after a completed transaction."""

    rating: int = Field(..., description="Rating from 1 to 5")
    review_text: str | None = Field(default=None, max_length=2000, description="Optional review")


class StatusUpdateBody(BaseModel):
    """Body for an administrator's custom status message."""

    message: str = Field(..., max_length=1000, description="Message sent to the request owner")


# Responses


class ModerationResponse(BaseModel):
    decision: str = Field(..., description="approved, rejected or needs_human_review")
    confidence: float = Field(..., description="Classifier confidence in [0, 1]")
    rationale: str = Field(..., description="Short explanation")
    degraded: bool = Field(default=False, description="True when the classifier was unavailable")
    created_at: datetime = Field(..., description="When the record was written")

    @classmethod
    def from_record(cls, record: ModerationRecord) -> "ModerationResponse":
        return cls(
            decision=record.decision.value,
            confidence=record.confidence,
            rationale=record.rationale,
            degraded=record.degraded,
            created_at=record.created_at,
        )


class PartRequestResponse(BaseModel):
    id: str = Field(..., description="Request ID")
    owner_id: str = Field(..., description="Buyer ID")
    car_make: str
    car_model: str
    car_year: int
    part_needed: str
    description: str | None = None
    location: str
    photo_url: str | None = None
    status: str = Field(..., description="Lifecycle status")
    visibility: str = Field(..., description="published, pending_review or blocked")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, request: PartRequest) -> "PartRequestResponse":
        return cls(
            id=request.id,
            owner_id=request.owner_id,
            car_make=request.car_make,
            car_model=request.car_model,
            car_year=request.car_year,
            part_needed=request.part_name,
            description=request.description,
            location=request.location,
            photo_url=request.photo_url,
            status=request.status.value,
            visibility=request.visibility.value,
            created_at=request.created_at,
            updated_at=request.updated_at,
        )


class NotificationSummary(BaseModel):
    created: int = Field(..., description="Records created or already present")
    skipped: int = Field(..., description="Recipients without a destination")
    failed: int = Field(..., description="Records that could not be written")

    @classmethod
    def from_result(cls, result: FanOutResult | None) -> "NotificationSummary":
        if result is None:
            return cls(created=0, skipped=0, failed=0)
        return cls(
            created=len(result.created),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )


class SubmissionResponse(BaseModel):
    """Response for a submitted request."""

    outcome: str = Field(..., description="published, held or blocked")
    request: PartRequestResponse
    moderation: ModerationResponse | None = None
    notifications: NotificationSummary


class RequestDetailResponse(BaseModel):
    request: PartRequestResponse
    moderation: ModerationResponse | None = None


class OfferResponse(BaseModel):
    id: str = Field(..., description="Offer ID")
    request_id: str
    seller_id: str
    buyer_id: str | None = None
    price: Decimal
    message: str | None = None
    status: str = Field(..., description="pending, accepted, rejected or expired")
    contact_unlocked: bool
    transaction_completed: bool
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, offer: Offer) -> "OfferResponse":
        return cls(
            id=offer.id,
            request_id=offer.request_id,
            seller_id=offer.seller_id,
            buyer_id=offer.buyer_id,
            price=offer.price,
            message=offer.message,
            status=offer.status.value,
            contact_unlocked=offer.contact_unlocked,
            transaction_completed=offer.transaction_completed,
            completed_at=offer.completed_at,
            created_at=offer.created_at,
            updated_at=offer.updated_at,
        )


class OffersListResponse(BaseModel):
    offers: list[OfferResponse]
    total_count: int


class AcceptOfferResponse(BaseModel):
    offer: OfferResponse
    request: PartRequestResponse
    rejected_sibling_ids: list[str] = Field(default_factory=list)


class TransitionResponse(BaseModel):
    offer: OfferResponse
    request: PartRequestResponse


class ReviewResponse(BaseModel):
    id: str
    offer_id: str
    seller_id: str
    rating: int
    review_text: str | None = None
    transaction_verified: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, review: Review) -> "ReviewResponse":
        return cls(
            id=review.id,
            offer_id=review.offer_id,
            seller_id=review.seller_id,
            rating=review.rating,
            review_text=review.review_text,
            transaction_verified=review.transaction_verified,
            created_at=review.created_at,
        )


class PendingRatingResponse(BaseModel):
    offer_id: str
    seller_id: str
    seller_name: str
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, pending: PendingRating) -> "PendingRatingResponse":
        return cls(
            offer_id=pending.offer_id,
            seller_id=pending.seller_id,
            seller_name=pending.seller_name,
            completed_at=pending.completed_at,
        )


class PendingRatingsResponse(BaseModel):
    pending: list[PendingRatingResponse]
    total_count: int


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    channel: str
    message: str
    sent: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, record: NotificationRecord) -> "NotificationResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            channel=record.channel.value,
            message=record.message,
            sent=record.sent,
            created_at=record.created_at,
        )


class StatusUpdateResponse(BaseModel):
    queued: bool
    notification: NotificationResponse | None = None
