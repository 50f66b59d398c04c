"""
Domain models for the part request pipeline.

Plain dataclasses shared by repositories, services and the API layer.
Status values are string enums so they compare equal to the raw column
values stored in PostgreSQL.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum


class RequestStatus(str, Enum):
    PENDING = "pending"
    OFFER_RECEIVED = "offer_received"
    CONTACT_UNLOCKED = "contact_unlocked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RequestVisibility(str, Enum):
    """Moderation outcome, tracked apart from the lifecycle status."""

    PUBLISHED = "published"
    PENDING_REVIEW = "pending_review"
    BLOCKED = "blocked"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ModerationDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_HUMAN_REVIEW = "needs_human_review"


class NotificationChannel(str, Enum):
    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class SpamReason(str, Enum):
    DUPLICATE_REQUEST = "duplicate_request"
    HOURLY_RATE_LIMIT = "rate_limit_hourly"
    DAILY_RATE_LIMIT = "rate_limit_daily"


class SubmissionOutcome(str, Enum):
    PUBLISHED = "published"
    HELD = "held"
    BLOCKED = "blocked"


class UserType(str, Enum):
    BUYER = "buyer"
    SUPPLIER = "supplier"
    ADMIN = "admin"


@dataclass(slots=True)
class Actor:
    """Authenticated caller driving a pipeline operation."""

    user_id: str
    user_type: UserType = UserType.BUYER

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN


@dataclass(slots=True)
class PartRequestDraft:
    """Buyer input for a new part request, before it is persisted."""

    owner_id: str
    car_make: str
    car_model: str
    car_year: int
    part_name: str
    phone: str
    location: str
    description: str | None = None
    photo_url: str | None = None


@dataclass(slots=True)
class PartRequest:
    id: str
    owner_id: str
    car_make: str
    car_model: str
    car_year: int
    part_name: str
    description: str | None
    phone: str
    location: str
    photo_url: str | None
    status: RequestStatus
    visibility: RequestVisibility
    created_at: datetime
    updated_at: datetime

    @property
    def vehicle(self) -> str:
        return f"{self.car_make} {self.car_model} ({self.car_year})"


@dataclass(slots=True)
class SubmissionHistoryEntry:
    """A recent request row used by the spam windows."""

    request_id: str
    owner_id: str
    phone: str
    car_make: str
    car_model: str
    part_name: str
    status: RequestStatus
    created_at: datetime


@dataclass(slots=True)
class ModerationOutcome:
    """Adjudicator verdict before it is written as a record."""

    decision: ModerationDecision
    confidence: float
    rationale: str
    degraded: bool = False


@dataclass(slots=True)
class ModerationRecord:
    id: str
    request_id: str
    decision: ModerationDecision
    confidence: float
    rationale: str
    degraded: bool
    created_at: datetime


@dataclass(slots=True)
class Offer:
    id: str
    request_id: str
    seller_id: str
    buyer_id: str | None
    price: Decimal
    message: str | None
    status: OfferStatus
    contact_unlocked: bool
    transaction_completed: bool
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class NotificationRecord:
    id: str
    user_id: str
    channel: NotificationChannel
    destination: str
    message: str
    event_key: str | None
    sent: bool
    sent_at: datetime | None
    created_at: datetime


@dataclass(slots=True)
class Profile:
    """Subset of the externally managed user profile the pipeline reads."""

    id: str
    user_type: UserType
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    location: str | None = None
    is_blocked: bool = False

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or "Seller"


@dataclass(slots=True)
class Review:
    id: str
    offer_id: str
    reviewer_id: str
    seller_id: str
    rating: int
    review_text: str | None
    transaction_verified: bool
    created_at: datetime


@dataclass(slots=True)
class PendingRating:
    offer_id: str
    seller_id: str
    seller_name: str
    completed_at: datetime | None


@dataclass(slots=True)
class SpamVerdict:
    allowed: bool
    reason: SpamReason | None = None
    retry_after: timedelta | None = None
    message: str | None = None


@dataclass(slots=True)
class SuspicionReport:
    suspicious: bool
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FanOutResult:
    """Per-recipient tally of one notification event."""

    created: list[NotificationRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SubmissionResult:
    request: PartRequest
    outcome: SubmissionOutcome
    moderation: ModerationRecord | None = None
    notifications: FanOutResult | None = None


@dataclass(slots=True)
class AcceptResult:
    offer: Offer
    request: PartRequest
    rejected_sibling_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TransitionResult:
    """Request and offer rows after a joint transition."""

    request: PartRequest
    offer: Offer


@dataclass(slots=True)
class RequestDetail:
    """A request plus its moderation record, which only owners and admins see."""

    request: PartRequest
    moderation: ModerationRecord | None = None
