import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import psycopg
import pytest

from app.auth.verify import auth_dependency
from app.db.helpers import DatabaseError
from app.features.part_requests.domain.models import (
    AcceptResult,
    ModerationDecision,
    ModerationRecord,
    NotificationRecord,
    Offer,
    OfferStatus,
    PartRequest,
    PendingRating,
    Profile,
    RequestStatus,
    RequestVisibility,
    Review,
    SubmissionHistoryEntry,
    TransitionResult,
    UserType,
)
from app.features.part_requests.pipeline.moderation.adjudicator import ModerationAdjudicator
from app.features.part_requests.pipeline.moderation.classifier import ParsedVerdict
from app.features.part_requests.pipeline.spam.guard import SpamGuard, SpamLimits
from app.features.part_requests.repository.moderation_repository import ModerationRepository
from app.features.part_requests.repository.notification_repository import NotificationRepository
from app.features.part_requests.repository.offer_repository import OfferRepository
from app.features.part_requests.repository.profile_repository import ProfileRepository
from app.features.part_requests.repository.request_repository import RequestRepository
from app.features.part_requests.repository.review_repository import ReviewRepository
from app.features.part_requests.services.notification_dispatcher import NotificationDispatcher
from app.features.part_requests.services.offer_lifecycle import OfferLifecycle
from app.features.part_requests.services.orchestrator import PartRequestPipeline
from app.features.part_requests.services.rating_eligibility import RatingEligibilityTracker
from app.features.part_requests.services.request_lifecycle import RequestLifecycle

START_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


@pytest.fixture
def malformed_id_error():
    """What fetch_one raises when Postgres rejects a non-uuid id."""
    error = DatabaseError("Query failed: invalid input syntax for type uuid", operation="fetch_one")
    error.__cause__ = psycopg.errors.InvalidTextRepresentation(
        'invalid input syntax for type uuid: "abc"'
    )
    return error


class FakeStore:
    """
    In-memory stand-in for the repositories.

    Conditional writes run under one asyncio.Lock with a yield inside, so
    concurrent callers interleave the way they would against a database
    and only the compare-and-swap decides who wins.
    """

    def __init__(self):
        self.now = START_TIME
        self.lock = asyncio.Lock()
        self._phone_locks: dict[str, asyncio.Lock] = {}
        self._ids = itertools.count(1)

        self.requests: dict[str, PartRequest] = {}
        self.offers: dict[str, Offer] = {}
        self.moderation: dict[str, ModerationRecord] = {}
        self.notifications: list[NotificationRecord] = []
        self.profiles: dict[str, Profile] = {}
        self.reviews: list[Review] = []
        self.seller_ratings: dict[str, tuple[Decimal, int]] = {}

        self.failing_notification_users: set[str] = set()

    # Helpers

    def clock(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_profile(
        self,
        user_id: str,
        user_type: UserType = UserType.BUYER,
        phone: str | None = "+233201110000",
        location: str | None = "Accra",
        first_name: str | None = None,
        last_name: str | None = None,
        is_blocked: bool = False,
    ) -> Profile:
        profile = Profile(
            id=user_id,
            user_type=user_type,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            location=location,
            is_blocked=is_blocked,
        )
        self.profiles[user_id] = profile
        return profile

    def seed_request(
        self,
        owner_id: str = "buyer-1",
        status: RequestStatus = RequestStatus.PENDING,
        visibility: RequestVisibility = RequestVisibility.PUBLISHED,
        **overrides,
    ) -> PartRequest:
        fields = {
            "car_make": "Toyota",
            "car_model": "Corolla",
            "car_year": 2015,
            "part_name": "Brake pads",
            "description": "Front brake pads, original or OEM equivalent",
            "phone": "+233201234567",
            "location": "Accra",
            "photo_url": None,
        }
        fields.update(overrides)
        created_at = fields.pop("created_at", self.now)
        request = PartRequest(
            id=self._next_id("req"),
            owner_id=owner_id,
            status=status,
            visibility=visibility,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        self.requests[request.id] = request
        return request

    def seed_offer(
        self,
        request_id: str,
        seller_id: str = "seller-1",
        price: str = "150.00",
        status: OfferStatus = OfferStatus.PENDING,
        created_at: datetime | None = None,
        **flags,
    ) -> Offer:
        offer = Offer(
            id=self._next_id("offer"),
            request_id=request_id,
            seller_id=seller_id,
            buyer_id=flags.get("buyer_id"),
            price=Decimal(price),
            message=None,
            status=status,
            contact_unlocked=flags.get("contact_unlocked", False),
            transaction_completed=flags.get("transaction_completed", False),
            completed_at=flags.get("completed_at"),
            created_at=created_at or self.now,
            updated_at=created_at or self.now,
        )
        self.offers[offer.id] = offer
        return offer

    def _touch_request(self, request: PartRequest, **changes) -> PartRequest:
        for key, value in changes.items():
            setattr(request, key, value)
        request.updated_at = self.now
        return request

    def _touch_offer(self, offer: Offer, **changes) -> Offer:
        for key, value in changes.items():
            setattr(offer, key, value)
        offer.updated_at = self.now
        return offer

    # RequestRepository

    async def get_request(self, request_id, *, connection=None):
        return self.requests.get(request_id)

    @asynccontextmanager
    async def submission_transaction(self, phone):
        lock = self._phone_locks.setdefault(phone, asyncio.Lock())
        async with lock:
            yield None

    async def load_submission_history(self, phone, owner_id, since, *, connection=None):
        return [
            SubmissionHistoryEntry(
                request_id=r.id,
                owner_id=r.owner_id,
                phone=r.phone,
                car_make=r.car_make,
                car_model=r.car_model,
                part_name=r.part_name,
                status=r.status,
                created_at=r.created_at,
            )
            for r in self.requests.values()
            if (r.phone == phone or r.owner_id == owner_id) and r.created_at >= since
        ]

    async def create_request(self, draft, visibility, *, connection=None):
        await asyncio.sleep(0)
        request = PartRequest(
            id=self._next_id("req"),
            owner_id=draft.owner_id,
            car_make=draft.car_make,
            car_model=draft.car_model,
            car_year=draft.car_year,
            part_name=draft.part_name,
            description=draft.description,
            phone=draft.phone,
            location=draft.location,
            photo_url=draft.photo_url,
            status=RequestStatus.PENDING,
            visibility=visibility,
            created_at=self.now,
            updated_at=self.now,
        )
        self.requests[request.id] = request
        return request

    async def update_visibility(self, request_id, expected, target):
        async with self.lock:
            request = self.requests.get(request_id)
            if request is None or request.visibility != expected:
                return None
            return self._touch_request(request, visibility=target)

    async def transition_status(self, request_id, expected, target, *, connection=None):
        expected = set(expected)
        async with self.lock:
            await asyncio.sleep(0)
            request = self.requests.get(request_id)
            if request is None or request.status not in expected:
                return None
            return self._touch_request(request, status=target)

    # OfferRepository

    async def get_offer(self, offer_id):
        return self.offers.get(offer_id)

    async def list_offers(self, request_id):
        return sorted(
            (o for o in self.offers.values() if o.request_id == request_id),
            key=lambda o: o.created_at,
        )

    async def find_accepted(self, request_id):
        return next(
            (
                o
                for o in self.offers.values()
                if o.request_id == request_id and o.status == OfferStatus.ACCEPTED
            ),
            None,
        )

    async def create_offer(self, request_id, seller_id, price, message):
        async with self.lock:
            request = self.requests.get(request_id)
            if (
                request is None
                or request.visibility != RequestVisibility.PUBLISHED
                or request.status not in (RequestStatus.PENDING, RequestStatus.OFFER_RECEIVED)
            ):
                return None
            offer = self.seed_offer(request_id, seller_id=seller_id, price=str(price))
            offer.message = message
            return offer

    async def accept_offer(self, offer_id, request_id, buyer_id, *, unlock_contact, reject_siblings):
        async with self.lock:
            await asyncio.sleep(0)
            request = self.requests.get(request_id)
            offer = self.offers.get(offer_id)
            if request is None or request.status != RequestStatus.PENDING:
                return None
            if offer is None or offer.request_id != request_id or offer.status != OfferStatus.PENDING:
                return None
            if any(
                o.request_id == request_id and o.status == OfferStatus.ACCEPTED
                for o in self.offers.values()
            ):
                return None

            self._touch_offer(
                offer,
                status=OfferStatus.ACCEPTED,
                buyer_id=buyer_id,
                contact_unlocked=offer.contact_unlocked or unlock_contact,
            )
            self._touch_request(request, status=RequestStatus.OFFER_RECEIVED)

            rejected = []
            if reject_siblings:
                for sibling in self.offers.values():
                    if (
                        sibling.request_id == request_id
                        and sibling.id != offer_id
                        and sibling.status == OfferStatus.PENDING
                    ):
                        self._touch_offer(sibling, status=OfferStatus.REJECTED)
                        rejected.append(sibling.id)

            return AcceptResult(offer=offer, request=request, rejected_sibling_ids=rejected)

    async def unlock_contact(self, request_id):
        async with self.lock:
            await asyncio.sleep(0)
            request = self.requests.get(request_id)
            if request is None or request.status != RequestStatus.OFFER_RECEIVED:
                return None
            offer = await self.find_accepted(request_id)
            if offer is None:
                return None
            self._touch_offer(offer, contact_unlocked=True)
            self._touch_request(request, status=RequestStatus.CONTACT_UNLOCKED)
            return TransitionResult(request=request, offer=offer)

    async def complete_transaction(self, request_id):
        async with self.lock:
            await asyncio.sleep(0)
            request = self.requests.get(request_id)
            if request is None or request.status != RequestStatus.CONTACT_UNLOCKED:
                return None
            offer = await self.find_accepted(request_id)
            if offer is None or not offer.contact_unlocked or offer.transaction_completed:
                return None
            self._touch_offer(offer, transaction_completed=True, completed_at=self.now)
            self._touch_request(request, status=RequestStatus.COMPLETED)
            return TransitionResult(request=request, offer=offer)

    async def reject_offer(self, offer_id):
        async with self.lock:
            offer = self.offers.get(offer_id)
            if offer is None or offer.status != OfferStatus.PENDING:
                return None
            return self._touch_offer(offer, status=OfferStatus.REJECTED)

    async def expire_stale(self, cutoff):
        async with self.lock:
            expired = []
            for offer in self.offers.values():
                if offer.status == OfferStatus.PENDING and offer.created_at < cutoff:
                    expired.append(self._touch_offer(offer, status=OfferStatus.EXPIRED))
            return expired

    # ModerationRepository

    async def record_moderation(self, request_id, outcome):
        existing = self.moderation.get(request_id)
        if existing:
            return existing
        record = ModerationRecord(
            id=self._next_id("mod"),
            request_id=request_id,
            decision=outcome.decision,
            confidence=outcome.confidence,
            rationale=outcome.rationale,
            degraded=outcome.degraded,
            created_at=self.now,
        )
        self.moderation[request_id] = record
        return record

    async def get_moderation(self, request_id):
        return self.moderation.get(request_id)

    # NotificationRepository

    async def create_notification(self, user_id, channel, destination, message, event_key=None):
        if user_id in self.failing_notification_users:
            raise DatabaseError("insert failed", operation="fetch_one")

        if event_key is not None:
            for existing in self.notifications:
                if (
                    existing.event_key == event_key
                    and existing.user_id == user_id
                    and existing.channel == channel
                ):
                    return existing

        record = NotificationRecord(
            id=self._next_id("notif"),
            user_id=user_id,
            channel=channel,
            destination=destination,
            message=message,
            event_key=event_key,
            sent=False,
            sent_at=None,
            created_at=self.now,
        )
        self.notifications.append(record)
        return record

    def notifications_for(self, user_id: str) -> list[NotificationRecord]:
        return [n for n in self.notifications if n.user_id == user_id]

    # ProfileRepository

    async def get_profile(self, user_id):
        return self.profiles.get(user_id)

    async def find_suppliers_by_location(self, location):
        needle = location.strip().lower()
        return [
            p
            for p in self.profiles.values()
            if p.user_type == UserType.SUPPLIER
            and not p.is_blocked
            and needle in (p.location or "").lower()
        ]

    # ReviewRepository

    async def get_review(self, offer_id, reviewer_id):
        return next(
            (r for r in self.reviews if r.offer_id == offer_id and r.reviewer_id == reviewer_id),
            None,
        )

    async def create_review(self, offer_id, reviewer_id, seller_id, rating, review_text):
        async with self.lock:
            await asyncio.sleep(0)
            if await self.get_review(offer_id, reviewer_id):
                return None
            review = Review(
                id=self._next_id("review"),
                offer_id=offer_id,
                reviewer_id=reviewer_id,
                seller_id=seller_id,
                rating=rating,
                review_text=review_text,
                transaction_verified=True,
                created_at=self.now,
            )
            self.reviews.append(review)

            ratings = [r.rating for r in self.reviews if r.seller_id == seller_id]
            average = (Decimal(sum(ratings)) / len(ratings)).quantize(Decimal("0.01"))
            self.seller_ratings[seller_id] = (average, len(ratings))
            return review

    async def list_pending_for_buyer(self, buyer_id):
        pending = []
        for offer in self.offers.values():
            if offer.buyer_id != buyer_id or not offer.transaction_completed:
                continue
            if await self.get_review(offer.id, buyer_id):
                continue
            seller = self.profiles.get(offer.seller_id)
            name = seller.display_name if seller else "Seller"
            pending.append(
                PendingRating(
                    offer_id=offer.id,
                    seller_id=offer.seller_id,
                    seller_name=name,
                    completed_at=offer.completed_at,
                )
            )
        return sorted(pending, key=lambda p: p.completed_at, reverse=True)


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()

    patches = {
        RequestRepository: {
            "get": fake.get_request,
            "submission_transaction": fake.submission_transaction,
            "load_submission_history": fake.load_submission_history,
            "create": fake.create_request,
            "update_visibility": fake.update_visibility,
            "transition_status": fake.transition_status,
        },
        OfferRepository: {
            "get": fake.get_offer,
            "list_for_request": fake.list_offers,
            "find_accepted": fake.find_accepted,
            "create": fake.create_offer,
            "accept": fake.accept_offer,
            "unlock_contact": fake.unlock_contact,
            "complete_transaction": fake.complete_transaction,
            "reject": fake.reject_offer,
            "expire_stale": fake.expire_stale,
        },
        ModerationRepository: {
            "record": fake.record_moderation,
            "get_for_request": fake.get_moderation,
        },
        NotificationRepository: {"create": fake.create_notification},
        ProfileRepository: {
            "get": fake.get_profile,
            "find_suppliers_by_location": fake.find_suppliers_by_location,
        },
        ReviewRepository: {
            "create_for_offer": fake.create_review,
            "list_pending_for_buyer": fake.list_pending_for_buyer,
        },
    }
    for repository, methods in patches.items():
        for name, replacement in methods.items():
            monkeypatch.setattr(repository, name, replacement)

    return fake


class StubClassifier:
    """Classifier double: returns a fixed verdict or raises a fixed error."""

    def __init__(self, verdict=None, error: Exception | None = None):
        self.verdict = verdict
        self.error = error
        self.calls = []

    async def classify(self, request):
        self.calls.append(request)
        if self.error:
            raise self.error
        return self.verdict


@pytest.fixture
def make_classifier():
    return StubClassifier


@pytest.fixture
def classifier():
    return StubClassifier(
        ParsedVerdict(
            decision=ModerationDecision.APPROVED,
            confidence=0.92,
            rationale="Legitimate request",
        )
    )


@pytest.fixture
def build_pipeline(store, classifier):
    """Factory for a pipeline wired to the fake store and a stub classifier."""

    def _build(
        classifier_override=None,
        moderate_all: bool = False,
        auto_reject_siblings: bool = False,
        unlock_contact_on_accept: bool = True,
    ) -> PartRequestPipeline:
        return PartRequestPipeline(
            guard=SpamGuard(
                limits=SpamLimits(
                    duplicate_window=timedelta(hours=24),
                    hourly_phone_limit=3,
                    daily_user_limit=10,
                ),
                spam_keywords=["test", "spam", "fake", "bot"],
                expensive_part_keywords=["engine", "transmission", "ecu", "airbag"],
            ),
            adjudicator=ModerationAdjudicator(
                classifier=classifier_override or classifier,
                confidence_threshold=0.7,
            ),
            requests=RequestLifecycle(),
            offers=OfferLifecycle(
                auto_reject_siblings=auto_reject_siblings,
                unlock_contact_on_accept=unlock_contact_on_accept,
                offer_ttl=timedelta(days=14),
            ),
            dispatcher=NotificationDispatcher(currency_code="GHS"),
            ratings=RatingEligibilityTracker(),
            moderate_all=moderate_all,
            clock=store.clock,
        )

    return _build


@pytest.fixture
def pipeline(build_pipeline):
    return build_pipeline()
