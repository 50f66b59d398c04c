"""
Part request pipeline.

Composes spam checks, moderation, the request and offer lifecycles, the
notification dispatcher and rating eligibility into the operations the API
exposes:

    submit -> moderate -> publish -> offer -> accept -> unlock -> complete -> rate

Every operation validates input and ownership before touching state.
Notifications run after the state change commits and never fail the
operation that triggered them.
"""

import re
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

from app.config import settings
from app.features.part_requests.domain.errors import (
    NotFound,
    RequestValidationError,
    SpamRejection,
)
from app.features.part_requests.domain.models import (
    AcceptResult,
    Actor,
    NotificationRecord,
    Offer,
    PartRequest,
    PartRequestDraft,
    PendingRating,
    RequestDetail,
    RequestVisibility,
    Review,
    SubmissionOutcome,
    SubmissionResult,
    TransitionResult,
    UserType,
)
from app.features.part_requests.domain.state_machine import OfferStateMachine
from app.features.part_requests.pipeline.moderation.adjudicator import (
    ModerationAdjudicator,
    moderation_adjudicator,
)
from app.features.part_requests.pipeline.spam.guard import SpamGuard, spam_guard
from app.features.part_requests.repository.moderation_repository import ModerationRepository
from app.features.part_requests.repository.offer_repository import OfferRepository
from app.features.part_requests.repository.request_repository import RequestRepository
from app.features.part_requests.services.notification_dispatcher import (
    NotificationDispatcher,
    part_request_notification_dispatcher,
)
from app.features.part_requests.services.offer_lifecycle import OfferLifecycle, part_offer_lifecycle
from app.features.part_requests.services.rating_eligibility import (
    RatingEligibilityTracker,
    rating_eligibility_tracker,
)
from app.features.part_requests.services.request_lifecycle import (
    RequestLifecycle,
    part_request_lifecycle,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

PHONE_PATTERN = re.compile(r"^\+?\d{7,15}$")
MIN_CAR_YEAR = 1900
MAX_MESSAGE_LENGTH = 1000


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_phone(phone: str | None) -> str:
    """Strip spaces, dashes, dots and parentheses; keep a leading +."""
    return re.sub(r"[\s\-().]", "", phone or "")


def validate_draft(draft: PartRequestDraft, now: datetime) -> PartRequestDraft:
    """Return a cleaned copy of the draft or raise RequestValidationError."""
    cleaned = {}
    for field in ("car_make", "car_model", "part_name", "location"):
        value = (getattr(draft, field) or "").strip()
        if not value:
            raise RequestValidationError(f"{field} is required", field=field)
        cleaned[field] = value

    phone = normalize_phone(draft.phone)
    if not phone:
        raise RequestValidationError("phone is required", field="phone")
    if not PHONE_PATTERN.match(phone):
        raise RequestValidationError("phone number is not valid", field="phone")

    if isinstance(draft.car_year, bool) or not isinstance(draft.car_year, int):
        raise RequestValidationError("car_year must be a whole number", field="car_year")
    if not MIN_CAR_YEAR <= draft.car_year <= now.year + 1:
        raise RequestValidationError(
            f"car_year must be between {MIN_CAR_YEAR} and {now.year + 1}", field="car_year"
        )

    description = (draft.description or "").strip() or None
    photo_url = (draft.photo_url or "").strip() or None

    return replace(draft, phone=phone, description=description, photo_url=photo_url, **cleaned)


def validate_price(price) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError, TypeError):
        raise RequestValidationError("price must be a number", field="price") from None

    if not value.is_finite() or value <= 0:
        raise RequestValidationError("price must be greater than zero", field="price")
    return value


class PartRequestPipeline:
    def __init__(
        self,
        guard: SpamGuard | None = None,
        adjudicator: ModerationAdjudicator | None = None,
        requests: RequestLifecycle | None = None,
        offers: OfferLifecycle | None = None,
        dispatcher: NotificationDispatcher | None = None,
        ratings: RatingEligibilityTracker | None = None,
        moderate_all: bool | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.guard = guard or spam_guard
        self.adjudicator = adjudicator or moderation_adjudicator
        self.requests = requests or part_request_lifecycle
        self.offers = offers or part_offer_lifecycle
        self.dispatcher = dispatcher or part_request_notification_dispatcher
        self.ratings = ratings or rating_eligibility_tracker
        self.moderate_all = (
            moderate_all if moderate_all is not None else settings.MODERATE_ALL_SUBMISSIONS
        )
        self.clock = clock or _utcnow

    # Lookups and access checks

    async def _load_request(self, request_id: str) -> PartRequest:
        request = await RequestRepository.get(request_id)
        if request is None:
            raise NotFound("Request not found", resource_type="part_request")
        return request

    async def _load_owned_request(self, actor: Actor, request_id: str) -> PartRequest:
        request = await self._load_request(request_id)
        if not actor.is_admin and request.owner_id != actor.user_id:
            # Not revealing that the request exists
            raise NotFound("Request not found", resource_type="part_request")
        return request

    async def _load_offer(self, offer_id: str) -> Offer:
        offer = await OfferRepository.get(offer_id)
        if offer is None:
            raise NotFound("Offer not found", resource_type="offer")
        return offer

    async def _load_owned_offer(self, actor: Actor, offer_id: str) -> tuple[Offer, PartRequest]:
        """Offer plus its request, for actions reserved to the request owner."""
        offer = await self._load_offer(offer_id)
        request = await RequestRepository.get(offer.request_id)
        if request is None or (not actor.is_admin and request.owner_id != actor.user_id):
            raise NotFound("Offer not found", resource_type="offer")
        return offer, request

    # Intake

    async def submit_request(self, actor: Actor, draft: PartRequestDraft) -> SubmissionResult:
        """
        Validate, rate-check, persist and moderate a new part request.

        The spam windows are read and the row is inserted under a per-phone
        lock, so concurrent submissions from one number are counted against
        each other. Moderation runs after that transaction commits; until it
        rules, the request sits in pending_review.

        Raises:
            RequestValidationError: malformed draft
            SpamRejection: duplicate or over a rate limit
        """
        now = self.clock()
        draft = validate_draft(replace(draft, owner_id=actor.user_id), now)

        suspicion = self.guard.check_suspicious(draft)
        needs_review = suspicion.suspicious or self.moderate_all
        initial_visibility = (
            RequestVisibility.PENDING_REVIEW if needs_review else RequestVisibility.PUBLISHED
        )

        async with RequestRepository.submission_transaction(draft.phone) as conn:
            history = await RequestRepository.load_submission_history(
                draft.phone,
                draft.owner_id,
                now - self.guard.limits.lookback,
                connection=conn,
            )
            verdict = self.guard.evaluate(draft, history, now)
            if not verdict.allowed:
                logger.warning(
                    "Submission rejected by spam guard",
                    owner_id=draft.owner_id,
                    phone=draft.phone,
                    reason=verdict.reason.value,
                )
                raise SpamRejection(verdict.message, verdict.reason, verdict.retry_after)

            request = await RequestRepository.create(draft, initial_visibility, connection=conn)

        if not needs_review:
            notifications = await self.dispatcher.notify_new_request(request)
            return SubmissionResult(
                request=request,
                outcome=SubmissionOutcome.PUBLISHED,
                notifications=notifications,
            )

        outcome = await self.adjudicator.adjudicate(request)
        record = await ModerationRepository.record(request.id, outcome)

        if self.adjudicator.should_publish(outcome):
            request = await self.requests.set_visibility(request, RequestVisibility.PUBLISHED)
            notifications = await self.dispatcher.notify_new_request(request)
            return SubmissionResult(
                request=request,
                outcome=SubmissionOutcome.PUBLISHED,
                moderation=record,
                notifications=notifications,
            )

        if self.adjudicator.should_block(outcome):
            request = await self.requests.set_visibility(request, RequestVisibility.BLOCKED)
            logger.warning(
                "Request blocked by moderation",
                request_id=request.id,
                confidence=outcome.confidence,
                reasons=suspicion.reasons,
            )
            return SubmissionResult(
                request=request, outcome=SubmissionOutcome.BLOCKED, moderation=record
            )

        logger.warning(
            "Request held for human review",
            request_id=request.id,
            decision=outcome.decision.value,
            confidence=outcome.confidence,
            degraded=outcome.degraded,
        )
        return SubmissionResult(request=request, outcome=SubmissionOutcome.HELD, moderation=record)

    # Negotiation

    async def make_offer(
        self, actor: Actor, request_id: str, price, message: str | None = None
    ) -> Offer:
        amount = validate_price(price)
        message = (message or "").strip() or None
        if message and len(message) > MAX_MESSAGE_LENGTH:
            raise RequestValidationError("message is too long", field="message")

        request = await self._load_request(request_id)
        if not actor.is_admin:
            if actor.user_type != UserType.SUPPLIER:
                raise NotFound("Request not found", resource_type="part_request")
            if request.visibility != RequestVisibility.PUBLISHED:
                raise NotFound("Request not found", resource_type="part_request")
        if request.owner_id == actor.user_id:
            raise RequestValidationError(
                "You cannot make an offer on your own request", field="request_id"
            )

        offer = await self.offers.make(request, actor.user_id, amount, message)
        await self.dispatcher.notify_new_offer(request, offer)
        return offer

    async def accept_offer(self, actor: Actor, offer_id: str) -> AcceptResult:
        offer, request = await self._load_owned_offer(actor, offer_id)
        result = await self.offers.accept(offer, request, buyer_id=request.owner_id)
        await self.dispatcher.notify_offer_accepted(result.request, result.offer)
        if result.offer.contact_unlocked:
            await self.dispatcher.notify_contact_unlocked(result.request, result.offer)
        return result

    async def reject_offer(self, actor: Actor, offer_id: str) -> Offer:
        offer, request = await self._load_owned_offer(actor, offer_id)
        rejected = await self.offers.reject(offer)
        await self.dispatcher.notify_offer_rejected(request, rejected)
        return rejected

    async def unlock_contact(self, actor: Actor, offer_id: str) -> TransitionResult:
        offer, request = await self._load_owned_offer(actor, offer_id)
        OfferStateMachine.ensure_can_unlock(offer)
        result = await self.requests.unlock_contact(request)
        await self.dispatcher.notify_contact_unlocked(result.request, result.offer)
        return result

    async def complete_transaction(self, actor: Actor, offer_id: str) -> TransitionResult:
        offer, request = await self._load_owned_offer(actor, offer_id)
        OfferStateMachine.ensure_can_complete(offer)
        result = await self.requests.complete(request)
        await self.dispatcher.notify_transaction_completed(result.request, result.offer)
        return result

    async def expire_stale_offers(self, now: datetime | None = None) -> list[Offer]:
        return await self.offers.expire_stale(now or self.clock())

    # Ratings

    async def submit_rating(
        self, actor: Actor, offer_id: str, rating: int, review_text: str | None = None
    ) -> Review:
        offer = await OfferRepository.get(offer_id)
        return await self.ratings.submit_rating(offer, actor.user_id, rating, review_text)

    async def list_pending_ratings(self, actor: Actor) -> list[PendingRating]:
        return await self.ratings.pending_ratings(actor.user_id)

    # Request management

    async def cancel_request(self, actor: Actor, request_id: str) -> PartRequest:
        request = await self._load_owned_request(actor, request_id)
        return await self.requests.cancel(request)

    async def get_request(self, actor: Actor, request_id: str) -> RequestDetail:
        """
        Owners and admins see the request with its moderation record.
        Suppliers see published requests only, without the record.
        """
        request = await self._load_request(request_id)

        if actor.is_admin or request.owner_id == actor.user_id:
            moderation = await ModerationRepository.get_for_request(request.id)
            return RequestDetail(request=request, moderation=moderation)

        if (
            actor.user_type == UserType.SUPPLIER
            and request.visibility == RequestVisibility.PUBLISHED
        ):
            return RequestDetail(request=request)

        raise NotFound("Request not found", resource_type="part_request")

    async def list_offers(self, actor: Actor, request_id: str) -> list[Offer]:
        """All offers for the owner or an admin; a seller sees only their own."""
        request = await self._load_request(request_id)
        offers = await OfferRepository.list_for_request(request.id)

        if actor.is_admin or request.owner_id == actor.user_id:
            return offers

        own = [offer for offer in offers if offer.seller_id == actor.user_id]
        if not own and request.visibility != RequestVisibility.PUBLISHED:
            raise NotFound("Request not found", resource_type="part_request")
        return own

    async def notify_status_update(
        self, actor: Actor, request_id: str, message: str
    ) -> NotificationRecord | None:
        if not actor.is_admin:
            raise NotFound("Request not found", resource_type="part_request")

        text = (message or "").strip()
        if not text:
            raise RequestValidationError("message is required", field="message")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise RequestValidationError("message is too long", field="message")

        request = await self._load_request(request_id)
        logger.info(
            "Sending status update",
            request_id=request.id,
            phone=request.phone,
        )
        return await self.dispatcher.notify_status_update(request, text)


part_request_pipeline = PartRequestPipeline()
