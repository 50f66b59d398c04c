"""
Offer lifecycle service.

Checks each transition against the offer state machine first, then hands
it to the repository as a conditional write. A write that matches nothing
means another caller got there first, which surfaces as StateConflict.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from app.config import settings
from app.features.part_requests.domain.errors import StateConflict
from app.features.part_requests.domain.models import (
    AcceptResult,
    Offer,
    OfferStatus,
    PartRequest,
    RequestStatus,
    RequestVisibility,
)
from app.features.part_requests.domain.state_machine import (
    OFFERABLE_REQUEST_STATES,
    OfferStateMachine,
    RequestStateMachine,
)
from app.features.part_requests.repository.offer_repository import OfferRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class OfferLifecycle:
    def __init__(
        self,
        auto_reject_siblings: bool | None = None,
        unlock_contact_on_accept: bool | None = None,
        offer_ttl: timedelta | None = None,
    ):
        self.auto_reject_siblings = (
            auto_reject_siblings
            if auto_reject_siblings is not None
            else settings.AUTO_REJECT_SIBLINGS_ON_ACCEPT
        )
        self.unlock_contact_on_accept = (
            unlock_contact_on_accept
            if unlock_contact_on_accept is not None
            else settings.UNLOCK_CONTACT_ON_ACCEPT
        )
        self.offer_ttl = offer_ttl or timedelta(days=settings.OFFER_TTL_DAYS)

    async def make(
        self, request: PartRequest, seller_id: str, price: Decimal, message: str | None
    ) -> Offer:
        if request.visibility != RequestVisibility.PUBLISHED:
            raise StateConflict(
                "Request is not open for offers",
                current_state=request.visibility.value,
            )
        if request.status not in OFFERABLE_REQUEST_STATES:
            raise StateConflict(
                f"Request no longer accepts offers (status {request.status.value})",
                current_state=request.status.value,
            )

        offer = await OfferRepository.create(request.id, seller_id, price, message)
        if offer is None:
            logger.warning("Offer insert lost to a concurrent state change", request_id=request.id)
            raise StateConflict("Request no longer accepts offers")
        return offer

    async def accept(self, offer: Offer, request: PartRequest, buyer_id: str) -> AcceptResult:
        """
        pending -> accepted, and the request pending -> offer_received, in one write.

        At most one offer per request is ever accepted; the loser of two
        concurrent accepts gets StateConflict.
        """
        OfferStateMachine.ensure_transition(offer.status, OfferStatus.ACCEPTED)
        RequestStateMachine.ensure_transition(request.status, RequestStatus.OFFER_RECEIVED)

        result = await OfferRepository.accept(
            offer.id,
            request.id,
            buyer_id,
            unlock_contact=self.unlock_contact_on_accept,
            reject_siblings=self.auto_reject_siblings,
        )
        if result is None:
            logger.warning(
                "Offer acceptance conflicted",
                offer_id=offer.id,
                request_id=request.id,
            )
            raise StateConflict(
                "Offer could not be accepted: it or its request changed state",
                current_state=offer.status.value,
            )

        logger.info(
            "Offer accepted",
            offer_id=offer.id,
            request_id=request.id,
            contact_unlocked=result.offer.contact_unlocked,
            rejected_siblings=len(result.rejected_sibling_ids),
        )
        return result

    async def reject(self, offer: Offer) -> Offer:
        OfferStateMachine.ensure_transition(offer.status, OfferStatus.REJECTED)

        rejected = await OfferRepository.reject(offer.id)
        if rejected is None:
            raise StateConflict("Offer is no longer pending", current_state=offer.status.value)

        logger.info("Offer rejected", offer_id=offer.id, request_id=offer.request_id)
        return rejected

    async def expire_stale(self, now: datetime) -> list[Offer]:
        """pending -> expired for offers older than the configured TTL."""
        cutoff = now - self.offer_ttl
        expired = await OfferRepository.expire_stale(cutoff)
        logger.info("Stale offers expired", count=len(expired), cutoff=cutoff.isoformat())
        return expired


part_offer_lifecycle = OfferLifecycle()
