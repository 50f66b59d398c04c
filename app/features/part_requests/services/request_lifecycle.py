"""
Request lifecycle service.

Owns the status of a part request after intake. Forward moves past
offer_received always go through the accepted offer, so unlock and
completion update the request and its offer in one transaction.
"""

from app.features.part_requests.domain.errors import StateConflict
from app.features.part_requests.domain.models import (
    Offer,
    PartRequest,
    RequestStatus,
    RequestVisibility,
    TransitionResult,
)
from app.features.part_requests.domain.state_machine import OfferStateMachine, RequestStateMachine
from app.features.part_requests.repository.offer_repository import OfferRepository
from app.features.part_requests.repository.request_repository import RequestRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestLifecycle:
    async def set_visibility(
        self, request: PartRequest, target: RequestVisibility
    ) -> PartRequest:
        """Move a request out of pending_review once moderation has ruled."""
        if request.visibility == target:
            return request

        updated = await RequestRepository.update_visibility(request.id, request.visibility, target)
        if updated is None:
            raise StateConflict(
                "Request visibility changed concurrently",
                current_state=request.visibility.value,
            )

        logger.info(
            "Request visibility updated",
            request_id=request.id,
            previous=request.visibility.value,
            visibility=target.value,
        )
        return updated

    async def _accepted_offer(self, request: PartRequest) -> Offer:
        offer = await OfferRepository.find_accepted(request.id)
        if offer is None:
            raise StateConflict(
                "Request has no accepted offer",
                current_state=request.status.value,
            )
        return offer

    async def unlock_contact(self, request: PartRequest) -> TransitionResult:
        RequestStateMachine.ensure_transition(request.status, RequestStatus.CONTACT_UNLOCKED)
        offer = await self._accepted_offer(request)
        OfferStateMachine.ensure_can_unlock(offer)

        result = await OfferRepository.unlock_contact(request.id)
        if result is None:
            raise StateConflict("Contact unlock conflicted", current_state=request.status.value)

        logger.info("Contact unlocked", request_id=request.id, offer_id=result.offer.id)
        return result

    async def complete(self, request: PartRequest) -> TransitionResult:
        RequestStateMachine.ensure_transition(request.status, RequestStatus.COMPLETED)
        offer = await self._accepted_offer(request)
        OfferStateMachine.ensure_can_complete(offer)

        result = await OfferRepository.complete_transaction(request.id)
        if result is None:
            raise StateConflict("Completion conflicted", current_state=request.status.value)

        logger.info("Transaction completed", request_id=request.id, offer_id=result.offer.id)
        return result

    async def cancel(self, request: PartRequest) -> PartRequest:
        RequestStateMachine.ensure_transition(request.status, RequestStatus.CANCELLED)

        cancelled = await RequestRepository.transition_status(
            request.id,
            RequestStateMachine.predecessors(RequestStatus.CANCELLED),
            RequestStatus.CANCELLED,
        )
        if cancelled is None:
            raise StateConflict("Request changed state before cancellation")

        logger.info("Request cancelled", request_id=request.id, previous=request.status.value)
        return cancelled


part_request_lifecycle = RequestLifecycle()
