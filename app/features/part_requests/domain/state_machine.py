"""
Transition tables for part requests and offers.

Request lifecycle:
    pending -> offer_received -> contact_unlocked -> completed
    any non-terminal state -> cancelled

Offer lifecycle:
    pending -> accepted | rejected | expired

Offer flags progress only from accepted:
    contact_unlocked requires status=accepted
    transaction_completed requires contact_unlocked

Pure computation. Persistence applies the same rules again as conditional
updates, so a check here that passes can still lose a race there.
"""

from app.features.part_requests.domain.errors import StateConflict
from app.features.part_requests.domain.models import (
    Offer,
    OfferStatus,
    RequestStatus,
)

_REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.OFFER_RECEIVED, RequestStatus.CANCELLED},
    RequestStatus.OFFER_RECEIVED: {RequestStatus.CONTACT_UNLOCKED, RequestStatus.CANCELLED},
    RequestStatus.CONTACT_UNLOCKED: {RequestStatus.COMPLETED, RequestStatus.CANCELLED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.CANCELLED: set(),
}

_OFFER_TRANSITIONS: dict[OfferStatus, set[OfferStatus]] = {
    OfferStatus.PENDING: {OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.EXPIRED},
    OfferStatus.ACCEPTED: set(),
    OfferStatus.REJECTED: set(),
    OfferStatus.EXPIRED: set(),
}

# Request states in which sellers may still respond
OFFERABLE_REQUEST_STATES = frozenset({RequestStatus.PENDING, RequestStatus.OFFER_RECEIVED})


class RequestStateMachine:
    @staticmethod
    def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
        return target in _REQUEST_TRANSITIONS.get(current, set())

    @staticmethod
    def ensure_transition(current: RequestStatus, target: RequestStatus) -> None:
        """Raise StateConflict unless current -> target is a forward edge."""
        if not RequestStateMachine.can_transition(current, target):
            allowed = ", ".join(sorted(s.value for s in _REQUEST_TRANSITIONS.get(current, set())))
            raise StateConflict(
                f"Invalid request transition: {current.value} -> {target.value}. "
                f"Allowed from {current.value}: [{allowed}]",
                current_state=current.value,
            )

    @staticmethod
    def predecessors(target: RequestStatus) -> set[RequestStatus]:
        """States from which target is reachable in one step."""
        return {state for state, targets in _REQUEST_TRANSITIONS.items() if target in targets}

    @staticmethod
    def is_terminal(status: RequestStatus) -> bool:
        return status in (RequestStatus.COMPLETED, RequestStatus.CANCELLED)


class OfferStateMachine:
    @staticmethod
    def can_transition(current: OfferStatus, target: OfferStatus) -> bool:
        return target in _OFFER_TRANSITIONS.get(current, set())

    @staticmethod
    def ensure_transition(current: OfferStatus, target: OfferStatus) -> None:
        if not OfferStateMachine.can_transition(current, target):
            raise StateConflict(
                f"Invalid offer transition: {current.value} -> {target.value}",
                current_state=current.value,
            )

    @staticmethod
    def ensure_can_unlock(offer: Offer) -> None:
        if offer.status != OfferStatus.ACCEPTED:
            raise StateConflict(
                f"Contact can only be unlocked on an accepted offer (offer is {offer.status.value})",
                current_state=offer.status.value,
            )

    @staticmethod
    def ensure_can_complete(offer: Offer) -> None:
        if offer.status != OfferStatus.ACCEPTED or not offer.contact_unlocked:
            raise StateConflict(
                "Transaction can only complete on an accepted offer with unlocked contact",
                current_state=offer.status.value,
            )
        if offer.transaction_completed:
            raise StateConflict("Transaction already completed", current_state="completed")

    @staticmethod
    def is_terminal(status: OfferStatus) -> bool:
        return not _OFFER_TRANSITIONS.get(status)
