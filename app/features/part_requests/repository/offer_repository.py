"""
Persistence for offers, including the joint offer/request transitions.

accept, unlock and complete each run in one transaction that first locks
the parent part_requests row, so concurrent transitions on the same request
queue up behind each other. A conditional update that matches no row rolls
the whole transaction back and the method returns None.
"""

from datetime import datetime
from decimal import Decimal

import psycopg

from app.db.helpers import (
    DatabaseError,
    fetch_all,
    fetch_one,
    fetch_val,
    is_invalid_input,
    with_db_retry,
)
from app.db.pool import get_db_transaction
from app.features.part_requests.domain.models import (
    AcceptResult,
    Offer,
    OfferStatus,
    RequestStatus,
    RequestVisibility,
    TransitionResult,
)
from app.features.part_requests.domain.state_machine import OFFERABLE_REQUEST_STATES
from app.features.part_requests.repository.request_repository import RequestRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class OfferRepository:
    SELECT_COLUMNS = """
        id, request_id, supplier_id, buyer_id, price, message, status,
        contact_unlocked, transaction_completed, completed_at, created_at, updated_at
    """

    @classmethod
    def _row_to_offer(cls, row: dict | None) -> Offer | None:
        if not row:
            return None

        return Offer(
            id=str(row["id"]),
            request_id=str(row["request_id"]),
            seller_id=str(row["supplier_id"]),
            buyer_id=str(row["buyer_id"]) if row.get("buyer_id") else None,
            price=Decimal(row["price"]),
            message=row.get("message"),
            status=OfferStatus(row["status"]),
            contact_unlocked=bool(row.get("contact_unlocked")),
            transaction_completed=bool(row.get("transaction_completed")),
            completed_at=row.get("completed_at"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @classmethod
    async def get(cls, offer_id: str) -> Offer | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM offers WHERE id = %s"
        try:
            row = await fetch_one(query, (offer_id,))
        except DatabaseError as e:
            if is_invalid_input(e):
                return None
            raise
        return cls._row_to_offer(row)

    @classmethod
    async def list_for_request(cls, request_id: str) -> list[Offer]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM offers
            WHERE request_id = %s
            ORDER BY created_at ASC
        """
        rows = await fetch_all(query, (request_id,))
        return [cls._row_to_offer(row) for row in rows]

    @classmethod
    async def find_accepted(cls, request_id: str) -> Offer | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM offers
            WHERE request_id = %s AND status = %s
        """
        row = await fetch_one(query, (request_id, OfferStatus.ACCEPTED.value))
        return cls._row_to_offer(row)

    @classmethod
    async def create(
        cls, request_id: str, seller_id: str, price: Decimal, message: str | None
    ) -> Offer | None:
        """
        Insert a pending offer if the request is still published and open.

        Returns None when the request is not in an offerable state.
        """
        query = f"""
            INSERT INTO offers (request_id, supplier_id, price, message, status)
            SELECT r.id, %s, %s, %s, %s
            FROM part_requests r
            WHERE r.id = %s AND r.visibility = %s AND r.status = ANY(%s)
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                seller_id,
                price,
                message,
                OfferStatus.PENDING.value,
                request_id,
                RequestVisibility.PUBLISHED.value,
                [status.value for status in OFFERABLE_REQUEST_STATES],
            ),
        )
        offer = cls._row_to_offer(row)
        if offer:
            logger.info(
                "Offer created", offer_id=offer.id, request_id=request_id, seller_id=seller_id
            )
        return offer

    @classmethod
    @with_db_retry(max_retries=2, base_delay=0.05)
    async def accept(
        cls,
        offer_id: str,
        request_id: str,
        buyer_id: str,
        *,
        unlock_contact: bool,
        reject_siblings: bool,
    ) -> AcceptResult | None:
        """
        pending -> accepted for one offer, pending -> offer_received for its request.

        The request row lock plus the accepted-sibling check keep at most one
        accepted offer per request; the partial unique index on
        offers(request_id) WHERE status = 'accepted' backs it up.
        """
        result = None

        async with await get_db_transaction() as conn:
            request = await RequestRepository.get_for_update(request_id, connection=conn)
            if request is None or request.status != RequestStatus.PENDING:
                raise psycopg.Rollback()

            already_accepted = await fetch_val(
                "SELECT COUNT(*) FROM offers WHERE request_id = %s AND status = %s",
                (request_id, OfferStatus.ACCEPTED.value),
                connection=conn,
            )
            if already_accepted:
                raise psycopg.Rollback()

            offer_row = await fetch_one(
                f"""
                UPDATE offers
                SET status = %s,
                    buyer_id = %s,
                    contact_unlocked = contact_unlocked OR %s,
                    updated_at = NOW()
                WHERE id = %s AND request_id = %s AND status = %s
                RETURNING {cls.SELECT_COLUMNS}
                """,
                (
                    OfferStatus.ACCEPTED.value,
                    buyer_id,
                    unlock_contact,
                    offer_id,
                    request_id,
                    OfferStatus.PENDING.value,
                ),
                connection=conn,
            )
            if offer_row is None:
                raise psycopg.Rollback()

            updated_request = await RequestRepository.transition_status(
                request_id,
                {RequestStatus.PENDING},
                RequestStatus.OFFER_RECEIVED,
                connection=conn,
            )
            if updated_request is None:
                raise psycopg.Rollback()

            rejected_ids: list[str] = []
            if reject_siblings:
                sibling_rows = await fetch_all(
                    """
                    UPDATE offers
                    SET status = %s, updated_at = NOW()
                    WHERE request_id = %s AND id <> %s AND status = %s
                    RETURNING id
                    """,
                    (
                        OfferStatus.REJECTED.value,
                        request_id,
                        offer_id,
                        OfferStatus.PENDING.value,
                    ),
                    connection=conn,
                )
                rejected_ids = [str(row["id"]) for row in sibling_rows]

            result = AcceptResult(
                offer=cls._row_to_offer(offer_row),
                request=updated_request,
                rejected_sibling_ids=rejected_ids,
            )

        return result

    @classmethod
    @with_db_retry(max_retries=2, base_delay=0.05)
    async def unlock_contact(cls, request_id: str) -> TransitionResult | None:
        """Set contact_unlocked on the accepted offer; offer_received -> contact_unlocked."""
        result = None

        async with await get_db_transaction() as conn:
            request = await RequestRepository.get_for_update(request_id, connection=conn)
            if request is None or request.status != RequestStatus.OFFER_RECEIVED:
                raise psycopg.Rollback()

            offer_row = await fetch_one(
                f"""
                UPDATE offers
                SET contact_unlocked = TRUE, updated_at = NOW()
                WHERE request_id = %s AND status = %s
                RETURNING {cls.SELECT_COLUMNS}
                """,
                (request_id, OfferStatus.ACCEPTED.value),
                connection=conn,
            )
            if offer_row is None:
                raise psycopg.Rollback()

            updated_request = await RequestRepository.transition_status(
                request_id,
                {RequestStatus.OFFER_RECEIVED},
                RequestStatus.CONTACT_UNLOCKED,
                connection=conn,
            )
            if updated_request is None:
                raise psycopg.Rollback()

            result = TransitionResult(request=updated_request, offer=cls._row_to_offer(offer_row))

        return result

    @classmethod
    @with_db_retry(max_retries=2, base_delay=0.05)
    async def complete_transaction(cls, request_id: str) -> TransitionResult | None:
        """Mark the accepted offer transaction_completed; contact_unlocked -> completed."""
        result = None

        async with await get_db_transaction() as conn:
            request = await RequestRepository.get_for_update(request_id, connection=conn)
            if request is None or request.status != RequestStatus.CONTACT_UNLOCKED:
                raise psycopg.Rollback()

            offer_row = await fetch_one(
                f"""
                UPDATE offers
                SET transaction_completed = TRUE,
                    completed_at = NOW(),
                    updated_at = NOW()
                WHERE request_id = %s
                  AND status = %s
                  AND contact_unlocked
                  AND NOT transaction_completed
                RETURNING {cls.SELECT_COLUMNS}
                """,
                (request_id, OfferStatus.ACCEPTED.value),
                connection=conn,
            )
            if offer_row is None:
                raise psycopg.Rollback()

            updated_request = await RequestRepository.transition_status(
                request_id,
                {RequestStatus.CONTACT_UNLOCKED},
                RequestStatus.COMPLETED,
                connection=conn,
            )
            if updated_request is None:
                raise psycopg.Rollback()

            result = TransitionResult(request=updated_request, offer=cls._row_to_offer(offer_row))

        return result

    @classmethod
    async def reject(cls, offer_id: str) -> Offer | None:
        query = f"""
            UPDATE offers
            SET status = %s, updated_at = NOW()
            WHERE id = %s AND status = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(
            query, (OfferStatus.REJECTED.value, offer_id, OfferStatus.PENDING.value)
        )
        return cls._row_to_offer(row)

    @classmethod
    async def expire_stale(cls, cutoff: datetime) -> list[Offer]:
        """pending -> expired for every offer created before `cutoff`."""
        query = f"""
            UPDATE offers
            SET status = %s, updated_at = NOW()
            WHERE status = %s AND created_at < %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        rows = await fetch_all(
            query, (OfferStatus.EXPIRED.value, OfferStatus.PENDING.value, cutoff)
        )
        return [cls._row_to_offer(row) for row in rows]
