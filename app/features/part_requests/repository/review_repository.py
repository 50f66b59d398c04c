"""
Persistence for seller reviews and the derived pending-ratings view.

Pending ratings are never materialized: they are completed offers bought
by the buyer with no review from that buyer, recomputed on every read.
"""

import psycopg

from app.db.helpers import fetch_all, fetch_one, fetch_val
from app.db.pool import get_db_transaction
from app.features.part_requests.domain.models import PendingRating, Profile, Review, UserType
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ReviewRepository:
    SELECT_COLUMNS = """
        id, offer_id, reviewer_id, seller_id, rating, review_text,
        transaction_verified, created_at
    """

    @classmethod
    def _row_to_review(cls, row: dict | None) -> Review | None:
        if not row:
            return None

        return Review(
            id=str(row["id"]),
            offer_id=str(row["offer_id"]),
            reviewer_id=str(row["reviewer_id"]),
            seller_id=str(row["seller_id"]),
            rating=int(row["rating"]),
            review_text=row.get("review_text"),
            transaction_verified=bool(row.get("transaction_verified")),
            created_at=row["created_at"],
        )

    @classmethod
    async def create_for_offer(
        cls,
        offer_id: str,
        reviewer_id: str,
        seller_id: str,
        rating: int,
        review_text: str | None,
    ) -> Review | None:
        """
        Insert a verified review and refresh the seller's aggregate rating.

        Returns None if this reviewer already reviewed this offer; nothing
        is written in that case.
        """
        review = None

        async with await get_db_transaction() as conn:
            row = await fetch_one(
                f"""
                INSERT INTO reviews (
                    offer_id, reviewer_id, seller_id, rating, review_text, transaction_verified
                )
                VALUES (%s, %s, %s, %s, %s, TRUE)
                ON CONFLICT (offer_id, reviewer_id) DO NOTHING
                RETURNING {cls.SELECT_COLUMNS}
                """,
                (offer_id, reviewer_id, seller_id, rating, review_text),
                connection=conn,
            )
            if row is None:
                raise psycopg.Rollback()

            await fetch_val(
                """
                UPDATE profiles
                SET rating = agg.avg_rating,
                    total_ratings = agg.total,
                    updated_at = NOW()
                FROM (
                    SELECT ROUND(AVG(rating)::numeric, 2) AS avg_rating, COUNT(*) AS total
                    FROM reviews
                    WHERE seller_id = %s
                ) AS agg
                WHERE profiles.id = %s
                RETURNING profiles.id
                """,
                (seller_id, seller_id),
                connection=conn,
            )

            review = cls._row_to_review(row)

        if review:
            logger.info(
                "Review recorded",
                offer_id=offer_id,
                reviewer_id=reviewer_id,
                seller_id=seller_id,
                rating=rating,
            )
        return review

    @classmethod
    async def list_pending_for_buyer(cls, buyer_id: str) -> list[PendingRating]:
        query = """
            SELECT o.id AS offer_id,
                   o.supplier_id,
                   o.completed_at,
                   p.first_name,
                   p.last_name
            FROM offers o
            LEFT JOIN profiles p ON p.id = o.supplier_id
            LEFT JOIN reviews r ON r.offer_id = o.id AND r.reviewer_id = %s
            WHERE o.buyer_id = %s
              AND o.transaction_completed = TRUE
              AND r.id IS NULL
            ORDER BY o.completed_at DESC NULLS LAST
        """

        rows = await fetch_all(query, (buyer_id, buyer_id))
        return [
            PendingRating(
                offer_id=str(row["offer_id"]),
                seller_id=str(row["supplier_id"]),
                seller_name=Profile(
                    id=str(row["supplier_id"]),
                    user_type=UserType.SUPPLIER,
                    first_name=row.get("first_name"),
                    last_name=row.get("last_name"),
                ).display_name,
                completed_at=row.get("completed_at"),
            )
            for row in rows
        ]
