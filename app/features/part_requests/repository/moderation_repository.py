"""
Persistence for moderation records. One automated record per request;
records are never updated.
"""

from app.db.helpers import fetch_one
from app.features.part_requests.domain.models import (
    ModerationDecision,
    ModerationOutcome,
    ModerationRecord,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ModerationRepository:
    SELECT_COLUMNS = "id, request_id, decision, confidence, rationale, degraded, created_at"

    @classmethod
    def _row_to_record(cls, row: dict | None) -> ModerationRecord | None:
        if not row:
            return None

        return ModerationRecord(
            id=str(row["id"]),
            request_id=str(row["request_id"]),
            decision=ModerationDecision(row["decision"]),
            confidence=float(row["confidence"]),
            rationale=row["rationale"],
            degraded=bool(row.get("degraded")),
            created_at=row["created_at"],
        )

    @classmethod
    async def record(cls, request_id: str, outcome: ModerationOutcome) -> ModerationRecord:
        """
        Write the automated record for a request.

        A second write for the same request leaves the first in place and
        returns it.
        """
        query = f"""
            INSERT INTO moderation_records (request_id, decision, confidence, rationale, degraded)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (request_id) DO NOTHING
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                request_id,
                outcome.decision.value,
                outcome.confidence,
                outcome.rationale,
                outcome.degraded,
            ),
        )
        if row is None:
            logger.warning("Moderation record already exists", request_id=request_id)
            return await cls.get_for_request(request_id)

        return cls._row_to_record(row)

    @classmethod
    async def get_for_request(cls, request_id: str) -> ModerationRecord | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM moderation_records WHERE request_id = %s"
        return cls._row_to_record(await fetch_one(query, (request_id,)))
