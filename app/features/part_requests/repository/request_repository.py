"""
Persistence for part requests.

Status and visibility changes are conditional updates (`WHERE status = ANY(...)`)
that return the new row, or None when the row was not in an expected state.
"""

from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime

import psycopg

from app.db.helpers import DatabaseError, fetch_all, fetch_one, is_invalid_input
from app.db.pool import get_db_transaction
from app.features.part_requests.domain.models import (
    PartRequest,
    PartRequestDraft,
    RequestStatus,
    RequestVisibility,
    SubmissionHistoryEntry,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestRepository:
    SELECT_COLUMNS = """
        id, owner_id, car_make, car_model, car_year, part_needed, description,
        phone, location, photo_url, status, visibility, created_at, updated_at
    """

    @classmethod
    def _row_to_request(cls, row: dict | None) -> PartRequest | None:
        if not row:
            return None

        return PartRequest(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            car_make=row["car_make"],
            car_model=row["car_model"],
            car_year=row["car_year"],
            part_name=row["part_needed"],
            description=row.get("description"),
            phone=row["phone"],
            location=row["location"],
            photo_url=row.get("photo_url"),
            status=RequestStatus(row["status"]),
            visibility=RequestVisibility(row["visibility"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @classmethod
    async def get(
        cls, request_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> PartRequest | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM part_requests WHERE id = %s"
        try:
            row = await fetch_one(query, (request_id,), connection=connection)
        except DatabaseError as e:
            # A malformed id cannot match any row
            if is_invalid_input(e):
                return None
            raise
        return cls._row_to_request(row)

    @classmethod
    async def get_for_update(
        cls, request_id: str, *, connection: psycopg.AsyncConnection
    ) -> PartRequest | None:
        """Lock the request row for the rest of the caller's transaction."""
        query = f"SELECT {cls.SELECT_COLUMNS} FROM part_requests WHERE id = %s FOR UPDATE"
        row = await fetch_one(query, (request_id,), connection=connection)
        return cls._row_to_request(row)

    @classmethod
    @asynccontextmanager
    async def submission_transaction(
        cls, phone: str
    ) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Open a transaction serialized per phone number.

        The advisory lock is released on commit/rollback, so the history read
        and the insert that follows it see each other's writes.
        """
        async with await get_db_transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (phone,))
            yield conn

    @classmethod
    async def load_submission_history(
        cls,
        phone: str,
        owner_id: str,
        since: datetime,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> list[SubmissionHistoryEntry]:
        """Requests created since `since` from the same phone or the same account."""
        query = """
            SELECT id, owner_id, phone, car_make, car_model, part_needed, status, created_at
            FROM part_requests
            WHERE (phone = %s OR owner_id = %s)
              AND created_at >= %s
            ORDER BY created_at DESC
        """

        rows = await fetch_all(query, (phone, owner_id, since), connection=connection)
        return [
            SubmissionHistoryEntry(
                request_id=str(row["id"]),
                owner_id=str(row["owner_id"]),
                phone=row["phone"],
                car_make=row["car_make"],
                car_model=row["car_model"],
                part_name=row["part_needed"],
                status=RequestStatus(row["status"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    @classmethod
    async def create(
        cls,
        draft: PartRequestDraft,
        visibility: RequestVisibility,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> PartRequest:
        query = f"""
            INSERT INTO part_requests (
                owner_id, car_make, car_model, car_year, part_needed, description,
                phone, location, photo_url, status, visibility
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                draft.owner_id,
                draft.car_make,
                draft.car_model,
                draft.car_year,
                draft.part_name,
                draft.description,
                draft.phone,
                draft.location,
                draft.photo_url,
                RequestStatus.PENDING.value,
                visibility.value,
            ),
            connection=connection,
        )
        if not row:
            raise DatabaseError("Failed to create part request", operation="create_request")

        request = cls._row_to_request(row)
        logger.info(
            "Part request created",
            request_id=request.id,
            owner_id=request.owner_id,
            visibility=visibility.value,
        )
        return request

    @classmethod
    async def update_visibility(
        cls, request_id: str, expected: RequestVisibility, target: RequestVisibility
    ) -> PartRequest | None:
        query = f"""
            UPDATE part_requests
            SET visibility = %s, updated_at = NOW()
            WHERE id = %s AND visibility = %s
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(query, (target.value, request_id, expected.value))
        return cls._row_to_request(row)

    @classmethod
    async def transition_status(
        cls,
        request_id: str,
        expected: Iterable[RequestStatus],
        target: RequestStatus,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> PartRequest | None:
        """Move the request to `target` only if it currently sits in `expected`."""
        query = f"""
            UPDATE part_requests
            SET status = %s, updated_at = NOW()
            WHERE id = %s AND status = ANY(%s)
            RETURNING {cls.SELECT_COLUMNS}
        """

        expected_values = [status.value for status in expected]
        row = await fetch_one(
            query, (target.value, request_id, expected_values), connection=connection
        )
        if row is None:
            logger.info(
                "Request transition did not apply",
                request_id=request_id,
                expected=expected_values,
                target=target.value,
            )
        return cls._row_to_request(row)
