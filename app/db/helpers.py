"""
Query helpers used by the part request repositories.

Every helper takes an optional `connection` so the same query can run
standalone (its own pooled connection) or inside an open transaction.
Driver errors are re-raised as DatabaseError.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def is_invalid_input(error: DatabaseError) -> bool:
    """True when the driver rejected a parameter value, e.g. a malformed uuid."""
    return isinstance(error.__cause__, psycopg.DataError)


@asynccontextmanager
async def _cursor(
    connection: psycopg.AsyncConnection | None,
) -> AsyncGenerator[psycopg.AsyncCursor, None]:
    if connection is not None:
        async with connection.cursor() as cur:
            yield cur
        return

    async with await get_db_connection() as conn:
        async with conn.cursor() as cur:
            yield cur


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Run a query and return the first row.

    Args:
        query: SQL with %s placeholders
        params: Query parameters
        connection: Existing connection, e.g. inside a transaction

    Returns:
        Row as a dict, or None when nothing matched
    """
    try:
        async with _cursor(connection) as cur:
            await cur.execute(query, params)
            return await cur.fetchone()
    except psycopg.Error as e:
        logger.error("Database fetch_one error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Run a query and return every row as a dict."""
    try:
        async with _cursor(connection) as cur:
            await cur.execute(query, params)
            return await cur.fetchall()
    except psycopg.Error as e:
        logger.error("Database fetch_all error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e


async def fetch_val(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """First column of the first row, or None."""
    row = await fetch_one(query, params, connection=connection)
    return next(iter(row.values())) if row else None


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a coroutine on transient driver failures.

    Only psycopg.OperationalError is retried, with exponential backoff.
    Deadlocks and serialization failures raised at commit fall in that
    class. Integrity and data errors fail immediately; anything else
    propagates untouched.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, doubled each time
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except psycopg.OperationalError as e:
                    if attempt >= max_retries:
                        logger.error(
                            "Database operation failed after all retries",
                            operation=func.__name__,
                            attempts=max_retries + 1,
                            error=str(e),
                        )
                        raise DatabaseError(
                            f"Operation failed after {max_retries} retries: {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e

                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Database operation failed, retrying",
                        operation=func.__name__,
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

                except (psycopg.IntegrityError, psycopg.DataError) as e:
                    logger.error(
                        "Database operation failed with permanent error",
                        operation=func.__name__,
                        error=str(e),
                    )
                    raise DatabaseError(
                        f"Permanent database error: {e}", operation=func.__name__, recoverable=False
                    ) from e

        return wrapper

    return decorator
