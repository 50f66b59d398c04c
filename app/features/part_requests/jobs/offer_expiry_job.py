"""
One-shot offer expiry job.

Moves pending offers older than OFFER_TTL_DAYS to expired with a single
conditional update. Meant to be run from cron or a platform scheduler:

    python -m app.jobs.worker offer_expiry
"""

from datetime import UTC, datetime

from app.config import settings
from app.db.pool import db_pool
from app.features.part_requests.services.offer_lifecycle import part_offer_lifecycle
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def expire_stale_offers(now: datetime | None = None) -> int:
    """Expire stale offers and return how many were expired."""
    now = now or datetime.now(UTC)
    expired = await part_offer_lifecycle.expire_stale(now)

    if expired:
        request_ids = sorted({offer.request_id for offer in expired})
        logger.info(
            "Offer expiry run finished",
            expired=len(expired),
            requests_affected=len(request_ids),
            ttl_days=settings.OFFER_TTL_DAYS,
        )
    else:
        logger.info("Offer expiry run finished - nothing to expire", ttl_days=settings.OFFER_TTL_DAYS)

    return len(expired)


async def run_offer_expiry() -> None:
    """Worker entrypoint: owns the pool for the duration of one run."""
    await db_pool.initialize()
    try:
        await expire_stale_offers()
    finally:
        await db_pool.close()
