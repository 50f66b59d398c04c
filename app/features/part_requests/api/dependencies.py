"""
FastAPI dependencies for the part request routes.
"""

from fastapi import Depends, HTTPException, status

from app.auth.verify import auth_dependency
from app.features.part_requests.domain.models import Actor, UserType
from app.features.part_requests.repository.profile_repository import ProfileRepository
from app.features.part_requests.services.orchestrator import (
    PartRequestPipeline,
    part_request_pipeline,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def get_actor(claims: dict = Depends(auth_dependency)) -> Actor:
    """Resolve the caller's id from the token and their role from their profile."""
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    profile = await ProfileRepository.get(user_id)
    if profile is None:
        logger.info("No profile for authenticated user, treating as buyer", user_id=user_id)
        return Actor(user_id=user_id, user_type=UserType.BUYER)

    if profile.is_blocked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is blocked")

    return Actor(user_id=user_id, user_type=profile.user_type)


def get_pipeline() -> PartRequestPipeline:
    return part_request_pipeline
