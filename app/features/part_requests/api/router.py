"""
Part request pipeline routes.

Thin HTTP layer over PartRequestPipeline: parse the body, resolve the
caller, run the operation, format the result. Pipeline errors become
HTTP errors through `to_http_exception`.
"""

from fastapi import APIRouter, Depends, status

from app.features.part_requests.api.dependencies import get_actor, get_pipeline
from app.features.part_requests.api.errors import to_http_exception
from app.features.part_requests.api.schemas import (
    AcceptOfferResponse,
    MakeOfferBody,
    ModerationResponse,
    NotificationResponse,
    NotificationSummary,
    OfferResponse,
    OffersListResponse,
    PartRequestResponse,
    PendingRatingResponse,
    PendingRatingsResponse,
    RequestDetailResponse,
    ReviewResponse,
    StatusUpdateBody,
    StatusUpdateResponse,
    SubmissionResponse,
    SubmitPartRequestBody,
    SubmitRatingBody,
    TransitionResponse,
)
from app.features.part_requests.domain.errors import PipelineError
from app.features.part_requests.domain.models import Actor, PartRequestDraft
from app.features.part_requests.services.orchestrator import PartRequestPipeline

router = APIRouter(tags=["part-requests"])


@router.post(
    "/part-requests", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED
)
async def submit_request(
    body: SubmitPartRequestBody,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    """Submit a part request. Suspicious requests may come back held or blocked."""
    draft = PartRequestDraft(
        owner_id=actor.user_id,
        car_make=body.car_make,
        car_model=body.car_model,
        car_year=body.car_year,
        part_name=body.part_needed,
        phone=body.phone,
        location=body.location,
        description=body.description,
        photo_url=body.photo_url,
    )

    try:
        result = await pipeline.submit_request(actor, draft)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return SubmissionResponse(
        outcome=result.outcome.value,
        request=PartRequestResponse.from_domain(result.request),
        moderation=ModerationResponse.from_record(result.moderation) if result.moderation else None,
        notifications=NotificationSummary.from_result(result.notifications),
    )


@router.get("/part-requests/{request_id}", response_model=RequestDetailResponse)
async def get_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        detail = await pipeline.get_request(actor, request_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return RequestDetailResponse(
        request=PartRequestResponse.from_domain(detail.request),
        moderation=ModerationResponse.from_record(detail.moderation) if detail.moderation else None,
    )


@router.post("/part-requests/{request_id}/cancel", response_model=PartRequestResponse)
async def cancel_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        request = await pipeline.cancel_request(actor, request_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return PartRequestResponse.from_domain(request)


@router.get("/part-requests/{request_id}/offers", response_model=OffersListResponse)
async def list_offers(
    request_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        offers = await pipeline.list_offers(actor, request_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return OffersListResponse(
        offers=[OfferResponse.from_domain(offer) for offer in offers],
        total_count=len(offers),
    )


@router.post(
    "/part-requests/{request_id}/offers",
    response_model=OfferResponse,
    status_code=status.HTTP_201_CREATED,
)
async def make_offer(
    request_id: str,
    body: MakeOfferBody,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        offer = await pipeline.make_offer(actor, request_id, body.price, body.message)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return OfferResponse.from_domain(offer)


@router.post(
    "/part-requests/{request_id}/status-updates", response_model=StatusUpdateResponse
)
async def send_status_update(
    request_id: str,
    body: StatusUpdateBody,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    """Admin only: send a custom message to the request owner."""
    try:
        record = await pipeline.notify_status_update(actor, request_id, body.message)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return StatusUpdateResponse(
        queued=record is not None,
        notification=NotificationResponse.from_domain(record) if record else None,
    )


@router.post("/offers/{offer_id}/accept", response_model=AcceptOfferResponse)
async def accept_offer(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        result = await pipeline.accept_offer(actor, offer_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return AcceptOfferResponse(
        offer=OfferResponse.from_domain(result.offer),
        request=PartRequestResponse.from_domain(result.request),
        rejected_sibling_ids=result.rejected_sibling_ids,
    )


@router.post("/offers/{offer_id}/reject", response_model=OfferResponse)
async def reject_offer(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        offer = await pipeline.reject_offer(actor, offer_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return OfferResponse.from_domain(offer)


@router.post("/offers/{offer_id}/unlock", response_model=TransitionResponse)
async def unlock_contact(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        result = await pipeline.unlock_contact(actor, offer_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return TransitionResponse(
        offer=OfferResponse.from_domain(result.offer),
        request=PartRequestResponse.from_domain(result.request),
    )


@router.post("/offers/{offer_id}/complete", response_model=TransitionResponse)
async def complete_transaction(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        result = await pipeline.complete_transaction(actor, offer_id)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return TransitionResponse(
        offer=OfferResponse.from_domain(result.offer),
        request=PartRequestResponse.from_domain(result.request),
    )


@router.post(
    "/offers/{offer_id}/rating",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_rating(
    offer_id: str,
    body: SubmitRatingBody,
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        review = await pipeline.submit_rating(actor, offer_id, body.rating, body.review_text)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return ReviewResponse.from_domain(review)


@router.get("/ratings/pending", response_model=PendingRatingsResponse)
async def list_pending_ratings(
    actor: Actor = Depends(get_actor),
    pipeline: PartRequestPipeline = Depends(get_pipeline),
):
    try:
        pending = await pipeline.list_pending_ratings(actor)
    except PipelineError as e:
        raise to_http_exception(e) from e

    return PendingRatingsResponse(
        pending=[PendingRatingResponse.from_domain(p) for p in pending],
        total_count=len(pending),
    )
