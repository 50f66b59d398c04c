"""
Domain subpackage for the part request pipeline.
"""

from .errors import (
    NotFound,
    PipelineError,
    RequestValidationError,
    SpamRejection,
    StateConflict,
    UpstreamUnavailable,
)
from .models import (
    AcceptResult,
    Actor,
    FanOutResult,
    ModerationDecision,
    ModerationOutcome,
    ModerationRecord,
    NotificationChannel,
    NotificationRecord,
    Offer,
    OfferStatus,
    PartRequest,
    PartRequestDraft,
    PendingRating,
    RequestDetail,
    Profile,
    RequestStatus,
    RequestVisibility,
    Review,
    SpamReason,
    SpamVerdict,
    SubmissionHistoryEntry,
    SubmissionOutcome,
    SubmissionResult,
    SuspicionReport,
    TransitionResult,
    UserType,
)
from .state_machine import OFFERABLE_REQUEST_STATES, OfferStateMachine, RequestStateMachine

__all__ = [
    "AcceptResult",
    "Actor",
    "FanOutResult",
    "ModerationDecision",
    "ModerationOutcome",
    "ModerationRecord",
    "NotFound",
    "NotificationChannel",
    "NotificationRecord",
    "OFFERABLE_REQUEST_STATES",
    "Offer",
    "OfferStateMachine",
    "OfferStatus",
    "PartRequest",
    "PartRequestDraft",
    "PendingRating",
    "PipelineError",
    "Profile",
    "RequestDetail",
    "RequestStateMachine",
    "RequestStatus",
    "RequestValidationError",
    "RequestVisibility",
    "Review",
    "SpamReason",
    "SpamRejection",
    "SpamVerdict",
    "StateConflict",
    "SubmissionHistoryEntry",
    "SubmissionOutcome",
    "SubmissionResult",
    "SuspicionReport",
    "TransitionResult",
    "UpstreamUnavailable",
    "UserType",
]
