"""
Service layer for the part request pipeline.
"""

from .notification_dispatcher import NotificationDispatcher, part_request_notification_dispatcher
from .offer_lifecycle import OfferLifecycle, part_offer_lifecycle
from .orchestrator import PartRequestPipeline, part_request_pipeline
from .rating_eligibility import RatingEligibilityTracker, rating_eligibility_tracker
from .request_lifecycle import RequestLifecycle, part_request_lifecycle

__all__ = [
    "NotificationDispatcher",
    "part_request_notification_dispatcher",
    "OfferLifecycle",
    "part_offer_lifecycle",
    "PartRequestPipeline",
    "part_request_pipeline",
    "RatingEligibilityTracker",
    "rating_eligibility_tracker",
    "RequestLifecycle",
    "part_request_lifecycle",
]
