"""
Typed errors raised by the part request pipeline.

Every error carries a `recoverable` flag in the same spirit as the
service-layer exceptions elsewhere in the app. The API layer maps each
class to an HTTP status.
"""

from datetime import timedelta

from app.features.part_requests.domain.models import SpamReason


class PipelineError(Exception):
    """Base exception for pipeline operations."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class RequestValidationError(PipelineError):
    """Malformed input, rejected before any state mutation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class SpamRejection(PipelineError):
    """Duplicate or rate-limited submission."""

    def __init__(self, message: str, reason: SpamReason, retry_after: timedelta | None = None):
        super().__init__(message)
        self.reason = reason
        self.retry_after = retry_after

    @property
    def retry_after_seconds(self) -> int | None:
        if self.retry_after is None:
            return None
        return int(self.retry_after.total_seconds())


class StateConflict(PipelineError):
    """Transition not valid for the current state. Caller should refetch."""

    def __init__(self, message: str, current_state: str | None = None):
        super().__init__(message)
        self.current_state = current_state


class UpstreamUnavailable(PipelineError):
    """Moderation classifier timed out or errored."""


class NotFound(PipelineError):
    """Referenced entity does not exist or the caller does not own it."""

    def __init__(self, message: str, resource_type: str | None = None):
        super().__init__(message, recoverable=False)
        self.resource_type = resource_type
