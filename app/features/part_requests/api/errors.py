"""
Mapping from pipeline errors to HTTP responses.
"""

from fastapi import HTTPException, status

from app.features.part_requests.domain.errors import (
    NotFound,
    PipelineError,
    RequestValidationError,
    SpamRejection,
    StateConflict,
    UpstreamUnavailable,
)

_STATUS_BY_ERROR: list[tuple[type[PipelineError], int]] = [
    (RequestValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SpamRejection, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (StateConflict, status.HTTP_409_CONFLICT),
    (UpstreamUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(error: PipelineError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = code
            break

    detail: dict = {"error": type(error).__name__, "message": error.message}
    headers = None

    if isinstance(error, RequestValidationError) and error.field:
        detail["field"] = error.field
    elif isinstance(error, SpamRejection):
        detail["reason"] = error.reason.value
        if error.retry_after_seconds is not None:
            detail["retry_after_seconds"] = error.retry_after_seconds
            headers = {"Retry-After": str(error.retry_after_seconds)}
    elif isinstance(error, StateConflict) and error.current_state:
        detail["current_state"] = error.current_state

    return HTTPException(status_code=status_code, detail=detail, headers=headers)
