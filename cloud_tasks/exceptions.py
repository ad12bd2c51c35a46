"""
Delivery handling errors and the API exception handlers.

Every error below is terminal for the current delivery. None of them is
retried internally: a non-2xx answer makes Cloud Tasks redeliver the task
according to the queue's own retry policy.
"""

from enum import Enum

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from shared.utils import get_logger

logger = get_logger(__name__)


class HandlingErrorKind(str, Enum):
    EMPTY_BODY = "empty_body"
    MALFORMED_PAYLOAD = "malformed_payload"
    UNKNOWN_CONNECTION = "unknown_connection"
    UNAUTHORIZED = "unauthorized"
    RETRY_POLICY_UNAVAILABLE = "retry_policy_unavailable"


class TaskHandlingError(Exception):
    """Base class for failures that abort a delivery before the job runs."""

    kind: HandlingErrorKind
    status_code: int = 500
    default_message = "Could not handle task"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class EmptyBodyError(TaskHandlingError):
    kind = HandlingErrorKind.EMPTY_BODY
    status_code = 400
    default_message = "Could not read incoming task"


class MalformedPayloadError(TaskHandlingError):
    kind = HandlingErrorKind.MALFORMED_PAYLOAD
    status_code = 400
    default_message = "Could not decode incoming task"


class UnknownConnectionError(TaskHandlingError):
    kind = HandlingErrorKind.UNKNOWN_CONNECTION
    status_code = 500
    default_message = "Queue connection is not configured"


class UnauthorizedError(TaskHandlingError):
    # One message for every token failure, the reason is only logged.
    kind = HandlingErrorKind.UNAUTHORIZED
    status_code = 401
    default_message = "The given OpenID token is not valid"

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__()


class RetryPolicyUnavailableError(TaskHandlingError):
    kind = HandlingErrorKind.RETRY_POLICY_UNAVAILABLE
    status_code = 503
    default_message = "Could not load the queue retry configuration"


STATUS_BY_KIND: dict[HandlingErrorKind, int] = {
    cls.kind: cls.status_code
    for cls in (
        EmptyBodyError,
        MalformedPayloadError,
        UnknownConnectionError,
        UnauthorizedError,
        RetryPolicyUnavailableError,
    )
}


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - logs and returns generic error."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return ORJSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the app."""
    app.add_exception_handler(Exception, global_exception_handler)
