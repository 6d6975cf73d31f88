"""Error taxonomy for the point-of-sale data-access layer.

Every failure surfaced to callers is a ``PosClientError``. The transport only
recovers from ``NetworkFailure`` (by retrying); every other kind is terminal
and reaches the caller, or the optimistic update manager, unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pos_client.core.types import FieldError


class PosClientError(Exception):
    """Base exception for all client errors."""


class ConfigurationError(PosClientError):
    """Raised when client settings fail validation."""


class ClientClosedError(PosClientError):
    """Raised when a closed client or manager is asked to do more work."""


class InterceptorError(PosClientError):
    """Raised when an interceptor returns a value of the wrong shape."""


class NetworkFailure(PosClientError):
    """No HTTP response was obtained (connection, DNS, timeout).

    This is the only retryable kind. When it reaches a caller the retry budget
    has already been spent; ``attempts`` records how many calls were made.
    """

    def __init__(self, message: str, *, attempts: int = 1) -> None:  # noqa: D107
        super().__init__(message)
        self.attempts = attempts


class Unauthorized(PosClientError):
    """HTTP 401. The stored credential has been evicted."""

    def __init__(self, message: str = "Unauthorized") -> None:  # noqa: D107
        super().__init__(message)
        self.status_code = 401


class RateLimited(PosClientError):
    """HTTP 429. Never retried automatically."""

    DEFAULT_MESSAGE = "Too many requests. Please try again later."

    def __init__(  # noqa: D107
        self,
        message: str = DEFAULT_MESSAGE,
        *,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = 429
        self.retry_after = retry_after


class RequestFailed(PosClientError):
    """The server rejected the request.

    Raised for non-2xx responses and for envelopes whose status is ``error``.
    Carries the envelope message and any structured field errors.
    """

    def __init__(  # noqa: D107
        self,
        message: str = "Request failed",
        *,
        field_errors: tuple[FieldError, ...] = (),
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field_errors = tuple(field_errors)
        self.status_code = status_code

    def __str__(self) -> str:  # noqa: D105
        if not self.field_errors:
            return self.message
        details = "; ".join(f"{e.field}: {e.message}" for e in self.field_errors)
        return f"{self.message} ({details})"


class MalformedEnvelope(PosClientError):
    """The response body does not follow the envelope contract.

    Distinct from ``RequestFailed`` so callers can tell protocol drift apart
    from an application-level rejection.
    """

    def __init__(self, message: str, *, body: object = None) -> None:  # noqa: D107
        super().__init__(message)
        self.body = body


def describe_error(error: BaseException) -> str:
    """Return a user-facing message for a client error.

    Each taxonomy kind maps to a distinct message so UI layers can surface
    them without inspecting internals.
    """
    match error:
        case Unauthorized():
            return "Your session has expired. Please log in again."
        case RateLimited():
            return str(error)
        case RequestFailed():
            return str(error)
        case NetworkFailure():
            return "Unable to reach the server. Check your connection and try again."
        case MalformedEnvelope():
            return "The server sent an unexpected response."
        case _:
            return f"Unexpected error: {error}"
