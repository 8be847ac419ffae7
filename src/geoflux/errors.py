"""Exception hierarchy for geoflux.

Every failure the library surfaces is a ``GeocodingError`` subclass whose
``kind`` places it in a closed taxonomy. Retry decisions and the batch
``status_message`` column key off ``kind``, never off message text.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ErrorKind(StrEnum):
    """Closed set of classified failure kinds."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    TIMEOUT = "TIMEOUT"
    REQUEST_TOO_LONG = "REQUEST_TOO_LONG"
    UPGRADE_REQUIRED = "UPGRADE_REQUIRED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    BAD_RESPONSE = "BAD_RESPONSE"
    BATCH_PROCESSING = "BATCH_PROCESSING"
    ZERO_RESULTS = "ZERO_RESULTS"
    UNKNOWN = "UNKNOWN"


class GeocodingError(Exception):
    """Base exception for all geoflux errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class InvalidInputError(GeocodingError):
    """Caller-supplied input (query, coordinates, API key) is unusable."""

    kind = ErrorKind.INVALID_INPUT


class NotAuthorizedError(GeocodingError):
    """HTTP 401: the API key is missing or invalid."""

    kind = ErrorKind.NOT_AUTHORIZED


class ForbiddenError(GeocodingError):
    """HTTP 403: the API key is disabled or blocked."""

    kind = ErrorKind.FORBIDDEN


class BadRequestError(GeocodingError):
    """HTTP 400."""

    kind = ErrorKind.BAD_REQUEST


class NotFoundError(GeocodingError):
    """HTTP 404."""

    kind = ErrorKind.NOT_FOUND


class MethodNotAllowedError(GeocodingError):
    """HTTP 405."""

    kind = ErrorKind.METHOD_NOT_ALLOWED


class RequestTimeoutError(GeocodingError):
    """HTTP 408, or the request timed out client-side."""

    kind = ErrorKind.TIMEOUT


class RequestTooLongError(GeocodingError):
    """HTTP 410: the query string is too long."""

    kind = ErrorKind.REQUEST_TOO_LONG


class UpgradeRequiredError(GeocodingError):
    """HTTP 426: plain-HTTP request refused."""

    kind = ErrorKind.UPGRADE_REQUIRED


class TooManyRequestsError(GeocodingError):
    """HTTP 429: requests are arriving faster than the account allows."""

    kind = ErrorKind.TOO_MANY_REQUESTS


class RateLimitExceededError(GeocodingError):
    """HTTP 402: the account's request quota is used up.

    Unlike ``TooManyRequestsError`` this is not transient; waiting a few
    seconds does not help until the quota resets.
    """

    kind = ErrorKind.RATE_LIMIT_EXCEEDED

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        limit: int | None = None,
        remaining: int | None = None,
        reset: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.limit = limit
        self.remaining = remaining
        self.reset = reset

    def __str__(self) -> str:
        text = self.message
        if self.reset is not None:
            try:
                reset_at = datetime.fromtimestamp(self.reset, tz=UTC)
                text += f" (Quota resets at {reset_at:%Y-%m-%d %H:%M:%S} UTC)"
            except (OverflowError, OSError, ValueError):
                text += f" (Quota reset timestamp: {self.reset} - potentially invalid)"
        details = []
        if self.limit is not None:
            details.append(f"limit={self.limit}")
        if self.remaining is not None:
            details.append(f"remaining={self.remaining}")
        if details:
            text += f" [Details: {', '.join(details)}]"
        return text


class ServerError(GeocodingError):
    """HTTP 5xx."""

    kind = ErrorKind.SERVER_ERROR

    def __init__(
        self, message: str, *, status_code: int, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.message} (HTTP Status: {self.status_code})"


class NetworkError(GeocodingError):
    """Connection-level failure before a response was received."""

    kind = ErrorKind.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.cause = cause


class BadResponseError(GeocodingError):
    """A 200 response whose payload could not be parsed."""

    kind = ErrorKind.BAD_RESPONSE


class BatchProcessingError(GeocodingError):
    """Batch configuration was invalid or the batch run failed."""

    kind = ErrorKind.BATCH_PROCESSING


class ZeroResultsError(GeocodingError):
    """The request succeeded but matched no places."""

    kind = ErrorKind.ZERO_RESULTS


class UnknownError(GeocodingError):
    """Failure outside the known taxonomy (including programmer errors)."""

    kind = ErrorKind.UNKNOWN


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
