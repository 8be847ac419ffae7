"""Failure classification.

Maps transport faults, HTTP status codes and parse failures onto the closed
``ErrorKind`` taxonomy, and answers whether a classified failure is worth
retrying. Both decisions are pure lookups; nothing here keeps state.
"""

from __future__ import annotations

import asyncio
import json

import httpx
from pydantic import ValidationError

from geoflux.errors import (
    BadRequestError,
    BadResponseError,
    ErrorKind,
    ForbiddenError,
    GeocodingError,
    MethodNotAllowedError,
    NetworkError,
    NotAuthorizedError,
    NotFoundError,
    RateLimitExceededError,
    RequestTimeoutError,
    RequestTooLongError,
    ServerError,
    TooManyRequestsError,
    UnknownError,
    UpgradeRequiredError,
    _walk_exception_chain,
)
from geoflux.models import RateInfo

RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT,
        ErrorKind.TOO_MANY_REQUESTS,
        ErrorKind.SERVER_ERROR,
    }
)

_STATUS_ERRORS: dict[int, type[GeocodingError]] = {
    400: BadRequestError,
    401: NotAuthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    405: MethodNotAllowedError,
    408: RequestTimeoutError,
    410: RequestTooLongError,
    426: UpgradeRequiredError,
    429: TooManyRequestsError,
}

_AUTH_HINT = "Check the API key (set OPENCAGE_API_KEY or pass Config(api_key=...))."


def error_for_status(
    status: int, message: str, *, rate: RateInfo | None = None
) -> GeocodingError:
    """Return the classified error for a non-200 HTTP *status*."""
    if status == 402:
        return RateLimitExceededError(
            message,
            limit=rate.limit if rate else None,
            remaining=rate.remaining if rate else None,
            reset=rate.reset if rate else None,
            hint="The account quota is exhausted; wait for the reset or upgrade.",
        )
    if status >= 500:
        return ServerError(message, status_code=status)
    err_cls = _STATUS_ERRORS.get(status, UnknownError)
    hint = _AUTH_HINT if status in {401, 403} else None
    return err_cls(message, hint=hint)


def classify_error(exc: BaseException) -> GeocodingError:
    """Normalize any failure into a ``GeocodingError``.

    Already-classified errors are returned unchanged. Cancellation is never
    classified; it is re-raised so task shutdown keeps working.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    if isinstance(exc, GeocodingError):
        return exc

    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, TimeoutError)):
            return RequestTimeoutError(f"Request timed out: {e}")
        if isinstance(e, httpx.HTTPStatusError):
            status = e.response.status_code
            return error_for_status(status, f"HTTP Status Error {status}")
        if isinstance(e, (httpx.TransportError, OSError)):
            return NetworkError(f"Network error during request: {e}", cause=e)
        if isinstance(e, (json.JSONDecodeError, ValidationError)):
            return BadResponseError(f"Failed to parse response: {e}")

    err = UnknownError(f"{type(exc).__name__}: {exc}")
    err.__cause__ = exc
    return err


def is_retryable(error: GeocodingError | ErrorKind) -> bool:
    """Return True when a classified failure may succeed on a later attempt."""
    kind = error if isinstance(error, ErrorKind) else error.kind
    return kind in RETRYABLE_KINDS

