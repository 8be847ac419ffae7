"""geoflux: async forward and reverse geocoding with bulk CSV processing.

Public API:
    - geocode(): Single forward lookup with retries
    - reverse_geocode(): Single reverse lookup with retries
    - batch_geocode(): Concurrent CSV-to-CSV batch pipeline
    - Geocoder: Reusable async client
    - Config: Configuration dataclass
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("geoflux")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

from geoflux.batch import BatchOptions, BatchStats, batch_geocode
from geoflux.client import Geocoder
from geoflux.config import Config
from geoflux.errors import (
    BadRequestError,
    BadResponseError,
    BatchProcessingError,
    ErrorKind,
    ForbiddenError,
    GeocodingError,
    InvalidInputError,
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
    ZeroResultsError,
)
from geoflux.models import GeocodeResponse, GeocodeResult, deep_get
from geoflux.retry import RetryPolicy, retry_async

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("geoflux").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


async def geocode(query: str, *, config: Config, **params: Any) -> GeocodeResponse:
    """Forward-geocode one place description.

    Args:
        query: Address or place name.
        config: Configuration (API key, timeout, retry policy).
        **params: Optional API parameters such as ``language`` or ``limit``.

    Returns:
        GeocodeResponse with the matched places.

    Example:
        response = await geocode("Brandenburger Tor, Berlin", config=Config())
        print(response.results[0].geometry)
    """
    return await _run_single(config, lambda g: g.geocode(query, **params))


async def reverse_geocode(
    lat: float, lng: float, *, config: Config, **params: Any
) -> GeocodeResponse:
    """Reverse-geocode one coordinate pair."""
    return await _run_single(config, lambda g: g.reverse_geocode(lat, lng, **params))


async def _run_single(
    config: Config, call: Callable[[Geocoder], Awaitable[GeocodeResponse]]
) -> GeocodeResponse:
    geocoder = Geocoder(config)
    try:
        return await retry_async(lambda: call(geocoder), policy=config.retry)
    finally:
        try:
            await geocoder.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Cleanup should never mask the primary failure.
            logger.warning("Geocoder cleanup failed: %s", exc)


__all__ = [
    "BadRequestError",
    "BadResponseError",
    "BatchOptions",
    "BatchProcessingError",
    "BatchStats",
    "Config",
    "ErrorKind",
    "ForbiddenError",
    "GeocodeResponse",
    "GeocodeResult",
    "Geocoder",
    "GeocodingError",
    "InvalidInputError",
    "MethodNotAllowedError",
    "NetworkError",
    "NotAuthorizedError",
    "NotFoundError",
    "RateLimitExceededError",
    "RequestTimeoutError",
    "RequestTooLongError",
    "RetryPolicy",
    "ServerError",
    "TooManyRequestsError",
    "UnknownError",
    "UpgradeRequiredError",
    "ZeroResultsError",
    "batch_geocode",
    "deep_get",
    "geocode",
    "reverse_geocode",
]
