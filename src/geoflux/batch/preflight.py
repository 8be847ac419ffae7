"""Pre-flight credential check run before workers start."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from geoflux._http import FREE_TIER_RATE_LIMIT
from geoflux.errors import ForbiddenError, GeocodingError, NotAuthorizedError

if TYPE_CHECKING:
    from geoflux.client import Geocoder

logger = logging.getLogger(__name__)

PREFLIGHT_COORDINATES = (51.5074, -0.1278)


async def preflight_check(geocoder: Geocoder) -> tuple[bool | None, str | None]:
    """Validate the API key and detect a free-trial (rate constrained) key.

    Returns:
        ``(is_constrained, message)``: ``is_constrained`` is True when the
        reported rate limit equals the free-trial ceiling, False for any other
        key, and None when the check failed, in which case ``message``
        explains why. This check is advisory and never raises.
    """
    lat, lng = PREFLIGHT_COORDINATES
    try:
        response = await geocoder.reverse_geocode(lat, lng, limit=1, no_annotations=True)
    except asyncio.CancelledError:
        raise
    except (NotAuthorizedError, ForbiddenError) as exc:
        return None, f"API key is invalid or blocked: {exc}"
    except GeocodingError as exc:
        return None, f"API test request failed: {exc}"
    except Exception as exc:
        return None, f"Unexpected error during API test request: {exc!r}"

    rate = response.rate
    is_constrained = rate is not None and rate.limit == FREE_TIER_RATE_LIMIT
    logger.debug("Pre-flight check passed (constrained=%s)", is_constrained)
    return is_constrained, None
