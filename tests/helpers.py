"""Test helpers (small, reusable builders).

Keep this file tiny and purpose-built: response payloads here mirror the
shape the geocoding API returns, trimmed to what the tests assert on.
"""

from __future__ import annotations

from typing import Any

import httpx

from geoflux.client import Geocoder
from geoflux.config import Config
from geoflux.models import GeocodeResponse

VALID_TEST_KEY = "a" * 32


def make_result(
    *,
    formatted: str = "Berlin, Germany",
    lat: float = 52.5170365,
    lng: float = 13.3888599,
    confidence: int = 9,
    type_: str = "city",
    **extra: Any,
) -> dict[str, Any]:
    return {
        "formatted": formatted,
        "geometry": {"lat": lat, "lng": lng},
        "confidence": confidence,
        "components": {"_type": type_, "country": "Germany", "country_code": "de"},
        **extra,
    }


def response_payload(
    *results: dict[str, Any],
    rate: dict[str, int] | None = None,
    code: int = 200,
    message: str = "OK",
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": {"code": code, "message": message},
        "results": list(results),
        "total_results": len(results),
        "documentation": "https://opencagedata.com/api",
    }
    if rate is not None:
        payload["rate"] = rate
    return payload


def make_response(
    *results: dict[str, Any], rate: dict[str, int] | None = None
) -> GeocodeResponse:
    return GeocodeResponse.model_validate(response_payload(*results, rate=rate))


def mock_geocoder(
    handler: Any, *, config: Config | None = None
) -> Geocoder:
    """Return a Geocoder whose HTTP traffic goes to *handler*."""
    return Geocoder(
        config or Config(api_key=VALID_TEST_KEY),
        transport=httpx.MockTransport(handler),
    )
