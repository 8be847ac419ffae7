"""Geocoder: single-attempt async transport for the geocoding API.

Every call is exactly one HTTP request. Retrying is the caller's concern
(``geoflux.retry``), which keeps the batch pipeline and the front doors in
charge of their own attempt budgets.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic import ValidationError

from geoflux._http import RATE_LIMIT_HEADERS
from geoflux.classify import classify_error, error_for_status
from geoflux.errors import BadResponseError, GeocodingError, InvalidInputError
from geoflux.models import GeocodeResponse, RateInfo
from geoflux.query import (
    build_url_params,
    format_reverse_query,
    generate_user_agent,
    is_valid_api_key,
)

if TYPE_CHECKING:
    from types import TracebackType

    from geoflux.config import Config

logger = logging.getLogger(__name__)


def _parse_rate_headers(headers: httpx.Headers) -> RateInfo | None:
    raw = [headers.get(name, "") for name in RATE_LIMIT_HEADERS]
    if not any(raw):
        return None
    values: list[int | None] = []
    for value in raw:
        try:
            values.append(int(value) if value else None)
        except ValueError:
            values.append(None)
    if all(v is None for v in values):
        logger.warning("Found rate limit headers but could not parse any as integers: %s", raw)
        return None
    limit, remaining, reset = values
    return RateInfo(limit=limit, remaining=remaining, reset=reset)


def _parse_rate_body(body: Any) -> RateInfo | None:
    if isinstance(body, dict) and isinstance(body.get("rate"), dict):
        try:
            return RateInfo.model_validate(body["rate"])
        except ValidationError:
            return None
    return None


def _error_from_response(response: httpx.Response) -> GeocodingError:
    status = response.status_code
    message = f"API request failed with status {status}"
    body: Any = None
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        text = response.text
        message = (
            f"{message}: {text}"
            if text
            else f"{message} (Could not parse error details from empty response body)"
        )
    else:
        api_status = body.get("status") if isinstance(body, dict) else None
        if isinstance(api_status, dict) and api_status.get("message"):
            message = str(api_status["message"])

    rate = _parse_rate_headers(response.headers) or _parse_rate_body(body)
    return error_for_status(status, message, rate=rate)


class Geocoder:
    """Async client for forward and reverse geocoding.

    Example:
        async with Geocoder(Config(api_key="...")) as geocoder:
            response = await geocoder.geocode("Berlin, Germany")
            print(response.results[0].formatted)
    """

    def __init__(
        self,
        config: Config,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.user_agent = generate_user_agent(config.user_agent_comment)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.user_agent},
            timeout=config.timeout,
            transport=transport,
        )
        if not is_valid_api_key(config.api_key or ""):
            logger.warning(
                "API key format appears potentially invalid (should be 32 alphanumeric chars)."
            )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def geocode(
        self, query: str, *, timeout: float | None = None, **params: Any
    ) -> GeocodeResponse:
        """Resolve a free-text place description to matching places.

        Args:
            query: Address or place name.
            timeout: Per-request timeout override in seconds.
            **params: Optional API parameters (``language``, ``countrycode``,
                ``bounds``, ``proximity``, ``limit``, ``no_annotations``, ...).

        Raises:
            InvalidInputError: If *query* is empty.
            GeocodingError: Classified transport or API failure.
        """
        if not query.strip():
            raise InvalidInputError("Query cannot be empty.")
        return await self._request(query, params, timeout=timeout)

    async def reverse_geocode(
        self,
        lat: float,
        lng: float,
        *,
        timeout: float | None = None,
        **params: Any,
    ) -> GeocodeResponse:
        """Resolve a coordinate pair to the places at that location.

        Raises:
            InvalidInputError: If the coordinates are not numbers.
            GeocodingError: Classified transport or API failure.
        """
        query = format_reverse_query(lat, lng)
        return await self._request(query, params, timeout=timeout)

    async def _request(
        self, query: str, params: dict[str, Any], *, timeout: float | None
    ) -> GeocodeResponse:
        url_params = build_url_params(query, self.config.api_key or "", params)
        request_timeout = timeout if timeout is not None else self.config.timeout
        try:
            response = await self._client.get(
                self.config.api_base_url,
                params=url_params,
                timeout=request_timeout,
            )
        except httpx.HTTPError as exc:
            raise classify_error(exc) from exc

        if response.status_code != 200:
            raise _error_from_response(response)

        try:
            payload = response.json()
            parsed = GeocodeResponse.model_validate(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            raise BadResponseError(
                f"Failed to parse successful JSON response: {exc}"
            ) from exc

        if parsed.rate is None:
            rate = _parse_rate_headers(response.headers)
            if rate is not None:
                parsed = parsed.model_copy(update={"rate": rate})
        return parsed
