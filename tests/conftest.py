"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, marker registration,
and automatic API test skipping. All fixtures here are autouse unless noted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import Any

import pytest

from geoflux.batch.preflight import PREFLIGHT_COORDINATES
from geoflux.models import GeocodeResponse
from geoflux.query import format_reverse_query

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class Call:
    kind: str
    query: str
    params: dict[str, Any]


@dataclass
class FakeGeocoder:
    """Geocoder test double for pipeline behavior verification.

    Responses are scripted per query string (forward text, or the formatted
    ``"lat,lng"`` for reverse calls). Unscripted queries get a one-result
    response whose ``formatted`` echoes the query. The pre-flight check is
    answered from ``preflight`` and recorded separately.
    """

    script: dict[str, list[GeocodeResponse | BaseException]] = field(
        default_factory=dict
    )
    preflight: GeocodeResponse | BaseException | None = None
    delay_for: Callable[[str], float] | None = None
    calls: list[Call] = field(default_factory=list)
    preflight_calls: int = 0
    in_flight: int = 0
    max_in_flight: int = 0

    async def geocode(
        self, query: str, *, timeout: float | None = None, **params: Any
    ) -> GeocodeResponse:
        del timeout
        return await self._respond("forward", query, params)

    async def reverse_geocode(
        self, lat: float, lng: float, *, timeout: float | None = None, **params: Any
    ) -> GeocodeResponse:
        del timeout
        if (lat, lng) == PREFLIGHT_COORDINATES:
            self.preflight_calls += 1
            if isinstance(self.preflight, BaseException):
                raise self.preflight
            return self.preflight or _response_for("preflight")
        return await self._respond("reverse", format_reverse_query(lat, lng), params)

    async def _respond(
        self, kind: str, query: str, params: dict[str, Any]
    ) -> GeocodeResponse:
        self.calls.append(Call(kind, query, dict(params)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delay_for(query) if self.delay_for else 0.0
            # Always yield so concurrent workers interleave.
            await asyncio.sleep(delay)
            queued = self.script.get(query)
            item = queued.pop(0) if queued else _response_for(query)
            if isinstance(item, BaseException):
                raise item
            return item
        finally:
            self.in_flight -= 1

    def queries(self, kind: str | None = None) -> list[str]:
        return [c.query for c in self.calls if kind is None or c.kind == kind]


def _response_for(query: str) -> GeocodeResponse:
    from tests.helpers import make_response, make_result

    return make_response(make_result(formatted=f"Place {query}"))


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_geocoder_env(request, monkeypatch):
    """Ensure a clean OPENCAGE_* environment for each test.

    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("OPENCAGE_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================


@pytest.fixture
def opencage_api_key():
    """Return OPENCAGE_API_KEY or skip the test if unavailable."""
    key = os.getenv("OPENCAGE_API_KEY")
    if not key:
        pytest.skip("OPENCAGE_API_KEY not set")
    return key
