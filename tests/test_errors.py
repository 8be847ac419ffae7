from __future__ import annotations

import pytest

from geoflux.errors import (
    BatchProcessingError,
    ErrorKind,
    GeocodingError,
    NetworkError,
    NotAuthorizedError,
    RateLimitExceededError,
    ServerError,
    ZeroResultsError,
)

pytestmark = pytest.mark.unit


def test_geocoding_error_carries_message_and_hint() -> None:
    err = NotAuthorizedError("bad key", hint="set OPENCAGE_API_KEY")

    assert str(err) == "bad key"
    assert err.message == "bad key"
    assert err.hint == "set OPENCAGE_API_KEY"
    assert err.kind is ErrorKind.NOT_AUTHORIZED


def test_hint_defaults_to_none() -> None:
    assert GeocodingError("fail").hint is None
    assert GeocodingError("fail").kind is ErrorKind.UNKNOWN


def test_subclass_hierarchy() -> None:
    """Every library error is catchable as GeocodingError."""
    for err in (
        BatchProcessingError("x"),
        ZeroResultsError("x"),
        NetworkError("x"),
        ServerError("x", status_code=503),
    ):
        assert isinstance(err, GeocodingError)


def test_kind_values_are_upper_snake_status_strings() -> None:
    assert str(ZeroResultsError.kind) == "ZERO_RESULTS"
    assert str(NotAuthorizedError.kind) == "NOT_AUTHORIZED"
    assert all(kind.value == kind.name for kind in ErrorKind)


def test_server_error_appends_status_code() -> None:
    err = ServerError("upstream down", status_code=503)

    assert err.status_code == 503
    assert str(err) == "upstream down (HTTP Status: 503)"


def test_network_error_keeps_cause() -> None:
    cause = ConnectionResetError("reset by peer")
    err = NetworkError("connection failed", cause=cause)

    assert err.cause is cause


def test_rate_limit_exceeded_renders_reset_in_utc_and_details() -> None:
    err = RateLimitExceededError(
        "quota exceeded", limit=2500, remaining=0, reset=1_700_000_000
    )

    text = str(err)
    assert text.startswith("quota exceeded")
    assert "(Quota resets at 2023-11-14 22:13:20 UTC)" in text
    assert text.endswith("[Details: limit=2500, remaining=0]")


def test_rate_limit_exceeded_without_metadata_is_plain_message() -> None:
    assert str(RateLimitExceededError("quota exceeded")) == "quota exceeded"
