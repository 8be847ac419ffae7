"""Query-string helpers: reverse-query formatting, URL params, user agent."""

from __future__ import annotations

import math
import platform
import re
from collections.abc import Mapping, Sequence
from numbers import Real
from typing import Any

import httpx

from geoflux.errors import InvalidInputError

_API_KEY_RE = re.compile(r"^[A-Za-z0-9]{32}$")


def _invalid_coordinates(lat: Any, lng: Any) -> InvalidInputError:
    return InvalidInputError(
        "Invalid latitude or longitude provided: must be convertible to float. "
        f"Got: {lat!r}, {lng!r}"
    )


def _format_coordinate(value: float) -> str:
    if value == math.floor(value):
        return f"{int(value)}.0"
    return repr(value)


def format_reverse_query(lat: Any, lng: Any) -> str:
    """Format a coordinate pair as the ``q`` parameter of a reverse request.

    Numbers render integral values with one decimal place (``51`` ->
    ``"51.0"``) and other values with Python's shortest float repr. Two
    strings are validated as numbers and then joined verbatim, so
    ``("51", "0")`` yields ``"51,0"``, not ``"51.0,0.0"``.
    """
    if isinstance(lat, str) and isinstance(lng, str):
        try:
            values = (float(lat), float(lng))
        except ValueError:
            raise _invalid_coordinates(lat, lng) from None
        if not all(math.isfinite(v) for v in values):
            raise _invalid_coordinates(lat, lng)
        return f"{lat},{lng}"

    if not all(
        isinstance(v, Real) and not isinstance(v, bool) for v in (lat, lng)
    ):
        raise _invalid_coordinates(lat, lng)
    lat_f, lng_f = float(lat), float(lng)
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        raise _invalid_coordinates(lat, lng)
    return f"{_format_coordinate(lat_f)},{_format_coordinate(lng_f)}"


def is_valid_api_key(key: str) -> bool:
    """Return True for keys shaped like 32 ASCII alphanumerics."""
    return bool(_API_KEY_RE.match(key))


def _format_param(name: str, value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if name == "bounds" and isinstance(value, Sequence) and len(value) == 4:
        return ",".join(str(v) for v in value)
    if name == "proximity" and isinstance(value, Sequence) and len(value) == 2:
        return format_reverse_query(value[0], value[1])
    if name == "countrycode":
        if isinstance(value, str):
            return value.replace(" ", "").upper()
        if isinstance(value, Sequence):
            return ",".join(str(v).upper() for v in value)
    return str(value)


def build_url_params(
    query: str, api_key: str, params: Mapping[str, Any] | None = None
) -> dict[str, str]:
    """Build the string-valued query parameters for one request.

    ``None`` values are dropped so callers can pass optional settings through
    unconditionally.
    """
    out = {"key": api_key, "q": query}
    for name, value in (params or {}).items():
        if value is None:
            continue
        out[name] = _format_param(name, value)
    return out


def generate_user_agent(comment: str | None = None) -> str:
    """Return the ``User-Agent`` header value for API requests."""
    from geoflux import __version__

    base = (
        f"geoflux/{__version__} Python/{platform.python_version()} "
        f"httpx/{httpx.__version__}"
    )
    if comment is not None and comment.strip():
        return f"{base} {re.sub(r'[()]', '', comment.strip())}"
    return base
