"""Tagged outcome variants for calls that cross task boundaries.

Workers receive a ``Success`` or a ``Failure`` from the retrying executor
instead of an exception, so row-level failures travel through the batch
pipeline as plain data and only escalate where the error policy says so.
"""

from __future__ import annotations

import dataclasses
import typing

from geoflux.errors import GeocodingError

TSuccess = typing.TypeVar("TSuccess")


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A completed call and its value."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure:
    """A call that ended with a classified error."""

    error: GeocodingError


Outcome = Success[TSuccess] | Failure
