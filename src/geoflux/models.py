"""Response models for the geocoding API.

Only the fields the client and the batch pipeline rely on are typed; free-form
sections (``components``, ``annotations``) stay as mappings so new upstream
keys remain reachable through ``deep_get`` without model changes.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class RateInfo(_ApiModel):
    """Request quota reported by the API (free-trial keys only)."""

    limit: int | None = None
    remaining: int | None = None
    reset: int | None = None


class Status(_ApiModel):
    code: int
    message: str = ""


class Geometry(_ApiModel):
    lat: float
    lng: float


class Bounds(_ApiModel):
    northeast: Geometry
    southwest: Geometry


class GeocodeResult(_ApiModel):
    """One matched place."""

    formatted: str | None = None
    geometry: Geometry | None = None
    bounds: Bounds | None = None
    confidence: int | None = None
    components: dict[str, Any] | None = None
    annotations: dict[str, Any] | None = None
    distance_from_q: dict[str, int] | None = None


class GeocodeResponse(_ApiModel):
    """A full API response; ``results`` may be empty."""

    status: Status
    results: list[GeocodeResult] = Field(default_factory=list)
    rate: RateInfo | None = None
    total_results: int = 0
    documentation: str | None = None
    licenses: list[dict[str, str]] = Field(default_factory=list)
    thanks: str | None = None
    timestamp: dict[str, Any] = Field(default_factory=dict)
    stay_informed: dict[str, str] = Field(default_factory=dict)


MISSING: Any = object()

_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def _split_path(path: str) -> list[str | int]:
    """Split ``"results[0].geometry.lat"`` into ``["results", 0, "geometry", "lat"]``."""
    keys: list[str | int] = []
    for name, index in _PATH_TOKEN.findall(path):
        keys.append(int(index) if index else name)
    return keys


def _step(current: Any, key: str | int) -> Any:
    if isinstance(key, int):
        if isinstance(current, Sequence) and not isinstance(current, str):
            return current[key] if -len(current) <= key < len(current) else MISSING
        return MISSING
    if isinstance(current, Mapping):
        return current.get(key, MISSING)
    if isinstance(current, BaseModel):
        if key in type(current).model_fields:
            return getattr(current, key)
        extra = current.model_extra or {}
        return extra.get(key, MISSING)
    return MISSING


def deep_get(data: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted *path* through models, mappings and lists.

    Absent keys, out-of-range indices and ``None`` intermediates all return
    *default*; lookups never raise.
    """
    if not path.strip():
        return default
    current = data
    for key in _split_path(path):
        if current is None or current is MISSING:
            return default
        current = _step(current, key)
    if current is MISSING or current is None:
        return default
    return current
