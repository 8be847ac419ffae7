"""Transient records passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import TYPE_CHECKING

from geoflux.models import GeocodeResponse

if TYPE_CHECKING:
    from geoflux.batch.options import Command
    from geoflux.errors import GeocodingError
    from geoflux.models import GeocodeResult


@dataclass(frozen=True, slots=True)
class Job:
    """One accepted input row, consumed by exactly one worker."""

    row_id: int
    query: str
    original_row: tuple[str, ...]
    command: Command


@dataclass(frozen=True, slots=True)
class BatchResult:
    """The outcome of one job, consumed by the writer."""

    row_id: int
    success: bool
    outcome: GeocodeResponse | GeocodingError | None
    original_row: tuple[str, ...]

    @property
    def response(self) -> GeocodeResponse | None:
        return self.outcome if isinstance(self.outcome, GeocodeResponse) else None

    @property
    def result(self) -> GeocodeResult | None:
        """First matched place of a successful response."""
        response = self.response
        if response is None or not response.results:
            return None
        return response.results[0]


@dataclass
class BatchStats:
    """Summary returned by a completed batch run."""

    rows_read: int = 0
    rows_queued: int = 0
    rows_written: int = 0
    workers: int = 0
    started_at: float = 0.0
    duration_s: float = 0.0

    def finish(self) -> None:
        self.duration_s = time.perf_counter() - self.started_at
