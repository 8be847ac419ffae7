"""Batch options: immutable pipeline configuration with early validation."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from geoflux.errors import BatchProcessingError
from geoflux.retry import RetryPolicy

DEFAULT_OUTPUT_FIELDS: tuple[str, ...] = (
    "formatted",
    "geometry.lat",
    "geometry.lng",
    "confidence",
    "components._type",
    "status_message",
)

# Bounded queue capacity between reader, workers and writer.
DEFAULT_QUEUE_SIZE = 1000

# Request parameters owned by the pipeline itself.
RESERVED_PARAMS = frozenset({"q", "key", "timeout"})


class ErrorPolicy(StrEnum):
    """What a worker does with a row whose request failed."""

    LOG = "log"
    SKIP = "skip"
    FAIL = "fail"


class Command(StrEnum):
    """Geocoding direction for one row."""

    FORWARD = "forward"
    REVERSE = "reverse"
    SKIP = "skip"


@dataclass(frozen=True)
class BatchOptions:
    """Configuration for ``batch_geocode``.

    String values are accepted for ``on_error`` and ``command`` and coerced
    to their enums; anything invalid raises ``BatchProcessingError`` before
    any input is read.
    """

    workers: int = 4
    retries: int = 5
    #: Per-request timeout in seconds.
    timeout: float = 60.0
    #: 1-based column indices used to build the query; *None* uses every column.
    input_columns: tuple[int, ...] | None = None
    output_fields: tuple[str, ...] = DEFAULT_OUTPUT_FIELDS
    on_error: ErrorPolicy = ErrorPolicy.LOG
    #: Write rows in input order instead of completion order.
    ordered: bool = False
    progress: bool = True
    #: Maximum number of input rows to read.
    limit: int | None = None
    extra_params: Mapping[str, Any] = field(default_factory=dict)
    #: Shared semaphore bounding in-flight requests across workers (and runs).
    admission_gate: asyncio.Semaphore | None = None
    #: Force every row to one direction instead of auto-detecting.
    command: Command | None = None
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 60.0
    queue_size: int = DEFAULT_QUEUE_SIZE

    def __post_init__(self) -> None:
        """Coerce enum-like fields and validate shapes early for clear errors."""
        try:
            object.__setattr__(self, "on_error", ErrorPolicy(self.on_error))
        except ValueError:
            raise BatchProcessingError(
                f"Invalid 'on_error' option: {self.on_error!r}. "
                "Must be 'log', 'skip', or 'fail'."
            ) from None

        if self.command is not None:
            try:
                command = Command(self.command)
            except ValueError:
                command = None
            if command not in (Command.FORWARD, Command.REVERSE):
                raise BatchProcessingError(
                    f"Invalid 'command' option: {self.command!r}. "
                    "Must be 'forward' or 'reverse'."
                )
            object.__setattr__(self, "command", command)

        if self.workers < 1:
            raise BatchProcessingError(f"workers must be >= 1, got {self.workers}")
        if self.retries < 0:
            raise BatchProcessingError(f"retries must be >= 0, got {self.retries}")
        if self.timeout <= 0:
            raise BatchProcessingError(f"timeout must be > 0, got {self.timeout}")
        if self.limit is not None and self.limit < 1:
            raise BatchProcessingError(f"limit must be >= 1, got {self.limit}")
        if self.retry_base_delay_s < 0 or self.retry_max_delay_s < 0:
            raise BatchProcessingError("retry delays must be >= 0")
        if self.queue_size < 1:
            raise BatchProcessingError(f"queue_size must be >= 1, got {self.queue_size}")

        if self.input_columns is not None:
            columns = tuple(self.input_columns)
            if not columns or any(
                not isinstance(c, int) or isinstance(c, bool) or c < 1 for c in columns
            ):
                raise BatchProcessingError(
                    f"input_columns must be non-empty 1-based integers, got {self.input_columns!r}",
                    hint="Pass input_columns=(1, 2) for latitude/longitude in the first two columns.",
                )
            object.__setattr__(self, "input_columns", columns)

        if isinstance(self.output_fields, str):
            raise BatchProcessingError(
                "output_fields must be a sequence of field names, not a string",
                hint="Pass output_fields=('formatted', 'geometry.lat').",
            )
        object.__setattr__(self, "output_fields", tuple(self.output_fields))
        reserved = sorted(RESERVED_PARAMS.intersection(self.extra_params))
        if reserved:
            raise BatchProcessingError(
                f"extra_params may not set reserved parameters: {', '.join(reserved)}",
                hint="Set the request timeout with BatchOptions.timeout instead.",
            )
        object.__setattr__(self, "extra_params", dict(self.extra_params))

    @property
    def wants_all_results(self) -> bool:
        """True when an output field indexes into the full result list."""
        return any("results[" in name for name in self.output_fields)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retries,
            base_delay_s=self.retry_base_delay_s,
            max_delay_s=self.retry_max_delay_s,
        )
