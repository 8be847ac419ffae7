"""Concurrent CSV batch geocoding: reader, worker pool, writer."""

from geoflux.batch.options import (
    DEFAULT_OUTPUT_FIELDS,
    BatchOptions,
    Command,
    ErrorPolicy,
)
from geoflux.batch.pipeline import BatchPipeline, PipelineState, batch_geocode
from geoflux.batch.types import BatchResult, BatchStats, Job

__all__ = [
    "DEFAULT_OUTPUT_FIELDS",
    "BatchOptions",
    "BatchPipeline",
    "BatchResult",
    "BatchStats",
    "Command",
    "ErrorPolicy",
    "Job",
    "PipelineState",
    "batch_geocode",
]
