"""Worker stage: turn jobs into results under the configured error policy."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from geoflux.batch.options import Command, ErrorPolicy
from geoflux.batch.types import BatchResult
from geoflux.errors import GeocodingError, ZeroResultsError
from geoflux.outcome import Failure

if TYPE_CHECKING:
    from geoflux.batch.options import BatchOptions
    from geoflux.batch.types import Job
    from geoflux.client import Geocoder
    from geoflux.models import GeocodeResponse
    from geoflux.outcome import Outcome
    from geoflux.retry import RetryingExecutor

logger = logging.getLogger(__name__)


class RowProcessingFailed(Exception):
    """A row failed under ``on_error='fail'``; the whole batch must stop."""

    def __init__(self, row_id: int, error: GeocodingError) -> None:
        super().__init__(f"L{row_id}: {error}")
        self.row_id = row_id
        self.error = error


def build_request_params(options: BatchOptions) -> dict[str, Any]:
    """Merge caller params with the settings every batch request forces."""
    params: dict[str, Any] = dict(options.extra_params)
    params["no_annotations"] = True
    if not options.wants_all_results:
        params["limit"] = 1
    return params


class BatchWorker:
    """One of N symmetric workers; holds at most one job at a time."""

    def __init__(
        self,
        worker_id: int,
        geocoder: Geocoder,
        jobs: asyncio.Queue[Job],
        results: asyncio.Queue[BatchResult],
        options: BatchOptions,
        executor: RetryingExecutor,
    ) -> None:
        self.worker_id = worker_id
        self.geocoder = geocoder
        self.jobs = jobs
        self.results = results
        self.options = options
        self.executor = executor
        self.params = build_request_params(options)

    async def run(self) -> None:
        logger.debug("Worker %d started.", self.worker_id)
        processed = 0
        try:
            while True:
                job = await self.jobs.get()
                try:
                    result = await self.process(job)
                finally:
                    self.jobs.task_done()
                processed += 1
                if result is not None:
                    await self.results.put(result)
        except asyncio.QueueShutDown:
            pass
        logger.debug(
            "Worker %d finished after %d job(s).", self.worker_id, processed
        )

    async def process(self, job: Job) -> BatchResult | None:
        """Geocode one job; None means the row is dropped.

        Raises:
            RowProcessingFailed: The request failed and the policy is ``fail``.
        """
        logger.debug("Worker %d processing row %d", self.worker_id, job.row_id)
        gate = self.options.admission_gate
        async with gate if gate is not None else contextlib.nullcontext():
            outcome = await self._call(job)

        if isinstance(outcome, Failure):
            if self.executor.aborted:
                logger.debug(
                    "L%d: Dropping row, batch is shutting down: %s", job.row_id, outcome.error
                )
                return None
            return self._handle_error(job, outcome.error)

        response = outcome.value
        if not response.results:
            message = "Query successful but returned 0 results."
            logger.info("L%d: %s Query: %r", job.row_id, message, job.query)
            return BatchResult(
                row_id=job.row_id,
                success=False,
                outcome=ZeroResultsError(message),
                original_row=job.original_row,
            )
        return BatchResult(
            row_id=job.row_id,
            success=True,
            outcome=response,
            original_row=job.original_row,
        )

    async def _call(self, job: Job) -> Outcome[GeocodeResponse]:
        timeout = self.options.timeout
        if job.command is Command.REVERSE:
            lat_str, lng_str = job.query.split(",", 1)
            lat, lng = float(lat_str), float(lng_str)
            return await self.executor.execute(
                lambda: self.geocoder.reverse_geocode(
                    lat, lng, timeout=timeout, **self.params
                )
            )
        return await self.executor.execute(
            lambda: self.geocoder.geocode(job.query, timeout=timeout, **self.params)
        )

    def _handle_error(self, job: Job, error: GeocodingError) -> BatchResult | None:
        policy = self.options.on_error
        if policy is ErrorPolicy.FAIL:
            logger.error(
                "L%d: Unrecoverable error (%s). Failing batch job.", job.row_id, error.kind
            )
            raise RowProcessingFailed(job.row_id, error)
        if policy is ErrorPolicy.SKIP:
            logger.warning("L%d: Skipping row due to error: %s", job.row_id, error)
            return None
        logger.warning("L%d: Error geocoding %r: %s", job.row_id, job.query, error)
        return BatchResult(
            row_id=job.row_id,
            success=False,
            outcome=error,
            original_row=job.original_row,
        )
