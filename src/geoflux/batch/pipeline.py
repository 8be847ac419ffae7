"""Batch pipeline coordinator.

Wires one reader, N workers and one writer together over two bounded queues
and owns the run's lifecycle:

    INIT -> PREFLIGHTING -> RUNNING -> DRAINING -> COMPLETED
                 \\              \\
                  +--------------+-----------------> FAILED

A fatal condition anywhere (preflight failure, a row failing under
``on_error='fail'``, an I/O error in the reader or writer) shuts both queues
down immediately and stops pending retries. In-flight requests finish on their
own, and a single ``BatchProcessingError`` chained to the root cause is raised.
"""

from __future__ import annotations

import asyncio
from contextlib import ExitStack
import dataclasses
from enum import StrEnum
import logging
import os
import time
from typing import IO, TYPE_CHECKING, Any

from geoflux.batch.options import BatchOptions
from geoflux.batch.preflight import preflight_check
from geoflux.batch.progress import BatchProgress
from geoflux.batch.reader import BatchReader
from geoflux.batch.types import BatchResult, BatchStats, Job
from geoflux.batch.worker import BatchWorker, RowProcessingFailed
from geoflux.batch.writer import BatchWriter
from geoflux.errors import BatchProcessingError
from geoflux.retry import RetryingExecutor

if TYPE_CHECKING:
    from geoflux.client import Geocoder

logger = logging.getLogger(__name__)

StreamArg = str | os.PathLike[str] | IO[str]


class PipelineState(StrEnum):
    INIT = "init"
    PREFLIGHTING = "preflighting"
    RUNNING = "running"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"


def _open_stream(stack: ExitStack, target: StreamArg, mode: str) -> IO[str]:
    """Open path targets (closed by *stack*); pass file objects through untouched."""
    if isinstance(target, (str, os.PathLike)):
        return stack.enter_context(open(target, mode, newline="", encoding="utf-8"))  # noqa: SIM115
    return target


def _first_error(tasks: set[asyncio.Task[None]]) -> BaseException | None:
    for task in tasks:
        if not task.cancelled() and task.exception() is not None:
            return task.exception()
    return None


class BatchPipeline:
    """One batch run. Instances are single-use."""

    def __init__(self, geocoder: Geocoder, options: BatchOptions) -> None:
        self.geocoder = geocoder
        self.options = options
        self.state = PipelineState.INIT
        self.worker_count = options.workers
        self.stats = BatchStats()

    def _transition(self, state: PipelineState) -> None:
        logger.debug("Batch pipeline %s -> %s", self.state, state)
        self.state = state

    async def run(self, input: StreamArg, output: StreamArg) -> BatchStats:  # noqa: A002
        if self.state is not PipelineState.INIT:
            raise BatchProcessingError("BatchPipeline instances are single-use")
        self.stats.started_at = time.perf_counter()
        self._transition(PipelineState.PREFLIGHTING)
        preflight = asyncio.create_task(preflight_check(self.geocoder))
        try:
            with ExitStack() as stack:
                in_stream = _open_stream(stack, input, "r")
                out_stream = _open_stream(stack, output, "w")

                is_constrained, message = await preflight
                if message is not None:
                    raise BatchProcessingError(
                        f"API key pre-flight check failed: {message}"
                    )
                if is_constrained and self.worker_count > 1:
                    logger.warning(
                        "Free trial API key detected. Reducing worker count to 1 "
                        "to comply with rate limits."
                    )
                    self.worker_count = 1

                progress = BatchProgress(enabled=self.options.progress)
                stack.callback(progress.close)
                await self._run_stages(in_stream, out_stream, progress)
        except asyncio.CancelledError:
            self._transition(PipelineState.FAILED)
            raise
        except BatchProcessingError:
            self._transition(PipelineState.FAILED)
            logger.error("Batch geocoding failed.")
            raise
        except Exception as exc:
            self._transition(PipelineState.FAILED)
            logger.error("Batch geocoding failed.", exc_info=exc)
            raise BatchProcessingError(
                f"An unexpected error occurred during batch processing: {exc}"
            ) from exc
        finally:
            if not preflight.done():
                preflight.cancel()
                await asyncio.gather(preflight, return_exceptions=True)

        self.stats.workers = self.worker_count
        self.stats.finish()
        self._transition(PipelineState.COMPLETED)
        logger.info(
            "Batch geocoding completed: %d row(s) written in %.2fs.",
            self.stats.rows_written,
            self.stats.duration_s,
        )
        return self.stats

    async def _run_stages(
        self, in_stream: IO[str], out_stream: IO[str], progress: BatchProgress
    ) -> None:
        jobs: asyncio.Queue[Job] = asyncio.Queue(maxsize=self.options.queue_size)
        results: asyncio.Queue[BatchResult] = asyncio.Queue(
            maxsize=self.options.queue_size
        )
        executor = RetryingExecutor(self.options.retry_policy())

        reader = BatchReader(
            in_stream, jobs, self.options, progress=progress, stats=self.stats
        )
        writer = BatchWriter(
            out_stream, results, self.options, progress=progress, stats=self.stats
        )
        workers = [
            BatchWorker(i, self.geocoder, jobs, results, self.options, executor)
            for i in range(1, self.worker_count + 1)
        ]

        self._transition(PipelineState.RUNNING)
        reader_task = asyncio.create_task(reader.run(), name="geoflux-reader")
        writer_task = asyncio.create_task(writer.run(), name="geoflux-writer")
        worker_tasks = [
            asyncio.create_task(w.run(), name=f"geoflux-worker-{w.worker_id}")
            for w in workers
        ]
        all_tasks = [reader_task, writer_task, *worker_tasks]

        try:
            upstream: set[asyncio.Task[None]] = {reader_task, *worker_tasks}
            watched: set[asyncio.Task[None]] = {*upstream, writer_task}
            fatal: BaseException | None = None
            while upstream and fatal is None:
                done, _ = await asyncio.wait(
                    watched, return_when=asyncio.FIRST_EXCEPTION
                )
                watched -= done
                upstream -= done
                fatal = _first_error(done)

            if fatal is None:
                self._transition(PipelineState.DRAINING)
                logger.debug("All worker tasks finished.")
                results.shutdown()
                await writer_task
                return

            executor.abort()
            writer.abort()
            jobs.shutdown(immediate=True)
            results.shutdown(immediate=True)
            await asyncio.gather(*all_tasks, return_exceptions=True)
        finally:
            pending = [task for task in all_tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if isinstance(fatal, RowProcessingFailed):
            raise BatchProcessingError(f"Worker task failed: {fatal}") from fatal.error
        raise BatchProcessingError(f"Batch stage failed: {fatal}") from fatal


async def batch_geocode(
    geocoder: Geocoder,
    input: StreamArg,  # noqa: A002
    output: StreamArg,
    options: BatchOptions | None = None,
    **overrides: Any,
) -> BatchStats:
    """Geocode every row of a CSV input and write the results as CSV.

    Args:
        geocoder: Client used for every request (and the pre-flight check).
        input: CSV path or text stream. Headerless when ``input_columns`` is
            set, otherwise the first row is treated as a header and skipped.
        output: CSV path or text stream for the results.
        options: Batch configuration; keyword *overrides* are applied on top.

    Returns:
        BatchStats for the completed run.

    Raises:
        BatchProcessingError: Invalid options, a failed pre-flight check, or a
            fatal row error under ``on_error='fail'``.

    Example:
        async with Geocoder(Config()) as geocoder:
            await batch_geocode(geocoder, "in.csv", "out.csv", workers=8, ordered=True)
    """
    try:
        if options is None:
            options = BatchOptions(**overrides)
        elif overrides:
            options = dataclasses.replace(options, **overrides)
    except TypeError as exc:
        raise BatchProcessingError(f"Unknown batch option: {exc}") from exc

    return await BatchPipeline(geocoder, options).run(input, output)
