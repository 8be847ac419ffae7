"""Reader stage: stream CSV rows into the job queue."""

from __future__ import annotations

import asyncio
import csv
import logging
from typing import TYPE_CHECKING, TextIO

from geoflux.batch.rows import parse_input_row
from geoflux.batch.types import Job

if TYPE_CHECKING:
    from geoflux.batch.options import BatchOptions
    from geoflux.batch.progress import BatchProgress
    from geoflux.batch.types import BatchStats

logger = logging.getLogger(__name__)


def estimate_total_rows(stream: TextIO, *, has_header: bool) -> int | None:
    """Count data lines of a seekable stream positioned at its start.

    Returns None for unseekable or already-advanced streams. The count is an
    estimate: quoted fields spanning lines are counted once per line.
    """
    try:
        if not stream.seekable() or stream.tell() != 0:
            return None
        lines = sum(1 for _ in stream)
        stream.seek(0)
    except OSError as exc:
        logger.warning("Could not estimate total lines for progress bar: %s", exc)
        try:
            stream.seek(0)
        except OSError:
            pass
        return None
    return max(0, lines - (1 if has_header else 0))


class BatchReader:
    """Parses input rows and feeds accepted jobs to the workers.

    The job queue is shut down when reading ends, which is how workers learn
    there is no more work.
    """

    def __init__(
        self,
        stream: TextIO,
        jobs: asyncio.Queue[Job],
        options: BatchOptions,
        *,
        progress: BatchProgress,
        stats: BatchStats,
    ) -> None:
        self.stream = stream
        self.jobs = jobs
        self.options = options
        self.progress = progress
        self.stats = stats

    async def run(self) -> None:
        logger.debug("Reader task started.")
        has_header = self.options.input_columns is None
        row_id = 0
        try:
            total = estimate_total_rows(self.stream, has_header=has_header)
            if self.options.limit is not None and total is not None:
                total = min(total, self.options.limit)
            self.progress.set_total(total)

            reader = csv.reader(self.stream)
            if has_header:
                next(reader, None)

            for row in reader:
                if self.options.limit is not None and row_id >= self.options.limit:
                    logger.info(
                        "Reached input row limit (%d). Stopping reader.",
                        self.options.limit,
                    )
                    break
                row_id += 1
                self.stats.rows_read = row_id

                query, command = parse_input_row(row, row_id, self.options)
                if query is None:
                    continue

                job = Job(
                    row_id=row_id,
                    query=query,
                    original_row=tuple(row),
                    command=command,
                )
                await self.jobs.put(job)
                self.stats.rows_queued += 1
                self.progress.mark_queued(row_id)

            if self.progress.total is None:
                self.progress.set_total(row_id)
        except asyncio.QueueShutDown:
            logger.debug("Job queue shut down; reader stopping at row %d.", row_id)
        finally:
            logger.debug(
                "Reader task finished. Read %d rows. Closing job queue.", row_id
            )
            self.jobs.shutdown()
