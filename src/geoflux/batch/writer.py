"""Writer stage: project results onto output columns and write CSV rows."""

from __future__ import annotations

import asyncio
import csv
import json
import logging
from typing import TYPE_CHECKING, Any, TextIO

from pydantic import BaseModel

from geoflux.models import deep_get

if TYPE_CHECKING:
    from geoflux.batch.options import BatchOptions
    from geoflux.batch.progress import BatchProgress
    from geoflux.batch.types import BatchResult, BatchStats

logger = logging.getLogger(__name__)

STATUS_FIELD = "status_message"
RAW_JSON_FIELD = "raw_json"


def status_message(batch_result: BatchResult) -> str:
    """Return ``"OK"`` for successes, else the error kind (e.g. ``"ZERO_RESULTS"``)."""
    if batch_result.success:
        return "OK"
    outcome = batch_result.outcome
    kind = getattr(outcome, "kind", None)
    return str(kind) if kind is not None else "UNKNOWN_ERROR"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, BaseModel):
        return value.model_dump_json(exclude_none=True)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def project_fields(batch_result: BatchResult, fields: tuple[str, ...]) -> list[str]:
    """Return the original row followed by one cell per output field.

    Failed rows get empty cells for everything except ``status_message``.
    """
    row = list(batch_result.original_row)
    result = batch_result.result if batch_result.success else None
    for name in fields:
        if name == STATUS_FIELD:
            row.append(status_message(batch_result))
        elif result is None:
            row.append("")
        elif name == RAW_JSON_FIELD:
            row.append(result.model_dump_json(exclude_none=True))
        elif name.startswith("results["):
            row.append(_cell(deep_get(batch_result.response, name)))
        else:
            row.append(_cell(deep_get(result, name)))
    return row


class BatchWriter:
    """Drains the result queue into the output stream.

    In ordered mode results are held in ``pending`` until every lower
    ``row_id`` has arrived; rows behind a gap left by a skipped row wait until
    the end of the stream and are then flushed in ``row_id`` order.
    """

    def __init__(
        self,
        stream: TextIO,
        results: asyncio.Queue[BatchResult],
        options: BatchOptions,
        *,
        progress: BatchProgress,
        stats: BatchStats,
    ) -> None:
        self.stream = stream
        self.results = results
        self.options = options
        self.progress = progress
        self.stats = stats
        self.header: list[str] | None = None
        self.pending: dict[int, BatchResult] = {}
        self.next_row_id = 1
        self._writer = csv.writer(stream, lineterminator="\n")
        self._aborted = False

    def abort(self) -> None:
        """Stop without flushing buffered rows (the batch failed)."""
        self._aborted = True

    async def run(self) -> None:
        logger.debug("Writer task started.")
        try:
            while True:
                batch_result = await self.results.get()
                self._accept(batch_result)
                self.results.task_done()
        except asyncio.QueueShutDown:
            pass

        if self._aborted:
            logger.debug(
                "Writer aborted with %d buffered row(s) unwritten.", len(self.pending)
            )
            return

        if self.pending:
            logger.debug("Writing remaining %d buffered items.", len(self.pending))
            for row_id in sorted(self.pending):
                self._write(self.pending.pop(row_id))

        if self.header is None:
            logger.warning("Batch input was empty or unreadable, output may be empty.")
        self.stream.flush()
        logger.debug("Writer task finished. Wrote %d rows.", self.stats.rows_written)

    def _accept(self, batch_result: BatchResult) -> None:
        if self.header is None:
            self._write_header(batch_result)

        if not self.options.ordered:
            self._write(batch_result)
            return

        self.pending[batch_result.row_id] = batch_result
        while self.next_row_id in self.pending:
            self._write(self.pending.pop(self.next_row_id))
            self.next_row_id += 1

    def _write_header(self, first: BatchResult) -> None:
        placeholders = [f"orig_col_{i}" for i in range(1, len(first.original_row) + 1)]
        self.header = [*placeholders, *self.options.output_fields]
        self._writer.writerow(self.header)

    def _write(self, batch_result: BatchResult) -> None:
        self._writer.writerow(project_fields(batch_result, self.options.output_fields))
        self.stats.rows_written += 1
        self.progress.mark_written()
