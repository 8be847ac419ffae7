"""Progress reporting for batch runs.

The reader owns ``queued`` and the writer owns ``written``; neither counter is
touched by more than one task, and neither ever decreases.
"""

from __future__ import annotations

from tqdm import tqdm


class BatchProgress:
    """Monotonic queued/written counters with an optional tqdm bar."""

    def __init__(self, *, enabled: bool = True) -> None:
        self.total: int | None = None
        self.queued = 0
        self.written = 0
        self._bar: tqdm | None = (
            tqdm(desc="Geocoding", unit="row", dynamic_ncols=True) if enabled else None
        )

    @property
    def enabled(self) -> bool:
        return self._bar is not None

    def set_total(self, total: int | None) -> None:
        """Record the (estimated) number of rows; unknown totals stay None."""
        if total is None or total < 0:
            return
        self.total = total
        if self._bar is not None:
            self._bar.total = total
            self._bar.refresh()

    def mark_queued(self, row_id: int) -> None:
        """Reader-side: rows up to *row_id* have been read and dispatched."""
        self.queued = max(self.queued, row_id)
        if self._bar is not None:
            self._bar.set_postfix(queued=self.queued, refresh=False)

    def mark_written(self, count: int = 1) -> None:
        """Writer-side: *count* more rows reached the output."""
        if count <= 0:
            return
        self.written += count
        if self._bar is not None:
            self._bar.update(count)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
