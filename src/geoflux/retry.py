"""Minimal async retry with explicit error contracts.

Design goals:
- Small API surface
- Explicit state (policy + attempt counters)
- Retry decisions come from the classifier, never from message text
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import TYPE_CHECKING, TypeVar

from geoflux.classify import classify_error, is_retryable
from geoflux.errors import BatchProcessingError
from geoflux.outcome import Failure, Outcome, Success

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and proportional jitter."""

    max_retries: int = 5
    base_delay_s: float = 1.0
    factor: float = 2.0
    jitter: float = 0.1
    max_delay_s: float = 60.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_retries < 0:
            raise ValueError("RetryPolicy.max_retries must be >= 0")
        if self.base_delay_s < 0:
            raise ValueError("RetryPolicy.base_delay_s must be >= 0")
        if self.factor <= 0:
            raise ValueError("RetryPolicy.factor must be > 0")
        if self.jitter < 0:
            raise ValueError("RetryPolicy.jitter must be >= 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def compute_backoff_delay(
    policy: RetryPolicy, *, attempt: int, rand: float
) -> float:
    """Return the sleep before retrying after failed *attempt* (1-based).

    ``rand`` is a sample from ``[0, 1)``; jitter only ever lengthens the delay.
    """
    delay = (
        policy.base_delay_s
        * policy.factor ** max(0, attempt - 1)
        * (1.0 + policy.jitter * rand)
    )
    return min(delay, policy.max_delay_s)


class RetryingExecutor:
    """Run one logical call with bounded retries, returning a tagged outcome.

    Failures are classified on every attempt. A non-retryable error, or the
    last permitted attempt failing, ends the loop with ``Failure``; nothing is
    raised except cancellation.

    ``abort()`` stops every call sharing this executor from starting another
    attempt: backoff sleeps are cut short and the last error is returned.
    Attempts already in flight are left to finish.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._rand = rand
        self._aborted = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self) -> None:
        self._aborted.set()

    async def execute(self, factory: Callable[[], Awaitable[T]]) -> Outcome[T]:
        if self.aborted:
            return Failure(BatchProcessingError("Aborted before the request was sent"))
        attempt = 0
        while True:
            attempt += 1
            try:
                return Success(await factory())
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = classify_error(exc)

            if not is_retryable(error) or attempt >= self.policy.max_attempts:
                if attempt > 1:
                    logger.debug(
                        "Request failed after %d attempt(s): %s", attempt, error
                    )
                return Failure(error)

            delay = compute_backoff_delay(
                self.policy, attempt=attempt, rand=self._rand()
            )
            logger.warning(
                "Retryable error encountered (%s). Retrying in %.2fs... (Attempt %d/%d)",
                error.kind,
                delay,
                attempt,
                self.policy.max_retries,
                extra={"attempt": attempt, "delay_s": delay},
            )
            if delay > 0:
                await self._backoff(delay)
            if self.aborted:
                logger.debug(
                    "Retry abandoned after %d attempt(s): executor aborted", attempt
                )
                return Failure(error)

    async def _backoff(self, delay: float) -> None:
        """Sleep for *delay*, waking early if the executor is aborted."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        watcher = asyncio.ensure_future(self._aborted.wait())
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, watcher):
                task.cancel()
            await asyncio.gather(sleeper, watcher, return_exceptions=True)


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
) -> T:
    """Run an async factory with bounded retries, raising the final error."""
    outcome = await RetryingExecutor(policy).execute(factory)
    if isinstance(outcome, Failure):
        raise outcome.error
    return outcome.value
