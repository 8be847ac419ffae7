from __future__ import annotations

import asyncio
import logging

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from geoflux.errors import (
    BatchProcessingError,
    NetworkError,
    NotAuthorizedError,
    ServerError,
    TooManyRequestsError,
)
from geoflux.outcome import Failure, Success
from geoflux.retry import (
    RetryingExecutor,
    RetryPolicy,
    compute_backoff_delay,
    retry_async,
)

pytestmark = pytest.mark.unit


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _scripted(*items):
    """Return a factory that raises or returns *items* in order, counting calls."""
    script = list(items)
    calls = {"n": 0}

    async def factory():
        calls["n"] += 1
        item = script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    return factory, calls


def test_policy_validation() -> None:
    with pytest.raises(ValueError, match="max_retries"):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError, match="factor"):
        RetryPolicy(factor=0)
    with pytest.raises(ValueError, match="jitter"):
        RetryPolicy(jitter=-0.1)
    assert RetryPolicy(max_retries=0).max_attempts == 1


def test_backoff_grows_exponentially_without_jitter() -> None:
    policy = RetryPolicy(base_delay_s=1.0, factor=2.0, jitter=0.1, max_delay_s=60.0)

    delays = [compute_backoff_delay(policy, attempt=a, rand=0.0) for a in (1, 2, 3)]
    assert delays == [1.0, 2.0, 4.0]


def test_backoff_is_capped_at_max_delay() -> None:
    policy = RetryPolicy(base_delay_s=1.0, factor=2.0, max_delay_s=5.0)
    assert compute_backoff_delay(policy, attempt=10, rand=0.99) == 5.0


@given(
    attempt=st.integers(min_value=1, max_value=30),
    rand=st.floats(min_value=0.0, max_value=1.0, exclude_max=True),
)
@settings(max_examples=10, deadline=None, derandomize=True)
def test_backoff_bounds(attempt: int, rand: float) -> None:
    """Jitter only lengthens the delay, and never past the cap."""
    policy = RetryPolicy(base_delay_s=0.5, factor=2.0, jitter=0.1, max_delay_s=30.0)
    delay = compute_backoff_delay(policy, attempt=attempt, rand=rand)
    floor = min(0.5 * 2.0 ** (attempt - 1), 30.0)

    assert floor <= delay <= 30.0


@pytest.mark.asyncio
async def test_transient_errors_then_success_logs_two_retry_events(caplog) -> None:
    caplog.set_level(logging.WARNING, logger="geoflux.retry")
    sleep = FakeSleep()
    factory, calls = _scripted(
        TooManyRequestsError("slow down"),
        TooManyRequestsError("slow down"),
        "ok",
    )
    executor = RetryingExecutor(RetryPolicy(max_retries=5), sleep=sleep, rand=lambda: 0.5)

    outcome = await executor.execute(factory)

    assert outcome == Success("ok")
    assert calls["n"] == 3
    retry_records = [r for r in caplog.records if r.name == "geoflux.retry"]
    assert len(retry_records) == 2
    assert [r.attempt for r in retry_records] == [1, 2]
    first, second = (r.delay_s for r in retry_records)
    assert first < second
    assert sleep.delays == [first, second]


@pytest.mark.asyncio
async def test_non_retryable_error_fails_after_one_attempt() -> None:
    sleep = FakeSleep()
    err = NotAuthorizedError("bad key")
    factory, calls = _scripted(err)

    outcome = await RetryingExecutor(RetryPolicy(), sleep=sleep).execute(factory)

    assert isinstance(outcome, Failure)
    assert outcome.error is err
    assert calls["n"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_attempts_are_bounded_by_max_retries() -> None:
    sleep = FakeSleep()
    factory, calls = _scripted(*(ServerError("down", status_code=503) for _ in range(10)))

    outcome = await RetryingExecutor(
        RetryPolicy(max_retries=2), sleep=sleep, rand=lambda: 0.0
    ).execute(factory)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, ServerError)
    assert calls["n"] == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_unclassified_exceptions_are_classified_into_failure() -> None:
    factory, _ = _scripted(ConnectionResetError("reset"))

    outcome = await RetryingExecutor(
        RetryPolicy(max_retries=0), sleep=FakeSleep()
    ).execute(factory)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, NetworkError)


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    async def factory():
        raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await RetryingExecutor(RetryPolicy(), sleep=FakeSleep()).execute(factory)


@pytest.mark.asyncio
async def test_abort_before_start_sends_no_request() -> None:
    factory, calls = _scripted("value")
    executor = RetryingExecutor(RetryPolicy(), sleep=FakeSleep())
    executor.abort()

    outcome = await executor.execute(factory)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, BatchProcessingError)
    assert calls["n"] == 0


@pytest.mark.asyncio
async def test_abort_during_backoff_stops_further_attempts() -> None:
    factory, calls = _scripted(*(TooManyRequestsError("slow") for _ in range(5)))
    executor = RetryingExecutor(RetryPolicy(max_retries=4), rand=lambda: 0.0)

    async def abort_soon() -> None:
        await asyncio.sleep(0.05)
        executor.abort()

    aborter = asyncio.create_task(abort_soon())
    loop = asyncio.get_running_loop()
    started = loop.time()
    # The first backoff is a real 1s sleep; abort must cut it short.
    outcome = await executor.execute(factory)
    elapsed = loop.time() - started
    await aborter

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, TooManyRequestsError)
    assert calls["n"] == 1
    assert elapsed < 0.5


@pytest.mark.asyncio
async def test_abort_after_backoff_returns_last_error() -> None:
    factory, calls = _scripted(ServerError("down", status_code=503), "value")

    async def sleep(delay: float) -> None:
        executor.abort()

    executor = RetryingExecutor(RetryPolicy(max_retries=2), sleep=sleep, rand=lambda: 0.0)
    outcome = await executor.execute(factory)

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, ServerError)
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_retry_async_raises_final_error() -> None:
    factory, _ = _scripted(NotAuthorizedError("bad key"))

    with pytest.raises(NotAuthorizedError, match="bad key"):
        await retry_async(factory, policy=RetryPolicy(max_retries=0))


@pytest.mark.asyncio
async def test_retry_async_returns_value() -> None:
    factory, _ = _scripted("value")
    assert await retry_async(factory, policy=RetryPolicy()) == "value"
