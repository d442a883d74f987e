"""Unit tests for the tenacity-backed RetryPolicy"""

from __future__ import annotations

import asyncio

import pytest

from portfolio.infrastructure.retry import (
    RetriesExhaustedError,
    RetryPolicy,
    capped_exponential_backoff,
    linear_backoff,
)
from portfolio.observability.telemetry import counter


class Flaky:
    """Async callable that fails `failures` times before returning `value`"""

    def __init__(self, failures: int, error: type[Exception] = ConnectionError, value: str = "ok"):
        self.failures = failures
        self.error = error
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return self.value


def test_success_first_try_does_not_sleep(recording_sleep):
    policy = RetryPolicy(stage="test", sleep=recording_sleep)
    func = Flaky(failures=0)

    assert asyncio.run(policy.execute(func)) == "ok"
    assert func.calls == 1
    assert recording_sleep.delays == []


def test_linear_backoff_delays(recording_sleep):
    policy = RetryPolicy(stage="test", max_attempts=4, wait=linear_backoff(2.0), sleep=recording_sleep)
    func = Flaky(failures=3)

    assert asyncio.run(policy.execute(func)) == "ok"
    assert func.calls == 4
    assert recording_sleep.delays == [2.0, 4.0, 6.0]
    assert counter("test.retry", 0) == 3


def test_capped_exponential_backoff_delays(recording_sleep):
    policy = RetryPolicy(
        stage="test",
        max_attempts=7,
        wait=capped_exponential_backoff(1.0, 16.0),
        sleep=recording_sleep,
    )

    with pytest.raises(RetriesExhaustedError):
        asyncio.run(policy.execute(Flaky(failures=10)))

    assert recording_sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0, 16.0]


def test_exhausted_carries_last_cause(recording_sleep):
    policy = RetryPolicy(stage="db.query", max_attempts=3, wait=linear_backoff(2.0), sleep=recording_sleep)
    func = Flaky(failures=5)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        asyncio.run(policy.execute(func))

    err = exc_info.value
    assert func.calls == 3
    assert err.attempts == 3
    assert err.stage == "db.query"
    assert isinstance(err.cause, ConnectionError)
    assert str(err.cause) == "failure 3"
    assert "Max retries exceeded" in str(err)
    assert counter("db.query.retries_exhausted", 0) == 1


def test_non_matching_error_propagates_immediately(recording_sleep):
    policy = RetryPolicy(stage="test", retry_on=(ConnectionError,), sleep=recording_sleep)
    func = Flaky(failures=1, error=KeyError)

    with pytest.raises(KeyError):
        asyncio.run(policy.execute(func))

    assert func.calls == 1
    assert recording_sleep.delays == []


def test_single_attempt_never_sleeps(recording_sleep):
    policy = RetryPolicy(stage="test", max_attempts=1, sleep=recording_sleep)

    with pytest.raises(RetriesExhaustedError):
        asyncio.run(policy.execute(Flaky(failures=1)))

    assert recording_sleep.delays == []


def test_invalid_attempt_budget_rejected():
    with pytest.raises(ValueError, match="max_attempts"):
        RetryPolicy(stage="test", max_attempts=0)
