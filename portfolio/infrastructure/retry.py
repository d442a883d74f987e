"""
Retry helpers built on tenacity.

One RetryPolicy object carries the attempt budget, the wait strategy and the
retry predicate; both the database executor (linear backoff) and the Gemini
client (capped exponential backoff on 429) run their operations through it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)
from tenacity.wait import wait_base

from portfolio.observability.logging import get_logger
from portfolio.observability.telemetry import counter, log_event

T = TypeVar("T")

logger = get_logger(__name__)


class RetriesExhaustedError(RuntimeError):
    """Raised when every attempt allowed by a RetryPolicy has failed."""

    def __init__(self, stage: str, attempts: int, cause: BaseException | None):
        super().__init__(f"Max retries exceeded ({attempts} attempts) for {stage}: {cause}")
        self.stage = stage
        self.attempts = attempts
        self.cause = cause


def linear_backoff(step: float) -> wait_base:
    """Wait attempt * step seconds after each failed attempt."""
    return wait_incrementing(start=step, increment=step)


def capped_exponential_backoff(base: float, maximum: float) -> wait_base:
    """Wait min(2 ** (attempt - 1) * base, maximum) seconds after each failed attempt."""
    return wait_exponential(multiplier=base, exp_base=2, max=maximum)


@dataclass
class RetryPolicy:
    stage: str
    max_attempts: int = 3
    wait: wait_base = field(default_factory=lambda: capped_exponential_backoff(1.0, 16.0))
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    async def execute(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Await func(*args, **kwargs) until it succeeds or the budget runs out.

        Exceptions outside retry_on propagate unchanged on the attempt that
        raised them.

        Raises:
            RetriesExhaustedError: every attempt failed with a retryable error

        Side Effects:
            - Sleeps between attempts via self.sleep
            - Increments retry counters and logs retry events
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
            reraise=False,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await func(*args, **kwargs)
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            counter(f"{self.stage}.retries_exhausted")
            log_event(
                "retry.exhausted",
                stage=self.stage,
                attempts=self.max_attempts,
                error=str(cause),
            )
            raise RetriesExhaustedError(self.stage, self.max_attempts, cause) from cause

        # AsyncRetrying either returns from inside the loop or raises
        raise AssertionError("unreachable")

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        counter(f"{self.stage}.retry")
        logger.warning(
            "%s failed (attempt %d/%d), retrying in %d ms: %s",
            self.stage,
            retry_state.attempt_number,
            self.max_attempts,
            int(delay * 1000),
            error,
        )
