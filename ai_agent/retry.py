"""Bounded retry with exponential backoff.

``with_retry`` runs an async operation until it succeeds, raises a terminal
error, or uses up ``RetryPolicy.max_retries`` attempts.  Transient failures
(rate limits, timeouts, unparseable or invalid output) are retried after a
delay of ``base_delay_ms * backoff_multiplier ** i``; anything else is
re-raised unchanged on the first occurrence.

The controller does not log.  Callers that want to report retries pass an
``on_retry`` hook.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from pydantic import BaseModel, Field

from .errors import ProviderError, RepairFailure, StageValidationError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, BaseException, float], None]


class RetryPolicy(BaseModel):
    """Retry budget for one stage.

    ``max_retries`` counts total attempts, so ``1`` disables retrying.
    """

    max_retries: int = Field(default=3, ge=1, description="Total attempts per stage")
    base_delay_ms: int = Field(default=1000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt_index: int) -> float:
        """Seconds to wait after the zero-based attempt *attempt_index* fails."""
        return self.base_delay_ms * self.backoff_multiplier ** attempt_index / 1000.0


class ErrorKind(Enum):
    """Retry routing for a failure."""
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


_TRANSIENT = (
    RepairFailure,
    StageValidationError,
    asyncio.TimeoutError,
    httpx.TimeoutException,
    httpx.TransportError,
)


def classify_error(error: BaseException) -> ErrorKind:
    """Classify *error* for retry routing.

    Provider errors carry their own verdict (rate limits, timeouts and 5xx
    are retryable; auth and other 4xx are not).  Repair and validation
    failures are retryable because a fresh completion may well parse.
    """
    if isinstance(error, ProviderError):
        return ErrorKind.RETRYABLE if error.retryable else ErrorKind.TERMINAL
    if isinstance(error, _TRANSIENT):
        return ErrorKind.RETRYABLE
    return ErrorKind.TERMINAL


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    classify: Callable[[BaseException], ErrorKind] = classify_error,
    sleep: Sleep = asyncio.sleep,
    on_retry: Optional[RetryHook] = None,
) -> T:
    """Invoke *operation* until it succeeds or the retry budget runs out.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Attempt count and backoff schedule.  Defaults to
            ``RetryPolicy()``.
        classify: Decides whether a raised exception may be retried.
        sleep: Awaitable used for the backoff delay (injectable for tests).
        on_retry: Called as ``on_retry(attempt, error, delay_s)`` before each
            backoff sleep, where *attempt* is the one-based attempt that failed.

    Returns:
        The first successful result.

    Raises:
        The terminal error as-is, or the last retryable error once every
        attempt has failed.
    """
    policy = policy or RetryPolicy()

    for index in range(policy.max_retries):
        try:
            return await operation()
        except Exception as exc:
            if classify(exc) is ErrorKind.TERMINAL:
                raise
            if index + 1 >= policy.max_retries:
                raise
            delay = policy.delay_for(index)
            if on_retry is not None:
                on_retry(index + 1, exc, delay)
            await sleep(delay)

    # max_retries >= 1, so the loop always returns or raises.
    raise AssertionError("unreachable")
