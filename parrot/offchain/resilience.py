"""
Off-chain Resilience

Explicit retry and polling policies for the two places the client waits on
the ledger: delivering a submission, and observing its effect afterwards.
Nothing here retries implicitly; a policy object is always passed in by the
caller.

    Retry Policy                 Poll Policy
    ├─ Max attempts              ├─ Interval
    ├─ Fixed / linear / exp      ├─ Max polls
    ├─ Jitter                    ├─ Wall-clock timeout
    └─ Retryable exceptions      └─ Cancellation on timeout

Usage
─────

    retry = RetryPolicy(max_attempts=3, base_delay_seconds=0.5)
    receipt = await retry.execute(lambda: client.submit_swap(origin, offer))

    nonce = await wait_until(
        lambda: client.query_nonce(bob),
        lambda n: n > 4,
        PollPolicy(interval_seconds=1.0, timeout_seconds=30.0),
        what="nonce advance",
    )

Copyright (c) 2026 Parrot Network. All rights reserved.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from parrot.offchain.errors import ConfirmationTimeout, NetworkError

T = TypeVar("T")


# ════════════════════════════════════════════════════════════════════════════
# RETRY POLICY
# ════════════════════════════════════════════════════════════════════════════


class BackoffStrategy(Enum):
    """Retry backoff strategies."""
    FIXED = "fixed"                           # Fixed delay between retries
    LINEAR = "linear"                         # Linear increase
    EXPONENTIAL = "exponential"               # Exponential backoff (2^n)
    EXPONENTIAL_JITTER = "exponential_jitter"  # Exponential with random jitter


@dataclass
class RetryConfig:
    """Retry policy configuration."""
    max_attempts: int = 1
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL_JITTER
    jitter_factor: float = 0.5
    retryable_exceptions: tuple = (NetworkError,)


@dataclass
class RetryMetrics:
    """Retry metrics."""
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    retries_exhausted: int = 0
    total_retry_delay_seconds: float = 0.0


class RetryExhaustedError(NetworkError):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        operation = getattr(last_exception, "operation", "submit")
        super().__init__(operation, f"Retry exhausted after {attempts} attempts: {last_exception}")


class RetryPolicy:
    """
    Retry policy with configurable backoff strategies.

    Only exceptions listed in `retryable_exceptions` (by default
    `NetworkError`) are retried; ledger rejections propagate on the first
    attempt. The default of one attempt means no retries at all.

    Retrying a submission is safe with respect to double effects: if an
    earlier attempt did land, the ledger rejects the repeat with a nonce
    mismatch.

    Example:
        retry = RetryPolicy(max_attempts=3, backoff_strategy=BackoffStrategy.FIXED)
        result = await retry.execute(lambda: client.query_nonce(bob))
    """

    def __init__(
        self,
        max_attempts: int = 1,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 10.0,
        backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL_JITTER,
        jitter_factor: float = 0.5,
        retryable_exceptions: tuple = (NetworkError,),
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.config = RetryConfig(
            max_attempts=max_attempts,
            base_delay_seconds=base_delay_seconds,
            max_delay_seconds=max_delay_seconds,
            backoff_strategy=backoff_strategy,
            jitter_factor=jitter_factor,
            retryable_exceptions=retryable_exceptions,
        )
        self._metrics = RetryMetrics()
        self._on_retry = on_retry
        self._sleep = sleep

    @classmethod
    def from_config(cls, section: Any = None, **overrides: Any) -> "RetryPolicy":
        """Build from the ``retry`` configuration section."""
        if section is None:
            from parrot.offchain.config import get_config
            section = get_config().retry
        kwargs = dict(
            max_attempts=section.max_attempts.get(),
            base_delay_seconds=section.base_delay_seconds.get(),
            max_delay_seconds=section.max_delay_seconds.get(),
            backoff_strategy=BackoffStrategy(section.backoff.get()),
            jitter_factor=section.jitter_factor.get(),
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def metrics(self) -> RetryMetrics:
        return RetryMetrics(**vars(self._metrics))

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay before the retry that follows `attempt`."""
        base = self.config.base_delay_seconds
        strategy = self.config.backoff_strategy

        if strategy == BackoffStrategy.FIXED:
            delay = base
        elif strategy == BackoffStrategy.LINEAR:
            delay = base * attempt
        elif strategy == BackoffStrategy.EXPONENTIAL:
            delay = base * (2 ** (attempt - 1))
        else:
            exp_delay = base * (2 ** (attempt - 1))
            delay = exp_delay + random.uniform(0, self.config.jitter_factor * exp_delay)

        return min(delay, self.config.max_delay_seconds)

    def _is_retryable(self, exc: Exception) -> bool:
        return isinstance(exc, self.config.retryable_exceptions)

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await `func()` under this policy."""
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.config.max_attempts + 1):
            self._metrics.total_attempts += 1
            try:
                result = await func()
                self._metrics.successful_attempts += 1
                return result
            except Exception as e:
                self._metrics.failed_attempts += 1
                if not self._is_retryable(e):
                    raise
                last_exception = e

                if attempt < self.config.max_attempts:
                    delay = self._calculate_delay(attempt)
                    self._metrics.total_retry_delay_seconds += delay
                    if self._on_retry:
                        self._on_retry(attempt, e, delay)
                    await self._sleep(delay)

        self._metrics.retries_exhausted += 1
        if self.config.max_attempts == 1:
            raise last_exception  # type: ignore[misc]
        raise RetryExhaustedError(self.config.max_attempts, last_exception) from last_exception


# ════════════════════════════════════════════════════════════════════════════
# POLLING
# ════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PollPolicy:
    """Bounds for a state-polling confirmation."""
    interval_seconds: float = 1.0
    timeout_seconds: float = 30.0
    max_polls: int = 60

    def __post_init__(self):
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.max_polls < 1:
            raise ValueError("max_polls must be >= 1")

    @classmethod
    def from_config(cls, section: Any = None) -> "PollPolicy":
        """Build from the ``confirmation`` configuration section."""
        if section is None:
            from parrot.offchain.config import get_config
            section = get_config().confirmation
        return cls(
            interval_seconds=section.poll_interval_seconds.get(),
            timeout_seconds=section.timeout_seconds.get(),
            max_polls=section.max_polls.get(),
        )


async def wait_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    policy: Optional[PollPolicy] = None,
    what: str = "condition",
) -> T:
    """Poll `fetch()` until `predicate` holds for its result.

    Returns the first satisfying value. Raises `ConfirmationTimeout` when the
    poll count or wall-clock budget runs out; the in-flight fetch is
    cancelled in the latter case. Errors raised by `fetch` propagate.
    """
    policy = policy or PollPolicy()
    start = time.monotonic()
    polls = 0
    last: Any = None

    async def _loop() -> T:
        nonlocal polls, last
        while True:
            polls += 1
            last = await fetch()
            if predicate(last):
                return last
            if polls >= policy.max_polls:
                raise ConfirmationTimeout(what, polls, time.monotonic() - start, last)
            await asyncio.sleep(policy.interval_seconds)

    try:
        return await asyncio.wait_for(_loop(), timeout=policy.timeout_seconds)
    except asyncio.TimeoutError:
        raise ConfirmationTimeout(what, polls, time.monotonic() - start, last) from None
