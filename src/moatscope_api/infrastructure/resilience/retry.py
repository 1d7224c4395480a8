# src/moatscope_api/infrastructure/resilience/retry.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Retry utilities (async) with exponential backoff."""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry attempts."""

    max_attempts: int = 3  # total attempts, including the first
    base: float = 1.0  # backoff before the second attempt, seconds
    cap: float = 30.0  # max backoff seconds
    jitter: bool = False  # full jitter if True

    def backoff(self, attempt: int) -> float:
        """Backoff after zero-based ``attempt``: base, 2*base, 4*base, ... capped."""
        delay = min(self.cap, self.base * (2**attempt))
        if self.jitter:
            delay = random.uniform(0, delay)  # noqa: S311
        return delay


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: Callable[[Exception | T], bool],
    on_retry: Callable[[int, Exception | T], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Retry an async function with backoff until success or budget exhausted.

    Backoff is measured from the start of each attempt: the next attempt
    starts ``policy.backoff(n)`` seconds after attempt ``n`` started, or right
    away if the attempt itself took longer.

    Args:
        fn: Zero-arg async function to execute.
        policy: RetryPolicy defining count/backoff.
        retry_on: Predicate over the raised exception or returned value that
            returns True when another attempt should be made.
        on_retry: Optional hook called with ``(attempt, outcome)`` before sleeping.
        sleep: Awaitable sleep, injectable for tests.
        clock: Monotonic clock, injectable for tests.

    Returns:
        The value of the last attempt, which may itself be a retryable value
        when the budget ran out.

    Raises:
        The last exception if retries are exhausted or it is not retryable.
    """
    attempt = 0
    while True:
        started = clock()
        last = attempt + 1 >= policy.max_attempts
        outcome: Exception | T
        try:
            result = await fn()
        except Exception as exc:  # noqa: BLE001
            if last or not retry_on(exc):
                raise
            outcome = exc
        else:
            if last or not retry_on(result):
                return result
            outcome = result

        if on_retry is not None:
            on_retry(attempt, outcome)
        delay = policy.backoff(attempt) - (clock() - started)
        if delay > 0:
            await sleep(delay)
        attempt += 1
