# src/moatscope_api/infrastructure/rate_limiting/sliding_window.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Sliding-window rate limiter.

Summary:
    Keeps, per client identity, the timestamps of accepted requests within the
    trailing window. A request is accepted while fewer than ``max_requests``
    timestamps remain in the window. Rejected requests are not recorded.
    Identities with no hit left in the window are dropped once per window.

Concurrency:
    All state is guarded by one ``asyncio.Lock``; callers need no locking.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from moatscope_api.domain.exceptions.analysis import ThrottledError

__all__ = ["RateLimitDecision", "SlidingWindowRateLimiter"]


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_after_s: int
    retry_after_s: int = 0


class SlidingWindowRateLimiter:
    """Per-identity sliding-window counter.

    Args:
        scope: Name used in errors and metrics (e.g. ``"general"``).
        max_requests: Requests allowed per window.
        window_s: Window length in seconds.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        *,
        scope: str,
        max_requests: int,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.scope = scope
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_prune = clock()
        self._lock = asyncio.Lock()

    def _seconds_until(self, moment: float, now: float) -> int:
        return max(1, math.ceil(moment - now))

    def _prune(self, now: float) -> None:
        # At most once per window; drops identities with no hit left in it.
        if now - self._last_prune < self.window_s:
            return
        self._last_prune = now
        horizon = now - self.window_s
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= horizon]
        for key in idle:
            del self._hits[key]

    @property
    def tracked_identities(self) -> int:
        """Number of identities currently holding window state."""
        return len(self._hits)

    async def acquire(self, identity: str) -> RateLimitDecision:
        """Record a request for ``identity`` if the window allows it."""
        async with self._lock:
            now = self._clock()
            self._prune(now)
            hits = self._hits.get(identity)
            if hits is None:
                hits = self._hits[identity] = deque()
            horizon = now - self.window_s
            while hits and hits[0] <= horizon:
                hits.popleft()

            if len(hits) >= self.max_requests:
                wait = self._seconds_until(hits[0] + self.window_s, now)
                return RateLimitDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_after_s=wait,
                    retry_after_s=wait,
                )

            hits.append(now)
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(hits),
                reset_after_s=self._seconds_until(hits[0] + self.window_s, now),
            )

    async def enforce(self, identity: str) -> RateLimitDecision:
        """Like :meth:`acquire` but raise on rejection.

        Raises:
            ThrottledError: When the identity exceeded the window budget.
        """
        decision = await self.acquire(identity)
        if not decision.allowed:
            raise ThrottledError(
                scope=self.scope,
                limit=self.max_requests,
                retry_after_s=decision.retry_after_s,
            )
        return decision

    async def reset(self) -> None:
        async with self._lock:
            self._hits.clear()
