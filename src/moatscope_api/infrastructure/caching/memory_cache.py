# src/moatscope_api/infrastructure/caching/memory_cache.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""In-memory response cache.

Synopsis:
    Process-local implementation of ``ResponseCachePort`` with a fixed
    time-to-live and a periodic background sweep.

Design:
    * Entries live in a dict keyed by ``RequestSignature.cache_key()``.
    * An ``asyncio.Lock`` guards every read and write.
    * Reads of an expired entry evict it and report a miss.
    * ``start()`` launches the sweep task; ``stop()`` cancels it. The app
      lifespan owns both calls.

Layer:
    infrastructure/caching
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from moatscope_api.domain.entities.request_signature import RequestSignature

__all__ = ["InMemoryResponseCache"]

logger = logging.getLogger(__name__)


class InMemoryResponseCache:
    """TTL cache of upstream payloads for a single process."""

    backend = "memory"

    def __init__(
        self,
        *,
        default_ttl_s: int = 3600,
        sweep_interval_s: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl_s = default_ttl_s
        self._sweep_interval_s = sweep_interval_s
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, signature: RequestSignature) -> Any | None:
        key = signature.cache_key()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    async def put(
        self,
        signature: RequestSignature,
        value: Any,
        *,
        ttl: int | None = None,
    ) -> None:
        ttl_s = self._default_ttl_s if ttl is None else ttl
        if ttl_s <= 0:
            return
        async with self._lock:
            self._entries[signature.cache_key()] = (self._clock() + ttl_s, value)

    async def sweep(self) -> int:
        """Evict every expired entry and return how many were removed."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("cache.sweep", extra={"extra": {"evicted": len(expired)}})
        return len(expired)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    # ------------------------------------------------------------------ #
    # Background sweep
    # ------------------------------------------------------------------ #
    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_s)
            await self.sweep()

    def start(self) -> None:
        """Start the background sweep on the running loop (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(), name="cache-sweep")

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
