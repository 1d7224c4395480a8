# src/moatscope_api/infrastructure/caching/json_cache.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""JSON response cache (Redis-backed).

Synopsis:
    Implements ``ResponseCachePort`` on top of the shared Redis client from
    ``infrastructure/caching/redis_client.py``. Eviction is left to Redis key
    expiry, so no sweep task is needed.

Design:
    * Pure JSON (utf-8) serialization; no pickle.
    * Key policy: ``{namespace}:{signature.cache_key()}`` with the default
      namespace ``moatscope:responses:v1``.

Layer:
    infrastructure/caching
"""

from __future__ import annotations

import json
from typing import Any

from moatscope_api.domain.entities.request_signature import RequestSignature
from moatscope_api.infrastructure.caching.redis_client import get_redis_client

__all__ = ["RedisResponseCache"]


class RedisResponseCache:
    """Redis-backed response cache."""

    backend = "redis"

    def __init__(
        self,
        *,
        namespace: str = "moatscope:responses:v1",
        default_ttl_s: int = 3600,
    ) -> None:
        """Initialize the cache adapter.

        Args:
            namespace: Prefix applied to all keys to avoid collisions.
            default_ttl_s: TTL used when ``put`` is called without one.
        """
        self._ns = namespace
        self._default_ttl_s = default_ttl_s

    def _k(self, signature: RequestSignature) -> str:
        return f"{self._ns}:{signature.cache_key()}"

    async def get(self, signature: RequestSignature) -> Any | None:
        raw = await get_redis_client().get(self._k(signature))
        if raw is None:
            return None
        return json.loads(raw)

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
        await get_redis_client().set(self._k(signature), json.dumps(value), ex=ttl_s)
