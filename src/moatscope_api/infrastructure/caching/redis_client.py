# src/moatscope_api/infrastructure/caching/redis_client.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Async Redis client factory.

Design notes:
    * Provides a small Protocol (`RedisClient`) used by the Redis cache.
    * Uses redis.asyncio under the hood for the concrete implementation.
    * Is loop-aware: a client created on another event loop is replaced
      instead of reused.
    * Test suites may inject a fakeredis client by assigning to the module-level
      `_client`; when that happens we do not overwrite or close it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Protocol, cast, runtime_checkable

import redis.asyncio as aioredis

from moatscope_api.config.settings import Settings, get_settings

__all__ = [
    "RedisClient",
    "init_redis",
    "close_redis",
    "get_redis_client",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class RedisClient(Protocol):
    """Protocol for the subset of Redis methods used by the application."""

    async def get(self, key: str) -> Any: ...
    async def set(
        self,
        key: str,
        value: Any,
        *,
        ex: int | None = None,
    ) -> Any: ...
    async def ping(self) -> Any: ...
    async def aclose(self) -> Any: ...


_client: RedisClient | Any | None = None
_client_loop_id: int | None = None

_DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _current_loop_id() -> int | None:
    """Return the id() of the current running event loop, or None if absent."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    return id(loop)


def _is_fake_client(client: Any | None) -> bool:
    """Return True if the given client looks like a fakeredis instance."""
    if client is None:
        return False
    return type(client).__module__.startswith("fakeredis")


def init_redis(settings: Settings) -> None:
    """Initialize the global async Redis client for the current event loop.

    Idempotent per loop. A test-injected fakeredis client is left in place.
    """
    global _client, _client_loop_id

    if _is_fake_client(_client):
        return

    loop_id = _current_loop_id()
    if _client is not None and _client_loop_id == loop_id:
        return

    url = settings.redis_url or _DEFAULT_REDIS_URL
    _from_url: Any = aioredis.from_url
    _client = cast(
        RedisClient,
        _from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_s,
        ),
    )
    _client_loop_id = loop_id
    logger.info("redis.initialized", extra={"extra": {"loop_id": loop_id}})


async def close_redis() -> None:
    """Close the global Redis client at shutdown."""
    global _client, _client_loop_id

    if _client is not None and not _is_fake_client(_client):
        loop_id = _current_loop_id()
        if _client_loop_id is None or loop_id == _client_loop_id:
            with suppress(RuntimeError, ConnectionError):
                await _client.aclose()

    _client = None
    _client_loop_id = None


def get_redis_client() -> RedisClient:
    """Return the initialized Redis client, creating it lazily when needed.

    Raises:
        RuntimeError: If the client could not be initialized.
    """
    if _is_fake_client(_client):
        return cast(RedisClient, _client)

    loop_id = _current_loop_id()
    if _client is None or (
        _client_loop_id is not None and loop_id is not None and loop_id != _client_loop_id
    ):
        init_redis(get_settings())

    if _client is None:
        raise RuntimeError("Redis client not initialized (init_redis failed)")
    return cast(RedisClient, _client)
