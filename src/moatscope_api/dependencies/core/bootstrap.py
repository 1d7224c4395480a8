# src/moatscope_api/dependencies/core/bootstrap.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Core bootstrap for infrastructure (HTTP client, response cache, Redis).

This module owns the lifecycle of shared infrastructure used by the FastAPI app.
It is intentionally thin: configuration is read from Settings, and all heavy
lifting is delegated to the infrastructure modules.

The single public surface is :func:`bootstrap`, an async context manager that
yields a simple state object with the resolved Settings, the shared HTTP
client and the response cache.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI

from moatscope_api.application.interfaces.cache_port import ResponseCachePort
from moatscope_api.config.settings import Settings, get_settings
from moatscope_api.infrastructure.caching.json_cache import RedisResponseCache
from moatscope_api.infrastructure.caching.memory_cache import InMemoryResponseCache
from moatscope_api.infrastructure.logging.logger import get_json_logger

logger = get_json_logger(__name__)


@dataclass
class BootstrapState:
    """State yielded by the bootstrap context manager."""

    settings: Settings
    http_client: httpx.AsyncClient
    cache: ResponseCachePort


def build_response_cache(settings: Settings) -> ResponseCachePort:
    """Return the cache backend selected by ``CACHE_BACKEND``."""
    if settings.cache_backend == "redis":
        return RedisResponseCache(default_ttl_s=settings.cache_ttl_seconds)
    return InMemoryResponseCache(
        default_ttl_s=settings.cache_ttl_seconds,
        sweep_interval_s=settings.cache_sweep_interval_seconds,
    )


@asynccontextmanager
async def bootstrap(app: FastAPI) -> AsyncGenerator[BootstrapState, None]:
    """Initialize and teardown shared infrastructure.

    Responsibilities:
        * Load application settings.
        * Initialize the Redis client when the Redis cache backend is selected.
        * Build the response cache and start its sweep task (memory backend).
        * Create a shared HTTPX AsyncClient.
        * Ensure all of the above are shut down on exit, even on error.

    Args:
        app: FastAPI application instance.

    Yields:
        BootstrapState: Resolved settings, shared HTTP client and cache.
    """
    settings: Settings = get_settings()
    logger.info("bootstrap.start", extra={"extra": {"cache_backend": settings.cache_backend}})

    # Imported here so tests can monkeypatch its functions.
    import moatscope_api.infrastructure.caching.redis_client as redis_client

    if settings.cache_backend == "redis":
        redis_client.init_redis(settings)

    cache = build_response_cache(settings)
    if isinstance(cache, InMemoryResponseCache):
        cache.start()

    http_client = httpx.AsyncClient(timeout=settings.upstream_timeout_s)
    state = BootstrapState(settings=settings, http_client=http_client, cache=cache)

    try:
        yield state
    finally:
        try:
            await http_client.aclose()
        except Exception:
            logger.exception("bootstrap.http_client_close_failed")

        if isinstance(cache, InMemoryResponseCache):
            await cache.stop()

        if settings.cache_backend == "redis":
            try:
                await redis_client.close_redis()
            except Exception:
                logger.exception("bootstrap.redis_close_failed")

        logger.info("bootstrap.stop")
