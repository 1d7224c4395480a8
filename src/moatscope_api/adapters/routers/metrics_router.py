# src/moatscope_api/adapters/routers/metrics_router.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Prometheus scrape endpoint (`/metrics`).

Collectors are created lazily on first use; this endpoint creates the
application collectors up front so every family appears on a cold scrape.

Layer:
    adapters/routers
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from moatscope_api.infrastructure.logging.logger import get_json_logger
from moatscope_api.infrastructure.observability.metrics import (
    get_analysis_latency_seconds,
    get_rate_limit_rejections_total,
    get_response_cache_total,
    get_upstream_latency_seconds,
    get_upstream_retries_total,
)

logger = get_json_logger(__name__)
router = APIRouter()

_COLLECTORS: tuple[Callable[[], Any], ...] = (
    get_upstream_latency_seconds,
    get_upstream_retries_total,
    get_response_cache_total,
    get_analysis_latency_seconds,
    get_rate_limit_rejections_total,
)


def _ensure_registered() -> None:
    for getter in _COLLECTORS:
        try:
            getter()
        except ValueError as exc:  # pragma: no cover
            logger.debug(
                "metrics_router: collector registration failed",
                extra={"extra": {"metric": getter.__name__, "error": str(exc)}},
            )


@router.get("/metrics", include_in_schema=False)
async def metrics_probe() -> Response:
    """Expose Prometheus metrics in text format."""
    _ensure_registered()
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
