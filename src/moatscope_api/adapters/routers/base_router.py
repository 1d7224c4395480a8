# src/moatscope_api/adapters/routers/base_router.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""
Base Router (Adapters Layer)

Purpose:
    Canonical APIRouter wrapper for MoatScope HTTP endpoints:
      - Versioned routing with stable prefixes (e.g., "/v1/analysis").
      - Standard error response mapping using ErrorEnvelope.

Layer:
    adapters/routers
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any

from fastapi import APIRouter

from moatscope_api.adapters.schemas.http.envelopes import ErrorEnvelope
from moatscope_api.infrastructure.logging.logger import get_json_logger

_LOGGER = get_json_logger(__name__)

TagType = str | Enum


class BaseRouter(APIRouter):
    """Canonical router wrapper.

    Args:
        version: API version segment (e.g., "v1").
        resource: Resource segment (e.g., "analysis").
        prefix: Optional explicit prefix (overrides version/resource).
        tags: Default tags applied to all routes mounted on this router.
        **kwargs: Additional APIRouter kwargs.
    """

    def __init__(
        self,
        *,
        version: str,
        resource: str,
        prefix: str | None = None,
        tags: Sequence[TagType] | None = None,
        **kwargs: Any,
    ) -> None:
        computed_prefix = prefix or f"/{version}/{resource}"
        super().__init__(
            prefix=computed_prefix,
            tags=list(tags) if tags is not None else None,
            **kwargs,
        )
        _LOGGER.debug(
            "router_initialized",
            extra={"extra": {"prefix": computed_prefix, "tags": list(tags or [])}},
        )

    @staticmethod
    def std_error_responses() -> dict[int | str, dict[str, Any]]:
        """Return the canonical error response mapping for analysis endpoints."""
        return {
            400: {"model": ErrorEnvelope, "description": "Bad request (validation or parameter)."},
            404: {"model": ErrorEnvelope, "description": "Company not found by the provider."},
            429: {"model": ErrorEnvelope, "description": "Rate limit exceeded."},
            500: {"model": ErrorEnvelope, "description": "Configuration or internal error."},
            502: {"model": ErrorEnvelope, "description": "Upstream provider unavailable."},
            503: {"model": ErrorEnvelope, "description": "Upstream provider rate-limited."},
        }
