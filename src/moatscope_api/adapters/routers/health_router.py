# src/moatscope_api/adapters/routers/health_router.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Health endpoint (Adapters Layer).

``GET /healthz`` reports liveness, the active statement provider and which
credentials are configured. Credential values are never returned; only
booleans.
"""

from __future__ import annotations

import typing as t

from fastapi import APIRouter, Request
from pydantic import Field

from moatscope_api.adapters.schemas.http.envelopes import BaseHTTPSchema
from moatscope_api.config.settings import Settings

router = APIRouter()


class HealthResponse(BaseHTTPSchema):
    """Liveness plus configuration flags."""

    status: t.Literal["ok"] = "ok"
    environment: str
    statement_provider: str
    cache_backend: str
    configured: dict[str, bool] = Field(default_factory=dict)


@router.get("/healthz", response_model=HealthResponse, tags=["Health"], summary="Liveness")
async def healthz(request: Request) -> HealthResponse:
    settings: Settings = request.app.state.settings
    return HealthResponse(
        environment=settings.environment.value,
        statement_provider=settings.statement_provider.value,
        cache_backend=settings.cache_backend,
        configured=settings.configured_credentials(),
    )
