# src/moatscope_api/main.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""
Application Entry (Adapters Bootstrap)

Synopsis:
    FastAPI bootstrap that wires middleware, exception handlers and routers.
    Provides an application factory (`create_app`); servers run it with
    ``factory=True`` so settings are read at startup, not import.

Design:
    • Bootstrap only (no business logic): routers + middleware + handlers.
    • Lifespan initializes the HTTP client, response cache and Redis, and
      tears them down safely.
    • Middleware order (outermost first): CORS, request id, rate limit.
    • Root JSON logging configured at import time.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from moatscope_api.adapters.routers.analysis_router import router as analysis_router
from moatscope_api.adapters.routers.health_router import router as health_router
from moatscope_api.adapters.routers.metrics_router import router as metrics_router
from moatscope_api.config.settings import Settings, get_settings
from moatscope_api.dependencies.core.bootstrap import bootstrap
from moatscope_api.domain.exceptions.analysis import AnalysisError
from moatscope_api.infrastructure.http.errors import (
    handle_analysis_error,
    handle_http_exception,
    handle_unhandled_exception,
    handle_validation_error,
)
from moatscope_api.infrastructure.logging.logger import (
    configure_root_logging,
    get_json_logger,
)
from moatscope_api.infrastructure.middleware.rate_limit import RateLimitMiddleware
from moatscope_api.infrastructure.middleware.request_id import RequestIdMiddleware
from moatscope_api.infrastructure.rate_limiting.sliding_window import SlidingWindowRateLimiter

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
configure_root_logging()
logger = get_json_logger(__name__)


def _stable_operation_id(route: APIRoute) -> str:
    """Deterministic operationId, e.g. ``get__v1_analysis_identifier``."""
    methods = ",".join(sorted(route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "")
    return f"{methods.lower()}_{path.lower()}"


# -----------------------------------------------------------------------------
# Lifespan
# -----------------------------------------------------------------------------
@asynccontextmanager
async def runtime_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Expose shared infrastructure on ``app.state`` for dependencies."""
    async with bootstrap(app) as state:
        app.state.settings = state.settings
        app.state.http_client = state.http_client
        app.state.cache = state.cache
        yield


# -----------------------------------------------------------------------------
# Middleware & CORS
# -----------------------------------------------------------------------------
def _attach_middlewares(app: FastAPI, settings: Settings) -> None:
    """Attach rate limiting and correlation ids.

    Starlette wraps in reverse order of registration, so the rate limiter is
    added first to run inside the request-id middleware.
    """
    if settings.rate_limit_enabled:
        window = settings.rate_limit_window_seconds
        app.add_middleware(
            RateLimitMiddleware,
            general=SlidingWindowRateLimiter(
                scope="general",
                max_requests=settings.rate_limit_max_requests,
                window_s=window,
            ),
            strict=SlidingWindowRateLimiter(
                scope="analysis",
                max_requests=settings.analysis_rate_limit_max_requests,
                window_s=window,
            ),
        )
        logger.info(
            "rate_limit_enabled",
            extra={
                "extra": {
                    "window_s": window,
                    "general": settings.rate_limit_max_requests,
                    "analysis": settings.analysis_rate_limit_max_requests,
                }
            },
        )

    app.add_middleware(RequestIdMiddleware)


def _attach_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials="*" not in settings.cors_allow_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )


def _patch_exception_handlers(app: FastAPI) -> None:
    """Install structured handlers rendering the canonical error envelope."""

    async def _analysis_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, AnalysisError):
            raise exc
        return await handle_analysis_error(request, exc)

    async def _http_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, HTTPException):
            raise exc
        return await handle_http_exception(request, exc)

    async def _validation_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, RequestValidationError):
            raise exc
        return await handle_validation_error(request, exc)

    async def _unhandled_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        return await handle_unhandled_exception(request, exc)

    app.add_exception_handler(AnalysisError, _analysis_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings: Settings = get_settings()
    service_version = settings.service_version or "0.0.0"

    app = FastAPI(
        title="MoatScope API",
        version=service_version,
        description="Financial data aggregation and ROIC/moat analytics.",
        lifespan=runtime_lifespan,
        generate_unique_id_function=_stable_operation_id,
    )

    _patch_exception_handlers(app)
    _attach_middlewares(app, settings)
    _attach_cors(app, settings)

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(analysis_router)

    logger.info(
        "service_startup",
        extra={
            "extra": {
                "env": settings.environment.value,
                "version": service_version,
                "statement_provider": settings.statement_provider.value,
            }
        },
    )
    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(
        "moatscope_api.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=int(os.getenv("PORT", "8080")),
        reload=True,
    )
