# src/moatscope_api/infrastructure/middleware/rate_limit.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Rate Limit Middleware (sliding window, in-process).

Summary:
    Applies a general limiter to every ``/v1`` path and a stricter limiter to
    the analysis paths. Client identity is the ``X-API-Key`` header when
    present, else the client IP. Rejections use the standard error envelope.

Emitted headers:
    X-RateLimit-Limit, X-RateLimit-Remaining, X-RateLimit-Reset, Retry-After (on 429)
"""

from __future__ import annotations

import hashlib

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from moatscope_api.domain.exceptions.analysis import ThrottledError
from moatscope_api.infrastructure.http.errors import throttled_response
from moatscope_api.infrastructure.observability.metrics import inc_rate_limit_rejection
from moatscope_api.infrastructure.rate_limiting.sliding_window import (
    RateLimitDecision,
    SlidingWindowRateLimiter,
)

API_KEY_HEADER = "X-API-Key"


def client_identity(request: Request) -> str:
    """Return the limiter key for a request (hashed API key, else client IP)."""
    api_key = request.headers.get(API_KEY_HEADER)
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]
    ip = request.client.host if request.client else "unknown"
    return f"ip:{ip}"


def _headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_after_s),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """General plus strict sliding-window limiting.

    Args:
        app: ASGI application.
        general: Limiter guarding ``general_prefix``.
        strict: Optional limiter guarding ``strict_prefix`` in addition.
        general_prefix: Path prefix of the general limiter.
        strict_prefix: Path prefix of the strict limiter.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        general: SlidingWindowRateLimiter,
        strict: SlidingWindowRateLimiter | None = None,
        general_prefix: str = "/v1",
        strict_prefix: str = "/v1/analysis",
    ) -> None:
        super().__init__(app)
        self.general = general
        self.strict = strict
        self.general_prefix = general_prefix
        self.strict_prefix = strict_prefix

    def _limiters(self, path: str) -> list[SlidingWindowRateLimiter]:
        limiters: list[SlidingWindowRateLimiter] = []
        if path.startswith(self.general_prefix):
            limiters.append(self.general)
        if self.strict is not None and path.startswith(self.strict_prefix):
            limiters.append(self.strict)
        return limiters

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Admit or reject the request and annotate the response with limit headers."""
        limiters = self._limiters(request.url.path)
        if not limiters:
            return await call_next(request)

        identity = client_identity(request)
        tightest: RateLimitDecision | None = None
        for limiter in limiters:
            try:
                decision = await limiter.enforce(identity)
            except ThrottledError as exc:
                inc_rate_limit_rejection(exc.scope)
                limited = throttled_response(
                    exc, trace_id=getattr(request.state, "trace_id", None)
                )
                limited.headers.update(
                    {
                        "X-RateLimit-Limit": str(exc.limit),
                        "X-RateLimit-Remaining": "0",
                        "X-RateLimit-Reset": str(exc.retry_after_s),
                    }
                )
                return limited
            if tightest is None or decision.remaining < tightest.remaining:
                tightest = decision

        response: Response = await call_next(request)
        if tightest is not None:
            response.headers.update(_headers(tightest))
        return response
