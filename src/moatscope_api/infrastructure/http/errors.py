# src/moatscope_api/infrastructure/http/errors.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""HTTP error envelope and exception handlers.

Every error leaves the API as ``{"error": {code, http_status, message,
details, trace_id}}``. Analysis failures map to a status by their ``code``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from moatscope_api.domain.exceptions.analysis import (
    AnalysisError,
    ThrottledError,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[str, int] = {
    "CONFIGURATION_ERROR": 500,
    "THROTTLED": 429,
    "UPSTREAM_RATE_LIMITED": 503,
    "UPSTREAM_UNAVAILABLE": 502,
    "NARRATIVE_PARSE_ERROR": 502,
}


def _trace_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "trace_id", None)


def error_envelope(
    *,
    code: str,
    http_status: int,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "http_status": http_status,
            "message": message,
            "details": details or {},
            "trace_id": trace_id,
        }
    }


def status_for(exc: AnalysisError) -> int:
    """Return the HTTP status an analysis failure is reported with."""
    if isinstance(exc, UpstreamUnavailable) and exc.not_found:
        return 404
    return _STATUS_BY_CODE.get(exc.code, 500)


def throttled_response(exc: ThrottledError, *, trace_id: str | None = None) -> JSONResponse:
    """Build the 429 response (envelope plus ``Retry-After``)."""
    payload = error_envelope(
        code=exc.code,
        http_status=429,
        message=exc.message,
        details=exc.details,
        trace_id=trace_id,
    )
    return JSONResponse(
        status_code=429,
        content=payload,
        headers={"Retry-After": str(exc.retry_after_s)},
    )


async def handle_analysis_error(request: Request, exc: AnalysisError) -> Response:
    if isinstance(exc, ThrottledError):
        return throttled_response(exc, trace_id=_trace_id(request))
    http_status = status_for(exc)
    logger.info(
        "analysis.error",
        extra={"extra": {"code": exc.code, "http_status": http_status, **exc.details}},
    )
    payload = error_envelope(
        code=exc.code,
        http_status=http_status,
        message=exc.message,
        details=exc.details,
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=http_status, content=payload)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> Response:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    payload = error_envelope(
        code="VALIDATION_ERROR",
        http_status=400,
        message="Request validation failed",
        details={"errors": errors},
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=400, content=payload)


async def handle_http_exception(request: Request, exc: HTTPException) -> Response:
    payload = error_envelope(
        code="HTTP_ERROR",
        http_status=exc.status_code,
        message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
        details=None if isinstance(exc.detail, str) else {"detail": exc.detail},
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=exc.status_code, content=payload)


async def handle_unhandled_exception(request: Request, exc: Exception) -> Response:
    logger.exception("unhandled_exception", exc_info=exc)
    payload = error_envelope(
        code="INTERNAL_ERROR",
        http_status=500,
        message="Internal server error",
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=500, content=payload)
