# src/moatscope_api/infrastructure/middleware/request_id.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Request ID Middleware.

Summary:
    Assigns a stable request correlation ID to each request and propagates it in
    the response headers. Uses an incoming `X-Request-ID` if present and valid;
    otherwise generates a new UUID4.

Contract:
    • Reads:  X-Request-ID (optional)
    • Writes: X-Request-ID (always written)
    • Stores: request.state.request_id and request.state.trace_id (str)
    • Enriches logs via contextvars (request_id, trace_id)
"""

from __future__ import annotations

import re
import uuid
from typing import Final

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from moatscope_api.infrastructure.logging.logger import set_request_context

REQUEST_ID_HEADER: Final[str] = "X-Request-ID"
_SAFE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9\-_.:@]{1,128}$")


def _coerce_request_id(raw: str | None) -> str:
    """Return a safe request id, preferring caller-provided values."""
    if raw and _SAFE_RE.match(raw):
        return raw
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware that injects a stable request id onto the request and response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Attach `request.state.request_id` and emit header on the response."""
        req_id = _coerce_request_id(request.headers.get(REQUEST_ID_HEADER))

        # Error envelopes read trace_id; one id serves both purposes here.
        request.state.request_id = req_id
        request.state.trace_id = req_id
        set_request_context(request_id=req_id, trace_id=req_id)

        response: Response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, req_id)
        return response
