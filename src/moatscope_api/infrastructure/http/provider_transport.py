# src/moatscope_api/infrastructure/http/provider_transport.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""HTTPX transport for statement providers.

Synopsis:
    Executes exactly one GET per call on a shared ``httpx.AsyncClient`` and
    returns status plus decoded JSON. Network-level failures are mapped to
    :class:`UpstreamTransportError`; HTTP statuses are returned as data so the
    orchestrator can decide what is retryable.

Security:
    Query strings carry API keys. Nothing here logs the URL; the request
    signature is logged instead.
"""

from __future__ import annotations

import logging

import httpx

from moatscope_api.application.interfaces.provider_port import (
    ProviderRequest,
    ProviderResponse,
    UpstreamTransportError,
)

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {"Accept": "application/json", "User-Agent": "moatscope-api"}


class HttpxProviderTransport:
    """Single-attempt GET transport backed by ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get(self, request: ProviderRequest) -> ProviderResponse:
        """Perform one GET.

        Args:
            request: Request description including credential-bearing query.

        Returns:
            Status code and JSON payload (``None`` when the body is not JSON).

        Raises:
            UpstreamTransportError: On connect/read/protocol failures.
        """
        try:
            resp = await self._client.get(
                request.url,
                params=dict(request.query),
                headers=_DEFAULT_HEADERS,
            )
        except httpx.TransportError as exc:
            logger.info(
                "provider.transport_error",
                extra={
                    "extra": {
                        "signature": request.signature.cache_key(),
                        "error": type(exc).__name__,
                    }
                },
            )
            raise UpstreamTransportError(type(exc).__name__) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        logger.debug(
            "provider.response",
            extra={
                "extra": {
                    "signature": request.signature.cache_key(),
                    "status_code": resp.status_code,
                }
            },
        )
        return ProviderResponse(status_code=resp.status_code, payload=payload)
