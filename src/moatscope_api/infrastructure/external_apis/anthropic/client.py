# src/moatscope_api/infrastructure/external_apis/anthropic/client.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Anthropic Messages client (narrative service).

Synopsis:
    Sends one user prompt to ``POST {base_url}/v1/messages`` and returns the
    concatenated text blocks of the answer. Parsing the text is the report
    assembler's job.

Errors:
    * Missing credential -> ``ConfigurationError`` (no network call).
    * Transport failure, timeout or non-2xx -> ``UpstreamUnavailable`` with
      stage ``narrative``. Response bodies are never copied into the error.
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from moatscope_api.config.settings import Settings
from moatscope_api.domain.exceptions.analysis import ConfigurationError, UpstreamUnavailable
from moatscope_api.infrastructure.observability.metrics import (
    get_upstream_latency_seconds,
    observe_latency,
)

logger = logging.getLogger(__name__)

_STAGE: Final[str] = "narrative"


class AnthropicNarrativeClient:
    """Narrative service backed by the Anthropic Messages API."""

    name = "anthropic"
    credential_setting = "ANTHROPIC_API_KEY"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None,
        base_url: str = "https://api.anthropic.com",
        model: str = "claude-sonnet-4-20250514",
        version: str = "2023-06-01",
        max_tokens: int = 8000,
        timeout_s: float = 120.0,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._url = base_url.rstrip("/") + "/v1/messages"
        self._model = model
        self._version = version
        self._max_tokens = max_tokens
        self._timeout_s = timeout_s

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> AnthropicNarrativeClient:
        return cls(
            client,
            api_key=settings.anthropic_key,
            base_url=settings.anthropic_base_url,
            model=settings.anthropic_model,
            version=settings.anthropic_version,
            max_tokens=settings.anthropic_max_tokens,
            timeout_s=settings.narrative_timeout_s,
        )

    def ensure_configured(self) -> None:
        if not self._api_key:
            raise ConfigurationError(self.credential_setting, purpose="narrative reports")

    def _unavailable(self, reason: str, status_code: int | None = None) -> UpstreamUnavailable:
        return UpstreamUnavailable(
            provider=self.name,
            statement=_STAGE,
            reason=reason,
            status_code=status_code,
        )

    async def complete(self, prompt: str) -> str:
        """Send ``prompt`` and return the answer text."""
        self.ensure_configured()
        body: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self._api_key or "",
            "anthropic-version": self._version,
            "content-type": "application/json",
        }

        with observe_latency(
            get_upstream_latency_seconds(), provider=self.name, endpoint="messages"
        ) as obs:
            try:
                resp = await self._client.post(
                    self._url, json=body, headers=headers, timeout=self._timeout_s
                )
            except httpx.TimeoutException as exc:
                obs.mark("timeout")
                raise self._unavailable("request timed out") from exc
            except httpx.TransportError as exc:
                obs.mark("transport_error")
                raise self._unavailable("connection failed") from exc
            except httpx.HTTPError as exc:
                obs.mark("request_error")
                raise self._unavailable("request failed") from exc

            if resp.status_code >= 400:
                obs.mark(f"http_{resp.status_code}")
                logger.warning(
                    "narrative.http_error",
                    extra={"extra": {"status_code": resp.status_code, "model": self._model}},
                )
                raise self._unavailable(
                    f"HTTP {resp.status_code}", status_code=resp.status_code
                )

            try:
                data = resp.json()
            except ValueError as exc:
                obs.mark("malformed")
                raise self._unavailable("malformed response") from exc

        blocks = data.get("content") if isinstance(data, dict) else None
        texts = [
            b.get("text", "")
            for b in blocks or []
            if isinstance(b, dict) and b.get("type") == "text"
        ]
        logger.info(
            "narrative.completed",
            extra={
                "extra": {
                    "model": self._model,
                    "stop_reason": data.get("stop_reason") if isinstance(data, dict) else None,
                    "blocks": len(texts),
                }
            },
        )
        return "".join(texts)
