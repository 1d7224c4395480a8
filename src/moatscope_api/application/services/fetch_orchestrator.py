# src/moatscope_api/application/services/fetch_orchestrator.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Fetch orchestrator.

Synopsis:
    Issues the statement requests of one analysis concurrently and joins them
    before normalization.

Responsibilities:
    * Consult the response cache first; a hit skips the network and retries.
    * Retry on HTTP 429, provider rate-limit payloads, network failures and
      per-attempt timeouts, with exponential backoff. Any other answer,
      including 404 and 5xx, is final.
    * Bound concurrent attempts per destination.
    * Coalesce requests sharing a signature into one outbound call.
    * Abort on the first failed REQUIRED request, cancelling in-flight
      siblings; record failed OPTIONAL requests as absent.
    * Bound the whole orchestration with an overall deadline.

Scope:
    One instance per analysis request. Nothing here is shared across
    requests except the injected cache.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from moatscope_api.application.interfaces.cache_port import ResponseCachePort
from moatscope_api.application.interfaces.provider_port import (
    ProviderRequest,
    ProviderResponse,
    ProviderTransport,
    StatementProviderAdapter,
    UpstreamTransportError,
)
from moatscope_api.domain.entities.request_signature import RequestSignature
from moatscope_api.domain.enums.analysis import StatementType
from moatscope_api.domain.exceptions.analysis import (
    AnalysisError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from moatscope_api.infrastructure.observability.metrics import (
    get_upstream_latency_seconds,
    inc_cache_lookup,
    inc_retry,
    observe_latency,
)
from moatscope_api.infrastructure.resilience.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LogicalRequest:
    """A statement to fetch and whether the analysis can live without it."""

    statement: StatementType
    request: ProviderRequest
    required: bool = True


@dataclass(slots=True)
class FetchResult:
    """Joined outcome of one orchestration.

    Attributes:
        payloads: Decoded payload per fetched statement.
        absent: Optional statements that failed, with a short reason.
    """

    payloads: dict[StatementType, Any] = field(default_factory=dict)
    absent: dict[StatementType, str] = field(default_factory=dict)


def _retry_reason(outcome: Any) -> str:
    if isinstance(outcome, TimeoutError):
        return "timeout"
    if isinstance(outcome, UpstreamTransportError):
        return "network"
    return "rate_limited"


class FetchOrchestrator:
    """Concurrent, cached, retrying fetcher for one analysis request."""

    def __init__(
        self,
        *,
        adapter: StatementProviderAdapter,
        transport: ProviderTransport,
        cache: ResponseCachePort | None = None,
        retry_policy: RetryPolicy | None = None,
        attempt_timeout_s: float = 10.0,
        overall_timeout_s: float = 30.0,
        max_concurrency: int = 4,
        cache_ttl_s: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapter = adapter
        self._transport = transport
        self._cache = cache
        self._policy = retry_policy or RetryPolicy()
        self._attempt_timeout_s = attempt_timeout_s
        self._overall_timeout_s = overall_timeout_s
        self._max_concurrency = max(1, max_concurrency)
        self._cache_ttl_s = cache_ttl_s
        self._sleep = sleep
        self._clock = clock
        self._budgets: dict[str, asyncio.Semaphore] = {}

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def fetch_all(self, requests: Sequence[LogicalRequest]) -> FetchResult:
        """Fetch every request concurrently and join.

        Args:
            requests: Logical requests, each flagged REQUIRED or OPTIONAL.

        Returns:
            Payloads of successful requests and reasons for absent optional ones.

        Raises:
            UpstreamRateLimited: A required request stayed rate-limited.
            UpstreamUnavailable: A required request failed for good or did not
                finish before the overall deadline.
        """
        tasks: dict[RequestSignature, asyncio.Task[Any]] = {}
        owner: dict[asyncio.Task[Any], LogicalRequest] = {}
        for lr in requests:
            sig = lr.request.signature
            if sig not in tasks:
                task = asyncio.create_task(self.fetch_one(lr), name=f"fetch:{lr.statement.value}")
                tasks[sig] = task
                owner[task] = lr

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._overall_timeout_s
        waiting = {tasks[lr.request.signature] for lr in requests if lr.required}

        try:
            while waiting:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    lr = self._first_required(requests, waiting, tasks)
                    raise UpstreamUnavailable(
                        provider=self._adapter.name,
                        statement=lr.statement,
                        reason="timed out waiting for the provider",
                    )
                done, waiting = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    exc = task.exception()
                    if exc is not None:
                        logger.warning(
                            "fetch.required_failed",
                            extra={
                                "extra": {
                                    "statement": owner[task].statement.value,
                                    "error_code": getattr(exc, "code", type(exc).__name__),
                                }
                            },
                        )
                        raise exc

            optional = {task for task in tasks.values() if not task.done()}
            if optional:
                await asyncio.wait(optional, timeout=max(0.0, deadline - loop.time()))
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
                elif not task.cancelled():
                    task.exception()

        return self._collect(requests, tasks)

    async def fetch_one(self, lr: LogicalRequest) -> Any:
        """Fetch a single request through cache, budget and retry policy.

        Returns:
            The decoded JSON payload.

        Raises:
            UpstreamRateLimited: Still rate-limited after the last attempt.
            UpstreamUnavailable: Non-retryable answer or network failure after
                the last attempt.
        """
        req = lr.request
        sig = req.signature

        if self._cache is not None:
            cached = await self._cache.get(sig)
            inc_cache_lookup(self._cache.backend, hit=cached is not None)
            if cached is not None:
                logger.debug("fetch.cache_hit", extra={"extra": {"signature": sig.cache_key()}})
                return cached

        with observe_latency(
            get_upstream_latency_seconds(), provider=sig.provider, endpoint=sig.endpoint
        ) as obs:
            try:
                response = await retry_async(
                    lambda: self._attempt(req),
                    policy=self._policy,
                    retry_on=self._should_retry,
                    on_retry=lambda attempt, outcome: self._on_retry(lr, attempt, outcome),
                    sleep=self._sleep,
                    clock=self._clock,
                )
            except (UpstreamTransportError, TimeoutError) as exc:
                obs.mark("network_error")
                reason = (
                    "timed out" if isinstance(exc, TimeoutError) else "network failure"
                )
                raise UpstreamUnavailable(
                    provider=self._adapter.name,
                    statement=lr.statement,
                    reason=f"{reason} after {self._policy.max_attempts} attempts",
                ) from exc

            payload = self._checked_payload(lr, response, obs)

        if self._cache is not None:
            await self._cache.put(sig, payload, ttl=self._cache_ttl_s)
        return payload

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _budget(self, destination: str) -> asyncio.Semaphore:
        budget = self._budgets.get(destination)
        if budget is None:
            budget = asyncio.Semaphore(self._max_concurrency)
            self._budgets[destination] = budget
        return budget

    async def _attempt(self, req: ProviderRequest) -> ProviderResponse:
        async with self._budget(req.destination):
            async with asyncio.timeout(self._attempt_timeout_s):
                return await self._transport.get(req)

    def _is_rate_limited(self, response: ProviderResponse) -> bool:
        if response.status_code == 429:
            return True
        return response.ok and self._adapter.is_rate_limited(response.payload)

    def _should_retry(self, outcome: Any) -> bool:
        if isinstance(outcome, UpstreamTransportError | TimeoutError):
            return True
        if isinstance(outcome, ProviderResponse):
            return self._is_rate_limited(outcome)
        return False

    def _on_retry(self, lr: LogicalRequest, attempt: int, outcome: Any) -> None:
        sig = lr.request.signature
        reason = _retry_reason(outcome)
        inc_retry(sig.provider, sig.endpoint, reason)
        logger.info(
            "fetch.retry",
            extra={
                "extra": {
                    "signature": sig.cache_key(),
                    "attempt": attempt + 1,
                    "reason": reason,
                    "backoff_s": self._policy.backoff(attempt),
                }
            },
        )

    def _checked_payload(self, lr: LogicalRequest, response: ProviderResponse, obs: Any) -> Any:
        provider = self._adapter.name
        if self._is_rate_limited(response):
            obs.mark("rate_limited")
            raise UpstreamRateLimited(
                provider=provider,
                statement=lr.statement,
                attempts=self._policy.max_attempts,
            )
        if not response.ok:
            obs.mark(f"http_{response.status_code}")
            raise UpstreamUnavailable(
                provider=provider,
                statement=lr.statement,
                reason=f"provider answered HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if response.payload is None:
            obs.mark("invalid_body")
            raise UpstreamUnavailable(
                provider=provider,
                statement=lr.statement,
                reason="provider response was not valid JSON",
            )
        rejection = self._adapter.rejection(response.payload)
        if rejection is not None:
            obs.mark("rejected")
            raise UpstreamUnavailable(provider=provider, statement=lr.statement, reason=rejection)
        return response.payload

    @staticmethod
    def _first_required(
        requests: Sequence[LogicalRequest],
        waiting: set[asyncio.Task[Any]],
        tasks: dict[RequestSignature, asyncio.Task[Any]],
    ) -> LogicalRequest:
        return next(
            lr for lr in requests if lr.required and tasks[lr.request.signature] in waiting
        )

    def _collect(
        self,
        requests: Sequence[LogicalRequest],
        tasks: dict[RequestSignature, asyncio.Task[Any]],
    ) -> FetchResult:
        result = FetchResult()
        for lr in requests:
            task = tasks[lr.request.signature]
            if task.cancelled() or not task.done():
                result.absent[lr.statement] = "timed out"
                continue
            exc = task.exception()
            if exc is None:
                result.payloads[lr.statement] = task.result()
            else:
                reason = exc.message if isinstance(exc, AnalysisError) else "fetch failed"
                result.absent[lr.statement] = reason
                logger.info(
                    "fetch.optional_absent",
                    extra={"extra": {"statement": lr.statement.value, "reason": reason}},
                )
        return result
