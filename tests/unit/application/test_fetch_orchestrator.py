from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from moatscope_api.adapters.gateways.alpha_vantage_adapter import AlphaVantageAdapter
from moatscope_api.application.interfaces.provider_port import (
    ProviderRequest,
    ProviderResponse,
    UpstreamTransportError,
)
from moatscope_api.application.services.fetch_orchestrator import (
    FetchOrchestrator,
    LogicalRequest,
)
from moatscope_api.domain.enums.analysis import StatementType
from moatscope_api.domain.exceptions.analysis import UpstreamRateLimited, UpstreamUnavailable
from moatscope_api.infrastructure.caching.memory_cache import InMemoryResponseCache
from moatscope_api.infrastructure.resilience.retry import RetryPolicy

type Handler = Callable[[ProviderRequest], Awaitable[ProviderResponse]]


class FakeTransport:
    """Answers by Alpha Vantage ``function`` and counts outbound calls."""

    def __init__(self, handlers: dict[str, Handler]) -> None:
        self._handlers = handlers
        self.calls: Counter[str] = Counter()

    async def get(self, request: ProviderRequest) -> ProviderResponse:
        endpoint = request.signature.endpoint
        self.calls[endpoint] += 1
        return await self._handlers[endpoint](request)


def _answer(status: int, payload: Any = None) -> Handler:
    async def _handler(_: ProviderRequest) -> ProviderResponse:
        return ProviderResponse(status_code=status, payload=payload)

    return _handler


class _NoSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


ADAPTER = AlphaVantageAdapter(api_key="test-key")


def _lr(statement: StatementType, *, required: bool = True) -> LogicalRequest:
    return LogicalRequest(
        statement=statement,
        request=ADAPTER.request_for(statement, "AAPL"),
        required=required,
    )


def _orchestrator(transport: FakeTransport, **kwargs: Any) -> FetchOrchestrator:
    kwargs.setdefault("sleep", _NoSleep())
    kwargs.setdefault("clock", lambda: 0.0)
    return FetchOrchestrator(
        adapter=ADAPTER,
        transport=transport,
        retry_policy=RetryPolicy(max_attempts=3, base=1.0),
        **kwargs,
    )


@pytest.mark.anyio
async def test_persistent_rate_limit_gives_up_after_max_attempts() -> None:
    transport = FakeTransport({"INCOME_STATEMENT": _answer(200, {"Note": "Thank you for using"})})
    sleeps = _NoSleep()

    with pytest.raises(UpstreamRateLimited) as ei:
        await _orchestrator(transport, sleep=sleeps).fetch_all(
            [_lr(StatementType.INCOME_STATEMENT)]
        )

    assert transport.calls["INCOME_STATEMENT"] == 3
    assert sleeps.delays == [1.0, 2.0]
    assert ei.value.details["attempts"] == 3
    assert ei.value.details["statement"] == "income_statement"


@pytest.mark.anyio
async def test_http_429_is_retried_until_success(av_payloads: dict[str, Any]) -> None:
    answers = iter(
        [
            ProviderResponse(status_code=429),
            ProviderResponse(status_code=200, payload=av_payloads["CASH_FLOW"]),
        ]
    )

    async def _handler(_: ProviderRequest) -> ProviderResponse:
        return next(answers)

    transport = FakeTransport({"CASH_FLOW": _handler})

    result = await _orchestrator(transport).fetch_all([_lr(StatementType.CASH_FLOW)])

    assert transport.calls["CASH_FLOW"] == 2
    assert result.payloads[StatementType.CASH_FLOW] == av_payloads["CASH_FLOW"]


@pytest.mark.anyio
async def test_server_errors_are_final() -> None:
    transport = FakeTransport({"BALANCE_SHEET": _answer(503)})

    with pytest.raises(UpstreamUnavailable) as ei:
        await _orchestrator(transport).fetch_all([_lr(StatementType.BALANCE_SHEET)])

    assert transport.calls["BALANCE_SHEET"] == 1
    assert ei.value.status_code == 503


@pytest.mark.anyio
async def test_network_failures_exhaust_into_unavailable() -> None:
    async def _down(_: ProviderRequest) -> ProviderResponse:
        raise UpstreamTransportError("ConnectError")

    transport = FakeTransport({"OVERVIEW": _down})

    with pytest.raises(UpstreamUnavailable) as ei:
        await _orchestrator(transport).fetch_all([_lr(StatementType.PROFILE)])

    assert transport.calls["OVERVIEW"] == 3
    assert "3 attempts" in ei.value.reason
    assert "test-key" not in ei.value.message


@pytest.mark.anyio
async def test_optional_failure_is_recorded_as_absent(av_payloads: dict[str, Any]) -> None:
    transport = FakeTransport(
        {
            "INCOME_STATEMENT": _answer(200, av_payloads["INCOME_STATEMENT"]),
            "EARNINGS": _answer(500),
        }
    )

    result = await _orchestrator(transport).fetch_all(
        [
            _lr(StatementType.INCOME_STATEMENT),
            _lr(StatementType.EARNINGS, required=False),
        ]
    )

    assert StatementType.INCOME_STATEMENT in result.payloads
    assert StatementType.EARNINGS not in result.payloads
    assert "HTTP 500" in result.absent[StatementType.EARNINGS]


@pytest.mark.anyio
async def test_required_failure_cancels_in_flight_siblings() -> None:
    cancelled = asyncio.Event()

    async def _hang(_: ProviderRequest) -> ProviderResponse:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise
        raise AssertionError("unreachable")

    transport = FakeTransport({"OVERVIEW": _answer(404), "EARNINGS": _hang})

    with pytest.raises(UpstreamUnavailable) as ei:
        await _orchestrator(transport).fetch_all(
            [_lr(StatementType.PROFILE), _lr(StatementType.EARNINGS, required=False)]
        )

    assert ei.value.not_found is True
    await asyncio.wait_for(cancelled.wait(), timeout=1.0)


@pytest.mark.anyio
async def test_overall_deadline_bounds_the_join() -> None:
    async def _slow(_: ProviderRequest) -> ProviderResponse:
        await asyncio.sleep(5)
        return ProviderResponse(status_code=200, payload={})

    transport = FakeTransport({"INCOME_STATEMENT": _slow})

    with pytest.raises(UpstreamUnavailable) as ei:
        await _orchestrator(transport, overall_timeout_s=0.05).fetch_all(
            [_lr(StatementType.INCOME_STATEMENT)]
        )

    assert ei.value.reason == "timed out waiting for the provider"


@pytest.mark.anyio
async def test_identical_signatures_are_coalesced(av_payloads: dict[str, Any]) -> None:
    transport = FakeTransport({"OVERVIEW": _answer(200, av_payloads["OVERVIEW"])})

    result = await _orchestrator(transport).fetch_all(
        [_lr(StatementType.PROFILE), _lr(StatementType.MARKET_DATA, required=False)]
    )

    assert transport.calls["OVERVIEW"] == 1
    assert result.payloads[StatementType.PROFILE] is result.payloads[StatementType.MARKET_DATA]
    assert result.absent == {}


@pytest.mark.anyio
async def test_cache_hit_skips_the_network(av_payloads: dict[str, Any]) -> None:
    cache = InMemoryResponseCache(default_ttl_s=60)
    lr = _lr(StatementType.BALANCE_SHEET)
    await cache.put(lr.request.signature, av_payloads["BALANCE_SHEET"])
    transport = FakeTransport({})

    result = await _orchestrator(transport, cache=cache).fetch_all([lr])

    assert transport.calls == Counter()
    assert result.payloads[StatementType.BALANCE_SHEET] == av_payloads["BALANCE_SHEET"]


@pytest.mark.anyio
async def test_successes_are_cached_and_rejections_are_not(av_payloads: dict[str, Any]) -> None:
    cache = InMemoryResponseCache(default_ttl_s=60)
    transport = FakeTransport(
        {
            "CASH_FLOW": _answer(200, av_payloads["CASH_FLOW"]),
            "EARNINGS": _answer(200, {"Error Message": "Invalid API call"}),
        }
    )
    cash = _lr(StatementType.CASH_FLOW)
    earnings = _lr(StatementType.EARNINGS, required=False)

    result = await _orchestrator(transport, cache=cache).fetch_all([cash, earnings])

    assert await cache.get(cash.request.signature) == av_payloads["CASH_FLOW"]
    assert await cache.get(earnings.request.signature) is None
    assert result.absent[StatementType.EARNINGS].endswith("provider rejected the request")


@pytest.mark.anyio
async def test_fetch_one_honours_attempt_timeout() -> None:
    async def _slow(_: ProviderRequest) -> ProviderResponse:
        await asyncio.sleep(5)
        return ProviderResponse(status_code=200, payload={})

    transport = FakeTransport({"SYMBOL_SEARCH": _slow})
    orchestrator = _orchestrator(transport, attempt_timeout_s=0.01)

    with pytest.raises(UpstreamUnavailable) as ei:
        await orchestrator.fetch_one(_lr(StatementType.SYMBOL_SEARCH))

    assert transport.calls["SYMBOL_SEARCH"] == 3
    assert ei.value.reason.startswith("timed out")
