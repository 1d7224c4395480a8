from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from moatscope_api.domain.exceptions.analysis import ThrottledError
from moatscope_api.infrastructure.middleware.rate_limit import (
    API_KEY_HEADER,
    RateLimitMiddleware,
)
from moatscope_api.infrastructure.rate_limiting.sliding_window import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_limiter_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(scope="general", max_requests=0, window_s=10)
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(scope="general", max_requests=1, window_s=0)


@pytest.mark.anyio
async def test_window_slides_instead_of_resetting() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(scope="analysis", max_requests=2, window_s=900, clock=clock)

    first = await limiter.acquire("ip:1")
    clock.now = 600
    second = await limiter.acquire("ip:1")
    clock.now = 899
    rejected = await limiter.acquire("ip:1")

    assert (first.allowed, first.remaining, first.reset_after_s) == (True, 1, 900)
    assert (second.allowed, second.remaining, second.reset_after_s) == (True, 0, 300)
    assert rejected.allowed is False
    assert rejected.retry_after_s == 1

    clock.now = 900
    assert (await limiter.acquire("ip:1")).allowed is True
    clock.now = 1_000
    assert (await limiter.acquire("ip:1")).allowed is False


@pytest.mark.anyio
async def test_idle_identities_are_dropped_after_the_window() -> None:
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(scope="general", max_requests=5, window_s=900, clock=clock)

    for i in range(1_000):
        await limiter.acquire(f"ip:{i}")
    assert limiter.tracked_identities == 1_000

    clock.now = 450
    await limiter.acquire("ip:0")
    assert limiter.tracked_identities == 1_000

    clock.now = 901
    decision = await limiter.acquire("ip:new")

    assert decision.allowed is True
    # ip:0 hit at t=450 is still inside the window.
    assert limiter.tracked_identities == 2


@pytest.mark.anyio
async def test_identities_are_counted_separately() -> None:
    limiter = SlidingWindowRateLimiter(scope="general", max_requests=1, window_s=60)

    await limiter.enforce("ip:1")
    await limiter.enforce("ip:2")

    with pytest.raises(ThrottledError) as ei:
        await limiter.enforce("ip:1")
    assert ei.value.scope == "general"
    assert ei.value.limit == 1
    assert 1 <= ei.value.retry_after_s <= 60

    await limiter.reset()
    await limiter.enforce("ip:1")


def _app(general: int, strict: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        RateLimitMiddleware,
        general=SlidingWindowRateLimiter(scope="general", max_requests=general, window_s=900),
        strict=SlidingWindowRateLimiter(scope="analysis", max_requests=strict, window_s=900),
    )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/analysis/{identifier}")
    async def analysis(identifier: str) -> dict[str, str]:
        return {"identifier": identifier}

    @app.get("/v1/other")
    async def other() -> dict[str, str]:
        return {"ok": "yes"}

    return app


def test_strict_limit_applies_to_analysis_only() -> None:
    client = TestClient(_app(general=100, strict=2))

    codes = [client.get("/v1/analysis/AAPL").status_code for _ in range(3)]
    assert codes == [200, 200, 429]

    assert client.get("/v1/other").status_code == 200
    health = client.get("/healthz")
    assert health.status_code == 200
    assert "X-RateLimit-Limit" not in health.headers


def test_headers_report_tightest_budget() -> None:
    client = TestClient(_app(general=100, strict=10))

    r = client.get("/v1/analysis/AAPL")

    assert r.headers["X-RateLimit-Limit"] == "10"
    assert r.headers["X-RateLimit-Remaining"] == "9"
    assert int(r.headers["X-RateLimit-Reset"]) == 900


def test_rejection_renders_throttled_envelope() -> None:
    client = TestClient(_app(general=1, strict=10))
    client.get("/v1/other")

    r = client.get("/v1/other")

    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1
    assert r.headers["X-RateLimit-Remaining"] == "0"
    body = r.json()["error"]
    assert body["code"] == "THROTTLED"
    assert body["http_status"] == 429
    assert body["details"]["scope"] == "general"


def test_api_key_identity_is_independent_of_ip() -> None:
    client = TestClient(_app(general=100, strict=1))

    assert client.get("/v1/analysis/AAPL", headers={API_KEY_HEADER: "alpha"}).status_code == 200
    assert client.get("/v1/analysis/AAPL", headers={API_KEY_HEADER: "beta"}).status_code == 200
    assert client.get("/v1/analysis/AAPL", headers={API_KEY_HEADER: "alpha"}).status_code == 429
