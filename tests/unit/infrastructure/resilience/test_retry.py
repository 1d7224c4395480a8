from __future__ import annotations

import itertools

import pytest

from moatscope_api.infrastructure.resilience.retry import RetryPolicy, retry_async


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_backoff_doubles_and_caps() -> None:
    policy = RetryPolicy(max_attempts=5, base=1.0, cap=3.0)

    assert [policy.backoff(n) for n in range(4)] == [1.0, 2.0, 3.0, 3.0]


def test_jitter_stays_within_backoff() -> None:
    policy = RetryPolicy(base=1.0, cap=30.0, jitter=True)

    assert all(0.0 <= policy.backoff(2) <= 4.0 for _ in range(50))


@pytest.mark.anyio
async def test_retryable_value_is_returned_after_budget() -> None:
    sleeps = _Sleeps()
    calls = 0
    retries: list[int] = []

    async def busy() -> str:
        nonlocal calls
        calls += 1
        return "busy"

    result = await retry_async(
        busy,
        policy=RetryPolicy(max_attempts=3, base=1.0),
        retry_on=lambda outcome: outcome == "busy",
        on_retry=lambda attempt, _outcome: retries.append(attempt),
        sleep=sleeps,
        clock=lambda: 0.0,
    )

    assert result == "busy"
    assert calls == 3
    assert sleeps.delays == [1.0, 2.0]
    assert retries == [0, 1]


@pytest.mark.anyio
async def test_backoff_counts_from_attempt_start() -> None:
    sleeps = _Sleeps()
    ticks = itertools.count(step=0.4)

    async def boom() -> None:
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await retry_async(
            boom,
            policy=RetryPolicy(max_attempts=3, base=1.0),
            retry_on=lambda outcome: isinstance(outcome, ConnectionError),
            sleep=sleeps,
            clock=lambda: next(ticks),
        )

    assert sleeps.delays == pytest.approx([0.6, 1.6])


@pytest.mark.anyio
async def test_non_retryable_exception_propagates_immediately() -> None:
    sleeps = _Sleeps()
    calls = 0

    async def bad() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await retry_async(
            bad,
            policy=RetryPolicy(max_attempts=3),
            retry_on=lambda outcome: isinstance(outcome, ConnectionError),
            sleep=sleeps,
        )

    assert calls == 1
    assert sleeps.delays == []


@pytest.mark.anyio
async def test_success_after_transient_failure() -> None:
    sleeps = _Sleeps()
    outcomes = iter([ConnectionError("flap"), "ok"])

    async def flaky() -> str:
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = await retry_async(
        flaky,
        policy=RetryPolicy(max_attempts=3, base=0.5),
        retry_on=lambda outcome: isinstance(outcome, ConnectionError),
        sleep=sleeps,
        clock=lambda: 10.0,
    )

    assert result == "ok"
    assert sleeps.delays == [0.5]
