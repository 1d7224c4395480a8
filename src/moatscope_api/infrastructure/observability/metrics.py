# src/moatscope_api/infrastructure/observability/metrics.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Prometheus metrics for the analysis pipeline.

Collectors (names are part of the public contract):

* ``moatscope_upstream_latency_seconds`` (Histogram) - one upstream fetch,
  including retries, by provider / endpoint / outcome.
* ``moatscope_upstream_retries_total`` (Counter) - retries by reason.
* ``moatscope_response_cache_total`` (Counter) - cache lookups by backend and
  result (``hit`` / ``miss``).
* ``moatscope_analysis_latency_seconds`` (Histogram) - whole analyses by outcome.
* ``moatscope_rate_limit_rejections_total`` (Counter) - throttled requests by scope.

All collectors are created against the *current* default registry and reuse
an existing collector of the same name, so module re-imports and registry
swaps in tests are safe. Recording helpers never raise.
"""

from __future__ import annotations

from collections.abc import Generator, Sequence
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from time import perf_counter

import prometheus_client as prom
from prometheus_client import Counter, Histogram
from prometheus_client.registry import CollectorRegistry


def _get_or_create_histogram(
    name: str,
    doc: str,
    labelnames: Sequence[str] | None = None,
) -> Histogram:
    """Return a histogram bound to the current default registry.

    Args:
        name: Metric name.
        doc: Human-readable metric description.
        labelnames: Optional iterable of label names.

    Returns:
        A :class:`Histogram` bound to the current :data:`prom.REGISTRY`.
    """
    registry: CollectorRegistry = prom.REGISTRY
    mapping = getattr(registry, "_names_to_collectors", {})  # internal but stable
    existing = mapping.get(name)
    if isinstance(existing, Histogram):
        return existing

    labels = tuple(labelnames) if labelnames is not None else ()
    try:
        return Histogram(name, doc, labels, registry=registry)
    except ValueError as exc:
        if "Duplicated timeseries" in str(exc):
            again = getattr(registry, "_names_to_collectors", {}).get(name)
            if isinstance(again, Histogram):
                return again
        raise


def _get_or_create_counter(
    name: str,
    doc: str,
    labelnames: Sequence[str] | None = None,
) -> Counter:
    """Return a counter bound to the current default registry.

    Mirrors :func:`_get_or_create_histogram` for :class:`Counter` collectors.
    Prometheus exposes counters with a ``_total`` suffix; the registry maps
    both spellings, so lookups work with either.
    """
    registry: CollectorRegistry = prom.REGISTRY
    mapping = getattr(registry, "_names_to_collectors", {})
    existing = mapping.get(name)
    if isinstance(existing, Counter):
        return existing

    labels = tuple(labelnames) if labelnames is not None else ()
    try:
        return Counter(name, doc, labels, registry=registry)
    except ValueError as exc:
        if "Duplicated timeseries" in str(exc):
            again = getattr(registry, "_names_to_collectors", {}).get(name)
            if isinstance(again, Counter):
                return again
        raise


def get_upstream_latency_seconds() -> Histogram:
    return _get_or_create_histogram(
        "moatscope_upstream_latency_seconds",
        "Latency of upstream statement fetches including retries (seconds).",
        labelnames=("provider", "endpoint", "outcome"),
    )


def get_upstream_retries_total() -> Counter:
    return _get_or_create_counter(
        "moatscope_upstream_retries_total",
        "Retries issued against upstream statement providers.",
        labelnames=("provider", "endpoint", "reason"),
    )


def get_response_cache_total() -> Counter:
    return _get_or_create_counter(
        "moatscope_response_cache_total",
        "Response cache lookups.",
        labelnames=("backend", "result"),
    )


def get_analysis_latency_seconds() -> Histogram:
    return _get_or_create_histogram(
        "moatscope_analysis_latency_seconds",
        "Latency of complete analyses (seconds).",
        labelnames=("outcome",),
    )


def get_rate_limit_rejections_total() -> Counter:
    return _get_or_create_counter(
        "moatscope_rate_limit_rejections_total",
        "Requests rejected by the rate limiter.",
        labelnames=("scope",),
    )


# ---------------------------------------------------------------------------
# Recording helpers (best-effort)
# ---------------------------------------------------------------------------


def inc_retry(provider: str, endpoint: str, reason: str) -> None:
    with suppress(Exception):
        get_upstream_retries_total().labels(
            provider=provider, endpoint=endpoint, reason=reason
        ).inc()


def inc_cache_lookup(backend: str, *, hit: bool) -> None:
    with suppress(Exception):
        get_response_cache_total().labels(backend=backend, result="hit" if hit else "miss").inc()


def inc_rate_limit_rejection(scope: str) -> None:
    with suppress(Exception):
        get_rate_limit_rejections_total().labels(scope=scope).inc()


@dataclass
class Observation:
    """Outcome holder for :func:`observe_latency`."""

    outcome: str = "success"
    start: float = field(default_factory=perf_counter)

    def mark(self, outcome: str) -> None:
        self.outcome = outcome


@contextmanager
def observe_latency(
    histogram: Histogram,
    **labels: str,
) -> Generator[Observation, None, None]:
    """Time a block and record it under ``labels`` plus its ``outcome``.

    Exceptions propagate; an unmarked block that raises is recorded as
    ``error``.
    """
    obs = Observation()
    try:
        yield obs
    except BaseException:
        if obs.outcome == "success":
            obs.mark("error")
        raise
    finally:
        with suppress(Exception):
            histogram.labels(**labels, outcome=obs.outcome).observe(perf_counter() - obs.start)
