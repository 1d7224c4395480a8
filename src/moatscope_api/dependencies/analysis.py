# src/moatscope_api/dependencies/analysis.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Dependency wiring for the analysis endpoints.

Overview:
    Builds the analysis use cases from the shared infrastructure stored on
    ``app.state`` by the lifespan (settings, HTTP client, response cache).

Layer:
    dependencies

Design:
    * Adapters and use cases are cheap; they are built per request.
    * Each analysis gets its own FetchOrchestrator, so concurrency budgets
      and in-flight coalescing never cross requests. The cache is shared.
    * Tests override ``get_analyze_company`` / ``get_generate_report`` or
      mock HTTP with respx.
"""

from __future__ import annotations

import httpx
from fastapi import Request

from moatscope_api.adapters.gateways.registry import build_statement_adapter
from moatscope_api.application.interfaces.cache_port import ResponseCachePort
from moatscope_api.application.interfaces.provider_port import StatementProviderAdapter
from moatscope_api.application.services.fetch_orchestrator import FetchOrchestrator
from moatscope_api.application.services.report_assembler import ReportAssembler
from moatscope_api.application.use_cases.analysis.analyze_company import AnalyzeCompany
from moatscope_api.application.use_cases.analysis.generate_report import GenerateReport
from moatscope_api.config.settings import Settings
from moatscope_api.domain.services.analytics_engine import AnalyticsAssumptions, AnalyticsEngine
from moatscope_api.infrastructure.external_apis.anthropic.client import AnthropicNarrativeClient
from moatscope_api.infrastructure.http.provider_transport import HttpxProviderTransport
from moatscope_api.infrastructure.resilience.retry import RetryPolicy


def assumptions_from_settings(settings: Settings) -> AnalyticsAssumptions:
    return AnalyticsAssumptions(
        risk_free_rate=settings.risk_free_rate,
        equity_risk_premium=settings.equity_risk_premium,
        fallback_tax_rate=settings.fallback_tax_rate,
        implausible_roic=settings.implausible_roic,
        trend_threshold=settings.trend_threshold,
    )


def build_analyze_company(
    settings: Settings,
    http_client: httpx.AsyncClient,
    cache: ResponseCachePort | None,
    *,
    adapter: StatementProviderAdapter | None = None,
) -> AnalyzeCompany:
    """Compose the analysis use case from settings and shared resources."""
    adapter = adapter or build_statement_adapter(settings)
    transport = HttpxProviderTransport(http_client)
    policy = RetryPolicy(
        max_attempts=settings.upstream_max_attempts,
        base=settings.upstream_backoff_base_s,
        cap=settings.upstream_backoff_cap_s,
    )

    def orchestrator_factory() -> FetchOrchestrator:
        return FetchOrchestrator(
            adapter=adapter,
            transport=transport,
            cache=cache,
            retry_policy=policy,
            attempt_timeout_s=settings.upstream_timeout_s,
            overall_timeout_s=settings.analysis_timeout_s,
            max_concurrency=settings.upstream_max_concurrency,
            cache_ttl_s=settings.cache_ttl_seconds,
        )

    return AnalyzeCompany(
        adapter=adapter,
        orchestrator_factory=orchestrator_factory,
        engine=AnalyticsEngine(assumptions_from_settings(settings)),
    )


def get_analyze_company(request: Request) -> AnalyzeCompany:
    state = request.app.state
    return build_analyze_company(state.settings, state.http_client, state.cache)


def get_generate_report(request: Request) -> GenerateReport:
    state = request.app.state
    narrative = AnthropicNarrativeClient.from_settings(state.http_client, state.settings)
    return GenerateReport(
        analyze=build_analyze_company(state.settings, state.http_client, state.cache),
        assembler=ReportAssembler(narrative),
    )
