# src/moatscope_api/application/use_cases/analysis/analyze_company.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""
Use Case: Analyze Company

Purpose:
    Resolve a company identifier to a ticker, fetch its statements through a
    request-scoped fetch orchestrator, normalize them and compute the derived
    metrics.

Errors:
    ConfigurationError is raised before any network call. Failures of
    required statements abort the analysis; optional statements degrade to
    "not available".

Layer: application/use_cases
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from moatscope_api.application.interfaces.provider_port import StatementProviderAdapter
from moatscope_api.application.services.fetch_orchestrator import (
    FetchOrchestrator,
    LogicalRequest,
)
from moatscope_api.domain.entities.derived_metrics import DerivedMetrics
from moatscope_api.domain.entities.financials import CanonicalFinancialHistory
from moatscope_api.domain.enums.analysis import (
    OPTIONAL_STATEMENTS,
    REQUIRED_STATEMENTS,
    StatementType,
)
from moatscope_api.domain.exceptions.analysis import AnalysisError
from moatscope_api.domain.services.analytics_engine import AnalyticsEngine
from moatscope_api.domain.services.financial_normalizer import normalize_company
from moatscope_api.infrastructure.observability.metrics import (
    get_analysis_latency_seconds,
    observe_latency,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Canonical history and the metrics derived from it."""

    identifier: str
    history: CanonicalFinancialHistory
    metrics: DerivedMetrics


def looks_like_ticker(identifier: str) -> bool:
    """Return True for identifiers used as tickers without a symbol search."""
    return bool(identifier) and identifier == identifier.upper() and " " not in identifier


class AnalyzeCompany:
    """Use case behind ``Analyze(companyIdentifier)``.

    Args:
        adapter: Active statement provider adapter.
        orchestrator_factory: Builds a fresh orchestrator per analysis.
        engine: Analytics engine holding the valuation assumptions.
    """

    def __init__(
        self,
        *,
        adapter: StatementProviderAdapter,
        orchestrator_factory: Callable[[], FetchOrchestrator],
        engine: AnalyticsEngine | None = None,
    ) -> None:
        self._adapter = adapter
        self._orchestrator_factory = orchestrator_factory
        self._engine = engine or AnalyticsEngine()

    def ensure_configured(self) -> None:
        self._adapter.ensure_configured()

    async def execute(self, identifier: str) -> AnalysisResult:
        """Run one analysis.

        Args:
            identifier: Ticker or company name.

        Returns:
            AnalysisResult: History plus derived metrics.

        Raises:
            ConfigurationError: The provider credential is missing.
            UpstreamRateLimited: A required statement stayed rate-limited.
            UpstreamUnavailable: A required statement could not be fetched.
        """
        self._adapter.ensure_configured()
        identifier = identifier.strip()

        with observe_latency(get_analysis_latency_seconds()) as obs:
            try:
                orchestrator = self._orchestrator_factory()
                ticker = await self.resolve_ticker(identifier, orchestrator)
                result = await orchestrator.fetch_all(
                    [
                        *(
                            LogicalRequest(st, self._adapter.request_for(st, ticker))
                            for st in REQUIRED_STATEMENTS
                        ),
                        *(
                            LogicalRequest(
                                st, self._adapter.request_for(st, ticker), required=False
                            )
                            for st in OPTIONAL_STATEMENTS
                        ),
                    ]
                )
                unavailable = tuple(st for st in OPTIONAL_STATEMENTS if st in result.absent)
                raw = self._adapter.to_raw(result.payloads, unavailable=unavailable)
                history = normalize_company(raw)
            except AnalysisError as exc:
                obs.mark(exc.kind)
                raise

            metrics = self._engine.compute(history)

        logger.info(
            "analysis.completed",
            extra={
                "extra": {
                    "ticker": history.profile.ticker,
                    "provider": self._adapter.name,
                    "years": history.years_available,
                    "unavailable": [st.value for st in unavailable],
                    "warnings": len(metrics.warnings),
                }
            },
        )
        return AnalysisResult(identifier=identifier, history=history, metrics=metrics)

    async def resolve_ticker(self, identifier: str, orchestrator: FetchOrchestrator) -> str:
        """Map a company identifier to a ticker.

        Upper-case identifiers without spaces are taken as tickers. Anything
        else goes through the provider's symbol search; when that fails or
        finds nothing the upper-cased identifier is used.
        """
        if looks_like_ticker(identifier):
            return identifier

        fallback = identifier.upper()
        search = LogicalRequest(
            StatementType.SYMBOL_SEARCH,
            self._adapter.request_for(StatementType.SYMBOL_SEARCH, identifier),
        )
        try:
            payload = await orchestrator.fetch_one(search)
        except AnalysisError as exc:
            logger.info(
                "analysis.symbol_search_failed",
                extra={"extra": {"identifier": identifier, "error_code": exc.code}},
            )
            return fallback

        matches = self._adapter.search_results(payload)
        ticker = matches[0] if matches else fallback
        logger.debug(
            "analysis.ticker_resolved",
            extra={"extra": {"identifier": identifier, "ticker": ticker, "matches": len(matches)}},
        )
        return ticker
