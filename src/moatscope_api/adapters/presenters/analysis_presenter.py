# src/moatscope_api/adapters/presenters/analysis_presenter.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Presenter: AnalysisResult -> HTTP SuccessEnvelope.

Synopsis:
    Maps domain results (history, derived metrics, earnings, warnings) onto
    the application DTOs and wraps them in the canonical envelope. No
    business logic lives here.

Layer:
    adapters/presenters
"""

from __future__ import annotations

from typing import Any

from moatscope_api.adapters.presenters.base_presenter import BasePresenter, PresentResult
from moatscope_api.adapters.schemas.http.envelopes import SuccessEnvelope
from moatscope_api.application.schemas.dto.analysis import (
    AnalysisDTO,
    CompanyDTO,
    CostOfCapitalDTO,
    DerivedMetricsDTO,
    DuPontDTO,
    EarningsQuarterDTO,
    EarningsSummaryDTO,
    FinancialYearDTO,
    InvestedCapitalDTO,
    MarketSnapshotDTO,
    MetricDTO,
    ReportDTO,
    RoicTrendDTO,
    ValueCreationDTO,
    WarningDTO,
    YearMetricsDTO,
)
from moatscope_api.application.use_cases.analysis.analyze_company import AnalysisResult
from moatscope_api.domain.entities.derived_metrics import (
    DataQualityWarning,
    EarningsSummary,
    MetricValue,
    YearMetrics,
)
from moatscope_api.domain.entities.financials import CanonicalFinancialYear, MarketSnapshot
from moatscope_api.domain.entities.provider_records import (
    BALANCE_FIELDS,
    CASH_FLOW_FIELDS,
    INCOME_FIELDS,
    MARKET_FIELDS,
)

_STATEMENT_FIELDS = INCOME_FIELDS + BALANCE_FIELDS + CASH_FLOW_FIELDS


def _metric(mv: MetricValue) -> MetricDTO:
    return MetricDTO(
        value=mv.value,
        undefined_reason=mv.reason.value if mv.reason is not None else None,
    )


def _year(year: CanonicalFinancialYear) -> FinancialYearDTO:
    values: dict[str, Any] = {name: getattr(year, name) for name in _STATEMENT_FIELDS}
    return FinancialYearDTO(
        fiscal_year=year.fiscal_year,
        fiscal_period_end=year.fiscal_period_end,
        currency=year.currency,
        **values,
    )


def _market(snapshot: MarketSnapshot | None) -> MarketSnapshotDTO | None:
    if snapshot is None:
        return None
    return MarketSnapshotDTO(**{name: getattr(snapshot, name) for name in MARKET_FIELDS})


def _year_metrics(ym: YearMetrics) -> YearMetricsDTO:
    ic = ym.invested_capital
    return YearMetricsDTO(
        fiscal_year=ym.fiscal_year,
        fiscal_period_end=ym.fiscal_period_end,
        revenue=ym.revenue,
        effective_tax_rate=ym.effective_tax_rate,
        tax_rate_fallback=ym.tax_rate_fallback,
        nopat=ym.nopat,
        invested_capital=InvestedCapitalDTO(
            operating=ic.operating,
            financing=ic.financing,
            net_working_capital=ic.net_working_capital,
            excess_cash=ic.excess_cash,
            same_order_of_magnitude=ic.same_order_of_magnitude,
            reconciliation_note=ic.reconciliation_note,
        ),
        roic=_metric(ym.roic),
        dupont=DuPontDTO(
            profit_margin=_metric(ym.dupont.profit_margin),
            capital_turnover=_metric(ym.dupont.capital_turnover),
            consistent=ym.dupont.consistent,
        ),
        gross_margin=_metric(ym.gross_margin),
        operating_margin=_metric(ym.operating_margin),
        free_cash_flow=ym.free_cash_flow,
        revenue_growth=_metric(ym.revenue_growth),
    )


def _earnings(summary: EarningsSummary) -> EarningsSummaryDTO:
    return EarningsSummaryDTO(
        quarters=[
            EarningsQuarterDTO(
                fiscal_date_ending=q.fiscal_date_ending,
                reported_eps=q.reported_eps,
                estimated_eps=q.estimated_eps,
                surprise_pct=q.surprise_pct,
            )
            for q in summary.quarters
        ],
        beats=summary.beats,
        misses=summary.misses,
        average_surprise_pct=summary.average_surprise_pct,
        track_record=summary.track_record.value,
    )


def _warning(w: DataQualityWarning) -> WarningDTO:
    return WarningDTO(code=w.code.value, message=w.message, fiscal_year=w.fiscal_year, metric=w.metric)


def to_analysis_dto(result: AnalysisResult, *, provider: str) -> AnalysisDTO:
    """Map an analysis result onto its DTO."""
    history = result.history
    metrics = result.metrics
    profile = history.profile
    coc = metrics.cost_of_capital
    return AnalysisDTO(
        identifier=result.identifier,
        provider=provider,
        company=CompanyDTO(
            ticker=profile.ticker,
            name=profile.name,
            currency=profile.currency,
            sector=profile.sector,
            industry=profile.industry,
            description=profile.description,
        ),
        years_available=history.years_available,
        history=[_year(y) for y in history.years],
        market=_market(history.market),
        unavailable=[st.value for st in history.unavailable],
        metrics=DerivedMetricsDTO(
            latest=_year_metrics(metrics.latest),
            series=[_year_metrics(ym) for ym in metrics.series],
            cost_of_capital=CostOfCapitalDTO(
                risk_free_rate=coc.risk_free_rate,
                equity_risk_premium=coc.equity_risk_premium,
                beta=coc.beta,
                cost_of_equity=_metric(coc.cost_of_equity),
                cost_of_debt=coc.cost_of_debt,
                wacc=_metric(coc.wacc),
            ),
            value_creation=ValueCreationDTO(
                spread=_metric(metrics.value_creation.spread),
                verdict=metrics.value_creation.verdict.value,
            ),
            trend=RoicTrendDTO(
                direction=metrics.trend.direction.value,
                from_year=metrics.trend.from_year,
                to_year=metrics.trend.to_year,
                change=metrics.trend.change,
            ),
        ),
        earnings=_earnings(metrics.earnings),
        warnings=[_warning(w) for w in metrics.warnings],
    )


class AnalysisPresenter(BasePresenter):
    """Presenter for ``/v1/analysis`` success responses."""

    def present_analysis(
        self,
        result: AnalysisResult,
        *,
        provider: str,
        trace_id: str | None = None,
    ) -> PresentResult[SuccessEnvelope[AnalysisDTO]]:
        return self.present_success(
            data=to_analysis_dto(result, provider=provider), trace_id=trace_id
        )

    def present_report(
        self,
        result: AnalysisResult,
        narrative: dict[str, Any],
        *,
        provider: str,
        trace_id: str | None = None,
    ) -> PresentResult[SuccessEnvelope[ReportDTO]]:
        dto = ReportDTO(analysis=to_analysis_dto(result, provider=provider), narrative=narrative)
        return self.present_success(data=dto, trace_id=trace_id)
