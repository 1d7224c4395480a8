# src/moatscope_api/application/schemas/dto/analysis.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Analysis DTOs.

Purpose:
    Serializable shapes of an analysis result: company identity, the
    canonical history, derived metrics, earnings summary and warnings.
    Undefined metrics carry ``value=None`` and their ``undefined_reason``.

Layer: application/schemas/dto
"""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import Field

from moatscope_api.application.schemas.dto.base import BaseDTO


class MetricDTO(BaseDTO):
    value: float | None = None
    undefined_reason: str | None = None


class CompanyDTO(BaseDTO):
    ticker: str
    name: str
    currency: str
    sector: str | None = None
    industry: str | None = None
    description: str | None = None


class MarketSnapshotDTO(BaseDTO):
    market_cap: float | None = None
    beta: float | None = None
    trailing_pe: float | None = None
    forward_pe: float | None = None
    price_to_book: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None
    shares_outstanding: float | None = None


class FinancialYearDTO(BaseDTO):
    """One canonical fiscal year (statement figures in reporting currency)."""

    fiscal_year: int
    fiscal_period_end: date
    currency: str

    revenue: float
    cost_of_revenue: float
    gross_profit: float
    operating_expenses: float
    operating_income: float
    ebitda: float
    ebit: float
    interest_expense: float
    tax_expense: float
    net_income: float
    pretax_income: float

    total_assets: float
    current_assets: float
    cash: float
    receivables: float
    inventory: float
    net_ppe: float
    goodwill: float
    intangibles: float
    total_liabilities: float
    current_liabilities: float
    payables: float
    short_term_debt: float
    long_term_debt: float
    total_equity: float

    operating_cash_flow: float
    capital_expenditures: float
    free_cash_flow: float


class InvestedCapitalDTO(BaseDTO):
    operating: float
    financing: float
    net_working_capital: float
    excess_cash: float
    same_order_of_magnitude: bool
    reconciliation_note: str


class DuPontDTO(BaseDTO):
    profit_margin: MetricDTO
    capital_turnover: MetricDTO
    consistent: bool | None = None


class YearMetricsDTO(BaseDTO):
    fiscal_year: int
    fiscal_period_end: date
    revenue: float
    effective_tax_rate: float
    tax_rate_fallback: bool
    nopat: float
    invested_capital: InvestedCapitalDTO
    roic: MetricDTO
    dupont: DuPontDTO
    gross_margin: MetricDTO
    operating_margin: MetricDTO
    free_cash_flow: float
    revenue_growth: MetricDTO


class CostOfCapitalDTO(BaseDTO):
    risk_free_rate: float
    equity_risk_premium: float
    beta: float | None = None
    cost_of_equity: MetricDTO
    cost_of_debt: float
    wacc: MetricDTO


class ValueCreationDTO(BaseDTO):
    spread: MetricDTO
    verdict: str


class RoicTrendDTO(BaseDTO):
    direction: str
    from_year: int | None = None
    to_year: int | None = None
    change: float | None = None


class EarningsQuarterDTO(BaseDTO):
    fiscal_date_ending: str
    reported_eps: float | None = None
    estimated_eps: float | None = None
    surprise_pct: float | None = None


class EarningsSummaryDTO(BaseDTO):
    quarters: list[EarningsQuarterDTO] = Field(default_factory=list)
    beats: int = 0
    misses: int = 0
    average_surprise_pct: float | None = None
    track_record: str


class WarningDTO(BaseDTO):
    code: str
    message: str
    fiscal_year: int | None = None
    metric: str | None = None


class DerivedMetricsDTO(BaseDTO):
    latest: YearMetricsDTO
    series: list[YearMetricsDTO]
    cost_of_capital: CostOfCapitalDTO
    value_creation: ValueCreationDTO
    trend: RoicTrendDTO


class AnalysisDTO(BaseDTO):
    """Body of ``GET /v1/analysis/{identifier}``."""

    identifier: str
    provider: str
    company: CompanyDTO
    years_available: int
    history: list[FinancialYearDTO]
    market: MarketSnapshotDTO | None = None
    unavailable: list[str] = Field(default_factory=list)
    metrics: DerivedMetricsDTO
    earnings: EarningsSummaryDTO
    warnings: list[WarningDTO] = Field(default_factory=list)


class ReportDTO(BaseDTO):
    """Body of ``POST /v1/analysis/{identifier}/report``."""

    analysis: AnalysisDTO
    narrative: dict[str, Any]
