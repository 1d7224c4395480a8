# src/moatscope_api/domain/entities/derived_metrics.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Derived metric entities.

Summary:
    Immutable value objects produced by the analytics engine. All of them are
    plain frozen dataclasses so two results built from the same history
    compare equal.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from moatscope_api.domain.enums.analysis import (
    EarningsTrackRecord,
    TrendDirection,
    UndefinedReason,
    ValueCreationVerdict,
    WarningCode,
)
from moatscope_api.domain.entities.financials import EarningsQuarter


@dataclass(frozen=True, slots=True)
class MetricValue:
    """A ratio that is either a finite float or undefined with a reason."""

    value: float | None
    reason: UndefinedReason | None = None

    @classmethod
    def of(cls, value: float) -> MetricValue:
        return cls(value=value)

    @classmethod
    def undefined(cls, reason: UndefinedReason) -> MetricValue:
        return cls(value=None, reason=reason)

    @property
    def is_defined(self) -> bool:
        return self.value is not None


@dataclass(frozen=True, slots=True)
class InvestedCapital:
    """Invested capital by the operating and the financing method.

    Attributes:
        operating: Net working capital + net PP&E + goodwill + intangibles.
        financing: Total equity + total debt - excess cash.
        net_working_capital: Current assets - current liabilities.
        excess_cash: Cash above the operating cash requirement.
        same_order_of_magnitude: Whether both figures are positive and within 10x.
        reconciliation_note: Human-readable comparison of the two methods.
    """

    operating: float
    financing: float
    net_working_capital: float
    excess_cash: float
    same_order_of_magnitude: bool
    reconciliation_note: str


@dataclass(frozen=True, slots=True)
class DuPontDecomposition:
    """ROIC as profit margin x capital turnover, plus the identity check."""

    profit_margin: MetricValue
    capital_turnover: MetricValue
    consistent: bool | None


@dataclass(frozen=True, slots=True)
class YearMetrics:
    """Metrics for one fiscal year."""

    fiscal_period_end: date
    revenue: float
    effective_tax_rate: float
    tax_rate_fallback: bool
    nopat: float
    invested_capital: InvestedCapital
    roic: MetricValue
    dupont: DuPontDecomposition
    gross_margin: MetricValue
    operating_margin: MetricValue
    free_cash_flow: float
    revenue_growth: MetricValue

    @property
    def fiscal_year(self) -> int:
        return self.fiscal_period_end.year


@dataclass(frozen=True, slots=True)
class CostOfCapital:
    """CAPM cost of equity and the WACC estimate built on it."""

    risk_free_rate: float
    equity_risk_premium: float
    beta: float | None
    cost_of_equity: MetricValue
    cost_of_debt: float
    wacc: MetricValue


@dataclass(frozen=True, slots=True)
class ValueCreation:
    spread: MetricValue
    verdict: ValueCreationVerdict


@dataclass(frozen=True, slots=True)
class RoicTrend:
    """ROIC direction between the oldest and newest year with a defined ROIC."""

    direction: TrendDirection
    from_year: int | None = None
    to_year: int | None = None
    change: float | None = None


@dataclass(frozen=True, slots=True)
class EarningsSummary:
    quarters: tuple[EarningsQuarter, ...]
    beats: int
    misses: int
    average_surprise_pct: float | None
    track_record: EarningsTrackRecord


@dataclass(frozen=True, slots=True)
class DataQualityWarning:
    """Non-fatal observation attached to a successful analysis."""

    code: WarningCode
    message: str
    fiscal_year: int | None = None
    metric: str | None = None


@dataclass(frozen=True, slots=True)
class DerivedMetrics:
    """Full analytics output for one company.

    Attributes:
        latest: Metrics of the most recent fiscal year.
        series: Per-year metrics, most recent first (``series[0] == latest``).
        cost_of_capital: CAPM and WACC figures for the latest year.
        value_creation: ROIC - WACC spread and its verdict.
        trend: ROIC direction across the available years.
        earnings: Prior-earnings summary.
        warnings: Data-quality warnings in a deterministic order.
    """

    latest: YearMetrics
    series: tuple[YearMetrics, ...]
    cost_of_capital: CostOfCapital
    value_creation: ValueCreation
    trend: RoicTrend
    earnings: EarningsSummary
    warnings: tuple[DataQualityWarning, ...]
