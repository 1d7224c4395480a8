# src/moatscope_api/domain/entities/financials.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Canonical financial model.

Summary:
    Provider-neutral, normalized representation of one company's multi-year
    statements. Built fresh for each analysis request by the financial
    normalizer and consumed by the analytics engine; never persisted.

Conventions:
    * Statement figures are finite floats. Absent upstream values are ``0.0``.
    * Market figures are ``float | None``; ``None`` means unknown, which is
      distinct from zero.
    * Capital expenditures are a non-negative magnitude.
    * Histories are ordered most recent first.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from moatscope_api.domain.enums.analysis import StatementType

#: Maximum number of fiscal years retained in a history.
MAX_HISTORY_YEARS = 5


@dataclass(frozen=True, slots=True)
class CompanyProfile:
    """Identity block of the analyzed company."""

    ticker: str
    name: str
    currency: str = "USD"
    industry: str | None = None
    sector: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Point-in-time market figures; every field may be unknown."""

    market_cap: float | None = None
    beta: float | None = None
    trailing_pe: float | None = None
    forward_pe: float | None = None
    price_to_book: float | None = None
    week52_high: float | None = None
    week52_low: float | None = None
    shares_outstanding: float | None = None


@dataclass(frozen=True, slots=True)
class CanonicalFinancialYear:
    """One fiscal year of normalized figures for a single company."""

    # identity
    ticker: str
    company_name: str
    fiscal_period_end: date
    currency: str

    # income statement
    revenue: float = 0.0
    cost_of_revenue: float = 0.0
    gross_profit: float = 0.0
    operating_expenses: float = 0.0
    operating_income: float = 0.0
    ebitda: float = 0.0
    ebit: float = 0.0
    interest_expense: float = 0.0
    tax_expense: float = 0.0
    net_income: float = 0.0
    pretax_income: float = 0.0

    # balance sheet
    total_assets: float = 0.0
    current_assets: float = 0.0
    cash: float = 0.0
    receivables: float = 0.0
    inventory: float = 0.0
    net_ppe: float = 0.0
    goodwill: float = 0.0
    intangibles: float = 0.0
    total_liabilities: float = 0.0
    current_liabilities: float = 0.0
    payables: float = 0.0
    short_term_debt: float = 0.0
    long_term_debt: float = 0.0
    total_equity: float = 0.0

    # cash flow
    operating_cash_flow: float = 0.0
    capital_expenditures: float = 0.0
    free_cash_flow: float = 0.0

    # market snapshot; only ever set on the most recent year
    market: MarketSnapshot | None = None

    # statements that had no record matching this period
    missing_statements: tuple[StatementType, ...] = ()

    @property
    def fiscal_year(self) -> int:
        return self.fiscal_period_end.year

    @property
    def total_debt(self) -> float:
        return self.short_term_debt + self.long_term_debt


@dataclass(frozen=True, slots=True)
class EarningsQuarter:
    """One reported quarter from the prior-earnings source."""

    fiscal_date_ending: str
    reported_eps: float | None = None
    estimated_eps: float | None = None
    surprise_pct: float | None = None


@dataclass(frozen=True, slots=True)
class CanonicalFinancialHistory:
    """Up to :data:`MAX_HISTORY_YEARS` years for one company, most recent first.

    Attributes:
        profile: Company identity.
        years: Normalized fiscal years, descending by period end.
        earnings: Recent quarters, or ``None`` when the source was unavailable.
        unavailable: Optional sources that could not be fetched.
    """

    profile: CompanyProfile
    years: tuple[CanonicalFinancialYear, ...]
    earnings: tuple[EarningsQuarter, ...] | None = None
    unavailable: tuple[StatementType, ...] = field(default_factory=tuple)

    @property
    def years_available(self) -> int:
        return len(self.years)

    @property
    def latest(self) -> CanonicalFinancialYear:
        return self.years[0]

    @property
    def market(self) -> MarketSnapshot | None:
        """Market snapshot carried by the most recent year, if any."""
        return self.years[0].market if self.years else None
