# src/moatscope_api/domain/services/analytics_engine.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""ROIC analytics engine.

Purpose:
    Derive NOPAT, invested capital (operating and financing methods), ROIC,
    the DuPont decomposition, CAPM cost of equity, a WACC estimate, the
    value-creation spread, the ROIC trend and an earnings-surprise summary from
    a canonical financial history.

Layer:
    domain

Notes:
    - Pure domain logic: no logging, no I/O, no metrics. The same history
      always yields an equal :class:`DerivedMetrics`.
    - Numeric edge cases never raise. Ratios whose denominator is zero or
      negative become :class:`MetricValue` instances with a reason code.
    - The DuPont identity (margin x turnover == ROIC) is re-checked for every
      year; a mismatch becomes a data-quality warning.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from moatscope_api.domain.entities.derived_metrics import (
    CostOfCapital,
    DataQualityWarning,
    DerivedMetrics,
    DuPontDecomposition,
    EarningsSummary,
    InvestedCapital,
    MetricValue,
    RoicTrend,
    ValueCreation,
    YearMetrics,
)
from moatscope_api.domain.entities.financials import (
    MAX_HISTORY_YEARS,
    CanonicalFinancialHistory,
    CanonicalFinancialYear,
    EarningsQuarter,
    MarketSnapshot,
)
from moatscope_api.domain.enums.analysis import (
    EarningsTrackRecord,
    TrendDirection,
    UndefinedReason,
    ValueCreationVerdict,
    WarningCode,
)

__all__ = [
    "AnalyticsAssumptions",
    "AnalyticsEngine",
    "compute_derived_metrics",
]


@dataclass(frozen=True, slots=True)
class AnalyticsAssumptions:
    """Market and policy constants used by the engine.

    Attributes:
        risk_free_rate: CAPM risk-free rate.
        equity_risk_premium: CAPM market risk premium.
        fallback_tax_rate: Effective tax rate used when pre-tax income is zero.
        operating_cash_ratio: Share of revenue treated as operating cash when
            computing excess cash for the financing method.
        implausible_roic: ROIC above this ratio is flagged, not rejected.
        trend_threshold: Minimum absolute ROIC change for a directional label.
        dupont_tolerance: Relative tolerance of the DuPont self-check.
        magnitude_ratio: Max ratio between the two invested-capital figures
            still considered the same order of magnitude.
    """

    risk_free_rate: float = 0.045
    equity_risk_premium: float = 0.08
    fallback_tax_rate: float = 0.21
    operating_cash_ratio: float = 0.02
    implausible_roic: float = 1.0
    trend_threshold: float = 0.01
    dupont_tolerance: float = 1e-9
    magnitude_ratio: float = 10.0


# --------------------------------------------------------------------------- #
# Internal errors and helpers
# --------------------------------------------------------------------------- #


class _UndefinedMetricError(Exception):
    """Raised by helpers when a ratio cannot be formed; mapped to MetricValue."""

    def __init__(self, reason: UndefinedReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


def _safe_divide(numerator: float, denominator: float, reason: UndefinedReason) -> float:
    """Divide by a strictly positive denominator.

    Raises:
        _UndefinedMetricError: If the denominator is not positive or the
            quotient is not finite.
    """
    if not denominator > 0:
        raise _UndefinedMetricError(reason)
    value = numerator / denominator
    if not math.isfinite(value):
        raise _UndefinedMetricError(reason)
    return value


def _ratio(numerator: float, denominator: float, reason: UndefinedReason) -> MetricValue:
    try:
        return MetricValue.of(_safe_divide(numerator, denominator, reason))
    except _UndefinedMetricError as exc:
        return MetricValue.undefined(exc.reason)


def _fmt(amount: float) -> str:
    return f"{amount:,.0f}"


# --------------------------------------------------------------------------- #
# Engine
# --------------------------------------------------------------------------- #


class AnalyticsEngine:
    """Stateless calculator turning a history into :class:`DerivedMetrics`."""

    def __init__(self, assumptions: AnalyticsAssumptions | None = None) -> None:
        self._a = assumptions or AnalyticsAssumptions()

    @property
    def assumptions(self) -> AnalyticsAssumptions:
        return self._a

    def compute(self, history: CanonicalFinancialHistory) -> DerivedMetrics:
        """Compute the full metric set.

        Args:
            history: Canonical history, most recent year first.

        Returns:
            Derived metrics for the latest year plus the per-year series.

        Raises:
            ValueError: If the history holds no fiscal year at all.
        """
        if not history.years:
            raise ValueError("history has no fiscal years")

        years = history.years
        series = tuple(
            self._year_metrics(year, years[i + 1] if i + 1 < len(years) else None)
            for i, year in enumerate(years)
        )
        latest = series[0]
        cost_of_capital = self._cost_of_capital(years[0], latest)
        value_creation = self._value_creation(latest.roic, cost_of_capital.wacc)
        trend = self._trend(series)
        earnings = self._earnings(history.earnings)
        warnings = self._warnings(history, series, cost_of_capital)

        return DerivedMetrics(
            latest=latest,
            series=series,
            cost_of_capital=cost_of_capital,
            value_creation=value_creation,
            trend=trend,
            earnings=earnings,
            warnings=warnings,
        )

    # ------------------------------------------------------------------ #
    # Per-year metrics
    # ------------------------------------------------------------------ #
    def _tax_rate(self, year: CanonicalFinancialYear) -> tuple[float, bool]:
        if year.pretax_income == 0:
            return self._a.fallback_tax_rate, True
        return year.tax_expense / year.pretax_income, False

    def _invested_capital(self, year: CanonicalFinancialYear) -> InvestedCapital:
        nwc = year.current_assets - year.current_liabilities
        operating = nwc + year.net_ppe + year.goodwill + year.intangibles
        operating_cash = self._a.operating_cash_ratio * max(year.revenue, 0.0)
        excess_cash = max(0.0, year.cash - operating_cash)
        financing = year.total_equity + year.total_debt - excess_cash

        same_order = (
            operating > 0
            and financing > 0
            and max(operating, financing) / min(operating, financing) <= self._a.magnitude_ratio
        )
        if same_order:
            note = (
                f"Operating method {_fmt(operating)} and financing method {_fmt(financing)} "
                f"are within {self._a.magnitude_ratio:g}x of each other; ROIC uses the "
                "operating method."
            )
        else:
            note = (
                f"Operating method {_fmt(operating)} and financing method {_fmt(financing)} "
                "do not agree in sign or order of magnitude; ROIC uses the operating method "
                "and the financing figure should be read with caution."
            )
        return InvestedCapital(
            operating=operating,
            financing=financing,
            net_working_capital=nwc,
            excess_cash=excess_cash,
            same_order_of_magnitude=same_order,
            reconciliation_note=note,
        )

    def _dupont(
        self,
        nopat: float,
        revenue: float,
        invested_capital: float,
        roic: MetricValue,
    ) -> DuPontDecomposition:
        margin = _ratio(nopat, revenue, UndefinedReason.REVENUE_NON_POSITIVE)
        turnover = _ratio(revenue, invested_capital, UndefinedReason.INVESTED_CAPITAL_NON_POSITIVE)
        consistent: bool | None = None
        if margin.value is not None and turnover.value is not None and roic.value is not None:
            consistent = math.isclose(
                margin.value * turnover.value,
                roic.value,
                rel_tol=self._a.dupont_tolerance,
                abs_tol=1e-12,
            )
        return DuPontDecomposition(
            profit_margin=margin,
            capital_turnover=turnover,
            consistent=consistent,
        )

    def _year_metrics(
        self,
        year: CanonicalFinancialYear,
        older: CanonicalFinancialYear | None,
    ) -> YearMetrics:
        tax_rate, fallback = self._tax_rate(year)
        nopat = year.ebit * (1.0 - tax_rate)
        ic = self._invested_capital(year)
        roic = _ratio(nopat, ic.operating, UndefinedReason.INVESTED_CAPITAL_NON_POSITIVE)

        if older is None:
            growth = MetricValue.undefined(UndefinedReason.NO_PRIOR_YEAR)
        else:
            growth = _ratio(
                year.revenue - older.revenue,
                older.revenue,
                UndefinedReason.REVENUE_NON_POSITIVE,
            )

        return YearMetrics(
            fiscal_period_end=year.fiscal_period_end,
            revenue=year.revenue,
            effective_tax_rate=tax_rate,
            tax_rate_fallback=fallback,
            nopat=nopat,
            invested_capital=ic,
            roic=roic,
            dupont=self._dupont(nopat, year.revenue, ic.operating, roic),
            gross_margin=_ratio(
                year.gross_profit, year.revenue, UndefinedReason.REVENUE_NON_POSITIVE
            ),
            operating_margin=_ratio(
                year.operating_income, year.revenue, UndefinedReason.REVENUE_NON_POSITIVE
            ),
            free_cash_flow=year.free_cash_flow,
            revenue_growth=growth,
        )

    # ------------------------------------------------------------------ #
    # Cost of capital and value creation
    # ------------------------------------------------------------------ #
    def _cost_of_capital(
        self,
        year: CanonicalFinancialYear,
        metrics: YearMetrics,
    ) -> CostOfCapital:
        market = year.market or MarketSnapshot()
        rf = self._a.risk_free_rate
        beta = market.beta

        if beta is None:
            cost_of_equity = MetricValue.undefined(UndefinedReason.BETA_UNKNOWN)
        else:
            cost_of_equity = MetricValue.of(rf + beta * self._a.equity_risk_premium)

        debt = year.total_debt
        interest = abs(year.interest_expense)
        cost_of_debt = interest / debt if debt > 0 and interest > 0 else rf

        if market.market_cap is not None and market.market_cap > 0:
            equity_value = market.market_cap
        else:
            equity_value = year.total_equity

        if cost_of_equity.value is None:
            wacc = MetricValue.undefined(UndefinedReason.OPERAND_UNDEFINED)
        elif equity_value + debt <= 0:
            wacc = MetricValue.undefined(UndefinedReason.CAPITAL_STRUCTURE_NON_POSITIVE)
        else:
            capital = equity_value + debt
            shield = 1.0 - min(max(metrics.effective_tax_rate, 0.0), 1.0)
            wacc = MetricValue.of(
                equity_value / capital * cost_of_equity.value
                + debt / capital * cost_of_debt * shield
            )

        return CostOfCapital(
            risk_free_rate=rf,
            equity_risk_premium=self._a.equity_risk_premium,
            beta=beta,
            cost_of_equity=cost_of_equity,
            cost_of_debt=cost_of_debt,
            wacc=wacc,
        )

    @staticmethod
    def _value_creation(roic: MetricValue, wacc: MetricValue) -> ValueCreation:
        if roic.value is None or wacc.value is None:
            return ValueCreation(
                spread=MetricValue.undefined(UndefinedReason.OPERAND_UNDEFINED),
                verdict=ValueCreationVerdict.INDETERMINATE,
            )
        spread = roic.value - wacc.value
        if spread > 0:
            verdict = ValueCreationVerdict.VALUE_CREATING
        elif spread < 0:
            verdict = ValueCreationVerdict.VALUE_DESTROYING
        else:
            verdict = ValueCreationVerdict.INDETERMINATE
        return ValueCreation(spread=MetricValue.of(spread), verdict=verdict)

    # ------------------------------------------------------------------ #
    # Trend and earnings
    # ------------------------------------------------------------------ #
    def _trend(self, series: Sequence[YearMetrics]) -> RoicTrend:
        defined = [(m.fiscal_year, m.roic.value) for m in series if m.roic.value is not None]
        if len(defined) < 2:
            return RoicTrend(direction=TrendDirection.INSUFFICIENT_DATA)

        (newest_year, newest), (oldest_year, oldest) = defined[0], defined[-1]
        change = newest - oldest
        if change > self._a.trend_threshold:
            direction = TrendDirection.IMPROVING
        elif change < -self._a.trend_threshold:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE
        return RoicTrend(
            direction=direction,
            from_year=oldest_year,
            to_year=newest_year,
            change=change,
        )

    @staticmethod
    def _earnings(quarters: Sequence[EarningsQuarter] | None) -> EarningsSummary:
        if not quarters:
            return EarningsSummary(
                quarters=tuple(quarters or ()),
                beats=0,
                misses=0,
                average_surprise_pct=None,
                track_record=EarningsTrackRecord.UNAVAILABLE,
            )

        beats = misses = 0
        surprises: list[float] = []
        for q in quarters:
            surprise = q.surprise_pct
            if surprise is not None:
                surprises.append(surprise)
            elif q.reported_eps is not None and q.estimated_eps is not None:
                surprise = q.reported_eps - q.estimated_eps
                if q.estimated_eps != 0:
                    surprises.append(surprise / abs(q.estimated_eps) * 100.0)
            else:
                continue
            if surprise > 0:
                beats += 1
            elif surprise < 0:
                misses += 1

        if beats >= 3:
            record = EarningsTrackRecord.CONSISTENT
        elif beats >= 2:
            record = EarningsTrackRecord.MIXED
        else:
            record = EarningsTrackRecord.STRUGGLING

        return EarningsSummary(
            quarters=tuple(quarters),
            beats=beats,
            misses=misses,
            average_surprise_pct=sum(surprises) / len(surprises) if surprises else None,
            track_record=record,
        )

    # ------------------------------------------------------------------ #
    # Data quality
    # ------------------------------------------------------------------ #
    def _warnings(
        self,
        history: CanonicalFinancialHistory,
        series: Sequence[YearMetrics],
        cost_of_capital: CostOfCapital,
    ) -> tuple[DataQualityWarning, ...]:
        out: list[DataQualityWarning] = []
        latest = series[0]

        if history.years_available < MAX_HISTORY_YEARS:
            out.append(
                DataQualityWarning(
                    code=WarningCode.SHORT_HISTORY,
                    message=(
                        f"Only {history.years_available} of {MAX_HISTORY_YEARS} fiscal years "
                        "are available; trends cover a shorter period."
                    ),
                )
            )

        for statement in history.unavailable:
            out.append(
                DataQualityWarning(
                    code=WarningCode.OPTIONAL_SOURCE_UNAVAILABLE,
                    message=f"Optional {statement.label} data is not available.",
                    metric=statement.value,
                )
            )

        for year in history.years:
            for statement in year.missing_statements:
                out.append(
                    DataQualityWarning(
                        code=WarningCode.STATEMENT_MISALIGNED,
                        message=(
                            f"No {statement.label} record matches fiscal year "
                            f"{year.fiscal_year}; its figures are treated as zero."
                        ),
                        fiscal_year=year.fiscal_year,
                        metric=statement.value,
                    )
                )

        for m in series:
            if m.tax_rate_fallback:
                out.append(
                    DataQualityWarning(
                        code=WarningCode.TAX_RATE_FALLBACK,
                        message=(
                            f"Pre-tax income is zero in {m.fiscal_year}; a "
                            f"{self._a.fallback_tax_rate:.0%} tax rate was assumed."
                        ),
                        fiscal_year=m.fiscal_year,
                        metric="effective_tax_rate",
                    )
                )
            if m.dupont.consistent is False:
                out.append(
                    DataQualityWarning(
                        code=WarningCode.DUPONT_MISMATCH,
                        message=(
                            f"Profit margin x capital turnover does not reproduce ROIC "
                            f"in {m.fiscal_year}."
                        ),
                        fiscal_year=m.fiscal_year,
                        metric="roic",
                    )
                )
            if m.roic.value is not None and m.roic.value > self._a.implausible_roic:
                out.append(
                    DataQualityWarning(
                        code=WarningCode.ROIC_IMPLAUSIBLE,
                        message=(
                            f"ROIC of {m.roic.value:.1%} in {m.fiscal_year} is implausibly "
                            "high; invested capital is likely understated."
                        ),
                        fiscal_year=m.fiscal_year,
                        metric="roic",
                    )
                )

        undefined = (
            ("roic", latest.roic),
            ("cost_of_equity", cost_of_capital.cost_of_equity),
            ("wacc", cost_of_capital.wacc),
        )
        for name, value in undefined:
            if value.reason is not None:
                out.append(
                    DataQualityWarning(
                        code=WarningCode.METRIC_UNDEFINED,
                        message=f"{name} is undefined ({value.reason.value}).",
                        fiscal_year=latest.fiscal_year,
                        metric=name,
                    )
                )

        if not latest.invested_capital.same_order_of_magnitude:
            out.append(
                DataQualityWarning(
                    code=WarningCode.INVESTED_CAPITAL_DIVERGENCE,
                    message=latest.invested_capital.reconciliation_note,
                    fiscal_year=latest.fiscal_year,
                    metric="invested_capital",
                )
            )

        return tuple(out)


def compute_derived_metrics(
    history: CanonicalFinancialHistory,
    assumptions: AnalyticsAssumptions | None = None,
) -> DerivedMetrics:
    """Functional entry point around :class:`AnalyticsEngine`."""
    return AnalyticsEngine(assumptions).compute(history)
