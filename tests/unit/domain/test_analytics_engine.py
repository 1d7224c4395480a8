from __future__ import annotations

import pytest

from moatscope_api.domain.entities.financials import EarningsQuarter, MarketSnapshot
from moatscope_api.domain.enums.analysis import (
    EarningsTrackRecord,
    StatementType,
    TrendDirection,
    UndefinedReason,
    ValueCreationVerdict,
    WarningCode,
)
from moatscope_api.domain.services.analytics_engine import (
    AnalyticsAssumptions,
    AnalyticsEngine,
    compute_derived_metrics,
)


def _codes(metrics) -> list[WarningCode]:
    return [w.code for w in metrics.warnings]


def test_worked_example_flags_implausible_roic(make_year, make_history) -> None:
    year = make_year(
        revenue=385_706,
        ebit=123_456,
        tax_expense=15_000,
        pretax_income=115_000,
        current_assets=135_405,
        current_liabilities=145_308,
        net_ppe=40_000,
        goodwill=0,
        intangibles=0,
    )

    metrics = compute_derived_metrics(make_history(year))
    latest = metrics.latest

    assert latest.effective_tax_rate == pytest.approx(0.1304, abs=1e-4)
    assert latest.nopat == pytest.approx(107_353.04, rel=1e-6)
    assert latest.invested_capital.net_working_capital == pytest.approx(-9_903)
    assert latest.invested_capital.operating == pytest.approx(30_097)
    assert latest.roic.value == pytest.approx(3.567, abs=1e-3)
    assert WarningCode.ROIC_IMPLAUSIBLE in _codes(metrics)


def test_dupont_identity_holds(make_year, make_history) -> None:
    metrics = compute_derived_metrics(
        make_history(make_year(revenue=5_000, ebit=700, tax_expense=30, pretax_income=120))
    )
    dupont = metrics.latest.dupont

    assert dupont.consistent is True
    assert dupont.profit_margin.value is not None
    assert dupont.capital_turnover.value is not None
    assert dupont.profit_margin.value * dupont.capital_turnover.value == pytest.approx(
        metrics.latest.roic.value
    )
    assert WarningCode.DUPONT_MISMATCH not in _codes(metrics)


def test_non_positive_invested_capital_is_undefined(make_year, make_history) -> None:
    year = make_year(net_ppe=0, current_assets=10, current_liabilities=500)

    metrics = compute_derived_metrics(make_history(year))

    assert metrics.latest.roic.value is None
    assert metrics.latest.roic.reason is UndefinedReason.INVESTED_CAPITAL_NON_POSITIVE
    assert metrics.latest.dupont.consistent is None
    assert metrics.value_creation.verdict is ValueCreationVerdict.INDETERMINATE
    undefined = [w for w in metrics.warnings if w.code is WarningCode.METRIC_UNDEFINED]
    assert any(w.metric == "roic" for w in undefined)


def test_zero_revenue_margins_are_undefined(make_year, make_history) -> None:
    metrics = compute_derived_metrics(make_history(make_year(revenue=0)))

    assert metrics.latest.gross_margin.reason is UndefinedReason.REVENUE_NON_POSITIVE
    assert metrics.latest.operating_margin.value is None


def test_zero_pretax_income_uses_fallback_tax_rate(make_year, make_history) -> None:
    metrics = compute_derived_metrics(make_history(make_year(pretax_income=0, ebit=100)))

    assert metrics.latest.tax_rate_fallback is True
    assert metrics.latest.effective_tax_rate == pytest.approx(0.21)
    assert metrics.latest.nopat == pytest.approx(79.0)
    assert WarningCode.TAX_RATE_FALLBACK in _codes(metrics)


def test_revenue_growth_needs_a_prior_year(make_year, make_history) -> None:
    metrics = compute_derived_metrics(
        make_history(make_year(2023, revenue=1_000), make_year(2022, revenue=800))
    )

    assert metrics.series[0].revenue_growth.value == pytest.approx(0.25)
    assert metrics.series[1].revenue_growth.reason is UndefinedReason.NO_PRIOR_YEAR


@pytest.mark.parametrize(
    ("ebits", "direction", "change"),
    [
        ((200, 150, 100), TrendDirection.IMPROVING, 0.10),
        ((100, 150, 200), TrendDirection.DECLINING, -0.10),
        ((105, 300, 100), TrendDirection.STABLE, 0.005),
    ],
)
def test_roic_trend_compares_oldest_and_newest(
    make_year, make_history, ebits, direction, change
) -> None:
    years = [make_year(2023 - i, ebit=e) for i, e in enumerate(ebits)]

    trend = compute_derived_metrics(make_history(*years)).trend

    assert trend.direction is direction
    assert trend.from_year == 2021
    assert trend.to_year == 2023
    assert trend.change == pytest.approx(change)


def test_single_year_trend_is_insufficient(make_year, make_history) -> None:
    metrics = compute_derived_metrics(make_history(make_year()))

    assert metrics.trend.direction is TrendDirection.INSUFFICIENT_DATA
    assert WarningCode.SHORT_HISTORY in _codes(metrics)


def test_wacc_blends_market_equity_and_debt(make_year, make_history) -> None:
    year = make_year(
        long_term_debt=1_000,
        interest_expense=-50,
        tax_expense=21,
        pretax_income=100,
        market=MarketSnapshot(market_cap=3_000, beta=1.2),
    )

    coc = compute_derived_metrics(make_history(year)).cost_of_capital

    assert coc.cost_of_equity.value == pytest.approx(0.045 + 1.2 * 0.08)
    assert coc.cost_of_debt == pytest.approx(0.05)
    assert coc.wacc.value == pytest.approx(0.75 * 0.141 + 0.25 * 0.05 * 0.79)


def test_unknown_beta_leaves_wacc_undefined(make_year, make_history) -> None:
    metrics = compute_derived_metrics(make_history(make_year()))

    assert metrics.cost_of_capital.cost_of_equity.reason is UndefinedReason.BETA_UNKNOWN
    assert metrics.cost_of_capital.wacc.reason is UndefinedReason.OPERAND_UNDEFINED
    assert metrics.value_creation.spread.value is None
    assert metrics.value_creation.verdict is ValueCreationVerdict.INDETERMINATE


def test_value_creation_verdict(make_year, make_history) -> None:
    year = make_year(ebit=300, total_equity=500, market=MarketSnapshot(beta=1.0))

    metrics = compute_derived_metrics(make_history(year))

    assert metrics.latest.roic.value == pytest.approx(0.30)
    assert metrics.cost_of_capital.wacc.value == pytest.approx(0.125)
    assert metrics.value_creation.spread.value == pytest.approx(0.175)
    assert metrics.value_creation.verdict is ValueCreationVerdict.VALUE_CREATING


def test_negative_book_equity_still_weights_wacc(make_year, make_history) -> None:
    year = make_year(total_equity=-200, long_term_debt=1_000, market=MarketSnapshot(beta=1.0))

    metrics = compute_derived_metrics(make_history(year))

    # E = -200, D = 1000: Kd falls back to the risk-free rate with no interest.
    expected = -200 / 800 * 0.125 + 1_000 / 800 * 0.045
    assert metrics.cost_of_capital.wacc.value == pytest.approx(expected)
    assert metrics.value_creation.verdict is ValueCreationVerdict.VALUE_CREATING


def test_non_positive_capital_structure_leaves_wacc_undefined(make_year, make_history) -> None:
    year = make_year(total_equity=-2_000, long_term_debt=1_000, market=MarketSnapshot(beta=1.0))

    metrics = compute_derived_metrics(make_history(year))

    wacc = metrics.cost_of_capital.wacc
    assert wacc.reason is UndefinedReason.CAPITAL_STRUCTURE_NON_POSITIVE
    assert metrics.value_creation.verdict is ValueCreationVerdict.INDETERMINATE


@pytest.mark.parametrize(
    ("surprises", "record", "beats"),
    [
        ((5.0, 2.0, -1.0, 3.0), EarningsTrackRecord.CONSISTENT, 3),
        ((5.0, -2.0, -1.0, 3.0), EarningsTrackRecord.MIXED, 2),
        ((-5.0, -2.0, 0.0, 3.0), EarningsTrackRecord.STRUGGLING, 1),
    ],
)
def test_earnings_track_record(make_year, make_history, surprises, record, beats) -> None:
    quarters = tuple(
        EarningsQuarter(fiscal_date_ending=f"2023-0{i + 1}-30", surprise_pct=s)
        for i, s in enumerate(surprises)
    )

    summary = compute_derived_metrics(make_history(make_year(), earnings=quarters)).earnings

    assert summary.track_record is record
    assert summary.beats == beats
    assert summary.average_surprise_pct == pytest.approx(sum(surprises) / 4)


def test_earnings_fall_back_to_eps_difference(make_year, make_history) -> None:
    quarters = (
        EarningsQuarter("2023-09-30", reported_eps=1.5, estimated_eps=1.2),
        EarningsQuarter("2023-06-30", reported_eps=1.0, estimated_eps=1.1),
        EarningsQuarter("2023-03-31"),
    )

    summary = compute_derived_metrics(make_history(make_year(), earnings=quarters)).earnings

    assert (summary.beats, summary.misses) == (1, 1)
    # (1.5 - 1.2) / 1.2 = +25%, (1.0 - 1.1) / 1.1 = -9.09%
    assert summary.average_surprise_pct == pytest.approx((25.0 - 100 / 11) / 2)


def test_missing_earnings_source_is_unavailable(make_year, make_history) -> None:
    metrics = compute_derived_metrics(
        make_history(make_year(), unavailable=(StatementType.EARNINGS,))
    )

    assert metrics.earnings.track_record is EarningsTrackRecord.UNAVAILABLE
    optional = [w for w in metrics.warnings if w.code is WarningCode.OPTIONAL_SOURCE_UNAVAILABLE]
    assert [w.metric for w in optional] == ["earnings"]


def test_invested_capital_methods_reconcile(make_year, make_history) -> None:
    year = make_year(revenue=1_000, cash=120, total_equity=900, long_term_debt=200)

    ic = compute_derived_metrics(make_history(year)).latest.invested_capital

    # 2% of revenue is operating cash; the remaining 100 is excess.
    assert ic.excess_cash == pytest.approx(100)
    assert ic.financing == pytest.approx(1_000)
    assert ic.same_order_of_magnitude is True


def test_compute_is_deterministic(make_year, make_history) -> None:
    history = make_history(make_year(2023, ebit=150), make_year(2022, ebit=120))
    engine = AnalyticsEngine(AnalyticsAssumptions())

    assert engine.compute(history) == engine.compute(history)


def test_empty_history_is_rejected(make_history) -> None:
    with pytest.raises(ValueError):
        compute_derived_metrics(make_history())
