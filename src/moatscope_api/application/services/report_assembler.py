# src/moatscope_api/application/services/report_assembler.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Report Assembler.

Synopsis:
    Turns a canonical history plus its derived metrics into one prompt for the
    narrative service, then parses the answer into a JSON object.

Design:
    * Every figure in the prompt is precomputed; the narrative service is
      asked to interpret, not to recalculate.
    * Undefined metrics are rendered with their reason code.
    * The response is stripped of code fences and must decode to a JSON
      object; anything else raises ``NarrativeParseError``.
    * No credentials ever reach the prompt.

Layer:
    application/services
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any, Final

from moatscope_api.application.interfaces.narrative_port import NarrativeServicePort
from moatscope_api.domain.entities.derived_metrics import DerivedMetrics, MetricValue
from moatscope_api.domain.entities.financials import CanonicalFinancialHistory
from moatscope_api.domain.exceptions.analysis import NarrativeParseError

__all__ = [
    "NARRATIVE_SECTIONS",
    "ReportAssembler",
    "build_prompt",
    "format_currency",
    "format_percent",
    "parse_narrative",
    "strip_code_fences",
]

logger = logging.getLogger(__name__)

NARRATIVE_SECTIONS: Final[tuple[str, ...]] = (
    "roicAnalysis",
    "moatAnalysis",
    "expectationsAnalysis",
    "probabilistic",
    "management",
    "conclusion",
)

_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"\A\s*```(?:json)?[ \t]*\n?|\n?```\s*\Z", re.IGNORECASE
)

_SCALES: Final[tuple[tuple[float, str], ...]] = (
    (1e12, "T"),
    (1e9, "B"),
    (1e6, "M"),
    (1e3, "K"),
)


def format_currency(value: float | None, decimals: int = 1) -> str:
    """Format an amount with a T/B/M/K suffix, e.g. ``$385.7B``."""
    if value is None:
        return "N/A"
    magnitude = abs(value)
    for threshold, suffix in _SCALES:
        if magnitude >= threshold:
            return f"${value / threshold:.{decimals}f}{suffix}"
    return f"${value:.{decimals}f}"


def format_percent(value: float | None, decimals: int = 1) -> str:
    if value is None:
        return "N/A"
    return f"{value * 100:.{decimals}f}%"


def _metric(mv: MetricValue, fmt: Callable[[float | None], str] = format_percent) -> str:
    if mv.value is None:
        reason = mv.reason.value if mv.reason is not None else "unknown"
        return f"undefined ({reason})"
    return fmt(mv.value)


def _ratio(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def build_prompt(history: CanonicalFinancialHistory, metrics: DerivedMetrics) -> str:
    """Render the narrative prompt for one company."""
    profile = history.profile
    latest = metrics.latest
    ic = latest.invested_capital
    coc = metrics.cost_of_capital
    market = history.market

    lines: list[str] = [
        "You are a fundamental equity analyst applying Michael Mauboussin's "
        "ROIC and competitive-advantage framework.",
        "",
        f"Company: {profile.name} ({profile.ticker})",
        f"Sector / industry: {profile.sector or 'N/A'} / {profile.industry or 'N/A'}",
        f"Reporting currency: {profile.currency}",
        f"Years of history: {history.years_available}",
        "",
        "## Financial history (most recent first)",
    ]
    for year in history.years:
        lines.append(
            f"- FY{year.fiscal_year}: revenue {format_currency(year.revenue)}, "
            f"EBIT {format_currency(year.ebit)}, net income {format_currency(year.net_income)}, "
            f"operating cash flow {format_currency(year.operating_cash_flow)}, "
            f"capex {format_currency(year.capital_expenditures)}, "
            f"free cash flow {format_currency(year.free_cash_flow)}"
        )

    lines += [
        "",
        f"## Precomputed metrics (FY{latest.fiscal_year})",
        f"- Effective tax rate: {format_percent(latest.effective_tax_rate)}"
        + (" (statutory fallback)" if latest.tax_rate_fallback else ""),
        f"- NOPAT: {format_currency(latest.nopat)}",
        f"- Net working capital: {format_currency(ic.net_working_capital)}",
        f"- Invested capital (operating approach): {format_currency(ic.operating)}",
        f"- Invested capital (financing approach): {format_currency(ic.financing)}",
        f"- Invested capital reconciliation: {ic.reconciliation_note}",
        f"- ROIC: {_metric(latest.roic)}",
        f"- Profit margin (NOPAT / revenue): {_metric(latest.dupont.profit_margin)}",
        f"- Capital turnover (revenue / IC): {_metric(latest.dupont.capital_turnover, _ratio)}",
        f"- Gross margin: {_metric(latest.gross_margin)}",
        f"- Operating margin: {_metric(latest.operating_margin)}",
        f"- Revenue growth: {_metric(latest.revenue_growth)}",
        f"- Beta: {_ratio(coc.beta)}",
        f"- Cost of equity (CAPM, rf {format_percent(coc.risk_free_rate)}, "
        f"ERP {format_percent(coc.equity_risk_premium)}): {_metric(coc.cost_of_equity)}",
        f"- Cost of debt: {format_percent(coc.cost_of_debt)}",
        f"- WACC: {_metric(coc.wacc)}",
        f"- Economic spread (ROIC - WACC): {_metric(metrics.value_creation.spread)}",
        f"- Value creation verdict: {metrics.value_creation.verdict.value}",
        f"- ROIC trend: {metrics.trend.direction.value}"
        + (
            f" (FY{metrics.trend.from_year} to FY{metrics.trend.to_year})"
            if metrics.trend.from_year is not None
            else ""
        ),
        "",
        "## ROIC by year",
    ]
    lines += [f"- FY{ym.fiscal_year}: {_metric(ym.roic)}" for ym in metrics.series]

    lines += ["", "## Market snapshot"]
    if market is None:
        lines.append("- not available")
    else:
        lines += [
            f"- Market cap: {format_currency(market.market_cap)}",
            f"- Trailing P/E: {_ratio(market.trailing_pe)}",
            f"- Forward P/E: {_ratio(market.forward_pe)}",
            f"- Price to book: {_ratio(market.price_to_book)}",
            f"- 52-week range: {_ratio(market.week52_low)} - {_ratio(market.week52_high)}",
        ]

    earnings = metrics.earnings
    lines += ["", "## Earnings track record"]
    if not earnings.quarters:
        lines.append("- not available")
    else:
        avg = earnings.average_surprise_pct
        lines.append(
            f"- {earnings.beats} beats and {earnings.misses} misses over the last "
            f"{len(earnings.quarters)} quarters; average surprise "
            f"{'N/A' if avg is None else f'{avg:.1f}%'}; track record "
            f"{earnings.track_record.value}"
        )

    lines += ["", "## Data-quality warnings"]
    if metrics.warnings:
        lines += [f"- [{w.code.value}] {w.message}" for w in metrics.warnings]
    else:
        lines.append("- none")

    lines += [
        "",
        "Use the precomputed figures as given. Respond with a single JSON object and "
        "nothing else, with exactly these keys: " + ", ".join(NARRATIVE_SECTIONS) + ".",
        "roicAnalysis interprets the ROIC level, DuPont drivers, spread and trend; "
        "moatAnalysis names the moat type, strength, evidence and durability; "
        "expectationsAnalysis reads the market-implied expectations; probabilistic "
        "gives bull, base and bear scenarios with probabilities; management assesses "
        "capital allocation; conclusion gives the overall assessment.",
    ]
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    """Remove a leading and trailing Markdown code fence, with or without a ``json`` tag."""
    return _FENCE_RE.sub("", text).strip()


def parse_narrative(text: str) -> dict[str, Any]:
    """Parse the narrative answer into a JSON object.

    Raises:
        NarrativeParseError: Empty text, invalid JSON, or a non-object value.
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise NarrativeParseError("empty response")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise NarrativeParseError("response is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise NarrativeParseError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


class ReportAssembler:
    """Builds the prompt, calls the narrative service and parses its answer."""

    def __init__(self, narrative: NarrativeServicePort) -> None:
        self._narrative = narrative

    def ensure_configured(self) -> None:
        self._narrative.ensure_configured()

    async def assemble(
        self,
        history: CanonicalFinancialHistory,
        metrics: DerivedMetrics,
    ) -> dict[str, Any]:
        prompt = build_prompt(history, metrics)
        text = await self._narrative.complete(prompt)
        report = parse_narrative(text)
        missing = [key for key in NARRATIVE_SECTIONS if key not in report]
        if missing:
            logger.info(
                "narrative.sections_missing",
                extra={"extra": {"ticker": history.profile.ticker, "missing": missing}},
            )
        return report
