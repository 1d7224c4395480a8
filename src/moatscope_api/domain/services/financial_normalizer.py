# src/moatscope_api/domain/services/financial_normalizer.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Financial normalizer.

Purpose:
    Merge adapter outputs for one company into a
    :class:`~moatscope_api.domain.entities.financials.CanonicalFinancialHistory`.

Coercion:
    All numeric parsing goes through exactly two functions:

    * :func:`coerce_statement` returns a finite float and maps anything absent
      or unparseable to ``0.0``.
    * :func:`coerce_market` returns a finite float or ``None`` (unknown).

    Absent means ``None``, an empty string, or one of the provider sentinels in
    :data:`ABSENT_MARKERS` (Alpha Vantage writes ``"None"``). Numeric strings
    accept scientific notation and thousands separators. NaN and infinities
    are treated as unparseable.

Alignment:
    Income-statement records drive the history. Balance-sheet and cash-flow
    records are matched on the exact period end, then on the fiscal year. A
    year with no matching record keeps zeros for that statement and lists it
    in ``missing_statements``.

Layer:
    domain/services
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from moatscope_api.domain.entities.financials import (
    MAX_HISTORY_YEARS,
    CanonicalFinancialHistory,
    CanonicalFinancialYear,
    CompanyProfile,
    EarningsQuarter,
    MarketSnapshot,
)
from moatscope_api.domain.entities.provider_records import (
    BALANCE_FIELDS,
    CASH_FLOW_FIELDS,
    CURRENCY,
    INCOME_FIELDS,
    MARKET_FIELDS,
    PERIOD_END,
    RawCompanyData,
    RawRecord,
)
from moatscope_api.domain.enums.analysis import StatementType
from moatscope_api.domain.exceptions.analysis import UpstreamUnavailable

__all__ = [
    "ABSENT_MARKERS",
    "MAX_EARNINGS_QUARTERS",
    "coerce_market",
    "coerce_statement",
    "normalize_company",
]

ABSENT_MARKERS: frozenset[str] = frozenset(
    {"", "none", "null", "undefined", "nan", "n/a", "na", "-", "--"}
)

MAX_EARNINGS_QUARTERS = 4


def _parse_number(raw: Any) -> float | None:
    """Parse ``raw`` into a finite float, or ``None`` when it cannot be."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, int | float | Decimal):
            value = float(raw)
        elif isinstance(raw, str):
            text = raw.strip()
            if text.lower() in ABSENT_MARKERS:
                return None
            value = float(text.replace(",", ""))
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return value if math.isfinite(value) else None


def coerce_statement(raw: Any) -> float:
    """Coerce a statement figure; absent or unparseable values become ``0.0``."""
    value = _parse_number(raw)
    return 0.0 if value is None else value


def coerce_market(raw: Any) -> float | None:
    """Coerce a market figure; absent or unparseable values stay unknown."""
    return _parse_number(raw)


def _parse_period(raw: Any) -> date | None:
    if raw is None:
        return None
    text = str(raw).strip()[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _text(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    if text.lower() in ABSENT_MARKERS:
        return None
    return text


def _dated(records: Iterable[RawRecord]) -> list[tuple[date, RawRecord]]:
    """Return ``(period_end, record)`` pairs, most recent first, undated dropped."""
    dated = [
        (period, record)
        for record in records
        if (period := _parse_period(record.get(PERIOD_END))) is not None
    ]
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return dated


def _match(period: date, candidates: Sequence[tuple[date, RawRecord]]) -> RawRecord | None:
    for candidate_period, record in candidates:
        if candidate_period == period:
            return record
    for candidate_period, record in candidates:
        if candidate_period.year == period.year:
            return record
    return None


def _require(
    records: Sequence[RawRecord],
    *,
    provider: str,
    statement: StatementType,
) -> list[tuple[date, RawRecord]]:
    dated = _dated(records)
    if not dated:
        raise UpstreamUnavailable(
            provider=provider,
            statement=statement,
            reason="no annual records returned",
        )
    return dated


def _profile(raw: RawCompanyData) -> CompanyProfile:
    record = raw.profile
    ticker = _text(record.get("ticker")) if record else None
    if record is None or ticker is None:
        raise UpstreamUnavailable(
            provider=raw.provider,
            statement=StatementType.PROFILE,
            reason="company not found",
            not_found=True,
        )
    return CompanyProfile(
        ticker=ticker.upper(),
        name=_text(record.get("name")) or ticker.upper(),
        currency=_text(record.get("currency")) or "USD",
        industry=_text(record.get("industry")),
        sector=_text(record.get("sector")),
        description=_text(record.get("description")),
    )


def _market(record: RawRecord | None) -> MarketSnapshot | None:
    if record is None:
        return None
    return MarketSnapshot(**{name: coerce_market(record.get(name)) for name in MARKET_FIELDS})


def _statement_values(record: RawRecord | None, fields: Sequence[str]) -> dict[str, float]:
    if record is None:
        return dict.fromkeys(fields, 0.0)
    return {name: coerce_statement(record.get(name)) for name in fields}


def _cash_flow_values(record: RawRecord | None) -> dict[str, float]:
    values = _statement_values(record, CASH_FLOW_FIELDS)
    capex = abs(values["capital_expenditures"])
    values["capital_expenditures"] = capex
    reported_fcf = _parse_number(record.get("free_cash_flow")) if record else None
    if reported_fcf is None:
        values["free_cash_flow"] = values["operating_cash_flow"] - capex
    return values


def _earnings(records: Sequence[RawRecord] | None) -> tuple[EarningsQuarter, ...] | None:
    if records is None:
        return None
    quarters = [
        EarningsQuarter(
            fiscal_date_ending=str(period),
            reported_eps=coerce_market(record.get("reported_eps")),
            estimated_eps=coerce_market(record.get("estimated_eps")),
            surprise_pct=coerce_market(record.get("surprise_pct")),
        )
        for period, record in _dated(
            {**r, PERIOD_END: r.get("fiscal_date_ending")} for r in records
        )
    ]
    return tuple(quarters[:MAX_EARNINGS_QUARTERS])


def normalize_company(raw: RawCompanyData) -> CanonicalFinancialHistory:
    """Build the canonical history for one company.

    Args:
        raw: Adapter output for the company.

    Returns:
        History of at most :data:`MAX_HISTORY_YEARS` years, most recent first.

    Raises:
        UpstreamUnavailable: The profile or a required statement has no usable
            record. The error names the statement.
    """
    profile = _profile(raw)
    income = _require(raw.income, provider=raw.provider, statement=StatementType.INCOME_STATEMENT)
    balance = _require(raw.balance, provider=raw.provider, statement=StatementType.BALANCE_SHEET)
    cash_flow = _require(
        raw.cash_flow, provider=raw.provider, statement=StatementType.CASH_FLOW
    )
    market = _market(raw.market)

    years: list[CanonicalFinancialYear] = []
    for index, (period, income_record) in enumerate(income[:MAX_HISTORY_YEARS]):
        balance_record = _match(period, balance)
        cash_flow_record = _match(period, cash_flow)
        missing: list[StatementType] = []
        if balance_record is None:
            missing.append(StatementType.BALANCE_SHEET)
        if cash_flow_record is None:
            missing.append(StatementType.CASH_FLOW)

        years.append(
            CanonicalFinancialYear(
                ticker=profile.ticker,
                company_name=profile.name,
                fiscal_period_end=period,
                currency=_text(income_record.get(CURRENCY)) or profile.currency,
                **_statement_values(income_record, INCOME_FIELDS),
                **_statement_values(balance_record, BALANCE_FIELDS),
                **_cash_flow_values(cash_flow_record),
                market=market if index == 0 else None,
                missing_statements=tuple(missing),
            )
        )

    return CanonicalFinancialHistory(
        profile=profile,
        years=tuple(years),
        earnings=_earnings(raw.earnings),
        unavailable=tuple(raw.unavailable),
    )

