# src/moatscope_api/domain/entities/provider_records.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Provider-neutral raw records.

Summary:
    Shapes emitted by provider adapters. Keys are canonical field names, values
    are still raw (strings, numbers, sentinels). Numeric coercion is owned by
    the financial normalizer, not by adapters.

Layer:
    domain/entities
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from moatscope_api.domain.enums.analysis import StatementType

type RawRecord = Mapping[str, Any]

# Identity keys shared by statement records.
PERIOD_END = "fiscal_period_end"
CURRENCY = "currency"

INCOME_FIELDS: tuple[str, ...] = (
    "revenue",
    "cost_of_revenue",
    "gross_profit",
    "operating_expenses",
    "operating_income",
    "ebitda",
    "ebit",
    "interest_expense",
    "tax_expense",
    "net_income",
    "pretax_income",
)

BALANCE_FIELDS: tuple[str, ...] = (
    "total_assets",
    "current_assets",
    "cash",
    "receivables",
    "inventory",
    "net_ppe",
    "goodwill",
    "intangibles",
    "total_liabilities",
    "current_liabilities",
    "payables",
    "short_term_debt",
    "long_term_debt",
    "total_equity",
)

CASH_FLOW_FIELDS: tuple[str, ...] = (
    "operating_cash_flow",
    "capital_expenditures",
    "free_cash_flow",
)

MARKET_FIELDS: tuple[str, ...] = (
    "market_cap",
    "beta",
    "trailing_pe",
    "forward_pe",
    "price_to_book",
    "week52_high",
    "week52_low",
    "shares_outstanding",
)

PROFILE_FIELDS: tuple[str, ...] = (
    "ticker",
    "name",
    "currency",
    "industry",
    "sector",
    "description",
)

EARNINGS_FIELDS: tuple[str, ...] = (
    "fiscal_date_ending",
    "reported_eps",
    "estimated_eps",
    "surprise_pct",
)


@dataclass(frozen=True, slots=True)
class RawCompanyData:
    """Adapter output for one company, before normalization.

    Attributes:
        provider: Name of the provider that supplied the records.
        profile: Profile record, or ``None`` when the provider had none.
        income: Annual income-statement records in provider order.
        balance: Annual balance-sheet records in provider order.
        cash_flow: Annual cash-flow records in provider order.
        market: Market snapshot record, or ``None`` when not available.
        earnings: Quarterly earnings records, or ``None`` when not available.
        unavailable: Optional sources that failed to load.
    """

    provider: str
    profile: RawRecord | None
    income: Sequence[RawRecord] = ()
    balance: Sequence[RawRecord] = ()
    cash_flow: Sequence[RawRecord] = ()
    market: RawRecord | None = None
    earnings: Sequence[RawRecord] | None = None
    unavailable: tuple[StatementType, ...] = field(default_factory=tuple)
