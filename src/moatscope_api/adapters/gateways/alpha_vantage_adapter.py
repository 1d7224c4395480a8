# src/moatscope_api/adapters/gateways/alpha_vantage_adapter.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Alpha Vantage statement adapter.

Payload shapes:
    * ``OVERVIEW`` is a flat object serving both the profile and the market
      snapshot; an unknown symbol yields ``{}``.
    * Statements wrap records in ``annualReports``; missing values are the
      string ``"None"``.
    * Rate limiting arrives as HTTP 200 with a ``Note`` key, or an
      ``Information`` key mentioning the rate limit.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar

from moatscope_api.adapters.gateways.mapped_statement_adapter import (
    FieldMap,
    MappedStatementAdapter,
)
from moatscope_api.application.interfaces.provider_port import ProviderRequest
from moatscope_api.domain.entities.provider_records import CURRENCY, PERIOD_END
from moatscope_api.domain.entities.request_signature import RequestSignature
from moatscope_api.domain.enums.analysis import ProviderName, StatementType

_FUNCTIONS: dict[StatementType, str] = {
    StatementType.PROFILE: "OVERVIEW",
    StatementType.MARKET_DATA: "OVERVIEW",
    StatementType.INCOME_STATEMENT: "INCOME_STATEMENT",
    StatementType.BALANCE_SHEET: "BALANCE_SHEET",
    StatementType.CASH_FLOW: "CASH_FLOW",
    StatementType.EARNINGS: "EARNINGS",
    StatementType.SYMBOL_SEARCH: "SYMBOL_SEARCH",
}

_RATE_LIMIT_HINTS = ("rate limit", "call frequency", "requests per")


class AlphaVantageAdapter(MappedStatementAdapter):
    """Adapter for ``https://www.alphavantage.co/query``."""

    name: ClassVar[str] = ProviderName.ALPHA_VANTAGE.value
    credential_setting: ClassVar[str] = "ALPHA_VANTAGE_API_KEY"

    PROFILE_MAP: ClassVar[FieldMap] = {
        "ticker": "Symbol",
        "name": "Name",
        "currency": "Currency",
        "industry": "Industry",
        "sector": "Sector",
        "description": "Description",
    }
    INCOME_MAP: ClassVar[FieldMap] = {
        PERIOD_END: "fiscalDateEnding",
        CURRENCY: "reportedCurrency",
        "revenue": "totalRevenue",
        "cost_of_revenue": "costOfRevenue",
        "gross_profit": "grossProfit",
        "operating_expenses": "operatingExpenses",
        "operating_income": "operatingIncome",
        "ebitda": "ebitda",
        "ebit": "ebit",
        "interest_expense": "interestExpense",
        "tax_expense": "incomeTaxExpense",
        "net_income": "netIncome",
        "pretax_income": "incomeBeforeTax",
    }
    BALANCE_MAP: ClassVar[FieldMap] = {
        PERIOD_END: "fiscalDateEnding",
        "total_assets": "totalAssets",
        "current_assets": "totalCurrentAssets",
        "cash": "cashAndCashEquivalentsAtCarryingValue",
        "receivables": "currentNetReceivables",
        "inventory": "inventory",
        "net_ppe": "propertyPlantEquipment",
        "goodwill": "goodwill",
        "intangibles": "intangibleAssets",
        "total_liabilities": "totalLiabilities",
        "current_liabilities": "totalCurrentLiabilities",
        "payables": "currentAccountsPayable",
        "short_term_debt": "shortTermDebt",
        "long_term_debt": "longTermDebt",
        "total_equity": "totalShareholderEquity",
    }
    CASH_FLOW_MAP: ClassVar[FieldMap] = {
        PERIOD_END: "fiscalDateEnding",
        "operating_cash_flow": "operatingCashflow",
        "capital_expenditures": "capitalExpenditures",
    }
    MARKET_MAP: ClassVar[FieldMap] = {
        "market_cap": "MarketCapitalization",
        "beta": "Beta",
        "trailing_pe": "PERatio",
        "forward_pe": "ForwardPE",
        "price_to_book": "PriceToBookRatio",
        "week52_high": "52WeekHigh",
        "week52_low": "52WeekLow",
        "shares_outstanding": "SharesOutstanding",
    }
    EARNINGS_MAP: ClassVar[FieldMap] = {
        "fiscal_date_ending": "fiscalDateEnding",
        "reported_eps": "reportedEPS",
        "estimated_eps": "estimatedEPS",
        "surprise_pct": "surprisePercentage",
    }

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://www.alphavantage.co/query",
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url)

    def request_for(self, statement: StatementType, subject: str) -> ProviderRequest:
        function = _FUNCTIONS[statement]
        subject_key = "keywords" if statement is StatementType.SYMBOL_SEARCH else "symbol"
        return ProviderRequest(
            signature=RequestSignature.build(
                provider=self.name,
                endpoint=function,
                subject=subject,
            ),
            url=self._base_url,
            query={"function": function, subject_key: subject, "apikey": self._api_key or ""},
            destination=self.name,
        )

    def is_rate_limited(self, payload: Any) -> bool:
        if not isinstance(payload, Mapping):
            return False
        if "Note" in payload:
            return True
        info = str(payload.get("Information", "")).lower()
        return any(hint in info for hint in _RATE_LIMIT_HINTS)

    def rejection(self, payload: Any) -> str | None:
        if not isinstance(payload, Mapping):
            return None
        if "Error Message" in payload:
            return "provider rejected the request"
        if "Information" in payload:
            return "provider returned a notice instead of data"
        return None

    def search_results(self, payload: Any) -> list[str]:
        if not isinstance(payload, Mapping):
            return []
        matches = payload.get("bestMatches") or []
        return [str(m["1. symbol"]) for m in matches if isinstance(m, Mapping) and m.get("1. symbol")]

    def _profile_record(self, payload: Any) -> Mapping[str, Any] | None:
        if isinstance(payload, Mapping) and payload.get("Symbol"):
            return payload
        return None

    def _annual_records(self, payload: Any) -> list[Mapping[str, Any]]:
        if not isinstance(payload, Mapping):
            return []
        return [r for r in payload.get("annualReports") or [] if isinstance(r, Mapping)]

    def _earnings_records(self, payload: Any) -> list[Mapping[str, Any]]:
        if not isinstance(payload, Mapping):
            return []
        return [r for r in payload.get("quarterlyEarnings") or [] if isinstance(r, Mapping)]
