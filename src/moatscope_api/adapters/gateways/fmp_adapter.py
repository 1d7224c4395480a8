# src/moatscope_api/adapters/gateways/fmp_adapter.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Financial Modeling Prep (v3) statement adapter.

Payload shapes:
    * Every endpoint answers with a flat JSON array of records.
    * ``profile/{ticker}`` serves both the profile and the market snapshot;
      the 52-week range arrives as one ``"low-high"`` string.
    * Capital expenditure is reported as a negative number.
    * Rate limiting arrives as HTTP 429, or as an ``Error Message`` object
      saying the limit was reached.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from moatscope_api.adapters.gateways.mapped_statement_adapter import (
    FieldMap,
    MappedStatementAdapter,
)
from moatscope_api.application.interfaces.provider_port import ProviderRequest
from moatscope_api.domain.entities.provider_records import CURRENCY, PERIOD_END
from moatscope_api.domain.entities.request_signature import RequestSignature
from moatscope_api.domain.enums.analysis import ProviderName, StatementType

_ENDPOINTS: dict[StatementType, str] = {
    StatementType.PROFILE: "profile",
    StatementType.MARKET_DATA: "profile",
    StatementType.INCOME_STATEMENT: "income-statement",
    StatementType.BALANCE_SHEET: "balance-sheet-statement",
    StatementType.CASH_FLOW: "cash-flow-statement",
    StatementType.EARNINGS: "earnings-surprises",
}

_ANNUAL = (
    StatementType.INCOME_STATEMENT,
    StatementType.BALANCE_SHEET,
    StatementType.CASH_FLOW,
)


def _range_bound(index: int) -> Callable[[Mapping[str, Any]], Any]:
    """Pick the low (0) or high (1) side of an FMP ``"low-high"`` range."""

    def pick(record: Mapping[str, Any]) -> Any:
        raw = record.get("range")
        if not isinstance(raw, str) or "-" not in raw:
            return None
        parts = raw.split("-")
        return parts[index].strip() if len(parts) == 2 else None

    return pick


class FmpAdapter(MappedStatementAdapter):
    """Adapter for ``https://financialmodelingprep.com/api/v3``."""

    name: ClassVar[str] = ProviderName.FMP.value
    credential_setting: ClassVar[str] = "FMP_API_KEY"

    PROFILE_MAP: ClassVar[FieldMap] = {
        "ticker": "symbol",
        "name": "companyName",
        "currency": "currency",
        "industry": "industry",
        "sector": "sector",
        "description": "description",
    }
    INCOME_MAP: ClassVar[FieldMap] = {
        PERIOD_END: "date",
        CURRENCY: "reportedCurrency",
        "revenue": "revenue",
        "cost_of_revenue": "costOfRevenue",
        "gross_profit": "grossProfit",
        "operating_expenses": "operatingExpenses",
        "operating_income": "operatingIncome",
        "ebitda": "ebitda",
        "ebit": "operatingIncome",
        "interest_expense": "interestExpense",
        "tax_expense": "incomeTaxExpense",
        "net_income": "netIncome",
        "pretax_income": "incomeBeforeTax",
    }
    BALANCE_MAP: ClassVar[FieldMap] = {
        PERIOD_END: "date",
        "total_assets": "totalAssets",
        "current_assets": "totalCurrentAssets",
        "cash": "cashAndCashEquivalents",
        "receivables": "netReceivables",
        "inventory": "inventory",
        "net_ppe": "propertyPlantEquipmentNet",
        "goodwill": "goodwill",
        "intangibles": "intangibleAssets",
        "total_liabilities": "totalLiabilities",
        "current_liabilities": "totalCurrentLiabilities",
        "payables": "accountPayables",
        "short_term_debt": "shortTermDebt",
        "long_term_debt": "longTermDebt",
        "total_equity": "totalStockholdersEquity",
    }
    CASH_FLOW_MAP: ClassVar[FieldMap] = {
        PERIOD_END: "date",
        "operating_cash_flow": "operatingCashFlow",
        "capital_expenditures": "capitalExpenditure",
        "free_cash_flow": "freeCashFlow",
    }
    MARKET_MAP: ClassVar[FieldMap] = {
        "market_cap": "mktCap",
        "beta": "beta",
        "week52_low": _range_bound(0),
        "week52_high": _range_bound(1),
    }
    EARNINGS_MAP: ClassVar[FieldMap] = {
        "fiscal_date_ending": "date",
        "reported_eps": "actualEarningResult",
        "estimated_eps": "estimatedEarning",
    }

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://financialmodelingprep.com/api/v3",
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url)

    def request_for(self, statement: StatementType, subject: str) -> ProviderRequest:
        params: dict[str, str] = {}
        if statement is StatementType.SYMBOL_SEARCH:
            endpoint = "search"
            url = f"{self._base_url}/search"
            params = {"query": subject, "limit": "5"}
        else:
            endpoint = _ENDPOINTS[statement]
            url = f"{self._base_url}/{endpoint}/{subject}"
            if statement in _ANNUAL:
                params = {"period": "annual"}
        return ProviderRequest(
            signature=RequestSignature.build(
                provider=self.name,
                endpoint=endpoint,
                subject=subject,
                params={k: v for k, v in params.items() if k != "query"},
            ),
            url=url,
            query={**params, "apikey": self._api_key or ""},
            destination=self.name,
        )

    def is_rate_limited(self, payload: Any) -> bool:
        if not isinstance(payload, Mapping):
            return False
        return "limit reach" in str(payload.get("Error Message", "")).lower()

    def rejection(self, payload: Any) -> str | None:
        if isinstance(payload, Mapping) and "Error Message" in payload:
            return "provider rejected the request"
        return None

    def search_results(self, payload: Any) -> list[str]:
        if not isinstance(payload, list):
            return []
        return [str(m["symbol"]) for m in payload if isinstance(m, Mapping) and m.get("symbol")]

    def _profile_record(self, payload: Any) -> Mapping[str, Any] | None:
        if isinstance(payload, list) and payload and isinstance(payload[0], Mapping):
            return payload[0]
        return None

    def _annual_records(self, payload: Any) -> list[Mapping[str, Any]]:
        if not isinstance(payload, list):
            return []
        return [r for r in payload if isinstance(r, Mapping)]

    def _earnings_records(self, payload: Any) -> list[Mapping[str, Any]]:
        return self._annual_records(payload)
