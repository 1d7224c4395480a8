# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import date
from typing import Any

import pytest

from moatscope_api.config.settings import get_settings
from moatscope_api.domain.entities.financials import (
    CanonicalFinancialHistory,
    CanonicalFinancialYear,
    CompanyProfile,
    EarningsQuarter,
)
from moatscope_api.domain.enums.analysis import StatementType

AV_URL = "https://www.alphavantage.co/query"

# Keys that would otherwise leak from the developer shell into Settings.
_SETTINGS_ENV = (
    "ENVIRONMENT",
    "ALLOWED_ORIGINS",
    "STATEMENT_PROVIDER",
    "ALPHA_VANTAGE_API_KEY",
    "FMP_API_KEY",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_BASE_URL",
    "CACHE_BACKEND",
    "REDIS_URL",
    "RATE_LIMIT_ENABLED",
    "RATE_LIMIT_MAX_REQUESTS",
    "ANALYSIS_RATE_LIMIT_MAX_REQUESTS",
    "UPSTREAM_BACKOFF_BASE_S",
)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio (not trio)."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Start every test from a clean environment and an empty settings cache."""
    for key in _SETTINGS_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# --------------------------------------------------------------------------- #
# Canonical model builders
# --------------------------------------------------------------------------- #
_YEAR_DEFAULTS: dict[str, float] = {
    "revenue": 1_000.0,
    "gross_profit": 400.0,
    "operating_income": 100.0,
    "ebit": 100.0,
    "pretax_income": 100.0,
    "tax_expense": 0.0,
    "net_ppe": 1_000.0,
}


@pytest.fixture
def make_year() -> Callable[..., CanonicalFinancialYear]:
    """Build a canonical year; by default ROIC equals ``ebit / 1000``."""

    def _make(fiscal_year: int = 2023, **fields: Any) -> CanonicalFinancialYear:
        values: dict[str, Any] = {**_YEAR_DEFAULTS, **fields}
        return CanonicalFinancialYear(
            ticker="ACME",
            company_name="Acme Corp",
            fiscal_period_end=date(fiscal_year, 12, 31),
            currency="USD",
            **values,
        )

    return _make


@pytest.fixture
def make_history() -> Callable[..., CanonicalFinancialHistory]:
    def _make(
        *years: CanonicalFinancialYear,
        earnings: tuple[EarningsQuarter, ...] | None = None,
        unavailable: tuple[StatementType, ...] = (),
    ) -> CanonicalFinancialHistory:
        return CanonicalFinancialHistory(
            profile=CompanyProfile(ticker="ACME", name="Acme Corp"),
            years=tuple(years),
            earnings=earnings,
            unavailable=unavailable,
        )

    return _make


# --------------------------------------------------------------------------- #
# Alpha Vantage payloads
# --------------------------------------------------------------------------- #
def _income(period: str, revenue: str, ebit: str, tax: str, pretax: str) -> dict[str, str]:
    return {
        "fiscalDateEnding": period,
        "reportedCurrency": "USD",
        "totalRevenue": revenue,
        "costOfRevenue": "214137",
        "grossProfit": "171569",
        "operatingExpenses": "54847",
        "operatingIncome": "114301",
        "ebitda": "125820",
        "ebit": ebit,
        "interestExpense": "3933",
        "incomeTaxExpense": tax,
        "netIncome": "96995",
        "incomeBeforeTax": pretax,
    }


def _balance(period: str) -> dict[str, str]:
    return {
        "fiscalDateEnding": period,
        "totalAssets": "352583",
        "totalCurrentAssets": "135405",
        "cashAndCashEquivalentsAtCarryingValue": "29965",
        "currentNetReceivables": "60985",
        "inventory": "6331",
        "propertyPlantEquipment": "40000",
        "goodwill": "None",
        "intangibleAssets": "None",
        "totalLiabilities": "290437",
        "totalCurrentLiabilities": "145308",
        "currentAccountsPayable": "62611",
        "shortTermDebt": "9822",
        "longTermDebt": "95281",
        "totalShareholderEquity": "62146",
    }


def _cash_flow(period: str) -> dict[str, str]:
    return {
        "fiscalDateEnding": period,
        "operatingCashflow": "110543",
        "capitalExpenditures": "-10959",
    }


@pytest.fixture
def av_payloads() -> dict[str, Any]:
    """Alpha Vantage responses for AAPL keyed by ``function``."""
    return {
        "OVERVIEW": {
            "Symbol": "AAPL",
            "Name": "Apple Inc",
            "Currency": "USD",
            "Industry": "Electronic Computers",
            "Sector": "TECHNOLOGY",
            "Description": "Designs consumer electronics.",
            "MarketCapitalization": "3000000",
            "Beta": "1.2",
            "PERatio": "30.1",
            "ForwardPE": "28.4",
            "PriceToBookRatio": "45.2",
            "52WeekHigh": "199.62",
            "52WeekLow": "124.17",
            "SharesOutstanding": "15550",
        },
        "INCOME_STATEMENT": {
            "symbol": "AAPL",
            "annualReports": [
                _income("2023-09-30", "385706", "123456", "15000", "115000"),
                _income("2022-09-30", "394328", "122034", "19300", "119103"),
            ],
        },
        "BALANCE_SHEET": {
            "symbol": "AAPL",
            "annualReports": [_balance("2023-09-30"), _balance("2022-09-30")],
        },
        "CASH_FLOW": {
            "symbol": "AAPL",
            "annualReports": [_cash_flow("2023-09-30"), _cash_flow("2022-09-30")],
        },
        "EARNINGS": {
            "symbol": "AAPL",
            "quarterlyEarnings": [
                {
                    "fiscalDateEnding": "2023-09-30",
                    "reportedEPS": "1.46",
                    "estimatedEPS": "1.39",
                    "surprisePercentage": "5.0360",
                },
                {
                    "fiscalDateEnding": "2023-06-30",
                    "reportedEPS": "1.26",
                    "estimatedEPS": "1.19",
                    "surprisePercentage": "5.8824",
                },
                {
                    "fiscalDateEnding": "2023-03-31",
                    "reportedEPS": "1.52",
                    "estimatedEPS": "1.43",
                    "surprisePercentage": "6.2937",
                },
                {
                    "fiscalDateEnding": "2022-12-31",
                    "reportedEPS": "1.88",
                    "estimatedEPS": "1.94",
                    "surprisePercentage": "-3.0928",
                },
                {
                    "fiscalDateEnding": "2022-09-30",
                    "reportedEPS": "1.29",
                    "estimatedEPS": "1.27",
                    "surprisePercentage": "1.5748",
                },
            ],
        },
        "SYMBOL_SEARCH": {
            "bestMatches": [
                {"1. symbol": "AAPL", "2. name": "Apple Inc"},
                {"1. symbol": "APLE", "2. name": "Apple Hospitality REIT Inc"},
            ]
        },
    }
