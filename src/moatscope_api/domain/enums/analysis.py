# src/moatscope_api/domain/enums/analysis.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Analysis enumerations.

Summary:
    Stable string enums shared by the normalizer, the analytics engine and the
    HTTP boundary. Values are part of the public JSON contract.

Layer:
    domain/enums
"""

from __future__ import annotations

from enum import Enum


class StatementType(str, Enum):
    """Logical upstream sources fetched for one company."""

    PROFILE = "profile"
    INCOME_STATEMENT = "income_statement"
    BALANCE_SHEET = "balance_sheet"
    CASH_FLOW = "cash_flow"
    MARKET_DATA = "market_data"
    EARNINGS = "earnings"
    SYMBOL_SEARCH = "symbol_search"

    @property
    def label(self) -> str:
        """Human-readable name used in user-facing messages."""
        return self.value.replace("_", " ")


#: Statements without which no analysis can be produced.
REQUIRED_STATEMENTS: tuple[StatementType, ...] = (
    StatementType.PROFILE,
    StatementType.INCOME_STATEMENT,
    StatementType.BALANCE_SHEET,
    StatementType.CASH_FLOW,
)

#: Statements that degrade to "not available" when missing.
OPTIONAL_STATEMENTS: tuple[StatementType, ...] = (
    StatementType.MARKET_DATA,
    StatementType.EARNINGS,
)


class ProviderName(str, Enum):
    """Supported statement providers."""

    ALPHA_VANTAGE = "alpha_vantage"
    FMP = "fmp"


class UndefinedReason(str, Enum):
    """Why a derived metric could not be computed."""

    INVESTED_CAPITAL_NON_POSITIVE = "invested_capital_non_positive"
    REVENUE_NON_POSITIVE = "revenue_non_positive"
    BETA_UNKNOWN = "beta_unknown"
    CAPITAL_STRUCTURE_NON_POSITIVE = "capital_structure_non_positive"
    OPERAND_UNDEFINED = "operand_undefined"
    NO_PRIOR_YEAR = "no_prior_year"


class ValueCreationVerdict(str, Enum):
    """Categorical reading of ROIC versus the cost of capital."""

    VALUE_CREATING = "value_creating"
    VALUE_DESTROYING = "value_destroying"
    INDETERMINATE = "indeterminate"


class TrendDirection(str, Enum):
    """Direction of ROIC between the oldest and newest usable year."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class EarningsTrackRecord(str, Enum):
    """Summary label for recent earnings surprises."""

    CONSISTENT = "consistent"
    MIXED = "mixed"
    STRUGGLING = "struggling"
    UNAVAILABLE = "unavailable"


class WarningCode(str, Enum):
    """Machine-readable codes for non-fatal data-quality warnings."""

    SHORT_HISTORY = "short_history"
    OPTIONAL_SOURCE_UNAVAILABLE = "optional_source_unavailable"
    STATEMENT_MISALIGNED = "statement_misaligned"
    METRIC_UNDEFINED = "metric_undefined"
    DUPONT_MISMATCH = "dupont_mismatch"
    ROIC_IMPLAUSIBLE = "roic_implausible"
    INVESTED_CAPITAL_DIVERGENCE = "invested_capital_divergence"
    TAX_RATE_FALLBACK = "tax_rate_fallback"
