# src/moatscope_api/adapters/gateways/registry.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Statement provider selection.

Maps ``STATEMENT_PROVIDER`` to a configured adapter. Adapters are cheap,
stateless objects; one is built per dependency resolution.
"""

from __future__ import annotations

from moatscope_api.adapters.gateways.alpha_vantage_adapter import AlphaVantageAdapter
from moatscope_api.adapters.gateways.fmp_adapter import FmpAdapter
from moatscope_api.adapters.gateways.mapped_statement_adapter import MappedStatementAdapter
from moatscope_api.config.settings import Settings
from moatscope_api.domain.enums.analysis import ProviderName


def build_statement_adapter(settings: Settings) -> MappedStatementAdapter:
    """Return the adapter of the configured statement provider."""
    if settings.statement_provider is ProviderName.FMP:
        return FmpAdapter(api_key=settings.fmp_key, base_url=settings.fmp_base_url)
    return AlphaVantageAdapter(
        api_key=settings.alpha_vantage_key,
        base_url=settings.alpha_vantage_base_url,
    )
