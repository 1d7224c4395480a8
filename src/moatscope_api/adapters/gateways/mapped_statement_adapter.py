# src/moatscope_api/adapters/gateways/mapped_statement_adapter.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Table-driven statement adapter base.

Summary:
    Shared machinery for provider adapters. A concrete adapter declares one
    mapping table per statement (canonical field name -> provider key, or a
    callable for the rare derived field) plus how to find records inside its
    payloads. Numbers are passed through untouched; the normalizer coerces.

Layer:
    adapters/gateways
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, ClassVar

from moatscope_api.application.interfaces.provider_port import ProviderRequest
from moatscope_api.domain.entities.provider_records import RawCompanyData, RawRecord
from moatscope_api.domain.enums.analysis import StatementType
from moatscope_api.domain.exceptions.analysis import ConfigurationError

type FieldSource = str | Callable[[Mapping[str, Any]], Any]
type FieldMap = Mapping[str, FieldSource]


def map_record(record: Mapping[str, Any], mapping: FieldMap) -> dict[str, Any]:
    """Project a provider record onto canonical field names."""
    out: dict[str, Any] = {}
    for canonical, source in mapping.items():
        out[canonical] = source(record) if callable(source) else record.get(source)
    return out


class MappedStatementAdapter:
    """Base class for field-mapping provider adapters."""

    name: ClassVar[str]
    credential_setting: ClassVar[str]

    PROFILE_MAP: ClassVar[FieldMap]
    INCOME_MAP: ClassVar[FieldMap]
    BALANCE_MAP: ClassVar[FieldMap]
    CASH_FLOW_MAP: ClassVar[FieldMap]
    MARKET_MAP: ClassVar[FieldMap]
    EARNINGS_MAP: ClassVar[FieldMap]

    def __init__(self, *, api_key: str | None, base_url: str) -> None:
        self._api_key = api_key or None
        self._base_url = base_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def ensure_configured(self) -> None:
        """Raise before any network call when the credential is absent.

        Raises:
            ConfigurationError: If no API key was injected.
        """
        if self._api_key is None:
            raise ConfigurationError(
                self.credential_setting,
                purpose=f"fetching statements from {self.name}",
            )

    # ------------------------------------------------------------------ #
    # Provider-specific hooks
    # ------------------------------------------------------------------ #
    def request_for(self, statement: StatementType, subject: str) -> ProviderRequest:
        raise NotImplementedError

    def is_rate_limited(self, payload: Any) -> bool:
        raise NotImplementedError

    def rejection(self, payload: Any) -> str | None:
        raise NotImplementedError

    def search_results(self, payload: Any) -> list[str]:
        raise NotImplementedError

    def _profile_record(self, payload: Any) -> Mapping[str, Any] | None:
        raise NotImplementedError

    def _annual_records(self, payload: Any) -> list[Mapping[str, Any]]:
        raise NotImplementedError

    def _earnings_records(self, payload: Any) -> list[Mapping[str, Any]]:
        raise NotImplementedError

    # ------------------------------------------------------------------ #
    # Mapping
    # ------------------------------------------------------------------ #
    def _statement(self, payload: Any, mapping: FieldMap) -> list[RawRecord]:
        if payload is None:
            return []
        return [map_record(r, mapping) for r in self._annual_records(payload)]

    def to_raw(
        self,
        payloads: Mapping[StatementType, Any],
        *,
        unavailable: tuple[StatementType, ...] = (),
    ) -> RawCompanyData:
        """Map fetched payloads to provider-neutral records.

        Optional statements missing from ``payloads`` map to ``None``.
        """
        profile_payload = payloads.get(StatementType.PROFILE)
        profile = self._profile_record(profile_payload) if profile_payload is not None else None

        market: RawRecord | None = None
        if StatementType.MARKET_DATA in payloads:
            market_record = self._profile_record(payloads[StatementType.MARKET_DATA])
            if market_record is not None:
                market = map_record(market_record, self.MARKET_MAP)

        earnings: list[RawRecord] | None = None
        if StatementType.EARNINGS in payloads:
            earnings = [
                map_record(r, self.EARNINGS_MAP)
                for r in self._earnings_records(payloads[StatementType.EARNINGS])
            ]

        return RawCompanyData(
            provider=self.name,
            profile=map_record(profile, self.PROFILE_MAP) if profile is not None else None,
            income=self._statement(payloads.get(StatementType.INCOME_STATEMENT), self.INCOME_MAP),
            balance=self._statement(payloads.get(StatementType.BALANCE_SHEET), self.BALANCE_MAP),
            cash_flow=self._statement(payloads.get(StatementType.CASH_FLOW), self.CASH_FLOW_MAP),
            market=market,
            earnings=earnings,
            unavailable=unavailable,
        )
