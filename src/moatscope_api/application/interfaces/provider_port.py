# src/moatscope_api/application/interfaces/provider_port.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Statement provider ports.

Synopsis:
    Protocols and value types shared by the fetch orchestrator, the provider
    adapters (``adapters/gateways``) and the HTTP transport
    (``infrastructure/http``).

Design:
    * Adapters are thin: they describe requests and map provider keys to
      canonical field names. They never perform I/O.
    * The transport performs exactly one HTTP attempt per call. Retries,
      caching and concurrency belong to the orchestrator.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from moatscope_api.domain.entities.provider_records import RawCompanyData
from moatscope_api.domain.entities.request_signature import RequestSignature
from moatscope_api.domain.enums.analysis import StatementType


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    """One outbound GET.

    Attributes:
        signature: Credential-free identity used for caching and logging.
        url: Absolute URL.
        query: Query parameters, credential included.
        destination: Key of the per-destination concurrency budget.
    """

    signature: RequestSignature
    url: str
    query: Mapping[str, str] = field(default_factory=dict)
    destination: str = "default"


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """Status code and decoded JSON (``None`` when the body was not JSON)."""

    status_code: int
    payload: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class UpstreamTransportError(Exception):
    """Network-level failure of a single attempt (connect, read, protocol)."""


class ProviderTransport(Protocol):
    """Executes one HTTP attempt."""

    async def get(self, request: ProviderRequest) -> ProviderResponse:
        """Perform the request.

        Raises:
            UpstreamTransportError: On network-level failures.
        """
        ...


class StatementProviderAdapter(Protocol):
    """Field-mapping adapter for one statement provider."""

    name: str
    credential_setting: str

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` when the credential is absent."""
        ...

    def request_for(self, statement: StatementType, subject: str) -> ProviderRequest:
        """Describe the request serving ``statement`` for ``subject``."""
        ...

    def is_rate_limited(self, payload: Any) -> bool:
        """Return True if a 2xx payload is a provider rate-limit notice."""
        ...

    def rejection(self, payload: Any) -> str | None:
        """Return a short reason if a 2xx payload is a provider-side error."""
        ...

    def search_results(self, payload: Any) -> list[str]:
        """Return candidate tickers from a symbol-search payload."""
        ...

    def to_raw(
        self,
        payloads: Mapping[StatementType, Any],
        *,
        unavailable: tuple[StatementType, ...] = (),
    ) -> RawCompanyData:
        """Map fetched payloads to provider-neutral records."""
        ...
