# src/moatscope_api/domain/entities/request_signature.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Request signature value object.

Identifies one cacheable upstream call as (provider, endpoint, subject,
query parameters). Credentials are never part of a signature, so signatures
are safe to log and to use as cache keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class RequestSignature:
    """Immutable cache key for one upstream request."""

    provider: str
    endpoint: str
    subject: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def build(
        cls,
        *,
        provider: str,
        endpoint: str,
        subject: str,
        params: Mapping[str, Any] | None = None,
    ) -> RequestSignature:
        """Build a signature with parameters sorted and stringified."""
        items = tuple(sorted((str(k), str(v)) for k, v in (params or {}).items()))
        return cls(provider=provider, endpoint=endpoint, subject=subject.upper(), params=items)

    def cache_key(self) -> str:
        """Return the colon-separated key tail, e.g. ``fmp:profile:AAPL:``."""
        query = "&".join(f"{k}={v}" for k, v in self.params)
        return f"{self.provider}:{self.endpoint}:{self.subject}:{query}"
