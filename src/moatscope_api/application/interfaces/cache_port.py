# src/moatscope_api/application/interfaces/cache_port.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Response cache port (application interface).

Synopsis:
    Async, JSON-oriented cache keyed by :class:`RequestSignature`. Both the
    in-memory and the Redis implementations satisfy this Protocol.

Contract:
    * ``get`` returns the cached payload or ``None`` on a miss. Expired
      entries are always a miss.
    * ``put`` stores a JSON-serializable payload; ``ttl`` overrides the
      backend default when given. A non-positive ``ttl`` stores nothing.
    * Implementations synchronize internally; callers never lock.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from moatscope_api.domain.entities.request_signature import RequestSignature


@runtime_checkable
class ResponseCachePort(Protocol):
    """Async cache of upstream payloads."""

    backend: str

    async def get(self, signature: RequestSignature) -> Any | None:
        """Return the cached payload for ``signature`` or ``None``."""
        ...

    async def put(
        self,
        signature: RequestSignature,
        value: Any,
        *,
        ttl: int | None = None,
    ) -> None:
        """Store ``value`` under ``signature``."""
        ...
