# src/moatscope_api/domain/exceptions/analysis.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Analysis Exceptions.

Summary:
    Fatal error taxonomy of one analysis request. Every subclass carries a
    stable ``code`` (HTTP/metrics mapping) and a ``kind`` callers can branch on.
    Messages name the failing stage and resource; they never include
    credentials or raw provider payloads.

Layer:
    domain/exceptions
"""

from __future__ import annotations

from typing import Any

from moatscope_api.domain.enums.analysis import StatementType
from moatscope_api.domain.exceptions.base import DomainError


class AnalysisError(DomainError):
    """Base class for fatal analysis failures."""

    code: str = "ANALYSIS_ERROR"
    kind: str = "analysis"


class ConfigurationError(AnalysisError):
    """A required upstream credential is absent."""

    code = "CONFIGURATION_ERROR"
    kind = "configuration"

    def __init__(self, setting: str, *, purpose: str) -> None:
        super().__init__(
            f"{setting} is not configured; it is required for {purpose}",
            details={"setting": setting, "purpose": purpose},
        )


class ThrottledError(AnalysisError):
    """The caller exceeded a rate limit."""

    code = "THROTTLED"
    kind = "throttled"

    def __init__(self, *, scope: str, limit: int, retry_after_s: int) -> None:
        super().__init__(
            f"Too many requests; retry in {retry_after_s} seconds",
            details={"scope": scope, "limit": limit, "retry_after_s": retry_after_s},
        )
        self.scope = scope
        self.limit = limit
        self.retry_after_s = retry_after_s


def _upstream_details(
    provider: str,
    statement: StatementType | str,
    extra: dict[str, Any] | None,
) -> dict[str, Any]:
    stage = statement.value if isinstance(statement, StatementType) else statement
    details: dict[str, Any] = {"provider": provider, "statement": stage}
    if extra:
        details.update(extra)
    return details


def _resource_label(statement: StatementType | str) -> str:
    if isinstance(statement, StatementType):
        return statement.label
    return statement


class UpstreamRateLimited(AnalysisError):
    """A provider kept signalling rate limiting after all retries."""

    code = "UPSTREAM_RATE_LIMITED"
    kind = "upstream_rate_limited"

    def __init__(
        self,
        *,
        provider: str,
        statement: StatementType | str,
        attempts: int,
    ) -> None:
        super().__init__(
            f"{provider} rate-limited the {_resource_label(statement)} request "
            f"after {attempts} attempts",
            details=_upstream_details(provider, statement, {"attempts": attempts}),
        )
        self.provider = provider
        self.statement = statement


class UpstreamUnavailable(AnalysisError):
    """A required statement is missing or its provider failed for good."""

    code = "UPSTREAM_UNAVAILABLE"
    kind = "upstream_unavailable"

    def __init__(
        self,
        *,
        provider: str,
        statement: StatementType | str,
        reason: str,
        status_code: int | None = None,
        not_found: bool = False,
    ) -> None:
        extra: dict[str, Any] = {"reason": reason}
        if status_code is not None:
            extra["status_code"] = status_code
        if not_found:
            extra["not_found"] = True
        super().__init__(
            f"{_resource_label(statement).capitalize()} unavailable from {provider}: {reason}",
            details=_upstream_details(provider, statement, extra),
        )
        self.provider = provider
        self.statement = statement
        self.reason = reason
        self.status_code = status_code
        self.not_found = not_found or (
            status_code == 404 and isinstance(statement, StatementType)
        )


class NarrativeParseError(AnalysisError):
    """The narrative service answered with something that is not a JSON object."""

    code = "NARRATIVE_PARSE_ERROR"
    kind = "narrative_parse"

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Narrative report could not be parsed: {reason}",
            details={"stage": "narrative", "reason": reason},
        )
