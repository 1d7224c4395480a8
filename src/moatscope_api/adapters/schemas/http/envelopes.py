# src/moatscope_api/adapters/schemas/http/envelopes.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""HTTP Envelopes (Adapters Layer).

Purpose:
    Canonical transport-facing HTTP envelopes:
      - ErrorEnvelope
      - SuccessEnvelope[T]
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ErrorObject",
    "ErrorEnvelope",
    "SuccessEnvelope",
]


class BaseHTTPSchema(BaseModel):
    """Base class for HTTP-facing schemas."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        ser_json_inf_nan="null",
        use_enum_values=True,
    )


class ErrorObject(BaseModel):
    """Structured error object inside ErrorEnvelope.

    Codes are UPPER_SNAKE_CASE and stable across releases:
    ``CONFIGURATION_ERROR``, ``THROTTLED``, ``UPSTREAM_RATE_LIMITED``,
    ``UPSTREAM_UNAVAILABLE``, ``NARRATIVE_PARSE_ERROR``, ``VALIDATION_ERROR``.
    """

    model_config = ConfigDict(
        title="ErrorObject",
        extra="forbid",
        json_schema_extra={
            "examples": [
                {
                    "code": "UPSTREAM_UNAVAILABLE",
                    "http_status": 502,
                    "message": "Balance sheet unavailable from fmp: provider answered HTTP 500",
                    "details": {"provider": "fmp", "statement": "balance_sheet"},
                    "trace_id": "req-123",
                }
            ]
        },
    )

    code: str = Field(..., description="Stable machine-readable error code.")
    http_status: int = Field(..., description="Associated HTTP status.")
    message: str = Field(..., description="Human-readable error description.")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured details safe for clients.",
    )
    trace_id: str | None = Field(default=None, description="Request correlation identifier.")


class ErrorEnvelope(BaseHTTPSchema):
    r"""Canonical error envelope: {"error": ErrorObject}."""

    model_config = ConfigDict(title="ErrorEnvelope", extra="forbid")

    error: ErrorObject = Field(..., description="Structured error details.")


class SuccessEnvelope[T](BaseHTTPSchema):
    r"""Success envelope for non-paginated responses: {"data": T}."""

    model_config = ConfigDict(title="SuccessEnvelope", extra="forbid")

    data: T = Field(..., description="Returned resource or value.")
