# src/moatscope_api/adapters/presenters/base_presenter.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Presenter utilities.

Purpose:
    Thin helpers used by routers to shape HTTP responses and headers
    consistently.

Responsibilities:
    * Build SuccessEnvelope instances.
    * Compute strong, quoted ETags from canonical JSON material.
    * Apply standard headers such as X-Request-ID.

Layer:
    adapters/presenters
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from fastapi import Response

from moatscope_api.adapters.schemas.http.envelopes import SuccessEnvelope


def _json_default(value: Any) -> str:
    if isinstance(value, datetime | date):
        return value.isoformat()
    raise TypeError(f"unsupported type for JSON hashing: {type(value)!r}")


def compute_quoted_etag(payload: Mapping[str, Any]) -> str:
    """Return a quoted strong ETag (SHA-256 of canonical JSON for ``payload``)."""
    material = json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_default,
    ).encode("utf-8")
    return f'"{hashlib.sha256(material).hexdigest()}"'


@dataclass(slots=True)
class PresentResult[T]:
    """Presentation result: envelope body plus extra headers."""

    body: T
    headers: Mapping[str, str]


class BasePresenter:
    """Base presenter for HTTP response shaping in adapter layers."""

    def present_success[T](
        self,
        *,
        data: T,
        trace_id: str | None = None,
    ) -> PresentResult[SuccessEnvelope[T]]:
        """Wrap ``data`` in a SuccessEnvelope with ``X-Request-ID`` and ``ETag``."""
        body = SuccessEnvelope[Any](data=data)
        headers: dict[str, str] = {}
        if trace_id:
            headers["X-Request-ID"] = trace_id
        headers["ETag"] = compute_quoted_etag(body.model_dump(mode="json"))
        return PresentResult(body=body, headers=headers)

    @staticmethod
    def apply_headers(result: PresentResult[Any], response: Response) -> None:
        response.headers.update(dict(result.headers))
