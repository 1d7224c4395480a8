# src/moatscope_api/application/interfaces/narrative_port.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""Narrative service port: an opaque text-in / text-out collaborator."""

from __future__ import annotations

from typing import Protocol


class NarrativeServicePort(Protocol):
    name: str

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` when the credential is absent."""
        ...

    async def complete(self, prompt: str) -> str:
        """Send ``prompt`` and return the raw response text.

        Raises:
            UpstreamUnavailable: Transport failure or non-2xx answer.
        """
        ...
