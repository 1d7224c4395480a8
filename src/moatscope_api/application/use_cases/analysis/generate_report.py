# src/moatscope_api/application/use_cases/analysis/generate_report.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""
Use Case: Generate Narrative Report

Purpose:
    Run an analysis and hand its history and metrics to the report assembler.
    Both credentials are checked before any network call.

Layer: application/use_cases
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from moatscope_api.application.services.report_assembler import ReportAssembler
from moatscope_api.application.use_cases.analysis.analyze_company import (
    AnalysisResult,
    AnalyzeCompany,
)


@dataclass(frozen=True, slots=True)
class ReportResult:
    analysis: AnalysisResult
    narrative: dict[str, Any]


class GenerateReport:
    """Analysis followed by the narrative report."""

    def __init__(self, *, analyze: AnalyzeCompany, assembler: ReportAssembler) -> None:
        self._analyze = analyze
        self._assembler = assembler

    async def execute(self, identifier: str) -> ReportResult:
        self._analyze.ensure_configured()
        self._assembler.ensure_configured()
        analysis = await self._analyze.execute(identifier)
        narrative = await self._assembler.assemble(analysis.history, analysis.metrics)
        return ReportResult(analysis=analysis, narrative=narrative)
