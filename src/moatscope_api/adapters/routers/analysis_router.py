# src/moatscope_api/adapters/routers/analysis_router.py
# Copyright (c) MoatScope.
# SPDX-License-Identifier: MIT
"""
Analysis Router.

Summary:
    ``GET /v1/analysis/{identifier}`` runs an analysis and returns history,
    derived metrics, earnings summary and warnings.
    ``POST /v1/analysis/{identifier}/report`` additionally produces the
    narrative report.

Errors:
    Analysis failures propagate to the application exception handlers, which
    render the canonical error envelope.

Layer:
    adapters/routers
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Path, Request, Response, status

from moatscope_api.adapters.presenters.analysis_presenter import AnalysisPresenter
from moatscope_api.adapters.routers.base_router import BaseRouter
from moatscope_api.adapters.schemas.http.envelopes import SuccessEnvelope
from moatscope_api.application.schemas.dto.analysis import AnalysisDTO, ReportDTO
from moatscope_api.application.use_cases.analysis.analyze_company import AnalyzeCompany
from moatscope_api.application.use_cases.analysis.generate_report import GenerateReport
from moatscope_api.dependencies.analysis import get_analyze_company, get_generate_report

router = BaseRouter(version="v1", resource="analysis", tags=["Analysis"])
presenter = AnalysisPresenter()

Identifier = Annotated[
    str,
    Path(
        min_length=1,
        max_length=64,
        pattern=r"^[A-Za-z0-9][A-Za-z0-9 .&,'\-]*$",
        description="Ticker (e.g. AAPL, BRK.B) or company name.",
        examples=["AAPL"],
    ),
]


def _provider(request: Request) -> str:
    return request.app.state.settings.statement_provider.value


@router.get(
    "/{identifier}",
    response_model=SuccessEnvelope[AnalysisDTO],
    status_code=status.HTTP_200_OK,
    responses=BaseRouter.std_error_responses(),
    summary="Analyze a company",
)
async def analyze_company(
    request: Request,
    response: Response,
    identifier: Identifier,
    uc: Annotated[AnalyzeCompany, Depends(get_analyze_company)],
) -> SuccessEnvelope[AnalysisDTO]:
    result = await uc.execute(identifier)
    present = presenter.present_analysis(
        result,
        provider=_provider(request),
        trace_id=getattr(request.state, "trace_id", None),
    )
    presenter.apply_headers(present, response)
    return present.body


@router.post(
    "/{identifier}/report",
    response_model=SuccessEnvelope[ReportDTO],
    status_code=status.HTTP_200_OK,
    responses=BaseRouter.std_error_responses(),
    summary="Analyze a company and write the narrative report",
)
async def generate_report(
    request: Request,
    response: Response,
    identifier: Identifier,
    uc: Annotated[GenerateReport, Depends(get_generate_report)],
) -> SuccessEnvelope[ReportDTO]:
    result = await uc.execute(identifier)
    present = presenter.present_report(
        result.analysis,
        result.narrative,
        provider=_provider(request),
        trace_id=getattr(request.state, "trace_id", None),
    )
    presenter.apply_headers(present, response)
    return present.body
