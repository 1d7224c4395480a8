from __future__ import annotations

import json
from collections import Counter
from typing import Any

import pytest

from moatscope_api.adapters.gateways.alpha_vantage_adapter import AlphaVantageAdapter
from moatscope_api.application.interfaces.provider_port import ProviderRequest, ProviderResponse
from moatscope_api.application.services.fetch_orchestrator import FetchOrchestrator
from moatscope_api.application.services.report_assembler import ReportAssembler
from moatscope_api.application.use_cases.analysis.analyze_company import (
    AnalyzeCompany,
    looks_like_ticker,
)
from moatscope_api.application.use_cases.analysis.generate_report import GenerateReport
from moatscope_api.domain.enums.analysis import StatementType, WarningCode
from moatscope_api.domain.exceptions.analysis import ConfigurationError, UpstreamUnavailable


class ScriptedTransport:
    """Serves Alpha Vantage payloads by ``function``; missing ones answer 500."""

    def __init__(self, payloads: dict[str, Any]) -> None:
        self.payloads = payloads
        self.calls: Counter[str] = Counter()
        self.subjects: list[str] = []

    async def get(self, request: ProviderRequest) -> ProviderResponse:
        function = request.query["function"]
        self.calls[function] += 1
        self.subjects.append(request.signature.subject)
        if function not in self.payloads:
            return ProviderResponse(status_code=500)
        return ProviderResponse(status_code=200, payload=self.payloads[function])


def _use_case(transport: ScriptedTransport, *, api_key: str | None = "k") -> AnalyzeCompany:
    adapter = AlphaVantageAdapter(api_key=api_key)

    async def _no_sleep(_: float) -> None:
        return None

    return AnalyzeCompany(
        adapter=adapter,
        orchestrator_factory=lambda: FetchOrchestrator(
            adapter=adapter, transport=transport, sleep=_no_sleep
        ),
    )


@pytest.mark.parametrize(
    ("identifier", "expected"),
    [("AAPL", True), ("BRK.B", True), ("aapl", False), ("Apple Inc", False), ("APPLE INC", False)],
)
def test_looks_like_ticker(identifier: str, expected: bool) -> None:
    assert looks_like_ticker(identifier) is expected


@pytest.mark.anyio
async def test_ticker_analysis_uses_one_overview_call(av_payloads: dict[str, Any]) -> None:
    transport = ScriptedTransport(av_payloads)

    result = await _use_case(transport).execute(" AAPL ")

    assert result.identifier == "AAPL"
    assert result.history.profile.ticker == "AAPL"
    assert transport.calls["OVERVIEW"] == 1
    assert transport.calls["SYMBOL_SEARCH"] == 0
    assert result.history.unavailable == ()
    assert result.metrics.latest.roic.value == pytest.approx(3.567, abs=1e-3)


@pytest.mark.anyio
async def test_company_name_is_resolved_by_search(av_payloads: dict[str, Any]) -> None:
    transport = ScriptedTransport(av_payloads)

    result = await _use_case(transport).execute("apple")

    assert transport.calls["SYMBOL_SEARCH"] == 1
    assert result.history.profile.ticker == "AAPL"
    assert "AAPL" in transport.subjects


@pytest.mark.anyio
async def test_failed_search_falls_back_to_upper_cased_identifier(
    av_payloads: dict[str, Any],
) -> None:
    payloads = {k: v for k, v in av_payloads.items() if k != "SYMBOL_SEARCH"}
    transport = ScriptedTransport(payloads)

    await _use_case(transport).execute("aapl")

    assert transport.subjects[-1] == "AAPL"


@pytest.mark.anyio
async def test_missing_earnings_degrades_to_warning(av_payloads: dict[str, Any]) -> None:
    payloads = {k: v for k, v in av_payloads.items() if k != "EARNINGS"}

    result = await _use_case(ScriptedTransport(payloads)).execute("AAPL")

    assert result.history.unavailable == (StatementType.EARNINGS,)
    assert WarningCode.OPTIONAL_SOURCE_UNAVAILABLE in [w.code for w in result.metrics.warnings]


@pytest.mark.anyio
async def test_unknown_company_is_not_found(av_payloads: dict[str, Any]) -> None:
    transport = ScriptedTransport({**av_payloads, "OVERVIEW": {}})

    with pytest.raises(UpstreamUnavailable) as ei:
        await _use_case(transport).execute("ZZZZ")

    assert ei.value.not_found is True


@pytest.mark.anyio
async def test_missing_credential_fails_before_network(av_payloads: dict[str, Any]) -> None:
    transport = ScriptedTransport(av_payloads)

    with pytest.raises(ConfigurationError):
        await _use_case(transport, api_key=None).execute("AAPL")

    assert sum(transport.calls.values()) == 0


class _Narrative:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.calls = 0

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("ANTHROPIC_API_KEY", purpose="narrative reports")

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        return json.dumps({"conclusion": "Durable moat."})


@pytest.mark.anyio
async def test_report_combines_analysis_and_narrative(av_payloads: dict[str, Any]) -> None:
    narrative = _Narrative()
    uc = GenerateReport(
        analyze=_use_case(ScriptedTransport(av_payloads)),
        assembler=ReportAssembler(narrative),
    )

    result = await uc.execute("AAPL")

    assert result.narrative == {"conclusion": "Durable moat."}
    assert result.analysis.history.profile.ticker == "AAPL"


@pytest.mark.anyio
async def test_report_checks_narrative_credential_first(av_payloads: dict[str, Any]) -> None:
    transport = ScriptedTransport(av_payloads)
    uc = GenerateReport(
        analyze=_use_case(transport),
        assembler=ReportAssembler(_Narrative(configured=False)),
    )

    with pytest.raises(ConfigurationError):
        await uc.execute("AAPL")

    assert sum(transport.calls.values()) == 0
