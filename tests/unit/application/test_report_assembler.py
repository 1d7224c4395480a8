from __future__ import annotations

import json

import pytest

from moatscope_api.application.services.report_assembler import (
    NARRATIVE_SECTIONS,
    ReportAssembler,
    build_prompt,
    format_currency,
    format_percent,
    parse_narrative,
    strip_code_fences,
)
from moatscope_api.domain.entities.financials import MarketSnapshot
from moatscope_api.domain.exceptions.analysis import ConfigurationError, NarrativeParseError
from moatscope_api.domain.services.analytics_engine import compute_derived_metrics


class FakeNarrative:
    def __init__(self, answer: str, *, configured: bool = True) -> None:
        self.answer = answer
        self.configured = configured
        self.prompts: list[str] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("ANTHROPIC_API_KEY", purpose="narrative reports")

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "N/A"),
        (385_706_000_000, "$385.7B"),
        (2.5e12, "$2.5T"),
        (-10_959_000_000, "$-11.0B"),
        (4_200_000, "$4.2M"),
        (1_500, "$1.5K"),
        (123, "$123.0"),
        (0, "$0.0"),
    ],
)
def test_format_currency(value: float | None, expected: str) -> None:
    assert format_currency(value) == expected


def test_format_percent() -> None:
    assert format_percent(0.1304) == "13.0%"
    assert format_percent(None) == "N/A"


@pytest.mark.parametrize(
    "text",
    [
        '```json\n{"conclusion": "ok"}\n```',
        '```JSON\n{"conclusion": "ok"}```',
        '```\n{"conclusion": "ok"}\n```',
        '  {"conclusion": "ok"}  ',
    ],
)
def test_fences_are_stripped(text: str) -> None:
    assert json.loads(strip_code_fences(text)) == {"conclusion": "ok"}


def test_fences_inside_values_are_kept() -> None:
    inner = {"management": "Quoted:\n```\nbuyback plan\n```"}
    text = "```json\n" + json.dumps(inner) + "\n```"

    assert parse_narrative(text) == inner
    assert parse_narrative("```" + json.dumps({"conclusion": "a ``` b"}) + "```") == {
        "conclusion": "a ``` b"
    }


@pytest.mark.parametrize(
    ("text", "reason"),
    [
        ("", "empty response"),
        ("```json\n```", "empty response"),
        ("The moat is wide.", "response is not valid JSON"),
        ("[1, 2]", "expected a JSON object, got list"),
    ],
)
def test_parse_errors(text: str, reason: str) -> None:
    with pytest.raises(NarrativeParseError) as ei:
        parse_narrative(text)

    assert ei.value.details["reason"] == reason
    assert ei.value.code == "NARRATIVE_PARSE_ERROR"


def test_prompt_carries_precomputed_figures(make_year, make_history) -> None:
    history = make_history(
        make_year(2023, revenue=385_706_000_000, market=MarketSnapshot(market_cap=3e12, beta=1.2)),
        make_year(2022, revenue=394_328_000_000),
    )
    metrics = compute_derived_metrics(history)

    prompt = build_prompt(history, metrics)

    assert "Acme Corp (ACME)" in prompt
    assert "FY2023: revenue $385.7B" in prompt
    assert "- WACC: " in prompt
    assert "## ROIC by year" in prompt
    assert "- Market cap: $3.0T" in prompt
    assert "[short_history]" in prompt
    assert ", ".join(NARRATIVE_SECTIONS) in prompt


def test_prompt_marks_missing_sources(make_year, make_history) -> None:
    history = make_history(make_year())
    prompt = build_prompt(history, compute_derived_metrics(history))

    assert "## Market snapshot\n- not available" in prompt
    assert "## Earnings track record\n- not available" in prompt


@pytest.mark.anyio
async def test_assemble_returns_parsed_report(make_year, make_history) -> None:
    report = {key: f"{key} text" for key in NARRATIVE_SECTIONS}
    narrative = FakeNarrative("```json\n" + json.dumps(report) + "\n```")
    history = make_history(make_year())

    result = await ReportAssembler(narrative).assemble(history, compute_derived_metrics(history))

    assert result == report
    assert len(narrative.prompts) == 1


@pytest.mark.anyio
async def test_assemble_tolerates_missing_sections(make_year, make_history) -> None:
    narrative = FakeNarrative('{"conclusion": "short"}')
    history = make_history(make_year())

    result = await ReportAssembler(narrative).assemble(history, compute_derived_metrics(history))

    assert result == {"conclusion": "short"}


def test_assembler_reports_missing_credential() -> None:
    with pytest.raises(ConfigurationError):
        ReportAssembler(FakeNarrative("", configured=False)).ensure_configured()
