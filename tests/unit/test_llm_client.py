"""Tests for extraction clients.

All tests are deterministic and do not make real network calls.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from backend.app.config import Settings
from backend.app.errors import ExtractionError, ExtractionTimeoutError
from backend.app.llm.client import (
    DeterministicExtractionClient,
    OpenAIExtractionClient,
    compose_summary,
    get_extraction_client,
)
from backend.app.models.common import DetailLevel, FocusArea, OutputFormat
from backend.app.models.policy import PolicyData, ProcessingOptions, RiskAssessment
from backend.app.summary.blocks import parse_summary, section_headings

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(content: str | None) -> MagicMock:
    """Build a chat completion response with one choice."""
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


@pytest.fixture
def openai_client() -> OpenAIExtractionClient:
    client = OpenAIExtractionClient(api_key="sk-test", model="gpt-4o")
    client.client = MagicMock()
    return client


class TestDeterministicClient:
    @pytest.mark.asyncio
    async def test_extracts_policy_fields(self, policy_text: str) -> None:
        client = DeterministicExtractionClient()

        result = await client.extract(raw_text=policy_text, options=ProcessingOptions())

        data = result.policy_data
        assert result.source == "offline"
        assert data.policy_type == "Travel Insurance Policy"
        assert data.insurer == "Acme Insurance Company"
        assert [c.type for c in data.coverage_details] == [
            "Emergency Medical",
            "Trip Cancellation",
            "Baggage",
        ]
        assert data.coverage_details[0].limit == "$1,000,000"
        assert data.coverage_details[2].deductible == "$100"
        assert data.eligibility.age_limit == "75 or under"
        assert data.eligibility.max_duration == "30 days"
        assert data.important_contacts.emergency_line == "1-800-555-0100"
        assert any("not covered" in exclusion for exclusion in data.exclusions)

    @pytest.mark.asyncio
    async def test_is_deterministic(self, policy_text: str) -> None:
        client = DeterministicExtractionClient()
        options = ProcessingOptions()

        first = await client.extract(raw_text=policy_text, options=options)
        second = await client.extract(raw_text=policy_text, options=options)

        assert first == second

    @pytest.mark.asyncio
    async def test_text_without_amounts_gets_placeholder_coverage(self) -> None:
        client = DeterministicExtractionClient()
        text = "This document describes the general terms and conditions of the agreement."

        result = await client.extract(raw_text=text, options=ProcessingOptions())

        assert result.policy_data.policy_type == "Insurance Policy"
        assert result.policy_data.insurer == "Insurer not identified"
        assert [c.type for c in result.policy_data.coverage_details] == ["Primary Coverage"]
        assert result.summary.strip()

    @pytest.mark.asyncio
    async def test_scenarios_only_when_requested(self, policy_text: str) -> None:
        client = DeterministicExtractionClient()

        without = await client.extract(raw_text=policy_text, options=ProcessingOptions())
        with_scenarios = await client.extract(
            raw_text=policy_text, options=ProcessingOptions(include_scenarios=True)
        )

        assert without.policy_data.scenarios is None
        assert with_scenarios.policy_data.scenarios
        assert with_scenarios.policy_data.scenarios[-1].covered is False
        assert "[Real-World Scenarios]" in with_scenarios.summary


class TestComposeSummary:
    def test_default_sections(self, policy_data: PolicyData) -> None:
        policy_data = policy_data.model_copy(
            update={"risk_assessment": RiskAssessment(key_risks=["No cover for cruises"])}
        )

        summary = compose_summary(policy_data, ProcessingOptions())

        assert section_headings(parse_summary(summary)) == [
            "Policy Overview",
            "Coverage Details",
            "Key Benefits",
            "Important Exclusions",
            "Coverage Gaps & Risks",
            "Why This Matters",
            "Next Steps",
        ]
        assert "• **Trip Cancellation**: $5,000 (Deductible: $100)" in summary

    def test_basic_detail_is_one_paragraph(self, policy_data: PolicyData) -> None:
        summary = compose_summary(policy_data, ProcessingOptions(detail_level=DetailLevel.basic))

        blocks = parse_summary(summary)
        assert section_headings(blocks) == ["Your Coverage Summary"]
        assert "Emergency Medical ($1,000,000)" in summary
        assert "Pre-existing conditions" in summary

    def test_narrative_format_has_no_bullets(self, policy_data: PolicyData) -> None:
        summary = compose_summary(
            policy_data, ProcessingOptions(output_format=OutputFormat.narrative)
        )

        assert "•" not in summary
        assert "[Coverage Details]" in summary

    def test_focus_areas_control_optional_sections(self, policy_data: PolicyData) -> None:
        options = ProcessingOptions(
            focus_areas=[FocusArea.contacts], include_importance=False
        )

        headings = section_headings(parse_summary(compose_summary(policy_data, options)))

        assert "Key Contacts" in headings
        assert "Important Exclusions" not in headings
        assert "Why This Matters" not in headings


class TestOpenAIClient:
    @pytest.mark.asyncio
    async def test_extracts_data_then_summary(
        self, openai_client: OpenAIExtractionClient, policy_data: PolicyData, sample_summary: str
    ) -> None:
        create = AsyncMock(
            side_effect=[
                _completion(json.dumps(policy_data.model_dump(by_alias=True))),
                _completion(f"  {sample_summary}\n"),
            ]
        )
        openai_client.client.chat.completions.create = create

        result = await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert result.source == "openai"
        assert result.policy_data == policy_data
        assert result.summary == sample_summary
        assert create.await_count == 2
        first_call = create.await_args_list[0].kwargs
        assert first_call["model"] == "gpt-4o"
        assert first_call["response_format"] == {"type": "json_object"}
        assert "policy text" in first_call["messages"][1]["content"]
        assert "response_format" not in create.await_args_list[1].kwargs

    @pytest.mark.asyncio
    async def test_malformed_json(self, openai_client: OpenAIExtractionClient) -> None:
        openai_client.client.chat.completions.create = AsyncMock(
            return_value=_completion("Sure! Here is the data: {policyType: ")
        )

        with pytest.raises(ExtractionError) as exc_info:
            await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert exc_info.value.reason == "malformed"
        assert "not valid JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_incomplete_policy_data(self, openai_client: OpenAIExtractionClient) -> None:
        openai_client.client.chat.completions.create = AsyncMock(
            return_value=_completion(json.dumps({"policyType": "Travel Insurance"}))
        )

        with pytest.raises(ExtractionError) as exc_info:
            await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert "incomplete policy data" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_empty_summary(
        self, openai_client: OpenAIExtractionClient, policy_data: PolicyData
    ) -> None:
        openai_client.client.chat.completions.create = AsyncMock(
            side_effect=[
                _completion(json.dumps(policy_data.model_dump(by_alias=True))),
                _completion("   "),
            ]
        )

        with pytest.raises(ExtractionError) as exc_info:
            await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert "empty summary" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_no_choices(self, openai_client: OpenAIExtractionClient) -> None:
        response = MagicMock()
        response.choices = []
        openai_client.client.chat.completions.create = AsyncMock(return_value=response)

        with pytest.raises(ExtractionError) as exc_info:
            await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert exc_info.value.reason == "malformed"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(
        self, openai_client: OpenAIExtractionClient
    ) -> None:
        openai_client.client.chat.completions.create = AsyncMock(
            side_effect=openai.APITimeoutError(request=_REQUEST)
        )

        with pytest.raises(ExtractionTimeoutError) as exc_info:
            await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert exc_info.value.reason == "timeout"
        assert exc_info.value.stage == "ai_extraction"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "reason"),
        [
            (openai.APIConnectionError(request=_REQUEST), "connection"),
            (
                openai.RateLimitError(
                    "rate limited", response=httpx.Response(429, request=_REQUEST), body=None
                ),
                "rate_limit",
            ),
            (
                openai.AuthenticationError(
                    "bad key", response=httpx.Response(401, request=_REQUEST), body=None
                ),
                "auth",
            ),
            (
                openai.InternalServerError(
                    "boom", response=httpx.Response(500, request=_REQUEST), body=None
                ),
                "api_error",
            ),
        ],
    )
    async def test_sdk_errors_are_mapped(
        self, openai_client: OpenAIExtractionClient, error: Exception, reason: str
    ) -> None:
        openai_client.client.chat.completions.create = AsyncMock(side_effect=error)

        with pytest.raises(ExtractionError) as exc_info:
            await openai_client.extract(raw_text="policy text", options=ProcessingOptions())

        assert exc_info.value.reason == reason


def test_factory_without_key_returns_offline_client() -> None:
    client = get_extraction_client(Settings(openai_api_key=None))

    assert isinstance(client, DeterministicExtractionClient)


def test_factory_with_key_returns_openai_client() -> None:
    client = get_extraction_client(Settings(openai_api_key="sk-test", openai_model="gpt-4o-mini"))

    assert isinstance(client, OpenAIExtractionClient)
    assert client.model == "gpt-4o-mini"
