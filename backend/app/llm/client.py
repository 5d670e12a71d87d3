"""Extraction service clients with OpenAI integration.

Security: Reads API key from settings (environment) only, never hardcoded.
Provides a deterministic offline client when no key is configured.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from backend.app.config import Settings, get_settings
from backend.app.errors import ExtractionError, ExtractionTimeoutError
from backend.app.llm.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_extraction_prompt,
    build_summary_prompt,
)
from backend.app.models.common import DetailLevel, FocusArea, OutputFormat
from backend.app.models.policy import (
    CoverageDetail,
    Eligibility,
    ImportantContacts,
    PolicyData,
    ProcessingOptions,
    RiskAssessment,
    Scenario,
)

logger = logging.getLogger(__name__)

_LABEL_PUNCTUATION = " :-\u2013|\t"


@dataclass(frozen=True)
class ExtractionResult:
    """Structured policy data plus the narrative summary generated from it."""

    policy_data: PolicyData
    summary: str
    source: str


class ExtractionService(Protocol):
    """Protocol for extraction service implementations."""

    async def extract(self, *, raw_text: str, options: ProcessingOptions) -> ExtractionResult:
        """Convert raw document text into structured policy data and a summary.

        Args:
            raw_text: Normalized document text
            options: Processing options for this generation

        Returns:
            ExtractionResult with validated PolicyData and non-empty summary

        Raises:
            ExtractionError: Service failure or malformed response
            ExtractionTimeoutError: Service did not answer in time
        """
        ...


def compose_summary(policy_data: PolicyData, options: ProcessingOptions) -> str:
    """Render policy data into the [Header] / • bullet summary convention."""
    coverage_lines = [
        f"**{c.type}**: {c.limit}" + (f" (Deductible: {c.deductible})" if c.deductible else "")
        for c in policy_data.coverage_details
    ]
    exclusions = policy_data.exclusions or ["No specific exclusions were identified"]

    if options.detail_level == DetailLevel.basic:
        coverage_text = ", ".join(
            f"{c.type} ({c.limit})" for c in policy_data.coverage_details
        ) or "the coverage described in the policy"
        return (
            f"[Your Coverage Summary] This {policy_data.policy_type} from "
            f"{policy_data.insurer} provides coverage for {coverage_text}. Key exclusions "
            f"include: {'; '.join(exclusions)}. Please review the complete policy for full details."
        )

    def section(header: str, intro: str, items: list[str]) -> str:
        if not items:
            return f"[{header}] {intro}"
        if options.output_format == OutputFormat.narrative:
            return f"[{header}] {intro} " + "; ".join(items) + "."
        return f"[{header}] {intro}\n" + "\n".join(f"• {item}" for item in items)

    sections = [
        f"[Policy Overview] This {policy_data.policy_type} from {policy_data.insurer} "
        f"provides the protection summarised below.",
        section(
            "Coverage Details", "Your policy includes the following protection:", coverage_lines
        ),
    ]
    if policy_data.key_benefits:
        sections.append(
            section("Key Benefits", "What this policy does for you:", policy_data.key_benefits)
        )

    eligibility = policy_data.eligibility
    eligibility_items = [
        item
        for item in (
            f"Age limit: {eligibility.age_limit}" if eligibility.age_limit else None,
            f"Maximum duration: {eligibility.max_duration}" if eligibility.max_duration else None,
            *eligibility.restrictions,
        )
        if item
    ]
    if FocusArea.eligibility in options.focus_areas and eligibility_items:
        sections.append(
            section("Eligibility", "Who and when this policy covers:", eligibility_items)
        )

    if FocusArea.exclusions in options.focus_areas:
        sections.append(
            section("Important Exclusions", "Please be aware of these exclusions:", exclusions)
        )

    contacts = policy_data.important_contacts
    contact_items = [
        item
        for item in (
            f"Insurer: {contacts.insurer}" if contacts.insurer else None,
            f"Administrator: {contacts.administrator}" if contacts.administrator else None,
            f"Emergency line: {contacts.emergency_line}" if contacts.emergency_line else None,
        )
        if item
    ]
    if FocusArea.contacts in options.focus_areas and contact_items:
        sections.append(section("Key Contacts", "Keep these numbers handy:", contact_items))

    risk = policy_data.risk_assessment
    if options.highlight_risks and risk and risk.key_risks:
        sections.append(
            section("Coverage Gaps & Risks", "Watch out for the following:", risk.key_risks)
        )
    if options.generate_recommendations and risk and risk.recommendations:
        sections.append(section("Recommendations", "Suggested next steps:", risk.recommendations))
    if options.include_scenarios and policy_data.scenarios:
        scenario_items = [
            f"{s.title}: {s.description}"
            + ("" if s.covered is None else (" (covered)" if s.covered else " (not covered)"))
            for s in policy_data.scenarios
        ]
        sections.append(
            section("Real-World Scenarios", "How claims would play out:", scenario_items)
        )

    if options.include_importance and policy_data.why_it_matters:
        sections.append(f"[Why This Matters] {policy_data.why_it_matters}")

    sections.append(
        "[Next Steps] Review the complete policy documents for full terms and conditions. "
        "Contact your agent with any questions."
    )
    return "\n\n".join(sections)


class DeterministicExtractionClient:
    """Deterministic pattern-based client for offline use (no API key required)."""

    _AMOUNT = re.compile(r"\$\s?[\d,]+(?:\.\d{2})?(?:\s?(?:CAD|USD))?")
    _PHONE = re.compile(r"1-\d{3}-\d{3}-\d{4}|\(\d{3}\)\s*\d{3}-\d{4}|\b\d{3}-\d{3}-\d{4}\b")
    _INSURER = re.compile(
        r"\b((?:[A-Z][A-Za-z&.]+ ){1,4}(?:Insurance|Assurance)"
        r"(?: (?:Company|Group|Ltd\.?|Inc\.?))?)"
    )
    _AGE = re.compile(
        r"\b(?:aged?|under the age of|age limit(?: of)?:?)\s*(\d{1,3}(?:\s*(?:to|-)\s*\d{1,3})?"
        r"(?:\s*(?:years|or (?:under|younger|older|over)))?)",
        re.IGNORECASE,
    )
    _DURATION = re.compile(
        r"\b(?:maximum|max\.?|up to)\s+(\d{1,3}\s+(?:consecutive\s+)?(?:days?|months?|years?))",
        re.IGNORECASE,
    )
    _DEDUCTIBLE = re.compile(r"deductible\s*(?:of|:)?\s*(\$\s?[\d,]+(?:\.\d{2})?)", re.IGNORECASE)
    _COVERAGE_KEYWORDS = (
        "coverage",
        "limit",
        "medical",
        "liability",
        "cancellation",
        "interruption",
        "property",
        "baggage",
        "collision",
        "benefit",
    )
    _EXCLUSION_KEYWORDS = ("not covered", "exclude", "excluded", "exclusion", "does not cover")
    _POLICY_TYPES = (
        (("travel", "trip"), "Travel Insurance Policy"),
        (("vehicle", "automobile", "auto "), "Automobile Insurance Policy"),
        (("commercial", "business"), "Commercial Business Insurance Policy"),
        (("homeowner", "dwelling", "home insurance"), "Homeowners Insurance Policy"),
        (("life insurance", "beneficiary"), "Life Insurance Policy"),
        (("health", "dental"), "Health Insurance Policy"),
    )

    async def extract(self, *, raw_text: str, options: ProcessingOptions) -> ExtractionResult:
        """Extract policy data with regular expressions and compose a templated summary."""
        policy_data = self._extract_policy_data(raw_text, options)
        summary = compose_summary(policy_data, options)
        return ExtractionResult(policy_data=policy_data, summary=summary, source="offline")

    def _extract_policy_data(self, raw_text: str, options: ProcessingOptions) -> PolicyData:
        lowered = raw_text.lower()
        policy_type = next(
            (name for keywords, name in self._POLICY_TYPES if any(k in lowered for k in keywords)),
            "Insurance Policy",
        )
        insurer_match = self._INSURER.search(raw_text)
        insurer = insurer_match.group(1).strip() if insurer_match else "Insurer not identified"

        lines = [line.strip() for line in raw_text.split("\n") if line.strip()]
        coverage = self._coverage_lines(lines)
        if not options.extract_coverage:
            coverage = coverage[:3]

        sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+|\n", raw_text) if s.strip()]
        exclusions = [
            s for s in sentences if any(k in s.lower() for k in self._EXCLUSION_KEYWORDS)
        ][:6]

        age_match = self._AGE.search(raw_text)
        duration_match = self._DURATION.search(raw_text)
        phones = self._PHONE.findall(raw_text)

        risk_assessment = None
        if options.highlight_risks or options.generate_recommendations:
            risk_assessment = RiskAssessment(
                overall_risk="moderate" if exclusions else "low",
                key_risks=[f"Not covered: {e}" for e in exclusions[:3]],
                recommendations=[
                    "Review the exclusions with your agent before you need to claim",
                    "Keep the emergency contact numbers with your policy documents",
                ],
            )

        scenarios = None
        if options.include_scenarios:
            scenarios = [
                Scenario(
                    title=f"{c.type} claim",
                    description=f"A claim under {c.type} is paid up to {c.limit}.",
                    covered=True,
                )
                for c in coverage[:2]
            ]
            if exclusions:
                scenarios.append(
                    Scenario(title="Excluded event", description=exclusions[0], covered=False)
                )

        return PolicyData(
            policy_type=policy_type,
            insurer=insurer,
            coverage_details=coverage,
            eligibility=Eligibility(
                age_limit=age_match.group(1).strip() if age_match else None,
                max_duration=duration_match.group(1).strip() if duration_match else None,
            ),
            exclusions=exclusions,
            important_contacts=ImportantContacts(
                insurer=insurer if insurer_match else None,
                emergency_line=phones[0] if phones else None,
                administrator=phones[1] if len(phones) > 1 else None,
            ),
            key_benefits=[f"{c.type} up to {c.limit}" for c in coverage[:5]],
            why_it_matters=(
                f"This {policy_type.lower()} protects against unexpected costs that would "
                "otherwise be paid out of pocket."
            ),
            risk_assessment=risk_assessment,
            scenarios=scenarios,
        )

    def _coverage_lines(self, lines: list[str]) -> list[CoverageDetail]:
        coverage: list[CoverageDetail] = []
        seen: set[str] = set()
        for line in lines:
            amount = self._AMOUNT.search(line)
            if not amount or not any(k in line.lower() for k in self._COVERAGE_KEYWORDS):
                continue
            label = line[: amount.start()].strip(_LABEL_PUNCTUATION)
            label = label or line[amount.end() :].strip(_LABEL_PUNCTUATION)
            label = label[:60] or "Coverage"
            if label.lower() in seen:
                continue
            seen.add(label.lower())
            deductible = self._DEDUCTIBLE.search(line)
            coverage.append(
                CoverageDetail(
                    type=label,
                    limit=amount.group(0).strip(),
                    deductible=deductible.group(1) if deductible else None,
                )
            )
            if len(coverage) == 8:
                break
        if not coverage:
            coverage.append(CoverageDetail(type="Primary Coverage", limit="As specified in policy"))
        return coverage


class OpenAIExtractionClient:
    """OpenAI-backed extraction client."""

    def __init__(self, api_key: str, model: str = "gpt-4o", base_url: str | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Chat model used for both extraction and summary
            base_url: Optional API base URL override
        """
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=2)
        self.model = model

    async def extract(self, *, raw_text: str, options: ProcessingOptions) -> ExtractionResult:
        """Extract PolicyData as JSON, then generate the narrative summary from it."""
        content = await self._complete(
            system=EXTRACTION_SYSTEM_PROMPT,
            prompt=build_extraction_prompt(raw_text, options),
            temperature=0.1,
            json_mode=True,
        )
        try:
            policy_data = PolicyData.model_validate(json.loads(content))
        except json.JSONDecodeError as e:
            raise ExtractionError(
                "The AI service returned a response that is not valid JSON.", reason="malformed"
            ) from e
        except ValidationError as e:
            logger.warning("Policy data failed validation: %s", e.errors(include_url=False))
            raise ExtractionError(
                "The AI service returned incomplete policy data.", reason="malformed"
            ) from e

        summary = await self._complete(
            system=SUMMARY_SYSTEM_PROMPT,
            prompt=build_summary_prompt(policy_data, options),
            temperature=0.3,
            json_mode=False,
        )
        if not summary.strip():
            raise ExtractionError("The AI service returned an empty summary.", reason="malformed")

        return ExtractionResult(policy_data=policy_data, summary=summary.strip(), source="openai")

    async def _complete(
        self, *, system: str, prompt: str, temperature: float, json_mode: bool
    ) -> str:
        """Run one chat completion and map SDK failures to ExtractionError."""
        kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=4000,
                **kwargs,
            )
        except openai.APITimeoutError as e:
            raise ExtractionTimeoutError(
                "The AI service timed out while analyzing the document."
            ) from e
        except openai.AuthenticationError as e:
            raise ExtractionError("Invalid OpenAI API key.", reason="auth") from e
        except openai.RateLimitError as e:
            raise ExtractionError(
                "The AI service rate limit was reached. Please try again later.",
                reason="rate_limit",
            ) from e
        except openai.APIConnectionError as e:
            raise ExtractionError("Could not reach the AI service.", reason="connection") from e
        except openai.APIStatusError as e:
            raise ExtractionError(
                f"The AI service returned an error (HTTP {e.status_code}).", reason="api_error"
            ) from e

        if not response.choices:
            raise ExtractionError("The AI service returned no choices.", reason="malformed")
        return response.choices[0].message.content or ""


def get_extraction_client(settings: Settings | None = None) -> ExtractionService:
    """Factory function to get appropriate extraction client based on config.

    Returns:
        OpenAIExtractionClient if API key is configured, DeterministicExtractionClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for extraction")
        return OpenAIExtractionClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
            base_url=settings.openai_base_url,
        )
    logger.warning("No OpenAI API key configured, using deterministic offline client")
    return DeterministicExtractionClient()
