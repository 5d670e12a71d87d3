"""Structured policy data and the processing options that shape extraction."""

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.models.common import CamelModel, DetailLevel, FocusArea, OutputFormat


class _PolicyModel(CamelModel):
    """Extraction output tolerates numeric values where text is expected (e.g. limits)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )


class CoverageDetail(_PolicyModel):
    """One coverage line of the policy."""

    type: str = Field(..., min_length=1)
    limit: str
    deductible: str | None = None


class Eligibility(_PolicyModel):
    """Who the policy applies to."""

    age_limit: str | None = None
    max_duration: str | None = None
    restrictions: list[str] = Field(default_factory=list)


class ImportantContacts(_PolicyModel):
    """Phone numbers and addresses the insured will need."""

    insurer: str | None = None
    administrator: str | None = None
    emergency_line: str | None = None


class RiskAssessment(_PolicyModel):
    """Coverage gaps and what to do about them."""

    overall_risk: str | None = None
    key_risks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class Scenario(_PolicyModel):
    """A worked example of how a claim would play out."""

    title: str
    description: str
    covered: bool | None = None


class PolicyData(_PolicyModel):
    """Structured policy object returned by the extraction service."""

    policy_type: str = Field(..., min_length=1)
    insurer: str = Field(..., min_length=1)
    coverage_details: list[CoverageDetail]
    eligibility: Eligibility = Field(default_factory=Eligibility)
    exclusions: list[str] = Field(default_factory=list)
    important_contacts: ImportantContacts = Field(default_factory=ImportantContacts)
    key_benefits: list[str] = Field(default_factory=list)
    why_it_matters: str = ""
    risk_assessment: RiskAssessment | None = None
    scenarios: list[Scenario] | None = None


class ProcessingOptions(CamelModel):
    """Configuration for one extraction/summary generation."""

    model_config = ConfigDict(extra="forbid")

    extract_coverage: bool = True
    generate_explanations: bool = True
    include_importance: bool = True
    detail_level: DetailLevel = DetailLevel.comprehensive
    focus_areas: list[FocusArea] = Field(
        default_factory=lambda: [FocusArea.coverage, FocusArea.exclusions, FocusArea.eligibility]
    )
    output_format: OutputFormat = OutputFormat.structured
    include_comparisons: bool = False
    generate_recommendations: bool = False
    highlight_risks: bool = True
    include_scenarios: bool = False

    def to_storage(self) -> dict:
        """Serialize for JSON columns (camelCase, JSON-safe values)."""
        return self.model_dump(by_alias=True, mode="json")
