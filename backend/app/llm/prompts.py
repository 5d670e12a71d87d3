"""Prompt builders for policy extraction and summary generation."""

import json

from backend.app.models.common import DetailLevel, OutputFormat
from backend.app.models.policy import PolicyData, ProcessingOptions

EXTRACTION_SYSTEM_PROMPT = (
    "You are an expert insurance policy analyst. Extract key policy information "
    "and respond only with valid JSON."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are an experienced insurance agent (20+ years) explaining policies to clients "
    "in clear, understandable language. You write plain text only, never markdown headings."
)

_POLICY_SCHEMA = """  "policyType": "string - type of policy (e.g. 'Travel Insurance')",
  "insurer": "string - name of the insurance company",
  "coverageDetails": [
    {"type": "string", "limit": "string with currency", "deductible": "string (optional)"}
  ],
  "eligibility": {
    "ageLimit": "string (optional)",
    "maxDuration": "string (optional)",
    "restrictions": ["string"]
  },
  "exclusions": ["string"],
  "importantContacts": {
    "insurer": "string (optional)",
    "administrator": "string (optional)",
    "emergencyLine": "string (optional)"
  },
  "keyBenefits": ["string - benefit in plain language"],
  "whyItMatters": "string - why this coverage is important for the client\""""

_RISK_SCHEMA = """  "riskAssessment": {
    "overallRisk": "low | moderate | high",
    "keyRisks": ["string - coverage gap or limitation"],
    "recommendations": ["string - what the client should do about it"]
  }"""

_SCENARIO_SCHEMA = """  "scenarios": [
    {"title": "string", "description": "string - how a claim would play out", "covered": true}
  ]"""

_DETAIL_INSTRUCTIONS = {
    DetailLevel.basic: (
        "Write a single paragraph that starts with the header [Your Coverage Summary]. "
        "Use everyday language, explain what the policy covers in practical terms and "
        "mention the key exclusions. Keep it to 150-200 words."
    ),
    DetailLevel.standard: (
        "Write 3 paragraphs, each starting with a descriptive header in square brackets "
        "such as [Policy Overview]. Target 250-350 words in total."
    ),
    DetailLevel.comprehensive: (
        "Write 5 substantial paragraphs, each starting with a descriptive header in square "
        "brackets such as [Coverage Details]. Target 400-600 words in total."
    ),
    DetailLevel.expert: (
        "Write 6-7 paragraphs, each starting with a descriptive header in square brackets. "
        "Include precise limits, deductibles and conditions and explain technical terms. "
        "Target 600-900 words in total."
    ),
}

_FORMAT_INSTRUCTIONS = {
    OutputFormat.structured: (
        "Inside a section, give a one-sentence introduction, then list items on new lines "
        "starting with '• '."
    ),
    OutputFormat.narrative: "Write flowing prose. Do not use bullet points.",
    OutputFormat.bullet: "After each header, list the content as lines starting with '• '.",
    OutputFormat.detailed: (
        "Inside a section, explain the topic in full sentences, then list specifics on new "
        "lines starting with '• ' with a short practical example where helpful."
    ),
}


def build_extraction_prompt(raw_text: str, options: ProcessingOptions) -> str:
    """Build the user prompt asking for a PolicyData JSON object."""
    schema_parts = [_POLICY_SCHEMA]
    if options.highlight_risks or options.generate_recommendations:
        schema_parts.append(_RISK_SCHEMA)
    if options.include_scenarios:
        schema_parts.append(_SCENARIO_SCHEMA)
    schema = ",\n".join(schema_parts) + "\n}"

    focus = ", ".join(area.value for area in options.focus_areas) or "all areas"

    lines = [
        "Analyze the following insurance policy document and extract key information.",
        "Extract dollar amounts, dates and conditions exactly as they appear in the document.",
        "",
        "Respond with a JSON object with this structure:",
        "{",
        schema,
        "",
        f"Pay particular attention to: {focus}.",
    ]
    if not options.extract_coverage:
        lines.append("List only the headline coverage lines in coverageDetails.")
    if options.generate_explanations:
        lines.append("Explain benefits in terms a non-insurance professional can understand.")
    lines.extend(["", "Policy Document Text:", raw_text])
    return "\n".join(lines)


def build_summary_prompt(policy_data: PolicyData, options: ProcessingOptions) -> str:
    """Build the user prompt asking for the narrative summary.

    The summary convention ([Header] paragraphs, '• ' bullets, **bold**) is what
    backend.app.summary.blocks parses.
    """
    lines = [
        "Create a client-friendly policy summary from the following policy data.",
        "",
        "Policy Data:",
        json.dumps(policy_data.model_dump(by_alias=True, exclude_none=True), indent=2),
        "",
        "Formatting rules:",
        "- Separate paragraphs with one blank line.",
        "- Start each paragraph with its header in square brackets, e.g. [Key Benefits].",
        "- Use **double asterisks** around key amounts and terms.",
        f"- {_DETAIL_INSTRUCTIONS[options.detail_level]}",
    ]
    if options.detail_level != DetailLevel.basic:
        lines.append(f"- {_FORMAT_INSTRUCTIONS[options.output_format]}")

    focus = ", ".join(area.value for area in options.focus_areas)
    if focus:
        lines.append(f"- Emphasise these areas: {focus}.")
    if options.include_importance:
        lines.append("- Explain why each type of coverage matters to the client.")
    if options.highlight_risks:
        lines.append("- Include a [Coverage Gaps & Risks] section highlighting gaps and risks.")
    if options.generate_recommendations:
        lines.append("- Include a [Recommendations] section with actionable advice.")
    if options.include_scenarios:
        lines.append("- Include a [Real-World Scenarios] section with claim examples.")
    if options.include_comparisons:
        lines.append("- Include a [How This Compares] section against typical market coverage.")
    return "\n".join(lines)
