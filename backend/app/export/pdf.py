"""PDF rendering of policy summaries for client hand-off."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from fpdf import FPDF, XPos, YPos

from backend.app.models.policy import PolicyData
from backend.app.models.settings import AgentProfile, ExportPreferences
from backend.app.summary.blocks import (
    BulletBlock,
    EmphasisBlock,
    SectionBlock,
    TextBlock,
    parse_summary,
)

logger = logging.getLogger(__name__)

# Core PDF fonts only cover latin-1
_REPLACEMENTS = {
    "•": "-",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
    "…": "...",
}

_PRIMARY = (0, 51, 102)
_MUTED = (110, 110, 110)
_TEXT = (30, 30, 30)
_LINE_HEIGHT = 6


@dataclass(frozen=True)
class ExportOptions:
    """Fully resolved export options."""

    client_name: str
    policy_reference: str
    include_branding: bool
    include_explanations: bool
    include_technical_details: bool
    include_agent_signature: bool
    custom_summary: str | None = None


def resolve_export_options(
    *,
    preferences: ExportPreferences,
    document_client_name: str | None = None,
    document_policy_reference: str | None = None,
    client_name: str | None = None,
    policy_reference: str | None = None,
    include_branding: bool | None = None,
    include_explanations: bool | None = None,
    include_technical_details: bool | None = None,
    include_agent_signature: bool | None = None,
    custom_summary: str | None = None,
) -> ExportOptions:
    """Fill missing request values from the document, then the agent's preferences."""

    def pick(value: bool | None, default: bool) -> bool:
        return default if value is None else value

    return ExportOptions(
        client_name=(
            client_name or document_client_name or preferences.default_client_name
        ).strip(),
        policy_reference=(
            policy_reference or document_policy_reference or preferences.default_policy_reference
        ).strip(),
        include_branding=pick(include_branding, preferences.include_branding),
        include_explanations=pick(include_explanations, preferences.include_explanations),
        include_technical_details=pick(
            include_technical_details, preferences.include_technical_details
        ),
        include_agent_signature=pick(
            include_agent_signature, preferences.include_agent_signature
        ),
        custom_summary=(custom_summary or "").strip() or None,
    )


def export_filename(generated_at: datetime) -> str:
    return f"policy-summary-{generated_at:%Y%m%d-%H%M}.pdf"


def sanitize(text: str) -> str:
    """Map text onto the latin-1 range the core fonts can draw."""
    for source, target in _REPLACEMENTS.items():
        text = text.replace(source, target)
    return text.encode("latin-1", "replace").decode("latin-1")


class PolicySummaryPDF(FPDF):
    """A4 summary document with optional firm header and page-numbered footer."""

    def __init__(self, profile: AgentProfile, include_branding: bool) -> None:
        super().__init__(orientation="P", unit="mm", format="A4")
        self.profile = profile
        self.include_branding = include_branding
        self.set_auto_page_break(auto=True, margin=20)
        self.set_margins(18, 18, 18)

    def header(self) -> None:
        if not self.include_branding or not self.profile.firm_name:
            return
        self.set_font("helvetica", "B", 12)
        self.set_text_color(*_PRIMARY)
        self.cell(0, 7, sanitize(self.profile.firm_name), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        contact = " | ".join(
            part
            for part in (
                self.profile.firm_address,
                self.profile.firm_phone,
                self.profile.firm_website,
            )
            if part
        )
        if contact:
            self.set_font("helvetica", "", 8)
            self.set_text_color(*_MUTED)
            self.cell(0, 5, sanitize(contact), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        self.set_draw_color(*_PRIMARY)
        self.line(self.l_margin, self.get_y() + 2, self.w - self.r_margin, self.get_y() + 2)
        self.ln(6)

    def footer(self) -> None:
        self.set_y(-15)
        self.set_font("helvetica", "I", 8)
        self.set_text_color(*_MUTED)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}}", align="C")

    def section_title(self, title: str) -> None:
        self.ln(2)
        self.set_font("helvetica", "B", 12)
        self.set_text_color(*_PRIMARY)
        self.cell(0, 8, sanitize(title), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_text_color(*_TEXT)

    def paragraph(self, text: str, style: str = "", size: int = 10) -> None:
        self.set_font("helvetica", style, size)
        self.set_text_color(*_TEXT)
        self.multi_cell(0, _LINE_HEIGHT, sanitize(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(2)

    def bullet(self, text: str) -> None:
        self.set_font("helvetica", "", 10)
        self.set_text_color(*_TEXT)
        self.set_x(self.l_margin + 4)
        self.multi_cell(
            0, _LINE_HEIGHT, sanitize(f"- {text}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT
        )


def _render_summary(pdf: PolicySummaryPDF, summary: str) -> None:
    for block in parse_summary(summary):
        if isinstance(block, SectionBlock):
            pdf.section_title(block.heading)
            if block.lead:
                pdf.paragraph(block.lead)
            for item in block.items:
                pdf.bullet(item)
            if block.items:
                pdf.ln(2)
        elif isinstance(block, EmphasisBlock):
            pdf.set_text_color(*_TEXT)
            for span in block.spans:
                if not span.text:
                    continue
                pdf.set_font("helvetica", "B" if span.bold else "", 10)
                pdf.write(_LINE_HEIGHT, sanitize(span.text))
            pdf.ln(_LINE_HEIGHT + 2)
        elif isinstance(block, BulletBlock):
            pdf.bullet(block.text)
        elif isinstance(block, TextBlock):
            pdf.paragraph(block.text)


def _render_technical_details(pdf: PolicySummaryPDF, policy_data: PolicyData) -> None:
    pdf.section_title("Technical Details")
    pdf.set_fill_color(242, 245, 249)
    pdf.set_font("helvetica", "", 9)
    pdf.set_text_color(*_TEXT)

    lines = [f"Insurer: {policy_data.insurer}"]
    for coverage in policy_data.coverage_details:
        line = f"{coverage.type}: {coverage.limit}"
        if coverage.deductible:
            line += f" (deductible {coverage.deductible})"
        lines.append(line)

    contacts = policy_data.important_contacts
    for label, value in (
        ("Insurer contact", contacts.insurer),
        ("Administrator", contacts.administrator),
        ("Emergency line", contacts.emergency_line),
    ):
        if value:
            lines.append(f"{label}: {value}")

    pdf.multi_cell(
        0,
        5,
        sanitize("\n".join(lines)),
        border=1,
        fill=True,
        new_x=XPos.LMARGIN,
        new_y=YPos.NEXT,
    )
    pdf.ln(3)


def _render_signature(pdf: PolicySummaryPDF, profile: AgentProfile) -> None:
    lines = [
        value
        for value in (
            profile.signature or profile.name,
            profile.title,
            f"License: {profile.license}" if profile.license else "",
            profile.phone,
            profile.email,
        )
        if value
    ]
    if not lines:
        return
    pdf.ln(4)
    pdf.set_draw_color(*_MUTED)
    pdf.line(pdf.l_margin, pdf.get_y(), pdf.l_margin + 60, pdf.get_y())
    pdf.ln(2)
    pdf.set_font("helvetica", "B", 10)
    pdf.cell(0, 5, sanitize(lines[0]), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font("helvetica", "", 9)
    for line in lines[1:]:
        pdf.cell(0, 5, sanitize(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def render_policy_pdf(
    *,
    policy_data: PolicyData,
    summary: str,
    options: ExportOptions,
    profile: AgentProfile,
    generated_at: datetime | None = None,
) -> bytes:
    """Render a client-facing summary PDF.

    Args:
        policy_data: Structured policy data of the document
        summary: Active summary text (ignored when options carry a custom summary)
        options: Resolved export options
        profile: Agent profile for branding and signature
        generated_at: Timestamp printed on the document (defaults to now)

    Returns:
        PDF file contents
    """
    generated_at = generated_at or datetime.now(UTC)

    pdf = PolicySummaryPDF(profile, include_branding=options.include_branding)
    pdf.add_page()

    pdf.set_font("helvetica", "B", 18)
    pdf.set_text_color(*_PRIMARY)
    pdf.multi_cell(
        0, 9, sanitize(f"{policy_data.policy_type} Summary"), new_x=XPos.LMARGIN, new_y=YPos.NEXT
    )
    pdf.ln(2)

    pdf.set_font("helvetica", "", 10)
    pdf.set_text_color(*_MUTED)
    if options.client_name:
        pdf.cell(
            0, 5, sanitize(f"Prepared for: {options.client_name}"),
            new_x=XPos.LMARGIN, new_y=YPos.NEXT,
        )
    if options.policy_reference:
        pdf.cell(
            0, 5, sanitize(f"Policy reference: {options.policy_reference}"),
            new_x=XPos.LMARGIN, new_y=YPos.NEXT,
        )
    pdf.cell(
        0, 5, f"Date: {generated_at:%B %d, %Y}", new_x=XPos.LMARGIN, new_y=YPos.NEXT
    )
    pdf.ln(4)

    if options.include_technical_details:
        _render_technical_details(pdf, policy_data)

    _render_summary(pdf, options.custom_summary or summary)

    if options.include_explanations and policy_data.why_it_matters:
        pdf.section_title("Why This Matters")
        pdf.paragraph(policy_data.why_it_matters, style="I")

    if options.include_agent_signature:
        _render_signature(pdf, profile)

    logger.info(
        "Rendered policy PDF",
        extra={
            "structured": {
                "pages": pdf.page_no(),
                "custom_summary": bool(options.custom_summary),
            }
        },
    )
    return bytes(pdf.output())
