"""Tests for the summary parser and renderers."""

from backend.app.summary.blocks import (
    BulletBlock,
    EmphasisBlock,
    SectionBlock,
    Span,
    TextBlock,
    parse_summary,
    section_headings,
    split_emphasis,
    to_markdown,
    to_plain_text,
)


def test_section_with_lead_and_bullets() -> None:
    """Bracketed header, lead sentence and bullet items form one section block."""
    text = "[Coverage Details] Your policy includes:\n• Medical: $1,000,000\n• Baggage: $2,500"

    blocks = parse_summary(text)

    assert blocks == [
        SectionBlock(
            heading="Coverage Details",
            lead="Your policy includes:",
            items=("Medical: $1,000,000", "Baggage: $2,500"),
        )
    ]


def test_bold_wrapped_header_is_a_section() -> None:
    blocks = parse_summary("**[Why This Matters]** Medical bills abroad add up fast.")

    assert blocks == [
        SectionBlock(heading="Why This Matters", lead="Medical bills abroad add up fast.")
    ]


def test_section_body_starting_with_bullet_has_empty_lead() -> None:
    blocks = parse_summary("[Key Benefits]\n• 24/7 assistance\n• Cashless claims")

    assert blocks == [
        SectionBlock(heading="Key Benefits", lead="", items=("24/7 assistance", "Cashless claims"))
    ]


def test_emphasis_paragraph_alternates_bold_spans() -> None:
    """Odd-indexed segments between ** markers are bold."""
    blocks = parse_summary("Your limit is **$5,000** per trip.")

    assert blocks == [
        EmphasisBlock(
            spans=(
                Span(text="Your limit is "),
                Span(text="$5,000", bold=True),
                Span(text=" per trip."),
            )
        )
    ]


def test_emphasis_keeps_empty_spans() -> None:
    assert split_emphasis("**Bold** start") == (
        Span(text=""),
        Span(text="Bold", bold=True),
        Span(text=" start"),
    )


def test_unbalanced_emphasis_marker() -> None:
    """A trailing ** leaves the rest of the paragraph bold."""
    spans = split_emphasis("plain **rest")

    assert spans == (Span(text="plain "), Span(text="rest", bold=True))


def test_bullet_and_text_paragraphs() -> None:
    blocks = parse_summary("• Keep receipts\n\nCall us anytime.")

    assert blocks == [BulletBlock(text="Keep receipts"), TextBlock(text="Call us anytime.")]


def test_blank_paragraphs_are_skipped() -> None:
    blocks = parse_summary("\n\nFirst.\n\n   \n\nSecond.\n\n")

    assert blocks == [TextBlock(text="First."), TextBlock(text="Second.")]


def test_empty_summary_has_no_blocks() -> None:
    assert parse_summary("") == []
    assert parse_summary("   \n\n  ") == []


def test_windows_line_endings() -> None:
    blocks = parse_summary("[Overview] One.\r\n\r\n[Next Steps] Two.")

    assert section_headings(blocks) == ["Overview", "Next Steps"]


def test_plain_text_round_trip(sample_summary: str) -> None:
    """Serializing parsed blocks and parsing again gives the same blocks."""
    blocks = parse_summary(sample_summary)

    assert parse_summary(to_plain_text(blocks)) == blocks


def test_plain_text_round_trip_mixed_blocks() -> None:
    text = (
        "[Your Coverage Summary] This Travel Insurance Policy covers **medical** costs.\n\n"
        "Note: **pre-existing** conditions are excluded.\n\n"
        "• Keep your policy number handy\n\n"
        "Questions? Call your agent."
    )
    blocks = parse_summary(text)

    assert [type(block) for block in blocks] == [
        SectionBlock,
        EmphasisBlock,
        BulletBlock,
        TextBlock,
    ]
    assert parse_summary(to_plain_text(blocks)) == blocks


def test_markdown_rendering(sample_summary: str) -> None:
    markdown = to_markdown(parse_summary(sample_summary))

    assert "#### Policy Overview" in markdown
    assert "#### Coverage Details" in markdown
    assert "- **Emergency Medical**: $1,000,000" in markdown
    assert "[" not in markdown.split("\n")[0]


def test_markdown_emphasis_block() -> None:
    markdown = to_markdown(parse_summary("Limit of ** $5,000 ** applies."))

    assert markdown == "Limit of **$5,000** applies."


def test_section_headings_only_lists_sections(sample_summary: str) -> None:
    blocks = parse_summary(sample_summary + "\n\nPlain closing line.")

    assert section_headings(blocks) == ["Policy Overview", "Coverage Details", "Next Steps"]


def test_blank_bracket_heading_is_not_a_section() -> None:
    """A heading of only whitespace falls through to the other paragraph kinds."""
    blocks = parse_summary("[ ] Nothing here.\n\n[\t]\r\n]** \nb")

    assert [type(block) for block in blocks] == [TextBlock, EmphasisBlock]
    assert blocks[0] == TextBlock(text="[ ] Nothing here.")
    assert parse_summary(to_plain_text(blocks)) == blocks
