"""Parser and renderers for the plain-text summary convention.

Summaries are plain strings whose paragraphs are separated by blank lines:

    summary   := paragraph ("\\n\\n" paragraph)*
    paragraph := section | emphasis | bullet | text
    section   := ["**"] "[" heading "]" ["**"] lead? ("\\n•" item)*
    heading   := non-blank text without "]"
    emphasis  := any paragraph containing "**" (odd-indexed segments are bold)
    bullet    := "•" text
    text      := anything else

Parsing produces a list of frozen block objects; renderers turn blocks into
markdown (UI), plain text (editor/round-trip) or PDF (export).
"""

import re
from dataclasses import dataclass

BULLET = "•"

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_SECTION_HEADER = re.compile(r"^(?:\*\*)?\[([^\]]+)\](?:\*\*)?\s*(.*)$", re.DOTALL)
_BULLET_BREAK = re.compile(r"\n[ \t]*" + BULLET)


@dataclass(frozen=True)
class Span:
    text: str
    bold: bool = False


@dataclass(frozen=True)
class SectionBlock:
    """Bracketed subheader with an optional lead paragraph and bullet items."""

    heading: str
    lead: str = ""
    items: tuple[str, ...] = ()


@dataclass(frozen=True)
class EmphasisBlock:
    """Paragraph split on ** into alternating plain/bold spans (empty spans kept)."""

    spans: tuple[Span, ...]


@dataclass(frozen=True)
class BulletBlock:
    text: str


@dataclass(frozen=True)
class TextBlock:
    text: str


Block = SectionBlock | EmphasisBlock | BulletBlock | TextBlock


class SummaryParser:
    """Recursive-descent parser over the summary grammar."""

    def __init__(self, text: str) -> None:
        normalized = text.replace("\r\n", "\n")
        self._paragraphs = [p.strip() for p in _PARAGRAPH_BREAK.split(normalized)]
        self._pos = 0

    def parse(self) -> list[Block]:
        """Parse every non-empty paragraph into a block."""
        blocks: list[Block] = []
        while self._pos < len(self._paragraphs):
            paragraph = self._paragraphs[self._pos]
            self._pos += 1
            if paragraph:
                blocks.append(self._paragraph(paragraph))
        return blocks

    def _paragraph(self, paragraph: str) -> Block:
        header = _SECTION_HEADER.match(paragraph)
        if header and header.group(1).strip():
            return self._section(header.group(1).strip(), header.group(2))
        if "**" in paragraph:
            return EmphasisBlock(spans=split_emphasis(paragraph))
        if paragraph.startswith(BULLET):
            return BulletBlock(text=paragraph[len(BULLET) :].strip())
        return TextBlock(text=paragraph)

    def _section(self, heading: str, body: str) -> SectionBlock:
        # Leading newline lets a body that opens with a bullet produce an empty lead
        lead, *items = _BULLET_BREAK.split("\n" + body)
        return SectionBlock(
            heading=heading,
            lead=lead.strip(),
            items=tuple(item.strip() for item in items if item.strip()),
        )


def split_emphasis(text: str) -> tuple[Span, ...]:
    """Split text on ** markers; odd-indexed segments are bold."""
    parts = text.split("**")
    return tuple(Span(text=part, bold=index % 2 == 1) for index, part in enumerate(parts))


def parse_summary(text: str) -> list[Block]:
    """Parse a summary string into blocks."""
    return SummaryParser(text).parse()


def to_plain_text(blocks: list[Block]) -> str:
    """Serialize blocks back into the summary convention.

    parse_summary(to_plain_text(blocks)) == blocks for any parsed block list.
    """
    paragraphs = []
    for block in blocks:
        if isinstance(block, SectionBlock):
            text = f"[{block.heading}]"
            if block.lead:
                text += f" {block.lead}"
            for item in block.items:
                text += f"\n{BULLET} {item}"
            paragraphs.append(text)
        elif isinstance(block, EmphasisBlock):
            paragraphs.append("**".join(span.text for span in block.spans))
        elif isinstance(block, BulletBlock):
            paragraphs.append(f"{BULLET} {block.text}")
        else:
            paragraphs.append(block.text)
    return "\n\n".join(paragraphs)


def to_markdown(blocks: list[Block]) -> str:
    """Render blocks as markdown for display."""
    rendered = []
    for block in blocks:
        if isinstance(block, SectionBlock):
            parts = [f"#### {block.heading}"]
            if block.lead:
                parts.append(block.lead)
            if block.items:
                parts.append("\n".join(f"- {item}" for item in block.items))
            rendered.append("\n\n".join(parts))
        elif isinstance(block, EmphasisBlock):
            rendered.append(
                "".join(
                    f"**{span.text.strip()}**" if span.bold else span.text
                    for span in block.spans
                    if span.text.strip() or not span.bold
                )
            )
        elif isinstance(block, BulletBlock):
            rendered.append(f"- {block.text}")
        else:
            rendered.append(block.text)
    return "\n\n".join(rendered)


def section_headings(blocks: list[Block]) -> list[str]:
    """Headings of all section blocks, in order."""
    return [block.heading for block in blocks if isinstance(block, SectionBlock)]
