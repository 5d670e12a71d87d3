"""Raw text extraction from uploaded PDF and DOCX binaries."""

import io
import logging
import re
import zipfile
from pathlib import PurePath

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from backend.app.config import DOCX_MIME_TYPE, PDF_MIME_TYPE
from backend.app.errors import TextExtractionError

logger = logging.getLogger(__name__)

# Below this many readable characters a PDF is treated as scanned/image-only
MIN_READABLE_CHARS = 20

_EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME_TYPE,
    ".docx": DOCX_MIME_TYPE,
}

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HORIZONTAL_SPACE = re.compile(r"[ \t\u00a0]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def resolve_mime_type(filename: str, content_type: str | None) -> str:
    """Determine the MIME type of an upload.

    Browsers and HTTP clients frequently send application/octet-stream for
    DOCX files, so the filename extension is consulted in that case.

    Args:
        filename: Original filename from the multipart part
        content_type: Content-Type header of the part, if any

    Returns:
        Best-effort MIME type (may be unsupported; callers validate)
    """
    if content_type and content_type != "application/octet-stream":
        return content_type.split(";", 1)[0].strip().lower()
    suffix = PurePath(filename).suffix.lower()
    return _EXTENSION_MIME_TYPES.get(suffix, content_type or "application/octet-stream")


def normalize_text(text: str) -> str:
    """Strip control characters and collapse whitespace, keeping paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub("", text)
    lines = [_HORIZONTAL_SPACE.sub(" ", line).strip() for line in text.split("\n")]
    return _EXCESS_NEWLINES.sub("\n\n", "\n".join(lines)).strip()


def extract_pdf_text(content: bytes) -> str:
    """Extract text from every page of a PDF.

    Raises:
        TextExtractionError: If the PDF is corrupt, encrypted, or has no readable text
    """
    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted and not reader.decrypt(""):
            raise TextExtractionError(
                "The PDF is password protected. Please upload an unlocked copy.",
                reason="encrypted",
            )
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError) as e:
        raise TextExtractionError(
            "Could not read the PDF file. It may be corrupted.", reason="corrupt"
        ) from e

    text = normalize_text("\n\n".join(pages))
    if len(text) < MIN_READABLE_CHARS:
        raise TextExtractionError(
            "PDF appears to be image-based or contains no readable text.",
            reason="no_text",
        )

    logger.debug("Extracted %d chars from %d PDF pages", len(text), len(pages))
    return text


def extract_docx_text(content: bytes) -> str:
    """Extract paragraph and table text from a DOCX document.

    Raises:
        TextExtractionError: If the file is not a valid DOCX or is empty
    """
    try:
        document = Document(io.BytesIO(content))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise TextExtractionError(
            "Could not read the Word document. It may be corrupted.", reason="corrupt"
        ) from e

    parts = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    text = normalize_text("\n".join(parts))
    if not text:
        raise TextExtractionError("The Word document contains no text.", reason="no_text")
    return text


def extract_raw_text(content: bytes, mime_type: str) -> str:
    """Extract normalized text from an uploaded binary.

    Args:
        content: File bytes
        mime_type: Validated MIME type (PDF or DOCX)

    Returns:
        Normalized document text

    Raises:
        TextExtractionError: On any format-specific failure
    """
    if mime_type == PDF_MIME_TYPE:
        return extract_pdf_text(content)
    if mime_type == DOCX_MIME_TYPE:
        return extract_docx_text(content)
    raise TextExtractionError(f"Unsupported file type: {mime_type}", reason="unsupported_type")
