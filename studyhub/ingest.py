"""
Document text extraction.

Converts uploaded document bytes into page-delimited plain text:
- PDF files (pypdf), one page marker per page
- Word documents (.docx, python-docx), paragraphs and tables
- PowerPoint presentations (.pptx, python-pptx), one page marker per slide
- Plain text (.txt, .md)

Page markers use the form ``==== Page N ====`` so the embedding pipeline
can attribute chunks to pages.
"""

import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from docx import Document
from pptx import Presentation
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .constants import MIME_TYPES_BY_EXTENSION, PAGE_MARKER_TEMPLATE
from .exceptions import TextExtractionError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

HEBREW_PATTERN = re.compile("[\u0590-\u05FF\uFB1D-\uFB4F]")
ARABIC_PATTERN = re.compile("[\u0600-\u06FF\u0750-\u077F\uFB50-\uFDFF\uFE70-\uFEFF]")
NON_LATIN_RATIO = 0.02

SUPPORTED_EXTENSIONS = [".pdf", ".docx", ".pptx", ".txt", ".md"]


@dataclass
class ExtractedText:
    """Result of text extraction."""
    text: str
    page_count: int
    language: str


def page_marker(page: int) -> str:
    return PAGE_MARKER_TEMPLATE.format(page=page)


# =============================================================================
# Language Detection & Normalization
# =============================================================================

def detect_language(text: str) -> str:
    """
    Detect the dominant script of a text.

    Returns 'he' or 'ar' when that script makes up more than 2% of the
    non-whitespace characters, 'unknown' for very short input, else 'en'.
    """
    if not text or len(text) < 10:
        return "unknown"

    total = len(re.sub(r"\s", "", text))
    if total == 0:
        return "unknown"

    hebrew = len(HEBREW_PATTERN.findall(text))
    if hebrew and hebrew / total > NON_LATIN_RATIO:
        logger.debug(f"Detected Hebrew: {hebrew}/{total} chars")
        return "he"

    arabic = len(ARABIC_PATTERN.findall(text))
    if arabic and arabic / total > NON_LATIN_RATIO:
        logger.debug(f"Detected Arabic: {arabic}/{total} chars")
        return "ar"

    return "en"


def is_non_latin(text: str) -> bool:
    return detect_language(text) in ("he", "ar")


def normalize_text(text: str) -> str:
    """Strip NULs and collapse runs of blank lines."""
    text = text.replace("\x00", "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


# =============================================================================
# Format Extractors
# =============================================================================

def extract_pdf_text(content_bytes: bytes) -> ExtractedText:
    """Extract text from PDF file."""
    try:
        reader = PdfReader(io.BytesIO(content_bytes))
        text_parts = []
        for i, page in enumerate(reader.pages, 1):
            text = page.extract_text() or ""
            if text.strip():
                text_parts.append(f"{page_marker(i)}\n{text}")
    except (PdfReadError, ValueError, KeyError) as e:
        raise TextExtractionError("PDF document", str(e)) from e

    logger.info(f"Extracted text from {len(reader.pages)} PDF pages")
    text = normalize_text("\n\n".join(text_parts))
    return ExtractedText(text=text, page_count=len(reader.pages), language=detect_language(text))


def extract_docx_text(content_bytes: bytes) -> ExtractedText:
    """Extract text from Word document."""
    try:
        doc = Document(io.BytesIO(content_bytes))
    except Exception as e:
        raise TextExtractionError("Word document", str(e)) from e

    text_parts = [para.text for para in doc.paragraphs if para.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                text_parts.append(" | ".join(cells))

    logger.info(f"Extracted text from Word document: {len(text_parts)} blocks")
    text = normalize_text("\n\n".join(text_parts))
    return ExtractedText(text=text, page_count=1, language=detect_language(text))


def extract_powerpoint_text(content_bytes: bytes) -> ExtractedText:
    """
    Extract text from PowerPoint presentation (.pptx).

    Each slide becomes a page; speaker notes follow the slide text.
    """
    try:
        prs = Presentation(io.BytesIO(content_bytes))
    except Exception as e:
        raise TextExtractionError("PowerPoint presentation", str(e)) from e

    text_parts = []
    for i, slide in enumerate(prs.slides, 1):
        slide_lines = []
        for shape in slide.shapes:
            if shape.has_text_frame and shape.text_frame.text.strip():
                slide_lines.append(shape.text_frame.text.strip())

        if slide.has_notes_slide:
            notes = slide.notes_slide.notes_text_frame.text.strip()
            if notes:
                slide_lines.append(f"Notes: {notes}")

        if slide_lines:
            text_parts.append(page_marker(i) + "\n" + "\n".join(slide_lines))

    slide_count = len(prs.slides)
    logger.info(f"Extracted text from {slide_count} slides")
    text = normalize_text("\n\n".join(text_parts))
    return ExtractedText(text=text, page_count=slide_count, language=detect_language(text))


def extract_plain_text(content_bytes: bytes) -> ExtractedText:
    try:
        text = content_bytes.decode("utf-8")
    except UnicodeDecodeError:
        text = content_bytes.decode("latin-1")
    text = normalize_text(text)
    return ExtractedText(text=text, page_count=1, language=detect_language(text))


# =============================================================================
# Dispatcher
# =============================================================================

def guess_mime_type(filename: str) -> str:
    ext = Path(filename).suffix.lower().lstrip(".")
    return MIME_TYPES_BY_EXTENSION.get(ext, "application/octet-stream")


def extract_text(content_bytes: bytes, filename: str, mime_type: Optional[str] = None) -> ExtractedText:
    """
    Extract page-delimited text from an uploaded document.

    Args:
        content_bytes: Raw file content
        filename: Original filename (its suffix picks the extractor)
        mime_type: Declared MIME type, used when the suffix is missing

    Returns:
        ExtractedText with text, page count and detected language

    Raises:
        UnsupportedFileTypeError: For formats we cannot read
        TextExtractionError: If the document is corrupt
    """
    file_ext = Path(filename).suffix.lower()
    if not file_ext and mime_type:
        for ext, mime in MIME_TYPES_BY_EXTENSION.items():
            if mime == mime_type:
                file_ext = f".{ext}"
                break

    logger.info(f"Extracting text from {filename} ({len(content_bytes)} bytes)")

    if file_ext == ".pdf":
        return extract_pdf_text(content_bytes)
    elif file_ext == ".docx":
        return extract_docx_text(content_bytes)
    elif file_ext == ".pptx":
        return extract_powerpoint_text(content_bytes)
    elif file_ext in (".txt", ".md"):
        return extract_plain_text(content_bytes)

    raise UnsupportedFileTypeError(file_ext or (mime_type or "unknown"), SUPPORTED_EXTENSIONS)
