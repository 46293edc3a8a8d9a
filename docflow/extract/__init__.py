"""Text extraction for PDF, DOCX, PPTX, XLSX and plain text files."""

from __future__ import annotations

import logging
from pathlib import Path

from docflow.errors import ExtractionError, ExtractionErrorKind

from .base import ExtractedDocument

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS: frozenset[str] = frozenset({".txt", ".md"})

# Extensions that need a document library
DOCUMENT_EXTENSIONS: frozenset[str] = frozenset({".pdf", ".docx", ".pptx", ".xlsx"})

SUPPORTED_EXTENSIONS: frozenset[str] = DOCUMENT_EXTENSIONS | TEXT_EXTENSIONS


def extract_document(data: bytes, extension: str) -> ExtractedDocument:
    """
    Extract text from a document based on its extension.

    Args:
        data: Raw file bytes
        extension: File extension (e.g., '.pdf', '.docx', '.txt')

    Returns:
        ExtractedDocument with stripped text content

    Raises:
        ExtractionError: If the extension is not supported or the file
            cannot be parsed
    """
    ext = extension.lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"

    if ext not in SUPPORTED_EXTENSIONS:
        raise ExtractionError(
            f"Unsupported file type: {extension or '(none)'}",
            ExtractionErrorKind.UNSUPPORTED_FORMAT,
        )

    try:
        if ext == ".pdf":
            from .pdf import extract_pdf

            doc = extract_pdf(data)
        elif ext == ".docx":
            from .docx import extract_docx

            doc = extract_docx(data)
        elif ext == ".pptx":
            from .pptx import extract_pptx

            doc = extract_pptx(data)
        elif ext == ".xlsx":
            from .xlsx import extract_xlsx

            doc = extract_xlsx(data)
        else:
            from .text import extract_text

            doc = extract_text(data)
    except ExtractionError:
        raise
    except Exception as e:
        logger.error("Failed to extract %s document: %s", ext, e)
        raise ExtractionError(f"Could not read {ext} file: {e}") from e

    doc.text = doc.text.strip()
    logger.info("Extracted %d characters from %s document", len(doc.text), ext)
    return doc


def extract_file(path: str | Path) -> ExtractedDocument:
    """Read a file from disk and extract its text."""
    file_path = Path(path)
    try:
        data = file_path.read_bytes()
    except OSError as e:
        raise ExtractionError(f"Could not read {file_path}: {e}") from e
    return extract_document(data, file_path.suffix)


def can_extract(extension: str) -> bool:
    """Check if the given extension is extractable."""
    ext = extension.lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext in SUPPORTED_EXTENSIONS


__all__ = [
    "ExtractedDocument",
    "DOCUMENT_EXTENSIONS",
    "TEXT_EXTENSIONS",
    "SUPPORTED_EXTENSIONS",
    "extract_document",
    "extract_file",
    "can_extract",
]
