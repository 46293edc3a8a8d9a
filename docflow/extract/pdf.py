"""PDF document extraction using PyMuPDF."""

from __future__ import annotations

from .base import ExtractedDocument


def extract_pdf(data: bytes) -> ExtractedDocument:
    """
    Extract text from PDF bytes.

    Pages are separated by a blank line so that each page can start a
    new logical block for the chunker.

    Args:
        data: Raw PDF file bytes

    Returns:
        ExtractedDocument with text content
    """
    import fitz  # pymupdf

    doc = fitz.open(stream=data, filetype="pdf")
    try:
        text_parts: list[str] = []
        for page in doc:
            page_text = page.get_text()
            if page_text.strip():
                text_parts.append(page_text.strip())

        metadata: dict[str, str] = {}
        doc_metadata = doc.metadata or {}
        for key in ["title", "author", "subject", "creator"]:
            if doc_metadata.get(key):
                metadata[key] = doc_metadata[key]

        return ExtractedDocument(
            text="\n\n".join(text_parts),
            page_count=len(doc),
            metadata=metadata,
        )
    finally:
        doc.close()
