"""DOCX document extraction using python-docx."""

from __future__ import annotations

import io

from .base import ExtractedDocument


def extract_docx(data: bytes) -> ExtractedDocument:
    """
    Extract text from DOCX bytes.

    Paragraphs come first, then tables rendered one row per line with
    " | " between cells.

    Args:
        data: Raw DOCX file bytes

    Returns:
        ExtractedDocument with text content
    """
    from docx import Document

    doc = Document(io.BytesIO(data))
    text_parts: list[str] = []

    for para in doc.paragraphs:
        text = para.text.strip()
        if text:
            text_parts.append(text)

    for table in doc.tables:
        table_rows: list[str] = []
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                table_rows.append(" | ".join(cells))
        if table_rows:
            text_parts.append("\n".join(table_rows))

    metadata: dict[str, str] = {}
    props = doc.core_properties
    if props.title:
        metadata["title"] = props.title
    if props.author:
        metadata["author"] = props.author

    return ExtractedDocument(
        text="\n\n".join(text_parts),
        page_count=None,  # DOCX doesn't have real pages
        metadata=metadata,
    )
