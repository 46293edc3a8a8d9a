"""PPTX document extraction using python-pptx."""

from __future__ import annotations

import io

from .base import ExtractedDocument


def extract_pptx(data: bytes) -> ExtractedDocument:
    """
    Extract text from PPTX bytes, one block per slide.

    Slide titles become "# Title" lines so slides split cleanly into
    chunks later on.

    Args:
        data: Raw PPTX file bytes

    Returns:
        ExtractedDocument with text content
    """
    from pptx import Presentation

    prs = Presentation(io.BytesIO(data))
    text_parts: list[str] = []

    for slide in prs.slides:
        slide_text_parts: list[str] = []
        current_title: str | None = None

        if slide.shapes.title is not None:
            title_text = slide.shapes.title.text.strip()
            if title_text:
                current_title = title_text
                slide_text_parts.append(f"# {title_text}")

        for shape in slide.shapes:
            if shape.has_text_frame:
                for paragraph in shape.text_frame.paragraphs:
                    text = paragraph.text.strip()
                    if text and text != current_title:
                        slide_text_parts.append(text)

            if shape.has_table:
                for row in shape.table.rows:
                    cells = [cell.text.strip() for cell in row.cells]
                    if any(cells):
                        slide_text_parts.append(" | ".join(cells))

        if slide_text_parts:
            text_parts.append("\n".join(slide_text_parts))

    metadata: dict[str, str] = {}
    props = prs.core_properties
    if props.title:
        metadata["title"] = props.title
    if props.author:
        metadata["author"] = props.author

    return ExtractedDocument(
        text="\n\n".join(text_parts),
        page_count=len(prs.slides),
        metadata=metadata,
    )
