"""XLSX workbook extraction using openpyxl."""

from __future__ import annotations

import io

from .base import ExtractedDocument


def extract_xlsx(data: bytes) -> ExtractedDocument:
    """
    Extract cell values from every sheet of an XLSX workbook.

    Each sheet becomes one block: a "# Sheet" heading followed by one line
    per non-empty row, cells joined with a space.

    Args:
        data: Raw XLSX file bytes

    Returns:
        ExtractedDocument with text content, page_count set to the sheet count
    """
    import openpyxl

    wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        text_parts: list[str] = []
        for ws in wb.worksheets:
            rows: list[str] = []
            for row in ws.iter_rows(values_only=True):
                cells = [str(value) for value in row if value is not None]
                if cells:
                    rows.append(" ".join(cells))
            if rows:
                text_parts.append(f"# {ws.title}\n" + "\n".join(rows))

        metadata: dict[str, str] = {}
        if wb.properties.title:
            metadata["title"] = wb.properties.title
        if wb.properties.creator:
            metadata["author"] = wb.properties.creator

        return ExtractedDocument(
            text="\n\n".join(text_parts),
            page_count=len(wb.worksheets),
            metadata=metadata,
        )
    finally:
        wb.close()
