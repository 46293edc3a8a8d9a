"""Plain text and Markdown extraction."""

from __future__ import annotations

from .base import ExtractedDocument


def extract_text(data: bytes) -> ExtractedDocument:
    """Decode UTF-8 bytes, replacing invalid sequences."""
    text = data.decode("utf-8", errors="replace")
    # Drop a byte order mark left by some editors
    return ExtractedDocument(text=text.lstrip("\ufeff"))
