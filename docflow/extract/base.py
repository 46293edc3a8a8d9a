"""Base types for document extraction."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ExtractedDocument:
    """Result of document extraction."""

    text: str
    page_count: int | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def char_count(self) -> int:
        return len(self.text)
