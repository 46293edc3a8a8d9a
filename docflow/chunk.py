"""
Chunking module for splitting stage input into model-sized pieces.

Text is split at logical breaks (a blank line followed by an unindented
line, which is usually a heading) and greedily packed into chunks of at
most max_size characters. Only text with no logical breaks at all is cut
at fixed offsets.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# Large enough to amortize per-call overhead, small enough for provider limits
DEFAULT_MAX_CHUNK_CHARS = 15000

CHUNK_SEPARATOR = "\n\n"

# One or more blank lines followed by a line that starts with a non-space.
# The lookahead keeps the heading at the start of the next block.
_LOGICAL_BREAK = re.compile(r"\n\s*\n(?=\S)")


@dataclass
class Chunk:
    """Represents a chunk of text with position information."""

    text: str
    index: int
    start_char: int
    end_char: int

    @property
    def char_count(self) -> int:
        """Number of characters in the chunk."""
        return len(self.text)

    def estimate_tokens(self) -> int:
        """
        Estimate token count using simple heuristic.

        Roughly 4 characters per token for English text.
        """
        return max(1, len(self.text) // 4)


def split_logical_blocks(text: str) -> list[str]:
    """Split text at logical breaks, returning stripped non-empty blocks."""
    blocks = (block.strip() for block in _LOGICAL_BREAK.split(text))
    return [block for block in blocks if block]


def chunk_text(text: str, max_size: int = DEFAULT_MAX_CHUNK_CHARS) -> list[str]:
    """
    Split text into ordered chunks of roughly max_size characters.

    The algorithm:
    1. Empty or whitespace-only text yields no chunks
    2. Split on logical breaks into stripped blocks
    3. A single block that fits is returned verbatim
    4. A single oversized block is cut every max_size characters
    5. Otherwise blocks are packed greedily, joined by a blank line

    A block larger than max_size is never split in step 5, so chunks may
    exceed max_size there. Joining the chunks with a blank line gives the
    stripped blocks joined by a blank line; in step 4, plain concatenation
    gives back the original text.

    Args:
        text: The text to split
        max_size: Target maximum characters per chunk

    Returns:
        List of non-empty chunk strings in original order

    Raises:
        ValueError: If max_size is not positive
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    if not text or not text.strip():
        return []

    blocks = split_logical_blocks(text)

    if len(blocks) <= 1 and len(text) <= max_size:
        return [text]

    if len(blocks) <= 1:
        logger.warning(
            "No logical breaks in %d characters of text, falling back to fixed-size chunking",
            len(text),
        )
        return [text[i : i + max_size] for i in range(0, len(text), max_size)]

    chunks: list[str] = []
    current = ""

    for block in blocks:
        if current and len(current) + len(block) + len(CHUNK_SEPARATOR) > max_size:
            chunks.append(current)
            current = ""

        current = f"{current}{CHUNK_SEPARATOR}{block}" if current else block

    if current:
        chunks.append(current)

    return chunks


def split_into_chunks(text: str, max_size: int = DEFAULT_MAX_CHUNK_CHARS) -> list[Chunk]:
    """
    Split text into Chunk objects with positions in the original text.

    Positions are located by searching for each chunk's first and last
    block in the source, so they are exact for the packing path and the
    fallback path alike.

    Args:
        text: The text content to split
        max_size: Target maximum characters per chunk

    Returns:
        List of Chunk objects with text and position information
    """
    chunks: list[Chunk] = []
    pos = 0

    for index, piece in enumerate(chunk_text(text, max_size)):
        head = piece.split(CHUNK_SEPARATOR, 1)[0]
        tail = piece.rsplit(CHUNK_SEPARATOR, 1)[-1]

        start = text.find(head, pos)
        if start == -1:
            start = pos
        end = text.find(tail, start)
        end = start + len(piece) if end == -1 else end + len(tail)

        chunks.append(Chunk(text=piece, index=index, start_char=start, end_char=end))
        pos = end

    return chunks
