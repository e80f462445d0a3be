"""
Recursive separator chunking with a fixed-stride fallback.

Chunking determines what the retriever can find.

Strategy:
- Paragraph breaks are hard boundaries
- Inside a paragraph, greedily pack lines, then sentences, then words
  into chunks of at most max_size characters
- Chunks are contiguous slices of the source, so tabs, runs of spaces
  and line breaks inside a chunk are kept as written
- A single word longer than max_size is sliced with stride
  max_size - overlap, so pathological input still terminates
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class Separator:
    name: str
    pattern: str


# Coarse to fine, below the paragraph level
SEPARATORS: List[Separator] = [
    Separator("line", r"\n"),
    Separator("sentence", r"(?<=[.!?])\s+"),
    Separator("word", r"\s+"),
]


@dataclass
class ChunkingConfig:
    """Configuration for chunking (sizes in characters)."""

    max_size: int = 1024
    overlap: int = 256

    def validate(self) -> None:
        if self.max_size <= 0:
            raise ValueError(f"max_size must be positive, got {self.max_size}")
        if not 0 <= self.overlap < self.max_size:
            raise ValueError(
                f"overlap must be in [0, max_size), got {self.overlap} for max_size {self.max_size}"
            )


def force_split(text: str, max_size: int, overlap: int) -> List[str]:
    """
    Slice text into windows of max_size advancing by max_size - overlap.

    Stops once a window reaches the end of the text, so no trailing window
    is fully contained in its predecessor.
    """
    step = max_size - overlap
    chunks = []
    start = 0
    while True:
        piece = text[start : start + max_size].strip()
        if piece:
            chunks.append(piece)
        if start + max_size >= len(text):
            break
        start += step
    return chunks


def _segments(text: str, pattern: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of the pieces between separator matches."""
    spans = []
    start = 0
    for match in re.finditer(pattern, text):
        spans.append((start, match.start()))
        start = match.end()
    spans.append((start, len(text)))
    return spans


def _split_recursive(
    text: str,
    separators: List[Separator],
    max_size: int,
    overlap: int,
) -> List[str]:
    if len(text) <= max_size:
        stripped = text.strip()
        return [stripped] if stripped else []

    if not separators:
        return force_split(text, max_size, overlap)

    sep, rest = separators[0], separators[1:]
    chunks: List[str] = []
    current: Optional[Tuple[int, int]] = None

    for start, end in _segments(text, sep.pattern):
        if current is not None and end - current[0] <= max_size:
            current = (current[0], end)
            continue

        if current is not None:
            piece = text[current[0] : current[1]].strip()
            if piece:
                chunks.append(piece)

        if end - start > max_size:
            chunks.extend(_split_recursive(text[start:end], rest, max_size, overlap))
            current = None
        else:
            current = (start, end)

    if current is not None:
        piece = text[current[0] : current[1]].strip()
        if piece:
            chunks.append(piece)

    return chunks


def chunk_text(text: str, max_size: int = 1024, overlap: int = 256) -> List[str]:
    """
    Split text into ordered, trimmed, non-empty chunks of at most max_size.

    Pure function of its arguments.

    Example:
        >>> chunk_text("a.\\n\\nb.", max_size=100, overlap=10)
        ['a.', 'b.']
    """
    ChunkingConfig(max_size=max_size, overlap=overlap).validate()

    chunks: List[str] = []
    for paragraph in PARAGRAPH_BREAK.split(text):
        chunks.extend(_split_recursive(paragraph, SEPARATORS, max_size, overlap))
    return chunks


class RecursiveChunker:
    """
    Chunker bound to one configuration.

    Usage:
        chunker = RecursiveChunker(max_size=1024, overlap=256)
        chunks = chunker.chunk(document_text)
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        overlap: Optional[int] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        base = config or ChunkingConfig()
        self.config = ChunkingConfig(
            max_size=max_size if max_size is not None else base.max_size,
            overlap=overlap if overlap is not None else base.overlap,
        )
        self.config.validate()

    def chunk(self, text: str) -> List[str]:
        chunks = chunk_text(text, self.config.max_size, self.config.overlap)
        logger.debug(
            f"Chunked {len(text)} chars into {len(chunks)} chunks "
            f"(max_size={self.config.max_size}, overlap={self.config.overlap})"
        )
        return chunks
