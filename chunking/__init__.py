"""
Chunking Module.

Chunking determines what the retriever can find.
Splits raw document text into bounded, ordered chunks:
- Paragraph breaks are hard boundaries
- Lines, sentences and words are packed greedily up to max_size
- Fixed-stride slicing for unbreakable runs longer than max_size

Usage:
    from chunking import RecursiveChunker, chunk_text

    chunker = RecursiveChunker(max_size=1024, overlap=256)
    chunks = chunker.chunk(text)
"""

from .recursive_chunker import (
    SEPARATORS,
    ChunkingConfig,
    RecursiveChunker,
    chunk_text,
    force_split,
)

__all__ = [
    "RecursiveChunker",
    "ChunkingConfig",
    "chunk_text",
    "force_split",
    "SEPARATORS",
]
