"""
Pydantic schemas for the retrieval and ingestion APIs, plus the transient
candidate record passed between search, fusion and reranking.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


@dataclass
class RankedCandidate:
    """
    Query-scoped candidate, never persisted.

    signal_score is normalized to [0, 1]; the reranker weights depend on it.
    """

    chunk_id: int
    content: str
    source_filename: str
    signal_score: float


class SearchMode(str, Enum):
    VECTOR = "vector"
    LEXICAL = "lexical"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value) -> "SearchMode":
        """Accept an enum member or its string value ("fts" is an alias for lexical)."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "fts":
            return cls.LEXICAL
        return cls(normalized)


class SearchResult(BaseModel):
    """A single search result handed to answer synthesis."""

    content: str
    source_filename: str
    relevance_score: float


class IngestResult(BaseModel):
    """Outcome of ingesting one document."""

    source_filename: str
    chunk_count: int = 0
    success: bool
    skipped: bool = False
    duration_ms: float = 0.0
    error: Optional[str] = None
    stage: Optional[str] = Field(
        default=None, description="Pipeline stage that failed, if any"
    )


class IndexStats(BaseModel):
    """Document and chunk counts for the dual index."""

    document_count: int
    chunk_count: int
