"""
Shared configuration, schemas, errors and resilience helpers.

Usage:
    from shared import get_settings, SearchMode, RetryPolicy

    settings = get_settings()
"""

from .config import Settings, get_settings
from .errors import (
    EmbeddingItemError,
    InputError,
    LexicalQueryError,
    PartialSignalFailure,
    RetrievalEngineError,
    SearchError,
    StorageError,
    TransientBackendError,
)
from .logging_config import configure_logging
from .query_processor import extract_key_terms, sanitize_lexical_query, strip_diacritics
from .resilience import RetryPolicy, resilient_call
from .schemas import IndexStats, IngestResult, RankedCandidate, SearchMode, SearchResult

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "RetryPolicy",
    "resilient_call",
    "extract_key_terms",
    "sanitize_lexical_query",
    "strip_diacritics",
    "SearchMode",
    "SearchResult",
    "RankedCandidate",
    "IngestResult",
    "IndexStats",
    "RetrievalEngineError",
    "InputError",
    "TransientBackendError",
    "EmbeddingItemError",
    "PartialSignalFailure",
    "SearchError",
    "StorageError",
    "LexicalQueryError",
]
