"""
Error taxonomy for ingestion and retrieval.

InputError            -> bad input, surfaced immediately, never retried
TransientBackendError -> embedding backend network/timeout failure after retries
PartialSignalFailure  -> one retrieval signal failed, recovered locally
StorageError          -> transaction failure, nothing partially visible
"""

from typing import Optional


class RetrievalEngineError(Exception):
    """Base class carrying the source document and pipeline stage when known."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message)
        self.source = source
        self.stage = stage


class InputError(RetrievalEngineError):
    """Empty or unusable input text or query."""


class TransientBackendError(RetrievalEngineError):
    """Embedding backend failed after exhausting retries."""


class EmbeddingItemError(TransientBackendError):
    """A single input could not be embedded even after per-item fallback."""

    def __init__(self, index: int, text: str, reason: str):
        preview = text[:60] + ("..." if len(text) > 60 else "")
        super().__init__(
            f"Embedding failed for input #{index} ({preview!r}): {reason}",
            stage="embed",
        )
        self.index = index
        self.text_preview = preview
        self.reason = reason


class PartialSignalFailure(RetrievalEngineError):
    """One retrieval signal (vector or lexical) failed during a search."""

    def __init__(self, signal: str, cause: Exception):
        super().__init__(f"{signal} signal failed: {cause}", stage="search")
        self.signal = signal
        self.cause = cause


class SearchError(RetrievalEngineError):
    """Every retrieval signal failed."""


class StorageError(RetrievalEngineError):
    """Dual index store transaction or query failure."""


class LexicalQueryError(StorageError):
    """The full-text index rejected the query expression."""
