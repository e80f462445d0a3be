"""
Dual Index Storage Module.

Persists chunks with a lexical (FTS5) index and a vector index keyed by
the same chunk id. A document's chunks become visible atomically.

Usage:
    from storage import DualIndexStore, ChromaVectorIndex

    store = DualIndexStore("rag.sqlite", vector_index=ChromaVectorIndex(), dimension=1024)
    store.insert_document("notes.txt", chunks, embeddings)
"""

from .dual_index_store import (
    DualIndexStore,
    LexicalMatch,
    StoredChunk,
    VectorMatch,
)
from .vector_index import (
    ChromaVectorIndex,
    InMemoryVectorIndex,
    VectorHit,
    VectorIndex,
    create_vector_index,
)

__all__ = [
    "DualIndexStore",
    "StoredChunk",
    "LexicalMatch",
    "VectorMatch",
    "VectorIndex",
    "VectorHit",
    "ChromaVectorIndex",
    "InMemoryVectorIndex",
    "create_vector_index",
]
