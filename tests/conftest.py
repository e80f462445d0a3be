"""Shared fixtures: a deterministic fake embedding backend and wired components."""

import re
import zlib
from typing import Dict, List, Optional, Set

import pytest

from chunking.recursive_chunker import RecursiveChunker
from embeddings.embedding_client import EmbeddingClient
from ingestion.ingest_pipeline import IngestionPipeline
from reranking.term_reranker import TermOverlapReranker
from retrieval.search_engine import SearchEngine
from shared.resilience import RetryPolicy
from storage.dual_index_store import DualIndexStore
from storage.vector_index import InMemoryVectorIndex

DIMENSION = 8

# No waiting between attempts in tests
FAST_POLICY = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0, timeout=5.0)


def hashed_vector(text: str, dimension: int = DIMENSION) -> List[float]:
    """Bag-of-words vector: each lowercased word bumps one hashed slot."""
    vector = [0.0] * dimension
    vector[0] = 0.01
    for word in re.findall(r"\w+", text.lower()):
        vector[zlib.crc32(word.encode("utf-8")) % dimension] += 1.0
    return vector


class FakeBackend:
    """
    In-process embedding backend.

    Failure modes:
        fail_texts: any request containing one of these raises ConnectionError
        short_batches: multi-text requests return one vector too few
        fail_always: every request raises ConnectionError
    """

    model_name = "fake-embed"

    def __init__(
        self,
        dimension: int = DIMENSION,
        fail_texts: Optional[Set[str]] = None,
        short_batches: bool = False,
        fail_always: bool = False,
    ):
        self.dimension = dimension
        self.fail_texts = fail_texts or set()
        self.short_batches = short_batches
        self.fail_always = fail_always
        self.calls: List[List[str]] = []

    async def embed_raw(self, texts: List[str]) -> Dict:
        self.calls.append(list(texts))
        if self.fail_always or self.fail_texts.intersection(texts):
            raise ConnectionError("backend unavailable")

        vectors = [hashed_vector(t, self.dimension) for t in texts]
        if self.short_batches and len(texts) > 1:
            vectors = vectors[:-1]
        return {"embeddings": vectors}


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def embedder(backend):
    return EmbeddingClient(backend, dimension=DIMENSION, batch_size=2, concurrency=2, policy=FAST_POLICY)


@pytest.fixture
def store():
    store = DualIndexStore(":memory:", vector_index=InMemoryVectorIndex(), dimension=DIMENSION)
    yield store
    store.close()


@pytest.fixture
def chunker():
    return RecursiveChunker(max_size=200, overlap=20)


@pytest.fixture
def pipeline(chunker, embedder, store):
    return IngestionPipeline(chunker, embedder, store)


@pytest.fixture
def engine(store, embedder):
    return SearchEngine(store, embedder, reranker=TermOverlapReranker())


def seed(store: DualIndexStore, documents: Dict[str, List[str]]) -> None:
    """Insert documents directly, embedding with the fake backend's hashing."""
    for source, chunks in documents.items():
        store.insert_document(source, chunks, [hashed_vector(c) for c in chunks])
