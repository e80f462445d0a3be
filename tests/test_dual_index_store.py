"""Tests for the dual index store (chunk table + FTS5 + vector index)."""

import threading
import time
import uuid

import chromadb
import numpy as np
import pytest

from conftest import DIMENSION, hashed_vector, seed
from shared.errors import LexicalQueryError, StorageError
from storage.dual_index_store import DualIndexStore
from storage.vector_index import ChromaVectorIndex, InMemoryVectorIndex, create_vector_index


class FailingIndex(InMemoryVectorIndex):
    """Writes the vectors, then fails, while armed."""

    def __init__(self, armed=True):
        super().__init__()
        self.armed = armed

    def add(self, chunk_ids, embeddings, sources):
        super().add(chunk_ids, embeddings, sources)
        if self.armed:
            raise RuntimeError("vector write failed")


class SlowIndex(InMemoryVectorIndex):
    """Holds the write transaction open while vectors are added."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay
        self.writing = threading.Event()

    def add(self, chunk_ids, embeddings, sources):
        self.writing.set()
        time.sleep(self.delay)
        super().add(chunk_ids, embeddings, sources)


def vectors_for(chunks):
    return [hashed_vector(c) for c in chunks]


def test_insert_assigns_ids_in_document_order(store):
    chunks = ["first chunk", "second chunk", "third chunk"]

    ids = store.insert_document("doc.txt", chunks, vectors_for(chunks))

    assert ids == sorted(ids)
    stored = store.get_chunks(ids)
    assert [stored[i].content for i in ids] == chunks
    assert all(stored[i].source == "doc.txt" for i in ids)


def test_stats_and_document_listing(store):
    seed(store, {"b.txt": ["beta one", "beta two"], "a.txt": ["alpha"]})

    stats = store.stats()

    assert stats.document_count == 2
    assert stats.chunk_count == 3
    assert store.list_documents() == ["a.txt", "b.txt"]
    assert store.has_document("a.txt")
    assert not store.has_document("c.txt")


def test_lexical_search_ranks_matches(store):
    seed(
        store,
        {
            "finance.txt": ["Quarterly revenue grew by ten percent", "Revenue revenue revenue forecasts"],
            "other.txt": ["Nothing relevant here"],
        },
    )

    matches = store.lexical_search('"revenue"*', limit=10)

    assert len(matches) == 2
    assert all(m.score > 0 for m in matches)
    assert all("revenue" in m.chunk.content.lower() for m in matches)
    assert matches[0].score >= matches[1].score


def test_lexical_search_uses_stemming(store):
    seed(store, {"doc.txt": ["The engines were running smoothly"]})

    assert len(store.lexical_search('"run"', limit=10)) == 1


def test_invalid_lexical_expression_raises(store):
    seed(store, {"doc.txt": ["some content"]})

    with pytest.raises(LexicalQueryError):
        store.lexical_search('"unterminated', limit=10)


def test_vector_search_returns_nearest_first(store):
    chunks = ["apples and oranges", "database indexing strategies", "weather report for today"]
    seed(store, {"mixed.txt": chunks})

    matches = store.vector_search(hashed_vector("database indexing strategies"), limit=3)

    assert matches[0].chunk.content == "database indexing strategies"
    assert matches[0].distance == pytest.approx(0.0, abs=1e-5)
    assert [m.distance for m in matches] == sorted(m.distance for m in matches)


def test_vector_hits_without_chunk_rows_are_ignored(store):
    seed(store, {"doc.txt": ["only chunk"]})
    store.vector_index.add([999], np.asarray([hashed_vector("orphan")]), ["ghost.txt"])

    matches = store.vector_search(hashed_vector("orphan"), limit=10)

    assert [m.chunk.content for m in matches] == ["only chunk"]


def test_replace_swaps_chunk_set(store):
    seed(store, {"doc.txt": ["old alpha", "old beta"]})

    store.insert_document("doc.txt", ["new gamma"], vectors_for(["new gamma"]), replace=True)

    assert store.stats().chunk_count == 1
    assert store.lexical_search('"alpha"', limit=10) == []
    assert len(store.lexical_search('"gamma"', limit=10)) == 1
    assert store.vector_index.count() == 1


def test_delete_document_removes_all_indexes(store):
    seed(store, {"gone.txt": ["to be removed", "also removed"], "kept.txt": ["stays"]})

    removed = store.delete_document("gone.txt")

    assert removed == 2
    assert store.list_documents() == ["kept.txt"]
    assert store.lexical_search('"removed"', limit=10) == []
    assert store.vector_index.count() == 1


def test_failed_vector_write_leaves_nothing_visible():
    store = DualIndexStore(":memory:", vector_index=FailingIndex(), dimension=DIMENSION)
    chunks = ["atomic one", "atomic two"]

    with pytest.raises(StorageError) as exc_info:
        store.insert_document("doc.txt", chunks, vectors_for(chunks))

    assert exc_info.value.stage == "store"
    assert exc_info.value.source == "doc.txt"
    assert store.stats().chunk_count == 0
    assert store.lexical_search('"atomic"', limit=10) == []
    assert store.vector_index.count() == 0
    store.close()


def test_replace_with_wrong_dimension_keeps_previous_version():
    index = InMemoryVectorIndex()
    store = DualIndexStore(":memory:", vector_index=index, dimension=DIMENSION)
    seed(store, {"doc.txt": ["previous version"]})

    with pytest.raises(StorageError):
        store.insert_document("doc.txt", ["broken"], [[1.0, 2.0]], replace=True)

    assert [m.chunk.content for m in store.lexical_search('"previous"', limit=10)] == ["previous version"]
    store.close()


def test_failed_replace_after_vector_write_keeps_previous_version():
    index = FailingIndex(armed=False)
    store = DualIndexStore(":memory:", vector_index=index, dimension=DIMENSION)
    seed(store, {"doc.txt": ["previous alpha", "previous beta"]})
    index.armed = True

    with pytest.raises(StorageError):
        store.insert_document("doc.txt", ["new text"], vectors_for(["new text"]), replace=True)

    lexical = store.lexical_search('"previous"', limit=10)
    assert sorted(m.chunk.content for m in lexical) == ["previous alpha", "previous beta"]
    assert store.vector_search(hashed_vector("previous alpha"), limit=5)[0].chunk.content == "previous alpha"
    assert len(store.vector_search(hashed_vector("previous"), limit=5)) == 2
    assert index.count() == 2
    store.close()


def test_ids_are_not_reused_after_replace_or_delete(store):
    old_ids = store.insert_document("doc.txt", ["one", "two"], vectors_for(["one", "two"]))

    new_ids = store.insert_document("doc.txt", ["three"], vectors_for(["three"]), replace=True)
    store.delete_document("doc.txt")
    later_ids = store.insert_document("other.txt", ["four"], vectors_for(["four"]))

    assert min(new_ids) > max(old_ids)
    assert min(later_ids) > max(new_ids)
    assert store.vector_index.count() == 1


def test_reads_do_not_wait_for_writer(tmp_path):
    index = SlowIndex(delay=0.5)
    store = DualIndexStore(str(tmp_path / "rag.sqlite"), vector_index=index, dimension=DIMENSION)
    chunks = ["pending one", "pending two"]
    writer = threading.Thread(target=store.insert_document, args=("doc.txt", chunks, vectors_for(chunks)))

    writer.start()
    assert index.writing.wait(timeout=5)
    started = time.monotonic()
    stats = store.stats()
    pending = store.lexical_search('"pending"', limit=10)
    elapsed = time.monotonic() - started
    writer.join()

    assert elapsed < 0.2
    assert stats.chunk_count == 0
    assert pending == []
    assert store.stats().chunk_count == 2
    assert len(store.lexical_search('"pending"', limit=10)) == 2
    store.close()


def test_mismatched_embeddings_are_rejected(store):
    with pytest.raises(StorageError):
        store.insert_document("doc.txt", ["a", "b"], vectors_for(["a"]))

    with pytest.raises(StorageError):
        store.vector_search([0.1, 0.2], limit=5)


def test_vector_index_factory():
    assert isinstance(create_vector_index("memory"), InMemoryVectorIndex)
    assert isinstance(create_vector_index("chroma", path="/tmp/unused"), ChromaVectorIndex)
    with pytest.raises(ValueError):
        create_vector_index("faiss")


def test_chroma_index_round_trip():
    index = ChromaVectorIndex(
        collection_name=f"test_{uuid.uuid4().hex}",
        client=chromadb.EphemeralClient(),
    )
    store = DualIndexStore(":memory:", vector_index=index, dimension=DIMENSION)
    seed(store, {"doc.txt": ["vector databases", "cooking recipes"]})

    assert index.query(np.asarray(hashed_vector("anything")), k=0) == []
    matches = store.vector_search(hashed_vector("vector databases"), limit=5)
    assert matches[0].chunk.content == "vector databases"
    assert len(matches) == 2

    store.delete_document("doc.txt")
    assert index.count() == 0
    store.close()
