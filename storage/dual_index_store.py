"""
Dual index store: chunk table, FTS5 lexical index and vector index.

The SQLite chunk table is the system of record. A document's chunk rows,
their FTS rows and their vectors are written under one transaction; if any
part fails, the transaction is rolled back and vectors already written are
deleted again. Vector hits are resolved through the chunk table, so a vector
without a committed chunk row is never returned.

Single writer, many readers: the write connection is guarded by a lock held
for the whole write transaction. File databases run in WAL mode and serve
reads from a separate query-only connection, so a search never waits on an
ingest and only ever sees committed rows. Chunk ids are AUTOINCREMENT and are
never handed out twice, so a rolled-back replace cannot touch the vectors of
the version it was replacing.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

from shared.errors import LexicalQueryError, StorageError
from shared.schemas import IndexStats

from .vector_index import InMemoryVectorIndex, VectorIndex

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content TEXT NOT NULL,
    source TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source);
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    content,
    chunk_id UNINDEXED,
    tokenize = 'porter unicode61'
);
"""


@dataclass(frozen=True)
class StoredChunk:
    """A persisted chunk. Never mutated after insert."""

    id: int
    content: str
    source: str
    created_at: str


@dataclass
class LexicalMatch:
    chunk: StoredChunk
    score: float  # positive, larger = more relevant


@dataclass
class VectorMatch:
    chunk: StoredChunk
    distance: float  # cosine distance, smaller = more similar


class DualIndexStore:
    """
    Chunk store with paired lexical and vector indexes.

    Usage:
        store = DualIndexStore("rag.sqlite", vector_index=ChromaVectorIndex(), dimension=1024)
        ids = store.insert_document("report.txt", chunks, embeddings)
        hits = store.lexical_search('"revenue"* OR "growth"*', limit=30)
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        vector_index: Optional[VectorIndex] = None,
        dimension: Optional[int] = None,
    ):
        self.db_path = db_path
        self.vector_index = vector_index if vector_index is not None else InMemoryVectorIndex()
        self.dimension = dimension
        self._lock = threading.RLock()

        # Autocommit mode; transactions are opened explicitly
        self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
        try:
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialise schema at {db_path}: {e}") from e

        if db_path == ":memory:":
            # Each :memory: connection is its own database
            self._reader = self._conn
            self._read_lock = self._lock
        else:
            self._reader = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
            self._reader.execute("PRAGMA query_only = ON")
            self._read_lock = threading.Lock()

    # Writes --------------------------------------------------------------

    def _check_dimension(self, vectors: np.ndarray, source: Optional[str] = None) -> None:
        if vectors.ndim != 2:
            raise StorageError(
                f"Embeddings must be 2-D, got shape {vectors.shape}", source=source, stage="store"
            )
        if self.dimension is not None and vectors.shape[1] != self.dimension:
            raise StorageError(
                f"Embedding dimension {vectors.shape[1]} does not match index dimension {self.dimension}",
                source=source,
                stage="store",
            )

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error(f"Rollback failed: {e}")

    def _delete_rows(self, source: str) -> List[int]:
        """Delete a source's chunk and FTS rows inside the open transaction."""
        ids = [row[0] for row in self._conn.execute("SELECT id FROM chunks WHERE source = ?", (source,))]
        if ids:
            self._conn.execute(
                "DELETE FROM chunks_fts WHERE chunk_id IN (SELECT id FROM chunks WHERE source = ?)",
                (source,),
            )
            self._conn.execute("DELETE FROM chunks WHERE source = ?", (source,))
        return ids

    def _drop_vectors(self, chunk_ids: List[int], reason: str) -> None:
        """Remove vectors whose chunk rows are gone. Orphans are never returned."""
        if not chunk_ids:
            return
        try:
            self.vector_index.delete(chunk_ids)
        except Exception as e:
            logger.error(f"Failed to delete {len(chunk_ids)} vectors ({reason}): {e}")

    def insert_document(
        self,
        source: str,
        contents: Sequence[str],
        embeddings,
        replace: bool = False,
    ) -> List[int]:
        """
        Store a document's full chunk set atomically.

        Args:
            source: Source filename shared by all chunks
            contents: Chunk texts in document order
            embeddings: One vector per chunk, shape (len(contents), dimension)
            replace: Delete the source's existing chunks in the same transaction

        Returns:
            Assigned chunk ids, in document order

        Raises:
            StorageError: nothing from this call is visible afterwards
        """
        vectors = np.asarray(embeddings, dtype=np.float32)
        if len(contents) != len(vectors):
            raise StorageError(
                f"Got {len(contents)} chunks but {len(vectors)} embeddings",
                source=source,
                stage="store",
            )
        if len(contents):
            self._check_dimension(vectors, source)

        created_at = datetime.now(timezone.utc).isoformat()
        chunk_ids: List[int] = []
        replaced_ids: List[int] = []
        vectors_written = False

        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                if replace:
                    replaced_ids = self._delete_rows(source)

                for content in contents:
                    cursor = self._conn.execute(
                        "INSERT INTO chunks (content, source, created_at) VALUES (?, ?, ?)",
                        (content, source, created_at),
                    )
                    chunk_id = cursor.lastrowid
                    self._conn.execute(
                        "INSERT INTO chunks_fts (content, chunk_id) VALUES (?, ?)",
                        (content, chunk_id),
                    )
                    chunk_ids.append(chunk_id)

                if chunk_ids:
                    # A failing add may have written some vectors
                    vectors_written = True
                    self.vector_index.add(chunk_ids, vectors, [source] * len(chunk_ids))

                self._conn.execute("COMMIT")
            except Exception as e:
                self._rollback()
                if vectors_written:
                    self._drop_vectors(chunk_ids, "rolled back")
                logger.error(f"Failed to store {source}: {e}")
                raise StorageError(f"Failed to store {source}: {e}", source=source, stage="store") from e

        self._drop_vectors(replaced_ids, f"replaced {source}")

        logger.info(f"Stored {len(chunk_ids)} chunks for {source}")
        return chunk_ids

    def delete_document(self, source: str) -> int:
        """Delete every chunk of a source from all three indexes. Returns chunks removed."""
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                removed = self._delete_rows(source)
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Failed to delete {source}: {e}", source=source, stage="delete") from e

        self._drop_vectors(removed, f"deleted {source}")
        logger.info(f"Deleted {len(removed)} chunks for {source}")
        return len(removed)

    # Reads ---------------------------------------------------------------

    @contextmanager
    def _reading(self):
        with self._read_lock:
            yield self._reader

    def get_chunks(self, chunk_ids: Sequence[int]) -> Dict[int, StoredChunk]:
        """Fetch committed chunks by id; unknown ids are absent from the result."""
        if not chunk_ids:
            return {}
        placeholders = ",".join("?" for _ in chunk_ids)
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT id, content, source, created_at FROM chunks WHERE id IN ({placeholders})",
                list(chunk_ids),
            ).fetchall()
        return {row[0]: StoredChunk(*row) for row in rows}

    def lexical_search(self, expression: str, limit: int = 30) -> List[LexicalMatch]:
        """
        Full-text search ranked best-first by FTS5 bm25.

        Raises:
            LexicalQueryError: the expression is not valid FTS5 syntax
        """
        with self._reading() as conn:
            try:
                rows = conn.execute(
                    """
                    SELECT c.id, c.content, c.source, c.created_at, bm25(chunks_fts) AS raw_score
                    FROM chunks_fts
                    JOIN chunks c ON c.id = chunks_fts.chunk_id
                    WHERE chunks_fts MATCH ?
                    ORDER BY raw_score
                    LIMIT ?
                    """,
                    (expression, limit),
                ).fetchall()
            except sqlite3.OperationalError as e:
                raise LexicalQueryError(f"Invalid lexical query {expression!r}: {e}", stage="search") from e

        # bm25() is negative, more negative = better
        return [LexicalMatch(chunk=StoredChunk(*row[:4]), score=-row[4]) for row in rows]

    def vector_search(self, vector, limit: int = 30) -> List[VectorMatch]:
        """k-nearest chunks by cosine distance, ascending."""
        query = np.asarray(vector, dtype=np.float32)
        if self.dimension is not None and query.shape != (self.dimension,):
            raise StorageError(
                f"Query vector shape {query.shape} does not match index dimension {self.dimension}",
                stage="search",
            )

        try:
            hits = self.vector_index.query(query, limit)
        except Exception as e:
            raise StorageError(f"Vector index query failed: {e}", stage="search") from e
        chunks = self.get_chunks([h.chunk_id for h in hits])
        return [VectorMatch(chunk=chunks[h.chunk_id], distance=h.distance) for h in hits if h.chunk_id in chunks]

    def has_document(self, source: str) -> bool:
        with self._reading() as conn:
            row = conn.execute("SELECT COUNT(*) FROM chunks WHERE source = ?", (source,)).fetchone()
        return row[0] > 0

    def list_documents(self) -> List[str]:
        with self._reading() as conn:
            rows = conn.execute("SELECT DISTINCT source FROM chunks ORDER BY source").fetchall()
        return [row[0] for row in rows]

    def stats(self) -> IndexStats:
        with self._reading() as conn:
            doc_count, chunk_count = conn.execute(
                "SELECT COUNT(DISTINCT source), COUNT(*) FROM chunks"
            ).fetchone()
        return IndexStats(document_count=doc_count, chunk_count=chunk_count)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        if self._reader is not self._conn:
            with self._read_lock:
                self._reader.close()
