"""
Vector indexes keyed by chunk id.

Supports:
- Chroma HNSW collection (cosine space, persistent or remote)
- In-memory numpy index for tests and small corpora

Vectors are never the system of record: every hit is resolved against the
chunk table by the dual index store.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

import chromadb
import numpy as np
from chromadb.config import Settings as ChromaSettings

logger = logging.getLogger(__name__)


@dataclass
class VectorHit:
    """Nearest-neighbour hit; smaller distance = more similar."""

    chunk_id: int
    distance: float


class VectorIndex(Protocol):
    """Protocol implemented by all vector index backends."""

    def add(self, chunk_ids: List[int], embeddings: np.ndarray, sources: List[str]) -> None:
        """Insert or overwrite vectors for chunk ids."""
        ...

    def delete(self, chunk_ids: List[int]) -> None:
        ...

    def query(self, vector: np.ndarray, k: int) -> List[VectorHit]:
        """Return up to k hits ordered by ascending cosine distance."""
        ...

    def count(self) -> int:
        ...


class ChromaVectorIndex:
    """
    Vector index with Chroma backend.

    Usage:
        index = ChromaVectorIndex(collection_name="chunks_v1", path="./data/chroma")
        index.add([1, 2], vectors, ["a.txt", "a.txt"])
        hits = index.query(query_vector, k=30)
    """

    def __init__(
        self,
        collection_name: str = "chunks_v1",
        path: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        client: Optional["chromadb.ClientAPI"] = None,
    ):
        self.collection_name = collection_name
        self.path = path or "./data/chroma"
        self.host = host
        self.port = port or 8000

        self._client = client
        self._collection = None

    @property
    def client(self) -> "chromadb.ClientAPI":
        """Get or create Chroma client."""
        if self._client is None:
            if self.host:
                self._client = chromadb.HttpClient(host=self.host, port=self.port)
            else:
                self._client = chromadb.PersistentClient(
                    path=self.path, settings=ChromaSettings(anonymized_telemetry=False)
                )
        return self._client

    @property
    def collection(self):
        """Get or create collection. Embeddings are always supplied by the caller."""
        if self._collection is None:
            self._collection = self.client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        return self._collection

    def add(self, chunk_ids: List[int], embeddings: np.ndarray, sources: List[str]) -> None:
        if not chunk_ids:
            return
        # upsert: ids freed by a rolled-back transaction can be reassigned
        self.collection.upsert(
            ids=[str(i) for i in chunk_ids],
            embeddings=np.asarray(embeddings, dtype=np.float32).tolist(),
            metadatas=[{"source": s} for s in sources],
        )
        logger.debug(f"Upserted {len(chunk_ids)} vectors into {self.collection_name}")

    def delete(self, chunk_ids: List[int]) -> None:
        if not chunk_ids:
            return
        self.collection.delete(ids=[str(i) for i in chunk_ids])
        logger.debug(f"Deleted {len(chunk_ids)} vectors from {self.collection_name}")

    def query(self, vector: np.ndarray, k: int) -> List[VectorHit]:
        total = self.count()
        if total == 0 or k <= 0:
            return []

        results = self.collection.query(
            query_embeddings=[np.asarray(vector, dtype=np.float32).tolist()],
            n_results=min(k, total),
            include=["distances"],
        )

        ids = results["ids"][0] if results["ids"] else []
        distances = results["distances"][0] if results.get("distances") else []
        return [VectorHit(chunk_id=int(i), distance=float(d)) for i, d in zip(ids, distances)]

    def count(self) -> int:
        return self.collection.count()


class InMemoryVectorIndex:
    """
    Brute-force cosine index held in process memory.

    Not persistent; use ChromaVectorIndex for anything beyond tests and
    small corpora.
    """

    def __init__(self):
        self._vectors: Dict[int, np.ndarray] = {}
        self._sources: Dict[int, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _unit(vector: np.ndarray) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float32)
        return vector / (np.linalg.norm(vector) + 1e-10)

    def add(self, chunk_ids: List[int], embeddings: np.ndarray, sources: List[str]) -> None:
        with self._lock:
            for chunk_id, vector, source in zip(chunk_ids, embeddings, sources):
                self._vectors[chunk_id] = self._unit(vector)
                self._sources[chunk_id] = source

    def delete(self, chunk_ids: List[int]) -> None:
        with self._lock:
            for chunk_id in chunk_ids:
                self._vectors.pop(chunk_id, None)
                self._sources.pop(chunk_id, None)

    def query(self, vector: np.ndarray, k: int) -> List[VectorHit]:
        with self._lock:
            if not self._vectors or k <= 0:
                return []
            ids = list(self._vectors.keys())
            matrix = np.stack([self._vectors[i] for i in ids])

        distances = 1.0 - matrix @ self._unit(vector)
        order = sorted(range(len(ids)), key=lambda j: (float(distances[j]), ids[j]))[:k]
        return [VectorHit(chunk_id=ids[j], distance=float(distances[j])) for j in order]

    def count(self) -> int:
        with self._lock:
            return len(self._vectors)


def create_vector_index(
    backend: str = "chroma",
    collection_name: str = "chunks_v1",
    path: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> VectorIndex:
    """Build the vector index named by backend ("chroma" or "memory")."""
    if backend == "chroma":
        return ChromaVectorIndex(collection_name=collection_name, path=path, host=host, port=port)
    if backend == "memory":
        return InMemoryVectorIndex()
    raise ValueError(f"Unknown vector backend: {backend}")
