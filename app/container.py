"""
Composition root: builds every component once from settings.

Provider clients are constructed lazily on first access and passed
explicitly to the engine and pipeline; nothing in the query or ingestion
path reaches for a global.

Usage:
    container = build_container()
    await container.pipeline.ingest(text, "notes.txt")
    results = await container.engine.search("payment terms", "hybrid")
    await container.aclose()
"""

import logging
from typing import Optional

from chunking.recursive_chunker import ChunkingConfig, RecursiveChunker
from embeddings.backends import EmbeddingBackend, create_backend
from embeddings.embedding_client import EmbeddingClient
from ingestion.ingest_pipeline import IngestionPipeline
from reranking.term_reranker import TermOverlapReranker
from retrieval.search_engine import SearchEngine
from shared.config import Settings, get_settings
from shared.logging_config import configure_logging
from shared.resilience import RetryPolicy
from storage.dual_index_store import DualIndexStore
from storage.vector_index import VectorIndex, create_vector_index

logger = logging.getLogger(__name__)


class Container:
    """Holds the configured runtime components; each is built on first access."""

    def __init__(
        self,
        settings: Settings,
        backend: Optional[EmbeddingBackend] = None,
        vector_index: Optional[VectorIndex] = None,
    ):
        """
        Args:
            settings: Loaded settings
            backend: Embedding backend override (built from settings if None)
            vector_index: Vector index override (built from settings if None)
        """
        self.settings = settings
        self._backend = backend
        self._vector_index = vector_index
        self._embedder = None
        self._store = None
        self._engine = None
        self._pipeline = None

    @property
    def backend(self) -> EmbeddingBackend:
        if self._backend is None:
            self._backend = create_backend(self.settings.embedding)
            logger.info(f"Embedding backend: {self.settings.embedding.provider} ({self._backend.model_name})")
        return self._backend

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            cfg = self.settings.embedding
            self._embedder = EmbeddingClient(
                self.backend,
                dimension=cfg.dimension,
                batch_size=cfg.batch_size,
                concurrency=cfg.concurrency,
                policy=RetryPolicy(
                    max_attempts=cfg.max_attempts,
                    base_delay=cfg.backoff_base,
                    timeout=cfg.timeout,
                ),
            )
        return self._embedder

    @property
    def vector_index(self) -> VectorIndex:
        if self._vector_index is None:
            storage = self.settings.storage
            self._vector_index = create_vector_index(
                backend=storage.vector_backend,
                collection_name=self.settings.get_index_name(),
                path=storage.chroma_path,
                host=storage.chroma_host,
                port=storage.chroma_port,
            )
        return self._vector_index

    @property
    def store(self) -> DualIndexStore:
        if self._store is None:
            self._store = DualIndexStore(
                self.settings.storage.db_path,
                vector_index=self.vector_index,
                dimension=self.settings.embedding.dimension,
            )
            logger.info(f"Opened dual index at {self.settings.storage.db_path}")
        return self._store

    @property
    def chunker(self) -> RecursiveChunker:
        cfg = self.settings.chunking
        return RecursiveChunker(config=ChunkingConfig(max_size=cfg.size, overlap=cfg.overlap))

    @property
    def engine(self) -> SearchEngine:
        if self._engine is None:
            self._engine = SearchEngine(
                self.store,
                self.embedder,
                reranker=TermOverlapReranker(self.settings.rerank),
                config=self.settings.retrieval,
            )
        return self._engine

    @property
    def pipeline(self) -> IngestionPipeline:
        if self._pipeline is None:
            self._pipeline = IngestionPipeline(
                self.chunker,
                self.embedder,
                self.store,
                embed_concurrency=self.settings.embedding.ingest_concurrency,
            )
        return self._pipeline

    async def aclose(self) -> None:
        """Release the backend's HTTP client and the database connection."""
        if self._backend is not None and hasattr(self._backend, "aclose"):
            await self._backend.aclose()
        if self._store is not None:
            self._store.close()


def build_container(
    settings: Optional[Settings] = None,
    backend: Optional[EmbeddingBackend] = None,
    vector_index: Optional[VectorIndex] = None,
) -> Container:
    """Build a container from settings (cached environment settings by default)."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)
    return Container(settings, backend=backend, vector_index=vector_index)
