"""
Production ingestion pipeline.

Orchestrates the full document ingestion workflow:
Raw text -> Validate -> Normalize -> Chunking -> Embedding -> Dual index store

A document is stored completely or not at all. Failures are reported in the
returned IngestResult rather than raised, so one bad document never stops a
batch.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from chunking.recursive_chunker import RecursiveChunker
from embeddings.embedding_client import EmbeddingClient
from shared.errors import InputError, RetrievalEngineError
from shared.schemas import IngestResult
from storage.dual_index_store import DualIndexStore

from .normalize import normalize_text

logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    """Statistics from an ingestion run."""

    total_docs: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    total_chunks: int = 0


class IngestionPipeline:
    """
    Ingests raw document text into the dual index.

    Usage:
        pipeline = IngestionPipeline(chunker, embedder, store)

        # Single document
        result = await pipeline.ingest(text, "contract.txt")

        # Many documents, already-indexed filenames are skipped
        results = await pipeline.ingest_many([("a.txt", text_a), ("b.txt", text_b)])

        stats = pipeline.get_stats()
    """

    def __init__(
        self,
        chunker: RecursiveChunker,
        embedder: EmbeddingClient,
        store: DualIndexStore,
        embed_concurrency: Optional[int] = None,
    ):
        """
        Args:
            chunker: Splits normalized text into chunks
            embedder: Embeds chunk texts
            store: Destination dual index
            embed_concurrency: Batches in flight while embedding (embedder default if None)
        """
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.embed_concurrency = embed_concurrency
        self.stats = IngestionStats()

    def _prepare(self, raw_text: str, source_filename: str) -> List[str]:
        """Validate, normalize and chunk. Raises InputError for unusable input."""
        if not source_filename or not source_filename.strip():
            raise InputError("source_filename must not be empty", stage="validate")

        text = normalize_text(raw_text or "")
        if not text:
            raise InputError("Document contains no text", source=source_filename, stage="validate")

        chunks = self.chunker.chunk(text)
        if not chunks:
            raise InputError("Document produced no chunks", source=source_filename, stage="chunk")
        return chunks

    async def ingest(
        self,
        raw_text: str,
        source_filename: str,
        skip_duplicate: bool = False,
        replace: bool = False,
    ) -> IngestResult:
        """
        Ingest one document.

        Args:
            raw_text: Extracted document text
            source_filename: Name the chunks are stored under
            skip_duplicate: Skip if the filename already has chunks
            replace: Replace the filename's existing chunks atomically

        Returns:
            IngestResult; success=False carries the error and failing stage
        """
        self.stats.total_docs += 1
        start_time = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        if skip_duplicate and not replace:
            exists = await asyncio.to_thread(self.store.has_document, source_filename)
            if exists:
                self.stats.skipped += 1
                logger.info(f"Already indexed, skipping: {source_filename}")
                return IngestResult(
                    source_filename=source_filename,
                    success=True,
                    skipped=True,
                    duration_ms=elapsed_ms(),
                )

        try:
            chunks = self._prepare(raw_text, source_filename)
            logger.info(f"Chunked {source_filename} into {len(chunks)} chunks")

            embeddings = await self.embedder.embed_batch(chunks, concurrency=self.embed_concurrency)

            await asyncio.to_thread(
                self.store.insert_document, source_filename, chunks, embeddings, replace
            )
        except RetrievalEngineError as e:
            self.stats.failed += 1
            stage = e.stage or "unknown"
            logger.error(f"Failed to ingest {source_filename} at stage {stage}: {e}")
            return IngestResult(
                source_filename=source_filename,
                success=False,
                duration_ms=elapsed_ms(),
                error=str(e),
                stage=stage,
            )

        self.stats.successful += 1
        self.stats.total_chunks += len(chunks)
        duration = elapsed_ms()
        logger.info(f"Ingested {source_filename}: {len(chunks)} chunks in {duration:.0f}ms")

        return IngestResult(
            source_filename=source_filename,
            chunk_count=len(chunks),
            success=True,
            duration_ms=duration,
        )

    async def ingest_many(self, documents: Iterable[Tuple[str, str]]) -> List[IngestResult]:
        """
        Ingest (source_filename, raw_text) pairs one after another.

        Filenames that are already indexed are skipped.
        """
        results = []
        for source_filename, raw_text in documents:
            results.append(await self.ingest(raw_text, source_filename, skip_duplicate=True))

        logger.info(
            f"Ingestion complete: {self.stats.successful}/{self.stats.total_docs} successful, "
            f"{self.stats.skipped} skipped, {self.stats.failed} failed"
        )
        return results

    def get_stats(self) -> Dict:
        """Get ingestion statistics."""
        return asdict(self.stats)

    def reset_stats(self) -> None:
        """Reset statistics for a new run."""
        self.stats = IngestionStats()
