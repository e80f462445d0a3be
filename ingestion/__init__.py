"""
Document Ingestion Module.

This module handles the complete document ingestion pipeline:
- Text cleaning and normalization
- Chunking
- Embedding
- Atomic storage in the dual index

Usage:
    from ingestion import IngestionPipeline

    pipeline = IngestionPipeline(chunker, embedder, store)
    result = await pipeline.ingest(text, "contract.txt")
"""

from .ingest_pipeline import IngestionPipeline, IngestionStats
from .normalize import normalize_line_endings, normalize_text, normalize_typography

__all__ = [
    "IngestionPipeline",
    "IngestionStats",
    "normalize_text",
    "normalize_line_endings",
    "normalize_typography",
]
