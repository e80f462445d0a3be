"""
Embeddings Module.

CRITICAL: Never mix vectors from different models in the same index.

This module handles:
- Pluggable embedding backends (Ollama, OpenAI-compatible, sentence-transformers)
- Batched embedding with bounded concurrency
- Retry with exponential backoff and per-item fallback

Usage:
    from embeddings import EmbeddingClient, create_backend

    client = EmbeddingClient(create_backend(config), dimension=config.dimension)
    vectors = await client.embed_batch(["text1", "text2"])
"""

from .backends import (
    EmbeddingBackend,
    OllamaBackend,
    OpenAIBackend,
    SentenceTransformerBackend,
    create_backend,
)
from .embedding_client import (
    BatchFailure,
    BatchOutcome,
    BatchSuccess,
    EmbeddingClient,
    parse_embed_response,
)

__all__ = [
    "EmbeddingBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "SentenceTransformerBackend",
    "create_backend",
    "EmbeddingClient",
    "BatchSuccess",
    "BatchFailure",
    "BatchOutcome",
    "parse_embed_response",
]
