"""
Embedding client with batching, bounded concurrency and per-item fallback.

Strategy for embed_batch:
1. Split texts into groups of batch_size
2. Dispatch up to `concurrency` groups per wave; a wave completes before
   the next one starts
3. A group that fails after retries, or comes back malformed, is re-sent
   one text at a time
4. Only a text that still fails on its own fails the whole call

Example: 1000 chunks, batch_size=32, concurrency=4
- 32 groups, 8 waves, 32 HTTP calls on a healthy backend
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Union

import numpy as np

from shared.errors import EmbeddingItemError, TransientBackendError
from shared.resilience import RetryPolicy, resilient_call

from .backends import EmbeddingBackend

logger = logging.getLogger(__name__)


@dataclass
class BatchSuccess:
    """Backend returned one valid vector per input."""

    vectors: List[List[float]]


@dataclass
class BatchFailure:
    """Backend call failed or returned an unusable body."""

    reason: str


BatchOutcome = Union[BatchSuccess, BatchFailure]


def parse_embed_response(payload: Any, expected_count: int, dimension: int) -> BatchOutcome:
    """
    Validate a backend body against the request.

    Wrong count, missing vectors and wrong dimension are all failures.
    """
    if not isinstance(payload, dict):
        return BatchFailure(f"response is {type(payload).__name__}, not an object")

    embeddings = payload.get("embeddings")
    if not isinstance(embeddings, list):
        return BatchFailure("response has no 'embeddings' list")

    if len(embeddings) != expected_count:
        return BatchFailure(
            f"expected {expected_count} embeddings, got {len(embeddings)}"
        )

    for i, vector in enumerate(embeddings):
        if not vector:
            return BatchFailure(f"embedding {i} is missing")
        if len(vector) != dimension:
            return BatchFailure(
                f"embedding {i} has dimension {len(vector)}, expected {dimension}"
            )

    return BatchSuccess(vectors=embeddings)


class EmbeddingClient:
    """
    Converts text into fixed-dimension vectors through a pluggable backend.

    Usage:
        client = EmbeddingClient(OllamaBackend(), dimension=1024)
        vector = await client.embed("query text")
        vectors = await client.embed_batch(chunks, concurrency=4)
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        dimension: int,
        batch_size: int = 32,
        concurrency: int = 4,
        policy: Optional[RetryPolicy] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.backend = backend
        self.dimension = dimension
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.policy = policy or RetryPolicy()

    async def _request(self, texts: List[str]) -> BatchOutcome:
        """One resilient backend call, folded into a tagged outcome."""
        try:
            payload = await resilient_call(
                self.backend.embed_raw,
                texts,
                policy=self.policy,
                description=f"embed {len(texts)} text(s) with {self.backend.model_name}",
            )
        except Exception as e:
            return BatchFailure(f"{type(e).__name__}: {e}")
        return parse_embed_response(payload, len(texts), self.dimension)

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        outcome = await self._request([text])
        if isinstance(outcome, BatchFailure):
            raise TransientBackendError(f"Embedding failed: {outcome.reason}", stage="embed")
        return np.asarray(outcome.vectors[0], dtype=np.float32)

    async def _embed_group(self, start: int, texts: List[str]) -> List[List[float]]:
        outcome = await self._request(texts)
        if isinstance(outcome, BatchSuccess):
            return outcome.vectors

        logger.warning(
            f"Batch at offset {start} failed ({outcome.reason}), falling back to individual calls"
        )
        vectors = []
        for offset, text in enumerate(texts):
            single = await self._request([text])
            if isinstance(single, BatchFailure):
                raise EmbeddingItemError(start + offset, text, single.reason)
            vectors.append(single.vectors[0])
        return vectors

    async def embed_batch(
        self,
        texts: List[str],
        concurrency: Optional[int] = None,
    ) -> np.ndarray:
        """
        Embed texts in waves of concurrent batches.

        Args:
            texts: Texts to embed
            concurrency: Groups in flight per wave (client default if None)

        Returns:
            float32 array of shape (len(texts), dimension), row i for texts[i]

        Raises:
            EmbeddingItemError: a text failed even after per-item fallback
        """
        if not texts:
            return np.empty((0, self.dimension), dtype=np.float32)

        concurrency = self.concurrency if concurrency is None else concurrency
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        groups = [
            (start, texts[start : start + self.batch_size])
            for start in range(0, len(texts), self.batch_size)
        ]
        results: List[Optional[List[float]]] = [None] * len(texts)

        logger.info(
            f"Embedding {len(texts)} texts in {len(groups)} batches of {self.batch_size}, "
            f"{concurrency} at a time"
        )
        start_time = time.perf_counter()

        for wave_start in range(0, len(groups), concurrency):
            wave = groups[wave_start : wave_start + concurrency]
            outputs = await asyncio.gather(
                *(self._embed_group(start, group) for start, group in wave),
                return_exceptions=True,
            )

            for (start, _), output in zip(wave, outputs):
                if isinstance(output, BaseException):
                    raise output
                results[start : start + len(output)] = output

            processed = min((wave_start + concurrency) * self.batch_size, len(texts))
            elapsed = time.perf_counter() - start_time
            logger.debug(f"Embedding progress: {processed}/{len(texts)} ({elapsed:.1f}s)")

        elapsed = time.perf_counter() - start_time
        logger.info(f"Completed {len(texts)} embeddings in {elapsed:.1f}s")

        return np.asarray(results, dtype=np.float32)
