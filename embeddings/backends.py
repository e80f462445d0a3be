"""
Embedding backends.

Each backend speaks one provider's protocol and returns the raw response
body normalized to {"embeddings": [[float, ...], ...]}. Validation of that
body (count, dimension) is the client's job, not the backend's.

CRITICAL: Never mix vectors from different models in the same index.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
import numpy as np

from shared.config import EmbeddingConfig

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    """Protocol implemented by all embedding backends."""

    model_name: str

    async def embed_raw(self, texts: List[str]) -> Dict[str, Any]:
        """Request embeddings for texts; raise on transport failure."""
        ...


class OllamaBackend:
    """
    Ollama batch embedding endpoint.

    Request:  POST /api/embed {"model": ..., "input": [...]}
    Response: {"embeddings": [[...], ...]}
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "mxbai-embed-large",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model_name = model
        # Per-call timeouts come from the retry policy
        self._client = client or httpx.AsyncClient(timeout=None)

    async def embed_raw(self, texts: List[str]) -> Dict[str, Any]:
        response = await self._client.post(
            f"{self.base_url}/api/embed",
            json={"model": self.model_name, "input": texts},
        )
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAIBackend:
    """
    OpenAI-compatible embeddings endpoint.

    The response's data[i].embedding list is re-ordered by data[i].index and
    exposed under "embeddings".
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("OpenAI API key not configured")
        self.base_url = base_url.rstrip("/")
        self.model_name = model
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._client = client or httpx.AsyncClient(timeout=None)

    async def embed_raw(self, texts: List[str]) -> Dict[str, Any]:
        response = await self._client.post(
            f"{self.base_url}/embeddings",
            headers=self._headers,
            json={"model": self.model_name, "input": texts, "encoding_format": "float"},
        )
        response.raise_for_status()
        body = response.json()

        data = sorted(body.get("data") or [], key=lambda d: d.get("index", 0))
        return {"embeddings": [d.get("embedding") for d in data]}

    async def aclose(self) -> None:
        await self._client.aclose()


class SentenceTransformerBackend:
    """
    Local sentence-transformers model.

    Key practices:
    - Deterministic preprocessing (any change requires re-indexing)
    - Normalize vectors to unit length for cosine similarity
    - Encoding runs in a worker thread so the event loop stays free
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        normalize: bool = True,
        max_chars: int = 8192,
    ):
        self.model_name = model_name
        self.normalize = normalize
        self.max_chars = max_chars
        self._model = None

    @property
    def model(self):
        """Lazy load the model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def preprocess_text(self, text: str) -> str:
        """Collapse whitespace and truncate extremely long texts."""
        text = " ".join(text.split())
        if len(text) > self.max_chars:
            text = text[: self.max_chars]
        return text

    def _encode(self, texts: List[str]) -> np.ndarray:
        processed = [self.preprocess_text(t) for t in texts]
        vectors = self.model.encode(processed, show_progress_bar=False, convert_to_numpy=True)

        if self.normalize:
            norms = np.linalg.norm(vectors, axis=1, keepdims=True)
            vectors = vectors / (norms + 1e-10)
        return vectors

    async def embed_raw(self, texts: List[str]) -> Dict[str, Any]:
        vectors = await asyncio.to_thread(self._encode, texts)
        return {"embeddings": vectors.tolist()}


def create_backend(config: EmbeddingConfig) -> EmbeddingBackend:
    """Build the backend named by config.provider."""
    if config.provider == "ollama":
        return OllamaBackend(base_url=config.ollama_url, model=config.ollama_model)
    if config.provider == "openai":
        return OpenAIBackend(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
        )
    if config.provider == "sentence-transformers":
        return SentenceTransformerBackend(model_name=config.st_model)
    raise ValueError(f"Unknown embedding provider: {config.provider}")
