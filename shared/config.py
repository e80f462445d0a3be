"""
Configuration module for the hybrid retrieval engine.
Manages all environment variables and settings with validation.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple


def _env_int(key: str, fallback: int) -> int:
    """Read an integer env var, falling back on missing or invalid values."""
    value = os.getenv(key)
    if not value:
        return fallback
    try:
        return int(value)
    except ValueError:
        return fallback


def _env_float(key: str, fallback: float) -> float:
    value = os.getenv(key)
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


# Known embedding models and their output dimension
EMBED_MODEL_DIMENSIONS = {
    # OpenAI
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    # Ollama
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
    # sentence-transformers
    "all-MiniLM-L6-v2": 384,
}


def get_vector_dimension(provider: str, model: str) -> int:
    """Resolve the embedding dimension for a provider/model pair."""
    if model in EMBED_MODEL_DIMENSIONS:
        return EMBED_MODEL_DIMENSIONS[model]
    return 1536 if provider == "openai" else 768


@dataclass
class ChunkingConfig:
    """Chunking strategy configuration (sizes in characters)."""
    size: int = field(default_factory=lambda: _env_int("CHUNK_SIZE", 1024))
    overlap: int = field(default_factory=lambda: _env_int("CHUNK_OVERLAP", 256))


@dataclass
class EmbeddingConfig:
    """Embedding backend configuration - version this with your index."""
    provider: str = field(default_factory=lambda: os.getenv("EMBED_PROVIDER", "ollama"))
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    ollama_model: str = field(default_factory=lambda: os.getenv("OLLAMA_EMBED_MODEL", "mxbai-embed-large"))
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_base_url: str = field(default_factory=lambda: os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"))
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_EMBED_MODEL", "text-embedding-3-small"))
    st_model: str = field(default_factory=lambda: os.getenv("ST_MODEL", "all-MiniLM-L6-v2"))
    batch_size: int = field(default_factory=lambda: _env_int("EMBED_BATCH_SIZE", 32))
    concurrency: int = field(default_factory=lambda: _env_int("EMBED_CONCURRENCY", 4))
    ingest_concurrency: int = field(default_factory=lambda: _env_int("INGEST_EMBED_CONCURRENCY", 20))
    timeout: float = field(default_factory=lambda: _env_float("EMBED_TIMEOUT", 120.0))
    max_attempts: int = field(default_factory=lambda: _env_int("EMBED_MAX_ATTEMPTS", 3))
    backoff_base: float = field(default_factory=lambda: _env_float("EMBED_BACKOFF_BASE", 1.0))
    # 0 means "derive from the active model"
    dimension_override: int = field(default_factory=lambda: _env_int("VECTOR_DIM", 0))

    @property
    def model_name(self) -> str:
        if self.provider == "openai":
            return self.openai_model
        if self.provider == "sentence-transformers":
            return self.st_model
        return self.ollama_model

    @property
    def dimension(self) -> int:
        if self.dimension_override > 0:
            return self.dimension_override
        return get_vector_dimension(self.provider, self.model_name)


@dataclass
class RetrievalConfig:
    """Retrieval and fusion configuration."""
    vector_limit: int = 30
    lexical_limit: int = 30
    final_top_k: int = 10
    rrf_k: int = field(default_factory=lambda: _env_int("RRF_K", 60))
    cross_signal_boost: float = field(default_factory=lambda: _env_float("CROSS_SIGNAL_BOOST", 1.5))
    # |bm25| at or above this maps to pseudo-distance 0
    lexical_score_scale: float = 10.0


@dataclass
class RerankConfig:
    """
    Term-overlap reranker weights.

    match_weight and signal_weight assume the incoming signal score lies in
    signal_range. Fusion emits normalized_score in [0, 1] for this reason;
    changing either side means re-deriving the weights.
    """
    match_weight: float = 10.0
    signal_weight: float = 0.1
    phrase_bonus: float = 1.0
    pool_cap: int = 15
    signal_range: Tuple[float, float] = (0.0, 1.0)


@dataclass
class StorageConfig:
    """Dual index store configuration."""
    db_path: str = field(default_factory=lambda: os.getenv("DB_PATH", "hybrid-rag.sqlite"))
    vector_backend: str = field(default_factory=lambda: os.getenv("VECTOR_BACKEND", "chroma"))
    chroma_path: str = field(default_factory=lambda: os.getenv("CHROMA_PATH", "./data/chroma"))
    chroma_host: Optional[str] = field(default_factory=lambda: os.getenv("CHROMA_HOST"))
    chroma_port: int = field(default_factory=lambda: _env_int("CHROMA_PORT", 8000))
    collection_name: str = field(default_factory=lambda: os.getenv("COLLECTION_NAME", "chunks_v1"))


@dataclass
class Settings:
    """Main application settings loaded from environment."""

    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Nested configs
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def get_index_name(self) -> str:
        """Versioned collection name; never mix vectors from different models."""
        model_slug = self.embedding.model_name.replace("/", "_").replace("-", "_")
        return f"{self.storage.collection_name}_{model_slug}_{self.embedding.dimension}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
