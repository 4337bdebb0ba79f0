"""
LeaseWise Embeddings Module
===========================
Turns text into fixed-length vectors for similarity search.

Two providers share one interface:
- SentenceTransformerEmbedder: local all-MiniLM-L6-v2 (384 dimensions)
- OpenAIEmbedder: text-embedding-3-small (1536 dimensions)

Every clause in a corpus must be embedded by the same provider; switching
providers requires re-indexing.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import lru_cache

from openai import AsyncOpenAI, OpenAIError
from sentence_transformers import SentenceTransformer

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Inputs beyond this are truncated rather than rejected
MAX_EMBED_CHARS = 8000

OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingError(Exception):
    """Raised when the embedding service fails."""
    pass


class EmbeddingProvider(ABC):
    """Deterministic text-to-vector capability with a fixed dimensionality."""

    dimension: int

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, preserving input order."""

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]


class SentenceTransformerEmbedder(EmbeddingProvider):
    """Local sentence-transformers embeddings, run off the event loop."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self.embedding_model = SentenceTransformer(model_name)
        self.dimension = self.embedding_model.get_sentence_embedding_dimension()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        truncated = [t[:MAX_EMBED_CHARS] for t in texts]
        loop = asyncio.get_running_loop()
        try:
            vectors = await loop.run_in_executor(
                None,
                lambda: self.embedding_model.encode(truncated).tolist()
            )
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        return vectors


class OpenAIEmbedder(EmbeddingProvider):
    """OpenAI embeddings API."""

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None):
        settings = settings or get_settings()
        self.model = settings.openai_embedding_model
        self.dimension = OPENAI_DIMENSIONS.get(self.model, 1536)
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
        )

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=[t[:MAX_EMBED_CHARS] for t in texts],
            )
        except OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e

        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: {len(vectors)} embeddings for {len(texts)} inputs"
            )
        return vectors


def create_embedding_provider(settings: Settings | None = None) -> EmbeddingProvider:
    """Build the provider selected by EMBEDDING_PROVIDER."""
    settings = settings or get_settings()
    if settings.embedding_provider == "openai":
        logger.info(f"Using OpenAI embeddings ({settings.openai_embedding_model})")
        return OpenAIEmbedder(settings)
    logger.info(f"Using local sentence-transformers embeddings ({settings.embedding_model})")
    return SentenceTransformerEmbedder(settings.embedding_model)


@lru_cache
def get_embedding_provider() -> EmbeddingProvider:
    """Process-wide provider; loading a local model is expensive."""
    return create_embedding_provider()
