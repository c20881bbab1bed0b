"""
Text embeddings.

``EmbeddingService`` never raises on provider failure: it logs and returns
zero vectors, which score 0 against everything.
"""

import os
from typing import List, Optional

from openai import OpenAI

from query_guard.core.errors import EmbeddingFailed
from query_guard.core.interfaces import IEmbeddingProvider
from query_guard.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_EMBEDDING_DIMENSION = 768
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIEmbeddingProvider:
    """
    Embedding provider for OpenAI and OpenAI-compatible APIs.

    Reads EMBEDDING_MODEL, LLM_API_KEY/OPENAI_API_KEY and LLM_BASE_URL from
    the environment when arguments are omitted.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimension: Optional[int] = None,
    ):
        self.model_name = model_name or os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
        api_key = api_key or os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
        base_url = base_url or os.getenv("LLM_BASE_URL")
        self.dimension = dimension

        client_kwargs = {"api_key": api_key or "not-needed"}
        if base_url:
            normalized_base_url = base_url.rstrip("/")
            if not normalized_base_url.endswith("/v1"):
                normalized_base_url = f"{normalized_base_url}/v1"
            client_kwargs["base_url"] = normalized_base_url
        self.client = OpenAI(**client_kwargs)

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        kwargs = {"model": self.model_name, "input": texts}
        if self.dimension and self.model_name.startswith("text-embedding-3"):
            kwargs["dimensions"] = self.dimension
        response = self.client.embeddings.create(**kwargs)
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    def embed_query(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]


class EmbeddingService:
    """
    Embeds text with a zero-vector fallback.
    """

    def __init__(
        self,
        provider: Optional[IEmbeddingProvider],
        dimension: int = DEFAULT_EMBEDDING_DIMENSION,
    ):
        """
        Initialize embedding service.

        Args:
            provider: Embedding provider; without one every call falls back
            dimension: Length of fallback vectors
        """
        self.provider = provider
        self.dimension = dimension

    def zero_vector(self) -> List[float]:
        return [0.0] * self.dimension

    def embed_text(self, text: str) -> List[float]:
        """
        Embed one text.

        Returns:
            Embedding, or a zero vector for empty input or provider failure
        """
        if not text or not text.strip():
            return self.zero_vector()
        try:
            if self.provider is None:
                raise EmbeddingFailed("no embedding provider configured")
            try:
                vector = self.provider.embed_query(text)
            except Exception as e:
                raise EmbeddingFailed(str(e)) from e
            if not vector:
                raise EmbeddingFailed("provider returned an empty embedding")
            return list(vector)
        except EmbeddingFailed as e:
            logger.error("Embedding failed, using zero vector: %s", e)
            return self.zero_vector()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts, keeping input order.

        Blank texts get zero vectors without reaching the provider. On
        provider failure every text gets a zero vector.
        """
        if not texts:
            return []
        indexed = [(i, t) for i, t in enumerate(texts) if t and t.strip()]
        vectors = [self.zero_vector() for _ in texts]
        if not indexed:
            return vectors

        try:
            if self.provider is None:
                raise EmbeddingFailed("no embedding provider configured")
            try:
                embedded = self.provider.embed_documents([t for _, t in indexed])
            except Exception as e:
                raise EmbeddingFailed(str(e)) from e
            if len(embedded) != len(indexed):
                raise EmbeddingFailed(
                    f"provider returned {len(embedded)} embeddings for {len(indexed)} texts"
                )
        except EmbeddingFailed as e:
            logger.error("Batch embedding failed, using zero vectors: %s", e)
            return vectors

        for (i, _), vector in zip(indexed, embedded):
            vectors[i] = list(vector) if vector else self.zero_vector()
        return vectors
