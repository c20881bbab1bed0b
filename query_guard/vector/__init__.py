"""Embeddings and vector similarity search."""

from query_guard.vector.similarity import cosine_similarity, rank_records
from query_guard.vector.embedding import EmbeddingService, OpenAIEmbeddingProvider
from query_guard.vector.search import AvailabilityRegistry, VectorSearchFacade

__all__ = [
    "cosine_similarity",
    "rank_records",
    "EmbeddingService",
    "OpenAIEmbeddingProvider",
    "AvailabilityRegistry",
    "VectorSearchFacade",
]
