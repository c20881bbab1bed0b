"""
Vector search with a managed index and a local fallback.

Each index starts UNKNOWN. The first managed query settles it: success makes
it AVAILABLE, failure makes it UNAVAILABLE for the rest of the process (or
until reset). UNAVAILABLE indexes are always served by a local cosine scan.
"""

import threading
from typing import Any, Dict, List, Optional, Sequence, Union

from query_guard.core.errors import BackendUnavailable, VectorSearchError
from query_guard.core.interfaces import IVectorBackend
from query_guard.core.logger import get_logger
from query_guard.core.models import BackendAvailability, RankedRecord
from query_guard.vector.embedding import EmbeddingService
from query_guard.vector.similarity import rank_records

logger = get_logger(__name__)

DEFAULT_VECTOR_PATH = "embedding"
DEFAULT_INDEX_NAME = "vector_index"
CANDIDATE_MULTIPLIER = 10
OVERFETCH_MULTIPLIER = 2


class AvailabilityRegistry:
    """
    Per-index availability flags.

    Transitions out of UNKNOWN go through ``compare_and_set`` so concurrent
    first probes cannot both win.
    """

    def __init__(self):
        self._states: Dict[str, BackendAvailability] = {}
        self._lock = threading.Lock()

    def get(self, index: str) -> BackendAvailability:
        return self._states.get(index, BackendAvailability.UNKNOWN)

    def compare_and_set(
        self, index: str, expected: BackendAvailability, new: BackendAvailability
    ) -> bool:
        """
        Set the state of ``index`` to ``new`` if it currently is ``expected``.

        Returns:
            True if the state was changed by this call
        """
        with self._lock:
            if self._states.get(index, BackendAvailability.UNKNOWN) != expected:
                return False
            self._states[index] = new
            return True

    def reset(self, index: Optional[str] = None) -> None:
        """Forget the state of one index, or of all indexes."""
        with self._lock:
            if index is None:
                self._states.clear()
            else:
                self._states.pop(index, None)


class VectorSearchFacade:
    """
    Similarity search over a collection's embeddings.
    """

    def __init__(
        self,
        backend: IVectorBackend,
        embedder: Optional[EmbeddingService] = None,
        registry: Optional[AvailabilityRegistry] = None,
        path: str = DEFAULT_VECTOR_PATH,
        chunk_size: int = 1024,
    ):
        """
        Initialize vector search facade.

        Args:
            backend: Store exposing managed search and raw record fetches
            embedder: Embeds text queries; required to search by text
            registry: Shared availability registry
            path: Document field holding the embedding
            chunk_size: Records per matrix product in the local scan
        """
        self.backend = backend
        self.embedder = embedder
        self.registry = registry or AvailabilityRegistry()
        self.path = path
        self.chunk_size = chunk_size

    def search(
        self,
        collection: str,
        query: Union[str, Sequence[float]],
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
        min_score: float = 0.0,
        index_name: str = DEFAULT_INDEX_NAME,
    ) -> List[RankedRecord]:
        """
        Search for the records most similar to a query.

        Args:
            collection: Collection name
            query: Text (embedded first) or query vector
            filter: Pre-filter on record metadata
            limit: Maximum number of results
            min_score: Minimum similarity kept
            index_name: Managed index name

        Returns:
            Ranked records, best first

        Raises:
            VectorSearchError: the managed index failed after it was known to work
        """
        query_vector = self._query_vector(query)
        limit = max(1, limit)

        state = self.registry.get(index_name)
        if state != BackendAvailability.UNAVAILABLE:
            try:
                return self._managed_search(
                    collection, query_vector, filter, limit, min_score, index_name
                )
            except BackendUnavailable as e:
                if state == BackendAvailability.AVAILABLE:
                    raise VectorSearchError(
                        f"Vector index '{index_name}' failed: {e}"
                    ) from e
                if self.registry.compare_and_set(
                    index_name, BackendAvailability.UNKNOWN, BackendAvailability.UNAVAILABLE
                ):
                    logger.warning(
                        "Vector index '%s' unavailable, using local similarity: %s",
                        index_name,
                        e,
                    )

        return self.local_search(collection, query_vector, filter, limit, min_score)

    def _query_vector(self, query: Union[str, Sequence[float]]) -> List[float]:
        if isinstance(query, str):
            if self.embedder is None:
                raise ValueError("an embedder is required to search by text")
            return self.embedder.embed_text(query)
        return [float(v) for v in query]

    def _managed_search(
        self,
        collection: str,
        query_vector: List[float],
        filter: Optional[Dict[str, Any]],
        limit: int,
        min_score: float,
        index_name: str,
    ) -> List[RankedRecord]:
        try:
            hits = self.backend.vector_search(
                collection,
                index=index_name,
                path=self.path,
                query_vector=query_vector,
                num_candidates=limit * CANDIDATE_MULTIPLIER,
                limit=limit * OVERFETCH_MULTIPLIER,
                filter=filter,
            )
        except Exception as e:
            raise BackendUnavailable(str(e)) from e

        self.registry.compare_and_set(
            index_name, BackendAvailability.UNKNOWN, BackendAvailability.AVAILABLE
        )
        ranked = [
            RankedRecord(record=record, score=score, source="managed")
            for record, score in hits
            if score >= min_score
        ]
        return ranked[:limit]

    def local_search(
        self,
        collection: str,
        query_vector: List[float],
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
        min_score: float = 0.0,
    ) -> List[RankedRecord]:
        """Brute-force cosine scan over every record matching the filter."""
        records = self.backend.fetch_vector_records(collection, filter, path=self.path)
        ranked = rank_records(
            query_vector, records, min_score=min_score, limit=limit, chunk_size=self.chunk_size
        )
        return [RankedRecord(record=r, score=s, source="local") for r, s in ranked]
