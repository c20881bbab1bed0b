"""
Abstract interfaces for external collaborators.

These protocols define the contract that the document store, the reasoning
collaborator and the embedding provider must implement to work with the
query guard.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from query_guard.core.models import CorrectionProposal, CorrectionRequest, VectorRecord


class IDocumentStore(Protocol):
    """
    Execute queries against a document store.

    Implementations receive predicates and pipelines that have already been
    validated and normalized. Store failures should be raised, not hidden.
    """

    def list_collections(self) -> List[str]:
        """Return the names of all queryable collections."""
        ...

    def sample(self, collection: str, size: int) -> Iterable[Dict[str, Any]]:
        """
        Return up to ``size`` documents from a collection.

        Args:
            collection: Collection name
            size: Maximum number of documents to sample

        Returns:
            Iterable of raw documents
        """
        ...

    def find(
        self,
        collection: str,
        predicate: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        ...

    def count(self, collection: str, predicate: Dict[str, Any]) -> int:
        ...

    def distinct(
        self, collection: str, key: str, predicate: Dict[str, Any]
    ) -> List[Any]:
        ...

    def aggregate(
        self, collection: str, pipeline: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        ...


class IVectorBackend(Protocol):
    """
    Vector retrieval capabilities of a store.

    ``vector_search`` is the optional managed approximate-nearest-neighbor
    operator; ``fetch_vector_records`` returns raw candidates for local
    similarity scans.
    """

    def vector_search(
        self,
        collection: str,
        index: str,
        path: str,
        query_vector: List[float],
        num_candidates: int,
        limit: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Tuple[VectorRecord, float]]:
        """
        Query a managed vector index.

        Returns:
            List of (record, backend score) pairs ordered by the backend
        """
        ...

    def fetch_vector_records(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        path: str = "embedding",
    ) -> List[VectorRecord]:
        ...


class IReasoningClient(Protocol):
    """
    Propose corrections for rejected or unproductive queries.

    Implementations may call a language model or a rule engine. They return
    None when no proposal could be produced.
    """

    def propose(self, request: CorrectionRequest) -> Optional[CorrectionProposal]:
        ...


class IEmbeddingProvider(Protocol):
    """Produce embeddings for text. May raise on provider failure."""

    def embed_query(self, text: str) -> List[float]:
        ...

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        ...
