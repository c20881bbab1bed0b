"""
Exception types for the query guard.

Validation problems are normally reported as structured outcomes, not
exceptions. These types cover the cases where a caller skipped validation,
a collaborator failed, or the document store itself failed.
"""

from typing import Any, Dict, List, Optional


class QueryGuardError(Exception):
    """Base class for all query guard errors."""


class SchemaRequiredError(QueryGuardError):
    """No schema metadata is known for a collection."""

    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(
            f"No schema found for collection '{collection}'. "
            "Rebuild the schema cache or supply a schema override."
        )


class InvalidFieldReferenceError(QueryGuardError):
    """A query references fields that are not part of the collection schema."""

    def __init__(
        self,
        collection: str,
        invalid_fields: List[str],
        suggestions: Optional[Dict[str, List[Any]]] = None,
    ):
        self.collection = collection
        self.invalid_fields = list(invalid_fields)
        self.suggestions = suggestions or {}
        super().__init__(
            f"Query on '{collection}' references unknown fields: "
            f"{', '.join(self.invalid_fields)}"
        )


class InvalidRequestError(QueryGuardError):
    """The caller's input is not a well-formed query request."""

    def __init__(self, collection: Optional[str], errors: List[Dict[str, str]]):
        self.collection = collection
        self.errors = list(errors)
        details = "; ".join(
            f"{e['field']}: {e['message']}" if e.get("field") else e["message"]
            for e in self.errors
        )
        super().__init__(f"Malformed query request for '{collection}': {details}")


class CorrectionRejected(QueryGuardError):
    """A correction proposal broke one of the structural invariants."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class BackendUnavailable(QueryGuardError):
    """The managed vector index could not serve a query."""


class VectorSearchError(QueryGuardError):
    """A managed vector query failed after the backend was known to work."""


class EmbeddingFailed(QueryGuardError):
    """The embedding provider could not produce a vector."""


class StoreExecutionError(QueryGuardError):
    """The document store failed while executing a validated query."""
