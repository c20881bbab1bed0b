"""Core interfaces, models and errors for the query guard."""

from query_guard.core.interfaces import (
    IDocumentStore,
    IVectorBackend,
    IReasoningClient,
    IEmbeddingProvider,
)
from query_guard.core.models import (
    FieldType,
    FieldMeta,
    TableMeta,
    SchemaCacheModel,
    Operation,
    QueryRequest,
    QueryResult,
    RankedCandidate,
    SuggestionReason,
    ValidOutcome,
    SchemaRequiredOutcome,
    InvalidFieldsOutcome,
    InvalidRequestOutcome,
    ValidationOutcome,
    VectorRecord,
    RankedRecord,
    BackendAvailability,
    CorrectionProposal,
    CorrectionRequest,
)
from query_guard.core.errors import (
    QueryGuardError,
    SchemaRequiredError,
    InvalidFieldReferenceError,
    InvalidRequestError,
    CorrectionRejected,
    BackendUnavailable,
    VectorSearchError,
    EmbeddingFailed,
    StoreExecutionError,
)

__all__ = [
    "IDocumentStore",
    "IVectorBackend",
    "IReasoningClient",
    "IEmbeddingProvider",
    "FieldType",
    "FieldMeta",
    "TableMeta",
    "SchemaCacheModel",
    "Operation",
    "QueryRequest",
    "QueryResult",
    "RankedCandidate",
    "SuggestionReason",
    "ValidOutcome",
    "SchemaRequiredOutcome",
    "InvalidFieldsOutcome",
    "InvalidRequestOutcome",
    "ValidationOutcome",
    "VectorRecord",
    "RankedRecord",
    "BackendAvailability",
    "CorrectionProposal",
    "CorrectionRequest",
    "QueryGuardError",
    "SchemaRequiredError",
    "InvalidFieldReferenceError",
    "InvalidRequestError",
    "CorrectionRejected",
    "BackendUnavailable",
    "VectorSearchError",
    "EmbeddingFailed",
    "StoreExecutionError",
]
