"""
Shared data models for the query guard.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_LIMIT = 20
DEFAULT_MAX_LIMIT = 100
ABSOLUTE_MAX_LIMIT = 200


class FieldType(str, Enum):
    """Declared type of a collection field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    ARRAY = "array"
    OBJECT_ID = "objectId"
    NULL = "null"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (the cache artifact format)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldMeta(CamelModel):
    """Represents a single field of a collection."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    name: str
    type: FieldType
    display_name: Optional[str] = None
    description: Optional[str] = None
    required: bool = False


class TableMeta(CamelModel):
    """Metadata for one queryable collection."""

    collection_name: str
    display_name: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    fields: List[FieldMeta] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_fields(self) -> "TableMeta":
        """Field names must be unique within a table."""
        seen = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(
                    f"Duplicate field '{field.name}' in table '{self.collection_name}'"
                )
            seen.add(field.name)
        return self

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def type_map(self) -> Dict[str, FieldType]:
        return {f.name: f.type for f in self.fields}

    def get_field(self, name: str) -> Optional[FieldMeta]:
        for field in self.fields:
            if field.name == name:
                return field
        return None


class SchemaCacheModel(CamelModel):
    """Versioned snapshot of all known table metadata."""

    tables: List[TableMeta] = Field(default_factory=list)
    version: int = 0
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class Operation(str, Enum):
    """Query operations accepted by the guard."""

    FIND = "find"
    COUNT = "count"
    AGGREGATE = "aggregate"
    DISTINCT = "distinct"
    MIN = "min"
    MAX = "max"
    SUM = "sum"
    AVG = "avg"


KEYED_OPERATIONS = {
    Operation.DISTINCT,
    Operation.MIN,
    Operation.MAX,
    Operation.SUM,
    Operation.AVG,
}
SCALAR_OPERATIONS = {Operation.MIN, Operation.MAX, Operation.SUM, Operation.AVG}


class QueryRequest(BaseModel):
    """
    A query submitted by a caller.

    The limit is always clamped: missing or non-positive limits fall back to
    the default and no request may ask for more than the absolute ceiling.
    The executor clamps again against the configured maximum.
    """

    collection: str
    operation: Operation = Operation.FIND
    predicate: Optional[Dict[str, Any]] = None
    pipeline: Optional[List[Dict[str, Any]]] = None
    key: Optional[str] = None
    projection: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Inclusion/exclusion flags or projection operators such as $slice",
    )
    sort: Optional[Dict[str, Union[Literal[1, -1], Dict[str, Any]]]] = None
    limit: int = DEFAULT_LIMIT
    skip: int = 0
    include_total: bool = False
    schema_override: Optional[Dict[str, FieldType]] = Field(
        default=None,
        description="Caller-supplied field type map used instead of the cache",
    )

    @field_validator("limit", mode="before")
    @classmethod
    def clamp_limit(cls, value: Any) -> int:
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            return DEFAULT_LIMIT
        return min(int(value), ABSOLUTE_MAX_LIMIT)

    @field_validator("skip", mode="before")
    @classmethod
    def clamp_skip(cls, value: Any) -> int:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return 0
        return max(0, int(value))

    @model_validator(mode="after")
    def validate_operation_arguments(self) -> "QueryRequest":
        """Ensure each operation carries the arguments it needs."""
        if self.operation in KEYED_OPERATIONS and not self.key:
            raise ValueError(f"key is required for {self.operation.value} operation")
        if self.operation == Operation.AGGREGATE and not self.pipeline:
            raise ValueError("pipeline is required for aggregate operation")
        return self

    def safe_limit(self, max_limit: int = DEFAULT_MAX_LIMIT) -> int:
        return min(self.limit, max_limit)


class SuggestionReason(str, Enum):
    """Which signal dominated a field suggestion."""

    NAME_SUBSTRING = "name-substring"
    TOKEN_OVERLAP_HIGH = "token-overlap-high"
    TOKEN_OVERLAP = "token-overlap"
    DESCRIPTION_MATCH = "description-match"


class RankedCandidate(BaseModel):
    """A candidate replacement for an invalid field name."""

    field: str
    score: float = Field(ge=0.0, le=1.0)
    declared_type: FieldType
    reason: SuggestionReason


class ValidOutcome(BaseModel):
    """The request is safe to execute; predicate/pipeline are normalized."""

    kind: Literal["valid"] = "valid"
    request: QueryRequest
    predicate: Dict[str, Any] = Field(default_factory=dict)
    pipeline: Optional[List[Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "VALID", "collection": self.request.collection}


class SchemaRequiredOutcome(BaseModel):
    """No schema is known for the collection."""

    kind: Literal["schema_required"] = "schema_required"
    collection: str
    operation: Operation = Operation.FIND
    original_predicate: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "SCHEMA_REQUIRED",
            "message": (
                "No schema found for collection. Rebuild the schema or search it, "
                "then reconstruct the query with valid fields."
            ),
            "collection": self.collection,
            "operation": self.operation.value,
            "original_filter": self.original_predicate,
        }


class InvalidFieldsOutcome(BaseModel):
    """The request references fields outside the schema."""

    kind: Literal["invalid_fields"] = "invalid_fields"
    request: QueryRequest
    invalid_fields: List[str]
    suggestions: Dict[str, List[RankedCandidate]] = Field(default_factory=dict)
    schema_fields: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        is_pipeline = self.request.operation == Operation.AGGREGATE
        payload: Dict[str, Any] = {
            "error": "INVALID_PIPELINE_FIELDS" if is_pipeline else "INVALID_FILTER_FIELDS",
            "message": (
                "Query contains fields not present in schema. "
                "Review suggestions and replace with the correct fields."
            ),
            "collection": self.request.collection,
            "operation": self.request.operation.value,
            "invalid_fields": self.invalid_fields,
            "suggestions": {
                name: [c.model_dump(mode="json") for c in candidates]
                for name, candidates in self.suggestions.items()
            },
            "schema_fields": self.schema_fields,
        }
        if is_pipeline:
            payload["original_pipeline"] = self.request.pipeline
        else:
            payload["original_filter"] = self.request.predicate or {}
        return payload


class InvalidRequestOutcome(BaseModel):
    """The caller's input could not be turned into a QueryRequest."""

    kind: Literal["invalid_request"] = "invalid_request"
    collection: Optional[str] = None
    operation: Optional[str] = None
    errors: List[Dict[str, str]] = Field(default_factory=list)

    @classmethod
    def from_validation_error(
        cls, data: Dict[str, Any], error: ValidationError
    ) -> "InvalidRequestOutcome":
        collection = data.get("collection")
        operation = data.get("operation", Operation.FIND.value)
        return cls(
            collection=collection if isinstance(collection, str) else None,
            operation=str(getattr(operation, "value", operation)),
            errors=[
                {
                    "field": ".".join(str(part) for part in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in error.errors(include_url=False)
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "INVALID_REQUEST",
            "message": "Query request is malformed. Fix the listed arguments and resubmit.",
            "collection": self.collection,
            "operation": self.operation,
            "details": self.errors,
        }


ValidationOutcome = Union[
    ValidOutcome, SchemaRequiredOutcome, InvalidFieldsOutcome, InvalidRequestOutcome
]



class QueryResult(BaseModel):
    """Standardized result of an executed query."""

    operation: Operation
    documents: List[Any] = Field(default_factory=list)
    count: Optional[int] = None
    value: Any = None
    total: Optional[int] = None


class VectorRecord(BaseModel):
    """A stored record that carries an embedding."""

    id: str
    embedding: List[float] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RankedRecord(BaseModel):
    """A vector search hit."""

    record: VectorRecord
    score: float
    source: Literal["managed", "local"]


class BackendAvailability(str, Enum):
    """Availability of a managed vector index."""

    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class CorrectionProposal(BaseModel):
    """
    Replacement query parts proposed by the reasoning collaborator.

    Only the parts present in the original request are considered.
    """

    predicate: Optional[Dict[str, Any]] = Field(
        default=None, description="Corrected filter, same structure as the original"
    )
    pipeline: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Corrected pipeline, same stages as the original"
    )
    key: Optional[str] = Field(
        default=None, description="Corrected field for distinct/min/max/sum/avg"
    )
    projection: Optional[Dict[str, Any]] = None
    sort: Optional[Dict[str, Union[Literal[1, -1], Dict[str, Any]]]] = None


class CorrectionRequest(BaseModel):
    """Structured input handed to the reasoning collaborator."""

    collection: str
    operation: Operation
    trigger: Literal["invalid_fields", "empty_result"]
    schema_fields: Dict[str, FieldType]
    field_descriptions: Dict[str, str] = Field(default_factory=dict)
    original_query: CorrectionProposal
    invalid_fields: List[str] = Field(default_factory=list)
    suggestions: Dict[str, List[RankedCandidate]] = Field(default_factory=dict)
