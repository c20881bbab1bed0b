"""
Query validation and normalization.

The validator is the single gate in front of the document store: it
resolves the collection schema, checks every referenced field, attaches
ranked suggestions for unknown ones and normalizes date literals.
"""

from typing import Dict, List, Optional, Tuple

from query_guard.core.logger import get_logger
from query_guard.core.models import (
    KEYED_OPERATIONS,
    FieldMeta,
    FieldType,
    InvalidFieldsOutcome,
    Operation,
    QueryRequest,
    SchemaRequiredOutcome,
    ValidationOutcome,
    ValidOutcome,
)
from query_guard.query.dates import normalize_pipeline, normalize_predicate
from query_guard.query.predicates import (
    iter_expr_refs,
    iter_fields,
    iter_pipeline_fields,
    iter_source_field_refs,
)
from query_guard.query.suggestions import MAX_SUGGESTIONS, suggest_fields
from query_guard.schema.cache import SchemaCache
from query_guard.schema.type_mappings import TypeMapper

logger = get_logger(__name__)

# Every stored document has an identifier even when sampling never saw one
IMPLICIT_FIELDS = ("_id",)


def field_base(name: str) -> str:
    """Return the top-level field of a dotted path."""
    return name.split(".", 1)[0]


def referenced_fields(request: QueryRequest) -> List[str]:
    """
    List the fields a request references, in order of appearance.

    find/count and the keyed operations use the predicate (plus ``$expr``
    references) and the key; aggregate uses the filter stages, the sort keys
    and the field references that still see stored documents.
    """
    if request.operation == Operation.AGGREGATE:
        names = list(iter_pipeline_fields(request.pipeline, source_only=True))
        names.extend(iter_source_field_refs(request.pipeline))
    else:
        predicate = request.predicate or {}
        names = list(iter_fields(predicate))
        names.extend(iter_expr_refs(predicate))
        if request.operation in KEYED_OPERATIONS and request.key:
            names.append(request.key)
    return list(dict.fromkeys(names))


def is_known_field(name: str, type_map: Dict[str, FieldType]) -> bool:
    base = field_base(name)
    return name in type_map or base in type_map or base in IMPLICIT_FIELDS


class QueryValidator:
    """
    Validates and normalizes query requests against the schema cache.
    """

    def __init__(self, cache: SchemaCache, max_suggestions: int = MAX_SUGGESTIONS):
        """
        Initialize query validator.

        Args:
            cache: Schema cache to resolve collections from
            max_suggestions: Maximum suggestions per invalid field
        """
        self.cache = cache
        self.max_suggestions = max_suggestions

    def resolve_schema(
        self, request: QueryRequest
    ) -> Optional[Tuple[Dict[str, FieldType], List[FieldMeta]]]:
        """
        Resolve the type map for a request.

        A caller-supplied ``schema_override`` wins over the cache. Field
        descriptions still come from the cache when the collection is known.

        Returns:
            (type_map, fields), or None when no schema is available
        """
        table = self.cache.resolve(request.collection)

        if request.schema_override:
            type_map = TypeMapper.normalize_type_map(request.schema_override)
            known = {f.name: f for f in table.fields} if table else {}
            fields = [
                known[name].model_copy(update={"type": tp}) if name in known
                else FieldMeta(name=name, type=tp)
                for name, tp in type_map.items()
            ]
            return type_map, fields

        if table is None or not table.fields:
            return None
        return table.type_map(), list(table.fields)

    def validate(self, request: QueryRequest) -> ValidationOutcome:
        """
        Validate a request.

        Args:
            request: Query request

        Returns:
            ValidOutcome with normalized predicate/pipeline,
            SchemaRequiredOutcome, or InvalidFieldsOutcome with suggestions
        """
        resolved = self.resolve_schema(request)
        if resolved is None:
            logger.info("No schema for collection %s", request.collection)
            return SchemaRequiredOutcome(
                collection=request.collection,
                operation=request.operation,
                original_predicate=request.predicate or {},
            )
        type_map, fields = resolved

        invalid = [
            name for name in referenced_fields(request)
            if not is_known_field(name, type_map)
        ]
        if invalid:
            logger.info(
                "Rejected %s on %s: unknown fields %s",
                request.operation.value,
                request.collection,
                invalid,
            )
            return InvalidFieldsOutcome(
                request=request,
                invalid_fields=invalid,
                suggestions=suggest_fields(invalid, fields, self.max_suggestions),
                schema_fields=list(type_map.keys()),
            )

        if request.operation == Operation.AGGREGATE:
            return ValidOutcome(
                request=request,
                predicate={},
                pipeline=normalize_pipeline(request.pipeline, type_map),
            )
        return ValidOutcome(
            request=request,
            predicate=normalize_predicate(request.predicate, type_map),
        )
