"""Predicate walking, date normalization, suggestions and validation."""

from query_guard.query.predicates import (
    Comparison,
    Logical,
    Opaque,
    Stage,
    parse_predicate,
    parse_pipeline,
    render_predicate,
    collect_fields,
    collect_pipeline_fields,
    collect_field_refs,
    collect_source_field_refs,
    predicate_shape,
    pipeline_shape,
)
from query_guard.query.dates import (
    parse_absolute,
    partial_range,
    normalize_condition,
    normalize_predicate,
    normalize_pipeline,
)
from query_guard.query.suggestions import suggest_fields, tokenize
from query_guard.query.validator import QueryValidator, referenced_fields
from query_guard.query.prompt_generator import (
    CorrectionPromptGenerator,
    SchemaDescriptionPromptGenerator,
)

__all__ = [
    "Comparison",
    "Logical",
    "Opaque",
    "Stage",
    "parse_predicate",
    "parse_pipeline",
    "render_predicate",
    "collect_fields",
    "collect_pipeline_fields",
    "collect_field_refs",
    "collect_source_field_refs",
    "predicate_shape",
    "pipeline_shape",
    "parse_absolute",
    "partial_range",
    "normalize_condition",
    "normalize_predicate",
    "normalize_pipeline",
    "suggest_fields",
    "tokenize",
    "QueryValidator",
    "referenced_fields",
    "CorrectionPromptGenerator",
    "SchemaDescriptionPromptGenerator",
]
