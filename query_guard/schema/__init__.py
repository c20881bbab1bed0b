"""Schema sampling, overrides and the metadata cache."""

from query_guard.schema.type_mappings import TypeMapper
from query_guard.schema.extractor import SchemaSampler, generate_keywords
from query_guard.schema.overrides import SchemaOverrides, parse_overrides
from query_guard.schema.cache import SchemaCache, apply_overrides

__all__ = [
    "TypeMapper",
    "SchemaSampler",
    "generate_keywords",
    "SchemaOverrides",
    "parse_overrides",
    "SchemaCache",
    "apply_overrides",
]
