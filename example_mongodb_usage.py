"""
Example usage of the query guard with MongoDB.

Rebuilds the schema cache for one collection, then runs a valid query, a
query with a misspelled field and a vector search.
"""

import json
import os

from dotenv import load_dotenv

from query_guard import QueryGuard, QueryGuardConfig, configure_logging
from query_guard.execution import ResultFormatter

load_dotenv()

DEFAULT_COLLECTION = os.getenv("MONGO_COLLECTION", "orders")
DEFAULT_OVERRIDES = os.getenv("SCHEMA_OVERRIDES_PATH")


def setup_guard() -> QueryGuard:
    """Build the guard from environment settings and refresh the schema cache."""
    config = QueryGuardConfig.from_env()
    guard = QueryGuard.from_config(config)

    overrides = guard.load_overrides(DEFAULT_OVERRIDES) if DEFAULT_OVERRIDES else None
    tables = guard.rebuild_schema(DEFAULT_COLLECTION, overrides=overrides)
    for table in tables:
        print(f"Cached {table.collection_name}: {', '.join(table.field_names())}")
    return guard


def example_1_valid_query(guard: QueryGuard):
    """
    Example 1: Valid query with a partial date

    The month "2025-06" is widened to a half-open range before execution.
    """
    print("\n" + "=" * 80)
    print("EXAMPLE 1: Valid query")
    print("=" * 80)

    request = {
        "collection": DEFAULT_COLLECTION,
        "predicate": {"status": "paid", "createdAt": "2025-06"},
        "sort": {"createdAt": -1},
        "limit": 5,
        "include_total": True,
    }
    healed = guard.run(request)
    print(json.dumps(healed.outcome.to_dict(), indent=2))
    if healed.result:
        print(json.dumps(ResultFormatter.format_result(healed.result), indent=2))


def example_2_misspelled_field(guard: QueryGuard):
    """
    Example 2: Misspelled field

    Without an LLM the structured error and suggestions are returned.
    With one, a single correction is attempted.
    """
    print("\n" + "=" * 80)
    print("EXAMPLE 2: Misspelled field")
    print("=" * 80)

    request = {
        "collection": DEFAULT_COLLECTION,
        "predicate": {"status": "paid", "crt_at": "2025-06"},
    }
    healed = guard.run(request)
    print(f"Corrected: {healed.corrected}")
    if healed.rejection_reason:
        print(f"Rejected: {healed.rejection_reason}")
    print(json.dumps(healed.outcome.to_dict(), indent=2, default=str))


def example_3_vector_search(guard: QueryGuard):
    """Example 3: Vector search, falling back to local ranking when needed."""
    print("\n" + "=" * 80)
    print("EXAMPLE 3: Vector search")
    print("=" * 80)

    if guard.embedder is None:
        print("EMBEDDING_MODEL not set, skipping")
        return

    results = guard.vector_search(DEFAULT_COLLECTION, "late deliveries", limit=5)
    for i, ranked in enumerate(results, 1):
        print(f"  {i}. {ranked.record.id} score={ranked.score:.3f} ({ranked.source})")


def main():
    configure_logging()
    guard = setup_guard()
    example_1_valid_query(guard)
    example_2_misspelled_field(guard)
    example_3_vector_search(guard)


if __name__ == "__main__":
    main()
