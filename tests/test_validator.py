"""Tests for the query validator."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from query_guard.core.models import (
    FieldType,
    InvalidFieldsOutcome,
    Operation,
    QueryRequest,
    SchemaRequiredOutcome,
    ValidOutcome,
)
from query_guard.query.validator import QueryValidator, referenced_fields
from query_guard.schema.cache import SchemaCache


@pytest.fixture
def validator(schema_cache) -> QueryValidator:
    return QueryValidator(schema_cache)


class TestQueryRequest:
    """Request model clamping and argument checks."""

    @pytest.mark.parametrize("limit, expected", [(None, 20), (0, 20), (-5, 20), (50, 50), (10_000, 200)])
    def test_limit_clamped(self, limit, expected) -> None:
        data = {"collection": "orders"}
        if limit is not None:
            data["limit"] = limit
        assert QueryRequest(**data).limit == expected

    def test_safe_limit_applies_configured_ceiling(self) -> None:
        assert QueryRequest(collection="orders", limit=150).safe_limit(100) == 100

    def test_keyed_operations_require_key(self) -> None:
        with pytest.raises(ValidationError):
            QueryRequest(collection="orders", operation="distinct")

    def test_aggregate_requires_pipeline(self) -> None:
        with pytest.raises(ValidationError):
            QueryRequest(collection="orders", operation="aggregate")

    def test_projection_and_sort_accept_operators(self) -> None:
        request = QueryRequest(
            collection="orders",
            projection={"items": {"$slice": 2}, "status": 1},
            sort={"score": {"$meta": "textScore"}, "amount": -1},
        )
        assert request.projection["items"] == {"$slice": 2}
        assert request.sort["amount"] == -1

    def test_sort_direction_still_checked(self) -> None:
        with pytest.raises(ValidationError):
            QueryRequest(collection="orders", sort={"amount": 2})


class TestValidate:
    """Validation outcomes."""

    def test_orders_example_normalizes_dates(self, validator) -> None:
        """Should validate and turn the month into a half-open range."""
        request = QueryRequest(
            collection="orders", predicate={"status": "paid", "createdAt": "2025-06"}
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, ValidOutcome)
        assert outcome.predicate == {
            "status": "paid",
            "createdAt": {
                "$gte": datetime(2025, 6, 1, tzinfo=timezone.utc),
                "$lt": datetime(2025, 7, 1, tzinfo=timezone.utc),
            },
        }

    def test_unknown_collection_requires_schema(self, validator) -> None:
        request = QueryRequest(collection="invoices", predicate={"x": 1})
        outcome = validator.validate(request)
        assert isinstance(outcome, SchemaRequiredOutcome)
        assert outcome.to_dict()["error"] == "SCHEMA_REQUIRED"
        assert outcome.to_dict()["original_filter"] == {"x": 1}

    def test_invalid_field_with_suggestions(self, validator) -> None:
        request = QueryRequest(
            collection="orders", predicate={"status": "paid", "crt_at": "2025-06"}
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, InvalidFieldsOutcome)
        assert outcome.invalid_fields == ["crt_at"]
        assert outcome.suggestions["crt_at"][0].field == "createdAt"
        payload = outcome.to_dict()
        assert payload["error"] == "INVALID_FILTER_FIELDS"
        assert "createdAt" in payload["schema_fields"]

    def test_nested_invalid_fields_found(self, validator) -> None:
        request = QueryRequest(
            collection="orders",
            predicate={"$or": [{"status": "paid"}, {"$and": [{"totl": {"$gt": 5}}]}]},
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, InvalidFieldsOutcome)
        assert outcome.invalid_fields == ["totl"]

    def test_invalid_key(self, validator) -> None:
        request = QueryRequest(collection="orders", operation="sum", key="amout")
        outcome = validator.validate(request)
        assert isinstance(outcome, InvalidFieldsOutcome)
        assert outcome.invalid_fields == ["amout"]
        assert outcome.suggestions["amout"][0].field == "amount"

    def test_dotted_paths_check_top_level_field(self, validator) -> None:
        request = QueryRequest(collection="orders", predicate={"status.code": 1, "_id": "o1"})
        assert isinstance(validator.validate(request), ValidOutcome)

    def test_aggregate_pipeline_fields(self, validator) -> None:
        request = QueryRequest(
            collection="orders",
            operation=Operation.AGGREGATE,
            pipeline=[
                {"$match": {"createdAt": "2025"}},
                {"$group": {"_id": "$customer", "total": {"$sum": "$amount"}}},
                {"$match": {"total": {"$gt": 10}}},
            ],
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, InvalidFieldsOutcome)
        assert outcome.invalid_fields == ["customer"]
        assert outcome.to_dict()["error"] == "INVALID_PIPELINE_FIELDS"

    def test_aggregate_valid_pipeline_normalized(self, validator) -> None:
        request = QueryRequest(
            collection="orders",
            operation=Operation.AGGREGATE,
            pipeline=[
                {"$match": {"createdAt": "2025"}},
                {"$group": {"_id": "$customerName", "total": {"$sum": "$amount"}}},
                {"$match": {"total": {"$gt": 10}}},
            ],
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, ValidOutcome)
        assert outcome.pipeline[0]["$match"]["createdAt"]["$gte"] == datetime(
            2025, 1, 1, tzinfo=timezone.utc
        )

    def test_match_after_add_fields_is_checked(self, validator) -> None:
        """Should still check filter fields placed after an $addFields stage."""
        request = QueryRequest(
            collection="orders",
            operation=Operation.AGGREGATE,
            pipeline=[{"$addFields": {"n": 1}}, {"$match": {"crt_at": "2025-06"}}],
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, InvalidFieldsOutcome)
        assert outcome.invalid_fields == ["crt_at"]
        assert outcome.suggestions["crt_at"][0].field == "createdAt"

    @pytest.mark.parametrize(
        "stage",
        [
            {"$unwind": "$customerName"},
            {"$set": {"n": 1}},
            {"$unset": "customerName"},
            {"$limit": 5},
            {"$lookup": {"from": "customers", "localField": "customerName",
                         "foreignField": "name", "as": "customer"}},
        ],
    )
    def test_field_preserving_stages_keep_checking(self, validator, stage) -> None:
        request = QueryRequest(
            collection="orders",
            operation=Operation.AGGREGATE,
            pipeline=[stage, {"$match": {"stauts": "paid"}}],
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, InvalidFieldsOutcome)
        assert outcome.invalid_fields == ["stauts"]

    def test_added_fields_are_allowed(self, validator) -> None:
        request = QueryRequest(
            collection="orders",
            operation=Operation.AGGREGATE,
            pipeline=[
                {"$addFields": {"month": {"$month": "$createdAt"}}},
                {"$match": {"month": 6, "status": "paid"}},
                {"$sort": {"month": 1}},
            ],
        )
        assert isinstance(validator.validate(request), ValidOutcome)

    def test_match_after_shape_replacing_stage_is_not_checked(self, validator) -> None:
        request = QueryRequest(
            collection="orders",
            operation=Operation.AGGREGATE,
            pipeline=[
                {"$project": {"status": 1, "doubled": {"$multiply": ["$amount", 2]}}},
                {"$match": {"doubled": {"$gt": 10}}},
            ],
        )
        assert isinstance(validator.validate(request), ValidOutcome)

    def test_schema_override_bypasses_cache(self) -> None:
        validator = QueryValidator(SchemaCache())
        request = QueryRequest(
            collection="events",
            predicate={"when": "2024"},
            schema_override={"when": FieldType.DATE},
        )
        outcome = validator.validate(request)
        assert isinstance(outcome, ValidOutcome)
        assert outcome.predicate["when"]["$lt"] == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_empty_predicate_is_valid(self, validator) -> None:
        outcome = validator.validate(QueryRequest(collection="orders"))
        assert isinstance(outcome, ValidOutcome)
        assert outcome.predicate == {}


def test_referenced_fields_keep_order() -> None:
    request = QueryRequest(
        collection="orders",
        operation="distinct",
        key="status",
        predicate={"amount": {"$gt": 1}, "$expr": {"$gt": ["$amount", "$discount"]}},
    )
    assert referenced_fields(request) == ["amount", "discount", "status"]
