"""Tests for date literal normalization."""

from datetime import datetime, timezone

import pytest

from query_guard.core.models import FieldType
from query_guard.query.dates import (
    normalize_condition,
    normalize_pipeline,
    normalize_predicate,
    parse_absolute,
    partial_range,
)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


TYPES = {"createdAt": FieldType.DATE, "status": FieldType.STRING, "amount": FieldType.NUMBER}


class TestParsing:
    """Absolute and partial date parsing."""

    def test_absolute_requires_full_date(self) -> None:
        assert parse_absolute("2025-06-15") == utc(2025, 6, 15)
        assert parse_absolute("2025-06") is None
        assert parse_absolute("2025") is None
        assert parse_absolute("yesterday") is None

    def test_absolute_handles_zulu_and_offsets(self) -> None:
        assert parse_absolute("2025-06-15T10:30:00Z") == utc(2025, 6, 15, 10, 30)
        assert parse_absolute("2025-06-15T12:30:00+02:00") == utc(2025, 6, 15, 10, 30)

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2025", (utc(2025, 1, 1), utc(2026, 1, 1))),
            ("2025-06", (utc(2025, 6, 1), utc(2025, 7, 1))),
            ("2025-12", (utc(2025, 12, 1), utc(2026, 1, 1))),
            ("2025-06-15", (utc(2025, 6, 15), utc(2025, 6, 16))),
            ("2025-xx", (utc(2025, 1, 1), utc(2026, 1, 1))),
            ("2025-06-XX", (utc(2025, 6, 1), utc(2025, 7, 1))),
        ],
    )
    def test_partial_ranges(self, value, expected) -> None:
        """Should expand partial dates into half-open UTC ranges."""
        assert partial_range(value) == expected

    def test_invalid_partial(self) -> None:
        assert partial_range("2025-13") is None
        assert partial_range("2025-02-30") is None
        assert partial_range("June") is None


class TestNormalizeCondition:
    """Normalization of a single date field condition."""

    def test_bare_year_becomes_range(self) -> None:
        assert normalize_condition("2025") == {"$gte": utc(2025, 1, 1), "$lt": utc(2026, 1, 1)}

    def test_bare_full_day_is_exact_timestamp(self) -> None:
        assert normalize_condition("2025-06-15") == utc(2025, 6, 15)

    def test_eq_with_day_becomes_day_range(self) -> None:
        assert normalize_condition({"$eq": "2025-06-15"}) == {
            "$gte": utc(2025, 6, 15),
            "$lt": utc(2025, 6, 16),
        }

    def test_range_operators_widen_to_granularity(self) -> None:
        assert normalize_condition({"$gt": "2025-06"}) == {"$gte": utc(2025, 7, 1)}
        assert normalize_condition({"$gte": "2025-06"}) == {"$gte": utc(2025, 6, 1)}
        assert normalize_condition({"$lt": "2025-06"}) == {"$lt": utc(2025, 6, 1)}
        assert normalize_condition({"$lte": "2025-06"}) == {"$lt": utc(2025, 7, 1)}

    def test_list_operators_parse_elementwise(self) -> None:
        assert normalize_condition({"$in": ["2025-06-15", "nope"]}) == {
            "$in": [utc(2025, 6, 15), "nope"]
        }

    def test_non_strings_unchanged(self) -> None:
        assert normalize_condition(None) is None
        assert normalize_condition({"$exists": True}) == {"$exists": True}
        assert normalize_condition("not a date") == "not a date"


class TestNormalizePredicate:
    """Normalization guided by the schema."""

    def test_orders_example(self) -> None:
        """Should turn a month on a date field into a range and keep other fields."""
        normalized = normalize_predicate({"status": "paid", "createdAt": "2025-06"}, TYPES)
        assert normalized == {
            "status": "paid",
            "createdAt": {"$gte": utc(2025, 6, 1), "$lt": utc(2025, 7, 1)},
        }

    def test_non_date_fields_untouched(self) -> None:
        predicate = {"status": "2025", "amount": "2025-06"}
        assert normalize_predicate(predicate, TYPES) == predicate

    def test_recurses_into_combinators(self) -> None:
        predicate = {"$or": [{"createdAt": "2024"}, {"$and": [{"createdAt": {"$lte": "2025-01"}}]}]}
        assert normalize_predicate(predicate, TYPES) == {
            "$or": [
                {"createdAt": {"$gte": utc(2024, 1, 1), "$lt": utc(2025, 1, 1)}},
                {"$and": [{"createdAt": {"$lt": utc(2025, 2, 1)}}]},
            ]
        }

    def test_input_not_modified(self) -> None:
        predicate = {"createdAt": {"$eq": "2025"}}
        normalize_predicate(predicate, TYPES)
        assert predicate == {"createdAt": {"$eq": "2025"}}

    @pytest.mark.parametrize(
        "predicate",
        [
            {"createdAt": "2025"},
            {"createdAt": "2025-06-15T10:00:00Z"},
            {"createdAt": {"$eq": "2025-06-15", "$ne": "2025-06-16"}},
            {"createdAt": {"$gt": "2025", "$lte": "2026-03"}},
            {"$or": [{"createdAt": "2025-xx-xx"}, {"status": "paid"}]},
            {"createdAt": ["2025-01-01", "2025-02-01"]},
        ],
    )
    def test_idempotent(self, predicate) -> None:
        """Normalizing normalized output changes nothing."""
        once = normalize_predicate(predicate, TYPES)
        assert normalize_predicate(once, TYPES) == once

    def test_pipeline_match_stages(self) -> None:
        pipeline = [
            {"$match": {"createdAt": "2025"}},
            {"$group": {"_id": "$status", "n": {"$sum": 1}}},
        ]
        assert normalize_pipeline(pipeline, TYPES) == [
            {"$match": {"createdAt": {"$gte": utc(2025, 1, 1), "$lt": utc(2026, 1, 1)}}},
            {"$group": {"_id": "$status", "n": {"$sum": 1}}},
        ]
