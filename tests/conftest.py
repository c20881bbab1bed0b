"""
Shared test fixtures and fakes.

Provides: in-memory document store, stub reasoning client, stub vector
backend with call counters, stub embedding provider, schema cache fixtures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from query_guard.core.models import (
    CorrectionProposal,
    CorrectionRequest,
    FieldMeta,
    FieldType,
    SchemaCacheModel,
    TableMeta,
    VectorRecord,
)
from query_guard.schema.cache import SchemaCache


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$eq" and value != operand:
                return False
            if op == "$ne" and value == operand:
                return False
            if op == "$gt" and not (value is not None and value > operand):
                return False
            if op == "$gte" and not (value is not None and value >= operand):
                return False
            if op == "$lt" and not (value is not None and value < operand):
                return False
            if op == "$lte" and not (value is not None and value <= operand):
                return False
            if op == "$in" and value not in operand:
                return False
            if op == "$nin" and value in operand:
                return False
        return True
    return value == condition


def matches(doc: Dict[str, Any], predicate: Dict[str, Any]) -> bool:
    """Evaluate the subset of the query language used in tests."""
    for key, condition in predicate.items():
        if key == "$and":
            if not all(matches(doc, p) for p in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, p) for p in condition):
                return False
        elif key == "$nor":
            if any(matches(doc, p) for p in condition):
                return False
        elif not _matches_condition(doc.get(key), condition):
            return False
    return True


class FakeDocumentStore:
    """In-memory document store recording every call."""

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.collections = collections or {}
        self.calls: List[tuple] = []
        self.aggregate_override: Optional[List[Dict[str, Any]]] = None
        self.fail_with: Optional[Exception] = None

    def _docs(self, collection: str) -> List[Dict[str, Any]]:
        return self.collections.get(collection, [])

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    def list_collections(self) -> List[str]:
        return sorted(self.collections)

    def sample(self, collection: str, size: int) -> List[Dict[str, Any]]:
        return [dict(d) for d in self._docs(collection)[:size]]

    def find(self, collection, predicate, projection=None, sort=None, skip=0, limit=20):
        self._record("find", collection, predicate, projection, sort, skip, limit)
        docs = [d for d in self._docs(collection) if matches(d, predicate)]
        if sort:
            for key, direction in reversed(list(sort.items())):
                docs.sort(key=lambda d: d.get(key), reverse=direction == -1)
        docs = docs[skip:skip + limit]
        if projection:
            keep = {k for k, v in projection.items() if v}
            docs = [{k: v for k, v in d.items() if k in keep or k == "_id"} for d in docs]
        return [dict(d) for d in docs]

    def count(self, collection, predicate):
        self._record("count", collection, predicate)
        return sum(1 for d in self._docs(collection) if matches(d, predicate))

    def distinct(self, collection, key, predicate):
        self._record("distinct", collection, key, predicate)
        values = []
        for d in self._docs(collection):
            if matches(d, predicate) and key in d and d[key] not in values:
                values.append(d[key])
        return values

    def aggregate(self, collection, pipeline):
        self._record("aggregate", collection, pipeline)
        if self.aggregate_override is not None:
            return self.aggregate_override

        docs = [dict(d) for d in self._docs(collection)]
        for stage in pipeline:
            (name, body), = stage.items()
            if name == "$match":
                docs = [d for d in docs if matches(d, body)]
            elif name == "$skip":
                docs = docs[body:]
            elif name == "$limit":
                docs = docs[:body]
            elif name == "$group" and body.get("_id") is None:
                docs = self._group_all(docs, body)
        return docs

    @staticmethod
    def _group_all(docs, body):
        if not docs:
            return []
        row: Dict[str, Any] = {"_id": None}
        for out, spec in body.items():
            if out == "_id":
                continue
            (op, ref), = spec.items()
            values = [d.get(ref[1:]) for d in docs if d.get(ref[1:]) is not None]
            if op == "$sum":
                row[out] = sum(values)
            elif op == "$min":
                row[out] = min(values) if values else None
            elif op == "$max":
                row[out] = max(values) if values else None
            elif op == "$avg":
                row[out] = sum(values) / len(values) if values else None
        return [row]


class StubReasoningClient:
    """Returns queued proposals and records every request."""

    def __init__(self, *proposals: Optional[CorrectionProposal]):
        self.proposals = list(proposals)
        self.requests: List[CorrectionRequest] = []

    def propose(self, request: CorrectionRequest) -> Optional[CorrectionProposal]:
        self.requests.append(request)
        if not self.proposals:
            return None
        return self.proposals.pop(0)


class StubVectorBackend:
    """Vector backend with a switchable managed index and call counters."""

    def __init__(self, records: Optional[List[VectorRecord]] = None, managed_fails: bool = False):
        self.records = records or []
        self.managed_fails = managed_fails
        self.managed_hits: List[tuple] = []
        self.vector_search_calls = 0
        self.fetch_calls = 0
        self.last_vector_search: Dict[str, Any] = {}

    def vector_search(self, collection, index, path, query_vector, num_candidates, limit, filter=None):
        self.vector_search_calls += 1
        self.last_vector_search = {
            "collection": collection,
            "index": index,
            "path": path,
            "num_candidates": num_candidates,
            "limit": limit,
            "filter": filter,
        }
        if self.managed_fails:
            raise RuntimeError("$vectorSearch is not allowed")
        return list(self.managed_hits)

    def fetch_vector_records(self, collection, filter=None, path="embedding"):
        self.fetch_calls += 1
        if not filter:
            return list(self.records)
        return [r for r in self.records if matches(r.metadata, filter)]


class StubEmbeddingProvider:
    """Deterministic embeddings from a lookup table."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, fail: bool = False):
        self.vectors = vectors or {}
        self.fail = fail
        self.calls = 0

    def embed_query(self, text: str) -> List[float]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("provider down")
        return self.vectors.get(text, [0.0, 0.0, 1.0])

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("provider down")
        return [self.vectors.get(t, [0.0, 0.0, 1.0]) for t in texts]


@pytest.fixture
def orders_table() -> TableMeta:
    return TableMeta(
        collection_name="orders",
        display_name="Orders",
        keywords=["orders", "purchases"],
        fields=[
            FieldMeta(name="_id", type=FieldType.OBJECT_ID),
            FieldMeta(name="status", type=FieldType.STRING, description="Payment status"),
            FieldMeta(name="createdAt", type=FieldType.DATE, display_name="Created at"),
            FieldMeta(name="amount", type=FieldType.NUMBER, description="Order total amount"),
            FieldMeta(name="customerName", type=FieldType.STRING),
        ],
    )


@pytest.fixture
def schema_cache(orders_table, tmp_path) -> SchemaCache:
    return SchemaCache(
        SchemaCacheModel(tables=[orders_table], version=1),
        path=tmp_path / "schema-cache.json",
    )


@pytest.fixture
def orders() -> List[Dict[str, Any]]:
    return [
        {
            "_id": "o1",
            "status": "paid",
            "createdAt": datetime(2025, 6, 3, tzinfo=timezone.utc),
            "amount": 40,
            "customerName": "Ada",
        },
        {
            "_id": "o2",
            "status": "paid",
            "createdAt": datetime(2025, 7, 9, tzinfo=timezone.utc),
            "amount": 15,
            "customerName": "Grace",
        },
        {
            "_id": "o3",
            "status": "pending",
            "createdAt": datetime(2025, 6, 20, tzinfo=timezone.utc),
            "amount": 99,
            "customerName": "Linus",
        },
    ]


@pytest.fixture
def store(orders) -> FakeDocumentStore:
    return FakeDocumentStore({"orders": orders})
