"""
MongoDB document store.

Implements IDocumentStore and IVectorBackend with pymongo. Predicates and
pipelines arrive already validated and normalized.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from query_guard.core.models import VectorRecord


class MongoDocumentStore:
    """
    Document store backed by a MongoDB database.

    Errors raised by pymongo are not caught here; the executor wraps them.
    """

    def __init__(
        self,
        mongo_uri: Optional[str] = None,
        database_name: Optional[str] = None,
        client: Optional[MongoClient] = None,
        database: Optional[Database] = None,
    ):
        """
        Initialize MongoDB document store.

        Args:
            mongo_uri: MongoDB connection URI
            database_name: Name of the database
            client: Existing client to reuse instead of mongo_uri
            database: Existing database handle, takes precedence over both
        """
        if database is not None:
            self.db = database
            self.client = client
        else:
            if not database_name:
                raise ValueError("database_name is required")
            self.client = client or MongoClient(mongo_uri)
            self.db = self.client[database_name]

    def _collection(self, name: str) -> Collection:
        return self.db[name]

    def list_collections(self) -> List[str]:
        return sorted(self.db.list_collection_names())

    def sample(self, collection: str, size: int) -> Iterable[Dict[str, Any]]:
        """Return up to ``size`` documents, most recently inserted first."""
        return list(self._collection(collection).find({}).sort("_id", -1).limit(size))

    def find(
        self,
        collection: str,
        predicate: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        cursor = self._collection(collection).find(predicate, projection or None)
        if sort:
            cursor = cursor.sort(list(sort.items()))
        if skip:
            cursor = cursor.skip(skip)
        return list(cursor.limit(limit))

    def count(self, collection: str, predicate: Dict[str, Any]) -> int:
        return self._collection(collection).count_documents(predicate)

    def distinct(
        self, collection: str, key: str, predicate: Dict[str, Any]
    ) -> List[Any]:
        return self._collection(collection).distinct(key, predicate)

    def aggregate(
        self, collection: str, pipeline: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        return list(self._collection(collection).aggregate(pipeline))

    def vector_search(
        self,
        collection: str,
        index: str,
        path: str,
        query_vector: List[float],
        num_candidates: int,
        limit: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Tuple[VectorRecord, float]]:
        """
        Query an Atlas vector index with ``$vectorSearch``.

        Returns:
            (record, vectorSearchScore) pairs in backend order
        """
        stage: Dict[str, Any] = {
            "index": index,
            "path": path,
            "queryVector": query_vector,
            "numCandidates": num_candidates,
            "limit": limit,
        }
        if filter:
            stage["filter"] = filter

        pipeline = [
            {"$vectorSearch": stage},
            {"$addFields": {"score": {"$meta": "vectorSearchScore"}}},
        ]
        hits = []
        for doc in self._collection(collection).aggregate(pipeline):
            score = float(doc.pop("score", 0.0))
            hits.append((self._to_record(doc, path), score))
        return hits

    def fetch_vector_records(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        path: str = "embedding",
    ) -> List[VectorRecord]:
        """Return every record matching the filter that has an embedding field."""
        predicate = dict(filter or {})
        predicate.setdefault(path, {"$exists": True})
        return [self._to_record(doc, path) for doc in self._collection(collection).find(predicate)]

    @staticmethod
    def _to_record(doc: Dict[str, Any], path: str) -> VectorRecord:
        embedding = doc.pop(path, None) or []
        doc_id = doc.pop("_id", None)
        return VectorRecord(
            id=str(doc_id),
            embedding=[float(v) for v in embedding],
            metadata=doc,
        )
