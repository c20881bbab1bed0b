"""MongoDB adapter for the query guard."""

from query_guard.adapters.mongodb.store import MongoDocumentStore

__all__ = ["MongoDocumentStore"]
