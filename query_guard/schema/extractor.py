"""
Schema sampling.

Infers per-collection field types by sampling documents from the store.
"""

import re
from typing import Dict, List, Optional

from query_guard.core.interfaces import IDocumentStore
from query_guard.core.logger import get_logger
from query_guard.core.models import FieldMeta, FieldType, TableMeta
from query_guard.schema.type_mappings import TypeMapper

logger = get_logger(__name__)


def generate_keywords(collection_name: str, display_name: Optional[str] = None) -> List[str]:
    """
    Generate search keywords for a collection.

    Splits camelCase, snake_case and kebab-case names into lowercase tokens
    and adds the full names.
    """
    keywords: List[str] = []
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", collection_name).lower()
    keywords.extend(t for t in re.split(r"[_\-\s]+", spaced) if len(t) > 1)
    keywords.append(collection_name.lower())

    if display_name:
        keywords.append(display_name)
        keywords.extend(w.lower() for w in display_name.split() if len(w) > 1)

    return list(dict.fromkeys(keywords))


class SchemaSampler:
    """
    Builds table metadata by sampling documents.

    Since the store is schemaless, the type of each key is fixed by the first
    document that contains it. There is no cross-document reconciliation.
    """

    def __init__(self, store: IDocumentStore, sample_size: int = 100):
        """
        Initialize schema sampler.

        Args:
            store: Document store to sample from
            sample_size: Default number of documents to sample per collection
        """
        self.store = store
        self.sample_size = sample_size

    def sample_collection(
        self, collection: str, sample_size: Optional[int] = None
    ) -> TableMeta:
        """
        Sample a collection and infer its fields.

        Args:
            collection: Collection name
            sample_size: Override for the number of documents to sample

        Returns:
            TableMeta with one FieldMeta per observed key, in first-seen order
        """
        size = sample_size or self.sample_size
        logger.info("Sampling schema for %s (up to %d documents)", collection, size)

        seen: Dict[str, FieldType] = {}
        count = 0
        for doc in self.store.sample(collection, size):
            if not isinstance(doc, dict):
                continue
            count += 1
            for key, value in doc.items():
                if key not in seen:
                    seen[key] = TypeMapper.infer_type(value)

        logger.info("Sampled %d documents from %s: %d fields", count, collection, len(seen))
        return TableMeta(
            collection_name=collection,
            keywords=generate_keywords(collection),
            fields=[FieldMeta(name=name, type=tp) for name, tp in seen.items()],
        )

    def sample_database(self) -> List[TableMeta]:
        """Sample every collection except the store's system collections."""
        tables = []
        for name in self.store.list_collections():
            if name.startswith("system."):
                continue
            tables.append(self.sample_collection(name))
        logger.info("Sampled %d collections", len(tables))
        return tables
