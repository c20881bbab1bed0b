"""
Schema metadata cache.

Holds the field -> type maps used by the validator, persisted as a versioned
JSON artifact so the query path never has to sample documents.
"""

import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from query_guard.core.logger import get_logger
from query_guard.core.models import FieldMeta, FieldType, SchemaCacheModel, TableMeta
from query_guard.schema.overrides import SchemaOverrides

logger = get_logger(__name__)

DEFAULT_CACHE_PATH = Path("data") / "cache" / "schema-cache.json"


def apply_overrides(
    tables: Iterable[TableMeta], overrides: Optional[SchemaOverrides]
) -> List[TableMeta]:
    """
    Merge curated metadata on top of sampled tables.

    Sampled types always win; overrides only contribute names, descriptions
    and keywords. Override entries for unknown tables or fields are ignored.
    """
    merged: List[TableMeta] = []
    for table in tables:
        table_override = overrides.get(table.collection_name) if overrides else None
        if table_override is None:
            merged.append(table)
            continue

        fields: List[FieldMeta] = []
        for field in table.fields:
            field_override = table_override.fields.get(field.name)
            if field_override is None:
                fields.append(field)
                continue
            fields.append(
                field.model_copy(
                    update={
                        "display_name": field_override.display_name or field.display_name,
                        "description": field_override.description or field.description,
                    }
                )
            )

        merged.append(
            TableMeta(
                collection_name=table.collection_name,
                display_name=table_override.display_name or table.display_name,
                keywords=(
                    table_override.keywords
                    if table_override.keywords is not None
                    else table.keywords
                ),
                fields=fields,
            )
        )
    return merged


class SchemaCache:
    """
    Read-mostly store of table metadata.

    The snapshot is replaced wholesale on rebuild; readers always see either
    the old or the new snapshot, never a partial one.
    """

    def __init__(
        self,
        snapshot: Optional[SchemaCacheModel] = None,
        path: Optional[Union[str, Path]] = None,
    ):
        self._snapshot = snapshot or SchemaCacheModel()
        self.path = Path(path) if path else DEFAULT_CACHE_PATH
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "SchemaCache":
        """
        Load a persisted cache.

        A missing or unreadable artifact yields an empty cache; the query path
        then reports SchemaRequired instead of guessing.
        """
        cache_path = Path(path) if path else DEFAULT_CACHE_PATH
        if not cache_path.exists():
            logger.info("No schema cache at %s", cache_path)
            return cls(path=cache_path)

        try:
            snapshot = SchemaCacheModel.model_validate_json(
                cache_path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable schema cache %s: %s", cache_path, e)
            return cls(path=cache_path)

        logger.info(
            "Loaded schema cache v%d with %d tables", snapshot.version, len(snapshot.tables)
        )
        return cls(snapshot=snapshot, path=cache_path)

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """
        Persist the current snapshot atomically.

        Returns:
            Path of the written artifact
        """
        target = Path(path) if path else self.path
        target.parent.mkdir(parents=True, exist_ok=True)
        content = self.snapshot.model_dump_json(by_alias=True, indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info("Saved schema cache v%d to %s", self.snapshot.version, target)
        return target

    @property
    def snapshot(self) -> SchemaCacheModel:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    @property
    def tables(self) -> List[TableMeta]:
        return list(self._snapshot.tables)

    def resolve(self, collection: str) -> Optional[TableMeta]:
        """Return the metadata of a collection, or None if unknown."""
        for table in self._snapshot.tables:
            if table.collection_name == collection:
                return table
        return None

    def type_map(self, collection: str) -> Optional[Dict[str, FieldType]]:
        """Return the field -> type map, or None if the collection has no fields."""
        table = self.resolve(collection)
        if table is None or not table.fields:
            return None
        return table.type_map()

    def replace_tables(
        self,
        tables: Iterable[TableMeta],
        overrides: Optional[SchemaOverrides] = None,
    ) -> List[TableMeta]:
        """
        Upsert freshly sampled tables and bump the cache version.

        Args:
            tables: Sampled table metadata
            overrides: Curated metadata merged on top

        Returns:
            The merged tables that were stored
        """
        merged = apply_overrides(tables, overrides)
        with self._lock:
            by_name = {t.collection_name: t for t in self._snapshot.tables}
            for table in merged:
                by_name[table.collection_name] = table
            self._snapshot = SchemaCacheModel(
                tables=list(by_name.values()),
                version=self._snapshot.version + 1,
                generated_at=datetime.now(timezone.utc),
            )
        return merged

    def merge_overrides(self, overrides: SchemaOverrides) -> List[TableMeta]:
        """Apply overrides to the tables already in the cache."""
        with self._lock:
            merged = apply_overrides(self._snapshot.tables, overrides)
            self._snapshot = SchemaCacheModel(
                tables=merged,
                version=self._snapshot.version + 1,
                generated_at=datetime.now(timezone.utc),
            )
        return merged

    def search_tables(self, query: str, limit: int = 10) -> List[Tuple[TableMeta, int]]:
        """
        Rank tables by keyword match.

        Each query token scores 3 when found in the collection name, 2 in the
        display name and 1 when any keyword contains it.

        Returns:
            (table, score) pairs with score > 0, best first
        """
        tokens = [t for t in query.lower().split() if t]
        if not tokens:
            return []

        scored = []
        for table in self._snapshot.tables:
            name = table.collection_name.lower()
            display = (table.display_name or "").lower()
            keywords = [k.lower() for k in table.keywords]
            score = 0
            for token in tokens:
                if token in name:
                    score += 3
                if display and token in display:
                    score += 2
                if any(token in k for k in keywords):
                    score += 1
            if score > 0:
                scored.append((table, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]
