"""
Type mapping utilities.

Infers field types from sampled values and normalizes declared type names
coming from curated overrides or caller-supplied type maps.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping

from bson import Decimal128, ObjectId

from query_guard.core.models import FieldType


class TypeMapper:
    """Maps raw values and database type names to ``FieldType``."""

    # Declared type names seen in MongoDB tooling, extended JSON and overrides
    COMMON_TYPE_MAP: Dict[str, FieldType] = {
        "string": FieldType.STRING,
        "str": FieldType.STRING,
        "text": FieldType.STRING,
        "keyword": FieldType.STRING,
        "number": FieldType.NUMBER,
        "int": FieldType.NUMBER,
        "integer": FieldType.NUMBER,
        "long": FieldType.NUMBER,
        "double": FieldType.NUMBER,
        "float": FieldType.NUMBER,
        "decimal": FieldType.NUMBER,
        "boolean": FieldType.BOOLEAN,
        "bool": FieldType.BOOLEAN,
        "date": FieldType.DATE,
        "datetime": FieldType.DATE,
        "timestamp": FieldType.DATE,
        "object": FieldType.OBJECT,
        "dict": FieldType.OBJECT,
        "array": FieldType.ARRAY,
        "list": FieldType.ARRAY,
        "objectid": FieldType.OBJECT_ID,
        "null": FieldType.NULL,
    }

    @staticmethod
    def infer_type(value: Any) -> FieldType:
        """
        Infer the field type of a single sampled value.

        Extended JSON wrappers (``{"$oid": ...}``, ``{"$date": ...}``) are
        recognized so exported documents infer the same way as live ones.

        Args:
            value: Raw value from a document

        Returns:
            Inferred FieldType
        """
        if value is None:
            return FieldType.NULL
        if isinstance(value, (list, tuple)):
            return FieldType.ARRAY
        # bool before numbers: bool is an int subclass
        if isinstance(value, bool):
            return FieldType.BOOLEAN
        if isinstance(value, (int, float, Decimal, Decimal128)):
            return FieldType.NUMBER
        if isinstance(value, str):
            return FieldType.STRING
        if isinstance(value, (datetime, date)):
            return FieldType.DATE
        if isinstance(value, ObjectId):
            return FieldType.OBJECT_ID
        if isinstance(value, Mapping):
            if value.get("$oid"):
                return FieldType.OBJECT_ID
            if value.get("$date"):
                return FieldType.DATE
        return FieldType.OBJECT

    @classmethod
    def normalize_type(cls, db_type: Any) -> FieldType:
        """
        Normalize a declared type name to a FieldType.

        Args:
            db_type: FieldType or type name string (e.g. "int", "timestamp")

        Returns:
            Normalized FieldType, STRING when the name is unknown
        """
        if isinstance(db_type, FieldType):
            return db_type
        return cls.COMMON_TYPE_MAP.get(str(db_type).strip().lower(), FieldType.STRING)

    @classmethod
    def normalize_type_map(cls, type_map: Mapping[str, Any]) -> Dict[str, FieldType]:
        """Normalize every entry of a field -> type name map."""
        return {name: cls.normalize_type(t) for name, t in type_map.items()}
