"""
Curated schema overrides.

Overrides add human-readable names, descriptions and keywords on top of
sampled field types. Three input shapes are accepted because overrides are
written by hand as well as generated by a language model.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, TypeAdapter, ValidationError

from query_guard.core.models import CamelModel


class FieldOverride(CamelModel):
    display_name: Optional[str] = None
    description: Optional[str] = None


class TableOverride(CamelModel):
    display_name: Optional[str] = None
    keywords: Optional[List[str]] = None
    fields: Dict[str, FieldOverride] = Field(default_factory=dict)


class FieldOverrideItem(FieldOverride):
    name: str


class TableOverrideWithList(CamelModel):
    display_name: Optional[str] = None
    keywords: Optional[List[str]] = None
    fields: List[FieldOverrideItem] = Field(default_factory=list)


class NamedTableOverride(TableOverrideWithList):
    name: str


class SingleTableOverride(CamelModel):
    table: NamedTableOverride


SchemaOverrides = Dict[str, TableOverride]

_keyed = TypeAdapter(Dict[str, TableOverride])
_keyed_list = TypeAdapter(Dict[str, TableOverrideWithList])


def _from_list_shape(item: TableOverrideWithList) -> TableOverride:
    return TableOverride(
        display_name=item.display_name,
        keywords=item.keywords,
        fields={
            f.name: FieldOverride(display_name=f.display_name, description=f.description)
            for f in item.fields
        },
    )


def parse_overrides(data: Any) -> Optional[SchemaOverrides]:
    """
    Parse overrides from any of the accepted shapes.

    Shapes, tried in order:
        1. ``{table: {displayName, keywords, fields: {field: {...}}}}``
        2. ``{table: {displayName, keywords, fields: [{name, ...}]}}``
        3. ``{"table": {name, displayName, keywords, fields: [{name, ...}]}}``

    Args:
        data: Parsed JSON object

    Returns:
        Normalized overrides keyed by collection name, or None if the input
        matches no shape
    """
    if not isinstance(data, dict):
        return None

    if set(data.keys()) == {"table"}:
        try:
            single = SingleTableOverride.model_validate(data)
        except ValidationError:
            pass
        else:
            return {single.table.name: _from_list_shape(single.table)}

    try:
        return _keyed.validate_python(data)
    except ValidationError:
        pass

    try:
        keyed = _keyed_list.validate_python(data)
    except ValidationError:
        return None
    return {name: _from_list_shape(table) for name, table in keyed.items()}
