"""
Predicate and pipeline walkers.

Predicates are parsed into a small closed set of node types so field
extraction, date normalization and shape comparison all recurse over the
same structure instead of over raw dictionaries.
"""

import re
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field


LOGICAL_OPERATORS = ("$and", "$or", "$nor")
FILTER_STAGE = "$match"

# Stages whose output documents no longer have the stored shape
SHAPE_REPLACING_STAGES = frozenset(
    {
        "$group",
        "$project",
        "$replaceRoot",
        "$replaceWith",
        "$facet",
        "$bucket",
        "$bucketAuto",
        "$count",
        "$sortByCount",
    }
)

FIELD_REF_RE = re.compile(r"^\$([A-Za-z_][A-Za-z0-9_]*)(?:\.[A-Za-z0-9_.]*)?$")


class Comparison(BaseModel):
    """A field compared against a value or an operator object."""

    field: str
    condition: Any = None


class Opaque(BaseModel):
    """A top-level operator such as ``$expr`` or ``$text``."""

    key: str
    value: Any = None


class Logical(BaseModel):
    """A combinator over sub-predicates. The root is an implicit ``$and``."""

    operator: str = "$and"
    children: List["Node"] = Field(default_factory=list)


Node = Union[Comparison, Logical, Opaque]
Logical.model_rebuild()


class Stage(BaseModel):
    """One pipeline stage."""

    name: str
    body: Any = None


def parse_predicate(predicate: Optional[Dict[str, Any]]) -> Logical:
    """
    Parse a predicate dictionary into a node tree.

    Each element of a combinator array is parsed as its own implicit ``$and``.
    Non-dictionary elements inside combinator arrays are dropped.

    Args:
        predicate: Raw predicate, e.g. ``{"status": "paid", "$or": [...]}``

    Returns:
        Root Logical node
    """
    children: List[Node] = []
    for key, value in (predicate or {}).items():
        if key in LOGICAL_OPERATORS and isinstance(value, list):
            children.append(
                Logical(
                    operator=key,
                    children=[parse_predicate(v) for v in value if isinstance(v, dict)],
                )
            )
        elif key.startswith("$"):
            children.append(Opaque(key=key, value=value))
        else:
            children.append(Comparison(field=key, condition=value))
    return Logical(operator="$and", children=children)


def render_predicate(node: Logical) -> Dict[str, Any]:
    """Turn a parsed root node back into a predicate dictionary."""
    rendered: Dict[str, Any] = {}
    for child in node.children:
        if isinstance(child, Comparison):
            rendered[child.field] = child.condition
        elif isinstance(child, Opaque):
            rendered[child.key] = child.value
        else:
            rendered[child.operator] = [render_predicate(c) for c in child.children]
    return rendered


def parse_pipeline(pipeline: Optional[List[Dict[str, Any]]]) -> List[Stage]:
    stages = []
    for raw in pipeline or []:
        if not isinstance(raw, dict):
            continue
        for name, body in raw.items():
            stages.append(Stage(name=name, body=body))
    return stages


def iter_fields(node: Union[Dict[str, Any], Node]) -> Iterator[str]:
    """
    Yield every field name referenced by a predicate, in document order.

    Comparison conditions are terminal: operator objects are not inspected
    for further field names.
    """
    if isinstance(node, dict):
        node = parse_predicate(node)
    if isinstance(node, Comparison):
        yield node.field
    elif isinstance(node, Logical):
        for child in node.children:
            yield from iter_fields(child)


def collect_fields(predicate: Union[Dict[str, Any], Node, None]) -> Set[str]:
    """Return the set of field names referenced by a predicate."""
    if predicate is None:
        return set()
    return set(iter_fields(predicate))


def _base(name: str) -> str:
    return name.split(".", 1)[0]


def added_fields(stage: Stage) -> List[str]:
    """Top-level names a field-preserving stage adds to each document."""
    body = stage.body
    if stage.name in ("$addFields", "$set") and isinstance(body, dict):
        return [_base(key) for key in body]
    if stage.name == "$lookup" and isinstance(body, dict) and isinstance(body.get("as"), str):
        return [_base(body["as"])]
    if stage.name == "$unwind" and isinstance(body, dict):
        index = body.get("includeArrayIndex")
        if isinstance(index, str):
            return [_base(index)]
    return []


def _source_stages(
    pipeline: Optional[List[Dict[str, Any]]], computed: FrozenSet[str] = frozenset()
) -> List[Tuple[Stage, FrozenSet[str]]]:
    """
    Stages that still see stored documents, up to and including the first
    shape-replacing stage.

    Each stage comes with the names computed by earlier stages; references to
    those names do not address stored fields.
    """
    stages = []
    for stage in parse_pipeline(pipeline):
        stages.append((stage, computed))
        if stage.name in SHAPE_REPLACING_STAGES:
            break
        computed = computed | frozenset(added_fields(stage))
    return stages


def _iter_pipeline_fields(
    pipeline: Optional[List[Dict[str, Any]]],
    source_only: bool,
    computed: FrozenSet[str] = frozenset(),
) -> Iterator[str]:
    if source_only:
        stages = _source_stages(pipeline, computed)
    else:
        stages = [(stage, computed) for stage in parse_pipeline(pipeline)]
    for stage, known in stages:
        if stage.name == FILTER_STAGE and isinstance(stage.body, dict):
            names: Iterable[str] = iter_fields(stage.body)
        elif source_only and stage.name == "$sort" and isinstance(stage.body, dict):
            names = stage.body.keys()
        else:
            continue
        for name in names:
            if _base(name) not in known:
                yield name


def iter_pipeline_fields(
    pipeline: Optional[List[Dict[str, Any]]], source_only: bool = False
) -> Iterator[str]:
    yield from _iter_pipeline_fields(pipeline, source_only)


def collect_pipeline_fields(
    pipeline: Optional[List[Dict[str, Any]]], source_only: bool = False
) -> Set[str]:
    """
    Return field names from the filter stages of a pipeline.

    Args:
        pipeline: List of stage objects
        source_only: Only look at stages that still see stored documents,
            include the keys of ``$sort`` stages among them and skip names
            added by earlier ``$addFields``/``$set``/``$lookup`` stages

    Returns:
        Set of field names
    """
    return set(iter_pipeline_fields(pipeline, source_only=source_only))


def iter_field_refs(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        match = FIELD_REF_RE.match(value)
        if match:
            yield match.group(1)
    elif isinstance(value, dict):
        for v in value.values():
            yield from iter_field_refs(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from iter_field_refs(v)


def collect_field_refs(value: Any) -> Set[str]:
    """
    Return the base names of ``"$field.path"`` references inside a value.

    ``"$$ROOT"`` style variables are not field references and are ignored.
    """
    return set(iter_field_refs(value))


def iter_expr_refs(node: Union[Dict[str, Any], Node]) -> Iterator[str]:
    """Yield field references used inside ``$expr`` clauses of a predicate."""
    if isinstance(node, dict):
        node = parse_predicate(node)
    if isinstance(node, Opaque) and node.key == "$expr":
        yield from iter_field_refs(node.value)
    elif isinstance(node, Logical):
        for child in node.children:
            yield from iter_expr_refs(child)


def _stage_refs(stage: Stage, computed: FrozenSet[str]) -> Iterator[str]:
    if stage.name == FILTER_STAGE:
        # Plain filter values are literals; only $expr holds expressions
        if isinstance(stage.body, dict):
            yield from iter_expr_refs(stage.body)
    elif stage.name == "$lookup" and isinstance(stage.body, dict):
        # The sub-pipeline addresses the foreign collection
        local = stage.body.get("localField")
        if isinstance(local, str):
            yield _base(local)
        yield from iter_field_refs(stage.body.get("let", {}))
    elif stage.name == "$facet" and isinstance(stage.body, dict):
        for sub_pipeline in stage.body.values():
            if isinstance(sub_pipeline, list):
                yield from _iter_source_field_refs(sub_pipeline, computed)
                yield from _iter_pipeline_fields(sub_pipeline, True, computed)
    elif stage.name != "$unionWith":
        yield from iter_field_refs(stage.body)


def _iter_source_field_refs(
    pipeline: Optional[List[Dict[str, Any]]], computed: FrozenSet[str]
) -> Iterator[str]:
    for stage, known in _source_stages(pipeline, computed):
        for ref in _stage_refs(stage, known):
            if ref not in known:
                yield ref


def iter_source_field_refs(pipeline: Optional[List[Dict[str, Any]]]) -> Iterator[str]:
    yield from _iter_source_field_refs(pipeline, frozenset())


def collect_source_field_refs(pipeline: Optional[List[Dict[str, Any]]]) -> Set[str]:
    """
    Return field references that still address stored document fields.

    Stages are scanned up to and including the first shape-replacing stage.
    Names added by earlier field-preserving stages are skipped.
    """
    return set(iter_source_field_refs(pipeline))


def predicate_shape(predicate: Union[Dict[str, Any], Node, None]) -> Tuple:
    """
    Return the logical skeleton of a predicate.

    Field names and values are erased; combinators, leaf counts and
    top-level operators are kept. Sibling order does not matter.
    """
    if predicate is None:
        predicate = {}
    if isinstance(predicate, dict):
        predicate = parse_predicate(predicate)
    if isinstance(predicate, Comparison):
        return ("cmp",)
    if isinstance(predicate, Opaque):
        return ("op", predicate.key)
    children = sorted((predicate_shape(c) for c in predicate.children), key=repr)
    return (predicate.operator, tuple(children))


def pipeline_shape(pipeline: Optional[List[Dict[str, Any]]]) -> Tuple[str, ...]:
    """Return the stage-name sequence of a pipeline."""
    return tuple(stage.name for stage in parse_pipeline(pipeline))
