"""
Date literal normalization.

Rewrites string dates on date-typed fields into timezone-aware datetimes,
and partial dates ("2025", "2025-06", "2025-xx-xx") into half-open ranges.
Running the normalizer on its own output changes nothing.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from query_guard.core.models import FieldType
from query_guard.query.predicates import (
    FILTER_STAGE,
    Comparison,
    Logical,
    Node,
    parse_predicate,
    render_predicate,
)


PARTIAL_DATE_RE = re.compile(
    r"^(\d{4})(?:-(\d{2}|xx))?(?:-(\d{2}|xx))?$", re.IGNORECASE
)
FULL_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")

DateRange = Tuple[datetime, datetime]


def parse_absolute(value: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 string carrying at least a full calendar date.

    Args:
        value: e.g. "2025-06-15", "2025-06-15T10:30:00Z"

    Returns:
        UTC datetime, or None when the string is not an absolute date
    """
    text = value.strip()
    if not FULL_DATE_PREFIX_RE.match(text):
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _add_month(year: int, month: int) -> datetime:
    if month == 12:
        return datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(year, month + 1, 1, tzinfo=timezone.utc)


def partial_range(value: str) -> Optional[DateRange]:
    """
    Expand a partial date into a half-open UTC range.

    ``xx`` marks an unspecified month or day; the range widens to the
    enclosing year or month.

    Returns:
        (start, end) with end exclusive, or None if not a partial date
    """
    match = PARTIAL_DATE_RE.match(value.strip())
    if not match:
        return None
    year_s, month_s, day_s = match.groups()
    year = int(year_s)

    try:
        if month_s is None or month_s.lower() == "xx":
            return (
                datetime(year, 1, 1, tzinfo=timezone.utc),
                datetime(year + 1, 1, 1, tzinfo=timezone.utc),
            )
        month = int(month_s)
        if day_s is None or day_s.lower() == "xx":
            return datetime(year, month, 1, tzinfo=timezone.utc), _add_month(year, month)
        start = datetime(year, month, int(day_s), tzinfo=timezone.utc)
    except ValueError:
        return None
    return start, start + timedelta(days=1)


def _parse_leaf(value: Any) -> Any:
    if isinstance(value, str):
        parsed = parse_absolute(value)
        return parsed if parsed is not None else value
    return value


def _set_lower(bounds: Dict[str, Any], value: datetime) -> None:
    current = bounds.get("$gte")
    if not isinstance(current, datetime) or value > current:
        bounds["$gte"] = value


def _set_upper(bounds: Dict[str, Any], value: datetime) -> None:
    current = bounds.get("$lt")
    if not isinstance(current, datetime) or value < current:
        bounds["$lt"] = value


def _normalize_operators(condition: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for op, value in condition.items():
        rng = partial_range(value) if isinstance(value, str) else None
        if rng is not None and op in ("$eq", "$gt", "$gte", "$lt", "$lte"):
            start, end = rng
            if op == "$eq":
                _set_lower(normalized, start)
                _set_upper(normalized, end)
            elif op == "$gt":
                _set_lower(normalized, end)
            elif op == "$gte":
                _set_lower(normalized, start)
            elif op == "$lt":
                _set_upper(normalized, start)
            else:
                _set_upper(normalized, end)
        elif op == "$not" and isinstance(value, dict):
            normalized[op] = normalize_condition(value)
        elif isinstance(value, list):
            normalized[op] = [_parse_leaf(v) for v in value]
        elif op in ("$gte", "$lt") and op in normalized:
            # Already bounded by a partial date; keep the tighter bound
            leaf = _parse_leaf(value)
            if isinstance(leaf, datetime):
                (_set_lower if op == "$gte" else _set_upper)(normalized, leaf)
            else:
                normalized[op] = leaf
        else:
            normalized[op] = _parse_leaf(value)
    return normalized


def normalize_condition(condition: Any) -> Any:
    """
    Normalize the condition of one date-typed field.

    - absolute string: exact datetime
    - partial string: ``{"$gte": start, "$lt": end}``
    - operator object: range operators widened to partial-date bounds,
      other string leaves parsed, lists parsed element-wise
    - list: elements parsed
    - anything else: unchanged
    """
    if isinstance(condition, str):
        parsed = parse_absolute(condition)
        if parsed is not None:
            return parsed
        rng = partial_range(condition)
        if rng is not None:
            return {"$gte": rng[0], "$lt": rng[1]}
        return condition
    if isinstance(condition, list):
        return [_parse_leaf(v) for v in condition]
    if isinstance(condition, dict) and condition and all(
        isinstance(k, str) and k.startswith("$") for k in condition
    ):
        return _normalize_operators(condition)
    return condition


def _normalize_node(node: Node, type_map: Dict[str, FieldType]) -> Node:
    if isinstance(node, Logical):
        return Logical(
            operator=node.operator,
            children=[_normalize_node(c, type_map) for c in node.children],
        )
    if isinstance(node, Comparison) and type_map.get(node.field) == FieldType.DATE:
        return Comparison(field=node.field, condition=normalize_condition(node.condition))
    return node


def normalize_predicate(
    predicate: Optional[Dict[str, Any]], type_map: Dict[str, FieldType]
) -> Dict[str, Any]:
    """
    Normalize date literals in a predicate.

    Args:
        predicate: Raw predicate
        type_map: Field -> declared type of the collection

    Returns:
        New predicate; the input is not modified
    """
    if not predicate:
        return {}
    return render_predicate(_normalize_node(parse_predicate(predicate), type_map))


def normalize_pipeline(
    pipeline: Optional[List[Dict[str, Any]]], type_map: Dict[str, FieldType]
) -> List[Dict[str, Any]]:
    """Normalize date literals inside the ``$match`` stages of a pipeline."""
    normalized = []
    for stage in pipeline or []:
        if (
            isinstance(stage, dict)
            and len(stage) == 1
            and isinstance(stage.get(FILTER_STAGE), dict)
        ):
            normalized.append({FILTER_STAGE: normalize_predicate(stage[FILTER_STAGE], type_map)})
        else:
            normalized.append(stage)
    return normalized
