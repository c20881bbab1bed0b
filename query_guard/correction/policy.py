"""
Result productivity policy.

Decides whether an executed query produced something usable or should be
handed to the corrector.
"""

import math
from typing import Any, Dict

from pydantic import BaseModel

from query_guard.core.models import SCALAR_OPERATIONS, Operation, QueryResult


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0 or (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _is_deep_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, dict):
        return all(_is_deep_null(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return all(_is_deep_null(v) for v in value)
    return False


def is_degenerate_row(row: Dict[str, Any]) -> bool:
    """
    Whether a single aggregate row carries no information.

    The grouping key is null or missing and every other value is zero, NaN,
    null, blank or empty. A row with nothing besides the key also counts.
    """
    if not isinstance(row, dict):
        return False
    if row.get("_id") is not None:
        return False
    return all(_is_blank(v) for k, v in row.items() if k != "_id")


class ResultPolicy(BaseModel):
    """
    Tunable rules for unproductive results.

    The degenerate single-row aggregate rule can misfire on legitimate
    all-zero totals; turn it off with ``degenerate_aggregates=False``.
    """

    degenerate_aggregates: bool = True
    null_values_as_empty: bool = False

    def is_unproductive(self, result: QueryResult) -> bool:
        operation = result.operation

        if operation == Operation.COUNT:
            return not result.count
        if operation in SCALAR_OPERATIONS:
            return result.value is None
        if not result.documents:
            return True

        if (
            self.degenerate_aggregates
            and operation == Operation.AGGREGATE
            and len(result.documents) == 1
            and is_degenerate_row(result.documents[0])
        ):
            return True

        if self.null_values_as_empty and operation in (Operation.FIND, Operation.AGGREGATE):
            return all(
                isinstance(doc, dict)
                and all(_is_deep_null(v) for k, v in doc.items() if k != "_id")
                for doc in result.documents
            )
        return False
