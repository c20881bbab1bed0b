"""
Result formatting utilities.

Converts store values into JSON-friendly payloads for agent-facing callers.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from bson import Decimal128, ObjectId

from query_guard.core.models import QueryResult


class ResultFormatter:
    """
    Formats query results into plain JSON structures.
    """

    @staticmethod
    def format_value(value: Any) -> Any:
        """
        Convert a single value recursively.

        ObjectId becomes its hex string, datetimes become ISO-8601 strings
        and decimals become floats.
        """
        if isinstance(value, ObjectId):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Decimal128):
            return float(value.to_decimal())
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, dict):
            return {k: ResultFormatter.format_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [ResultFormatter.format_value(v) for v in value]
        return value

    @staticmethod
    def format_result(result: QueryResult) -> Dict[str, Any]:
        """
        Format a query result.

        Args:
            result: Result returned by the executor

        Returns:
            Formatted result dictionary
        """
        formatted: Dict[str, Any] = {
            "operation": result.operation.value,
            "success": True,
        }
        if result.documents or result.value is None:
            formatted["documents"] = ResultFormatter.format_value(result.documents)
        if result.count is not None:
            formatted["count"] = result.count
        if result.value is not None:
            formatted["value"] = ResultFormatter.format_value(result.value)
        if result.total is not None:
            formatted["total"] = result.total
        return formatted
