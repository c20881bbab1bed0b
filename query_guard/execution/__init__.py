"""Query execution and result formatting."""

from query_guard.execution.executor import QueryExecutor, scalar_pipeline
from query_guard.execution.result_formatter import ResultFormatter

__all__ = ["QueryExecutor", "ResultFormatter", "scalar_pipeline"]
