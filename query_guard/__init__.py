"""
Query Guard - schema-guarded, self-correcting document queries.

Main entry point for validating, executing and correcting queries against
document collections, plus vector similarity search.
"""

from query_guard.orchestrator import QueryGuard
from query_guard.config import QueryGuardConfig
from query_guard.core.models import QueryRequest, Operation
from query_guard.core.logger import configure_logging

__all__ = ["QueryGuard", "QueryGuardConfig", "QueryRequest", "Operation", "configure_logging"]
