"""
Query execution coordinator.

Runs validated requests against a document store. Only ValidOutcome values
produced by the validator are accepted.
"""

from typing import Any, Dict, List

from pymongo.errors import PyMongoError

from query_guard.core.errors import (
    InvalidFieldReferenceError,
    InvalidRequestError,
    SchemaRequiredError,
    StoreExecutionError,
)
from query_guard.core.interfaces import IDocumentStore
from query_guard.core.logger import get_logger
from query_guard.core.models import (
    DEFAULT_MAX_LIMIT,
    SCALAR_OPERATIONS,
    InvalidFieldsOutcome,
    InvalidRequestOutcome,
    Operation,
    QueryRequest,
    QueryResult,
    SchemaRequiredOutcome,
    ValidationOutcome,
    ValidOutcome,
)

logger = get_logger(__name__)

SCALAR_ACCUMULATORS = {
    Operation.MIN: "$min",
    Operation.MAX: "$max",
    Operation.SUM: "$sum",
    Operation.AVG: "$avg",
}


def scalar_pipeline(
    operation: Operation, key: str, predicate: Dict[str, Any]
) -> List[Dict[str, Any]]:
    """Build the single-group pipeline computing min/max/sum/avg of a field."""
    return [
        {"$match": predicate},
        {"$group": {"_id": None, "value": {SCALAR_ACCUMULATORS[operation]: f"${key}"}}},
    ]


class QueryExecutor:
    """
    Executes validated requests.

    Store failures are wrapped in StoreExecutionError and propagated; this
    layer never retries.
    """

    def __init__(self, store: IDocumentStore, max_limit: int = DEFAULT_MAX_LIMIT):
        """
        Initialize query executor.

        Args:
            store: Document store implementation
            max_limit: Ceiling applied to every request limit
        """
        self.store = store
        self.max_limit = max_limit

    def execute(self, request: QueryRequest, outcome: ValidationOutcome) -> QueryResult:
        """
        Execute a validated request.

        Args:
            request: Original request (projection, sort, limit, skip)
            outcome: Outcome of validating that request

        Returns:
            QueryResult

        Raises:
            SchemaRequiredError: outcome is SchemaRequiredOutcome
            InvalidFieldReferenceError: outcome is InvalidFieldsOutcome
            InvalidRequestError: outcome is InvalidRequestOutcome
            StoreExecutionError: the store failed
        """
        if isinstance(outcome, SchemaRequiredOutcome):
            raise SchemaRequiredError(outcome.collection)
        if isinstance(outcome, InvalidFieldsOutcome):
            raise InvalidFieldReferenceError(
                outcome.request.collection, outcome.invalid_fields, outcome.suggestions
            )
        if isinstance(outcome, InvalidRequestOutcome):
            raise InvalidRequestError(outcome.collection, outcome.errors)
        if not isinstance(outcome, ValidOutcome):
            raise TypeError(f"Unsupported validation outcome: {type(outcome).__name__}")

        try:
            return self._execute(request, outcome)
        except PyMongoError as e:
            logger.error(
                "Store failed executing %s on %s: %s",
                request.operation.value,
                request.collection,
                e,
            )
            raise StoreExecutionError(str(e)) from e

    def _execute(self, request: QueryRequest, outcome: ValidOutcome) -> QueryResult:
        collection = request.collection
        predicate = outcome.predicate
        limit = request.safe_limit(self.max_limit)
        operation = request.operation

        if operation == Operation.FIND:
            documents = self.store.find(
                collection,
                predicate,
                projection=request.projection,
                sort=request.sort,
                skip=request.skip,
                limit=limit,
            )
            total = self.store.count(collection, predicate) if request.include_total else None
            return QueryResult(
                operation=operation, documents=documents, count=len(documents), total=total
            )

        if operation == Operation.COUNT:
            return QueryResult(operation=operation, count=self.store.count(collection, predicate))

        if operation == Operation.DISTINCT:
            values = self.store.distinct(collection, request.key, predicate)
            return QueryResult(operation=operation, documents=values, count=len(values))

        if operation in SCALAR_OPERATIONS:
            rows = self.store.aggregate(
                collection, scalar_pipeline(operation, request.key, predicate)
            )
            value = rows[0].get("value") if rows else None
            return QueryResult(operation=operation, value=value)

        pipeline = list(outcome.pipeline or [])
        if request.skip > 0:
            pipeline.append({"$skip": request.skip})
        pipeline.append({"$limit": limit})
        documents = self.store.aggregate(collection, pipeline)
        return QueryResult(operation=operation, documents=documents, count=len(documents))
