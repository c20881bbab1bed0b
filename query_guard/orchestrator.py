"""
Query guard orchestrator - main entry point.

Coordinates the schema cache, validator, executor, self-healing corrector
and vector search behind one interface.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from query_guard.config import QueryGuardConfig
from query_guard.core.errors import InvalidRequestError
from query_guard.core.interfaces import IDocumentStore, IReasoningClient, IVectorBackend
from query_guard.core.logger import get_logger
from query_guard.core.models import (
    InvalidRequestOutcome,
    QueryRequest,
    QueryResult,
    RankedRecord,
    TableMeta,
    ValidationOutcome,
    VectorRecord,
)
from query_guard.correction.corrector import HealingResult, SelfHealingCorrector
from query_guard.correction.policy import ResultPolicy
from query_guard.execution.executor import QueryExecutor
from query_guard.query.validator import QueryValidator
from query_guard.schema.cache import SchemaCache
from query_guard.schema.extractor import SchemaSampler
from query_guard.schema.overrides import SchemaOverrides, parse_overrides
from query_guard.vector.embedding import EmbeddingService
from query_guard.vector.search import AvailabilityRegistry, VectorSearchFacade
from query_guard.vector.similarity import rank_records

logger = get_logger(__name__)

RequestLike = Union[QueryRequest, Dict[str, Any]]


class QueryGuard:
    """
    Main orchestrator for schema-guarded queries.

    Every query goes through the validator before reaching the store.
    ``run`` adds one bounded correction attempt on top of validate/execute.
    """

    def __init__(
        self,
        store: IDocumentStore,
        cache: Optional[SchemaCache] = None,
        reasoning_client: Optional[IReasoningClient] = None,
        embedder: Optional[EmbeddingService] = None,
        vector_backend: Optional[IVectorBackend] = None,
        policy: Optional[ResultPolicy] = None,
        config: Optional[QueryGuardConfig] = None,
    ):
        """
        Initialize query guard.

        Args:
            store: Document store
            cache: Schema cache; loaded from config.schema_cache_path when omitted
            reasoning_client: Collaborator used for corrections and enrichment
            embedder: Embedding service for text vector queries
            vector_backend: Vector backend; defaults to the store
            policy: Rules for unproductive results
            config: Settings; defaults are used when omitted
        """
        self.config = config or QueryGuardConfig()
        self.store = store
        self.cache = cache if cache is not None else SchemaCache.load(self.config.schema_cache_path)
        self.reasoning_client = reasoning_client
        self.embedder = embedder

        self.sampler = SchemaSampler(store, sample_size=self.config.sample_size)
        self.validator = QueryValidator(self.cache)
        self.executor = QueryExecutor(store, max_limit=self.config.max_limit)
        self.corrector = SelfHealingCorrector(
            self.validator,
            self.executor,
            reasoning_client=reasoning_client,
            policy=policy,
            enabled=self.config.self_healing,
        )

        backend = vector_backend if vector_backend is not None else store
        self.registry = AvailabilityRegistry()
        self.vector = VectorSearchFacade(
            backend,
            embedder=embedder,
            registry=self.registry,
            path=self.config.vector_path,
            chunk_size=self.config.vector_chunk_size,
        )

    @classmethod
    def from_config(cls, config: Optional[QueryGuardConfig] = None) -> "QueryGuard":
        """
        Create a query guard for MongoDB from configuration.

        Builds the reasoning client when an LLM is configured, and the
        embedding provider when an embedding model is configured.
        """
        from query_guard.adapters.mongodb import MongoDocumentStore

        config = config or QueryGuardConfig.from_env()
        store = MongoDocumentStore(config.mongo_uri, config.database_name)

        reasoning_client = None
        if config.llm_enabled:
            from query_guard.llm.client_factory import PydanticAIReasoningClient

            reasoning_client = PydanticAIReasoningClient(
                timeout=config.correction_timeout,
                model_name=config.llm_model,
                api_key=config.llm_api_key,
                base_url=config.llm_base_url,
            )

        embedder = None
        if config.embedding_model:
            from query_guard.vector.embedding import OpenAIEmbeddingProvider

            provider = OpenAIEmbeddingProvider(
                model_name=config.embedding_model,
                api_key=config.llm_api_key,
                base_url=config.llm_base_url,
                dimension=config.embedding_dimension,
            )
            embedder = EmbeddingService(provider, dimension=config.embedding_dimension)

        return cls(
            store,
            reasoning_client=reasoning_client,
            embedder=embedder,
            config=config,
        )

    @classmethod
    def from_mongodb(
        cls,
        mongo_uri: str,
        database_name: str,
        schema_cache_path: Optional[str] = None,
        llm_model: Optional[str] = None,
        llm_api_key: Optional[str] = None,
        llm_base_url: Optional[str] = None,
        embedding_model: Optional[str] = None,
        sample_size: int = 100,
    ) -> "QueryGuard":
        """
        Create a query guard for MongoDB.

        Args:
            mongo_uri: MongoDB connection URI
            database_name: Name of the database
            schema_cache_path: Where the schema cache is persisted
            llm_model: LLM model name used for corrections
            llm_api_key: LLM API key
            llm_base_url: Base URL for OpenAI-compatible APIs
            embedding_model: Embedding model for text vector queries
            sample_size: Number of documents sampled per collection

        Returns:
            Configured QueryGuard for MongoDB
        """
        config = QueryGuardConfig(
            mongo_uri=mongo_uri,
            database_name=database_name,
            llm_model=llm_model,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            embedding_model=embedding_model,
            sample_size=sample_size,
        )
        if schema_cache_path:
            config.schema_cache_path = schema_cache_path
        return cls.from_config(config)

    def _coerce_request(self, request: RequestLike) -> Union[QueryRequest, InvalidRequestOutcome]:
        if isinstance(request, QueryRequest):
            return request
        data = dict(request)
        data.setdefault("limit", self.config.default_limit)
        try:
            return QueryRequest.model_validate(data)
        except ValidationError as e:
            logger.info(
                "Malformed request for collection %s: %d error(s)",
                data.get("collection"),
                e.error_count(),
            )
            return InvalidRequestOutcome.from_validation_error(data, e)

    def validate(self, request: RequestLike) -> ValidationOutcome:
        """
        Validate a request without executing it.

        Malformed dictionaries come back as InvalidRequestOutcome instead of
        raising.
        """
        coerced = self._coerce_request(request)
        if isinstance(coerced, InvalidRequestOutcome):
            return coerced
        return self.validator.validate(coerced)

    def execute(
        self, request: RequestLike, outcome: Optional[ValidationOutcome] = None
    ) -> QueryResult:
        """
        Execute a request.

        Args:
            request: Query request
            outcome: Outcome of an earlier ``validate``; validated here when omitted

        Raises:
            SchemaRequiredError, InvalidFieldReferenceError: request is not valid
            InvalidRequestError: request is malformed
            StoreExecutionError: the store failed
        """
        coerced = self._coerce_request(request)
        if isinstance(coerced, InvalidRequestOutcome):
            raise InvalidRequestError(coerced.collection, coerced.errors)
        if outcome is None:
            outcome = self.validator.validate(coerced)
        return self.executor.execute(coerced, outcome)

    def run(self, request: RequestLike) -> HealingResult:
        """Validate, execute and correct at most once."""
        coerced = self._coerce_request(request)
        if isinstance(coerced, InvalidRequestOutcome):
            return HealingResult(outcome=coerced)
        return self.corrector.run(coerced)

    def vector_search(
        self,
        collection: str,
        query: Union[str, Sequence[float]],
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
        min_score: float = 0.0,
        index_name: Optional[str] = None,
    ) -> List[RankedRecord]:
        """
        Similarity search, managed index first with a local fallback.

        Args:
            collection: Collection name
            query: Text or query vector
            filter: Pre-filter on record metadata
            limit: Maximum results, capped at the configured max limit
            min_score: Minimum similarity
            index_name: Managed index name, defaults to the configured one

        Returns:
            Ranked records, best first
        """
        return self.vector.search(
            collection,
            query,
            filter=filter,
            limit=min(max(1, limit), self.config.max_limit),
            min_score=min_score,
            index_name=index_name or self.config.vector_index_name,
        )

    def rebuild_schema(
        self,
        collection: Optional[str] = None,
        overrides: Optional[Union[SchemaOverrides, Dict[str, Any]]] = None,
        persist: bool = True,
    ) -> List[TableMeta]:
        """
        Re-sample one collection (or all), merge overrides and persist.

        Args:
            collection: Collection to rebuild; all collections when omitted
            overrides: Curated metadata in any accepted override shape
            persist: Save the cache after rebuilding

        Returns:
            The rebuilt tables
        """
        parsed = self._parse_overrides(overrides)
        if collection:
            tables = [self.sampler.sample_collection(collection)]
        else:
            tables = self.sampler.sample_database()

        rebuilt = self.cache.replace_tables(tables, parsed)
        if persist:
            self.cache.save()
        return rebuilt

    def apply_overrides(
        self, overrides: Union[SchemaOverrides, Dict[str, Any]], persist: bool = True
    ) -> List[TableMeta]:
        """Merge overrides into the cached tables without re-sampling."""
        parsed = self._parse_overrides(overrides)
        if not parsed:
            return self.cache.tables
        merged = self.cache.merge_overrides(parsed)
        if persist:
            self.cache.save()
        return merged

    def load_overrides(self, path: Union[str, Path]) -> Optional[SchemaOverrides]:
        """Read overrides from a JSON file; None when the shape is not recognized."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        parsed = parse_overrides(data)
        if parsed is None:
            logger.warning("Unrecognized override format in %s", path)
        return parsed

    @staticmethod
    def _parse_overrides(
        overrides: Optional[Union[SchemaOverrides, Dict[str, Any]]]
    ) -> Optional[SchemaOverrides]:
        if not overrides:
            return None
        parsed = parse_overrides(
            {
                name: value.model_dump(exclude_none=True) if hasattr(value, "model_dump") else value
                for name, value in overrides.items()
            }
        )
        if parsed is None:
            raise ValueError("Unrecognized schema override format")
        return parsed

    def search_schema(self, query: str, limit: int = 5) -> List[TableMeta]:
        """
        Find the collections relevant to a question.

        Keyword matching first; when nothing matches and an embedder is
        configured, tables are ranked by similarity of their descriptions.
        """
        keyword_hits = self.cache.search_tables(query, limit)
        if keyword_hits:
            return [table for table, _ in keyword_hits]
        if self.embedder is None:
            return []

        tables = self.cache.tables
        if not tables:
            return []
        embeddings = self.embedder.embed_batch([self._describe_table(t) for t in tables])
        records = [
            VectorRecord(id=t.collection_name, embedding=e) for t, e in zip(tables, embeddings)
        ]
        ranked = rank_records(
            self.embedder.embed_text(query), records, min_score=1e-9, limit=limit
        )
        by_name = {t.collection_name: t for t in tables}
        return [by_name[record.id] for record, _ in ranked]

    @staticmethod
    def _describe_table(table: TableMeta) -> str:
        parts = [table.collection_name]
        if table.display_name:
            parts.append(table.display_name)
        parts.extend(table.keywords)
        for field in table.fields:
            parts.append(field.display_name or field.name)
            if field.description:
                parts.append(field.description)
        return " ".join(parts)

    def enrich_schema(
        self, collections: Optional[List[str]] = None, persist: bool = True
    ) -> List[TableMeta]:
        """
        Ask the reasoning client to describe cached tables and merge the result.

        Args:
            collections: Tables to describe; all cached tables when omitted
            persist: Save the cache afterwards

        Returns:
            Tables after merging
        """
        propose = getattr(self.reasoning_client, "propose_overrides", None)
        if propose is None:
            raise ValueError("The configured reasoning client cannot describe schemas")

        overrides: SchemaOverrides = {}
        for table in self.cache.tables:
            if collections and table.collection_name not in collections:
                continue
            samples = list(self.store.sample(table.collection_name, 3))
            override = propose(table, samples)
            if override is not None:
                overrides[table.collection_name] = override

        if not overrides:
            return self.cache.tables
        merged = self.cache.merge_overrides(overrides)
        if persist:
            self.cache.save()
        logger.info("Enriched %d tables", len(overrides))
        return merged
