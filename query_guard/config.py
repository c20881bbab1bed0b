"""
Configuration for the query guard.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from query_guard.core.models import ABSOLUTE_MAX_LIMIT, DEFAULT_LIMIT, DEFAULT_MAX_LIMIT
from query_guard.vector.embedding import DEFAULT_EMBEDDING_DIMENSION


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


class QueryGuardConfig(BaseModel):
    """
    Settings for building a QueryGuard.

    Reads from environment variables via ``from_env``:
    - MONGO_URI, MONGO_DATABASE
    - SCHEMA_CACHE_PATH, SCHEMA_SAMPLE_SIZE
    - QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT
    - LLM_MODEL, LLM_API_KEY or OPENAI_API_KEY, LLM_BASE_URL
    - CORRECTION_TIMEOUT, SELF_HEALING
    - EMBEDDING_MODEL, EMBEDDING_DIMENSION
    - VECTOR_INDEX_NAME, VECTOR_PATH, VECTOR_CHUNK_SIZE
    """

    mongo_uri: str = "mongodb://localhost:27017"
    database_name: Optional[str] = None
    schema_cache_path: str = "data/cache/schema-cache.json"
    sample_size: int = Field(default=100, gt=0)
    default_limit: int = Field(default=DEFAULT_LIMIT, gt=0)
    max_limit: int = Field(default=DEFAULT_MAX_LIMIT, gt=0)

    llm_model: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_base_url: Optional[str] = None
    correction_timeout: float = Field(default=30.0, gt=0)
    self_healing: bool = True

    embedding_model: Optional[str] = None
    embedding_dimension: int = Field(default=DEFAULT_EMBEDDING_DIMENSION, gt=0)
    vector_index_name: str = "vector_index"
    vector_path: str = "embedding"
    vector_chunk_size: int = Field(default=1024, gt=0)

    @field_validator("max_limit")
    @classmethod
    def validate_max_limit(cls, value: int) -> int:
        if value > ABSOLUTE_MAX_LIMIT:
            raise ValueError(f"max_limit cannot exceed {ABSOLUTE_MAX_LIMIT}")
        return value

    @property
    def llm_enabled(self) -> bool:
        return bool(self.llm_model) and bool(self.llm_api_key or self.llm_base_url)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "QueryGuardConfig":
        """Build the configuration from environment variables and a .env file."""
        load_dotenv(dotenv_path)
        return cls(
            mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            database_name=os.getenv("MONGO_DATABASE"),
            schema_cache_path=os.getenv("SCHEMA_CACHE_PATH", "data/cache/schema-cache.json"),
            sample_size=_env_int("SCHEMA_SAMPLE_SIZE", 100),
            default_limit=_env_int("QUERY_DEFAULT_LIMIT", DEFAULT_LIMIT),
            max_limit=_env_int("QUERY_MAX_LIMIT", DEFAULT_MAX_LIMIT),
            llm_model=os.getenv("LLM_MODEL"),
            llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
            llm_base_url=os.getenv("LLM_BASE_URL"),
            correction_timeout=float(os.getenv("CORRECTION_TIMEOUT") or 30.0),
            self_healing=_env_bool("SELF_HEALING", True),
            embedding_model=os.getenv("EMBEDDING_MODEL"),
            embedding_dimension=_env_int("EMBEDDING_DIMENSION", DEFAULT_EMBEDDING_DIMENSION),
            vector_index_name=os.getenv("VECTOR_INDEX_NAME", "vector_index"),
            vector_path=os.getenv("VECTOR_PATH", "embedding"),
            vector_chunk_size=_env_int("VECTOR_CHUNK_SIZE", 1024),
        )
