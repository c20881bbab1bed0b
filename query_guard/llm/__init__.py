"""LLM clients used for query correction and schema enrichment."""

from query_guard.llm.client_factory import LLMClientFactory, PydanticAIReasoningClient

__all__ = ["LLMClientFactory", "PydanticAIReasoningClient"]
