"""
LLM client factory and the reasoning client used for query correction.

Reads configuration from environment variables by default:
- LLM_MODEL: Model name
- LLM_API_KEY or OPENAI_API_KEY: API key
- LLM_BASE_URL: Optional base URL for OpenAI-compatible APIs
"""

import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from query_guard.core.logger import get_logger
from query_guard.core.models import CorrectionProposal, CorrectionRequest, TableMeta
from query_guard.query.prompt_generator import (
    CorrectionPromptGenerator,
    SchemaDescriptionPromptGenerator,
)
from query_guard.schema.overrides import FieldOverrideItem, TableOverride

logger = get_logger(__name__)


class TableDescription(BaseModel):
    """Structured answer of the schema description agent."""

    display_name: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    fields: List[FieldOverrideItem] = Field(default_factory=list)


class LLMClientFactory:
    """
    Resolves the model used by pydantic-ai agents.

    Supports OpenAI and OpenAI-compatible APIs (Ollama, vLLM) through a
    custom base URL.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model_settings: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize LLM client factory.

        Args:
            model_name: Name of the LLM model (e.g., "gpt-4o", "qwen3:8b").
                       If not provided, reads from LLM_MODEL environment variable.
            api_key: API key for the LLM provider.
                    If not provided, reads from LLM_API_KEY or OPENAI_API_KEY.
            base_url: Optional base URL for OpenAI-compatible APIs.
                     If not provided, reads from LLM_BASE_URL environment variable.
            model_settings: Optional model settings (temperature, timeout, etc.)

        Raises:
            ValueError: If model_name is missing, or if api_key is missing when not using base_url
        """
        model_name = model_name or os.getenv("LLM_MODEL")
        api_key = api_key or os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
        base_url = base_url or os.getenv("LLM_BASE_URL")

        if not model_name:
            raise ValueError("model_name is required (provide as parameter or set LLM_MODEL env var)")

        self.api_key = api_key
        self.model_settings = model_settings or {"temperature": 0, "top_p": 1.0}

        if base_url:
            normalized_base_url = base_url.rstrip("/")
            if not normalized_base_url.endswith("/v1"):
                normalized_base_url = f"{normalized_base_url}/v1"

            self.base_url = normalized_base_url

            # Local servers accept any key
            provider_kwargs = {"base_url": normalized_base_url}
            if api_key:
                provider_kwargs["api_key"] = api_key

            self.model = OpenAIModel(
                model_name=model_name,
                provider=OpenAIProvider(**provider_kwargs),
            )
        elif not api_key:
            raise ValueError(
                "api_key is required when not using a custom base_url "
                "(provide as parameter or set LLM_API_KEY/OPENAI_API_KEY env var)"
            )
        else:
            self.base_url = None
            if model_name.startswith(("openai:", "gpt")):
                os.environ["OPENAI_API_KEY"] = api_key
                self.model = model_name if ":" in model_name else f"openai:{model_name}"
            elif model_name.startswith(("anthropic:", "claude")):
                os.environ["ANTHROPIC_API_KEY"] = api_key
                self.model = model_name if ":" in model_name else f"anthropic:{model_name}"
            elif model_name.startswith(("gemini:", "google:")):
                os.environ["GEMINI_API_KEY"] = api_key
                self.model = model_name
            else:
                os.environ["OPENAI_API_KEY"] = api_key
                self.model = f"openai:{model_name}"

    def create_agent(
        self,
        output_type: type[BaseModel],
        system_prompt: str,
        retries: int = 2,
    ) -> Agent:
        """
        Create a Pydantic AI agent with structured output.

        Args:
            output_type: Pydantic model for structured output
            system_prompt: System prompt for the LLM
            retries: Retries on output validation errors

        Returns:
            Configured Pydantic AI Agent
        """
        return Agent(
            model=self.model,
            output_type=output_type,
            system_prompt=system_prompt,
            model_settings=self.model_settings,
            retries=retries,
        )


class PydanticAIReasoningClient:
    """
    Reasoning collaborator backed by a pydantic-ai agent.

    Failures of the model call are logged and reported as "no proposal";
    the corrector then keeps the original outcome.
    """

    def __init__(
        self,
        factory: Optional[LLMClientFactory] = None,
        timeout: float = 30.0,
        **factory_kwargs: Any,
    ):
        """
        Initialize reasoning client.

        Args:
            factory: Pre-built factory. Built from factory_kwargs and the
                     environment when omitted.
            timeout: Seconds allowed for one model call
            **factory_kwargs: model_name, api_key, base_url
        """
        if factory is None:
            factory = LLMClientFactory(
                model_settings={"temperature": 0, "top_p": 1.0, "timeout": timeout},
                **factory_kwargs,
            )
        else:
            factory.model_settings = {**factory.model_settings, "timeout": timeout}
        self.factory = factory
        self.timeout = timeout
        self.prompt_generator = CorrectionPromptGenerator()
        self._correction_agent: Optional[Agent] = None

    @property
    def correction_agent(self) -> Agent:
        if self._correction_agent is None:
            self._correction_agent = self.factory.create_agent(
                CorrectionProposal, self.prompt_generator.generate_system_prompt()
            )
        return self._correction_agent

    def propose(self, request: CorrectionRequest) -> Optional[CorrectionProposal]:
        """
        Ask the model for a corrected query.

        Args:
            request: Correction request with schema and original query

        Returns:
            CorrectionProposal, or None if the model call failed
        """
        try:
            result = self.correction_agent.run_sync(
                self.prompt_generator.generate_user_prompt(request)
            )
        except Exception as e:
            logger.error("Correction request for %s failed: %s", request.collection, e)
            return None
        return result.output

    def propose_overrides(
        self, table: TableMeta, samples: Optional[List[Dict[str, Any]]] = None
    ) -> Optional[TableOverride]:
        """
        Ask the model for display names, descriptions and keywords of a table.

        Returns:
            TableOverride restricted to known fields, or None on failure
        """
        generator = SchemaDescriptionPromptGenerator(table, samples)
        agent = self.factory.create_agent(
            TableDescription, generator.generate_system_prompt()
        )
        try:
            result = agent.run_sync(generator.generate_user_prompt())
        except Exception as e:
            logger.error("Schema description for %s failed: %s", table.collection_name, e)
            return None

        description: TableDescription = result.output
        known = set(table.field_names())
        return TableOverride.model_validate(
            {
                "display_name": description.display_name,
                "keywords": description.keywords or None,
                "fields": {
                    f.name: {"display_name": f.display_name, "description": f.description}
                    for f in description.fields
                    if f.name in known
                },
            }
        )

