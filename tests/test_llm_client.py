"""Tests for the LLM client factory and the pydantic-ai reasoning client."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from query_guard.core.models import (
    CorrectionProposal,
    CorrectionRequest,
    FieldType,
    Operation,
)
from query_guard.llm.client_factory import (
    LLMClientFactory,
    PydanticAIReasoningClient,
    TableDescription,
)
from query_guard.query.prompt_generator import CorrectionPromptGenerator
from query_guard.schema.overrides import FieldOverrideItem


@pytest.fixture
def factory() -> MagicMock:
    mock = MagicMock()
    mock.model_settings = {"temperature": 0}
    return mock


@pytest.fixture
def correction_request() -> CorrectionRequest:
    return CorrectionRequest(
        collection="orders",
        operation=Operation.FIND,
        trigger="invalid_fields",
        schema_fields={"status": FieldType.STRING, "createdAt": FieldType.DATE},
        original_query=CorrectionProposal(predicate={"crt_at": "2025-06"}),
        invalid_fields=["crt_at"],
    )


class TestLLMClientFactory:
    def test_model_name_required(self, monkeypatch) -> None:
        monkeypatch.delenv("LLM_MODEL", raising=False)
        with pytest.raises(ValueError):
            LLMClientFactory(api_key="k")

    def test_api_key_required_without_base_url(self, monkeypatch) -> None:
        for name in ("LLM_API_KEY", "OPENAI_API_KEY", "LLM_BASE_URL"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(ValueError):
            LLMClientFactory(model_name="gpt-4o")

    @patch("query_guard.llm.client_factory.OpenAIProvider")
    @patch("query_guard.llm.client_factory.OpenAIModel")
    def test_base_url_normalized(self, mock_model, mock_provider) -> None:
        factory = LLMClientFactory(model_name="qwen3:8b", base_url="http://localhost:11434/")
        assert factory.base_url == "http://localhost:11434/v1"
        mock_provider.assert_called_once_with(base_url="http://localhost:11434/v1")
        assert factory.model is mock_model.return_value

    def test_openai_prefix(self, monkeypatch) -> None:
        monkeypatch.delenv("LLM_BASE_URL", raising=False)
        monkeypatch.setenv("OPENAI_API_KEY", "old")
        factory = LLMClientFactory(model_name="gpt-4o", api_key="k")
        assert factory.model == "openai:gpt-4o"


class TestPydanticAIReasoningClient:
    """Structured correction calls."""

    def test_timeout_added_to_model_settings(self, factory) -> None:
        client = PydanticAIReasoningClient(factory=factory, timeout=5.0)
        assert client.factory.model_settings == {"temperature": 0, "timeout": 5.0}

    def test_propose_returns_agent_output(self, factory, correction_request) -> None:
        proposal = CorrectionProposal(predicate={"createdAt": "2025-06"})
        agent = factory.create_agent.return_value
        agent.run_sync.return_value = SimpleNamespace(output=proposal)

        client = PydanticAIReasoningClient(factory=factory)

        assert client.propose(correction_request) is proposal
        factory.create_agent.assert_called_once()
        assert factory.create_agent.call_args.args[0] is CorrectionProposal
        prompt = agent.run_sync.call_args.args[0]
        assert "crt_at" in prompt

    def test_propose_failure_returns_none(self, factory, correction_request) -> None:
        factory.create_agent.return_value.run_sync.side_effect = RuntimeError("timeout")
        client = PydanticAIReasoningClient(factory=factory)
        assert client.propose(correction_request) is None

    def test_agent_is_reused(self, factory, correction_request) -> None:
        factory.create_agent.return_value.run_sync.return_value = SimpleNamespace(output=None)
        client = PydanticAIReasoningClient(factory=factory)
        client.propose(correction_request)
        client.propose(correction_request)
        assert factory.create_agent.call_count == 1

    def test_propose_overrides_keeps_known_fields(self, factory, orders_table) -> None:
        factory.create_agent.return_value.run_sync.return_value = SimpleNamespace(
            output=TableDescription(
                display_name="Orders",
                keywords=["sales"],
                fields=[
                    FieldOverrideItem(name="amount", description="Order total"),
                    FieldOverrideItem(name="ghost", description="Not a field"),
                ],
            )
        )
        client = PydanticAIReasoningClient(factory=factory)

        override = client.propose_overrides(orders_table, [{"amount": 3}])

        assert override.display_name == "Orders"
        assert override.keywords == ["sales"]
        assert list(override.fields) == ["amount"]
        assert override.fields["amount"].description == "Order total"


class TestCorrectionPromptGenerator:
    def test_user_prompt_is_json(self, correction_request) -> None:
        prompt = CorrectionPromptGenerator.generate_user_prompt(correction_request)
        assert '"invalid_fields"' in prompt
        assert '"suggestions"' in prompt

    def test_system_prompt_mentions_rules(self) -> None:
        prompt = CorrectionPromptGenerator().generate_system_prompt()
        assert "invalid" in prompt.lower()
