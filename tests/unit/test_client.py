"""Unit tests for the Anthropic adapter, model routing and prompt templates."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from ticket_planner.core.config import Settings
from ticket_planner.core.exceptions import GenerationFailure, RateLimited
from ticket_planner.decomposition.models import ModelTier
from ticket_planner.generation.client import AnthropicTextService, calculate_cost, model_for_tier
from ticket_planner.prompts import get_template, language_instruction, list_templates

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(status_code: int) -> anthropic.APIStatusError:
    response = httpx.Response(status_code, request=REQUEST)
    if status_code == 429:
        return anthropic.RateLimitError("rate limited", response=response, body=None)
    return anthropic.APIStatusError(f"status {status_code}", response=response, body=None)


@pytest.fixture
def client() -> MagicMock:
    """Mock AsyncAnthropic client."""
    mock = MagicMock()
    mock.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text='{"objective": '),
                SimpleNamespace(type="tool_use"),
                SimpleNamespace(type="text", text='"x"}'),
            ],
            usage=SimpleNamespace(input_tokens=12, output_tokens=7),
        )
    )
    mock.close = AsyncMock()
    return mock


class TestAnthropicTextService:
    """Tests for AnthropicTextService."""

    @pytest.mark.asyncio
    async def test_generate(self, client) -> None:
        """Test text blocks are joined and usage is reported."""
        service = AnthropicTextService(client)

        response = await service.generate("model-a", "Hello", max_tokens=100, temperature=0.3)

        assert response.text == '{"objective": "x"}'
        assert (response.input_tokens, response.output_tokens) == (12, 7)
        client.messages.create.assert_awaited_once_with(
            model="model-a",
            max_tokens=100,
            temperature=0.3,
            messages=[{"role": "user", "content": "Hello"}],
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (_status_error(429), RateLimited),
            (_status_error(529), RateLimited),
            (_status_error(500), GenerationFailure),
            (anthropic.APIConnectionError(request=REQUEST), GenerationFailure),
        ],
    )
    async def test_error_mapping(self, client, error, expected) -> None:
        """Test SDK errors map onto the call contract."""
        client.messages.create.side_effect = error
        service = AnthropicTextService(client)

        with pytest.raises(expected):
            await service.generate("model-a", "Hello", max_tokens=100, temperature=0.3)

    @pytest.mark.asyncio
    async def test_close(self, client) -> None:
        """Test closing releases the SDK client."""
        await AnthropicTextService(client).close()

        client.close.assert_awaited_once()

    def test_from_settings_requires_key(self) -> None:
        """Test a missing API key is reported before any call."""
        with pytest.raises(GenerationFailure):
            AnthropicTextService.from_settings(Settings(anthropic_api_key=None))

    def test_from_settings(self) -> None:
        """Test the adapter is built from a configured key."""
        service = AnthropicTextService.from_settings(Settings(anthropic_api_key="sk-ant-test"))

        assert isinstance(service, AnthropicTextService)


class TestRoutingAndPricing:
    """Tests for model routing and cost calculation."""

    def test_model_for_tier(self) -> None:
        """Test each tier resolves to its configured model."""
        settings = Settings(planner_high_capability_model="big", planner_standard_model="small")

        assert model_for_tier(ModelTier.HIGH_CAPABILITY, settings) == "big"
        assert model_for_tier(ModelTier.STANDARD, settings) == "small"

    def test_calculate_cost(self) -> None:
        """Test prices are per million tokens."""
        settings = Settings(planner_standard_input_price=3.0, planner_standard_output_price=15.0)

        assert calculate_cost(ModelTier.STANDARD, 1_000_000, 100_000, settings) == pytest.approx(4.5)


class TestPromptTemplates:
    """Tests for the prompt registry."""

    def test_every_template_formats(self) -> None:
        """Test each template accepts exactly its declared variables."""
        for name in list_templates():
            template = get_template(name)
            values = {variable: f"<{variable}>" for variable in template.variables}

            prompt = template.format(**values)

            assert template.get_missing_variables(**values) == []
            assert all(value in prompt for value in values.values())

    def test_missing_variable_rejected(self) -> None:
        """Test formatting without a declared variable names what is missing."""
        template = get_template("parse_specification")

        with pytest.raises(ValueError, match="specification"):
            template.format(spec_type="analysis", language_instruction="")

        assert template.get_missing_variables(spec_type="analysis") == [
            "language_instruction",
            "specification",
        ]

    def test_unknown_template(self) -> None:
        """Test unknown names return None."""
        assert get_template("nope") is None

    def test_language_instruction(self) -> None:
        """Test English and other languages get different instructions."""
        assert language_instruction("EN") == "Write all text values in English."
        assert "'pt-BR'" in language_instruction("pt-BR")
