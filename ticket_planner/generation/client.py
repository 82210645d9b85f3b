"""Generative text service interface and the Anthropic adapter.

The pipeline depends only on the call contract: a prompt goes in, text
and token usage come out, or the call fails with ``RateLimited`` or
``GenerationFailure``. Concrete adapters are swapped at construction time.
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from ticket_planner.core.config import Settings
from ticket_planner.core.exceptions import GenerationFailure, RateLimited
from ticket_planner.decomposition.models import ModelTier, TokenUsage


class ServiceResponse(BaseModel):
    """Raw response of a generative service call."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class GenerationResult(BaseModel):
    """Response of a resilient call, annotated with tier and cost."""

    model_config = ConfigDict(frozen=True)

    text: str
    model_id: str
    tier: ModelTier
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    attempts: int = 1

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens

    def usage_for(self, stage: str) -> TokenUsage:
        """Convert to a ledger entry attributed to ``stage``."""
        return TokenUsage(
            stage=stage,
            tier=self.tier,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cost_usd=self.cost_usd,
        )


class GenerativeTextService(ABC):
    """Capability interface for text generation."""

    @abstractmethod
    async def generate(
        self,
        model_id: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> ServiceResponse:
        """Generate text for a prompt.

        Raises:
            RateLimited: If the service throttled the request.
            GenerationFailure: For any other failure.
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None


# =============================================================================
# MODEL ROUTING AND PRICING
# =============================================================================


def model_for_tier(tier: ModelTier, settings: Settings) -> str:
    """Resolve a tier to the configured model identifier."""
    if tier == ModelTier.HIGH_CAPABILITY:
        return settings.planner_high_capability_model
    return settings.planner_standard_model


def calculate_cost(
    tier: ModelTier,
    input_tokens: int,
    output_tokens: int,
    settings: Settings,
) -> float:
    """Cost in USD of a call at the tier's configured prices."""
    if tier == ModelTier.HIGH_CAPABILITY:
        input_price = settings.planner_high_capability_input_price
        output_price = settings.planner_high_capability_output_price
    else:
        input_price = settings.planner_standard_input_price
        output_price = settings.planner_standard_output_price

    return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price


# =============================================================================
# ANTHROPIC ADAPTER
# =============================================================================


class AnthropicTextService(GenerativeTextService):
    """
    Generative text service backed by the Anthropic Messages API.

    Example:
        >>> service = AnthropicTextService.from_settings(get_settings())
        >>> response = await service.generate(
        ...     "claude-sonnet-4-20250514", "Say hi", max_tokens=50, temperature=0.2
        ... )
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnthropicTextService":
        """Build the adapter with an explicitly constructed client."""
        from anthropic import AsyncAnthropic

        if settings.anthropic_api_key is None:
            raise GenerationFailure("ANTHROPIC_API_KEY is not configured")

        client = AsyncAnthropic(
            api_key=settings.anthropic_api_key.get_secret_value(),
            max_retries=0,
        )
        return cls(client)

    async def generate(
        self,
        model_id: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> ServiceResponse:
        import anthropic

        logger.debug(f"Calling {model_id} (max_tokens={max_tokens}, temperature={temperature})")

        try:
            response = await self._client.messages.create(
                model=model_id,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            raise RateLimited(str(e)) from e
        except anthropic.APIStatusError as e:
            # 529 is the API's "overloaded" status; treat it as throttling
            if e.status_code == 529:
                raise RateLimited(str(e)) from e
            raise GenerationFailure(str(e)) from e
        except anthropic.APIError as e:
            raise GenerationFailure(str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return ServiceResponse(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def close(self) -> None:
        await self._client.close()
