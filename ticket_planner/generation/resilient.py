"""Resilient call wrapper for generative text requests.

Rate-limited calls are retried with exponential backoff plus jitter.
Any other failure is retried once after a flat delay. When retries are
exhausted the caller receives ``GenerationUnavailable`` carrying the last
underlying failure.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable

from loguru import logger

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.config import Settings
from ticket_planner.core.exceptions import (
    GenerationFailure,
    GenerationUnavailable,
    RateLimited,
)
from ticket_planner.decomposition.models import ModelTier
from ticket_planner.generation.client import (
    GenerationResult,
    GenerativeTextService,
    calculate_cost,
    model_for_tier,
)

# Upper bound of the uniform jitter added to each backoff, in seconds
MAX_JITTER_SECONDS = 1.0

SleepFunc = Callable[[float], Awaitable[None]]


class ResilientCaller:
    """
    Execute one generative text request with bounded retries.

    Attributes:
        max_retries: Retries allowed for rate-limited calls.
        base_delay: Base delay in seconds.

    Example:
        >>> caller = ResilientCaller(service, settings)
        >>> result = await caller.invoke("Summarise...", ModelTier.STANDARD)
        >>> result.tokens_used
        1234
    """

    def __init__(
        self,
        service: GenerativeTextService,
        settings: Settings,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the caller.

        Args:
            service: Generative text service adapter.
            settings: Settings with model routing, retry and pricing values.
            sleep: Awaitable sleep, replaced in tests.
            rng: Random source for jitter.
        """
        self.service = service
        self.settings = settings
        self.max_retries = settings.planner_max_retries
        self.base_delay = settings.planner_retry_base_delay
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def backoff_delay(self, attempt: int, base_delay: float) -> float:
        """Delay before retrying a rate-limited attempt ``attempt`` (0-based)."""
        return base_delay * (2**attempt) + self._rng.uniform(0, MAX_JITTER_SECONDS)

    async def invoke(
        self,
        prompt: str,
        tier: ModelTier,
        *,
        stage: str = "generation",
        max_tokens: int | None = None,
        temperature: float = 0.5,
        max_retries: int | None = None,
        base_delay: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> GenerationResult:
        """
        Call the generative service with retries.

        Args:
            prompt: Prompt text.
            tier: Model tier to route the request to.
            stage: Stage name used for logs and cancellation reports.
            max_tokens: Output token cap (settings default if omitted).
            temperature: Sampling temperature.
            max_retries: Override for the rate-limit retry budget.
            base_delay: Override for the base delay in seconds.
            cancellation: Checked before each retry sleep.

        Returns:
            GenerationResult with text, token usage and cost.

        Raises:
            GenerationUnavailable: If retries are exhausted.
            PlanningCancelled: If cancellation is requested between attempts.
        """
        retries = self.max_retries if max_retries is None else max_retries
        delay_base = self.base_delay if base_delay is None else base_delay
        tokens = max_tokens or self.settings.planner_max_output_tokens
        model_id = model_for_tier(tier, self.settings)

        last_error: Exception | None = None
        throttled = 0
        other_failures = 0
        attempts = 0

        # Throttling and other failures draw on separate retry budgets
        while True:
            attempts += 1
            try:
                response = await self.service.generate(model_id, prompt, tokens, temperature)
            except RateLimited as e:
                last_error = e
                if throttled >= retries:
                    break
                delay = self.backoff_delay(throttled, delay_base)
                throttled += 1
                logger.warning(
                    f"[{stage}] Throttled by {model_id}. Retrying in {delay:.2f}s "
                    f"(attempt {throttled}/{retries})"
                )
            except GenerationFailure as e:
                last_error = e
                other_failures += 1
                if other_failures > 1:
                    break
                delay = delay_base
                logger.warning(f"[{stage}] Generation failed: {e}. Retrying in {delay:.2f}s")
            else:
                logger.debug(
                    f"[{stage}] {model_id} returned {response.input_tokens}+"
                    f"{response.output_tokens} tokens after {attempts} attempt(s)"
                )
                return GenerationResult(
                    text=response.text,
                    model_id=model_id,
                    tier=tier,
                    input_tokens=response.input_tokens,
                    output_tokens=response.output_tokens,
                    cost_usd=calculate_cost(
                        tier, response.input_tokens, response.output_tokens, self.settings
                    ),
                    attempts=attempts,
                )

            if cancellation is not None:
                cancellation.raise_if_cancelled(stage)
            await self._sleep(delay)

        logger.error(f"[{stage}] Generation unavailable after {attempts} attempt(s): {last_error}")
        raise GenerationUnavailable(
            f"Generation unavailable after {attempts} attempt(s): {last_error}",
            last_error=last_error,
        )
