"""Ticket planner - the single entry point of the planning pipeline.

Runs the pre-flight size check, drives the LangGraph state machine
through the seven stages, and converts the final state into an
immutable PlanningResult, or raises PlanningFailed / PlanningCancelled.
"""

import math
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import Field

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.config import Settings, get_settings
from ticket_planner.core.exceptions import (
    PlanningCancelled,
    PlanningFailed,
    SpecificationTooLarge,
)
from ticket_planner.core.state import PipelineStage, PlanningState, create_initial_state
from ticket_planner.decomposition.models import (
    ModelTier,
    PlannerModel,
    PlanningFailure,
    PlanningRequest,
    PlanningResult,
)
from ticket_planner.generation.client import (
    AnthropicTextService,
    GenerativeTextService,
    calculate_cost,
)
from ticket_planner.generation.resilient import ResilientCaller
from ticket_planner.graph.builder import build_planning_graph
from ticket_planner.graph.nodes import PlanningNodes
from ticket_planner.storage.base import DocumentStore, LocalDocumentStore

# =============================================================================
# LOGGING
# =============================================================================

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings) -> None:
    """Configure loguru sinks from settings.

    Replaces the default handler with a colourised stderr sink and, when
    ``planner_log_file`` is set, a daily-rotated file sink.
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG" if settings.planner_debug else settings.planner_log_level,
        format=LOG_FORMAT,
        colorize=True,
    )

    if settings.planner_log_file:
        Path(settings.planner_log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.planner_log_file,
            rotation="1 day",
            retention="7 days",
            level=settings.planner_log_level,
            format=LOG_FORMAT,
        )


# =============================================================================
# PRE-FLIGHT
# =============================================================================


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per three characters, rounded up."""
    return math.ceil(len(text) / 3)


def validate_specification_size(content: str, max_tokens: int) -> int:
    """
    Reject specifications that would not fit the generation budget.

    Args:
        content: Specification text.
        max_tokens: Token budget.

    Returns:
        The estimated token count.

    Raises:
        SpecificationTooLarge: If the estimate exceeds ``max_tokens``.
    """
    estimated = estimate_tokens(content)
    if estimated > max_tokens:
        logger.error(f"Specification too large: ~{estimated} tokens (limit {max_tokens})")
        raise SpecificationTooLarge(estimated, max_tokens)
    return estimated


# =============================================================================
# COST ESTIMATE
# =============================================================================


class StageCostEstimate(PlannerModel):
    """Expected usage and cost of one generative call."""

    step: str
    stage: str
    tier: ModelTier
    input_tokens: int
    output_tokens: int
    cost_usd: float


class CostEstimate(PlannerModel):
    """Pre-run cost estimate for a specification."""

    specification_tokens: int
    breakdown: list[StageCostEstimate] = Field(default_factory=list)

    @property
    def input_tokens(self) -> int:
        return sum(s.input_tokens for s in self.breakdown)

    @property
    def output_tokens(self) -> int:
        return sum(s.output_tokens for s in self.breakdown)

    @property
    def total_cost_usd(self) -> float:
        return sum(s.cost_usd for s in self.breakdown)


# (step, stage, tier, input tokens excluding the specification, output tokens)
_COST_PROFILE: list[tuple[str, PipelineStage, ModelTier, int, int]] = [
    ("Parse Specification", PipelineStage.PARSE, ModelTier.HIGH_CAPABILITY, 500, 2000),
    ("Identify Components", PipelineStage.COMPONENTS, ModelTier.HIGH_CAPABILITY, 2500, 2000),
    ("Generate Tickets", PipelineStage.TICKETS, ModelTier.STANDARD, 3000, 6000),
    ("Group Into Epics", PipelineStage.EPICS, ModelTier.HIGH_CAPABILITY, 7000, 1500),
    ("Generate Summary", PipelineStage.DOCUMENTS, ModelTier.STANDARD, 8000, 4000),
    ("Generate Execution Plan", PipelineStage.DOCUMENTS, ModelTier.STANDARD, 8000, 4000),
]


def estimate_planning_cost(content: str, settings: Settings | None = None) -> CostEstimate:
    """
    Estimate the cost of planning a specification before running it.

    Only the parse step scales with the specification; the other steps
    use typical sizes. Graph and schedule stages make no generation calls.

    Args:
        content: Specification text.
        settings: Settings with per-tier prices.

    Returns:
        CostEstimate broken down by step.

    Example:
        >>> estimate = estimate_planning_cost("Build a todo app with login")
        >>> [s.step for s in estimate.breakdown][:2]
        ['Parse Specification', 'Identify Components']
    """
    settings = settings or get_settings()
    spec_tokens = estimate_tokens(content)

    breakdown = []
    for index, (step, stage, tier, input_tokens, output_tokens) in enumerate(_COST_PROFILE):
        if index == 0:
            input_tokens += spec_tokens
        breakdown.append(
            StageCostEstimate(
                step=step,
                stage=stage.value,
                tier=tier,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=calculate_cost(tier, input_tokens, output_tokens, settings),
            )
        )

    return CostEstimate(specification_tokens=spec_tokens, breakdown=breakdown)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================


class TicketPlanner:
    """
    Turns a specification into tickets, epics, a dependency graph and a schedule.

    Pipeline:
    1. Parse the specification and identify components
    2. Generate tickets in batches and group them into epics
    3. Build the dependency graph (critical path, parallel groups, blockers)
    4. Schedule tickets onto execution tracks
    5. Generate and store the summary, execution plan and ticket files

    Example:
        >>> planner = TicketPlanner()
        >>> result = await planner.plan(
        ...     PlanningRequest(
        ...         specification_id="spec-1",
        ...         specification_content="Build a todo app with login",
        ...         plan_name_prefix="TODO",
        ...     )
        ... )
        >>> result.dependency_graph.critical_path
        [1, 2, 4]
    """

    def __init__(
        self,
        service: GenerativeTextService | None = None,
        store: DocumentStore | None = None,
        settings: Settings | None = None,
        caller: ResilientCaller | None = None,
        configure_logs: bool = True,
    ) -> None:
        """Initialize the planner.

        Args:
            service: Generative text service. Defaults to the Anthropic adapter.
            store: Document store. Defaults to a LocalDocumentStore under
                ``planner_storage_dir``.
            settings: Optional settings override. Uses default if not provided.
            caller: Pre-built resilient caller, replaced in tests.
            configure_logs: Whether to install the loguru sinks.
        """
        self.settings = settings or get_settings()
        self.service = service or AnthropicTextService.from_settings(self.settings)
        self.store = store or LocalDocumentStore(self.settings.planner_storage_dir)
        self.caller = caller or ResilientCaller(self.service, self.settings)

        if configure_logs:
            configure_logging(self.settings)

    # =========================================================================
    # PRIMARY INTERFACE
    # =========================================================================

    async def plan(
        self,
        request: PlanningRequest,
        cancellation: CancellationToken | None = None,
    ) -> PlanningResult:
        """
        Run the full planning pipeline.

        Args:
            request: Specification and planning options.
            cancellation: Optional caller-supplied cancellation signal.

        Returns:
            PlanningResult with every stage's output.

        Raises:
            SpecificationTooLarge: Before any generation call, if the
                specification exceeds the token budget.
            PlanningFailed: If a stage fails; no partial result is returned.
            PlanningCancelled: If the run was cancelled or its deadline passed.
        """
        estimated = validate_specification_size(
            request.specification_content, self.settings.planner_max_spec_tokens
        )
        language = request.language or self.settings.planner_language

        logger.info(
            f"Planning specification {request.specification_id} "
            f"({request.spec_type.value}, ~{estimated} tokens, language={language})"
        )

        nodes = PlanningNodes(
            self.caller,
            self.store,
            self.settings,
            language=language,
            cancellation=cancellation,
        )
        app = build_planning_graph(nodes)
        final_state: PlanningState = await app.ainvoke(create_initial_state(request))

        stage = PipelineStage(final_state["stage"])

        if stage is PipelineStage.CANCELLED:
            raise PlanningCancelled(final_state.get("cancelled_stage", stage.value))

        if stage is not PipelineStage.DONE:
            failure = final_state.get("failure") or PlanningFailure(
                stage=stage.value, message="Pipeline stopped before completion"
            )
            raise PlanningFailed(failure)

        result = self._build_result(request, final_state)
        logger.info(
            f"Planning complete: {len(result.tickets)} tickets, {len(result.epics)} epics, "
            f"{len(result.execution_tracks)} tracks, {result.token_usage.total_tokens} tokens "
            f"(${result.total_cost_usd:.4f}), {len(result.warnings)} warnings"
        )
        return result

    async def close(self) -> None:
        """Release the generative service client."""
        await self.service.close()

    def _build_result(self, request: PlanningRequest, state: PlanningState) -> PlanningResult:
        """Assemble the terminal aggregate from a completed state."""
        return PlanningResult(
            specification_id=request.specification_id,
            parsed_specification=state["parsed"],
            components=state["components"],
            tickets=state["tickets"],
            epics=state["epics"],
            dependency_graph=state["graph"],
            execution_tracks=state["tracks"],
            documents=state["documents"],
            warnings=state.get("warnings", []),
            token_usage=state["ledger"],
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"TicketPlanner(service={type(self.service).__name__}, "
            f"store={type(self.store).__name__}, "
            f"max_retries={self.settings.planner_max_retries})"
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


async def plan_specification(
    specification_id: str,
    content: str,
    **kwargs: Any,
) -> PlanningResult:
    """
    Convenience function to plan a specification with default collaborators.

    Args:
        specification_id: Identifier used for document paths.
        content: Specification text.
        **kwargs: Additional PlanningRequest fields.

    Returns:
        PlanningResult.

    Example:
        >>> import anyio
        >>> result = anyio.run(plan_specification, "spec-1", "Build a CLI tool")
    """
    planner = TicketPlanner()
    try:
        return await planner.plan(
            PlanningRequest(
                specification_id=specification_id,
                specification_content=content,
                **kwargs,
            )
        )
    finally:
        await planner.close()
