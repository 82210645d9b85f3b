"""
Planning API Routes.

Thin HTTP transport over TicketPlanner.plan() and the cost estimate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from loguru import logger
from pydantic import BaseModel, Field

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.config import get_settings
from ticket_planner.core.exceptions import (
    GenerationFailure,
    PlanningCancelled,
    PlanningFailed,
    SpecificationTooLarge,
)
from ticket_planner.core.orchestrator import (
    CostEstimate,
    TicketPlanner,
    estimate_planning_cost,
    validate_specification_size,
)
from ticket_planner.decomposition.models import PlanningRequest, PlanningResult

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================


class EstimateRequest(BaseModel):
    """Cost estimate request model."""

    specification_content: str = Field(..., min_length=1, alias="specificationContent")

    model_config = {"populate_by_name": True}


# ============================================================================
# Dependencies
# ============================================================================


def open_planner(app: FastAPI) -> None:
    """
    Build the application's shared planner at startup.

    A planner that cannot be configured is recorded rather than raised,
    so the API still serves health checks and estimates.
    """
    app.state.planner = None
    app.state.planner_error = None
    try:
        app.state.planner = TicketPlanner(configure_logs=False)
    except GenerationFailure as e:
        logger.error(f"Planner unavailable: {e}")
        app.state.planner_error = str(e)


async def close_planner(app: FastAPI) -> None:
    """Release the shared planner's client."""
    planner = getattr(app.state, "planner", None)
    if planner is not None:
        await planner.close()
        app.state.planner = None


def get_planner(request: Request) -> TicketPlanner:
    """
    Planner shared by the application.

    Raises:
        HTTPException: 503 if the generative service could not be configured.
    """
    planner = getattr(request.app.state, "planner", None)
    if planner is None:
        detail = getattr(request.app.state, "planner_error", None) or "Planner is not available"
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    return planner


# ============================================================================
# Routes
# ============================================================================


@router.post("", response_model=PlanningResult)
async def create_plan(
    body: PlanningRequest,
    timeout_seconds: float | None = Query(None, gt=0, alias="timeoutSeconds"),
    planner: TicketPlanner = Depends(get_planner),
) -> PlanningResult:
    """
    Plan a specification.

    Args:
        body: Planning request.
        timeout_seconds: Optional deadline for the whole run.
        planner: Injected planner.

    Returns:
        The complete planning result.

    Raises:
        HTTPException: 413 if the specification is too large, 502 if a
            stage failed, 504 if the deadline passed.
    """
    logger.info(f"POST /plans for specification {body.specification_id}")
    cancellation = CancellationToken(timeout=timeout_seconds) if timeout_seconds else None

    try:
        return await planner.plan(body, cancellation)

    except SpecificationTooLarge as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={
                "message": str(e),
                "estimatedTokens": e.estimated_tokens,
                "maxTokens": e.max_tokens,
            },
        ) from e

    except PlanningFailed as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=e.failure.model_dump(by_alias=True),
        ) from e

    except PlanningCancelled as e:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={"message": str(e), "stage": e.stage},
        ) from e


@router.post("/estimate", response_model=CostEstimate)
async def estimate_plan(body: EstimateRequest) -> CostEstimate:
    """
    Estimate the cost of planning a specification without running it.

    Raises:
        HTTPException: 413 if the specification is too large.
    """
    settings = get_settings()
    try:
        validate_specification_size(body.specification_content, settings.planner_max_spec_tokens)
    except SpecificationTooLarge as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e)) from e

    return estimate_planning_cost(body.specification_content, settings)
