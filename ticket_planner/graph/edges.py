"""LangGraph edge routing for the planning pipeline."""

from loguru import logger

from ticket_planner.core.state import PipelineStage, PlanningState

END_ROUTE = "end"


def route_after_stage(state: PlanningState) -> str:
    """
    Route to the stage named in the state, or to the end.

    Args:
        state: Current planning state.

    Returns:
        Name of the next node, or ``"end"`` once the run is done, failed
        or cancelled.
    """
    stage = PipelineStage(state.get("stage", PipelineStage.FAILED.value))

    if stage is PipelineStage.FAILED:
        failure = state.get("failure")
        logger.info(f"Routing to end due to failure in stage '{failure.stage if failure else '?'}'")
        return END_ROUTE

    if stage is PipelineStage.CANCELLED:
        logger.info(f"Routing to end, cancelled before stage '{state.get('cancelled_stage')}'")
        return END_ROUTE

    if stage is PipelineStage.DONE:
        logger.debug("All stages complete")
        return END_ROUTE

    return stage.node_name

