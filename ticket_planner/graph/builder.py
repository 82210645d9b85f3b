"""LangGraph builder for the planning pipeline."""

from typing import Any

from langgraph.graph import END, START, StateGraph
from loguru import logger

from ticket_planner.core.state import PIPELINE_ORDER, PipelineStage, PlanningState
from ticket_planner.graph.edges import END_ROUTE, route_after_stage
from ticket_planner.graph.nodes import PlanningNodes


def build_planning_graph(nodes: PlanningNodes) -> Any:
    """
    Build the planning state machine.

    Creates a strictly linear graph:
    1. parse -> components -> tickets -> epics
    2. epics -> graph -> schedule -> documents -> END

    After every node a conditional edge routes to END when the run
    failed or was cancelled.

    Args:
        nodes: Node callables bound to the run's collaborators.

    Returns:
        Compiled LangGraph application.

    Example:
        >>> app = build_planning_graph(nodes)
        >>> final_state = await app.ainvoke(create_initial_state(request))
    """
    logger.debug("Building planning graph")

    graph = StateGraph(PlanningState)

    for stage in PIPELINE_ORDER:
        graph.add_node(stage.node_name, getattr(nodes, stage.value))

    graph.add_edge(START, PipelineStage.PARSE.node_name)

    for stage in PIPELINE_ORDER:
        following = stage.next()
        routes = {END_ROUTE: END}
        if not following.is_terminal:
            routes[following.node_name] = following.node_name
        graph.add_conditional_edges(stage.node_name, route_after_stage, routes)

    return graph.compile()


def visualize_graph() -> str:
    """
    Mermaid diagram of the planning graph.

    Returns:
        Mermaid diagram string.
    """
    return """
    ```mermaid
    graph TD
        START([Start]) --> parse[parse_specification]
        parse -->|ok| components[identify_components]
        components -->|ok| tickets[generate_tickets]
        tickets -->|ok| epics[group_epics]
        epics -->|ok| deps[build_dependency_graph]
        deps -->|ok| schedule[schedule_execution]
        schedule -->|ok| docs[generate_documents]
        docs --> END([End])
        parse & components & tickets & epics & deps & schedule & docs -->|failed / cancelled| END
    ```
    """
