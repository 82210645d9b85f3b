"""LangGraph state machine for the planning pipeline."""

from ticket_planner.graph.builder import build_planning_graph, visualize_graph
from ticket_planner.graph.edges import END_ROUTE, route_after_stage
from ticket_planner.graph.nodes import PlanningNodes

__all__ = [
    "END_ROUTE",
    "PlanningNodes",
    "build_planning_graph",
    "route_after_stage",
    "visualize_graph",
]
