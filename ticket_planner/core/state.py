"""Pipeline state for the LangGraph planning run.

The state flows through the nodes in strict order:

    parse -> components -> tickets -> epics -> graph -> schedule -> documents

``stage`` always names the node that runs next, or one of the terminal
values ``done``, ``failed`` and ``cancelled``. Warnings accumulate through
an ``operator.add`` reducer; the token ledger is replaced by each node
with a copy that includes that node's usage.
"""

import operator
from enum import Enum
from typing import Annotated, TypedDict

from ticket_planner.decomposition.models import (
    Component,
    DependencyGraph,
    DependencyLink,
    DocumentPaths,
    Epic,
    ExecutionTrack,
    ParsedSpecification,
    PlanningFailure,
    PlanningRequest,
    PlanningWarning,
    Ticket,
    TokenLedger,
)

# =============================================================================
# ENUMS
# =============================================================================


class PipelineStage(str, Enum):
    """Stages of a planning run, in execution order, plus terminal states."""

    PARSE = "parse"
    COMPONENTS = "components"
    TICKETS = "tickets"
    EPICS = "epics"
    GRAPH = "graph"
    SCHEDULE = "schedule"
    DOCUMENTS = "documents"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.DONE, PipelineStage.FAILED, PipelineStage.CANCELLED)

    @property
    def node_name(self) -> str:
        """Graph node that runs this stage; state keys cannot double as node names."""
        return _NODE_NAMES[self]

    def next(self) -> "PipelineStage":
        """The stage that follows this one; terminal stages return themselves."""
        if self.is_terminal:
            return self
        order = PIPELINE_ORDER + [PipelineStage.DONE]
        return order[order.index(self) + 1]


PIPELINE_ORDER = [
    PipelineStage.PARSE,
    PipelineStage.COMPONENTS,
    PipelineStage.TICKETS,
    PipelineStage.EPICS,
    PipelineStage.GRAPH,
    PipelineStage.SCHEDULE,
    PipelineStage.DOCUMENTS,
]

_NODE_NAMES = {
    PipelineStage.PARSE: "parse_specification",
    PipelineStage.COMPONENTS: "identify_components",
    PipelineStage.TICKETS: "generate_tickets",
    PipelineStage.EPICS: "group_epics",
    PipelineStage.GRAPH: "build_dependency_graph",
    PipelineStage.SCHEDULE: "schedule_execution",
    PipelineStage.DOCUMENTS: "generate_documents",
}


# =============================================================================
# STATE DEFINITION
# =============================================================================


class PlanningState(TypedDict, total=False):
    """
    Complete state of one planning run.

    Attributes:
        request: Caller-supplied planning request.
        stage: Next stage to run, or a terminal stage value.
        parsed: Output of the parse stage.
        components: Output of the components stage.
        tickets: Tickets, annotated with epics after the epics stage.
        epics: Output of the epics stage.
        implicit_links: Dependencies inferred during epic grouping.
        graph: Output of the graph stage.
        tracks: Output of the schedule stage.
        documents: Output of the documents stage.
        ledger: Cumulative token usage.
        warnings: Recovered anomalies (append-only).
        failure: Set when ``stage`` is ``failed``.
        cancelled_stage: Set when ``stage`` is ``cancelled``.
    """

    request: PlanningRequest
    stage: str
    parsed: ParsedSpecification
    components: list[Component]
    tickets: list[Ticket]
    epics: list[Epic]
    implicit_links: list[DependencyLink]
    graph: DependencyGraph
    tracks: list[ExecutionTrack]
    documents: DocumentPaths
    ledger: TokenLedger
    warnings: Annotated[list[PlanningWarning], operator.add]
    failure: PlanningFailure
    cancelled_stage: str


def create_initial_state(request: PlanningRequest) -> PlanningState:
    """
    Create the state a run starts from.

    Args:
        request: Caller-supplied planning request.

    Returns:
        State positioned before the parse stage with an empty ledger.
    """
    return PlanningState(
        request=request,
        stage=PipelineStage.PARSE.value,
        ledger=TokenLedger(),
        warnings=[],
    )
