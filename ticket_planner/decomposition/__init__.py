"""Specification decomposition - from free text to scheduled tickets.

This package provides the planning stages:
- Specification parsing and component identification (parser)
- Batched ticket generation (ticket_generator)
- Epic grouping (epic_grouper)
- Dependency graph construction (dependency_resolver)
- Parallel execution scheduling (scheduler)
- Document generation (documents)

Only the models and the deterministic stages are re-exported here; the
generative stages depend on ``ticket_planner.generation``, which itself
imports these models.
"""

from ticket_planner.decomposition.dependency_resolver import DependencyResolver
from ticket_planner.decomposition.models import (
    Complexity,
    Component,
    DependencyEdge,
    DependencyGraph,
    DependencyLink,
    DocumentPaths,
    Epic,
    ExecutionTrack,
    ModelTier,
    ParsedSpecification,
    PlanningFailure,
    PlanningRequest,
    PlanningResult,
    PlanningWarning,
    ProjectContext,
    Specification,
    SpecType,
    StageOutput,
    Ticket,
    TicketStatus,
    TokenLedger,
    TokenUsage,
    TrackSlot,
)
from ticket_planner.decomposition.scheduler import ParallelScheduler, makespan

__all__ = [
    # Models
    "Complexity",
    "Component",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyLink",
    "DocumentPaths",
    "Epic",
    "ExecutionTrack",
    "ModelTier",
    "ParsedSpecification",
    "PlanningFailure",
    "PlanningRequest",
    "PlanningResult",
    "PlanningWarning",
    "ProjectContext",
    "SpecType",
    "Specification",
    "StageOutput",
    "Ticket",
    "TicketStatus",
    "TokenLedger",
    "TokenUsage",
    "TrackSlot",
    # Deterministic stages
    "DependencyResolver",
    "ParallelScheduler",
    "makespan",
]
