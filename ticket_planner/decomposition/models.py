"""Pydantic models for ticket planning.

This module defines all the data structures that flow through the
planning pipeline: specifications, components, tickets, epics, the
dependency graph, execution tracks, the token ledger and the final
planning result.

Models accept both snake_case and camelCase field names, since the
generative service and external callers speak camelCase JSON.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Three working days of 24 hours, in minutes
MAX_TICKET_MINUTES = 3 * 24 * 60


class PlannerModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# ENUMS
# =============================================================================


class SpecType(str, Enum):
    """Planning category of a specification."""

    ANALYSIS = "ANALYSIS"
    FIXES = "FIXES"
    PLANS = "PLANS"
    REVIEWS = "REVIEWS"


class Complexity(str, Enum):
    """Ticket complexity level."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class TicketStatus(str, Enum):
    """Workflow status of a ticket."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ModelTier(str, Enum):
    """Capability tier requested from the generative service."""

    HIGH_CAPABILITY = "high_capability"
    STANDARD = "standard"


# =============================================================================
# SPECIFICATION
# =============================================================================


class ProjectContext(PlannerModel):
    """Opaque project context passed through to prompts.

    Unknown keys are preserved so callers can add whatever their
    codebase analysis produces.
    """

    model_config = ConfigDict(extra="allow")

    tech_stack: dict[str, Any] = Field(default_factory=dict)
    conventions: dict[str, Any] = Field(default_factory=dict)
    integration_points: list[Any] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_defaults=True)


class Specification(PlannerModel):
    """A free-text specification to plan."""

    id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    spec_type: SpecType = SpecType.PLANS
    project_context: ProjectContext = Field(default_factory=ProjectContext)


class ParsedSpecification(PlannerModel):
    """Structured intent extracted from a specification."""

    model_config = ConfigDict(extra="allow")

    objective: str = ""
    functional_requirements: list[Any] = Field(default_factory=list)
    non_functional_requirements: list[Any] = Field(default_factory=list)
    constraints: list[Any] = Field(default_factory=list)
    success_criteria: list[Any] = Field(default_factory=list)


class Component(PlannerModel):
    """An implementable component sized at roughly one to three days."""

    name: str = Field(..., min_length=1)
    description: str = ""
    estimated_days: float = Field(default=1.0, ge=0)
    dependencies: list[str] = Field(default_factory=list)


# =============================================================================
# TICKETS AND EPICS
# =============================================================================


class Ticket(PlannerModel):
    """An actionable implementation ticket.

    Example:
        >>> ticket = Ticket(
        ...     ticket_number=2,
        ...     title="Add Login Flow",
        ...     estimated_minutes=240,
        ...     dependencies=[1],
        ... )
    """

    ticket_number: int = Field(..., ge=1)
    epic_number: int | None = Field(default=None, ge=1)
    title: str = Field(..., min_length=1)
    description: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    estimated_minutes: int = Field(default=60, gt=0, le=MAX_TICKET_MINUTES)
    complexity: Complexity = Complexity.MEDIUM
    parallelizable: bool = True
    ai_agent_capable: bool = True
    required_expertise: list[str] = Field(default_factory=list)
    testing_strategy: str = ""
    rollback_plan: str = ""
    status: TicketStatus = TicketStatus.TODO
    dependencies: list[int] = Field(default_factory=list)
    component: str | None = Field(
        default=None,
        description="Name of the component this ticket was generated from",
    )

    @model_validator(mode="after")
    def _no_self_dependency(self) -> "Ticket":
        if self.ticket_number in self.dependencies:
            raise ValueError(f"Ticket {self.ticket_number} cannot depend on itself")
        return self


class Epic(PlannerModel):
    """A group of related tickets."""

    epic_number: int = Field(..., ge=1)
    title: str = Field(..., min_length=1)
    description: str = ""
    ticket_numbers: list[int] = Field(default_factory=list)


class DependencyLink(PlannerModel):
    """A dependency inferred outside the ticket's own declaration."""

    ticket_number: int
    depends_on: int


# =============================================================================
# DEPENDENCY GRAPH
# =============================================================================


class DependencyEdge(PlannerModel):
    """Validated edge: ``source`` depends on ``target``."""

    source: int
    target: int


class DependencyGraph(PlannerModel):
    """Acyclic dependency graph over ticket numbers with derived schedules."""

    nodes: list[int] = Field(default_factory=list)
    edges: list[DependencyEdge] = Field(default_factory=list)
    critical_path: list[int] = Field(default_factory=list)
    critical_path_minutes: int = 0
    parallel_groups: list[list[int]] = Field(default_factory=list)
    blockers: list[int] = Field(default_factory=list)

    def dependencies_of(self, ticket_number: int) -> list[int]:
        """Tickets that ``ticket_number`` depends on."""
        return sorted(e.target for e in self.edges if e.source == ticket_number)

    def dependents_of(self, ticket_number: int) -> list[int]:
        """Tickets that depend directly on ``ticket_number``."""
        return sorted(e.source for e in self.edges if e.target == ticket_number)


# =============================================================================
# SCHEDULE
# =============================================================================


class TrackSlot(PlannerModel):
    """A ticket placed on a track in simulated time (minutes)."""

    ticket_number: int
    start_minute: int = Field(..., ge=0)
    end_minute: int = Field(..., ge=0)


class ExecutionTrack(PlannerModel):
    """A simulated worker lane."""

    track_id: int = Field(..., ge=1)
    slots: list[TrackSlot] = Field(default_factory=list)
    estimated_minutes: int = Field(
        default=0,
        ge=0,
        description="Sum of the estimates of the tickets on this track",
    )

    @property
    def ticket_numbers(self) -> list[int]:
        return [slot.ticket_number for slot in self.slots]

    @property
    def finish_minute(self) -> int:
        return self.slots[-1].end_minute if self.slots else 0


# =============================================================================
# TOKEN LEDGER
# =============================================================================


class TokenUsage(PlannerModel):
    """Tokens consumed by one generation call."""

    stage: str
    tier: ModelTier
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class TokenLedger(PlannerModel):
    """Append-only record of token usage across a run."""

    entries: list[TokenUsage] = Field(default_factory=list)

    def add(self, usage: list[TokenUsage]) -> "TokenLedger":
        """Return a new ledger with ``usage`` appended."""
        return TokenLedger(entries=[*self.entries, *usage])

    @property
    def input_tokens(self) -> int:
        return sum(e.input_tokens for e in self.entries)

    @property
    def output_tokens(self) -> int:
        return sum(e.output_tokens for e in self.entries)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def total_cost_usd(self) -> float:
        return sum(e.cost_usd for e in self.entries)

    def by_stage(self) -> dict[str, int]:
        """Total tokens per stage, in first-seen order."""
        totals: dict[str, int] = {}
        for entry in self.entries:
            totals[entry.stage] = totals.get(entry.stage, 0) + entry.total_tokens
        return totals


# =============================================================================
# RESULTS
# =============================================================================


class PlanningWarning(PlannerModel):
    """A recovered anomaly attached to the result."""

    code: str
    message: str
    ticket_numbers: list[int] = Field(default_factory=list)


class DocumentPaths(PlannerModel):
    """Storage paths of generated documents."""

    summary_path: str | None = None
    execution_plan_path: str | None = None
    ticket_paths: dict[int, str] = Field(default_factory=dict)


class PlanningRequest(PlannerModel):
    """Caller-facing invocation payload."""

    specification_id: str = Field(..., min_length=1)
    specification_content: str = Field(..., min_length=1)
    spec_type: SpecType = SpecType.PLANS
    project_context: ProjectContext = Field(default_factory=ProjectContext)
    plan_name_prefix: str = Field(default="TICKET", min_length=1, max_length=32)
    language: str | None = None
    num_ai_agents: int | None = Field(default=None, ge=0)
    num_human_developers: int | None = Field(default=None, ge=0)

    def to_specification(self) -> Specification:
        return Specification(
            id=self.specification_id,
            content=self.specification_content,
            spec_type=self.spec_type,
            project_context=self.project_context,
        )

    def track_count(self, default: int) -> int:
        """Number of concurrent tracks derived from the resource counts."""
        if self.num_ai_agents is None and self.num_human_developers is None:
            return default
        total = (self.num_ai_agents or 0) + (self.num_human_developers or 0)
        return max(total, 1)


class PlanningFailure(PlannerModel):
    """Structured failure returned to the caller."""

    stage: str
    message: str


class PlanningResult(PlannerModel):
    """Terminal aggregate of one pipeline run."""

    specification_id: str
    parsed_specification: ParsedSpecification
    components: list[Component] = Field(default_factory=list)
    tickets: list[Ticket] = Field(default_factory=list)
    epics: list[Epic] = Field(default_factory=list)
    dependency_graph: DependencyGraph = Field(default_factory=DependencyGraph)
    execution_tracks: list[ExecutionTrack] = Field(default_factory=list)
    documents: DocumentPaths = Field(default_factory=DocumentPaths)
    warnings: list[PlanningWarning] = Field(default_factory=list)
    token_usage: TokenLedger = Field(default_factory=TokenLedger)

    @property
    def total_cost_usd(self) -> float:
        return self.token_usage.total_cost_usd

    def get_ticket(self, ticket_number: int) -> Ticket | None:
        for ticket in self.tickets:
            if ticket.ticket_number == ticket_number:
                return ticket
        return None


# =============================================================================
# STAGE OUTPUT
# =============================================================================


T = TypeVar("T")


@dataclass
class StageOutput(Generic[T]):
    """Value produced by a stage plus what it cost and what it corrected."""

    value: T
    usage: list[TokenUsage] = field(default_factory=list)
    warnings: list[PlanningWarning] = field(default_factory=list)
