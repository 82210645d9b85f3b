"""LangGraph node implementations for the planning pipeline stages.

Each node checks the cancellation token, runs one stage, folds the
stage's token usage into the ledger, and names the next stage. A stage
that exhausts generation retries or receives an unparseable response
moves the run to ``failed``; later nodes never run.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.config import Settings
from ticket_planner.core.exceptions import GenerationUnavailable, MalformedResponse, PlanningCancelled
from ticket_planner.core.state import PipelineStage, PlanningState
from ticket_planner.decomposition.dependency_resolver import DependencyResolver
from ticket_planner.decomposition.documents import DocumentGenerator
from ticket_planner.decomposition.epic_grouper import EpicGrouper
from ticket_planner.decomposition.models import PlanningFailure, StageOutput
from ticket_planner.decomposition.parser import ComponentIdentifier, SpecificationParser
from ticket_planner.decomposition.scheduler import ParallelScheduler
from ticket_planner.decomposition.ticket_generator import TicketGenerator
from ticket_planner.generation.resilient import ResilientCaller
from ticket_planner.storage.base import DocumentStore

StageBody = Callable[[PlanningState], Awaitable[tuple[StageOutput[Any], dict[str, Any]]]]


class PlanningNodes:
    """
    Node callables bound to one run's collaborators.

    Example:
        >>> nodes = PlanningNodes(caller, store, settings, language="en")
        >>> update = await nodes.parse(create_initial_state(request))
        >>> update["stage"]
        'components'
    """

    def __init__(
        self,
        caller: ResilientCaller,
        store: DocumentStore,
        settings: Settings,
        language: str,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self.settings = settings
        self.cancellation = cancellation

        self.parser = SpecificationParser(caller, language)
        self.identifier = ComponentIdentifier(caller, language)
        self.generator = TicketGenerator(
            caller,
            language,
            batch_size=settings.planner_ticket_batch_size,
            concurrency=settings.planner_ticket_concurrency,
        )
        self.grouper = EpicGrouper(
            caller,
            language,
            max_tickets_per_epic=settings.planner_max_tickets_per_epic,
        )
        self.resolver = DependencyResolver(blocker_count=settings.planner_blocker_count)
        self.documents_generator = DocumentGenerator(caller, store, language)

    # =========================================================================
    # STAGE RUNNER
    # =========================================================================

    async def _run(
        self,
        stage: PipelineStage,
        state: PlanningState,
        body: StageBody,
    ) -> dict[str, Any]:
        """Run one stage body and translate its outcome into a state update."""
        try:
            if self.cancellation is not None:
                self.cancellation.raise_if_cancelled(stage.value)

            logger.info(f"Stage '{stage.value}' started")
            output, values = await body(state)

        except PlanningCancelled as e:
            return {"stage": PipelineStage.CANCELLED.value, "cancelled_stage": e.stage}

        except (GenerationUnavailable, MalformedResponse) as e:
            logger.error(f"Stage '{stage.value}' failed: {e}")
            return {
                "stage": PipelineStage.FAILED.value,
                "failure": PlanningFailure(stage=stage.value, message=str(e)),
            }

        ledger = state["ledger"].add(output.usage)
        logger.info(
            f"Stage '{stage.value}' completed "
            f"({sum(u.total_tokens for u in output.usage)} tokens, {len(output.warnings)} warnings)"
        )
        return {
            **values,
            "stage": stage.next().value,
            "ledger": ledger,
            "warnings": list(output.warnings),
        }

    # =========================================================================
    # NODES
    # =========================================================================

    async def parse(self, state: PlanningState) -> dict[str, Any]:
        """Parse the specification into structured intent."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            output = await self.parser.parse(s["request"].to_specification(), self.cancellation)
            return output, {"parsed": output.value}

        return await self._run(PipelineStage.PARSE, state, body)

    async def components(self, state: PlanningState) -> dict[str, Any]:
        """Identify components from the parsed specification."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            output = await self.identifier.identify(
                s["parsed"], s["request"].project_context, self.cancellation
            )
            return output, {"components": output.value}

        return await self._run(PipelineStage.COMPONENTS, state, body)

    async def tickets(self, state: PlanningState) -> dict[str, Any]:
        """Generate numbered tickets for the components."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            output = await self.generator.generate(s["components"], s["parsed"], self.cancellation)
            return output, {"tickets": output.value}

        return await self._run(PipelineStage.TICKETS, state, body)

    async def epics(self, state: PlanningState) -> dict[str, Any]:
        """Group tickets into epics."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            output = await self.grouper.group(s["tickets"], self.cancellation)
            grouping = output.value
            return output, {
                "tickets": grouping.tickets,
                "epics": grouping.epics,
                "implicit_links": grouping.implicit_links,
            }

        return await self._run(PipelineStage.EPICS, state, body)

    async def graph(self, state: PlanningState) -> dict[str, Any]:
        """Build the dependency graph."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            output = self.resolver.resolve(s["tickets"], s.get("implicit_links", []))
            return output, {"graph": output.value}

        return await self._run(PipelineStage.GRAPH, state, body)

    async def schedule(self, state: PlanningState) -> dict[str, Any]:
        """Assign tickets to execution tracks."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            track_count = s["request"].track_count(self.settings.planner_default_tracks)
            output = ParallelScheduler(track_count).schedule(s["graph"], s["tickets"])
            return output, {"tracks": output.value}

        return await self._run(PipelineStage.SCHEDULE, state, body)

    async def documents(self, state: PlanningState) -> dict[str, Any]:
        """Generate and store the planning documents."""

        async def body(s: PlanningState) -> tuple[StageOutput[Any], dict[str, Any]]:
            request = s["request"]
            output = await self.documents_generator.generate(
                specification_id=request.specification_id,
                plan_name_prefix=request.plan_name_prefix,
                parsed=s["parsed"],
                tickets=s["tickets"],
                epics=s["epics"],
                graph=s["graph"],
                tracks=s["tracks"],
                cancellation=self.cancellation,
            )
            return output, {"documents": output.value}

        return await self._run(PipelineStage.DOCUMENTS, state, body)
