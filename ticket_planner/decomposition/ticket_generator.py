"""Ticket generator - creates numbered tickets from components in batches."""

import json
from typing import Any

import anyio
from loguru import logger

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.decomposition.models import (
    MAX_TICKET_MINUTES,
    Complexity,
    Component,
    ModelTier,
    ParsedSpecification,
    PlanningWarning,
    StageOutput,
    Ticket,
    TokenUsage,
)
from ticket_planner.generation.client import GenerationResult
from ticket_planner.generation.extractor import extract_object
from ticket_planner.generation.resilient import ResilientCaller
from ticket_planner.prompts.templates import GENERATE_TICKETS_PROMPT, language_instruction

DEFAULT_TICKET_MINUTES = 60


class TicketGenerator:
    """
    Generate tickets from components.

    Components are sent in fixed-size batches to bound prompt size.
    Batches may run concurrently, but ticket numbers are always assigned
    in (batch index, position in batch) order so that the output does
    not depend on network timing.

    Example:
        >>> generator = TicketGenerator(caller, batch_size=5)
        >>> output = await generator.generate(components, parsed)
        >>> [t.ticket_number for t in output.value]
        [1, 2, 3]
    """

    STAGE = "tickets"

    def __init__(
        self,
        caller: ResilientCaller,
        language: str = "en",
        batch_size: int = 5,
        concurrency: int = 1,
    ) -> None:
        """Initialize the ticket generator.

        Args:
            caller: Resilient call wrapper.
            language: Output language for ticket text.
            batch_size: Components per generation call.
            concurrency: Maximum batches in flight at once.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.caller = caller
        self.language = language
        self.batch_size = batch_size
        self.concurrency = max(concurrency, 1)

    def make_batches(self, components: list[Component]) -> list[list[Component]]:
        """Split components into consecutive batches, preserving order."""
        return [
            components[start : start + self.batch_size]
            for start in range(0, len(components), self.batch_size)
        ]

    async def generate(
        self,
        components: list[Component],
        parsed: ParsedSpecification,
        cancellation: CancellationToken | None = None,
    ) -> StageOutput[list[Ticket]]:
        """
        Generate tickets for all components.

        Args:
            components: Components from the identify stage, in order.
            parsed: Parsed specification used as prompt context.
            cancellation: Optional cancellation token.

        Returns:
            StageOutput wrapping tickets numbered from 1.

        Raises:
            GenerationUnavailable: If any batch exhausts its retries.
            MalformedResponse: If any batch response is unparseable.
        """
        batches = self.make_batches(components)
        logger.info(
            f"Generating tickets for {len(components)} components in {len(batches)} batches "
            f"(concurrency={self.concurrency})"
        )

        requirements = json.dumps(parsed.model_dump(by_alias=True), indent=2, ensure_ascii=False)
        limiter = anyio.CapacityLimiter(self.concurrency)
        batch_results: dict[int, tuple[list[dict[str, Any]], GenerationResult]] = {}

        async def run_batch(index: int, batch: list[Component]) -> None:
            async with limiter:
                batch_results[index] = await self._generate_batch(
                    index, batch, requirements, cancellation
                )

        # A failing batch cancels the batches still in flight
        try:
            async with anyio.create_task_group() as tg:
                for index, batch in enumerate(batches):
                    tg.start_soon(run_batch, index, batch)
        except ExceptionGroup as group:
            raise _first_error(group) from None

        drafts: list[dict[str, Any]] = []
        usage: list[TokenUsage] = []
        for index in range(len(batches)):
            batch_drafts, result = batch_results[index]
            drafts.extend(batch_drafts)
            usage.append(result.usage_for(self.STAGE))

        tickets, warnings = self._number_tickets(drafts, components)

        logger.info(f"Generated {len(tickets)} tickets")
        return StageOutput(value=tickets, usage=usage, warnings=warnings)

    async def _generate_batch(
        self,
        index: int,
        batch: list[Component],
        requirements: str,
        cancellation: CancellationToken | None,
    ) -> tuple[list[dict[str, Any]], GenerationResult]:
        """Request tickets for one batch and normalize the raw drafts."""
        logger.debug(f"Ticket batch {index + 1}: {[c.name for c in batch]}")

        prompt = GENERATE_TICKETS_PROMPT.format(
            max_minutes=MAX_TICKET_MINUTES,
            language_instruction=language_instruction(self.language),
            components=json.dumps(
                [c.model_dump(by_alias=True) for c in batch], indent=2, ensure_ascii=False
            ),
            requirements=requirements,
        )

        result = await self.caller.invoke(
            prompt,
            ModelTier.STANDARD,
            stage=self.STAGE,
            temperature=0.5,
            cancellation=cancellation,
        )

        raw_tickets = extract_object(result.text).get("tickets", [])
        if not isinstance(raw_tickets, list):
            raw_tickets = []

        drafts = []
        for position, raw in enumerate(raw_tickets):
            if not isinstance(raw, dict):
                logger.warning(f"Skipping non-object ticket in batch {index + 1}: {raw!r}")
                continue
            drafts.append(self._normalize(raw, batch, position, len(raw_tickets)))

        if not drafts:
            logger.warning(f"Batch {index + 1} produced no tickets")

        return drafts, result

    def _normalize(
        self,
        raw: dict[str, Any],
        batch: list[Component],
        position: int,
        batch_ticket_count: int,
    ) -> dict[str, Any]:
        """Coerce a raw ticket dict into Ticket fields (without number or dependencies)."""
        names = {c.name.lower(): c.name for c in batch}
        component = raw.get("component")
        if isinstance(component, str) and component.lower() in names:
            component = names[component.lower()]
        elif batch_ticket_count == len(batch):
            # One ticket per component: position identifies the component
            component = batch[position].name
        else:
            component = component if isinstance(component, str) and component else None

        title = str(raw.get("title") or "").strip() or component or "Untitled ticket"

        return {
            "title": title,
            "description": str(raw.get("description") or ""),
            "acceptance_criteria": _string_list(raw.get("acceptanceCriteria", raw.get("acceptance_criteria"))),
            "estimated_minutes": _estimate_minutes(raw),
            "complexity": _complexity(raw.get("complexity")),
            "parallelizable": _flag(raw.get("parallelizable")),
            "ai_agent_capable": _flag(raw.get("aiAgentCapable", raw.get("ai_agent_capable"))),
            "required_expertise": _string_list(raw.get("requiredExpertise", raw.get("required_expertise"))),
            "testing_strategy": str(raw.get("testingStrategy") or raw.get("testing_strategy") or ""),
            "rollback_plan": str(raw.get("rollbackPlan") or raw.get("rollback_plan") or ""),
            "component": component,
            "raw_dependencies": raw.get("dependencies") or [],
        }

    def _number_tickets(
        self,
        drafts: list[dict[str, Any]],
        components: list[Component],
    ) -> tuple[list[Ticket], list[PlanningWarning]]:
        """Assign ticket numbers in draft order and resolve dependency references."""
        warnings: list[PlanningWarning] = []

        by_component: dict[str, list[int]] = {}
        by_title: dict[str, int] = {}
        for number, draft in enumerate(drafts, start=1):
            if draft["component"]:
                by_component.setdefault(draft["component"].lower(), []).append(number)
            by_title.setdefault(draft["title"].lower(), number)

        component_deps = {c.name.lower(): [d.lower() for d in c.dependencies] for c in components}

        tickets: list[Ticket] = []
        for number, draft in enumerate(drafts, start=1):
            references: set[int] = set()

            for ref in _as_list(draft.pop("raw_dependencies")):
                resolved = _resolve_reference(ref, by_component, by_title)
                if resolved is None:
                    warnings.append(
                        PlanningWarning(
                            code="unresolved_dependency",
                            message=f"Ticket {number} references unknown dependency {ref!r}",
                            ticket_numbers=[number],
                        )
                    )
                    logger.warning(f"Ticket {number} has unresolved dependency {ref!r}")
                    continue
                references.update(resolved)

            # Tickets inherit the dependencies declared between their components
            if draft["component"]:
                for dep_name in component_deps.get(draft["component"].lower(), []):
                    references.update(by_component.get(dep_name, []))

            if number in references:
                references.discard(number)
                warnings.append(
                    PlanningWarning(
                        code="self_dependency",
                        message=f"Ticket {number} declared itself as a dependency",
                        ticket_numbers=[number],
                    )
                )

            tickets.append(Ticket(ticket_number=number, dependencies=sorted(references), **draft))

        return tickets, warnings


# =============================================================================
# HELPERS
# =============================================================================


def _first_error(group: BaseExceptionGroup) -> BaseException:
    """First leaf exception of a (possibly nested) task group failure."""
    error: BaseException = group
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _string_list(value: Any) -> list[str]:
    return [str(item) for item in _as_list(value) if item is not None and str(item).strip()]


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "no", "0", "")
    return True if value is None else bool(value)


def _complexity(value: Any) -> Complexity:
    try:
        return Complexity(str(value).strip().lower())
    except ValueError:
        return Complexity.MEDIUM


def _estimate_minutes(raw: dict[str, Any]) -> int:
    """Estimate in minutes, accepting hours, clamped to the multi-day cap."""
    minutes: float | None = None
    for key, factor in (("estimatedMinutes", 1), ("estimated_minutes", 1), ("estimatedHours", 60), ("estimated_hours", 60)):
        value = raw.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            minutes = float(value) * factor
            break
        except (TypeError, ValueError):
            continue

    if minutes is None:
        return DEFAULT_TICKET_MINUTES
    return int(min(max(round(minutes), 1), MAX_TICKET_MINUTES))


def _resolve_reference(
    ref: Any,
    by_component: dict[str, list[int]],
    by_title: dict[str, int],
) -> list[int] | None:
    """Map a dependency reference to ticket numbers.

    Integers (or numeric strings) are taken as ticket numbers and checked
    later by the dependency resolver. Strings match a component name
    (every ticket of that component) or a ticket title.
    """
    if isinstance(ref, bool):
        return None
    if isinstance(ref, int):
        return [ref]
    if isinstance(ref, str):
        key = ref.strip()
        if key.isdigit():
            return [int(key)]
        lowered = key.lower()
        if lowered in by_component:
            return list(by_component[lowered])
        if lowered in by_title:
            return [by_title[lowered]]
    return None
