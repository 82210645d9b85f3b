"""Epic grouping - partitions tickets into epics."""

import json
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import ValidationError

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.decomposition.models import (
    DependencyLink,
    Epic,
    ModelTier,
    PlanningWarning,
    StageOutput,
    Ticket,
)
from ticket_planner.generation.extractor import extract_object
from ticket_planner.generation.resilient import ResilientCaller
from ticket_planner.prompts.templates import GROUP_EPICS_PROMPT, language_instruction


@dataclass
class EpicGrouping:
    """Epics, the tickets annotated with their epic, and inferred links."""

    epics: list[Epic]
    tickets: list[Ticket]
    implicit_links: list[DependencyLink] = field(default_factory=list)


class EpicGrouper:
    """
    Group tickets into epics.

    Membership is a partition: a ticket joins the first epic that claims
    it. Tickets that no epic claims, or that would overflow an epic,
    stay epic-less and are never dropped.
    """

    STAGE = "epics"

    def __init__(
        self,
        caller: ResilientCaller,
        language: str = "en",
        max_tickets_per_epic: int = 10,
    ) -> None:
        self.caller = caller
        self.language = language
        self.max_tickets_per_epic = max_tickets_per_epic

    async def group(
        self,
        tickets: list[Ticket],
        cancellation: CancellationToken | None = None,
    ) -> StageOutput[EpicGrouping]:
        """
        Group tickets into epics.

        Args:
            tickets: Numbered tickets.
            cancellation: Optional cancellation token.

        Returns:
            StageOutput wrapping the EpicGrouping.

        Raises:
            GenerationUnavailable: If the generative service is unavailable.
            MalformedResponse: If the response holds no usable JSON object.
        """
        logger.info(f"Grouping {len(tickets)} tickets into epics")

        summary = [
            {
                "ticketNumber": t.ticket_number,
                "title": t.title,
                "component": t.component,
                "dependencies": t.dependencies,
            }
            for t in tickets
        ]
        prompt = GROUP_EPICS_PROMPT.format(
            max_tickets_per_epic=self.max_tickets_per_epic,
            language_instruction=language_instruction(self.language),
            tickets=json.dumps(summary, indent=2, ensure_ascii=False),
        )

        result = await self.caller.invoke(
            prompt,
            ModelTier.HIGH_CAPABILITY,
            stage=self.STAGE,
            temperature=0.3,
            cancellation=cancellation,
        )
        data = extract_object(result.text)

        grouping, warnings = self.assign(tickets, data.get("epics", []))
        grouping.implicit_links = self._parse_links(data.get("implicitDependencies", []))

        epic_less = sum(1 for t in grouping.tickets if t.epic_number is None)
        logger.info(
            f"Grouped tickets into {len(grouping.epics)} epics "
            f"({epic_less} without epic, {len(grouping.implicit_links)} implicit links)"
        )
        return StageOutput(value=grouping, usage=[result.usage_for(self.STAGE)], warnings=warnings)

    def assign(
        self,
        tickets: list[Ticket],
        raw_epics: Any,
    ) -> tuple[EpicGrouping, list[PlanningWarning]]:
        """Validate raw epics into a partition over ``tickets``.

        Epics are renumbered from 1 in response order; epics left empty
        after validation are discarded.
        """
        warnings: list[PlanningWarning] = []
        known = {t.ticket_number for t in tickets}
        owner: dict[int, int] = {}
        epics: list[Epic] = []

        for raw in raw_epics if isinstance(raw_epics, list) else []:
            if not isinstance(raw, dict):
                continue

            epic_number = len(epics) + 1
            members: list[int] = []

            for value in raw.get("ticketNumbers", raw.get("ticket_numbers", [])) or []:
                number = _as_int(value)
                if number is None or number not in known:
                    warnings.append(
                        PlanningWarning(
                            code="unknown_epic_ticket",
                            message=f"Epic {epic_number} references unknown ticket {value!r}",
                        )
                    )
                    continue
                if number in members:
                    continue
                if number in owner:
                    warnings.append(
                        PlanningWarning(
                            code="duplicate_epic_membership",
                            message=(
                                f"Ticket {number} already belongs to epic {owner[number]}; "
                                f"ignored for epic {epic_number}"
                            ),
                            ticket_numbers=[number],
                        )
                    )
                    continue
                if len(members) >= self.max_tickets_per_epic:
                    warnings.append(
                        PlanningWarning(
                            code="epic_overflow",
                            message=(
                                f"Epic {epic_number} exceeds {self.max_tickets_per_epic} tickets; "
                                f"ticket {number} left without epic"
                            ),
                            ticket_numbers=[number],
                        )
                    )
                    continue
                members.append(number)

            if not members:
                logger.debug(f"Discarding empty epic {raw.get('title')!r}")
                continue

            for number in members:
                owner[number] = epic_number

            epics.append(
                Epic(
                    epic_number=epic_number,
                    title=str(raw.get("title") or f"Epic {epic_number}"),
                    description=str(raw.get("description") or ""),
                    ticket_numbers=members,
                )
            )

        for warning in warnings:
            logger.warning(warning.message)

        annotated = [
            t.model_copy(update={"epic_number": owner.get(t.ticket_number)}) for t in tickets
        ]
        return EpicGrouping(epics=epics, tickets=annotated), warnings

    def _parse_links(self, raw_links: Any) -> list[DependencyLink]:
        links: list[DependencyLink] = []
        for raw in raw_links if isinstance(raw_links, list) else []:
            try:
                links.append(DependencyLink.model_validate(raw))
            except ValidationError:
                logger.warning(f"Skipping invalid implicit dependency {raw!r}")
        return links


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
