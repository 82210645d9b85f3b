"""Document generation - summary, execution plan and one file per ticket.

The summary and execution plan are free text from the generative
service. Ticket files are rendered locally from a fixed template, so
they cost no tokens and are byte-for-byte reproducible.
"""

import json
import re
import unicodedata

from loguru import logger

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.exceptions import StorageError
from ticket_planner.decomposition.models import (
    DependencyGraph,
    DocumentPaths,
    Epic,
    ExecutionTrack,
    ModelTier,
    ParsedSpecification,
    PlanningWarning,
    StageOutput,
    Ticket,
)
from ticket_planner.generation.resilient import ResilientCaller
from ticket_planner.prompts.templates import (
    EXECUTION_PLAN_PROMPT,
    EXECUTIVE_SUMMARY_PROMPT,
    language_instruction,
)
from ticket_planner.storage.base import MARKDOWN, DocumentStore

MAX_SLUG_LENGTH = 50

# =============================================================================
# FILENAMES
# =============================================================================


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Lowercase ASCII slug with single hyphens between words.

    Example:
        >>> slugify("Add Login Flow")
        'add-login-flow'
        >>> slugify("Configuração do Banco!")
        'configuracao-do-banco'
    """
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", folded.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "ticket"


def ticket_filename(prefix: str, ticket: Ticket) -> str:
    """
    Deterministic ticket filename.

    Example:
        >>> ticket_filename("CC", Ticket(ticket_number=7, epic_number=2, title="Add Login Flow"))
        'CC-007-02-add-login-flow.md'
    """
    epic = f"{ticket.epic_number:02d}" if ticket.epic_number is not None else "00"
    return f"{prefix}-{ticket.ticket_number:03d}-{epic}-{slugify(ticket.title)}.md"


def specification_paths(specification_id: str) -> tuple[str, str, str]:
    """Summary path, execution plan path and ticket directory for a run."""
    base = f"specs/{specification_id}"
    return f"{base}/SUMMARY.md", f"{base}/EXECUTION_PLAN.md", f"{base}/tickets"


# =============================================================================
# TICKET MARKDOWN
# =============================================================================

_HEADINGS = {
    "en": {
        "description": "Description",
        "acceptance": "Acceptance Criteria",
        "technical": "Technical Information",
        "estimate": "Estimate",
        "minutes": "minutes",
        "complexity": "Complexity",
        "epic": "Epic",
        "parallelizable": "Parallelizable",
        "ai_capable": "AI agent capable",
        "dependencies": "Dependencies",
        "expertise": "Required Expertise",
        "testing": "Testing Strategy",
        "rollback": "Rollback Plan",
        "none": "None",
        "yes": "Yes",
        "no": "No",
    },
    "pt-br": {
        "description": "Descrição",
        "acceptance": "Critérios de Aceitação",
        "technical": "Informações Técnicas",
        "estimate": "Estimativa",
        "minutes": "minutos",
        "complexity": "Complexidade",
        "epic": "Épico",
        "parallelizable": "Paralelizável",
        "ai_capable": "Implementável por IA",
        "dependencies": "Dependências",
        "expertise": "Expertise Necessária",
        "testing": "Estratégia de Teste",
        "rollback": "Plano de Rollback",
        "none": "Nenhuma",
        "yes": "Sim",
        "no": "Não",
    },
}


def render_ticket_markdown(ticket: Ticket, prefix: str = "TICKET", language: str = "en") -> str:
    """Render a ticket with the fixed markdown template.

    Headings are localized for ``pt-BR``; every other language uses English.
    """
    h = _HEADINGS.get(language.lower(), _HEADINGS["en"])

    def bullets(items: list[str]) -> str:
        return "\n".join(f"- {item}" for item in items) if items else h["none"]

    criteria = (
        "\n".join(f"{i}. {c}" for i, c in enumerate(ticket.acceptance_criteria, start=1))
        if ticket.acceptance_criteria
        else h["none"]
    )
    dependencies = bullets([f"{prefix}-{d:03d}" for d in ticket.dependencies])
    epic = str(ticket.epic_number) if ticket.epic_number is not None else h["none"]

    return f"""# {prefix}-{ticket.ticket_number:03d}: {ticket.title}

## {h["description"]}
{ticket.description or h["none"]}

## {h["acceptance"]}
{criteria}

## {h["technical"]}
- **{h["estimate"]}**: {ticket.estimated_minutes} {h["minutes"]}
- **{h["complexity"]}**: {ticket.complexity.value}
- **{h["epic"]}**: {epic}
- **{h["parallelizable"]}**: {h["yes"] if ticket.parallelizable else h["no"]}
- **{h["ai_capable"]}**: {h["yes"] if ticket.ai_agent_capable else h["no"]}

## {h["dependencies"]}
{dependencies}

## {h["expertise"]}
{bullets(ticket.required_expertise)}

## {h["testing"]}
{ticket.testing_strategy or h["none"]}

## {h["rollback"]}
{ticket.rollback_plan or h["none"]}
"""


# =============================================================================
# DOCUMENT GENERATOR
# =============================================================================


class DocumentGenerator:
    """
    Generate and store the planning documents.

    Generation failures are fatal to the stage. Storage failures are
    not: each one becomes a ``storage_failure`` warning and the
    corresponding path is left out of the result.
    """

    STAGE = "documents"

    def __init__(
        self,
        caller: ResilientCaller,
        store: DocumentStore,
        language: str = "en",
    ) -> None:
        self.caller = caller
        self.store = store
        self.language = language

    async def generate(
        self,
        specification_id: str,
        plan_name_prefix: str,
        parsed: ParsedSpecification,
        tickets: list[Ticket],
        epics: list[Epic],
        graph: DependencyGraph,
        tracks: list[ExecutionTrack],
        cancellation: CancellationToken | None = None,
    ) -> StageOutput[DocumentPaths]:
        """
        Generate SUMMARY.md, EXECUTION_PLAN.md and the ticket files.

        Args:
            specification_id: Used as the storage folder.
            plan_name_prefix: Prefix of ticket filenames.
            parsed: Parsed specification.
            tickets: Final tickets.
            epics: Epics.
            graph: Dependency graph.
            tracks: Execution tracks.
            cancellation: Optional cancellation token.

        Returns:
            StageOutput wrapping the stored document paths.

        Raises:
            GenerationUnavailable: If either document cannot be generated.
        """
        logger.info(f"Generating documents for specification {specification_id}")

        summary_path, plan_path, ticket_dir = specification_paths(specification_id)
        instruction = language_instruction(self.language)

        tickets_data = [t.model_dump(mode="json", by_alias=True, exclude_defaults=True) for t in tickets]
        graph_data = graph.model_dump(mode="json", by_alias=True)
        tracks_data = [
            {"trackId": t.track_id, "tickets": t.ticket_numbers, "estimatedMinutes": t.estimated_minutes}
            for t in tracks
        ]

        summary = await self.caller.invoke(
            EXECUTIVE_SUMMARY_PROMPT.format(
                language_instruction=instruction,
                data=_dump(
                    {
                        "tickets": tickets_data,
                        "epics": [e.model_dump(mode="json", by_alias=True) for e in epics],
                        "parsedSpecification": parsed.model_dump(mode="json", by_alias=True),
                        "dependencyGraph": graph_data,
                        "executionTracks": tracks_data,
                    }
                ),
            ),
            ModelTier.STANDARD,
            stage=self.STAGE,
            temperature=0.5,
            cancellation=cancellation,
        )

        plan = await self.caller.invoke(
            EXECUTION_PLAN_PROMPT.format(
                language_instruction=instruction,
                data=_dump(
                    {
                        "tickets": tickets_data,
                        "executionTracks": tracks_data,
                        "dependencyGraph": graph_data,
                    }
                ),
            ),
            ModelTier.STANDARD,
            stage=self.STAGE,
            temperature=0.5,
            cancellation=cancellation,
        )

        warnings: list[PlanningWarning] = []
        stored_summary = await self._store(summary_path, summary.text.strip(), warnings)
        stored_plan = await self._store(plan_path, plan.text.strip(), warnings)

        ticket_paths: dict[int, str] = {}
        for ticket in tickets:
            path = f"{ticket_dir}/{ticket_filename(plan_name_prefix, ticket)}"
            markdown = render_ticket_markdown(ticket, plan_name_prefix, self.language)
            if await self._store(path, markdown, warnings, ticket.ticket_number):
                ticket_paths[ticket.ticket_number] = path

        logger.info(
            f"Stored {len(ticket_paths)} ticket files and "
            f"{sum(p is not None for p in (stored_summary, stored_plan))} planning documents "
            f"({len(warnings)} storage failures)"
        )

        return StageOutput(
            value=DocumentPaths(
                summary_path=stored_summary,
                execution_plan_path=stored_plan,
                ticket_paths=ticket_paths,
            ),
            usage=[summary.usage_for(self.STAGE), plan.usage_for(self.STAGE)],
            warnings=warnings,
        )

    async def _store(
        self,
        path: str,
        content: str,
        warnings: list[PlanningWarning],
        ticket_number: int | None = None,
    ) -> str | None:
        """Store one document; return its path, or None after recording a warning."""
        try:
            await self.store.put(path, content, MARKDOWN)
        except StorageError as e:
            logger.warning(f"Storage failure for {path}: {e}")
            warnings.append(
                PlanningWarning(
                    code="storage_failure",
                    message=str(e),
                    ticket_numbers=[ticket_number] if ticket_number is not None else [],
                )
            )
            return None
        return path


def _dump(data: dict) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)
