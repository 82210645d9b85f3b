"""Specification analysis - the first two generative stages.

1. SpecificationParser: free text -> ParsedSpecification
2. ComponentIdentifier: ParsedSpecification -> list of Components
"""

import json
from typing import Any

from loguru import logger
from pydantic import ValidationError

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.exceptions import MalformedResponse
from ticket_planner.decomposition.models import (
    Component,
    ModelTier,
    ParsedSpecification,
    ProjectContext,
    Specification,
    StageOutput,
)
from ticket_planner.generation.extractor import extract_object
from ticket_planner.generation.resilient import ResilientCaller
from ticket_planner.prompts.templates import (
    IDENTIFY_COMPONENTS_PROMPT,
    PARSE_SPECIFICATION_PROMPT,
    language_instruction,
)

# =============================================================================
# SPECIFICATION PARSER
# =============================================================================


class SpecificationParser:
    """
    Extract objective, requirements, constraints and success criteria.

    Example:
        >>> parser = SpecificationParser(caller)
        >>> output = await parser.parse(specification)
        >>> output.value.objective
        'Let users manage their todo lists'
    """

    STAGE = "parse"

    def __init__(self, caller: ResilientCaller, language: str = "en") -> None:
        self.caller = caller
        self.language = language

    async def parse(
        self,
        specification: Specification,
        cancellation: CancellationToken | None = None,
    ) -> StageOutput[ParsedSpecification]:
        """
        Parse a specification into structured intent.

        Args:
            specification: Specification to analyze.
            cancellation: Optional cancellation token.

        Returns:
            StageOutput wrapping the ParsedSpecification.

        Raises:
            GenerationUnavailable: If the generative service is unavailable.
            MalformedResponse: If the response holds no usable JSON object.
        """
        logger.info(f"Parsing specification {specification.id} ({specification.spec_type.value})")
        logger.debug(f"Specification: {specification.content[:200]}...")

        prompt = PARSE_SPECIFICATION_PROMPT.format(
            spec_type=specification.spec_type.value,
            language_instruction=language_instruction(self.language),
            specification=specification.content,
        )

        result = await self.caller.invoke(
            prompt,
            ModelTier.HIGH_CAPABILITY,
            stage=self.STAGE,
            temperature=0.3,
            cancellation=cancellation,
        )

        data = extract_object(result.text)
        try:
            parsed = ParsedSpecification.model_validate(data)
        except ValidationError as e:
            logger.error(f"Parsed specification has an unexpected shape: {e}")
            raise MalformedResponse(result.text) from e

        logger.info(
            f"Parsed {len(parsed.functional_requirements)} functional and "
            f"{len(parsed.non_functional_requirements)} non-functional requirements"
        )
        return StageOutput(value=parsed, usage=[result.usage_for(self.STAGE)])


# =============================================================================
# COMPONENT IDENTIFIER
# =============================================================================


class ComponentIdentifier:
    """Propose implementable components with name-based dependencies."""

    STAGE = "components"

    def __init__(self, caller: ResilientCaller, language: str = "en") -> None:
        self.caller = caller
        self.language = language

    async def identify(
        self,
        parsed: ParsedSpecification,
        project_context: ProjectContext,
        cancellation: CancellationToken | None = None,
    ) -> StageOutput[list[Component]]:
        """
        Identify components sized at one to three days each.

        Args:
            parsed: Output of the parse stage.
            project_context: Tech stack and conventions passed through to the prompt.
            cancellation: Optional cancellation token.

        Returns:
            StageOutput wrapping the ordered component list.

        Raises:
            GenerationUnavailable: If the generative service is unavailable.
            MalformedResponse: If no valid component is returned.
        """
        logger.info("Identifying components")

        prompt = IDENTIFY_COMPONENTS_PROMPT.format(
            language_instruction=language_instruction(self.language),
            project_context=format_project_context(project_context),
            requirements=json.dumps(parsed.model_dump(by_alias=True), indent=2, ensure_ascii=False),
        )

        result = await self.caller.invoke(
            prompt,
            ModelTier.HIGH_CAPABILITY,
            stage=self.STAGE,
            temperature=0.4,
            cancellation=cancellation,
        )

        data = extract_object(result.text)
        components = self._to_components(data.get("components", []))

        if not components:
            logger.error("No components identified in response")
            raise MalformedResponse(result.text)

        logger.info(f"Identified {len(components)} components")
        return StageOutput(value=components, usage=[result.usage_for(self.STAGE)])

    def _to_components(self, raw: Any) -> list[Component]:
        """Validate raw component dicts, skipping invalid and duplicate entries."""
        if not isinstance(raw, list):
            return []

        components: list[Component] = []
        seen: set[str] = set()

        for item in raw:
            try:
                component = Component.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Skipping invalid component {item!r}: {e}")
                continue

            if component.name in seen:
                logger.warning(f"Skipping duplicate component '{component.name}'")
                continue

            seen.add(component.name)
            components.append(component)

        return components


def format_project_context(context: ProjectContext) -> str:
    """Render project context for prompts."""
    if context.is_empty():
        return "No project context provided."
    return json.dumps(
        context.model_dump(by_alias=True, exclude_defaults=True),
        indent=2,
        ensure_ascii=False,
        default=str,
    )
