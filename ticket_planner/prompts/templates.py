"""
Prompt templates for the ticket planning pipeline.

One template per generative stage: specification parsing, component
identification, ticket generation, epic grouping, and the two planning
documents (executive summary and execution plan).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# TEMPLATE MODEL
# =============================================================================


class PromptTemplate(BaseModel):
    """A reusable prompt template."""

    model_config = ConfigDict(frozen=True)

    name: str
    template: str
    description: str = ""
    variables: list[str] = Field(default_factory=list)

    def format(self, **kwargs: Any) -> str:
        """Format the template with provided values.

        Args:
            **kwargs: Template variable values.

        Returns:
            Formatted prompt string.

        Raises:
            ValueError: If a declared variable is not provided.
        """
        missing = self.get_missing_variables(**kwargs)
        if missing:
            raise ValueError(f"Template '{self.name}' is missing variables: {', '.join(missing)}")
        return self.template.format(**kwargs)

    def get_missing_variables(self, **kwargs: Any) -> list[str]:
        """Get list of variables not provided.

        Args:
            **kwargs: Provided variables.

        Returns:
            List of missing variable names.
        """
        return [v for v in self.variables if v not in kwargs]


def language_instruction(language: str) -> str:
    """Instruction appended to prompts so generated text uses ``language``."""
    if language.lower() in ("en", "en-us", "en-gb", "english"):
        return "Write all text values in English."
    return f"Write all text values in the language identified by '{language}'. Keep JSON keys in English."


# =============================================================================
# ANALYSIS PROMPTS
# =============================================================================


PARSE_SPECIFICATION_PROMPT = PromptTemplate(
    name="parse_specification",
    description="Extract structured intent from a free-text specification",
    template="""You are a technical specification analyzer.

Analyze the {spec_type} specification below and extract:
- The main project objective
- Functional requirements
- Non-functional requirements
- Technical constraints
- Success criteria

{language_instruction}

Respond with JSON only:
{{
    "objective": "string",
    "functionalRequirements": ["string"],
    "nonFunctionalRequirements": ["string"],
    "constraints": ["string"],
    "successCriteria": ["string"]
}}

SPECIFICATION:
{specification}""",
    variables=["spec_type", "language_instruction", "specification"],
)


IDENTIFY_COMPONENTS_PROMPT = PromptTemplate(
    name="identify_components",
    description="Break parsed requirements into implementable components",
    template="""You are a software architect specialized in breaking projects into implementable components.

Identify logical components that can each be implemented in 1-3 days.
Consider separation of concerns, dependencies between components,
technical complexity and how much work can proceed in parallel.
Dependencies must reference other component names exactly.

{language_instruction}

Respond with JSON only:
{{
    "components": [
        {{"name": "string", "description": "string", "estimatedDays": 1, "dependencies": ["component name"]}}
    ]
}}

PROJECT CONTEXT:
{project_context}

REQUIREMENTS:
{requirements}""",
    variables=["language_instruction", "project_context", "requirements"],
)


# =============================================================================
# TICKET PROMPTS
# =============================================================================


GENERATE_TICKETS_PROMPT = PromptTemplate(
    name="generate_tickets",
    description="Create detailed tickets for one batch of components",
    template="""You are a project manager specialized in creating detailed development tickets.

Create one or more tickets for each component below, in component order. Each ticket has:
- title: clear and concise title
- description: detailed description of the work
- acceptanceCriteria: list of verifiable acceptance criteria
- estimatedMinutes: estimate in minutes (maximum 3 days = {max_minutes} minutes)
- complexity: "simple", "medium" or "complex"
- component: the name of the component the ticket implements
- dependencies: names of components or titles of tickets this ticket depends on
- parallelizable: true if it can be done in parallel with other tickets
- aiAgentCapable: true if an AI coding agent can implement it
- requiredExpertise: list of required skills
- testingStrategy: how this ticket will be tested
- rollbackPlan: how to roll back if something goes wrong

{language_instruction}

Respond with JSON only: {{"tickets": [ ... ]}}

COMPONENTS:
{components}

SPECIFICATION CONTEXT:
{requirements}""",
    variables=["max_minutes", "language_instruction", "components", "requirements"],
)


GROUP_EPICS_PROMPT = PromptTemplate(
    name="group_epics",
    description="Partition tickets into epics and surface implicit dependencies",
    template="""You are a delivery lead grouping development tickets into epics.

Group the tickets below into coherent epics of at most {max_tickets_per_epic} tickets.
Each ticket belongs to at most one epic. Number epics from 1.
Also list implicit dependencies between tickets that their own dependency lists miss,
especially links that cross epic boundaries.

{language_instruction}

Respond with JSON only:
{{
    "epics": [
        {{"epicNumber": 1, "title": "string", "description": "string", "ticketNumbers": [1, 2]}}
    ],
    "implicitDependencies": [
        {{"ticketNumber": 3, "dependsOn": 1}}
    ]
}}

TICKETS:
{tickets}""",
    variables=["max_tickets_per_epic", "language_instruction", "tickets"],
)


# =============================================================================
# DOCUMENT PROMPTS
# =============================================================================


EXECUTIVE_SUMMARY_PROMPT = PromptTemplate(
    name="executive_summary",
    description="SUMMARY.md for a planning run",
    template="""You are a technical project manager writing an executive summary.

Write a SUMMARY.md markdown document with these sections:

# Executive Summary
## Overview
## Ticket Breakdown (totals by complexity and by epic)
## Critical Path
## Risk Matrix (table: Risk | Probability | Impact | Mitigation)
## Resource Requirements
## Timeline Estimate (sequential vs parallel duration, confidence level)

{language_instruction}

Respond with the markdown document only.

DATA:
{data}""",
    variables=["language_instruction", "data"],
)


EXECUTION_PLAN_PROMPT = PromptTemplate(
    name="execution_plan",
    description="EXECUTION_PLAN.md for a planning run",
    template="""You are a software architect writing a detailed execution plan.

Write an EXECUTION_PLAN.md markdown document with these sections:

# Execution Plan
## Parallel Execution Tracks (one subsection per track: tickets, estimated duration, recommended agent)
## Sequential Dependencies
## Agent Assignment Recommendations (table: Ticket | Recommended Agent | Reason)
## Integration and Synchronization Points
## Testing and Validation Checkpoints
## Rollback Strategy by Phase

{language_instruction}

Respond with the markdown document only.

DATA:
{data}""",
    variables=["language_instruction", "data"],
)


# =============================================================================
# TEMPLATE REGISTRY
# =============================================================================


ALL_TEMPLATES: dict[str, PromptTemplate] = {
    "parse_specification": PARSE_SPECIFICATION_PROMPT,
    "identify_components": IDENTIFY_COMPONENTS_PROMPT,
    "generate_tickets": GENERATE_TICKETS_PROMPT,
    "group_epics": GROUP_EPICS_PROMPT,
    "executive_summary": EXECUTIVE_SUMMARY_PROMPT,
    "execution_plan": EXECUTION_PLAN_PROMPT,
}


def get_template(name: str) -> PromptTemplate | None:
    """Get a template by name.

    Args:
        name: Template name.

    Returns:
        PromptTemplate if found, None otherwise.
    """
    return ALL_TEMPLATES.get(name)


def list_templates() -> list[str]:
    """List all available template names."""
    return list(ALL_TEMPLATES.keys())
