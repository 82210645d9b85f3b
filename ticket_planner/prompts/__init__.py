"""Prompt management - templates for each generative stage."""

from ticket_planner.prompts.templates import (
    EXECUTION_PLAN_PROMPT,
    EXECUTIVE_SUMMARY_PROMPT,
    GENERATE_TICKETS_PROMPT,
    GROUP_EPICS_PROMPT,
    IDENTIFY_COMPONENTS_PROMPT,
    PARSE_SPECIFICATION_PROMPT,
    PromptTemplate,
    get_template,
    language_instruction,
    list_templates,
)

__all__ = [
    "EXECUTION_PLAN_PROMPT",
    "EXECUTIVE_SUMMARY_PROMPT",
    "GENERATE_TICKETS_PROMPT",
    "GROUP_EPICS_PROMPT",
    "IDENTIFY_COMPONENTS_PROMPT",
    "PARSE_SPECIFICATION_PROMPT",
    "PromptTemplate",
    "get_template",
    "language_instruction",
    "list_templates",
]
