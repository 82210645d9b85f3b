"""Generative text access - service adapters, retries and response parsing."""

from ticket_planner.generation.client import (
    AnthropicTextService,
    GenerationResult,
    GenerativeTextService,
    ServiceResponse,
    calculate_cost,
    model_for_tier,
)
from ticket_planner.generation.extractor import extract_object, extract_structured
from ticket_planner.generation.resilient import ResilientCaller

__all__ = [
    "AnthropicTextService",
    "GenerationResult",
    "GenerativeTextService",
    "ResilientCaller",
    "ServiceResponse",
    "calculate_cost",
    "extract_object",
    "extract_structured",
    "model_for_tier",
]
