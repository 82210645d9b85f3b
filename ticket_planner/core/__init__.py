"""Core module - configuration, errors, cancellation and pipeline state.

The orchestrator is imported from ``ticket_planner.core.orchestrator``
(or the package root) to keep this module free of import cycles.
"""

from ticket_planner.core.cancellation import CancellationToken
from ticket_planner.core.config import Settings, clear_settings_cache, get_settings
from ticket_planner.core.exceptions import (
    GenerationError,
    GenerationFailure,
    GenerationUnavailable,
    MalformedResponse,
    PlannerError,
    PlanningCancelled,
    PlanningFailed,
    RateLimited,
    SpecificationTooLarge,
    StorageError,
)

__all__ = [
    "CancellationToken",
    "GenerationError",
    "GenerationFailure",
    "GenerationUnavailable",
    "MalformedResponse",
    "PlannerError",
    "PlanningCancelled",
    "PlanningFailed",
    "RateLimited",
    "Settings",
    "SpecificationTooLarge",
    "StorageError",
    "clear_settings_cache",
    "get_settings",
]
