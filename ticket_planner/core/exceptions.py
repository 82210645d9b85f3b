"""Exception hierarchy for the ticket planning pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ticket_planner.decomposition.models import PlanningFailure


class PlannerError(Exception):
    """Base exception for planner errors."""

    pass


# =============================================================================
# GENERATION
# =============================================================================


class GenerationError(PlannerError):
    """A generative text call failed."""

    pass


class RateLimited(GenerationError):
    """The generative service throttled the request."""

    pass


class GenerationFailure(GenerationError):
    """Any non-throttling failure of the generative service."""

    pass


class GenerationUnavailable(PlannerError):
    """Retries were exhausted for a generation call."""

    def __init__(self, message: str, last_error: Exception | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class MalformedResponse(PlannerError):
    """No structured value could be recovered from a response."""

    def __init__(self, text: str) -> None:
        preview = text[:200] + ("..." if len(text) > 200 else "")
        super().__init__(f"Could not extract structured data from response: {preview!r}")
        self.text = text


# =============================================================================
# PRE-FLIGHT
# =============================================================================


class SpecificationTooLarge(PlannerError):
    """Specification exceeds the token budget."""

    def __init__(self, estimated_tokens: int, max_tokens: int) -> None:
        super().__init__(
            f"Specification is too large ({estimated_tokens} tokens estimated). "
            f"Maximum is {max_tokens} tokens."
        )
        self.estimated_tokens = estimated_tokens
        self.max_tokens = max_tokens


# =============================================================================
# STORAGE
# =============================================================================


class StorageError(PlannerError):
    """Document storage failed."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Failed to store {path}: {message}")
        self.path = path


# =============================================================================
# PIPELINE OUTCOMES
# =============================================================================


class PlanningCancelled(PlannerError):
    """The caller cancelled the run or its deadline passed."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Planning cancelled before stage '{stage}'")
        self.stage = stage


class PlanningFailed(PlannerError):
    """A stage failed and the run was aborted."""

    def __init__(self, failure: PlanningFailure) -> None:
        super().__init__(f"Stage '{failure.stage}' failed: {failure.message}")
        self.failure = failure
