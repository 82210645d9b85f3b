"""Caller-supplied cancellation signal for planning runs."""

import time

from loguru import logger

from ticket_planner.core.exceptions import PlanningCancelled


class CancellationToken:
    """
    Cooperative cancellation with an optional deadline.

    The pipeline checks the token before each stage and before each
    retry sleep. Cancellation never interrupts an in-flight request.

    Example:
        >>> token = CancellationToken(timeout=300)
        >>> token.raise_if_cancelled("parse")
        >>> token.cancel()
        >>> token.is_cancelled
        True
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._cancelled = False
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        """Request cancellation."""
        self._cancelled = True

    @property
    def deadline_passed(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled or self.deadline_passed

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise PlanningCancelled if cancellation was requested.

        Args:
            stage: Stage about to start, reported on the exception.
        """
        if self.is_cancelled:
            reason = "deadline exceeded" if self.deadline_passed else "cancel requested"
            logger.warning(f"Cancelling planning run at stage '{stage}' ({reason})")
            raise PlanningCancelled(stage)
