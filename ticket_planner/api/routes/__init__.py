"""API route modules."""

from ticket_planner.api.routes import plans

__all__ = ["plans"]
