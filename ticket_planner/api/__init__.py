"""
Ticket Planner API.

FastAPI transport for the planning pipeline.
"""

from ticket_planner.api.main import app

__all__ = ["app"]
