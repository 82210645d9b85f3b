"""
Ticket Planner - turns software specifications into scheduled development tickets.

Parses a specification, breaks it into components, tickets and epics,
then builds a deterministic dependency graph and parallel execution plan.
"""

__version__ = "0.1.0"

from ticket_planner.core.orchestrator import TicketPlanner

__all__ = ["TicketPlanner", "__version__"]
