"""
Ticket Planner API.

FastAPI transport for the planning pipeline.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from ticket_planner import __version__
from ticket_planner.api.routes import plans


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    logger.info("Starting Ticket Planner API...")
    plans.open_planner(app)
    yield
    await plans.close_planner(app)
    logger.info("Shutting down Ticket Planner API...")


app = FastAPI(
    title="Ticket Planner API",
    description="Turns specifications into scheduled development tickets",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(plans.router, prefix="/plans", tags=["plans"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns:
        Health status and version.
    """
    return {"status": "healthy", "version": __version__}
