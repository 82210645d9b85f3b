"""Pytest configuration and shared fixtures."""

import json
import os
from collections.abc import Callable, Generator
from unittest.mock import AsyncMock

import pytest

# Set test environment
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-REDACTED")
os.environ.setdefault("PLANNER_LOG_LEVEL", "DEBUG")

from ticket_planner.core.config import Settings, clear_settings_cache  # noqa: E402
from ticket_planner.core.orchestrator import TicketPlanner  # noqa: E402
from ticket_planner.decomposition.models import Component, PlanningRequest, Ticket  # noqa: E402
from ticket_planner.generation.client import GenerativeTextService, ServiceResponse  # noqa: E402
from ticket_planner.generation.resilient import ResilientCaller  # noqa: E402
from ticket_planner.storage.base import InMemoryDocumentStore  # noqa: E402

# =============================================================================
# SCRIPTED GENERATIVE SERVICE
# =============================================================================

# First line of each stage prompt identifies the kind of request
PROMPT_KINDS = {
    "parse": "You are a technical specification analyzer.",
    "components": "You are a software architect specialized in breaking projects",
    "tickets": "You are a project manager specialized in creating detailed development tickets.",
    "epics": "You are a delivery lead grouping development tickets into epics.",
    "summary": "You are a technical project manager writing an executive summary.",
    "plan": "You are a software architect writing a detailed execution plan.",
}


class FakeTextService(GenerativeTextService):
    """
    Generative service returning canned responses per prompt kind.

    Each kind maps to a response or a list of responses consumed in
    order; the last one repeats. Exceptions in the list are raised.
    """

    def __init__(
        self,
        script: dict[str, str | Exception | list[str | Exception]],
        input_tokens: int = 100,
        output_tokens: int = 50,
    ) -> None:
        self.script = {k: list(v) if isinstance(v, list) else [v] for k, v in script.items()}
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.calls: list[str] = []
        self.prompts: list[str] = []
        self.models: list[str] = []
        self.closed = False

    @staticmethod
    def kind_of(prompt: str) -> str:
        for kind, marker in PROMPT_KINDS.items():
            if prompt.startswith(marker):
                return kind
        raise AssertionError(f"Unrecognised prompt: {prompt[:80]!r}")

    async def generate(
        self,
        model_id: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> ServiceResponse:
        kind = self.kind_of(prompt)
        self.calls.append(kind)
        self.prompts.append(prompt)
        self.models.append(model_id)

        queue = self.script.get(kind)
        if not queue:
            raise AssertionError(f"No scripted response for '{kind}'")
        item = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(item, Exception):
            raise item
        return ServiceResponse(
            text=item,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# CANNED RESPONSES
# =============================================================================

PARSED_RESPONSE = json.dumps(
    {
        "objective": "Let users manage their todo lists",
        "functionalRequirements": ["User login", "Todo CRUD"],
        "nonFunctionalRequirements": ["Responses under 200ms"],
        "constraints": ["PostgreSQL"],
        "successCriteria": ["Users can log in and manage todos"],
    }
)

COMPONENTS_RESPONSE = (
    "Here are the components:\n```json\n"
    + json.dumps(
        {
            "components": [
                {"name": "Database Schema", "description": "Tables", "estimatedDays": 1, "dependencies": []},
                {
                    "name": "Auth API",
                    "description": "Login endpoints",
                    "estimatedDays": 2,
                    "dependencies": ["Database Schema"],
                },
                {
                    "name": "Todo API",
                    "description": "Todo endpoints",
                    "estimatedDays": 2,
                    "dependencies": ["Database Schema", "Auth API"],
                },
            ]
        }
    )
    + "\n```"
)

TICKETS_RESPONSE = json.dumps(
    {
        "tickets": [
            {
                "title": "Create database schema",
                "description": "Users and todos tables",
                "acceptanceCriteria": ["Migrations apply cleanly"],
                "estimatedMinutes": 120,
                "complexity": "simple",
                "component": "Database Schema",
                "dependencies": [],
                "requiredExpertise": ["SQL"],
                "testingStrategy": "Migration tests",
                "rollbackPlan": "Down migration",
            },
            {
                "title": "Implement login endpoint",
                "description": "POST /login",
                "acceptanceCriteria": ["Valid credentials return a token"],
                "estimatedHours": 3,
                "complexity": "medium",
                "component": "Auth API",
                "dependencies": ["Create database schema"],
            },
            {
                "title": "Implement todo CRUD",
                "description": "CRUD endpoints for todos",
                "estimatedMinutes": 240,
                "complexity": "complex",
                "component": "Todo API",
                "dependencies": ["Auth API"],
                "aiAgentCapable": False,
            },
        ]
    }
)

EPICS_RESPONSE = json.dumps(
    {
        "epics": [
            {"epicNumber": 1, "title": "Foundation", "description": "Data and auth", "ticketNumbers": [1, 2]},
            {"epicNumber": 2, "title": "Todos", "description": "Todo features", "ticketNumbers": [3]},
        ],
        "implicitDependencies": [],
    }
)

SUMMARY_RESPONSE = "# Executive Summary\n\n## Overview\nA todo app."
PLAN_RESPONSE = "# Execution Plan\n\n## Parallel Execution Tracks\n..."


def default_script() -> dict[str, str | Exception | list[str | Exception]]:
    """Responses for a successful three-ticket run."""
    return {
        "parse": PARSED_RESPONSE,
        "components": COMPONENTS_RESPONSE,
        "tickets": TICKETS_RESPONSE,
        "epics": EPICS_RESPONSE,
        "summary": SUMMARY_RESPONSE,
        "plan": PLAN_RESPONSE,
    }


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Clear cached settings around every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings with no retry delay."""
    return Settings(
        anthropic_api_key="sk-ant-REDACTED",
        planner_retry_base_delay=0.0,
        planner_max_retries=3,
        planner_ticket_batch_size=5,
        planner_default_tracks=3,
        planner_language="en",
    )


@pytest.fixture
def fake_service() -> FakeTextService:
    """Scripted service for a successful run."""
    return FakeTextService(default_script())


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """In-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def sleep() -> AsyncMock:
    """Recorded replacement for asyncio.sleep."""
    return AsyncMock()


@pytest.fixture
def caller(fake_service: FakeTextService, settings: Settings, sleep: AsyncMock) -> ResilientCaller:
    """Resilient caller over the scripted service."""
    return ResilientCaller(fake_service, settings, sleep=sleep)


@pytest.fixture
def planner(
    fake_service: FakeTextService,
    store: InMemoryDocumentStore,
    settings: Settings,
    caller: ResilientCaller,
) -> TicketPlanner:
    """Planner wired to the scripted service and in-memory store."""
    return TicketPlanner(
        service=fake_service,
        store=store,
        settings=settings,
        caller=caller,
        configure_logs=False,
    )


@pytest.fixture
def planning_request() -> PlanningRequest:
    """Provide a sample planning request."""
    return PlanningRequest(
        specification_id="spec-1",
        specification_content="""Build a REST API for a todo application:
        - User authentication (login)
        - Todo CRUD operations
        - PostgreSQL database
        """,
        plan_name_prefix="TODO",
    )


@pytest.fixture
def make_ticket() -> Callable[..., Ticket]:
    """Factory for tickets with an estimate and dependencies."""

    def _make(number: int, minutes: int = 60, deps: list[int] | None = None, **kwargs) -> Ticket:
        return Ticket(
            ticket_number=number,
            title=kwargs.pop("title", f"Ticket {number}"),
            estimated_minutes=minutes,
            dependencies=deps or [],
            **kwargs,
        )

    return _make


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")


@pytest.fixture
def make_service() -> Callable[..., FakeTextService]:
    """Factory for scripted services; overrides are merged into the default script."""

    def _make(**overrides: str | Exception | list[str | Exception]) -> FakeTextService:
        return FakeTextService({**default_script(), **overrides})

    return _make


@pytest.fixture
def scripted_components() -> list[Component]:
    """Components returned by the default script."""
    data = json.loads(COMPONENTS_RESPONSE.split("```json\n")[1].split("\n```")[0])
    return [Component.model_validate(c) for c in data["components"]]
