"""Unit tests for the ticket generator."""

import asyncio
import json
import re

import pytest

from ticket_planner.core.exceptions import (
    GenerationFailure,
    GenerationUnavailable,
    MalformedResponse,
)
from ticket_planner.decomposition.models import (
    MAX_TICKET_MINUTES,
    Complexity,
    Component,
    ParsedSpecification,
)
from ticket_planner.decomposition.ticket_generator import TicketGenerator
from ticket_planner.generation.client import GenerativeTextService, ServiceResponse
from ticket_planner.generation.resilient import ResilientCaller

COMPONENT_NAME = re.compile(r'"name": "([^"]+)"')


class EchoTicketService(GenerativeTextService):
    """Returns one ticket per component named in the prompt.

    Earlier batches answer more slowly so that responses arrive out of order.
    """

    def __init__(self, batch_count: int) -> None:
        self.batch_count = batch_count
        self.started: list[list[str]] = []
        self.finished: list[list[str]] = []

    async def generate(self, model_id, prompt, max_tokens, temperature) -> ServiceResponse:
        names = COMPONENT_NAME.findall(prompt)
        self.started.append(names)
        await asyncio.sleep(0.01 * (self.batch_count - len(self.started)))
        self.finished.append(names)
        tickets = [{"title": f"Build {name}", "component": name, "estimatedMinutes": 30} for name in names]
        return ServiceResponse(text=json.dumps({"tickets": tickets}), input_tokens=10, output_tokens=20)


class FailingBatchService(GenerativeTextService):
    """Fails for one component while the other batches answer slowly."""

    def __init__(self, failing: str) -> None:
        self.failing = failing
        self.started: list[str] = []
        self.completed: list[str] = []

    async def generate(self, model_id, prompt, max_tokens, temperature) -> ServiceResponse:
        name = COMPONENT_NAME.findall(prompt)[0]
        self.started.append(name)
        await asyncio.sleep(0.01)
        if name == self.failing:
            raise GenerationFailure("boom")
        await asyncio.sleep(0.05)
        self.completed.append(name)
        return ServiceResponse(text=json.dumps({"tickets": [{"title": name}]}), input_tokens=1, output_tokens=1)


@pytest.fixture
def parsed() -> ParsedSpecification:
    """Provide a parsed specification."""
    return ParsedSpecification(objective="Ship the product")


def _generator(make_service, response, settings, sleep) -> TicketGenerator:
    service = make_service(tickets=response)
    return TicketGenerator(ResilientCaller(service, settings, sleep=sleep))


def _tickets(*items: dict) -> str:
    return json.dumps({"tickets": list(items)})


# =============================================================================
# BATCHING
# =============================================================================


class TestBatching:
    """Tests for batch splitting and ordering."""

    def test_make_batches(self, caller) -> None:
        """Test twelve components split into 5, 5 and 2."""
        generator = TicketGenerator(caller, batch_size=5)
        components = [Component(name=f"C{i}") for i in range(1, 13)]

        batches = generator.make_batches(components)

        assert [[c.name for c in b] for b in batches] == [
            [f"C{i}" for i in range(1, 6)],
            [f"C{i}" for i in range(6, 11)],
            ["C11", "C12"],
        ]

    def test_invalid_batch_size(self, caller) -> None:
        """Test a batch size below one is rejected."""
        with pytest.raises(ValueError):
            TicketGenerator(caller, batch_size=0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 3])
    async def test_numbering_follows_batch_order(self, settings, sleep, parsed, concurrency) -> None:
        """Test ticket numbers follow component order whatever the completion order."""
        service = EchoTicketService(batch_count=3)
        generator = TicketGenerator(
            ResilientCaller(service, settings, sleep=sleep),
            batch_size=5,
            concurrency=concurrency,
        )
        components = [Component(name=f"C{i}") for i in range(1, 13)]

        output = await generator.generate(components, parsed)

        assert [t.ticket_number for t in output.value] == list(range(1, 13))
        assert [t.component for t in output.value] == [f"C{i}" for i in range(1, 13)]
        assert len(output.usage) == 3
        assert all(u.stage == "tickets" for u in output.usage)
        if concurrency > 1:
            assert service.finished[0] == ["C11", "C12"]

    @pytest.mark.asyncio
    async def test_failed_batch_cancels_batches_in_flight(self, settings, sleep, parsed) -> None:
        """Test a failing batch stops sibling batches from finishing."""
        service = FailingBatchService(failing="C1")
        generator = TicketGenerator(
            ResilientCaller(service, settings, sleep=sleep),
            batch_size=1,
            concurrency=3,
        )
        components = [Component(name=f"C{i}") for i in range(1, 4)]

        with pytest.raises(GenerationUnavailable):
            await generator.generate(components, parsed)
        await asyncio.sleep(0.2)

        assert service.completed == []
        assert "C2" in service.started
        assert "C3" in service.started


# =============================================================================
# NORMALIZATION
# =============================================================================


class TestNormalization:
    """Tests for coercing raw ticket fields."""

    @pytest.mark.asyncio
    async def test_default_run(self, caller, parsed, scripted_components) -> None:
        """Test the scripted tickets are numbered and converted."""
        output = await TicketGenerator(caller).generate(scripted_components, parsed)
        tickets = output.value

        assert [t.title for t in tickets] == [
            "Create database schema",
            "Implement login endpoint",
            "Implement todo CRUD",
        ]
        assert [t.estimated_minutes for t in tickets] == [120, 180, 240]
        assert tickets[0].complexity is Complexity.SIMPLE
        assert tickets[0].required_expertise == ["SQL"]
        assert tickets[2].ai_agent_capable is False
        assert output.warnings == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ({"estimatedMinutes": 45}, 45),
            ({"estimatedHours": "2.5"}, 150),
            ({"estimatedMinutes": 99999}, MAX_TICKET_MINUTES),
            ({"estimatedMinutes": 0}, 1),
            ({"estimatedMinutes": "soon"}, 60),
            ({}, 60),
        ],
    )
    async def test_estimates(self, make_service, settings, sleep, parsed, raw, expected) -> None:
        """Test minutes, hours and clamping."""
        generator = _generator(make_service, _tickets({"title": "T", **raw}), settings, sleep)

        output = await generator.generate([Component(name="A")], parsed)

        assert output.value[0].estimated_minutes == expected

    @pytest.mark.asyncio
    async def test_loose_fields(self, make_service, settings, sleep, parsed) -> None:
        """Test unknown complexity, string flags and missing titles."""
        generator = _generator(
            make_service,
            _tickets({"complexity": "extreme", "parallelizable": "false", "requiredExpertise": "Go"}),
            settings,
            sleep,
        )

        ticket = (await generator.generate([Component(name="Billing")], parsed)).value[0]

        assert ticket.complexity is Complexity.MEDIUM
        assert ticket.parallelizable is False
        assert ticket.required_expertise == ["Go"]
        assert ticket.title == "Billing"

    @pytest.mark.asyncio
    async def test_component_from_position(self, make_service, settings, sleep, parsed) -> None:
        """Test one ticket per component inherits the component by position."""
        generator = _generator(make_service, _tickets({"title": "First"}, {"title": "Second"}), settings, sleep)

        output = await generator.generate([Component(name="A"), Component(name="B")], parsed)

        assert [t.component for t in output.value] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_non_object_entries_skipped(self, make_service, settings, sleep, parsed) -> None:
        """Test entries that are not objects are ignored."""
        generator = _generator(make_service, '{"tickets": ["oops", {"title": "Real"}]}', settings, sleep)

        output = await generator.generate([Component(name="A")], parsed)

        assert [t.title for t in output.value] == ["Real"]

    @pytest.mark.asyncio
    async def test_unparseable_batch_raises(self, make_service, settings, sleep, parsed) -> None:
        """Test a batch without JSON fails the stage."""
        generator = _generator(make_service, "no tickets today", settings, sleep)

        with pytest.raises(MalformedResponse):
            await generator.generate([Component(name="A")], parsed)


# =============================================================================
# DEPENDENCY REFERENCES
# =============================================================================


class TestDependencyReferences:
    """Tests for resolving dependency references to ticket numbers."""

    @pytest.mark.asyncio
    async def test_titles_components_and_inheritance(self, caller, parsed, scripted_components) -> None:
        """Test title, component-name and component-inherited dependencies."""
        tickets = (await TicketGenerator(caller).generate(scripted_components, parsed)).value

        assert [t.dependencies for t in tickets] == [[], [1], [1, 2]]

    @pytest.mark.asyncio
    async def test_numbers_are_kept(self, make_service, settings, sleep, parsed) -> None:
        """Test integer and numeric-string references are kept as ticket numbers."""
        generator = _generator(
            make_service,
            _tickets({"title": "One"}, {"title": "Two", "dependencies": [1, "99"]}),
            settings,
            sleep,
        )

        output = await generator.generate([Component(name="A")], parsed)

        assert output.value[1].dependencies == [1, 99]
        assert output.warnings == []

    @pytest.mark.asyncio
    async def test_unknown_reference_warns(self, make_service, settings, sleep, parsed) -> None:
        """Test an unknown name is dropped with a warning."""
        generator = _generator(
            make_service,
            _tickets({"title": "One", "dependencies": ["Something else", True]}),
            settings,
            sleep,
        )

        output = await generator.generate([Component(name="A")], parsed)

        assert output.value[0].dependencies == []
        assert [w.code for w in output.warnings] == ["unresolved_dependency", "unresolved_dependency"]
        assert output.warnings[0].ticket_numbers == [1]

    @pytest.mark.asyncio
    async def test_self_reference_warns(self, make_service, settings, sleep, parsed) -> None:
        """Test a ticket naming itself loses that dependency."""
        generator = _generator(make_service, _tickets({"title": "Loop", "dependencies": ["loop"]}), settings, sleep)

        output = await generator.generate([Component(name="A")], parsed)

        assert output.value[0].dependencies == []
        assert [w.code for w in output.warnings] == ["self_dependency"]
