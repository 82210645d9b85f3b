"""Unit tests for epic grouping."""

import json

import pytest

from ticket_planner.core.exceptions import MalformedResponse
from ticket_planner.decomposition.epic_grouper import EpicGrouper
from ticket_planner.generation.resilient import ResilientCaller


@pytest.fixture
def tickets(make_ticket) -> list:
    """Five plain tickets."""
    return [make_ticket(n) for n in range(1, 6)]


@pytest.fixture
def grouper(caller) -> EpicGrouper:
    """Grouper allowing three tickets per epic."""
    return EpicGrouper(caller, max_tickets_per_epic=3)


def _epic(title: str, numbers: list) -> dict:
    return {"title": title, "description": f"{title} work", "ticketNumbers": numbers}


class TestAssign:
    """Tests for validating raw epics into a partition."""

    def test_partition(self, grouper, tickets) -> None:
        """Test every ticket is annotated with its epic."""
        grouping, warnings = grouper.assign(tickets, [_epic("A", [1, 2]), _epic("B", [3, 4, 5])])

        assert [(e.epic_number, e.ticket_numbers) for e in grouping.epics] == [(1, [1, 2]), (2, [3, 4, 5])]
        assert [t.epic_number for t in grouping.tickets] == [1, 1, 2, 2, 2]
        assert warnings == []

    def test_duplicate_membership_keeps_first(self, grouper, tickets) -> None:
        """Test a ticket claimed twice stays in the first epic."""
        grouping, warnings = grouper.assign(tickets, [_epic("A", [1, 2]), _epic("B", [2, 3])])

        assert grouping.epics[1].ticket_numbers == [3]
        assert [w.code for w in warnings] == ["duplicate_epic_membership"]
        assert warnings[0].ticket_numbers == [2]

    def test_overflow_leaves_ticket_without_epic(self, grouper, tickets) -> None:
        """Test tickets beyond the epic limit are kept but epic-less."""
        grouping, warnings = grouper.assign(tickets, [_epic("Big", [1, 2, 3, 4])])

        assert grouping.epics[0].ticket_numbers == [1, 2, 3]
        assert grouping.tickets[3].epic_number is None
        assert len(grouping.tickets) == 5
        assert [w.code for w in warnings] == ["epic_overflow"]

    def test_unknown_tickets_ignored(self, grouper, tickets) -> None:
        """Test references to missing tickets are dropped with a warning."""
        grouping, warnings = grouper.assign(tickets, [_epic("A", [1, 42, "x", "2"])])

        assert grouping.epics[0].ticket_numbers == [1, 2]
        assert [w.code for w in warnings] == ["unknown_epic_ticket", "unknown_epic_ticket"]

    def test_empty_epics_discarded_and_renumbered(self, grouper, tickets) -> None:
        """Test epics with no valid members are dropped and numbering stays dense."""
        grouping, _ = grouper.assign(tickets, [_epic("Empty", [99]), "junk", _epic("Real", [5])])

        assert [(e.epic_number, e.title) for e in grouping.epics] == [(1, "Real")]
        assert grouping.tickets[4].epic_number == 1

    def test_unclaimed_tickets(self, grouper, tickets) -> None:
        """Test tickets no epic mentions have no epic."""
        grouping, _ = grouper.assign(tickets, "not a list")

        assert grouping.epics == []
        assert all(t.epic_number is None for t in grouping.tickets)


class TestGroup:
    """Tests for the generative grouping call."""

    @pytest.mark.asyncio
    async def test_scripted_response(self, caller, fake_service, make_ticket) -> None:
        """Test the default script groups three tickets into two epics."""
        tickets = [make_ticket(1), make_ticket(2, deps=[1]), make_ticket(3)]

        output = await EpicGrouper(caller).group(tickets)

        assert [e.title for e in output.value.epics] == ["Foundation", "Todos"]
        assert [t.epic_number for t in output.value.tickets] == [1, 1, 2]
        assert [u.stage for u in output.usage] == ["epics"]
        assert fake_service.calls == ["epics"]
        assert '"ticketNumber": 2' in fake_service.prompts[0]

    @pytest.mark.asyncio
    async def test_implicit_links(self, make_service, settings, sleep, tickets) -> None:
        """Test valid implicit dependencies are returned and invalid ones skipped."""
        response = json.dumps(
            {
                "epics": [_epic("All", [1, 2, 3])],
                "implicitDependencies": [
                    {"ticketNumber": 3, "dependsOn": 1},
                    {"ticketNumber": "three"},
                ],
            }
        )
        grouper = EpicGrouper(ResilientCaller(make_service(epics=response), settings, sleep=sleep))

        output = await grouper.group(tickets)

        assert [(link.ticket_number, link.depends_on) for link in output.value.implicit_links] == [(3, 1)]

    @pytest.mark.asyncio
    async def test_malformed(self, make_service, settings, sleep, tickets) -> None:
        """Test a response without JSON fails the stage."""
        grouper = EpicGrouper(ResilientCaller(make_service(epics="Sorry."), settings, sleep=sleep))

        with pytest.raises(MalformedResponse):
            await grouper.group(tickets)
