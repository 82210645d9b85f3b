"""Dependency resolver - builds the ticket graph and derives its schedule.

This module is fully deterministic: edge validation, cycle breaking,
critical path (longest path in a DAG), topological levels for parallel
grouping, and blocker ranking. The same tickets always produce the same
graph, regardless of input order.
"""

import heapq
from collections.abc import Iterable

from loguru import logger

from ticket_planner.decomposition.models import (
    DependencyEdge,
    DependencyGraph,
    DependencyLink,
    PlanningWarning,
    StageOutput,
    Ticket,
)

# source -> set of targets the source depends on
Adjacency = dict[int, set[int]]


class DependencyResolver:
    """
    Resolve ticket dependencies into an acyclic graph.

    Dangling references are dropped and cycles are broken by removing
    the most recently declared edge of each cycle (the one with the
    highest source ticket number). Both corrections are reported as
    warnings; resolution never fails.

    Example:
        >>> resolver = DependencyResolver()
        >>> output = resolver.resolve(tickets)
        >>> output.value.critical_path
        [1, 2, 3]
        >>> output.value.parallel_groups
        [[1], [2], [3]]
    """

    STAGE = "graph"

    def __init__(self, blocker_count: int = 5) -> None:
        """
        Initialize the resolver.

        Args:
            blocker_count: Number of blockers to report.
        """
        self.blocker_count = blocker_count

    def resolve(
        self,
        tickets: list[Ticket],
        extra_links: Iterable[DependencyLink] | None = None,
    ) -> StageOutput[DependencyGraph]:
        """
        Build the dependency graph.

        Args:
            tickets: Tickets with declared dependencies.
            extra_links: Inferred links merged with the declared ones.

        Returns:
            StageOutput wrapping an acyclic DependencyGraph, with warnings
            for every dropped or removed edge.
        """
        logger.info(f"Resolving dependencies for {len(tickets)} tickets")

        warnings: list[PlanningWarning] = []
        nodes = sorted({t.ticket_number for t in tickets})
        minutes = {t.ticket_number: t.estimated_minutes for t in tickets}

        deps = self.build_adjacency(tickets, extra_links or [], warnings)
        self.break_cycles(nodes, deps, warnings)

        order = self.topological_order(nodes, deps)
        critical_path, critical_minutes = self.critical_path(order, deps, minutes)
        groups = self.parallel_groups(order, deps)
        blockers = self.blockers(order, deps)

        graph = DependencyGraph(
            nodes=nodes,
            edges=[
                DependencyEdge(source=source, target=target)
                for source in nodes
                for target in sorted(deps[source])
            ],
            critical_path=critical_path,
            critical_path_minutes=critical_minutes,
            parallel_groups=groups,
            blockers=blockers,
        )

        logger.info(
            f"Resolved {len(graph.edges)} edges into {len(groups)} parallel groups; "
            f"critical path {critical_path} ({critical_minutes} min)"
        )
        return StageOutput(value=graph, warnings=warnings)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def build_adjacency(
        self,
        tickets: list[Ticket],
        extra_links: Iterable[DependencyLink],
        warnings: list[PlanningWarning],
    ) -> Adjacency:
        """
        Collect valid edges, dropping references to unknown tickets.

        Args:
            tickets: Tickets with declared dependencies.
            extra_links: Inferred links.
            warnings: Receives one warning per dropped edge.

        Returns:
            Adjacency map of source -> dependency targets.
        """
        deps: Adjacency = {t.ticket_number: set() for t in tickets}

        declared = [(t.ticket_number, d) for t in tickets for d in t.dependencies]
        inferred = [(link.ticket_number, link.depends_on) for link in extra_links]

        for source, target in declared + inferred:
            if source not in deps or target not in deps:
                missing = target if source in deps else source
                warnings.append(
                    PlanningWarning(
                        code="unresolved_dependency",
                        message=f"Dropped dependency {source} -> {target}: ticket {missing} does not exist",
                        ticket_numbers=[n for n in (source, target) if n in deps],
                    )
                )
                logger.warning(f"Dropping dependency {source} -> {target} on unknown ticket {missing}")
                continue
            if source == target:
                warnings.append(
                    PlanningWarning(
                        code="self_dependency",
                        message=f"Dropped self-dependency of ticket {source}",
                        ticket_numbers=[source],
                    )
                )
                continue
            deps[source].add(target)

        return deps

    # =========================================================================
    # CYCLE DETECTION
    # =========================================================================

    def find_cycle(self, nodes: list[int], deps: Adjacency) -> list[int] | None:
        """
        Find one cycle with an iterative depth-first search.

        Nodes and neighbours are visited in ascending order so the same
        graph always yields the same cycle.

        Args:
            nodes: Ticket numbers.
            deps: Adjacency map.

        Returns:
            Cycle as [n0, n1, ..., nk] where each node depends on the next
            and nk depends on n0, or None if the graph is acyclic.
        """
        WHITE, GRAY, BLACK = 0, 1, 2
        colors = {node: WHITE for node in nodes}

        for root in nodes:
            if colors[root] != WHITE:
                continue

            colors[root] = GRAY
            path = [root]
            stack = [iter(sorted(deps[root]))]

            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    colors[path.pop()] = BLACK
                    stack.pop()
                    continue
                if colors[neighbor] == GRAY:
                    return path[path.index(neighbor) :]
                if colors[neighbor] == WHITE:
                    colors[neighbor] = GRAY
                    path.append(neighbor)
                    stack.append(iter(sorted(deps[neighbor])))

        return None

    def break_cycles(
        self,
        nodes: list[int],
        deps: Adjacency,
        warnings: list[PlanningWarning],
    ) -> list[tuple[int, int]]:
        """
        Remove edges until the graph is acyclic.

        For each cycle found, the edge with the highest source ticket
        number is removed.

        Args:
            nodes: Ticket numbers.
            deps: Adjacency map, modified in place.
            warnings: Receives one warning per removed edge.

        Returns:
            Removed (source, target) edges in removal order.
        """
        removed: list[tuple[int, int]] = []

        while (cycle := self.find_cycle(nodes, deps)) is not None:
            cycle_edges = list(zip(cycle, cycle[1:] + cycle[:1]))
            source, target = max(cycle_edges)
            deps[source].discard(target)
            removed.append((source, target))

            cycle_str = " -> ".join(str(n) for n in cycle + cycle[:1])
            warnings.append(
                PlanningWarning(
                    code="cyclic_dependency",
                    message=f"Circular dependency {cycle_str}; removed {source} -> {target}",
                    ticket_numbers=sorted(cycle),
                )
            )
            logger.warning(f"Circular dependency detected: {cycle_str}; removed {source} -> {target}")

        return removed

    # =========================================================================
    # TOPOLOGICAL SORT
    # =========================================================================

    def topological_order(self, nodes: list[int], deps: Adjacency) -> list[int]:
        """
        Kahn's algorithm, always releasing the lowest ready ticket first.

        Args:
            nodes: Ticket numbers.
            deps: Acyclic adjacency map.

        Returns:
            Ticket numbers with every dependency before its dependents.
        """
        in_degree = {node: len(deps[node]) for node in nodes}
        dependents = _dependents(nodes, deps)

        ready = [node for node in nodes if in_degree[node] == 0]
        heapq.heapify(ready)
        order: list[int] = []

        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) != len(nodes):
            raise ValueError("Dependency graph still contains a cycle")
        return order

    # =========================================================================
    # CRITICAL PATH
    # =========================================================================

    def critical_path(
        self,
        order: list[int],
        deps: Adjacency,
        minutes: dict[int, int],
    ) -> tuple[list[int], int]:
        """
        Longest path through the DAG weighted by estimated minutes.

        Dynamic programming over the topological order, O(V+E). Ties
        are broken towards the lowest ticket number.

        Args:
            order: Topological order.
            deps: Acyclic adjacency map.
            minutes: Ticket number -> estimated minutes.

        Returns:
            Tuple of (path from first to last ticket, total minutes).
        """
        if not order:
            return [], 0

        finish: dict[int, int] = {}
        previous: dict[int, int | None] = {}

        for node in order:
            best: int | None = None
            for dep in sorted(deps[node]):
                if best is None or finish[dep] > finish[best]:
                    best = dep
            previous[node] = best
            finish[node] = minutes[node] + (finish[best] if best is not None else 0)

        end = min(order, key=lambda n: (-finish[n], n))

        path: list[int] = []
        current: int | None = end
        while current is not None:
            path.append(current)
            current = previous[current]

        return list(reversed(path)), finish[end]

    # =========================================================================
    # PARALLEL GROUPS
    # =========================================================================

    def parallel_groups(self, order: list[int], deps: Adjacency) -> list[list[int]]:
        """
        Topological levels.

        Level 0 holds tickets without dependencies; level k holds tickets
        whose dependencies all sit in levels 0..k-1.

        Args:
            order: Topological order.
            deps: Acyclic adjacency map.

        Returns:
            Levels in order, each sorted by ticket number.
        """
        level: dict[int, int] = {}
        for node in order:
            level[node] = 1 + max((level[d] for d in deps[node]), default=-1)

        groups: list[list[int]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
        for node in sorted(level):
            groups[level[node]].append(node)

        for index, group in enumerate(groups):
            logger.debug(f"Group {index}: {group}")

        return groups

    # =========================================================================
    # BLOCKERS
    # =========================================================================

    def blockers(self, order: list[int], deps: Adjacency) -> list[int]:
        """
        Rank tickets by how many tickets depend on them, directly or transitively.

        Args:
            order: Topological order.
            deps: Acyclic adjacency map.

        Returns:
            Up to ``blocker_count`` ticket numbers with at least one dependent,
            most dependents first, ties by ticket number.
        """
        dependents = _dependents(order, deps)
        downstream: dict[int, set[int]] = {}

        for node in reversed(order):
            reach: set[int] = set()
            for dependent in dependents[node]:
                reach.add(dependent)
                reach |= downstream[dependent]
            downstream[node] = reach

        ranked = sorted(
            (node for node in order if downstream[node]),
            key=lambda n: (-len(downstream[n]), n),
        )
        return ranked[: self.blocker_count]


def _dependents(nodes: Iterable[int], deps: Adjacency) -> dict[int, list[int]]:
    """Invert the adjacency map: target -> sorted sources depending on it."""
    inverted: dict[int, list[int]] = {node: [] for node in nodes}
    for source in sorted(deps):
        for target in deps[source]:
            inverted[target].append(source)
    for sources in inverted.values():
        sources.sort()
    return inverted


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def resolve_to_graph(
    tickets: list[Ticket],
    extra_links: Iterable[DependencyLink] | None = None,
    blocker_count: int = 5,
) -> DependencyGraph:
    """
    Resolve tickets and return only the graph.

    Example:
        >>> graph = resolve_to_graph(tickets)
        >>> graph.parallel_groups
        [[1, 2], [3]]
    """
    return DependencyResolver(blocker_count=blocker_count).resolve(tickets, extra_links).value
