"""Parallel execution scheduler.

Assigns tickets to a fixed number of simulated worker tracks using
longest-processing-time-first list scheduling over the topological
levels of the dependency graph.
"""

from loguru import logger

from ticket_planner.decomposition.models import (
    DependencyGraph,
    ExecutionTrack,
    StageOutput,
    Ticket,
    TrackSlot,
)


class ParallelScheduler:
    """
    Balance tickets across ``track_count`` tracks.

    Levels are processed in order. Within a level, longer tickets are
    placed first, each on the track that frees up earliest. A ticket
    never starts before every one of its dependencies has finished,
    even when they sit on other tracks.

    Example:
        >>> scheduler = ParallelScheduler(track_count=2)
        >>> tracks = scheduler.schedule(graph, tickets).value
        >>> [t.ticket_numbers for t in tracks]
        [[2], [1, 3]]
    """

    STAGE = "schedule"

    def __init__(self, track_count: int = 3) -> None:
        if track_count < 1:
            raise ValueError("track_count must be at least 1")
        self.track_count = track_count

    def schedule(
        self,
        graph: DependencyGraph,
        tickets: list[Ticket],
    ) -> StageOutput[list[ExecutionTrack]]:
        """
        Assign every ticket in the graph to a track.

        Args:
            graph: Acyclic dependency graph with parallel groups.
            tickets: Tickets providing the estimates.

        Returns:
            StageOutput wrapping the non-empty tracks, numbered from 1.
        """
        minutes = {t.ticket_number: t.estimated_minutes for t in tickets}
        logger.info(
            f"Scheduling {len(graph.nodes)} tickets on {self.track_count} tracks "
            f"across {len(graph.parallel_groups)} levels"
        )

        finish_at = [0] * self.track_count
        slots: list[list[TrackSlot]] = [[] for _ in range(self.track_count)]
        ends: dict[int, int] = {}

        for group in graph.parallel_groups:
            for number in sorted(group, key=lambda n: (-minutes[n], n)):
                track = min(range(self.track_count), key=lambda i: (finish_at[i], i))
                ready_at = max((ends[d] for d in graph.dependencies_of(number)), default=0)
                start = max(finish_at[track], ready_at)
                end = start + minutes[number]

                slots[track].append(TrackSlot(ticket_number=number, start_minute=start, end_minute=end))
                finish_at[track] = end
                ends[number] = end

        tracks = [
            ExecutionTrack(
                track_id=index + 1,
                slots=track_slots,
                estimated_minutes=sum(minutes[s.ticket_number] for s in track_slots),
            )
            for index, track_slots in enumerate(slots)
            if track_slots
        ]

        logger.info(f"Scheduled onto {len(tracks)} tracks; makespan {makespan(tracks)} min")
        for track in tracks:
            logger.debug(f"Track {track.track_id}: {track.ticket_numbers} ({track.estimated_minutes} min)")

        return StageOutput(value=tracks)


def makespan(tracks: list[ExecutionTrack]) -> int:
    """Simulated minute at which the last track finishes."""
    return max((track.finish_minute for track in tracks), default=0)
