"""Main CLI entry point using Typer."""

import json
from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ticket_planner import __version__
from ticket_planner.core.exceptions import (
    GenerationFailure,
    PlanningCancelled,
    PlanningFailed,
    SpecificationTooLarge,
)
from ticket_planner.decomposition.models import PlanningRequest, PlanningResult, SpecType

app = typer.Typer(
    name="ticket-planner",
    help="Ticket Planner - turn specifications into scheduled development tickets",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]Ticket Planner[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Ticket Planner - from specification to execution plan.

    Breaks a specification into components, tickets and epics, then
    computes the dependency graph, critical path and parallel tracks.
    """


def _load_specification(spec: str) -> tuple[str, str | None]:
    """Return the specification text and, when read from a file, its stem."""
    spec_path = Path(spec)
    if spec_path.exists() and spec_path.is_file():
        console.print(f"[dim]Loaded specification from {spec_path}[/dim]")
        return spec_path.read_text(encoding="utf-8"), spec_path.stem
    return spec, None


@app.command()
def plan(
    spec: str = typer.Argument(..., help="Specification text or path to a specification file"),
    spec_id: str | None = typer.Option(
        None,
        "--id",
        help="Specification ID (defaults to the file name, or 'spec')",
    ),
    prefix: str = typer.Option(
        "TICKET",
        "--prefix",
        "-p",
        help="Ticket filename prefix",
    ),
    spec_type: SpecType = typer.Option(
        SpecType.PLANS,
        "--type",
        "-t",
        help="Specification type",
    ),
    language: str | None = typer.Option(
        None,
        "--language",
        "-l",
        help="Language of generated text (e.g. en, pt-BR)",
    ),
    ai_agents: int | None = typer.Option(None, "--ai-agents", min=0, help="AI agents available"),
    developers: int | None = typer.Option(None, "--developers", min=0, help="Human developers available"),
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Directory for generated documents (defaults to PLANNER_STORAGE_DIR)",
    ),
    json_output: Path | None = typer.Option(
        None,
        "--json",
        help="Also write the full planning result as JSON",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=1,
        help="Cancel the run after this many seconds",
    ),
) -> None:
    """
    Plan a specification.

    Example:
        ticket-planner plan ./specs/login.md --prefix AUTH --developers 2
    """
    content, stem = _load_specification(spec)
    request = PlanningRequest(
        specification_id=spec_id or stem or "spec",
        specification_content=content,
        spec_type=spec_type,
        plan_name_prefix=prefix,
        language=language,
        num_ai_agents=ai_agents,
        num_human_developers=developers,
    )

    console.print(
        Panel(
            f"[bold]Specification:[/bold]\n{content[:200]}{'...' if len(content) > 200 else ''}",
            title="[bold blue]Ticket Planner[/bold blue]",
            border_style="blue",
        )
    )

    async def execute() -> PlanningResult:
        from ticket_planner.core.cancellation import CancellationToken
        from ticket_planner.core.orchestrator import TicketPlanner
        from ticket_planner.storage.base import LocalDocumentStore

        store = LocalDocumentStore(output_dir) if output_dir else None
        planner = TicketPlanner(store=store)
        try:
            cancellation = CancellationToken(timeout=timeout) if timeout else None
            return await planner.plan(request, cancellation)
        finally:
            await planner.close()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Planning...", total=None)
            result = anyio.run(execute)

    except SpecificationTooLarge as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=2) from e
    except PlanningFailed as e:
        console.print(f"[bold red]Planning failed at stage '{e.failure.stage}':[/bold red] {e.failure.message}")
        raise typer.Exit(code=1) from e
    except PlanningCancelled as e:
        console.print(f"[bold yellow]Planning cancelled before stage '{e.stage}'[/bold yellow]")
        raise typer.Exit(code=130) from e
    except GenerationFailure as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1) from e

    _print_result(result)

    if json_output:
        json_output.write_text(result.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        console.print(f"[green]Saved to {json_output}[/green]")


@app.command()
def estimate(
    spec: str = typer.Argument(..., help="Specification text or path to a specification file"),
) -> None:
    """
    Estimate the token usage and cost of planning a specification.

    Example:
        ticket-planner estimate ./specs/login.md
    """
    from ticket_planner.core.config import get_settings
    from ticket_planner.core.orchestrator import estimate_planning_cost

    content, _ = _load_specification(spec)
    settings = get_settings()
    result = estimate_planning_cost(content, settings)

    table = Table(title="Estimated Cost")
    table.add_column("Step", style="bold")
    table.add_column("Tier", style="cyan")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cost (USD)", justify="right")

    for step in result.breakdown:
        table.add_row(
            step.step,
            step.tier.value,
            str(step.input_tokens),
            str(step.output_tokens),
            f"{step.cost_usd:.4f}",
        )
    table.add_row(
        "[bold]Total[/bold]",
        "",
        str(result.input_tokens),
        str(result.output_tokens),
        f"[bold]{result.total_cost_usd:.4f}[/bold]",
    )
    console.print(table)

    if result.specification_tokens > settings.planner_max_spec_tokens:
        console.print(
            f"[bold red]Specification is ~{result.specification_tokens} tokens, "
            f"over the {settings.planner_max_spec_tokens} token limit[/bold red]"
        )
        raise typer.Exit(code=2)


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port for the API server"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
) -> None:
    """
    Start the planning API server.

    Example:
        ticket-planner serve --port 3000
    """
    import uvicorn

    from ticket_planner.api.main import app as api_app

    console.print(
        Panel(
            f"[bold]API:[/bold]      http://{host}:{port}/plans\n"
            f"[bold]API Docs:[/bold] http://{host}:{port}/docs\n"
            f"[bold]Health:[/bold]   http://{host}:{port}/health",
            title="[bold cyan]Ticket Planner API[/bold cyan]",
            border_style="cyan",
        )
    )

    uvicorn.run(api_app, host=host, port=port, log_level="info")


@app.command()
def graph() -> None:
    """Print the planning pipeline as a Mermaid diagram."""
    from ticket_planner.graph import visualize_graph

    console.print(visualize_graph(), markup=False, highlight=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold blue]Ticket Planner[/bold blue] version {__version__}")


# =============================================================================
# OUTPUT
# =============================================================================


def _print_result(result: PlanningResult) -> None:
    """Render a planning result as rich tables."""
    tickets = Table(title=f"Tickets ({len(result.tickets)})")
    tickets.add_column("#", style="cyan", justify="right")
    tickets.add_column("Title", style="bold")
    tickets.add_column("Epic", justify="right")
    tickets.add_column("Minutes", justify="right")
    tickets.add_column("Dependencies")

    for ticket in result.tickets:
        deps = ", ".join(str(d) for d in result.dependency_graph.dependencies_of(ticket.ticket_number)) or "-"
        tickets.add_row(
            str(ticket.ticket_number),
            ticket.title,
            str(ticket.epic_number or "-"),
            str(ticket.estimated_minutes),
            deps,
        )
    console.print(tickets)

    tracks = Table(title="Execution Tracks")
    tracks.add_column("Track", style="cyan", justify="right")
    tracks.add_column("Tickets")
    tracks.add_column("Busy (min)", justify="right")
    tracks.add_column("Finish (min)", justify="right")
    for track in result.execution_tracks:
        tracks.add_row(
            str(track.track_id),
            ", ".join(str(n) for n in track.ticket_numbers),
            str(track.estimated_minutes),
            str(track.finish_minute),
        )
    console.print(tracks)

    graph = result.dependency_graph
    console.print(
        Panel(
            f"[bold]Critical path:[/bold] {' -> '.join(str(n) for n in graph.critical_path) or '-'} "
            f"({graph.critical_path_minutes} min)\n"
            f"[bold]Parallel groups:[/bold] {len(graph.parallel_groups)}\n"
            f"[bold]Blockers:[/bold] {', '.join(str(n) for n in graph.blockers) or '-'}\n"
            f"[bold]Tokens:[/bold] {result.token_usage.total_tokens} "
            f"([bold]${result.total_cost_usd:.4f}[/bold])",
            title="[bold green]Plan complete[/bold green]",
            border_style="green",
        )
    )

    if result.documents.summary_path:
        console.print(f"[dim]Summary: {result.documents.summary_path}[/dim]")
    if result.documents.execution_plan_path:
        console.print(f"[dim]Execution plan: {result.documents.execution_plan_path}[/dim]")

    for warning in result.warnings:
        console.print(f"[yellow]warning[/yellow] [{warning.code}] {warning.message}")


if __name__ == "__main__":
    app()
