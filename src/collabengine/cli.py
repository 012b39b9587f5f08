"""
collabengine CLI - run and price multi-agent collaborations.

Commands:
    collabengine run PROMPT --agent claude --agent gemini   Run a session
    collabengine estimate PROMPT --agent claude ...         Pre-call cost estimate
    collabengine serve [--host H] [--port P]                Start the HTTP API
"""

import asyncio
import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .billing.ledger import estimate_cost
from .config import EngineConfig
from .errors import AgentFailureError, CollaborationError, CostLimitExceededError
from .llm import create_model_client
from .models import CollaborationMode, CollaborationResult, Session
from .orchestration import CollaborationOrchestrator
from .orchestration.styles import SequentialStyle
from .security import ValidationError, validate_agents
from .service import CollaborationService

app = typer.Typer(help="Multi-agent LLM collaboration engine")
console = Console()

STATE_STYLES = {
    "processing": "cyan",
    "completed": "green",
    "failed": "red",
    "phase_change": "magenta",
    "pending": "dim",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _build_session(
    prompt: str,
    agents: list[str],
    mode: CollaborationMode,
    config: EngineConfig,
    cost_cap: Optional[float] = None,
    max_seconds: Optional[float] = None,
    style: SequentialStyle = SequentialStyle.BALANCED,
    shuffle: bool = False,
    ignore_failing: Optional[bool] = None,
) -> Session:
    try:
        agents = validate_agents(agents)
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(2)
    return Session(
        prompt=prompt,
        agents=agents,
        mode=mode,
        cost_cap_usd=cost_cap or config.cost_cap_usd,
        max_seconds=max_seconds or config.max_seconds,
        sequential_style=style.value,
        shuffle_order=shuffle,
        ignore_failing_models=(
            config.ignore_failing_models if ignore_failing is None else ignore_failing
        ),
    )


# =============================================================================
# OUTPUT
# =============================================================================


def _print_status(agent: str, state: str, message: str) -> None:
    style = STATE_STYLES.get(state, "white")
    console.print(f"  [{style}]{agent:>10}[/{style}] {message}", highlight=False)


def _print_result(result: CollaborationResult) -> None:
    title = "Answer"
    if result.refused:
        title = "Refused"
    elif result.partial:
        title = "Answer (partial)"
    console.print(Panel(result.answer, title=title, border_style="green"))
    if result.rationale:
        console.print(Panel(result.rationale, title="Rationale", border_style="blue"))

    table = Table(title="Provenance")
    table.add_column("Agent")
    table.add_column("Draft / Step")
    table.add_column("Voted for")
    votes = {v.agent: v for v in result.votes}
    for draft in result.drafts:
        vote = votes.get(draft.agent)
        table.add_row(
            draft.agent,
            "[green]ok[/green]" if draft.ok else f"[red]{draft.error}[/red]",
            (vote.voted_for or "-") if vote and vote.ok else "-",
        )
    for step in result.iterations:
        table.add_row(
            step.agent,
            f"[green]{step.position}[/green]" if step.ok else f"[red]{step.position}: {step.error}[/red]",
            "-",
        )
    if table.row_count:
        console.print(table)

    console.print(
        f"[bold]Summarizer:[/bold] {result.summarizer_agent or '-'}   "
        f"[bold]Spent:[/bold] ${result.spent_usd:.4f}   "
        f"[bold]Duration:[/bold] {result.duration_seconds:.1f}s"
    )


# =============================================================================
# COMMANDS
# =============================================================================


@app.command()
def run(
    prompt: str = typer.Argument(..., help="The question or task"),
    agent: List[str] = typer.Option(..., "--agent", "-a", help="Agent id (repeat for more)"),
    mode: CollaborationMode = typer.Option(CollaborationMode.ROUND_TABLE, help="Collaboration mode"),
    cost_cap: Optional[float] = typer.Option(None, help="Cost cap in USD"),
    max_seconds: Optional[float] = typer.Option(None, help="Wall-clock cap in seconds"),
    style: SequentialStyle = typer.Option(SequentialStyle.BALANCED, help="Sequential chain style"),
    shuffle: bool = typer.Option(False, help="Shuffle the sequential chain order"),
    ignore_failing: Optional[bool] = typer.Option(
        None, "--ignore-failing/--no-ignore-failing", help="Return a fallback instead of failing"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run a collaboration and print the answer, rationale and provenance."""
    _configure_logging(verbose)
    config = EngineConfig.from_env()
    session = _build_session(
        prompt, agent, mode, config, cost_cap, max_seconds, style, shuffle, ignore_failing
    )
    orchestrator = CollaborationOrchestrator(
        create_model_client(), service=CollaborationService(config), config=config
    )

    console.print(
        f"\n[bold blue]collabengine run[/bold blue] {session.mode.value} "
        f"with {', '.join(session.agents)}\n"
    )
    try:
        result = asyncio.run(orchestrator.run(session, on_status=_print_status))
    except CostLimitExceededError as e:
        console.print(f"\n[bold red]Cost limit exceeded:[/bold red] {e}")
        if e.partial is not None:
            _print_result(e.partial)
        raise typer.Exit(1)
    except AgentFailureError as e:
        console.print(f"\n[bold red]Collaboration failed:[/bold red] {e}")
        raise typer.Exit(1)
    except CollaborationError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if e.partial is not None:
            _print_result(e.partial)
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(2)

    console.print()
    _print_result(result)
    if result.refused:
        raise typer.Exit(1)


@app.command()
def estimate(
    prompt: str = typer.Argument(..., help="The question or task"),
    agent: List[str] = typer.Option(..., "--agent", "-a", help="Agent id (repeat for more)"),
    mode: CollaborationMode = typer.Option(CollaborationMode.ROUND_TABLE, help="Collaboration mode"),
    cost_cap: Optional[float] = typer.Option(None, help="Cost cap in USD"),
):
    """Estimate the cost of a session without calling any model."""
    config = EngineConfig.from_env()
    session = _build_session(prompt, agent, mode, config, cost_cap)
    cost = estimate_cost(session.agents, len(session.prompt), session.mode)

    table = Table(title="Cost estimate")
    table.add_column("Mode")
    table.add_column("Agents")
    table.add_column("Estimate", justify="right")
    table.add_column("Cap", justify="right")
    table.add_row(
        session.mode.value,
        ", ".join(session.agents),
        f"${cost:.4f}",
        f"${session.cost_cap_usd:.2f}",
    )
    console.print(table)
    if cost > session.cost_cap_usd:
        console.print("[bold red]Over budget -- this session would be refused.[/bold red]")
        raise typer.Exit(1)
    console.print("[bold green]Within budget.[/bold green]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Start the HTTP API with uvicorn."""
    import uvicorn

    _configure_logging(verbose=False)
    logging.getLogger("collabengine").setLevel(logging.INFO)
    console.print(f"[bold blue]collabengine API[/bold blue] on http://{host}:{port}")
    uvicorn.run(
        "collabengine.api.gateway:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
