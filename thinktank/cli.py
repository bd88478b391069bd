"""CLI entry point for ThinkTank."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from thinktank import __version__
from thinktank.collaborators import ResponseGenerator, StreamCallback
from thinktank.config import get_settings, load_settings
from thinktank.conversation import ConversationSnapshot, InMemoryConversationStore, Message, Persona
from thinktank.errors import ThinkTankError
from thinktank.orchestrator import (
    AutoRunLoop,
    LoopEvent,
    LoopEventType,
    compute_stats,
    create_orchestration_service,
    get_mode_policy,
)
from thinktank.utils.logging import setup_logging

app = typer.Typer(
    name="thinktank",
    help="Turn orchestration for multi-persona AI conversations",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]ThinkTank[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also write debug logs to this file",
    ),
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """ThinkTank - decide who speaks next in multi-persona conversations."""
    setup_logging(level=logging.WARNING, log_file=log_file, verbose=verbose)

    if config:
        load_settings(config_path=config, force_reload=True)


def load_scenario(path: Path) -> tuple[ConversationSnapshot, dict[str, list[str]]]:
    """Load a conversation scenario from YAML.

    The file holds a conversation snapshot (personas, messages, mode, ...)
    plus an optional ``script`` mapping persona ids to canned replies used
    by ``simulate``. Speed and strategy fall back to the configured
    auto-run defaults when the file leaves them out.

    Args:
        path: Path to the scenario file

    Returns:
        Tuple of (snapshot, script)
    """
    with open(path, "r", encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    script = data.pop("script", None) or {}
    data.setdefault("conversation_id", path.stem)
    autorun = get_settings().autorun
    data.setdefault("speed", autorun.default_speed)
    data.setdefault("strategy", autorun.default_strategy)
    return ConversationSnapshot.model_validate(data), script


def _load_or_exit(path: Path) -> tuple[ConversationSnapshot, dict[str, list[str]]]:
    try:
        return load_scenario(path)
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[red]Could not read scenario {path}: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid scenario {path}:[/red]\n{escape(str(e))}")
        raise typer.Exit(1)


class ScriptedResponseGenerator(ResponseGenerator):
    """Response generator that replays canned lines into the in-memory store."""

    def __init__(
        self,
        store: InMemoryConversationStore,
        personas: list[Persona],
        script: Optional[dict[str, list[str]]] = None,
    ):
        self.store = store
        self.personas = {p.id: p for p in personas}
        self.script = script or {}
        self._turns: dict[str, int] = {}

    async def generate(
        self,
        conversation_id: str,
        persona_id: str,
        on_stream_chunk: Optional[StreamCallback] = None,
    ) -> Message:
        turn = self._turns.get(persona_id, 0)
        self._turns[persona_id] = turn + 1

        lines = self.script.get(persona_id)
        if lines:
            content = lines[turn % len(lines)]
        else:
            persona = self.personas[persona_id]
            content = f"{persona.name} ({persona.display_role}) adds point #{turn + 1}."

        if on_stream_chunk:
            for word in content.split(" "):
                on_stream_chunk(word + " ")

        return self.store.add_message(conversation_id, Message.assistant(content, persona_id))


@app.command()
def decide(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario YAML file"),
    strategy: Optional[str] = typer.Option(
        None, "--strategy", "-s", help="intelligent, round-robin or random"
    ),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Conversation mode"),
) -> None:
    """Score every persona in a scenario and decide who speaks next."""
    snapshot, _ = _load_or_exit(scenario)
    service = create_orchestration_service(get_settings())

    mode = mode or snapshot.mode
    strategy = strategy or snapshot.strategy

    table = Table(title=f"Factors ({get_mode_policy(mode).label})")
    table.add_column("Persona", style="bold")
    table.add_column("Role")
    table.add_column("Relevance", justify="right")
    table.add_column("Expertise", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Flow", justify="right")
    table.add_column("Score", justify="right", style="cyan")

    for ranked in service.rank_personas(snapshot.personas, snapshot.messages):
        f = ranked.factors
        table.add_row(
            ranked.persona.name,
            ranked.persona.display_role,
            f"{f.relevance:.2f}",
            f"{f.expertise:.2f}",
            f"{f.participation_balance:.2f}",
            f"{f.flow:.2f}",
            f"{ranked.total:.2f}",
        )
    console.print(table)

    try:
        decision = asyncio.run(
            service.determine_speaker(
                snapshot.conversation_id,
                snapshot.personas,
                snapshot.messages,
                mode=mode,
                strategy=strategy,
                control=snapshot.control,
            )
        )
    except ThinkTankError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    if decision.is_empty:
        console.print("[yellow]Manual mode - the user picks the next speaker.[/yellow]")
        return

    names = {p.id: p.name for p in snapshot.personas}
    console.print(
        Panel(
            f"[bold]{names.get(decision.persona_id, decision.persona_id)}[/bold] speaks next\n"
            f"[dim]{escape(decision.reasoning)}[/dim]\n\n"
            f"Score: {decision.priority_score:.2f}  Source: {decision.source}",
            title="Decision",
            border_style="green",
        )
    )


@app.command()
def simulate(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario YAML file"),
    turns: int = typer.Option(10, "--turns", "-n", min=1, help="Messages to generate"),
    speed: Optional[int] = typer.Option(None, "--speed", min=1, max=10, help="Speed 1-10"),
    no_delay: bool = typer.Option(False, "--no-delay", help="Skip pacing delays"),
) -> None:
    """Run the auto-run loop on a scenario with scripted replies."""
    snapshot, script = _load_or_exit(scenario)
    if speed is not None:
        snapshot.speed = speed

    try:
        asyncio.run(_simulate(snapshot, script, turns, no_delay))
    except ThinkTankError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)


async def _simulate(
    snapshot: ConversationSnapshot,
    script: dict[str, list[str]],
    turns: int,
    no_delay: bool,
) -> None:
    """Drive one scenario through the AutoRunLoop."""
    settings = get_settings()
    cid = snapshot.conversation_id

    store = InMemoryConversationStore()
    store.create(
        cid,
        snapshot.personas,
        mode=snapshot.mode,
        control="auto",
        strategy=snapshot.strategy,
        speed=snapshot.speed,
        user_id=snapshot.user_id,
        messages=snapshot.messages,
    )

    async def no_sleep(_: float) -> None:
        await asyncio.sleep(0)

    loop = AutoRunLoop(
        service=create_orchestration_service(settings),
        source=store,
        generator=ScriptedResponseGenerator(store, snapshot.personas, script),
        config=settings.autorun.model_copy(
            update={"message_ceiling": snapshot.message_count + turns}
        ),
        sleep=no_sleep if no_delay else None,
    )

    names = {p.id: p.name for p in snapshot.personas}

    def show(event: LoopEvent) -> None:
        if event.type == LoopEventType.DECISION and event.decision:
            d = event.decision
            console.print(
                f"[cyan]-> {names.get(d.persona_id, d.persona_id)}[/cyan] "
                f"[dim]({d.source}, {d.priority_score:.2f}) {escape(d.reasoning)}[/dim]"
            )
        elif event.type == LoopEventType.MESSAGE and event.message:
            name = names.get(event.persona_id, event.persona_id)
            console.print(f"[bold]{name}:[/bold] {escape(event.message.content)}")
        elif event.type == LoopEventType.PACING:
            console.print(f"[dim]... waiting {event.delay_ms}ms[/dim]")
        elif event.type == LoopEventType.STOPPED and event.stop_reason:
            style = "red" if event.stop_reason.is_failure else "yellow"
            console.print(f"[{style}]Stopped: {event.stop_reason.value}[/{style}]")

    console.print(
        Panel(
            f"{len(snapshot.active_personas)} personas, mode {snapshot.mode}, "
            f"strategy {snapshot.strategy}, speed {snapshot.speed}",
            title=f"Simulating {cid}",
            border_style="blue",
        )
    )

    result = await loop.start(cid, on_event=show)

    table = Table(title="Participation")
    table.add_column("Persona", style="bold")
    table.add_column("Messages", justify="right")
    table.add_column("Share", justify="right")
    for persona_id, stat in compute_stats(store.messages(cid), snapshot.personas).items():
        table.add_row(names[persona_id], str(stat.message_count), f"{stat.participation_rate:.0f}%")
    console.print(table)
    console.print(f"Generated {result.generated} messages")


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()

    console.print(Panel("[bold]Current Configuration[/bold]", border_style="blue"))

    # API Keys (masked)
    console.print("\n[bold]API Keys:[/bold]")
    console.print(f"  Anthropic: {'Set' if settings.anthropic_api_key else 'Not set'}")
    console.print(f"  OpenAI:    {'Set' if settings.openai_api_key else 'Not set'}")

    weights = settings.scoring.weights
    console.print("\n[bold]Scoring:[/bold]")
    console.print(
        f"  Weights: relevance {weights.relevance}, expertise {weights.expertise}, "
        f"balance {weights.participation_balance}, flow {weights.flow}"
    )
    console.print(
        f"  Participation ratios: over {settings.scoring.over_participation_ratio}, "
        f"under {settings.scoring.under_participation_ratio}"
    )
    console.print(f"  Lookback: {settings.scoring.lookback_messages} messages")

    reasoning = settings.reasoning
    status = "available" if settings.reasoning_available else "local scoring only"
    console.print("\n[bold]Reasoning backend:[/bold]")
    console.print(f"  Enabled: {reasoning.enabled} ({status})")
    console.print(f"  Provider: {reasoning.provider} {reasoning.model_id or '(default model)'}")
    console.print(
        f"  Timeout: {reasoning.timeout_seconds}s (target {reasoning.latency_target_ms}ms)"
    )

    console.print("\n[bold]Auto-run:[/bold]")
    console.print(f"  Message ceiling: {settings.autorun.message_ceiling}")
    console.print(f"  Default speed: {settings.autorun.default_speed}")
    console.print(f"  Default strategy: {settings.autorun.default_strategy}")


if __name__ == "__main__":
    app()
