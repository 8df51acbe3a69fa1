"""
adapters.cli.main - CLI adapter for the desk assistant core.

Mirrors src/adapters/rest/ but for terminal use. Uses the same
ServiceFactory and AssistantService as the REST API so routing, search and
orchestration behave identically.

Commands
--------
  ask                One-shot utterance
  chat               Interactive session; background results print as they arrive
  agents list        Show registered dynamic agent definitions
  agents register    Register a trusted plugin entrypoint
  memories list      Browse stored memories
  memories delete    Delete one memory by id
  init               Create the database schema and register built-in plugins
  new-session        Start a fresh session scope

Usage
-----
  python src/adapters/cli/main.py ask "I have a dentist appointment at 3pm"
  python src/adapters/cli/main.py chat
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# ── Ensure src/ is on the path ──
_SRC = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(_SRC))

import typer
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from adapters.cli.session import Session, clear_session, current_session, save_session
from application.context import SessionContext
from domain.exceptions import AgentLoadError, CapabilityError
from domain.models import AgentDefinition, RequestOptions
from factory import ServiceFactory
from infrastructure.config import Settings

__version__ = "0.1.0"

console = Console()
app = typer.Typer(
    help="Desk Assistant CLI",
    add_completion=False,
    no_args_is_help=True,
)
agents_app = typer.Typer(help="Manage dynamic agent definitions.", no_args_is_help=True)
memories_app = typer.Typer(help="Browse and delete stored memories.", no_args_is_help=True)
app.add_typer(agents_app, name="agents")
app.add_typer(memories_app, name="memories")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

async def _make_factory() -> ServiceFactory:
    config = Settings.from_env()
    factory = ServiceFactory(config)
    with console.status("[bold cyan]Starting assistant…", spinner="dots"):
        await factory.initialize()
    return factory


def _print_payload(payload) -> None:
    t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    t.add_column("Field", style="bold")
    t.add_column("Value")
    t.add_row("Intent", f"{payload.primary_intent.value} ({payload.confidence:.2f})")
    t.add_row("Method", str(payload.context_metadata.get("method", "?")))
    if payload.entities:
        t.add_row("Entities", ", ".join(
            f"{kind}: {', '.join(values)}" for kind, values in payload.entities.items()
        ))
    if payload.capture_screen:
        t.add_row("Screen", "capture requested")
    console.print(Panel(t, title="Understood", border_style="blue"))


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"desk-assistant v{__version__}")
        raise typer.Exit()


# ---------------------------------------------------------------------------
# Commands: Assistant
# ---------------------------------------------------------------------------

@app.command()
def ask(
    utterance: str = typer.Argument(..., help="What you want to say to the assistant."),
    no_search: bool = typer.Option(False, "--no-search", help="Skip staged memory search."),
    no_agents: bool = typer.Option(False, "--no-agents", help="Do not run agents in the background."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show the classification."),
) -> None:
    """Send one utterance and wait for any background result."""
    session = current_session()

    async def _run() -> None:
        factory = await _make_factory()
        ctx = SessionContext.with_window(factory.config.context_window_turns, session.session_id)

        async def _show(event: dict) -> None:
            console.print(Panel(
                Markdown(event["response"]),
                title=f"Update · {event['handledBy']}",
                border_style="magenta",
            ))

        factory.notifications.register("cli", _show)
        options = RequestOptions(
            prefer_semantic_search=not no_search,
            use_agent_orchestration=not no_agents,
        )
        with console.status("[bold cyan]Thinking…", spinner="dots"):
            response = await factory.create_assistant_service().handle(
                ctx.utterance(utterance, options),
            )

        if verbose and response.intent_classification_payload is not None:
            _print_payload(response.intent_classification_payload)
        style = "green" if response.success else "red"
        console.print(Panel(Markdown(response.data or ""), title="Assistant", border_style=style))

        await factory.shutdown()
        if not response.success:
            raise typer.Exit(code=1)

    asyncio.run(_run())


@app.command()
def chat(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show each classification."),
) -> None:
    """Start an interactive session."""
    session = current_session()

    async def _run() -> None:
        factory = await _make_factory()
        service = factory.create_assistant_service()
        ctx = SessionContext.with_window(factory.config.context_window_turns, session.session_id)

        async def _show(event: dict) -> None:
            console.print(Panel(
                Markdown(event["response"]),
                title=f"Update · {event['handledBy']}",
                border_style="magenta",
            ))
            ctx.conversation = ctx.conversation.append("assistant", event["response"])

        factory.notifications.register("cli-chat", _show)
        console.print(Panel(
            "[bold]Desk Assistant[/bold]\n"
            f"Session [dim]{session.session_id[:8]}[/dim]\n"
            "Type a message, or [bold]exit[/bold] / [bold]quit[/bold] to stop.",
            border_style="cyan",
        ))

        loop = asyncio.get_running_loop()
        while True:
            try:
                # Prompt in a worker thread so background notifications can print
                user_input = await loop.run_in_executor(
                    None, Prompt.ask, "\n[bold cyan]You[/bold cyan]",
                )
            except (KeyboardInterrupt, EOFError):
                console.print("\n[dim]Goodbye![/dim]")
                break

            if user_input.strip().lower() in ("exit", "quit", "q", "bye"):
                console.print("[dim]Goodbye![/dim]")
                break
            if not user_input.strip():
                continue

            ctx.new_request()
            with console.status("[bold cyan]Thinking…", spinner="dots"):
                response = await service.handle(ctx.utterance(user_input))
            ctx.record_exchange(user_input, response.data)

            if verbose and response.intent_classification_payload is not None:
                _print_payload(response.intent_classification_payload)
            console.print()
            console.print(Panel(
                Markdown(response.data or ""),
                title="Assistant",
                border_style="green" if response.success else "red",
            ))

        await factory.shutdown()

    asyncio.run(_run())


@app.command("new-session")
def new_session() -> None:
    """Forget the current session id and start a new one."""
    clear_session()
    session = Session()
    save_session(session)
    console.print(f"[green]New session[/green] {session.session_id}")


# ---------------------------------------------------------------------------
# Commands: Agents
# ---------------------------------------------------------------------------

@agents_app.command("list")
def agents_list() -> None:
    """List dynamic agent definitions."""
    async def _run() -> None:
        factory = await _make_factory()
        definitions = await factory.agent_definitions.list_all()
        if not definitions:
            console.print("[dim]No agent definitions registered.[/dim]")
            return
        t = Table(box=box.SIMPLE)
        t.add_column("Name", style="bold")
        t.add_column("Entrypoint")
        t.add_column("Capabilities")
        t.add_column("Version")
        for d in definitions:
            t.add_row(d.name, d.entrypoint, ", ".join(d.declared_capabilities), d.version)
        console.print(Panel(t, title="Dynamic agents", border_style="blue"))

    asyncio.run(_run())


@agents_app.command("register")
def agents_register(
    name: str = typer.Argument(..., help="Agent name used in plans."),
    entrypoint: str = typer.Argument(..., help="package.module:ClassName"),
    capability: Optional[List[str]] = typer.Option(
        None, "--capability", "-c", help="Declared capability (repeatable).",
    ),
    description: str = typer.Option("", "--description", "-d"),
) -> None:
    """Register a trusted plugin entrypoint."""
    async def _run() -> None:
        factory = await _make_factory()
        definition = AgentDefinition(
            name=name,
            entrypoint=entrypoint,
            description=description,
            declared_capabilities=tuple(capability or ()),
        )
        try:
            saved = await factory.register_agent_definition(definition)
        except CapabilityError as e:
            console.print(f"[bold red]Capability refused:[/bold red] {e}")
            raise typer.Exit(code=1)
        except AgentLoadError as e:
            console.print(f"[bold red]Invalid definition:[/bold red] {e}")
            raise typer.Exit(code=1)
        console.print(Panel(
            f"[bold green]Registered[/bold green] {saved.name} → {saved.entrypoint}",
            border_style="green",
        ))

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Commands: Memories
# ---------------------------------------------------------------------------

@memories_app.command("list")
def memories_list(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Substring filter."),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    session_only: bool = typer.Option(False, "--session", help="Only this CLI session."),
) -> None:
    """List stored memories, newest first."""
    session_id = current_session().session_id if session_only else None

    async def _run() -> None:
        factory = await _make_factory()
        records = await factory.memory_store.query(
            text=query, session_id=session_id, limit=limit, offset=offset,
        )
        if not records:
            console.print("[dim]No memories found.[/dim]")
            return
        t = Table(box=box.SIMPLE)
        t.add_column("ID", style="bold")
        t.add_column("Memory")
        t.add_column("Intent")
        t.add_column("Created")
        for r in records:
            t.add_row(str(r.id), r.source_text[:80], r.primary_intent, r.created_at[:19])
        console.print(Panel(t, title="Memories", border_style="blue"))

    asyncio.run(_run())


@memories_app.command("delete")
def memories_delete(memory_id: int = typer.Argument(...)) -> None:
    """Delete one memory by id."""
    async def _run() -> None:
        factory = await _make_factory()
        if await factory.memory_store.delete(memory_id):
            console.print(f"[green]Deleted memory {memory_id}.[/green]")
        else:
            console.print(f"[yellow]Memory {memory_id} not found.[/yellow]")

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Commands: Init
# ---------------------------------------------------------------------------

@app.command()
def init() -> None:
    """Create the database schema and register the bundled plugins."""
    async def _run() -> None:
        factory = await _make_factory()
        console.print(Panel(
            "[bold green]Assistant initialised![/bold green]\n"
            f"Database: {factory.config.db_path}\n"
            "Run [bold]chat[/bold] or [bold]ask[/bold] to start.",
            border_style="green",
        ))

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Global version option
# ---------------------------------------------------------------------------

@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Desk Assistant: intent routing, memory and agents in your terminal."""


if __name__ == "__main__":
    app()
