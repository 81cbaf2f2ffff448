"""kairo CLI — run the agent server, or supervise a single agent locally.

`kairo serve` starts the HTTP/WebSocket server.
`kairo run CMD [ARGS]...` spawns one agent and streams its events here.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.text import Text

from kairo.events.bus import InputEvent, OutputEvent, StatusChangedEvent
from kairo.processes.manager import AgentManager
from kairo.types import AgentStatus

console = Console()

app = typer.Typer(
    name="kairo",
    help="kairo -- supervise agent processes and stream their output.",
    no_args_is_help=True,
)

_STATUS_STYLE = {
    "running": "bold green",
    "stopped": "dim",
    "failed": "bold red",
}


async def run_agent(
    manager: AgentManager,
    name: str,
    command: str,
    args: list[str],
    inputs: list[str] | None = None,
    out: Console | None = None,
) -> AgentStatus:
    """Spawn one agent, feed it ``inputs`` and print its events until it exits."""
    out = out or console
    with manager.subscribe() as sub:
        info = await manager.spawn(name, command, args)
        for text in inputs or []:
            await manager.send_input(info.id, text)

        async for event in sub:
            if event.agent_id != info.id:
                continue
            if isinstance(event, OutputEvent):
                out.print(Text(event.line))
            elif isinstance(event, InputEvent):
                out.print(Text(f"> {event.input}", style="cyan"))
            elif isinstance(event, StatusChangedEvent):
                style = _STATUS_STYLE.get(event.status.value, "white")
                out.print(f"[{style}]{escape(info.name)} {event.status.value}[/{style}]")
                if event.final:
                    return event.status
    # bus closed before the agent finished
    return AgentStatus.FAILED


@app.command(
    "run",
    # everything after COMMAND belongs to the agent, even if it looks like an option
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True},
)
def run(
    command: str = typer.Argument(help="Executable to run as the agent"),
    args: Optional[list[str]] = typer.Argument(None, help="Arguments for the executable"),
    name: str = typer.Option("", "--name", "-n", help="Agent name (defaults to the command)"),
    inputs: Optional[list[str]] = typer.Option(
        None, "--input", "-i", help="Line to send to the agent's stdin (repeatable)",
    ),
):
    """Run a single agent and stream its output until it exits."""
    manager = AgentManager()
    try:
        status = asyncio.run(
            run_agent(manager, name or command, command, args or [], inputs or [])
        )
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    raise typer.Exit(code=0 if status is AgentStatus.STOPPED else 1)


@app.command("serve")
def serve(
    host: str = typer.Option("", "--host", help="Host to bind to"),
    port: int = typer.Option(0, "--port", "-p", help="Port to run on"),
):
    """Start the agent server (REST API + WebSocket stream)."""
    from kairo.config import settings
    from kairo.serve import main, setup_logging

    setup_logging()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold cyan]kairo[/bold cyan] starting at http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop.[/dim]")
    asyncio.run(main(host=host, port=port))


@app.command("version")
def version_cmd():
    """Show kairo version."""
    from kairo import __version__
    console.print(f"kairo v{__version__}")
