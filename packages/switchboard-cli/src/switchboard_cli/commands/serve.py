"""Serve every prepared agent as an MCP tool."""
from __future__ import annotations

import typer
from rich.console import Console
from switchboard_core.logging import get_logger
from switchboard_tools.agents_server import create_agents_server
from switchboard_tools.builder import AgentSurfaceBuilder
from switchboard_tools.engine import DryRunEngine

from switchboard_cli.context import build_surface, load_config

err_console = Console(stderr=True)
logger = get_logger("cli.serve")


def run_server(
    transport: str | None = None,
    host: str | None = None,
    port: int | None = None,
    workspace: str | None = None,
    dry_run: bool = False,
) -> None:
    config = load_config(workspace)
    transport = transport or config.server.transport
    if transport not in {"stdio", "http"}:
        err_console.print(f"[red]Unknown transport:[/red] {transport!r} (use stdio or http)")
        raise typer.Exit(2)

    surface = build_surface(config)
    engine = DryRunEngine() if dry_run else AgentSurfaceBuilder(config).build_engine()
    server = create_agents_server(surface.agents, engine, name=config.server.name)

    if not surface.agents:
        logger.warning("No agents prepared; the server exposes no tools")

    if transport == "stdio":
        server.run()
    else:
        server.run(
            transport="http",
            host=host or config.server.host,
            port=port or config.server.port,
        )


def serve_command(
    transport: str | None = typer.Option(
        None, "--transport", "-t", help="stdio or http (defaults to config/TRANSPORT)",
    ),
    host: str | None = typer.Option(None, "--host", help="Bind address for http"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port for http"),
    workspace: str | None = typer.Option(
        None, "--workspace", "-w", help="Workspace directory (defaults to WORKSPACE_DIR or cwd)",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Return assembled prompts instead of running the engine",
    ),
) -> None:
    """Run the MCP server exposing one tool per agent."""
    run_server(transport, host, port, workspace, dry_run)
