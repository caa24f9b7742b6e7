"""Agent inspection commands: list, info, models."""
from __future__ import annotations

from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from switchboard_core.types import NamespacedToolRef

from switchboard_cli.context import build_surface, load_config

if TYPE_CHECKING:
    from switchboard_agent.definitions.types import CanonicalAgent

console = Console()

agent_app = typer.Typer(
    no_args_is_help=True,
)


def _refs(agent: CanonicalAgent) -> str:
    return ", ".join(str(r) for r in agent.tool_refs) or "-"


@agent_app.command("list")
def agent_list(
    workspace: str | None = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
    enumerate_tools: bool = typer.Option(
        True, "--enumerate/--no-enumerate", help="Probe MCP servers for their tools",
    ),
) -> None:
    """List every agent the server would expose."""
    config = load_config(workspace)
    surface = build_surface(config, enumerate_tools=enumerate_tools)

    if not surface.agents:
        console.print(
            "[yellow]No agents found.[/yellow] "
            "Place *.toml agents in .agents/, *.agent.md in .claude/agents/ "
            "or *.chatmode.md in .github/chatmodes/."
        )
        raise typer.Exit(0)

    table = Table(
        title="Switchboard Agents",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Tool", style="bold")
    table.add_column("Format", justify="center")
    table.add_column("Description")
    table.add_column("Model")
    table.add_column("Servers")

    for agent in surface.agents:
        model = agent.run.model or "-"
        if agent.run.model_provider:
            model += f" ({agent.run.model_provider})"
        table.add_row(
            agent.identifier,
            agent.format.value,
            agent.description,
            model,
            ", ".join(s.key for s in agent.servers) or "-",
        )

    console.print(table)
    console.print(f"\n[dim]{len(surface.agents)} agent(s) prepared.[/dim]")

    if surface.diagnostics.items:
        console.print(f"[yellow]{surface.diagnostics.count()} diagnostic(s):[/yellow]")
        for diagnostic in surface.diagnostics.items:
            console.print(f"  [dim]-[/dim] {diagnostic}")


@agent_app.command("info")
def agent_info(
    tool: str = typer.Argument(..., help="Tool name of the agent to inspect"),
    workspace: str | None = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
) -> None:
    """Show the prepared record of one agent."""
    config = load_config(workspace)
    surface = build_surface(config)

    match = next((a for a in surface.agents if a.identifier == tool), None)
    if match is None:
        console.print(f"[red]Agent not found:[/red] '{tool}'")
        available = [a.identifier for a in surface.agents]
        if available:
            console.print(f"[dim]Available agents: {', '.join(sorted(available))}[/dim]")
        raise typer.Exit(1)

    meta_lines = [
        f"[bold]Name:[/bold]          {match.name}",
        f"[bold]Tool:[/bold]          {match.identifier}",
        f"[bold]Format:[/bold]        {match.format.value}",
        f"[bold]Description:[/bold]   {match.description}",
    ]
    if match.tags:
        meta_lines.append(f"[bold]Tags:[/bold]          {', '.join(sorted(match.tags))}")
    meta_lines.append(f"[bold]Tools:[/bold]         {_refs(match)}")
    for key, value in match.run.explicit().items():
        meta_lines.append(f"[bold]{key}:[/bold] {value}")
    for spec in match.servers:
        used = [r.tool for r in match.tool_refs
                if isinstance(r, NamespacedToolRef) and r.server == spec.key]
        meta_lines.append(
            f"[bold]Server:[/bold]        {spec.key} "
            f"[dim]({spec.origin.value}, {spec.source or 'n/a'})[/dim]"
            + (f" tools: {', '.join(used)}" if used else "")
        )
    if match.source_path:
        meta_lines.append(f"[bold]Source:[/bold]        {match.source_path}")

    console.print(Panel(
        "\n".join(meta_lines),
        title=f"Agent: {match.name}",
        border_style="cyan",
    ))

    if match.instructions:
        preview = match.instructions
        if len(preview) > 500:
            preview = preview[:500] + "\n\n... (truncated)"
        console.print()
        console.print(Panel(
            Syntax(preview, "markdown", theme="monokai", word_wrap=True),
            title="Instructions (preview)",
            border_style="dim",
        ))
    else:
        console.print("\n[dim]No instructions defined.[/dim]")


def models_command(
    workspace: str | None = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
) -> None:
    """Show the effective model map."""
    from switchboard_agent.model_mapping import ModelMap, load_model_map

    config = load_config(workspace)
    model_map = (
        load_model_map(config.model_map_path)
        if config.model_map.enabled
        else ModelMap.default()
    )

    table = Table(title="Model Map", show_header=True, header_style="bold cyan")
    table.add_column("Token", style="bold")
    table.add_column("Aliases")
    table.add_column("Model")
    table.add_column("Provider")
    for entry in model_map.entries:
        table.add_row(
            entry.token,
            ", ".join(sorted(entry.aliases)) or "-",
            entry.model,
            entry.provider or "-",
        )
    console.print(table)
    console.print(f"[dim]Source: {config.model_map_path}"
                  f"{'' if config.model_map_path.is_file() else ' (not found; built-in table)'}[/dim]")
