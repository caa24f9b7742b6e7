from __future__ import annotations

import typer

from switchboard_cli.commands.agent_mgmt import agent_app, models_command
from switchboard_cli.commands.serve import run_server, serve_command

app = typer.Typer(
    name="switchboard",
    help="Switchboard: expose Codex, Claude and VS Code agents as MCP tools",
    invoke_without_command=True,
)

app.command("serve")(serve_command)
app.command("models")(models_command)
app.add_typer(agent_app, name="agent", help="Inspect prepared agents")


@app.callback(invoke_without_command=True)
def _default(ctx: typer.Context) -> None:
    """Serve over the configured transport when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        run_server()


@app.command()
def version() -> None:
    """Show the Switchboard version."""
    from rich.console import Console
    from switchboard_core import __version__

    Console().print(f"switchboard {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
