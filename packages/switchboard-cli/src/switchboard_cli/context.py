"""Shared helpers for CLI commands: config loading and surface building."""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from switchboard_core.config import SwitchboardConfig
from switchboard_core.errors import ConfigError
from switchboard_core.logging import setup_logging
from switchboard_tools.builder import AgentSurfaceBuilder

if TYPE_CHECKING:
    from switchboard_tools.builder import AgentSurface

err_console = Console(stderr=True)


def load_config(workspace: str | None = None) -> SwitchboardConfig:
    """Load the layered config or exit with status 2."""
    try:
        config = SwitchboardConfig.load(workspace)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(2) from exc
    setup_logging(
        config.logging.level,
        json_output=config.logging.json,
        log_file=config.log_file,
    )
    return config


def build_surface(config: SwitchboardConfig, enumerate_tools: bool = True) -> AgentSurface:
    if not enumerate_tools:
        config = replace(config, enumeration=replace(config.enumeration, enabled=False))
    return asyncio.run(AgentSurfaceBuilder(config).build())
