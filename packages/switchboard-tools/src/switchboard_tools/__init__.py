"""Switchboard Tools: MCP server attachment, execution engines and the agents server."""
from __future__ import annotations

from switchboard_tools.agents_server import (
    AgentCallResult,
    AgentToolset,
    create_agents_server,
    tool_description,
)
from switchboard_tools.builder import AgentSurface, AgentSurfaceBuilder, filter_agents
from switchboard_tools.engine import (
    CodexExecEngine,
    DryRunEngine,
    EngineResult,
    ExecutionEngine,
    ExecutionProfile,
)

__all__ = [
    "AgentCallResult",
    "AgentSurface",
    "AgentSurfaceBuilder",
    "AgentToolset",
    "CodexExecEngine",
    "DryRunEngine",
    "EngineResult",
    "ExecutionEngine",
    "ExecutionProfile",
    "create_agents_server",
    "filter_agents",
    "tool_description",
]
