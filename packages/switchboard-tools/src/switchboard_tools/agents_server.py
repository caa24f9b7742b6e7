"""MCP tool server exposing each prepared agent as one tool."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from switchboard_core.errors import EngineError
from switchboard_core.logging import get_logger

from switchboard_tools.engine import ExecutionProfile

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from switchboard_agent.definitions.types import CanonicalAgent

    from switchboard_tools.engine import ExecutionEngine

logger = get_logger("agents_server")


@dataclass(frozen=True, slots=True)
class AgentCallResult:
    """What a caller sees: a success flag and the agent's output."""
    ok: bool
    output: str

    def to_payload(self) -> dict[str, Any]:
        return {"ok": self.ok, "output": self.output}


def tool_description(agent: CanonicalAgent) -> str:
    description = f"task, cwd: string - {agent.description}"
    if agent.tags:
        description += f" [tags: {', '.join(sorted(agent.tags))}]"
    return description


class AgentToolset:
    """Binds prepared agents to an execution engine.

    Calls to different agents share nothing mutable; the agent records are
    frozen and the engine is handed a fresh profile per call.
    """

    def __init__(self, agents: Iterable[CanonicalAgent], engine: ExecutionEngine) -> None:
        self._agents = {agent.identifier: agent for agent in agents}
        self._engine = engine

    @property
    def agents(self) -> list[CanonicalAgent]:
        return list(self._agents.values())

    def build_profile(self, agent: CanonicalAgent, task: str, cwd: str) -> ExecutionProfile:
        """Validate call arguments and assemble the engine profile.

        Raises:
            ToolError: If ``task`` is blank or ``cwd`` is not absolute.
        """
        if not task or not task.strip():
            msg = "invalid 'task': expected a non-empty string"
            raise ToolError(msg)
        if not cwd or not Path(cwd).is_absolute():
            msg = f"invalid 'cwd': expected an absolute path, got {cwd!r}"
            raise ToolError(msg)
        return ExecutionProfile(
            identifier=agent.identifier,
            profile_name=agent.safe_name,
            task=task,
            cwd=Path(cwd),
            instructions=agent.instructions,
            run=agent.run,
            servers=agent.servers,
        )

    async def invoke(self, identifier: str, task: str, cwd: str) -> AgentCallResult:
        """Run one agent call.

        Engine failures come back as ``ok=False``; their detail is logged,
        never put in the payload.
        """
        agent = self._agents.get(identifier)
        if agent is None:
            msg = f"Unknown agent '{identifier}'"
            raise ToolError(msg)

        profile = self.build_profile(agent, task, cwd)
        try:
            result = await self._engine.execute(profile)
        except EngineError as exc:
            logger.error("Agent %s failed: %s", identifier, exc)
            return AgentCallResult(ok=False, output="")

        if result.stderr:
            logger.debug("stderr from %s:\n%s", identifier, result.stderr)
        if not result.ok:
            logger.warning(
                "Agent %s exited with code %d", identifier, result.exit_code,
            )
        return AgentCallResult(ok=result.ok, output=result.output)

    def _make_handler(self, identifier: str) -> Callable[[str, str], Awaitable[dict[str, Any]]]:
        async def run_agent(task: str, cwd: str) -> dict[str, Any]:
            """Run the agent on a task inside an absolute working directory."""
            result = await self.invoke(identifier, task, cwd)
            return result.to_payload()

        return run_agent

    def register(self, server: FastMCP) -> None:
        """Register one tool per agent on *server*."""
        for agent in self._agents.values():
            server.tool(
                name=agent.identifier,
                description=tool_description(agent),
            )(self._make_handler(agent.identifier))
        logger.info("Registered %d agent tool(s)", len(self._agents))


def create_agents_server(
    agents: Iterable[CanonicalAgent],
    engine: ExecutionEngine,
    name: str = "switchboard",
) -> FastMCP:
    """Create the MCP server with one tool per agent."""
    server = FastMCP(name)
    AgentToolset(agents, engine).register(server)
    return server
