from __future__ import annotations

import json

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError
from switchboard_agent.definitions.types import AgentFormat
from switchboard_core.errors import EngineError
from switchboard_core.types import RunProfile, ServerSpec
from switchboard_tools.agents_server import (
    AgentToolset,
    create_agents_server,
    tool_description,
)
from switchboard_tools.engine import DryRunEngine, EngineResult


class RecordingEngine:
    def __init__(self, result: EngineResult | None = None, error: Exception | None = None):
        self.result = result or EngineResult(ok=True, output="done")
        self.error = error
        self.profiles = []

    async def execute(self, profile):
        self.profiles.append(profile)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def agents(make_agent):
    return [
        make_agent("Reviewer", tags=frozenset({"review", "python"})),
        make_agent("Writer", fmt=AgentFormat.CLAUDE, identifier="anth_writer"),
    ]


class TestToolDescription:
    def test_with_tags(self, make_agent):
        agent = make_agent("Reviewer", tags=frozenset({"review", "python"}))
        assert tool_description(agent) == (
            "task, cwd: string - Reviewer agent [tags: python, review]"
        )

    def test_without_tags(self, make_agent):
        assert tool_description(make_agent("Writer")) == "task, cwd: string - Writer agent"


class TestAgentToolset:
    async def test_invoke(self, agents, tmp_path):
        engine = RecordingEngine()
        result = await AgentToolset(agents, engine).invoke(
            "agent_reviewer", "Review it", str(tmp_path),
        )
        assert result.to_payload() == {"ok": True, "output": "done"}

        (profile,) = engine.profiles
        assert profile.identifier == "agent_reviewer"
        assert profile.profile_name == "reviewer"
        assert profile.cwd == tmp_path
        assert profile.instructions == "You are Reviewer."

    async def test_profile_carries_run_and_servers(self, make_agent, tmp_path):
        spec = ServerSpec(key="fs", command="npx")
        agent = make_agent(run=RunProfile(model="gpt-5"), servers=(spec,))
        engine = RecordingEngine()
        await AgentToolset([agent], engine).invoke(agent.identifier, "go", str(tmp_path))
        assert engine.profiles[0].run == RunProfile(model="gpt-5")
        assert engine.profiles[0].servers == (spec,)

    @pytest.mark.parametrize("cwd", ["relative/dir", ""])
    async def test_cwd_must_be_absolute(self, agents, cwd):
        engine = RecordingEngine()
        with pytest.raises(ToolError, match="cwd"):
            await AgentToolset(agents, engine).invoke("agent_reviewer", "task", cwd)
        assert engine.profiles == []

    async def test_task_required(self, agents, tmp_path):
        with pytest.raises(ToolError, match="task"):
            await AgentToolset(agents, RecordingEngine()).invoke(
                "agent_reviewer", "   ", str(tmp_path),
            )

    async def test_unknown_agent(self, agents, tmp_path):
        with pytest.raises(ToolError, match="Unknown agent"):
            await AgentToolset(agents, RecordingEngine()).invoke("nobody", "task", str(tmp_path))

    async def test_engine_error_is_not_ok(self, agents, tmp_path):
        engine = RecordingEngine(error=EngineError("codex crashed"))
        result = await AgentToolset(agents, engine).invoke("agent_reviewer", "task", str(tmp_path))
        assert result.to_payload() == {"ok": False, "output": ""}

    async def test_failed_run_keeps_output(self, agents, tmp_path):
        engine = RecordingEngine(EngineResult(ok=False, output="partial", exit_code=1))
        result = await AgentToolset(agents, engine).invoke("agent_reviewer", "task", str(tmp_path))
        assert result.to_payload() == {"ok": False, "output": "partial"}

    async def test_calls_are_independent(self, agents, tmp_path):
        toolset = AgentToolset(agents, DryRunEngine())
        first = await toolset.invoke("agent_reviewer", "first task", str(tmp_path))
        second = await toolset.invoke("anth_writer", "second task", str(tmp_path))
        assert "first task" in first.output
        assert "second task" not in first.output
        assert "# Agent: anth_writer" in second.output


class TestCreateAgentsServer:
    async def test_one_tool_per_agent(self, agents):
        server = create_agents_server(agents, DryRunEngine())
        tools = await server.get_tools()

        assert set(tools) == {"agent_reviewer", "anth_writer"}
        tool = tools["agent_reviewer"]
        assert tool.description == tool_description(agents[0])
        assert set(tool.parameters["properties"]) == {"task", "cwd"}
        assert set(tool.parameters["required"]) == {"task", "cwd"}

    async def test_call_over_mcp(self, agents, tmp_path):
        server = create_agents_server(agents, DryRunEngine(), name="test")
        async with Client(server) as client:
            result = await client.call_tool(
                "agent_reviewer", {"task": "Review it", "cwd": str(tmp_path)},
            )
        payload = json.loads(result.content[0].text)
        assert payload["ok"] is True
        assert "Review it" in payload["output"]

    async def test_invalid_cwd_over_mcp(self, agents):
        server = create_agents_server(agents, DryRunEngine())
        async with Client(server) as client:
            with pytest.raises(ToolError):
                await client.call_tool("agent_reviewer", {"task": "x", "cwd": "relative"})

    async def test_no_agents(self):
        server = create_agents_server([], DryRunEngine())
        assert await server.get_tools() == {}
