from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from switchboard_agent.definitions import AgentFormat, AgentLoader, normalize_records
from switchboard_agent.model_mapping import ModelMap, ModelMapper, load_model_map
from switchboard_agent.tool_mapping import ToolMapper
from switchboard_core.diagnostics import Diagnostics
from switchboard_core.logging import get_logger

from switchboard_tools.engine import CodexExecEngine, DryRunEngine
from switchboard_tools.mcp.discovery import discover_servers
from switchboard_tools.mcp.enumerator import ServerEnumerator
from switchboard_tools.mcp.registry import AttachSettings, ServerRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from switchboard_agent.definitions.types import CanonicalAgent
    from switchboard_core.config import SwitchboardConfig
    from switchboard_core.types import ServerSpec

    from switchboard_tools.engine import ExecutionEngine
    from switchboard_tools.mcp.enumerator import ProbeFn

logger = get_logger("builder")


@dataclass(frozen=True, slots=True)
class AgentSurface:
    """The prepared, immutable set of agents a server exposes."""
    agents: list[CanonicalAgent] = field(default_factory=list)
    discovered_servers: list[ServerSpec] = field(default_factory=list)
    model_map: ModelMap = field(default_factory=ModelMap.default)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def filter_agents(
    agents: Iterable[CanonicalAgent], tokens: Iterable[str],
) -> list[CanonicalAgent]:
    """Keep agents whose name, safe name or any tag is in *tokens*.

    An empty token set keeps everything.
    """
    allow = {t.strip().lower() for t in tokens if t.strip()}
    agents = list(agents)
    if not allow:
        return agents
    return [
        agent for agent in agents
        if agent.name.lower() in allow
        or agent.safe_name in allow
        or any(tag.lower() in allow for tag in agent.tags)
    ]


class AgentSurfaceBuilder:
    """Build the agent surface from configuration.

    Usage:
        config = SwitchboardConfig.load()
        surface = await AgentSurfaceBuilder(config).build()
    """

    def __init__(self, config: SwitchboardConfig, probe: ProbeFn | None = None) -> None:
        self._config = config
        self._probe = probe

    def _prefixes(self) -> dict[AgentFormat, str]:
        sources = self._config.agents
        return {
            AgentFormat.CODEX: sources.prefix_codex,
            AgentFormat.CLAUDE: sources.prefix_anthropic,
            AgentFormat.VSCODE: sources.prefix_vscode,
        }

    async def build(self) -> AgentSurface:
        config = self._config
        diagnostics = Diagnostics()
        logger.info("Building agent surface for %s", config.workspace_dir)

        records = AgentLoader.from_config(config).discover(diagnostics)
        agents = normalize_records(records, self._prefixes(), diagnostics)

        filtered = filter_agents(agents, config.agents.filter)
        if len(filtered) != len(agents):
            logger.info("Agent filter kept %d of %d agent(s)", len(filtered), len(agents))
        agents = filtered

        tool_mapper = ToolMapper(
            enabled=config.toolmap.enabled,
            allow_custom_servers=config.toolmap.allow_custom_servers,
        )
        agents = [tool_mapper.apply(agent) for agent in agents]

        model_map = ModelMap.default()
        if config.model_map.enabled:
            model_map = load_model_map(config.model_map_path, diagnostics=diagnostics)
            model_mapper = ModelMapper(
                model_map,
                strict=config.model_map.strict,
                override_provider=config.model_map.override_provider,
                normalize_provider=config.model_map.normalize_provider,
            )
            agents = [model_mapper.apply(agent, diagnostics) for agent in agents]

        discovered: list[ServerSpec] = []
        if config.discovery.enabled:
            discovered = discover_servers(
                config.workspace_dir,
                config.user_home,
                vscode_user_mcp=config.vscode_user_mcp_path,
                skip_self=config.discovery.skip_self,
            )

        enumeration = config.enumeration
        registry = ServerRegistry(
            AttachSettings.from_config(enumeration),
            ServerEnumerator(
                timeout_s=enumeration.timeout_ms / 1000,
                max_concurrency=enumeration.max_concurrency,
                probe=self._probe,
            ),
        )
        agents = await registry.attach(agents, discovered, diagnostics)

        logger.info(
            "Prepared %d agent(s) with %d diagnostic(s)", len(agents), diagnostics.count(),
        )
        return AgentSurface(
            agents=agents,
            discovered_servers=discovered,
            model_map=model_map,
            diagnostics=diagnostics,
        )

    def build_engine(self) -> ExecutionEngine:
        engine = self._config.engine
        if engine.kind == "dry-run":
            return DryRunEngine()
        return CodexExecEngine(command=engine.command, timeout_seconds=engine.timeout_seconds)
