"""Tool token mapping: translates ecosystem tool names into capability toggles
and server-qualified tool references."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from switchboard_core.types import (
    BareToolRef,
    NamespacedToolRef,
    RunProfile,
    ServerOrigin,
    ServerSpec,
)

from switchboard_agent.definitions.types import AgentFormat

if TYPE_CHECKING:
    from switchboard_agent.definitions.types import CanonicalAgent

logger = logging.getLogger("switchboard.agent.tool_mapping")


class Toggle(enum.Enum):
    """Engine capability toggles; values are RunProfile field names."""
    PLAN = "include_plan_tool"
    APPLY_PATCH = "include_apply_patch_tool"
    VIEW_IMAGE = "include_view_image_tool"
    WEB_SEARCH = "tools_web_search_request"


@dataclass(frozen=True, slots=True)
class EnableToggle:
    toggle: Toggle


@dataclass(frozen=True, slots=True)
class TerminalAccess:
    """Shell-style tools the engine always has; the token is consumed."""


@dataclass(frozen=True, slots=True)
class ServerTool:
    """A tool served by a well-known MCP server that can be synthesized."""
    server: str
    tool: str
    command: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Rename:
    """Vendor display name for a tool that otherwise stays unmapped."""
    token: str


ToolTarget = EnableToggle | TerminalAccess | ServerTool | Rename

_PLAN = EnableToggle(Toggle.PLAN)
_APPLY_PATCH = EnableToggle(Toggle.APPLY_PATCH)
_VIEW_IMAGE = EnableToggle(Toggle.VIEW_IMAGE)
_WEB_SEARCH = EnableToggle(Toggle.WEB_SEARCH)
_TERMINAL = TerminalAccess()

# ── Default tool maps ─────────────────────────────────────────

# Native TOML ``tools`` entries name the toggles directly.
CODEX_TOOL_MAP: dict[str, ToolTarget] = {
    "plan": _PLAN,
    "apply_patch": _APPLY_PATCH,
    "apply-patch": _APPLY_PATCH,
    "view_image": _VIEW_IMAGE,
    "view-image": _VIEW_IMAGE,
    "web_search": _WEB_SEARCH,
    "web-search": _WEB_SEARCH,
}

CLAUDE_TOOL_MAP: dict[str, ToolTarget] = {
    "plan": _PLAN,
    "apply_patch": _APPLY_PATCH,
    "view_image": _VIEW_IMAGE,
    "web_search": _WEB_SEARCH,
    # Editing
    "Edit": _APPLY_PATCH,
    "MultiEdit": _APPLY_PATCH,
    "Write": _APPLY_PATCH,
    "NotebookEdit": _APPLY_PATCH,
    # Web
    "WebSearch": _WEB_SEARCH,
    "WebFetch": _WEB_SEARCH,
    # Planning
    "TodoWrite": _PLAN,
    # Shell / filesystem
    "Bash": _TERMINAL,
    "Glob": _TERMINAL,
    "Grep": _TERMINAL,
    "Read": _TERMINAL,
    "BashOutput": _TERMINAL,
    "KillBash": _TERMINAL,
}

VSCODE_TOOL_MAP: dict[str, ToolTarget] = {
    "edit": _APPLY_PATCH,
    "new": _APPLY_PATCH,
    "search": _WEB_SEARCH,
    "fetch": _WEB_SEARCH,
    "githubRepo": _WEB_SEARCH,
    "runCommands": _TERMINAL,
    "memory": ServerTool(
        server="memory",
        tool="memory",
        command="npx",
        args=("-y", "@modelcontextprotocol/server-memory"),
    ),
    "Find Usages": Rename("usages"),
}


@dataclass(frozen=True, slots=True)
class ToolTable:
    """One ecosystem's lookup table.

    ``native`` tables describe the format's own schema and apply even when
    vendor mapping is switched off.
    """
    entries: dict[str, ToolTarget]
    case_sensitive: bool = True
    native: bool = False

    def lookup(self, token: str) -> ToolTarget | None:
        if self.case_sensitive:
            return self.entries.get(token)
        lowered = token.lower()
        for key, target in self.entries.items():
            if key.lower() == lowered:
                return target
        return None


DEFAULT_TOOL_TABLES: dict[AgentFormat, ToolTable] = {
    AgentFormat.CODEX: ToolTable(CODEX_TOOL_MAP, case_sensitive=False, native=True),
    AgentFormat.CLAUDE: ToolTable(CLAUDE_TOOL_MAP),
    AgentFormat.VSCODE: ToolTable(VSCODE_TOOL_MAP),
}


# ── Mapper ────────────────────────────────────────────────────


class ToolMapper:
    """Rewrites an agent's bare tool tokens using its ecosystem's table.

    Toggles are raised on the run profile, terminal-style tokens are
    consumed, well-known server tools become ``server::tool`` references
    with a synthesized embedded server, and anything else passes through
    unchanged. Namespaced references are never touched.
    """

    def __init__(
        self,
        enabled: bool = True,
        allow_custom_servers: bool = True,
        tables: dict[AgentFormat, ToolTable] | None = None,
    ) -> None:
        self._enabled = enabled
        self._allow_custom_servers = allow_custom_servers
        self._tables = DEFAULT_TOOL_TABLES if tables is None else tables

    def map_token(self, fmt: AgentFormat, token: str) -> ToolTarget | None:
        table = self._tables.get(fmt)
        if table is None or not (self._enabled or table.native):
            return None
        return table.lookup(token)

    def apply(self, agent: CanonicalAgent) -> CanonicalAgent:
        """Return a copy of *agent* with its tool tokens mapped."""
        refs: list[BareToolRef | NamespacedToolRef] = []
        toggles: dict[str, bool] = {}
        servers = list(agent.servers)
        server_keys = {s.key for s in servers}

        for ref in agent.tool_refs:
            if isinstance(ref, NamespacedToolRef):
                refs.append(ref)
                continue

            target = self.map_token(agent.format, ref.tool)
            match target:
                case None:
                    logger.debug(
                        "No mapping for tool '%s' in %s; passing through",
                        ref.tool, agent.identifier,
                    )
                    refs.append(ref)
                case EnableToggle(toggle=toggle):
                    toggles[toggle.value] = True
                case TerminalAccess():
                    logger.debug("Tool '%s' is covered by terminal access", ref.tool)
                case Rename(token=token):
                    refs.append(BareToolRef(token))
                case ServerTool():
                    if not (self._enabled and self._allow_custom_servers):
                        logger.info(
                            "Leaving '%s' unmapped in %s: custom servers are disabled",
                            ref.tool, agent.identifier,
                        )
                        refs.append(ref)
                        continue
                    refs.append(NamespacedToolRef(server=target.server, tool=target.tool))
                    if target.server not in server_keys:
                        server_keys.add(target.server)
                        servers.append(ServerSpec(
                            key=target.server,
                            command=target.command,
                            args=target.args,
                            origin=ServerOrigin.EMBEDDED,
                            source="toolmap default",
                        ))

        return replace(
            agent,
            tool_refs=tuple(dict.fromkeys(refs)),
            run=agent.run.merged(RunProfile(**toggles)),
            servers=tuple(servers),
        )
