"""Switchboard Agent: agent definitions and the tool/model token mappers.

Public API:
- Definitions: ``AgentFormat``, ``RawAgentRecord``, ``CanonicalAgent``,
  ``AgentLoader``, the per-format parsers and ``normalize_records``.
- ``ToolMapper`` -- ecosystem tool tokens to toggles and server tools.
- ``ModelMapper`` / ``ModelMap`` -- vendor model names to engine models.
"""
from __future__ import annotations

from switchboard_agent.definitions import (
    DEFAULT_PREFIXES,
    AgentFormat,
    AgentLoader,
    CanonicalAgent,
    RawAgentRecord,
    normalize_record,
    normalize_records,
    parse_claude_agent,
    parse_codex_toml,
    parse_vscode_chatmode,
    safe_name,
)
from switchboard_agent.model_mapping import (
    ModelMap,
    ModelMapEntry,
    ModelMapper,
    load_model_map,
)
from switchboard_agent.tool_mapping import (
    DEFAULT_TOOL_TABLES,
    EnableToggle,
    Rename,
    ServerTool,
    TerminalAccess,
    Toggle,
    ToolMapper,
    ToolTable,
)

__all__ = [
    "DEFAULT_PREFIXES",
    "DEFAULT_TOOL_TABLES",
    "AgentFormat",
    "AgentLoader",
    "CanonicalAgent",
    "EnableToggle",
    "ModelMap",
    "ModelMapEntry",
    "ModelMapper",
    "RawAgentRecord",
    "Rename",
    "ServerTool",
    "TerminalAccess",
    "Toggle",
    "ToolMapper",
    "ToolTable",
    "load_model_map",
    "normalize_record",
    "normalize_records",
    "parse_claude_agent",
    "parse_codex_toml",
    "parse_vscode_chatmode",
    "safe_name",
]
