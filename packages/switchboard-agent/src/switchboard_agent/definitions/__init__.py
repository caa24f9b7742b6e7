"""Agent definition system: per-format parsing, loading, and normalization."""
from __future__ import annotations

from switchboard_agent.definitions.loader import (
    AgentLoader,
    load_frontmatter,
    split_frontmatter,
)
from switchboard_agent.definitions.naming import safe_name, tool_identifier
from switchboard_agent.definitions.normalizer import (
    DEFAULT_PREFIXES,
    normalize_record,
    normalize_records,
)
from switchboard_agent.definitions.parser import (
    parse_claude_agent,
    parse_codex_toml,
    parse_vscode_chatmode,
    split_tokens,
)
from switchboard_agent.definitions.types import (
    AgentFormat,
    CanonicalAgent,
    RawAgentRecord,
)

__all__ = [
    "DEFAULT_PREFIXES",
    "AgentFormat",
    "AgentLoader",
    "CanonicalAgent",
    "RawAgentRecord",
    "load_frontmatter",
    "normalize_record",
    "normalize_records",
    "parse_claude_agent",
    "parse_codex_toml",
    "parse_vscode_chatmode",
    "safe_name",
    "split_frontmatter",
    "split_tokens",
    "tool_identifier",
]
