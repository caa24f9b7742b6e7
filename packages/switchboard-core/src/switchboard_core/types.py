from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

# ── Tool References ──────────────────────────────────────────────────

NAMESPACE_SEPARATOR = "::"


@dataclass(frozen=True, slots=True)
class BareToolRef:
    """A tool token with no server namespace."""
    tool: str

    def __str__(self) -> str:
        return self.tool


@dataclass(frozen=True, slots=True)
class NamespacedToolRef:
    """A tool token addressed as ``server::tool``."""
    server: str
    tool: str

    def __str__(self) -> str:
        return f"{self.server}{NAMESPACE_SEPARATOR}{self.tool}"


ToolRef = BareToolRef | NamespacedToolRef


def parse_tool_ref(token: str) -> ToolRef:
    """Split ``server::tool`` into a namespaced ref, anything else is bare."""
    token = token.strip()
    server, sep, tool = token.partition(NAMESPACE_SEPARATOR)
    if sep and server.strip() and tool.strip():
        return NamespacedToolRef(server=server.strip(), tool=tool.strip())
    return BareToolRef(tool=token)


# ── MCP Server Types ─────────────────────────────────────────────────

class ServerOrigin(enum.Enum):
    EMBEDDED = "embedded"
    DISCOVERED = "discovered"


@dataclass(frozen=True, slots=True)
class ServerSpec:
    """Launch description of a stdio MCP server."""
    key: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict, hash=False)
    origin: ServerOrigin = ServerOrigin.DISCOVERED
    source: str = ""
    path: Path | None = None

    @property
    def fingerprint(self) -> str:
        """Identity of the launched process, independent of where it was declared."""
        env = ",".join(f"{k}={v}" for k, v in sorted(self.env.items()))
        return f"{self.key}|{self.command}|{' '.join(self.args)}|{env}"


@dataclass(frozen=True, slots=True)
class EnumerationResult:
    """Outcome of probing one server for its advertised tools."""
    key: str
    tools: frozenset[str] | None = None
    error: str | None = None
    elapsed_ms: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.tools is not None


# ── Run Profile ──────────────────────────────────────────────────────

APPROVAL_POLICIES = frozenset({"untrusted", "on-failure", "on-request", "never"})
SANDBOX_MODES = frozenset({"read-only", "workspace-write", "danger-full-access"})
REASONING_EFFORTS = frozenset({"minimal", "low", "medium", "high"})
REASONING_SUMMARIES = frozenset({"auto", "concise", "detailed", "none"})
VERBOSITIES = frozenset({"low", "medium", "high"})


@dataclass(frozen=True, slots=True)
class RunProfile:
    """Sparse execution settings for an agent.

    ``None`` means "unset": the engine falls back to its own default.
    Nothing in the pipeline fills a field that no source document set,
    except the tool mapper raising a capability toggle.
    """
    model: str | None = None
    model_provider: str | None = None
    approval_policy: str | None = None
    disable_response_storage: bool | None = None
    model_reasoning_effort: str | None = None
    model_reasoning_summary: str | None = None
    model_verbosity: str | None = None
    chatgpt_base_url: str | None = None
    sandbox_mode: str | None = None
    include_plan_tool: bool | None = None
    include_apply_patch_tool: bool | None = None
    include_view_image_tool: bool | None = None
    tools_web_search_request: bool | None = None

    def explicit(self) -> dict[str, Any]:
        """Only the fields that were set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merged(self, other: RunProfile) -> RunProfile:
        """Overlay *other* on top of this profile; set fields win."""
        return RunProfile(**{**self.explicit(), **other.explicit()})

    def is_empty(self) -> bool:
        return not self.explicit()

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))
