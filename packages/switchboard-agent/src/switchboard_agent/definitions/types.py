"""Agent definition types shared by the parsers, normalizer and mappers."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from switchboard_core.types import RunProfile

if TYPE_CHECKING:
    from pathlib import Path

    from switchboard_core.types import ServerSpec, ToolRef


class AgentFormat(enum.Enum):
    """The source ecosystem an agent definition was written for."""
    CODEX = "codex"      # native TOML form
    CLAUDE = "claude"    # *.agent.md front matter
    VSCODE = "vscode"    # *.chatmode.md front matter

    @property
    def rank(self) -> int:
        """Position in the stable discovery order."""
        return list(AgentFormat).index(self)


@dataclass(frozen=True, slots=True)
class RawAgentRecord:
    """A parsed source document, still in its ecosystem's own vocabulary.

    ``fields`` holds the schema-specific values after string-or-list
    splitting; ``body`` is the markdown body of front-matter formats.
    ``search_rank`` is the index of the search directory the file came
    from, lower ranks taking precedence on identifier collisions.
    """

    format: AgentFormat
    source_path: Path
    fields: dict[str, Any] = field(default_factory=dict)
    body: str | None = None
    search_rank: int = 0
    prompt_path: Path | None = None

    @property
    def discovery_key(self) -> tuple[int, int, str]:
        return (self.format.rank, self.search_rank, str(self.source_path))


@dataclass(frozen=True, slots=True)
class CanonicalAgent:
    """The single reconciled representation every downstream stage consumes."""

    name: str
    identifier: str
    safe_name: str
    description: str
    format: AgentFormat
    tags: frozenset[str] = frozenset()
    instructions: str = ""
    tool_refs: tuple[ToolRef, ...] = ()
    run: RunProfile = field(default_factory=RunProfile)
    servers: tuple[ServerSpec, ...] = ()
    source_path: Path | None = None
