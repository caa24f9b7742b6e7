"""Agent definition discovery and loading from the filesystem."""
from __future__ import annotations

import logging
import tomllib
from typing import TYPE_CHECKING, Any

import yaml
from switchboard_core.errors import ParseError

from switchboard_agent.definitions.parser import (
    parse_claude_agent,
    parse_codex_toml,
    parse_vscode_chatmode,
)
from switchboard_agent.definitions.types import AgentFormat

if TYPE_CHECKING:
    from pathlib import Path

    from switchboard_core.config import SwitchboardConfig
    from switchboard_core.diagnostics import Diagnostics

    from switchboard_agent.definitions.types import RawAgentRecord

logger = logging.getLogger("switchboard.agent.definitions.loader")

_PATTERNS: dict[AgentFormat, str] = {
    AgentFormat.CODEX: "*.toml",
    AgentFormat.CLAUDE: "*.agent.md",
    AgentFormat.VSCODE: "*.chatmode.md",
}

# TOML files that live next to agents but are not agents themselves
_RESERVED_TOML = frozenset({"model-map.toml", "config.toml"})
_PROMPT_SUFFIX = ".prompt.md"


def split_frontmatter(text: str, path: Path) -> tuple[str, str]:
    """Split text into front matter and body.

    The first non-blank line must be ``---``; the block ends at the next
    line that is exactly ``---``.

    Returns:
        A (frontmatter, body) tuple.

    Raises:
        ParseError: If the file is empty, has no opening ``---`` or the
            block is never closed.
    """
    if not text.strip():
        msg = f"Empty file: {path}"
        raise ParseError(msg)

    lines = text.splitlines()
    start = next(i for i, line in enumerate(lines) if line.strip())
    if lines[start].strip() != "---":
        msg = f"Missing front matter (no opening '---'): {path}"
        raise ParseError(msg)

    for end in range(start + 1, len(lines)):
        if lines[end].strip() == "---":
            frontmatter = "\n".join(lines[start + 1 : end])
            body = "\n".join(lines[end + 1 :])
            return frontmatter, body

    msg = f"Unterminated front matter (no closing '---'): {path}"
    raise ParseError(msg)


def load_frontmatter(text: str, path: Path) -> tuple[Any, str]:
    """Split and YAML-decode a front-matter document.

    An empty front-matter block decodes to an empty mapping.
    """
    frontmatter, body = split_frontmatter(text, path)
    try:
        meta = yaml.safe_load(frontmatter)
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML front matter in {path}: {exc}"
        raise ParseError(msg) from exc
    return ({} if meta is None else meta), body


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ParseError(msg) from exc


class AgentLoader:
    """Discovers and loads agent definition files.

    Each format has its own ordered list of search directories. Files are
    matched non-recursively and visited in sorted order, so the records
    come out in a stable discovery order: format, then directory, then
    file name.
    """

    def __init__(self, search_paths: dict[AgentFormat, list[Path]]) -> None:
        self._search_paths = search_paths

    @classmethod
    def from_config(cls, config: SwitchboardConfig) -> AgentLoader:
        sources = config.agents
        search_paths: dict[AgentFormat, list[Path]] = {}
        if sources.enable_codex:
            search_paths[AgentFormat.CODEX] = config.codex_dirs
        if sources.enable_anthropic:
            search_paths[AgentFormat.CLAUDE] = config.anthropic_dirs
        if sources.enable_vscode:
            search_paths[AgentFormat.VSCODE] = config.vscode_dirs
        return cls(search_paths)

    @property
    def search_paths(self) -> dict[AgentFormat, list[Path]]:
        return dict(self._search_paths)

    def discover(self, diagnostics: Diagnostics) -> list[RawAgentRecord]:
        """Scan every enabled format's directories and parse what is found.

        Documents that fail to parse are reported to *diagnostics* and
        skipped.
        """
        records: list[RawAgentRecord] = []

        for fmt in AgentFormat:
            if fmt not in self._search_paths:
                continue
            seen_dirs: set[Path] = set()
            for rank, base in enumerate(self._search_paths[fmt]):
                resolved = base.expanduser().resolve()
                if resolved in seen_dirs:
                    continue
                seen_dirs.add(resolved)
                if not resolved.is_dir():
                    logger.debug("Skipping non-existent path: %s", resolved)
                    continue

                for path in sorted(resolved.glob(_PATTERNS[fmt])):
                    if not path.is_file() or path.name in _RESERVED_TOML:
                        continue
                    try:
                        records.append(self.load_file(fmt, path, search_rank=rank))
                    except ParseError as exc:
                        diagnostics.report_error(str(path), exc)

        logger.info("Discovered %d agent definition file(s)", len(records))
        return records

    def load_file(
        self,
        fmt: AgentFormat,
        path: Path,
        search_rank: int = 0,
    ) -> RawAgentRecord:
        """Read and parse one definition file.

        Raises:
            ParseError: If the file cannot be read or is malformed.
        """
        text = _read_text(path)

        match fmt:
            case AgentFormat.CODEX:
                try:
                    document = tomllib.loads(text)
                except tomllib.TOMLDecodeError as exc:
                    msg = f"Invalid TOML in {path}: {exc}"
                    raise ParseError(msg) from exc
                prompt = path.with_name(path.stem + _PROMPT_SUFFIX)
                return parse_codex_toml(
                    document,
                    path,
                    search_rank=search_rank,
                    prompt_path=prompt if prompt.is_file() else None,
                )
            case AgentFormat.CLAUDE:
                meta, body = load_frontmatter(text, path)
                return parse_claude_agent(meta, body, path, search_rank=search_rank)
            case AgentFormat.VSCODE:
                meta, body = load_frontmatter(text, path)
                return parse_vscode_chatmode(meta, body, path, search_rank=search_rank)
