"""Per-format parsers: structured documents into RawAgentRecord values.

Each parser receives an already-decoded document (a TOML table or a YAML
front-matter mapping) and keeps only the fields its schema knows, after
applying the string-or-list rule to list-valued fields. Parsers never
touch the filesystem; see :mod:`switchboard_agent.definitions.loader`.
"""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from switchboard_core.errors import ParseError

from switchboard_agent.definitions.types import AgentFormat, RawAgentRecord

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger("switchboard.agent.definitions.parser")

_COMMA_OR_SPACE = re.compile(r"[,\s]+")
_PROVIDER_KEYS = ("model_provider", "provider", "modelProvider")
_CHATMODE_SUFFIX = ".chatmode.md"

_CODEX_STRING_FIELDS = ("name", "description", "instructions", "instructions_file")
_CODEX_LIST_FIELDS = ("tags", "tools")
_CODEX_TABLE_FIELDS = ("run", "mcp_servers")


def split_tokens(value: Any, *, commas_only: bool = False) -> list[str] | None:
    """Apply the string-or-list rule.

    A list is taken verbatim, keeping only its string items; a string is split
    on commas and whitespace, or on commas only when *commas_only* is set.
    Returns ``None`` when *value* is neither.
    """
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    if isinstance(value, str):
        parts = value.split(",") if commas_only else _COMMA_OR_SPACE.split(value)
        return [part.strip() for part in parts if part.strip()]
    return None


def _scalar(value: Any) -> str | None:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, str | int | float):
        return str(value)
    return None


def _require_mapping(document: Any, path: Path, what: str) -> dict[str, Any]:
    if not isinstance(document, dict):
        msg = f"{what} must be a mapping, got {type(document).__name__}: {path}"
        raise ParseError(msg)
    return document


def _take_list(
    fields: dict[str, Any],
    meta: dict[str, Any],
    key: str,
    path: Path,
    *,
    commas_only: bool = False,
) -> None:
    if key not in meta or meta[key] is None:
        return
    tokens = split_tokens(meta[key], commas_only=commas_only)
    if tokens is None:
        logger.warning(
            "Ignoring '%s' in %s: expected a string or list, got %s",
            key, path, type(meta[key]).__name__,
        )
        return
    fields[key] = tokens


def _take_scalar(fields: dict[str, Any], meta: dict[str, Any], key: str, path: Path) -> None:
    if key not in meta or meta[key] is None:
        return
    value = _scalar(meta[key])
    if value is None:
        logger.warning(
            "Ignoring '%s' in %s: expected a string, got %s",
            key, path, type(meta[key]).__name__,
        )
        return
    fields[key] = value


def _take_provider(fields: dict[str, Any], meta: dict[str, Any], path: Path) -> None:
    for key in _PROVIDER_KEYS:
        if meta.get(key) is not None:
            _take_scalar(fields, {"model_provider": meta[key]}, "model_provider", path)
            return


def parse_codex_toml(
    document: Any,
    path: Path,
    search_rank: int = 0,
    prompt_path: Path | None = None,
) -> RawAgentRecord:
    """Parse a native TOML agent table.

    Raises:
        ParseError: If the document is not a table, or ``run`` /
            ``mcp_servers`` are present but not tables.
    """
    meta = _require_mapping(document, path, "Agent TOML")
    fields: dict[str, Any] = {}

    for key, value in meta.items():
        if key in _CODEX_STRING_FIELDS:
            if isinstance(value, str):
                fields[key] = value
            else:
                logger.warning(
                    "Ignoring '%s' in %s: expected a string, got %s",
                    key, path, type(value).__name__,
                )
        elif key in _CODEX_LIST_FIELDS:
            _take_list(fields, meta, key, path)
        elif key in _CODEX_TABLE_FIELDS:
            if not isinstance(value, dict):
                msg = f"'{key}' must be a table, got {type(value).__name__}: {path}"
                raise ParseError(msg)
            fields[key] = value
        else:
            logger.debug("Unknown key '%s' in %s", key, path)

    return RawAgentRecord(
        format=AgentFormat.CODEX,
        source_path=path,
        fields=fields,
        search_rank=search_rank,
        prompt_path=prompt_path,
    )


def parse_claude_agent(
    frontmatter: Any,
    body: str,
    path: Path,
    search_rank: int = 0,
) -> RawAgentRecord:
    """Parse a ``*.agent.md`` front-matter mapping and its markdown body.

    Tags split on commas only, so multi-word tags survive.
    """
    meta = _require_mapping(frontmatter, path, "Front matter")
    fields: dict[str, Any] = {}

    _take_scalar(fields, meta, "name", path)
    _take_scalar(fields, meta, "description", path)
    _take_scalar(fields, meta, "model", path)
    _take_provider(fields, meta, path)
    _take_list(fields, meta, "tools", path)
    _take_list(fields, meta, "tags", path, commas_only=True)

    return RawAgentRecord(
        format=AgentFormat.CLAUDE,
        source_path=path,
        fields=fields,
        body=body.strip(),
        search_rank=search_rank,
    )


def parse_vscode_chatmode(
    frontmatter: Any,
    body: str,
    path: Path,
    search_rank: int = 0,
) -> RawAgentRecord:
    """Parse a ``*.chatmode.md`` front-matter mapping and its markdown body.

    ``name`` is optional and falls back to the file name without the
    ``.chatmode.md`` suffix.
    """
    meta = _require_mapping(frontmatter, path, "Front matter")
    fields: dict[str, Any] = {}

    _take_scalar(fields, meta, "name", path)
    if not fields.get("name", "").strip():
        fields["name"] = chatmode_name_from_path(path)
    _take_scalar(fields, meta, "description", path)
    _take_scalar(fields, meta, "model", path)
    _take_provider(fields, meta, path)
    _take_list(fields, meta, "tools", path)
    _take_list(fields, meta, "tags", path)

    return RawAgentRecord(
        format=AgentFormat.VSCODE,
        source_path=path,
        fields=fields,
        body=body.strip(),
        search_rank=search_rank,
    )


def chatmode_name_from_path(path: Path) -> str:
    name = path.name
    if name.endswith(_CHATMODE_SUFFIX):
        return name[: -len(_CHATMODE_SUFFIX)]
    return path.stem
