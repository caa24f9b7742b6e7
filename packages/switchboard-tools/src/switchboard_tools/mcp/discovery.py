"""Discover stdio MCP servers from the config files of common MCP hosts.

Sources, in discovery order:

- ``<workspace>/.mcp.json`` (Claude project file)
- ``~/.claude.json`` (per-project entry, then global servers)
- ``<workspace>/.vscode/mcp.json`` and an optional VS Code user file
- ``~/.cursor/mcp.json`` (never overrides an earlier key)

Only stdio servers are kept; HTTP/URL entries are skipped.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from switchboard_core.logging import get_logger
from switchboard_core.types import ServerOrigin, ServerSpec

logger = get_logger("mcp.discovery")

SELF_KEY = "switchboard"


def _read_json(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Skipping unreadable MCP config %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def parse_server_entry(
    key: str,
    entry: Any,
    *,
    source: str,
    path: Path | None = None,
) -> ServerSpec | None:
    """Parse one ``{command, args, env}`` entry; ``None`` if not stdio."""
    if not isinstance(entry, dict):
        return None
    kind = entry.get("type")
    if isinstance(kind, str) and kind.lower() in {"http", "sse"}:
        logger.debug("Skipping %s server '%s' from %s", kind, key, source)
        return None
    if "url" in entry and "command" not in entry:
        logger.debug("Skipping URL server '%s' from %s", key, source)
        return None

    command = entry.get("command")
    if not isinstance(command, str) or not command.strip():
        return None
    args = entry.get("args")
    env = entry.get("env")
    return ServerSpec(
        key=key,
        command=command,
        args=tuple(a for a in args if isinstance(a, str)) if isinstance(args, list) else (),
        env=(
            {k: v for k, v in env.items() if isinstance(v, str)}
            if isinstance(env, dict) else {}
        ),
        origin=ServerOrigin.DISCOVERED,
        source=source,
        path=path,
    )


def _parse_table(table: Any, *, source: str, path: Path) -> list[ServerSpec]:
    if not isinstance(table, dict):
        return []
    specs = []
    for key, entry in table.items():
        spec = parse_server_entry(key, entry, source=source, path=path)
        if spec is not None:
            specs.append(spec)
    return specs


def _claude_user_servers(path: Path, workspace_dir: Path) -> list[ServerSpec]:
    """Project-scoped servers for *workspace_dir*, then global ones."""
    doc = _read_json(path)
    if doc is None:
        return []

    merged: dict[str, ServerSpec] = {}
    projects = doc.get("projects")
    project = projects.get(str(workspace_dir)) if isinstance(projects, dict) else None
    if isinstance(project, dict):
        for spec in _parse_table(
            project.get("mcpServers"),
            source=f"~/.claude.json project: {workspace_dir}",
            path=path,
        ):
            merged[spec.key] = spec

        enabled = project.get("enabledMcpjsonServers")
        if isinstance(enabled, list):
            allow = {str(name).lower() for name in enabled}
            merged = {k: v for k, v in merged.items() if k.lower() in allow}
        for name in project.get("disabledMcpjsonServers") or []:
            merged.pop(str(name), None)

    for spec in _parse_table(doc.get("mcpServers"), source="~/.claude.json global", path=path):
        merged.setdefault(spec.key, spec)
    return list(merged.values())


def _vscode_servers(path: Path, source: str) -> list[ServerSpec]:
    doc = _read_json(path)
    if doc is None:
        return []
    table = doc.get("servers")
    if not isinstance(table, dict):
        table = doc.get("mcpServers")
    return _parse_table(table, source=source, path=path)


def is_self(spec: ServerSpec) -> bool:
    """Whether *spec* would launch this aggregator itself."""
    if spec.key.lower() == SELF_KEY:
        return True
    return Path(spec.command).name.lower().startswith(SELF_KEY)


def discover_servers(
    workspace_dir: Path,
    user_home: Path,
    vscode_user_mcp: Path | None = None,
    skip_self: bool = True,
) -> list[ServerSpec]:
    """Collect stdio servers from every known host config.

    Later sources override earlier keys, except Cursor which only fills
    gaps. A key keeps the position where it was first seen, so the result
    is in a stable discovery order.
    """
    found: dict[str, ServerSpec] = {}

    def overwrite(specs: list[ServerSpec]) -> None:
        for spec in specs:
            found[spec.key] = spec

    mcp_json = workspace_dir / ".mcp.json"
    doc = _read_json(mcp_json)
    if doc is not None:
        overwrite(_parse_table(doc.get("mcpServers"), source=".mcp.json", path=mcp_json))

    overwrite(_claude_user_servers(user_home / ".claude.json", workspace_dir))
    overwrite(_vscode_servers(workspace_dir / ".vscode" / "mcp.json", ".vscode/mcp.json"))
    if vscode_user_mcp is not None:
        overwrite(_vscode_servers(vscode_user_mcp, "vscode user mcp.json"))

    cursor = user_home / ".cursor" / "mcp.json"
    doc = _read_json(cursor)
    if doc is not None:
        for spec in _parse_table(doc.get("mcpServers"), source="~/.cursor/mcp.json", path=cursor):
            found.setdefault(spec.key, spec)

    servers = list(found.values())
    if skip_self:
        skipped = [s.key for s in servers if is_self(s)]
        if skipped:
            logger.debug("Skipping self server(s): %s", ", ".join(skipped))
        servers = [s for s in servers if not is_self(s)]

    logger.info("Discovered %d stdio MCP server(s)", len(servers))
    return servers
