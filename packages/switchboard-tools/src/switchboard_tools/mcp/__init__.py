"""MCP server discovery, tool enumeration and per-agent attachment."""
from __future__ import annotations

from switchboard_tools.mcp.discovery import discover_servers, is_self, parse_server_entry
from switchboard_tools.mcp.enumerator import ServerEnumerator, probe_stdio_server
from switchboard_tools.mcp.registry import AttachSettings, ServerRegistry, merge_servers

__all__ = [
    "AttachSettings",
    "ServerEnumerator",
    "ServerRegistry",
    "discover_servers",
    "is_self",
    "merge_servers",
    "parse_server_entry",
    "probe_stdio_server",
]
