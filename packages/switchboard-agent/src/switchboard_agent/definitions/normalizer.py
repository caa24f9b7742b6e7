"""Reconcile RawAgentRecord values into CanonicalAgent values."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from switchboard_core.errors import IdentifierCollisionError, NormalizationError
from switchboard_core.types import (
    APPROVAL_POLICIES,
    REASONING_EFFORTS,
    REASONING_SUMMARIES,
    SANDBOX_MODES,
    VERBOSITIES,
    RunProfile,
    ServerOrigin,
    ServerSpec,
    parse_tool_ref,
)

from switchboard_agent.definitions.naming import safe_name, tool_identifier
from switchboard_agent.definitions.types import AgentFormat, CanonicalAgent

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from switchboard_core.diagnostics import Diagnostics

    from switchboard_agent.definitions.types import RawAgentRecord

logger = logging.getLogger("switchboard.agent.definitions.normalizer")

DEFAULT_PREFIXES: dict[AgentFormat, str] = {
    AgentFormat.CODEX: "agent_",
    AgentFormat.CLAUDE: "anth_",
    AgentFormat.VSCODE: "vsc_",
}

_BOOL_FIELDS = frozenset({
    "disable_response_storage",
    "include_plan_tool",
    "include_apply_patch_tool",
    "include_view_image_tool",
    "tools_web_search_request",
})
_CHOICES: dict[str, frozenset[str]] = {
    "approval_policy": APPROVAL_POLICIES,
    "sandbox_mode": SANDBOX_MODES,
    "model_reasoning_effort": REASONING_EFFORTS,
    "model_reasoning_summary": REASONING_SUMMARIES,
    "model_verbosity": VERBOSITIES,
}


def _warn(diagnostics: Diagnostics | None, subject: str, message: str) -> None:
    if diagnostics is None:
        logger.warning("%s: %s", subject, message)
    else:
        diagnostics.report(NormalizationError, subject, message)


def _run_profile(
    table: dict[str, Any] | None,
    path: Path,
    diagnostics: Diagnostics | None,
) -> RunProfile:
    """Validate a ``[run]`` table; an invalid table is dropped as a whole."""
    if not table:
        return RunProfile()

    known = RunProfile.field_names()
    values: dict[str, Any] = {}
    for key, value in table.items():
        if key not in known:
            logger.debug("Unknown run setting '%s' in %s", key, path)
            continue
        if key in _BOOL_FIELDS:
            ok = isinstance(value, bool)
        else:
            ok = isinstance(value, str) and (key not in _CHOICES or value in _CHOICES[key])
        if not ok:
            _warn(diagnostics, str(path), f"invalid [run] value {key} = {value!r}; ignoring [run]")
            return RunProfile()
        values[key] = value
    return RunProfile(**values)


def _embedded_servers(
    table: dict[str, Any] | None,
    path: Path,
    diagnostics: Diagnostics | None,
) -> tuple[ServerSpec, ...]:
    servers: list[ServerSpec] = []
    for key, entry in (table or {}).items():
        command = entry.get("command") if isinstance(entry, dict) else None
        if not isinstance(command, str) or not command.strip():
            _warn(diagnostics, str(path), f"mcp_servers.{key} has no command; skipping")
            continue
        args = entry.get("args", [])
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            _warn(diagnostics, str(path), f"mcp_servers.{key}.args must be a list of strings; skipping")
            continue
        env = entry.get("env", {})
        if not isinstance(env, dict):
            _warn(diagnostics, str(path), f"mcp_servers.{key}.env must be a table; skipping")
            continue
        servers.append(ServerSpec(
            key=key,
            command=command,
            args=tuple(args),
            env={str(k): str(v) for k, v in env.items()},
            origin=ServerOrigin.EMBEDDED,
            source="agent definition",
            path=path,
        ))
    return tuple(servers)


def _read_instructions(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read instructions file %s: %s", path, exc)
        return None


def _codex_instructions(record: RawAgentRecord) -> str:
    """Instructions file, then inline text, then a sibling ``.prompt.md``."""
    file_value = record.fields.get("instructions_file")
    if file_value:
        path = Path(file_value).expanduser()
        if not path.is_absolute():
            path = record.source_path.parent / path
        text = _read_instructions(path)
        if text is not None:
            return text

    inline = record.fields.get("instructions")
    if inline is not None:
        return inline.strip()

    if record.prompt_path is not None:
        return _read_instructions(record.prompt_path) or ""
    return ""


def normalize_record(
    record: RawAgentRecord,
    prefixes: Mapping[AgentFormat, str] | None = None,
    diagnostics: Diagnostics | None = None,
) -> CanonicalAgent:
    """Turn one raw record into a CanonicalAgent.

    Raises:
        NormalizationError: If the name is missing or has no usable
            characters to derive an identifier from.
    """
    prefixes = DEFAULT_PREFIXES if prefixes is None else prefixes
    fields = record.fields
    path = record.source_path

    name = (fields.get("name") or "").strip()
    if not name:
        msg = f"Missing required field 'name': {path}"
        raise NormalizationError(msg)

    identifier = tool_identifier(prefixes.get(record.format, ""), name)
    if not identifier or not safe_name(name):
        msg = f"Name {name!r} yields an empty identifier: {path}"
        raise NormalizationError(msg)

    description = (fields.get("description") or "").strip()
    if not description:
        description = f"Agent '{name}': Execute tasks via Codex"

    # Duplicate tokens collapse, first occurrence keeps its position
    tool_refs = tuple(dict.fromkeys(parse_tool_ref(t) for t in fields.get("tools", [])))

    match record.format:
        case AgentFormat.CODEX:
            instructions = _codex_instructions(record)
            run = _run_profile(fields.get("run"), path, diagnostics)
            servers = _embedded_servers(fields.get("mcp_servers"), path, diagnostics)
        case AgentFormat.CLAUDE | AgentFormat.VSCODE:
            instructions = record.body or ""
            run = RunProfile(
                model=fields.get("model"),
                model_provider=fields.get("model_provider"),
            )
            servers = ()

    return CanonicalAgent(
        name=name,
        identifier=identifier,
        safe_name=safe_name(name),
        description=description,
        format=record.format,
        tags=frozenset(fields.get("tags", [])),
        instructions=instructions,
        tool_refs=tool_refs,
        run=run,
        servers=servers,
        source_path=path,
    )


def normalize_records(
    records: Iterable[RawAgentRecord],
    prefixes: Mapping[AgentFormat, str] | None,
    diagnostics: Diagnostics,
) -> list[CanonicalAgent]:
    """Normalize every record, skipping failures and later duplicates.

    Records are first sorted into the stable discovery order (format,
    search directory, path) so the surviving set does not depend on the
    order the records were produced in.
    """
    agents: list[CanonicalAgent] = []
    owners: dict[str, CanonicalAgent] = {}

    for record in sorted(records, key=lambda r: r.discovery_key):
        try:
            agent = normalize_record(record, prefixes, diagnostics)
        except NormalizationError as exc:
            diagnostics.report_error(str(record.source_path), exc)
            continue

        first = owners.get(agent.identifier)
        if first is not None:
            diagnostics.report(
                IdentifierCollisionError,
                agent.identifier,
                f"{record.source_path} collides with {first.source_path}; keeping the first",
            )
            continue

        owners[agent.identifier] = agent
        agents.append(agent)

    logger.info("Normalized %d agent(s)", len(agents))
    return agents
